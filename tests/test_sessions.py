from __future__ import annotations
import threading
import time

import pytest

from backend.app.geom import AreaConverter, ComputationError, InvalidGeometry, as_ring
from backend.app.sessions import INITIAL_RING, AreaSession, SessionStore


def test_new_session_starts_with_initial_polygon(converter):
    session = AreaSession("abc", converter)
    assert session.ring == INITIAL_RING
    assert session.measurement is None
    assert session.error is None


def test_subscriber_receives_new_ring(converter, london):
    session = AreaSession("abc", converter)
    seen = []
    session.subscribe(seen.append)
    session.edit(london)
    assert seen == [london]


def test_unsubscribe_stops_notifications(converter, london):
    session = AreaSession("abc", converter)
    seen = []
    unsubscribe = session.subscribe(seen.append)
    unsubscribe()
    unsubscribe()
    session.edit(london)
    assert seen == []


def test_edit_does_not_mutate_editor_ring(converter, london):
    session = AreaSession("abc", converter)
    editor_ring = list(london)
    session.edit(editor_ring)
    session.ring.append(london[0])
    assert editor_ring == london


def test_failed_edit_keeps_prior_report(converter, london):
    session = AreaSession("abc", converter, london)
    first = session.refresh()
    with pytest.raises(InvalidGeometry):
        session.edit(as_ring([(0, 0), (0, 1)]))
    assert session.measurement is first
    assert isinstance(session.error, InvalidGeometry)


def test_successful_edit_clears_error(converter, london):
    session = AreaSession("abc", converter, london)
    with pytest.raises(InvalidGeometry):
        session.edit(london[:2])
    session.edit(london)
    assert session.error is None
    assert session.measurement.report.square_meters == 2_000_000


def test_engine_failure_is_recorded(make_engine, london):
    session = AreaSession("abc", AreaConverter(engine=make_engine(exc=RuntimeError("x"))), london)
    with pytest.raises(ComputationError):
        session.refresh()
    assert isinstance(session.error, ComputationError)
    assert session.measurement is None


def test_store_create_get_drop(converter):
    store = SessionStore(converter)
    session = store.create()
    assert len(session.session_id) == 32
    assert store.get(session.session_id) is session
    assert session.converter is converter
    assert store.drop(session.session_id)
    assert not store.drop(session.session_id)
    assert store.get(session.session_id) is None
    assert len(store) == 0


def test_store_sessions_are_independent(converter, london):
    store = SessionStore(converter)
    a = store.create()
    b = store.create(london)
    assert a.session_id != b.session_id
    a.edit(london)
    assert b.measurement is None


class SlowEngine:
    name = "slow"

    def __init__(self, delay):
        self.delay = delay

    def area_perimeter(self, coordinates):
        time.sleep(self.delay)
        return 2_000_000.0, 6_000.0


def test_concurrent_edits_are_serialized(london):
    session = AreaSession("abc", AreaConverter(engine=SlowEngine(0.3)))
    worker = threading.Thread(target=session.edit, args=(london,))
    worker.start()
    time.sleep(0.1)
    with pytest.raises(InvalidGeometry):
        session.edit(as_ring([(0, 0), (0, 1)]))
    worker.join()

    # a edição inválida veio depois: o anel curto fica com o erro visível
    assert len(session.ring) == 2
    assert isinstance(session.error, InvalidGeometry)
    assert session.measurement.report.square_meters == 2_000_000


def test_concurrent_sessions_are_independent(london):
    converter = AreaConverter(engine=SlowEngine(0.05))
    sessions = [AreaSession(str(i), converter) for i in range(4)]
    threads = [threading.Thread(target=s.edit, args=(london,)) for s in sessions]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert all(s.error is None and s.ring == london for s in sessions)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_store_expires_idle_sessions(converter):
    clock = FakeClock()
    store = SessionStore(converter, ttl=60, clock=clock)
    old = store.create()
    clock.now = 30
    assert store.get(old.session_id) is old
    clock.now = 100
    assert store.get(old.session_id) is None
    assert len(store) == 0


def test_store_evicts_on_create(converter):
    clock = FakeClock()
    store = SessionStore(converter, ttl=60, clock=clock)
    store.create()
    store.create()
    clock.now = 61
    fresh = store.create()
    assert len(store) == 1
    assert store.get(fresh.session_id) is fresh


def test_store_is_bounded(converter):
    clock = FakeClock()
    store = SessionStore(converter, max_sessions=3, clock=clock)
    created = []
    for i in range(5):
        clock.now = i
        created.append(store.create())
    assert len(store) == 3
    assert store.get(created[0].session_id) is None
    assert store.get(created[-1].session_id) is created[-1]
