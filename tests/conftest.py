from __future__ import annotations
import math

import pytest

from backend.app.geom import AreaConverter, GeoPoint

LONDON = [GeoPoint(51.509, -0.08), GeoPoint(51.503, -0.06), GeoPoint(51.51, -0.047)]


class FakeEngine:
    """Motor de geometria controlado: devolve a área fixa e guarda as chamadas."""

    name = "fake"

    def __init__(self, area=2_000_000.0, perimeter=6_000.0, exc=None):
        self.area = area
        self.perimeter = perimeter
        self.exc = exc
        self.calls = []

    def area_perimeter(self, coordinates):
        self.calls.append([list(c) for c in coordinates])
        if self.exc is not None:
            raise self.exc
        return self.area, self.perimeter


@pytest.fixture
def london():
    return list(LONDON)


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def converter(fake_engine):
    return AreaConverter(engine=fake_engine)


@pytest.fixture
def nan_converter():
    return AreaConverter(engine=FakeEngine(area=math.nan))


@pytest.fixture
def make_engine():
    return FakeEngine
