from __future__ import annotations
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional

from loguru import logger

from .geom import AreaConverter, AreaError, GeoPoint, Measurement, Ring

EditCallback = Callable[[List[GeoPoint]], None]

INITIAL_RING = [
    GeoPoint(51.509, -0.08),
    GeoPoint(51.503, -0.06),
    GeoPoint(51.51, -0.047),
]

SESSION_TTL_SECONDS = 30 * 60
MAX_SESSIONS = 1000


class AreaSession:
    """Uma sessão de mapa: um anel ativo e um conversor.

    Os assinantes são chamados com o novo anel a cada edição, antes do
    recálculo. Se o cálculo falhar, o último resultado válido continua
    disponível em ``measurement`` e o erro fica em ``error``.

    Edições concorrentes (threadpool do FastAPI) são serializadas: anel,
    resultado e erro sempre correspondem à mesma edição.
    """

    def __init__(
        self,
        session_id: str,
        converter: AreaConverter,
        ring: Optional[Ring] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_id = session_id
        self.converter = converter
        self.ring: List[GeoPoint] = list(ring) if ring is not None else list(INITIAL_RING)
        self.measurement: Optional[Measurement] = None
        self.error: Optional[AreaError] = None
        self.clock = clock
        self.last_used = clock()
        self._subscribers: List[EditCallback] = []
        self._lock = threading.RLock()

    def subscribe(self, callback: EditCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def refresh(self) -> Measurement:
        with self._lock:
            self.last_used = self.clock()
            try:
                result = self.converter.measure(self.ring)
            except AreaError as e:
                self.error = e
                logger.warning(f"[{self.session_id}] {e.kind}: {e}")
                raise
            self.measurement = result
            self.error = None
            return result

    def edit(self, ring: Ring) -> Measurement:
        with self._lock:
            # cópia: o anel do editor nunca é alterado aqui
            self.ring = list(ring)
            for callback in list(self._subscribers):
                callback(list(self.ring))
            return self.refresh()


class SessionStore:
    """Sessões em memória; expiram após ``ttl`` segundos sem uso."""

    def __init__(
        self,
        converter: Optional[AreaConverter] = None,
        ttl: float = SESSION_TTL_SECONDS,
        max_sessions: int = MAX_SESSIONS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.converter = converter if converter is not None else AreaConverter()
        self.ttl = ttl
        self.max_sessions = max_sessions
        self.clock = clock
        self._sessions: Dict[str, AreaSession] = {}
        self._lock = threading.Lock()

    @staticmethod
    def new_session_id() -> str:
        return uuid.uuid4().hex

    def _evict(self) -> None:
        now = self.clock()
        expired = [sid for sid, s in self._sessions.items() if now - s.last_used > self.ttl]
        for sid in expired:
            del self._sessions[sid]
        # ainda cheio: descarta as menos usadas
        overflow = len(self._sessions) - self.max_sessions + 1
        if overflow > 0:
            oldest = sorted(self._sessions.values(), key=lambda s: s.last_used)[:overflow]
            for s in oldest:
                del self._sessions[s.session_id]
            expired.extend(s.session_id for s in oldest)
        if expired:
            logger.info(f"{len(expired)} sessão(ões) expirada(s)")

    def create(self, ring: Optional[Ring] = None) -> AreaSession:
        session = AreaSession(self.new_session_id(), self.converter, ring, clock=self.clock)
        session.subscribe(lambda r: logger.debug(f"[{session.session_id}] edição com {len(r)} pontos"))
        with self._lock:
            self._evict()
            self._sessions[session.session_id] = session
        logger.info(f"Sessão criada: {session.session_id}")
        return session

    def get(self, session_id: str) -> Optional[AreaSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if self.clock() - session.last_used > self.ttl:
                del self._sessions[session_id]
                return None
            session.last_used = self.clock()
            return session

    def drop(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
