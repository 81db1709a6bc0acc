from __future__ import annotations
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from loguru import logger
from pydantic import BaseModel

from .config import ACRE_SQUARE_METERS, start_logger
from .deps import check_dependencies
from .errors import register_exception_handlers
from .geom import AreaConverter, AreaError, Measurement, as_ring
from .sessions import AreaSession, SessionStore


class RingRequest(BaseModel):
    # (lat, lon), mesma ordem do Leaflet
    points: List[Tuple[float, float]]


class SessionRequest(BaseModel):
    points: Optional[List[Tuple[float, float]]] = None


class ReportModel(BaseModel):
    square_meters: float
    hectares: float
    square_kilometers: float
    acres: float


class AreaResponse(BaseModel):
    report: ReportModel
    perimeter: float
    coordinates: List[List[float]]  # GeoJSON (lon, lat), fechado


class SessionResponse(BaseModel):
    session_id: str
    points: List[Tuple[float, float]]
    report: Optional[ReportModel] = None
    perimeter: Optional[float] = None
    coordinates: Optional[List[List[float]]] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class HealthResponse(BaseModel):
    ok: bool
    engine: str
    missing: List[str]
    detail: Optional[str] = None


def _area_response(m: Measurement) -> AreaResponse:
    r = m.report
    return AreaResponse(
        report=ReportModel(
            square_meters=r.square_meters,
            hectares=r.hectares,
            square_kilometers=r.square_kilometers,
            acres=r.acres,
        ),
        perimeter=m.perimeter,
        coordinates=m.coordinates,
    )


def _session_response(session: AreaSession) -> SessionResponse:
    resp = SessionResponse(
        session_id=session.session_id,
        points=[(p.latitude, p.longitude) for p in session.ring],
    )
    if session.measurement is not None:
        area = _area_response(session.measurement)
        resp.report = area.report
        resp.perimeter = area.perimeter
        resp.coordinates = area.coordinates
    if session.error is not None:
        resp.error = str(session.error)
        resp.error_kind = session.error.kind
    return resp


def get_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_session(session_id: str, store: SessionStore = Depends(get_store)) -> AreaSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Sessão não encontrada.")
    return session


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_logger()
    report = check_dependencies(app.state.sessions.converter)
    if report.ok:
        logger.info(f"Motor de geometria OK: {report.engine}")
    else:
        logger.error(f"Dependências faltando: {', '.join(report.missing)} ({report.detail})")
    yield


def create_app(converter: Optional[AreaConverter] = None) -> FastAPI:
    app = FastAPI(title="Calculadora de Área de Polígono", version="1.0.0", lifespan=lifespan)
    app.state.sessions = SessionStore(converter or AreaConverter(acre_square_meters=ACRE_SQUARE_METERS))
    register_exception_handlers(app)

    @app.get("/healthz", response_model=HealthResponse)
    def healthz(store: SessionStore = Depends(get_store)):
        report = check_dependencies(store.converter)
        return HealthResponse(ok=report.ok, engine=report.engine, missing=report.missing, detail=report.detail)

    @app.post("/area", response_model=AreaResponse)
    def compute_area(req: RingRequest, store: SessionStore = Depends(get_store)):
        return _area_response(store.converter.measure(as_ring(req.points)))

    @app.post("/sessions", response_model=SessionResponse, status_code=201)
    def create_session(req: Optional[SessionRequest] = None, store: SessionStore = Depends(get_store)):
        ring = as_ring(req.points) if req is not None and req.points is not None else None
        session = store.create(ring)
        try:
            session.refresh()
        except AreaError:
            store.drop(session.session_id)
            raise
        return _session_response(session)

    @app.get("/sessions/{session_id}", response_model=SessionResponse)
    def read_session(session: AreaSession = Depends(get_session)):
        return _session_response(session)

    @app.put("/sessions/{session_id}/ring", response_model=SessionResponse)
    def edit_ring(req: RingRequest, session: AreaSession = Depends(get_session)):
        session.edit(as_ring(req.points))
        return _session_response(session)

    @app.delete("/sessions/{session_id}", status_code=204)
    def delete_session(session_id: str, store: SessionStore = Depends(get_store)):
        if not store.drop(session_id):
            raise HTTPException(status_code=404, detail="Sessão não encontrada.")
        return Response(status_code=204)

    return app


app = create_app()
