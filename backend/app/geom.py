from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from pyproj import Geod
from shapely.geometry import Polygon

from .config import ACRE_SQUARE_METERS

SQUARE_METERS_PER_HECTARE = 10_000.0
SQUARE_METERS_PER_KM2 = 1_000_000.0


class AreaError(ValueError):
    """Base dos erros de cálculo de área (não fatais para o mapa)."""

    kind = "AreaError"


class InvalidGeometry(AreaError):
    kind = "InvalidGeometry"


class ComputationError(AreaError):
    kind = "ComputationError"


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def __post_init__(self):
        if not (-90.0 <= self.latitude <= 90.0):
            raise InvalidGeometry(f"Latitude fora do intervalo [-90, 90]: {self.latitude}")
        if not (-180.0 <= self.longitude <= 180.0):
            raise InvalidGeometry(f"Longitude fora do intervalo [-180, 180]: {self.longitude}")

    def lonlat(self) -> Tuple[float, float]:
        return (self.longitude, self.latitude)


Ring = Sequence[GeoPoint]
PointLike = Union[GeoPoint, Sequence[float]]


def as_ring(points: Iterable[PointLike]) -> List[GeoPoint]:
    """Aceita GeoPoint ou pares (lat, lon), na ordem do Leaflet."""
    ring = []
    for p in points:
        if isinstance(p, GeoPoint):
            ring.append(p)
            continue
        try:
            lat, lon = p
            ring.append(GeoPoint(float(lat), float(lon)))
        except (TypeError, ValueError) as e:
            if isinstance(e, InvalidGeometry):
                raise
            raise InvalidGeometry(f"Ponto inválido: {p!r}") from e
    return ring


def close_ring(ring: Ring) -> List[GeoPoint]:
    # Fecha só se necessário (nunca duplica o último ponto)
    pts = list(ring)
    if pts and pts[0] != pts[-1]:
        pts.append(pts[0])
    return pts


def to_geojson_ring(ring: Ring) -> List[List[float]]:
    """Anel fechado no formato GeoJSON: [[lon, lat], ...], primeiro == último."""
    return [[p.longitude, p.latitude] for p in close_ring(ring)]


@dataclass(frozen=True)
class AreaReport:
    square_meters: float
    hectares: float
    square_kilometers: float
    acres: float


@dataclass(frozen=True)
class Measurement:
    report: AreaReport
    perimeter: float  # metros
    coordinates: List[List[float]]  # anel GeoJSON enviado ao motor


class GeodesicEngine:
    """Área/perímetro no elipsoide WGS84 (pyproj)."""

    name = "pyproj.Geod(WGS84)"

    def __init__(self, ellps: str = "WGS84"):
        self.geod = Geod(ellps=ellps)

    def area_perimeter(self, coordinates: Sequence[Sequence[float]]) -> Tuple[float, float]:
        poly = Polygon(coordinates)
        lon, lat = poly.exterior.coords.xy
        area, perimeter = self.geod.polygon_area_perimeter(lon, lat)
        # sinal depende da orientação do anel
        return float(abs(area)), float(perimeter)


class AreaConverter:
    def __init__(self, engine: Optional[GeodesicEngine] = None, acre_square_meters: float = ACRE_SQUARE_METERS):
        self.engine = engine if engine is not None else GeodesicEngine()
        self.acre_square_meters = acre_square_meters

    @staticmethod
    def validate(ring: Iterable[PointLike]) -> List[GeoPoint]:
        pts = as_ring(ring or [])
        if len(pts) < 3:
            raise InvalidGeometry("O polígono precisa de pelo menos 3 pontos.")
        if len(set(pts)) < 3:
            raise InvalidGeometry("O polígono precisa de pelo menos 3 pontos distintos.")
        return pts

    def compute_report(self, ring: Iterable[PointLike], raw_area_square_meters: float) -> AreaReport:
        self.validate(ring)
        try:
            area = float(raw_area_square_meters)
        except (TypeError, ValueError) as e:
            raise ComputationError(f"Área inválida: {raw_area_square_meters!r}") from e
        if not math.isfinite(area):
            raise ComputationError(f"Área não finita: {area}")
        if area < 0:
            raise ComputationError(f"Área negativa: {area}")
        return AreaReport(
            square_meters=area,
            hectares=area / SQUARE_METERS_PER_HECTARE,
            square_kilometers=area / SQUARE_METERS_PER_KM2,
            acres=area / self.acre_square_meters,
        )

    def measure(self, ring: Iterable[PointLike]) -> Measurement:
        pts = self.validate(ring)
        coordinates = to_geojson_ring(pts)
        try:
            raw_area, perimeter = self.engine.area_perimeter(coordinates)
            perimeter = float(perimeter)
        except Exception as e:
            raise ComputationError(f"Erro no cálculo: {e}") from e
        report = self.compute_report(pts, raw_area)
        if not math.isfinite(perimeter):
            raise ComputationError(f"Perímetro não finito: {perimeter}")
        return Measurement(report=report, perimeter=perimeter, coordinates=coordinates)
