from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from .geom import AreaConverter, AreaError, as_ring

# triângulo pequeno perto do equador
PROBE_RING = [(0.0, 0.0), (0.0, 0.01), (0.01, 0.0)]


@dataclass(frozen=True)
class DependencyReport:
    ok: bool
    engine: str
    missing: List[str] = field(default_factory=list)
    detail: Optional[str] = None


def check_dependencies(converter: Optional[AreaConverter] = None) -> DependencyReport:
    """Verifica na inicialização se o motor de geometria responde."""
    converter = converter if converter is not None else AreaConverter()
    engine_name = getattr(converter.engine, "name", type(converter.engine).__name__)

    try:
        result = converter.measure(as_ring(PROBE_RING))
    except AreaError as e:
        logger.error(f"Motor de geometria falhou no teste: {e}")
        return DependencyReport(ok=False, engine=engine_name, missing=[engine_name], detail=str(e))

    if result.report.square_meters <= 0:
        return DependencyReport(ok=False, engine=engine_name, missing=[engine_name], detail="área de teste zerada")
    return DependencyReport(ok=True, engine=engine_name)
