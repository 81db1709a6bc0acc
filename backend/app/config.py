from __future__ import annotations
import sys

from dynaconf import Dynaconf
from loguru import logger

settings = Dynaconf(
    envvar_prefix="AREACALC",
    settings_files=["settings.toml", ".secrets.toml", "../settings.toml"],
    load_dotenv=True,
)

# m² por acre (arredondado; o exato é 4046.8564224)
ACRE_SQUARE_METERS: float = float(settings.get("ACRE_SQUARE_METERS", 4046.86))

log_format = "[ {time} | {level: <8}] {module}.{function}:{line} {message}"


def start_logger() -> None:
    level = settings.get("LOG_LEVEL", "INFO")
    logger.remove()
    logger.add(sys.stderr, level=level, format=log_format)
    logger.info(f"Logger iniciado (nível {level})")
