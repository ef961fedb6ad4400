import logging
import os
from logging.config import dictConfig
from typing import Dict

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# TELEMETRY lines are one per transition event; pool status is throttled separately.
DEFAULT_MODULE_LEVELS: Dict[str, str] = {
    "keydojo.telemetry": "INFO",
    "keydojo.db.monitoring": "INFO",
}


def parse_module_levels(raw: str) -> Dict[str, str]:
    """Parse ``"keydojo.engine=DEBUG,keydojo.telemetry=WARNING"`` into a logger map.

    Entries without ``=`` or with an unknown level name are skipped.
    """
    levels: Dict[str, str] = {}
    for chunk in raw.split(","):
        name, sep, level = chunk.partition("=")
        name, level = name.strip(), level.strip().upper()
        if not sep or not name or not isinstance(logging.getLevelName(level), int):
            continue
        levels[name] = level
    return levels


def module_levels() -> Dict[str, str]:
    levels = dict(DEFAULT_MODULE_LEVELS)
    if os.getenv("KEYDOJO_TELEMETRY_LOG", "1") == "0":
        levels["keydojo.telemetry"] = "WARNING"
    levels.update(parse_module_levels(os.getenv("KEYDOJO_LOG_LEVELS", "")))
    return levels


def configure_logging() -> None:
    """Configure structured logging based on environment flags."""
    level = os.getenv("KEYDOJO_LOG_LEVEL", "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {name: {"level": value} for name, value in module_levels().items()},
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )

    if os.getenv("KEYDOJO_DEBUG_SQL", "0") == "1":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
    if os.getenv("KEYDOJO_DEBUG_HTTP", "0") == "1":
        logging.getLogger("uvicorn.access").setLevel(logging.DEBUG)
