import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from . import telemetry_pipeline  # noqa: F401  registers the audit listener
from .config import Settings, get_settings
from .db.monitoring import get_pool_snapshot
from .db.session import get_engine
from .logging_config import configure_logging
from .progression_routes import router as progression_router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Keyboard Dojo Progression", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(progression_router)

settings_snapshot = get_settings()
logger.info("Progression backend starting in %s persistence mode", settings_snapshot.persistence_mode)
logger.info("Day boundary timezone: %s", settings_snapshot.day_boundary_timezone)


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "persistence_mode": settings.persistence_mode}


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.error("Database health probe failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {
        "status": "ok",
        "persistence_mode": settings.persistence_mode,
        "pool": get_pool_snapshot(engine),
    }
