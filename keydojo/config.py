import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    debug_endpoints: bool = Field(False, alias="KEYDOJO_DEBUG_ENDPOINTS")
    database_url: Optional[str] = Field(None, alias="KEYDOJO_DATABASE_URL")
    database_pool_size: int = Field(10, alias="KEYDOJO_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="KEYDOJO_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="KEYDOJO_DATABASE_ECHO")
    persistence_mode: Literal["database", "legacy"] = Field(
        "database",
        alias="KEYDOJO_PERSISTENCE_MODE",
    )
    legacy_store_path: Optional[str] = Field(None, alias="KEYDOJO_LEGACY_STORE_PATH")
    day_boundary_timezone: str = Field("UTC", alias="KEYDOJO_DAY_BOUNDARY_TIMEZONE")
    max_hearts: int = Field(5, ge=1, alias="KEYDOJO_MAX_HEARTS")
    heart_regeneration_minutes: int = Field(30, ge=1, alias="KEYDOJO_HEART_REGENERATION_MINUTES")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
