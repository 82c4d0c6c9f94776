"""Application-wide configuration management using Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the slicing runtime.

    Environment variables (or a local ``.env`` file) override every field,
    e.g. ``CURAENGINE_BIN=/opt/cura/CuraEngine``.
    """

    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="allow")

    log_level: str = "INFO"

    # CuraEngine
    curaengine_bin: str = "CuraEngine"
    cura_definitions_dir: str = "config/definitions"
    cura_work_dir: Optional[str] = None  # Parent for per-engine scratch directories
    cura_verbose: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache configuration for the current process."""

    return Settings()  # type: ignore[arg-type]


__all__ = ["Settings", "get_settings"]
