from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field


def _resolve_home() -> Path:
    override = os.getenv("READYROOM_HOME", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).parent


def _resolve_db_path() -> Path:
    override = os.getenv("READYROOM_DB_PATH", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return _resolve_home() / "data" / "readyroom.db"


class Settings(BaseModel):
    home: Path = Field(default_factory=_resolve_home)
    database_path: Path = Field(default_factory=_resolve_db_path)

    # Length of the window before event start in which accepted -> declined/tentative counts as a snivel.
    snivel_window_hours: float = Field(
        default_factory=lambda: float(os.getenv("READYROOM_SNIVEL_WINDOW_HOURS", "2")),
        gt=0, validate_default=True,
    )
    log_level: str = Field(default_factory=lambda: os.getenv("READYROOM_LOG_LEVEL", "INFO").upper())
    host: str = Field(default_factory=lambda: os.getenv("READYROOM_HOST", "127.0.0.1"))
    port: int = Field(default_factory=lambda: int(os.getenv("READYROOM_PORT", "8001")))

    @property
    def data_dir(self) -> Path:
        return self.database_path.parent

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.database_path}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
