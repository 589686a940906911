from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    # SQLAlchemy URL; carries the privileged credential needed for updates/deletes
    database_url: str
    host: str
    port: int
    initial_session_code: int
    log_level: str
    # "json", "pretty" or "" to pick by whether stdout is a terminal
    log_format: str
    log_color: bool

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def get_settings() -> Settings:
    """Read settings from the environment (and a .env file if present)."""
    load_dotenv(override=False)
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./partides.db"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_int_env("PORT", 3000),
        initial_session_code=_int_env("INITIAL_SESSION_CODE", 0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_format=os.getenv("LOG_FORMAT", "").strip().lower(),
        log_color=os.getenv("LOG_COLOR", "1").strip().lower() not in ("0", "false", "no"),
    )
