from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _project_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = _project_root()
ENV_SEARCH_PATHS = (Path.cwd(), PROJECT_ROOT)


def load_env(app_env: str | None = None) -> str:
    """Load ``.env`` and then ``.env.<APP_ENV>``; the first file found wins for each."""
    app_env = app_env or os.getenv("APP_ENV", "development")
    for name, override in ((".env", False), (f".env.{app_env}", True)):
        path = next((base / name for base in ENV_SEARCH_PATHS if (base / name).exists()), None)
        if path is not None:
            load_dotenv(path, override=override)
    return app_env


@dataclass(frozen=True)
class Settings:
    database_url: str
    app_env: str = "development"
    database_echo: bool = False
    log_level: str = "INFO"
    log_dir: str = "logs"
    overdue_lookback_days: int = 90


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    app_env = load_env()
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set. Create a .env file with your connection string.")

    lookback = int(os.getenv("OVERDUE_LOOKBACK_DAYS", "90"))
    if lookback < 0:
        raise RuntimeError("OVERDUE_LOOKBACK_DAYS must be zero or positive.")

    return Settings(
        database_url=database_url,
        app_env=app_env,
        database_echo=_env_flag("DATABASE_ECHO"),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        log_dir=os.getenv("LOG_DIR", "logs"),
        overdue_lookback_days=lookback,
    )


SETTINGS = load_settings()
