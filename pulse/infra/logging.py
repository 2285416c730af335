from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pulse.config import SETTINGS, PROJECT_ROOT

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
QUIET_LOGGERS = ("sqlalchemy.engine", "alembic")


def setup_logging(level: str | None = None, log_dir: Path | None = None) -> Path:
    target_dir = log_dir or PROJECT_ROOT / SETTINGS.log_dir
    target_dir.mkdir(parents=True, exist_ok=True)
    log_file = target_dir / "pulse.log"

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=3)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=(level or SETTINGS.log_level).upper(),
        handlers=[file_handler, console_handler],
        force=True,
    )
    # Engine echo belongs to SQLAlchemy's own flag, not to our log level.
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_file
