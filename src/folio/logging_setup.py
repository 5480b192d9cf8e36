"""Process-wide logging configuration.

Modules only ever call ``logging.getLogger(__name__)``; this is the single
place that attaches handlers.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from .settings import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Attach a console handler and a rotating file handler to the root logger.

    Safe to call more than once; only the first call installs handlers.
    """
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    formatter = logging.Formatter(_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if settings.log_to_file:
        settings.log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_path,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # uvicorn's access log is noisy at INFO for a JSON-RPC surface
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _configured = True
