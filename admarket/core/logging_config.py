"""Structured JSON logging configuration."""

import logging
import sys

from pythonjsonlogger import jsonlogger

from admarket.core.config import settings


def setup_logging(level: str | None = None) -> None:
    """Configure structured JSON logging for the deal engine.

    Fields passed via ``extra=`` (deal_id, status, version, ...) end up as
    top-level keys of each JSON record.
    """
    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level or settings.log_level)

    # Suppress noisy loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
