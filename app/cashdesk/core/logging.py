from __future__ import annotations

import json
import logging

from app.cashdesk.core.config import settings


def configure_logging(level: str | None = None) -> None:
    """One JSON document per line; the ``cashdesk`` loggers follow ``LOG_LEVEL``."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    logging.getLogger("cashdesk").setLevel((level or settings.LOG_LEVEL).upper())


def log_json(logger: logging.Logger, payload: dict, *, level: int = logging.INFO) -> None:
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str, sort_keys=True))
