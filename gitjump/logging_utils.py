"""Logging configuration helpers."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_CHATTY_LOGGERS = ("httpx", "uvicorn.access")


def configure_logging(level: str = "INFO", *, quiet_third_party: bool = True) -> int:
    resolved = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    # Quick-check ticks hit the API every few seconds; keep per-request access logs out of INFO.
    if quiet_third_party and resolved > logging.DEBUG:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    return resolved
