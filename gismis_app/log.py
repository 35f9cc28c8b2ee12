import os
import sys
import json
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

# Package logger; modules log through logging.getLogger(__name__)
logger = logging.getLogger("gismis_app")

# Structured per-branch events (one JSON object per line)
event_logger = logging.getLogger("gismis_app.events")
event_logger.propagate = False
event_logger.disabled = True

_FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    debug_events: bool = False
) -> logging.Logger:
    """
    Attach stdout (and optionally rotating file) handlers to the package logger.

    Safe to call more than once: handlers are only added the first time.
    """
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not any(getattr(h, "_gismis", False) for h in logger.handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(logging.Formatter('%(levelname)s %(name)s: %(message)s'))
        stream_handler._gismis = True
        logger.addHandler(stream_handler)

    if log_file and not any(getattr(h, "baseFilename", None) == os.path.abspath(log_file) for h in logger.handlers):
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    event_logger.disabled = not debug_events
    if debug_events:
        event_logger.setLevel(logging.INFO)
        if not event_logger.handlers:
            event_handler = logging.StreamHandler(sys.stdout)
            event_handler.setFormatter(logging.Formatter('%(message)s'))
            event_logger.addHandler(event_handler)

    return logger


def log_event(event: dict) -> None:
    """Write a structured event as a compact JSON line."""
    if event_logger.disabled:
        return
    try:
        event_logger.info(json.dumps(event, ensure_ascii=False, separators=(',', ':'), default=str))
    except (TypeError, ValueError) as exc:
        logger.warning(f"Event log failure: {exc}")
