"""
Application logging.

Everything logs through the ``healthaxis`` logger. Besides the console, the
last LOG_BUFFER_SIZE records are kept in memory so they can be inspected
from the debug endpoint without shell access to the host.
"""
import logging
from collections import deque
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import LOG_BUFFER_SIZE, LOG_LEVEL

LOGGER_NAME = "healthaxis"


class BufferHandler(logging.Handler):
    def __init__(self, capacity: int = LOG_BUFFER_SIZE):
        super().__init__()
        self.entries = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S"),
            "level": record.levelname.lower(),
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        self.entries.append(entry)

    def get_logs(self) -> List[Dict[str, Any]]:
        return list(self.entries)

    def clear(self):
        self.entries.clear()


buffer_handler = BufferHandler()


def _configure() -> logging.Logger:
    log = logging.getLogger(LOGGER_NAME)
    if not log.handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter("[HealthAxis] %(asctime)s [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S"))
        log.addHandler(console)
        log.addHandler(buffer_handler)
    log.setLevel(LOG_LEVEL)
    return log


logger = _configure()


def log_event(level: int, message: str, context: Optional[Dict[str, Any]] = None):
    """Log ``message`` and keep ``context`` alongside it in the buffer."""
    logger.log(level, message, extra={"context": context} if context else None)


def get_logs() -> List[Dict[str, Any]]:
    return buffer_handler.get_logs()


def clear_logs():
    buffer_handler.clear()
