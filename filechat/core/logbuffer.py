# filechat/core/logbuffer.py
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, List, Set

LogEntry = Dict[str, str]
Subscriber = Callable[[List[LogEntry]], None]

# logging levels -> the three entry types the debug panel understands
_LEVEL_TYPES = {
    logging.DEBUG: "info",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


class LogBuffer:
    """
    Bounded ring of recent log lines with subscriber notification.

    Entries are plain dicts: {"message", "type", "timestamp"}, where type is
    one of "info", "warn" or "error". A subscriber is called with the current
    list immediately on subscribe and again after every append or clear.
    """

    def __init__(self, capacity: int = 50, enabled: bool = True):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.enabled = enabled
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._subscribers: Set[Subscriber] = set()
        self._lock = threading.Lock()

    def log(self, message: str, type: str = "info") -> None:
        if not self.enabled:
            return
        entry = {
            "message": message,
            "type": type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            self._entries.append(entry)
        self._notify()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        self._notify()

    def get_logs(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.add(callback)
        callback(self.get_logs())

        def unsubscribe() -> None:
            self._subscribers.discard(callback)

        return unsubscribe

    def _notify(self) -> None:
        current = self.get_logs()
        for callback in list(self._subscribers):
            callback(current)


class LogBufferHandler(logging.Handler):
    """logging.Handler that mirrors records into a LogBuffer."""

    def __init__(self, buffer: LogBuffer, level: int = logging.DEBUG):
        super().__init__(level=level)
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        self.buffer.log(message, _LEVEL_TYPES.get(record.levelno, "info"))


def attach_log_buffer(buffer: LogBuffer, logger_name: str = "filechat") -> LogBufferHandler:
    """Route every record of `logger_name` (and its children) into `buffer`."""
    handler = LogBufferHandler(buffer)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger = logging.getLogger(logger_name)
    logger.addHandler(handler)
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)
    return handler
