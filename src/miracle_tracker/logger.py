from __future__ import annotations

import logging
import threading
from typing import List


class ProcessLogger:
    """Captures console-like tracker logs and mirrors them to ``logging``."""

    def __init__(self, *, max_entries: int = 500, name: str = "miracle_tracker") -> None:
        self._entries: List[str] = []
        self._max_entries = max_entries
        self._name = name
        self._lock = threading.Lock()

    def log(self, channel: str, message: str) -> None:
        self._record(logging.DEBUG, channel, message)

    def warn(self, channel: str, message: str) -> None:
        self._record(logging.WARNING, channel, message)

    def _record(self, level: int, channel: str, message: str) -> None:
        entry = f"> [{channel}] {message}"
        with self._lock:
            self._entries.append(entry)
            overflow = len(self._entries) - self._max_entries
            if overflow > 0:
                del self._entries[:overflow]
        logging.getLogger(f"{self._name}.{channel.lower()}").log(level, message)

    @property
    def entries(self) -> List[str]:
        with self._lock:
            return list(self._entries)
