from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from .models import SessionSnapshot
from .payloads import format_timestamp
from .storage import PreferenceStore


class SequenceCounter:
    """Durable, strictly increasing envelope sequence shared by every event type."""

    KEY = "themiracle_tracker_sequence"

    def __init__(self, store: PreferenceStore) -> None:
        self.store = store
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            current = self.store.get(self.KEY) or 0
            value = int(current) + 1
            self.store.set(self.KEY, value)
            return value

    @property
    def current(self) -> int:
        with self._lock:
            return int(self.store.get(self.KEY) or 0)


class SessionContext:
    """Device-lifetime session id plus rolling first/last touch metadata."""

    SESSION_ID_KEY = "themiracle_tracker_session"
    FIRST_TOUCH_KEY = "themiracle_tracker_session_first_touch"
    LAST_TOUCH_KEY = "themiracle_tracker_session_last_touch"
    TOTAL_VISITS_KEY = "themiracle_tracker_session_total_visits"

    def __init__(
        self,
        store: PreferenceStore,
        *,
        time_fn: Optional[Callable[[], float]] = None,
    ) -> None:
        self.store = store
        self._time = time_fn or time.time
        self._lock = threading.Lock()

    def ensure_session_id(self) -> str:
        with self._lock:
            existing = self.store.get(self.SESSION_ID_KEY)
            if existing:
                return str(existing)
            millis = int(round(self._time() * 1000))
            session_id = f"session_{millis:09x}_{millis}"
            self.store.set(self.SESSION_ID_KEY, session_id)
            return session_id

    def touch(self, now: Optional[float] = None) -> SessionSnapshot:
        now_iso = format_timestamp(self._time() if now is None else now)
        with self._lock:
            first_touch = self.store.get(self.FIRST_TOUCH_KEY) or now_iso
            last_touch = max(now_iso, first_touch)
            total_visits = int(self.store.get(self.TOTAL_VISITS_KEY) or 0) + 1
            self.store.set(self.FIRST_TOUCH_KEY, first_touch)
            self.store.set(self.LAST_TOUCH_KEY, last_touch)
            self.store.set(self.TOTAL_VISITS_KEY, total_visits)
        return SessionSnapshot(
            first_touch_at=first_touch,
            last_touch_at=last_touch,
            total_visits=total_visits,
        )

    def detached_snapshot(self, now: Optional[float] = None) -> SessionSnapshot:
        # Generic clicks report a fresh single-visit window and leave stored metadata alone.
        now_iso = format_timestamp(self._time() if now is None else now)
        return SessionSnapshot(first_touch_at=now_iso, last_touch_at=now_iso, total_visits=1)
