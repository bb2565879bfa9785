from __future__ import annotations

import threading
import time
import weakref
from typing import Callable, Optional

from .heatmap import HeatmapQueue
from .logger import ProcessLogger
from .models import DEFAULT_PAGE_URL
from .scheduler import Scheduler

ChurnSink = Callable[[str, str], None]


class ChurnGate:
    """Debounced exit signal: flush the heatmap, then emit one churn point."""

    DEBOUNCE_MS = 1000

    def __init__(
        self,
        heatmap: HeatmapQueue,
        sink: ChurnSink,
        *,
        scheduler: Scheduler,
        time_fn: Optional[Callable[[], float]] = None,
        logger: Optional[ProcessLogger] = None,
    ) -> None:
        # The gate never owns the queue.
        self._heatmap_ref = weakref.ref(heatmap)
        self.sink = sink
        self.scheduler = scheduler
        self.logger = logger or ProcessLogger()
        self._time = time_fn or time.time
        self._lock = threading.Lock()
        self._last_churn_at_ms = 0

    @property
    def last_churn_at_ms(self) -> int:
        with self._lock:
            return self._last_churn_at_ms

    def trigger_if_due(self, now: Optional[float] = None) -> bool:
        now_ms = int(round((self._time() if now is None else now) * 1000))
        with self._lock:
            if now_ms - self._last_churn_at_ms < self.DEBOUNCE_MS:
                self.logger.log("Churn", "Trigger inside debounce window, dropped")
                return False
            self._last_churn_at_ms = now_ms
        self.scheduler.call_soon(self._flush_and_emit)
        return True

    def _flush_and_emit(self) -> None:
        heatmap = self._heatmap_ref()
        url, title = DEFAULT_PAGE_URL, ""
        if heatmap is not None:
            heatmap.flush()
            url, title = heatmap.current_page
        self.logger.log("Churn", f"Sending churn point for {url}")
        self.sink(url, title)
