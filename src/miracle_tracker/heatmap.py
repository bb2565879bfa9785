from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional, Tuple

from .logger import ProcessLogger
from .models import DEFAULT_PAGE_URL, HeatmapPoint
from .scheduler import Scheduler, TimerHandle

HeatmapSink = Callable[[str, str, List[HeatmapPoint]], None]


class HeatmapQueue:
    """Pointer samples for the current page: clicks plus throttled moves, flushed in batches."""

    FLUSH_INTERVAL_SECONDS = 3.0
    FLUSH_TOLERANCE_SECONDS = 0.3
    MOVE_THROTTLE_MS = 120

    def __init__(
        self,
        sink: HeatmapSink,
        *,
        scheduler: Scheduler,
        time_fn: Optional[Callable[[], float]] = None,
        logger: Optional[ProcessLogger] = None,
    ) -> None:
        self.sink = sink
        self.scheduler = scheduler
        self.logger = logger or ProcessLogger()
        self._time = time_fn or time.time
        self._lock = threading.Lock()
        self._pending: List[HeatmapPoint] = []
        self._last_move_at_ms = 0
        self._page_url = DEFAULT_PAGE_URL
        self._page_title = ""
        self._flush_timer: Optional[TimerHandle] = None
        self._timer_lock = threading.Lock()

    @property
    def current_page(self) -> Tuple[str, str]:
        with self._lock:
            return self._page_url, self._page_title

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def set_current_page(self, url: str, title: str) -> None:
        with self._lock:
            self._page_url = url
            self._page_title = title

    def add_click(self, x: int, y: int) -> None:
        point = HeatmapPoint(type="click", x=int(x), y=int(y), ts=self._now_ms())
        with self._lock:
            self._pending.append(point)

    def add_move(self, x: int, y: int) -> bool:
        now_ms = self._now_ms()
        with self._lock:
            if now_ms - self._last_move_at_ms < self.MOVE_THROTTLE_MS:
                return False
            self._last_move_at_ms = now_ms
            self._pending.append(HeatmapPoint(type="move", x=int(x), y=int(y), ts=now_ms))
        return True

    def on_drag_started(self, x: int, y: int) -> None:
        self.add_click(x, y)

    def on_drag_changed(self, x: int, y: int) -> None:
        self.add_move(x, y)

    def flush(self) -> None:
        with self._lock:
            snapshot, self._pending = self._pending, []
            url, title = self._page_url, self._page_title
        if not snapshot:
            return
        self.logger.log("Heatmap", f"Flushing {len(snapshot)} points for {url}")
        self.sink(url, title, snapshot)

    def start_periodic_flush(self) -> None:
        with self._timer_lock:
            if self._flush_timer is not None and self._flush_timer.active:
                return
            self._flush_timer = self.scheduler.call_repeating(
                self.FLUSH_INTERVAL_SECONDS,
                self.flush,
                tolerance=self.FLUSH_TOLERANCE_SECONDS,
            )

    def stop_periodic_flush(self, flush_remaining: bool = False) -> None:
        with self._timer_lock:
            timer, self._flush_timer = self._flush_timer, None
        if timer is not None:
            timer.cancel()
        if flush_remaining:
            self.flush()

    @property
    def flushing(self) -> bool:
        with self._timer_lock:
            return self._flush_timer is not None and self._flush_timer.active

    def _now_ms(self) -> int:
        return int(round(self._time() * 1000))
