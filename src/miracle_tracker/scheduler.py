from __future__ import annotations

import queue
import threading
from typing import Callable, Optional, Protocol

from .logger import ProcessLogger

Task = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


class Scheduler(Protocol):
    def call_soon(self, task: Task) -> None: ...

    def call_repeating(
        self, interval: float, task: Task, *, tolerance: float = 0.0
    ) -> TimerHandle: ...

    def shutdown(self) -> None: ...


class RepeatingTimer:
    """Chain of ``threading.Timer`` shots that post ``task`` onto a scheduler."""

    def __init__(
        self,
        scheduler: "SerialScheduler",
        interval: float,
        task: Task,
        *,
        tolerance: float = 0.0,
    ) -> None:
        self.scheduler = scheduler
        self.interval = interval
        self.tolerance = tolerance
        self.task = task
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._cancelled = False

    def start(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            # Coarse timers: firing up to ``tolerance`` late is acceptable.
            self._timer = threading.Timer(self.interval, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        if self._cancelled:
            return
        self.scheduler.call_soon(self._run)
        self.start()

    def _run(self) -> None:
        if not self._cancelled:
            self.task()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def active(self) -> bool:
        return not self._cancelled


class SerialScheduler:
    """
    Single worker thread that runs every posted task in order.

    Timer ticks, churn handling and heatmap flushes all run here, so they
    never interleave with each other; only gesture callbacks from other
    threads need the component locks.
    """

    def __init__(self, *, logger: Optional[ProcessLogger] = None) -> None:
        self.logger = logger or ProcessLogger()
        self._queue: "queue.Queue[Optional[Task]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._timers: list[RepeatingTimer] = []

    def start(self) -> None:
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._loop, name="miracle-tracker-scheduler", daemon=True
            )
            self._worker.start()

    def call_soon(self, task: Task) -> None:
        self.start()
        self._queue.put(task)

    def call_repeating(
        self, interval: float, task: Task, *, tolerance: float = 0.0
    ) -> RepeatingTimer:
        timer = RepeatingTimer(self, interval, task, tolerance=tolerance)
        with self._lock:
            self._timers = [t for t in self._timers if t.active]
            self._timers.append(timer)
        timer.start()
        return timer

    @property
    def running(self) -> bool:
        with self._lock:
            return self._worker is not None and self._worker.is_alive()

    def shutdown(self, *, timeout: float = 2.0) -> None:
        with self._lock:
            timers, self._timers = self._timers, []
            worker = self._worker
        for timer in timers:
            timer.cancel()
        if worker is None:
            return
        self._queue.put(None)
        worker.join(timeout)
        with self._lock:
            if self._worker is worker:
                self._worker = None

    def _loop(self) -> None:
        while True:
            task = self._queue.get()
            if task is None:
                return
            try:
                task()
            except Exception as exc:
                self.logger.warn("Tracker", f"Scheduled task failed: {exc!r}")
