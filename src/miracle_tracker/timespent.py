from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .errors import CorrelationError
from .logger import ProcessLogger
from .models import EXPLORE_REFERRER, BenefitItem, TimeSpentReason
from .scheduler import Scheduler, TimerHandle


class TimeSpentReporter(Protocol):
    def track_benefit_page_view(self, benefit: BenefitItem, referrer: str) -> None: ...

    def track_benefit_time_spent(
        self,
        benefit: BenefitItem,
        *,
        start_time: float,
        end_time: float,
        reason: TimeSpentReason,
        event_id: Optional[str],
    ) -> bool: ...


@dataclass
class Visit:
    benefit: BenefitItem
    start_time: Optional[float]
    event_id: Optional[str]
    timer: Optional[TimerHandle] = None

    @property
    def running(self) -> bool:
        return self.start_time is not None


class TimeSpentTracker:
    """
    Correlates one page visit's pageview and time-spent updates.

    Each visit owns a single event id that every periodic and final
    ``timespent`` update reuses, so the backend patches one record. The id
    is cached per benefit id and survives until :meth:`end_visit`; a
    background/foreground cycle ends the visit and starts a new one with a
    fresh id.

    Periodic ticks run on the scheduler, and final updates (exit, navigate,
    background) are posted to it as well, so a visit's last update is
    always the final one.
    """

    PERIOD_SECONDS = 5.0
    PERIOD_TOLERANCE_SECONDS = 0.5

    def __init__(
        self,
        reporter: TimeSpentReporter,
        *,
        scheduler: Scheduler,
        time_fn: Optional[Callable[[], float]] = None,
        logger: Optional[ProcessLogger] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.reporter = reporter
        self.scheduler = scheduler
        self.logger = logger or ProcessLogger()
        self._time = time_fn or time.time
        self._new_id = id_factory or (lambda: str(uuid.uuid4()).upper())
        self._lock = threading.Lock()
        self._visits: Dict[int, Visit] = {}
        self._event_ids: Dict[int, str] = {}

    def visit(self, subject_id: int) -> Optional[Visit]:
        with self._lock:
            return self._visits.get(subject_id)

    def cached_event_id(self, subject_id: int) -> Optional[str]:
        with self._lock:
            return self._event_ids.get(subject_id)

    def start_visit(
        self,
        benefit: BenefitItem,
        *,
        referrer: str = EXPLORE_REFERRER,
        now: Optional[float] = None,
    ) -> Visit:
        start = self._time() if now is None else now
        with self._lock:
            existing = self._visits.get(benefit.id)
            if existing is not None:
                self.logger.log("TimeSpent", f"Visit for benefit {benefit.id} already active")
                return existing
            event_id = self._event_ids.get(benefit.id) or self._new_id()
            self._event_ids[benefit.id] = event_id
            visit = Visit(benefit=benefit, start_time=start, event_id=event_id)
            self._visits[benefit.id] = visit
        self.logger.log("TimeSpent", f"Visit started for benefit {benefit.id}, eventId {event_id}")
        self.reporter.track_benefit_page_view(benefit, referrer)
        self._schedule(visit)
        return visit

    def tick(self, subject_id: int, now: Optional[float] = None) -> bool:
        end = self._time() if now is None else now
        with self._lock:
            visit = self._visits.get(subject_id)
            if visit is None or visit.start_time is None:
                return False
            start, benefit = visit.start_time, visit.benefit
            try:
                event_id = self._correlation_id(visit)
            except CorrelationError as exc:
                self.logger.warn("TimeSpent", f"{exc}, cancelling timer")
                self._cancel(visit)
                return False
        if end - start < self.PERIOD_SECONDS:
            return False
        return self.reporter.track_benefit_time_spent(
            benefit,
            start_time=start,
            end_time=end,
            reason=TimeSpentReason.PERIODIC,
            event_id=event_id,
        )

    def end_visit(
        self,
        subject_id: int,
        reason: TimeSpentReason = TimeSpentReason.EXIT,
        *,
        now: Optional[float] = None,
    ) -> bool:
        end = self._time() if now is None else now
        with self._lock:
            visit = self._visits.pop(subject_id, None)
            self._event_ids.pop(subject_id, None)
            if visit is None:
                return False
            self._cancel(visit)
            start, event_id = visit.start_time, visit.event_id
        if start is not None:
            self._post_final(visit.benefit, start, end, reason, event_id)
        self.logger.log("TimeSpent", f"Visit ended for benefit {subject_id} ({reason.value})")
        return True

    def on_background(self, now: Optional[float] = None) -> None:
        end = self._time() if now is None else now
        suspended: List[Tuple[BenefitItem, float, Optional[str]]] = []
        with self._lock:
            for visit in self._visits.values():
                if visit.start_time is None:
                    continue
                self._cancel(visit)
                suspended.append((visit.benefit, visit.start_time, visit.event_id))
                visit.start_time = None
                visit.event_id = None
        for benefit, start, event_id in suspended:
            self._post_final(benefit, start, end, TimeSpentReason.BACKGROUND, event_id)

    def on_foreground(self, now: Optional[float] = None) -> None:
        start = self._time() if now is None else now
        with self._lock:
            resumed: List[Visit] = []
            for subject_id, visit in self._visits.items():
                if visit.running:
                    continue
                visit.event_id = self._new_id()
                visit.start_time = start
                self._event_ids[subject_id] = visit.event_id
                resumed.append(visit)
        for visit in resumed:
            self.logger.log(
                "TimeSpent",
                f"Foreground resume for benefit {visit.benefit.id}, new eventId {visit.event_id}",
            )
            self._schedule(visit)

    def shutdown(self, reason: TimeSpentReason = TimeSpentReason.EXIT) -> None:
        with self._lock:
            subject_ids = list(self._visits)
        for subject_id in subject_ids:
            self.end_visit(subject_id, reason)

    def _post_final(
        self,
        benefit: BenefitItem,
        start: float,
        end: float,
        reason: TimeSpentReason,
        event_id: Optional[str],
    ) -> None:
        def report() -> None:
            self.reporter.track_benefit_time_spent(
                benefit,
                start_time=start,
                end_time=end,
                reason=reason,
                event_id=event_id,
            )

        # Ticks run on the scheduler too, so a final update lands after any tick in flight.
        self.scheduler.call_soon(report)

    def _schedule(self, visit: Visit) -> None:
        if visit.event_id is None:
            self.logger.warn(
                "TimeSpent", f"Cannot start timer without eventId for benefit {visit.benefit.id}"
            )
            return
        subject_id = visit.benefit.id
        self._cancel(visit)
        visit.timer = self.scheduler.call_repeating(
            self.PERIOD_SECONDS,
            lambda: self.tick(subject_id),
            tolerance=self.PERIOD_TOLERANCE_SECONDS,
        )

    @staticmethod
    def _correlation_id(visit: Visit) -> str:
        if not visit.event_id:
            raise CorrelationError(f"No eventId for benefit {visit.benefit.id}")
        return visit.event_id

    def _cancel(self, visit: Visit) -> None:
        timer, visit.timer = visit.timer, None
        if timer is not None:
            timer.cancel()
