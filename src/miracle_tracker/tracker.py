from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, List, Optional

from . import payloads
from .churn import ChurnGate
from .config import AppConfig, TrackerSettings
from .dispatcher import Dispatcher
from .heatmap import HeatmapQueue
from .logger import ProcessLogger
from .models import (
    EXPLORE_REFERRER,
    BenefitItem,
    DeviceInfo,
    EventType,
    HeatmapPoint,
    MainTab,
    ScenePhase,
    TimeSpentReason,
)
from .scheduler import Scheduler, SerialScheduler
from .session import SequenceCounter, SessionContext
from .storage import MemoryPreferenceStore, PreferenceStore
from .timespent import TimeSpentTracker, Visit


class TrackerService:
    """Explicitly constructed tracker owning session state, collectors and delivery."""

    def __init__(
        self,
        settings: TrackerSettings,
        *,
        store: Optional[PreferenceStore] = None,
        device: Optional[DeviceInfo] = None,
        dispatcher: Optional[Dispatcher] = None,
        scheduler: Optional[Scheduler] = None,
        logger: Optional[ProcessLogger] = None,
        time_fn: Optional[Callable[[], float]] = None,
    ) -> None:
        self.settings = settings
        self.logger = logger or ProcessLogger()
        self.store = store if store is not None else MemoryPreferenceStore()
        self.device = device or DeviceInfo.detect()
        self._time = time_fn or time.time
        self.scheduler = scheduler or SerialScheduler(logger=self.logger)
        self.dispatcher = dispatcher or Dispatcher(settings, logger=self.logger)
        self.sequence = SequenceCounter(self.store)
        self.session = SessionContext(self.store, time_fn=self._time)
        self.heatmap = HeatmapQueue(
            self.track_heatmap_snapshot,
            scheduler=self.scheduler,
            time_fn=self._time,
            logger=self.logger,
        )
        self.churn = ChurnGate(
            self.heatmap,
            self.track_churn_point,
            scheduler=self.scheduler,
            time_fn=self._time,
            logger=self.logger,
        )
        self.time_spent = TimeSpentTracker(
            self,
            scheduler=self.scheduler,
            time_fn=self._time,
            logger=self.logger,
        )
        self._phase = ScenePhase.ACTIVE
        self._phase_lock = threading.Lock()
        self._started = False

    @classmethod
    def from_config(cls, config: AppConfig, **kwargs: Any) -> "TrackerService":
        kwargs.setdefault("store", config.overrides)
        return cls(TrackerSettings.from_config(config), **kwargs)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.heatmap.set_current_page(MainTab.PORTFOLIO.page_url, MainTab.PORTFOLIO.page_title)
        self.heatmap.start_periodic_flush()
        self.logger.log("Tracker", f"Started for distributor {self.settings.distributor}")

    def shutdown(self) -> None:
        if not self._started:
            return
        self._started = False
        self.time_spent.shutdown(TimeSpentReason.EXIT)
        self.heatmap.stop_periodic_flush(flush_remaining=True)
        self.scheduler.shutdown()
        self.logger.log("Tracker", "Shut down")

    @property
    def started(self) -> bool:
        return self._started

    # Navigation and lifecycle

    def set_current_page(self, url: str, title: str) -> None:
        self.heatmap.set_current_page(url, title)

    def select_tab(self, tab: MainTab) -> None:
        self.heatmap.set_current_page(tab.page_url, tab.page_title)

    def on_scene_phase(self, phase: ScenePhase) -> None:
        with self._phase_lock:
            previous, self._phase = self._phase, phase
        if phase.leaves_foreground:
            self.churn.trigger_if_due()
            if not previous.leaves_foreground:
                self.time_spent.on_background()
        elif previous.leaves_foreground:
            self.time_spent.on_foreground()

    def start_benefit_visit(self, benefit: BenefitItem, referrer: str = EXPLORE_REFERRER) -> Visit:
        self.heatmap.set_current_page(benefit.page_url, benefit.page_title)
        return self.time_spent.start_visit(benefit, referrer=referrer)

    def end_benefit_visit(
        self, benefit_id: int, reason: TimeSpentReason = TimeSpentReason.EXIT
    ) -> bool:
        return self.time_spent.end_visit(benefit_id, reason)

    # Event builders

    def track_heatmap_snapshot(
        self, page_url: str, page_title: str, heatmap: List[HeatmapPoint]
    ) -> Optional[Dict[str, Any]]:
        if not heatmap:
            return None
        now_iso = self._now_iso()
        data = payloads.base_event_data(
            session=self.session.touch(),
            device=self.device,
            session_id=self.session.ensure_session_id(),
            timestamp=now_iso,
            page_url=page_url,
            page_title=page_title,
            heatmap=payloads.heatmap_points(heatmap),
        )
        return self._emit(EventType.HEATMAP, page_url, now_iso, data)

    def track_churn_point(self, page_url: str, page_title: str) -> Dict[str, Any]:
        now_iso = self._now_iso()
        data = payloads.base_event_data(
            session=self.session.touch(),
            device=self.device,
            session_id=self.session.ensure_session_id(),
            timestamp=now_iso,
            page_url=page_url,
            page_title=page_title,
        )
        return self._emit(EventType.CHURNPOINT, page_url, now_iso, data)

    def track_click(
        self,
        *,
        element_id: str,
        text: str,
        page_url: str,
        page_title: str,
        tag_name: str = "Button",
        classes: str = "",
        bounding_rect_json: str = "{}",
        data_attributes_json: str = "{}",
    ) -> Dict[str, Any]:
        now = self._time()
        now_iso = payloads.format_timestamp(now)
        data = payloads.base_event_data(
            session=self.session.detached_snapshot(now),
            device=self.device,
            session_id=self.session.ensure_session_id(),
            timestamp=now_iso,
            page_url=page_url,
            page_title=page_title,
            language=self.device.locale,
            metadata=payloads.click_metadata(self.device, now_iso),
            element=payloads.element_info(
                element_id=element_id,
                text=text,
                tag_name=tag_name,
                classes=classes,
                data_attributes=payloads.parse_json_object(data_attributes_json),
                bounding_rect=payloads.parse_json_object(bounding_rect_json),
            ),
        )
        return self._emit(EventType.CLICK, page_url, now_iso, data)

    def track_benefit_claim_click(self, benefit: BenefitItem) -> Dict[str, Any]:
        now_iso = self._now_iso()
        data = payloads.base_event_data(
            session=self.session.touch(),
            device=self.device,
            session_id=self.session.ensure_session_id(),
            timestamp=now_iso,
            page_url=benefit.page_url,
            page_title=benefit.page_title,
            referrer=EXPLORE_REFERRER,
            metadata=payloads.click_metadata(self.device, now_iso),
            element=payloads.element_info(
                element_id="benefit-claim-button",
                text="Claim",
                classes="benefit-claim-button",
            ),
            benefit=payloads.benefit_info(benefit),
        )
        return self._emit(EventType.CLICK, benefit.page_url, now_iso, data)

    def track_benefit_page_view(self, benefit: BenefitItem, referrer: str) -> None:
        now_iso = self._now_iso()
        data = payloads.base_event_data(
            session=self.session.touch(),
            device=self.device,
            session_id=self.session.ensure_session_id(),
            timestamp=now_iso,
            page_url=benefit.page_url,
            page_title=benefit.page_title,
            referrer=referrer,
            benefit=payloads.benefit_info(benefit),
        )
        self._emit(EventType.PAGEVIEW, benefit.page_url, now_iso, data)

    def track_benefit_time_spent(
        self,
        benefit: BenefitItem,
        *,
        start_time: float,
        end_time: float,
        reason: TimeSpentReason,
        event_id: Optional[str],
    ) -> bool:
        total_seconds = payloads.elapsed_seconds(start_time, end_time)
        if total_seconds is None:
            self.logger.log("TimeSpent", f"Suppressed non-positive duration ({reason.value})")
            return False
        if not event_id:
            self.logger.warn("TimeSpent", f"No eventId for {reason.value} update, skipped")
            return False
        start_iso = payloads.format_timestamp(start_time)
        end_iso = payloads.format_timestamp(end_time)
        session = self.session.touch(end_time)
        session.first_touch_at = start_iso
        session.last_touch_at = end_iso
        session.total_time_spent = total_seconds
        data = payloads.base_event_data(
            session=session,
            device=self.device,
            session_id=self.session.ensure_session_id(),
            timestamp=end_iso,
            page_url=benefit.page_url,
            page_title=benefit.page_title,
            referrer=EXPLORE_REFERRER,
            benefit=payloads.benefit_info(benefit, reason.value),
        )
        self.logger.log(
            "TimeSpent",
            f"{reason.value} update eventId {event_id}: {total_seconds}s",
        )
        self._emit(EventType.TIMESPENT, benefit.page_url, end_iso, data, event_id=event_id)
        return True

    def _emit(
        self,
        event_type: EventType,
        url: str,
        timestamp: str,
        data: Dict[str, Any],
        *,
        event_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        envelope = payloads.build_envelope(
            distributor=self.settings.distributor,
            url=url,
            event_type=event_type,
            sequence_number=self.sequence.next(),
            event_timestamp=timestamp,
            event_data=data,
            event_id=event_id,
        )
        self.dispatcher.send(envelope)
        return envelope

    def _now_iso(self) -> str:
        return payloads.format_timestamp(self._time())
