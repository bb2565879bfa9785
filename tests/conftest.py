from typing import Any, Callable, Dict, List

import pytest

from miracle_tracker.config import TrackerSettings
from miracle_tracker.dispatcher import Dispatcher
from miracle_tracker.models import BenefitItem, DeviceInfo
from miracle_tracker.storage import MemoryPreferenceStore
from miracle_tracker.tracker import TrackerService

T0 = 1_700_000_000.0


class ManualClock:
    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualTimer:
    def __init__(self, interval: float, task: Callable[[], None], due: float, tolerance: float) -> None:
        self.interval = interval
        self.task = task
        self.due = due
        self.tolerance = tolerance
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not self.cancelled


class ManualScheduler:
    """Deterministic stand-in for SerialScheduler driven by a ManualClock."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.timers: List[ManualTimer] = []
        self.pending: List[Callable[[], None]] = []
        self.closed = False

    def call_soon(self, task: Callable[[], None]) -> None:
        self.pending.append(task)

    def call_repeating(self, interval: float, task: Callable[[], None], *, tolerance: float = 0.0) -> ManualTimer:
        timer = ManualTimer(interval, task, self.clock.now + interval, tolerance)
        self.timers.append(timer)
        return timer

    @property
    def active_timers(self) -> List[ManualTimer]:
        return [timer for timer in self.timers if timer.active]

    def run_pending(self) -> None:
        while self.pending:
            self.pending.pop(0)()

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [timer for timer in self.active_timers if timer.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.clock.now = timer.due
            timer.due += timer.interval
            timer.task()
            self.run_pending()
        self.clock.now = target
        self.run_pending()

    def shutdown(self) -> None:
        self.closed = True
        for timer in self.timers:
            timer.cancel()
        self.run_pending()


class RecordingDispatcher(Dispatcher):
    def __init__(self, settings: TrackerSettings) -> None:
        super().__init__(settings, executor=lambda job: job())
        self.sent: List[Dict[str, Any]] = []

    def send(self, envelope: Dict[str, Any]) -> None:
        self._serialize(envelope)
        self.sent.append(envelope)

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [envelope for envelope in self.sent if envelope["eventType"] == event_type]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def settings():
    return TrackerSettings(
        base_url="https://analytics.example.com/",
        sdk_id="sdk-123",
        distributor="acme-wallet",
    )


@pytest.fixture
def dispatcher(settings):
    return RecordingDispatcher(settings)


@pytest.fixture
def device():
    return DeviceInfo(
        system_name="iOS",
        system_version="17.2",
        model="iPhone",
        locale="en_GB",
        timezone="Europe/London",
        screen_width=393,
        screen_height=852,
    )


@pytest.fixture
def service(settings, dispatcher, scheduler, clock, device):
    return TrackerService(
        settings,
        store=MemoryPreferenceStore(),
        device=device,
        dispatcher=dispatcher,
        scheduler=scheduler,
        time_fn=clock,
    )


@pytest.fixture
def benefit():
    return BenefitItem(
        id=7,
        title="Free Coffee & Snacks!",
        labels=["Food", "Partner"],
        date_label="1st January 2026",
    )
