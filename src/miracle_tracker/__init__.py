"""Client-side analytics collector: heatmap, churn, time-spent and click events."""

from .churn import ChurnGate
from .config import AppConfig, TrackerSettings
from .dispatcher import Dispatcher
from .errors import (
    ConfigurationError,
    CorrelationError,
    DispatchError,
    SerializationError,
)
from .heatmap import HeatmapQueue
from .models import (
    BenefitItem,
    DeviceInfo,
    EventType,
    HeatmapPoint,
    MainTab,
    ScenePhase,
    TimeSpentReason,
)
from .session import SequenceCounter, SessionContext
from .timespent import TimeSpentTracker
from .tracker import TrackerService

__all__ = [
    "AppConfig",
    "BenefitItem",
    "ChurnGate",
    "ConfigurationError",
    "CorrelationError",
    "DeviceInfo",
    "DispatchError",
    "Dispatcher",
    "EventType",
    "HeatmapPoint",
    "HeatmapQueue",
    "MainTab",
    "ScenePhase",
    "SequenceCounter",
    "SerializationError",
    "SessionContext",
    "TimeSpentReason",
    "TimeSpentTracker",
    "TrackerService",
    "TrackerSettings",
]
