from __future__ import annotations

import locale
import platform
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class EventType(str, Enum):
    PAGEVIEW = "pageview"
    CLICK = "click"
    HEATMAP = "heatmap"
    CHURNPOINT = "churnpoint"
    TIMESPENT = "timespent"


class TimeSpentReason(str, Enum):
    PERIODIC = "periodic"
    EXIT = "exit"
    NAVIGATE = "navigate"
    BACKGROUND = "background"


class ScenePhase(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"

    @property
    def leaves_foreground(self) -> bool:
        return self is not ScenePhase.ACTIVE


class MainTab(str, Enum):
    PORTFOLIO = "Portfolio"
    SWAP = "Swap"
    EXPLORE = "Explore"
    SETTINGS = "Settings"

    @property
    def page_url(self) -> str:
        return f"ios://{self.value.lower()}"

    @property
    def page_title(self) -> str:
        return self.value


DEFAULT_PAGE_URL = "ios://"
EXPLORE_REFERRER = MainTab.EXPLORE.page_url

_SLUG_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class HeatmapPoint:
    type: str
    x: int
    y: int
    ts: int

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "x": self.x, "y": self.y, "ts": self.ts}


@dataclass
class BenefitItem:
    id: int
    title: str
    thumbnail: str = ""
    description: str = ""
    labels: List[str] = field(default_factory=list)
    date_label: str = ""

    @property
    def page_url(self) -> str:
        slug = _SLUG_RE.sub("-", self.title.lower()).strip("-")
        return f"ios://benefits/{slug}"

    @property
    def page_title(self) -> str:
        return f"Benefit: {self.title}"


@dataclass
class SessionSnapshot:
    first_touch_at: str
    last_touch_at: str
    total_visits: int
    total_time_spent: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "firstTouchAt": self.first_touch_at,
            "lastTouchAt": self.last_touch_at,
            "totalVisits": self.total_visits,
            "totalTimeSpent": self.total_time_spent,
        }


@dataclass
class DeviceInfo:
    system_name: str = "iOS"
    system_version: str = "17.0"
    model: str = "iPhone"
    locale: str = "en_US"
    timezone: str = "UTC"
    screen_width: int = 390
    screen_height: int = 844
    color_depth: int = 24

    @property
    def user_agent(self) -> str:
        return f"{self.system_name}/{self.system_version} ({self.model})"

    @property
    def language(self) -> str:
        return self.locale[:2]

    @property
    def screen_resolution(self) -> str:
        return f"{self.screen_width}x{self.screen_height}"

    @classmethod
    def detect(cls, *, screen_width: int = 390, screen_height: int = 844) -> "DeviceInfo":
        lang, _ = locale.getlocale()
        tz_name = datetime.now().astimezone().tzname() or "UTC"
        return cls(
            system_name=platform.system() or "Unknown",
            system_version=platform.release() or "0",
            model=platform.machine() or "Unknown",
            locale=lang or "en_US",
            timezone=tz_name,
            screen_width=screen_width,
            screen_height=screen_height,
        )
