"""Pure builders for the cross-platform event envelope.

Key names and nesting are shared with the Android and web clients, so
fields the device cannot measure are sent as explicit ``None`` (JSON
``null``) instead of being omitted.
"""

from __future__ import annotations

import base64
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from .models import BenefitItem, DeviceInfo, EventType, HeatmapPoint, SessionSnapshot


def format_timestamp(epoch_seconds: float) -> str:
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def page_id(url: str) -> str:
    return base64.b64encode(url.encode("utf-8")).decode("ascii").replace("=", "")


def elapsed_seconds(start: float, end: float) -> Optional[int]:
    """Whole seconds between two epoch timestamps, ``None`` when not positive."""
    diff_ms = (end - start) * 1000
    if diff_ms <= 0:
        return None
    return max(int(diff_ms // 1000), 1)


def performance_timing() -> Dict[str, Any]:
    return {
        "domContentLoaded": None,
        "loadEventEnd": None,
        "responseStart": None,
        "firstPaint": None,
        "firstContentfulPaint": None,
    }


def network_state() -> Dict[str, Any]:
    return {
        "online": True,
        "effectiveType": None,
        "downlink": None,
        "rtt": None,
    }


def page_info(url: str, title: str, referrer: str = "") -> Dict[str, Any]:
    return {
        "url": url,
        "title": title,
        "referrer": referrer,
        "pageId": page_id(url),
        "navigationType": "navigate",
    }


def user_info(
    device: DeviceInfo,
    *,
    session_id: str,
    timestamp: str,
    language: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "userAgent": device.user_agent,
        "language": language if language is not None else device.language,
        "timezone": device.timezone,
        "screenResolution": device.screen_resolution,
        "colorDepth": device.color_depth,
        "sessionId": session_id,
        "timestamp": timestamp,
    }


def benefit_info(benefit: BenefitItem, reason: Optional[str] = None) -> Dict[str, Any]:
    info: Dict[str, Any] = {
        "id": benefit.id,
        "title": benefit.title,
        "labels": list(benefit.labels),
    }
    if reason:
        info["reason"] = reason
    return info


def click_metadata(device: DeviceInfo, timestamp: str) -> Dict[str, Any]:
    return {
        "timestamp": timestamp,
        "viewport": device.screen_resolution,
        "coordinates": {"x": None, "y": None},
    }


def parse_json_object(raw: str) -> Dict[str, Any]:
    try:
        value = json.loads(raw or "{}")
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


def element_info(
    *,
    element_id: str,
    text: str,
    tag_name: str = "Button",
    classes: str = "",
    data_attributes: Optional[Dict[str, Any]] = None,
    bounding_rect: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "tagName": tag_name,
        "id": element_id,
        "classes": classes,
        "text": text,
        "dataAttributes": dict(data_attributes or {}),
        "boundingRect": dict(bounding_rect or {}),
    }


def heatmap_points(points: Iterable[HeatmapPoint]) -> list[Dict[str, Any]]:
    return [point.to_payload() for point in points]


def base_event_data(
    *,
    session: SessionSnapshot,
    device: DeviceInfo,
    session_id: str,
    timestamp: str,
    page_url: str,
    page_title: str,
    referrer: str = "",
    language: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Common ``eventData`` block; type-specific sub-objects come in via ``extra``."""
    data: Dict[str, Any] = {
        "sessionMetadata": session.to_payload(),
        "performanceTiming": performance_timing(),
        "networkState": network_state(),
        "page": page_info(page_url, page_title, referrer),
        "user": user_info(
            device, session_id=session_id, timestamp=timestamp, language=language
        ),
    }
    data.update(extra)
    return data


def build_envelope(
    *,
    distributor: str,
    url: str,
    event_type: EventType,
    sequence_number: int,
    event_timestamp: str,
    event_data: Dict[str, Any],
    event_id: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "distributor": distributor,
        "url": url,
        "eventId": event_id or str(uuid.uuid4()).upper(),
        "sequenceNumber": sequence_number,
        "eventTimestamp": event_timestamp,
        "eventType": event_type.value,
        "eventData": event_data,
    }
