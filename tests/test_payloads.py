import base64
import json
import re

import pytest

from miracle_tracker import payloads
from miracle_tracker.models import BenefitItem, EventType, HeatmapPoint, MainTab, SessionSnapshot

pytestmark = pytest.mark.unit

T0 = 1_700_000_000.0
TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def test_timestamp_is_utc_with_milliseconds():
    assert payloads.format_timestamp(T0 + 0.25) == "2023-11-14T22:13:20.250Z"
    assert TIMESTAMP_RE.match(payloads.format_timestamp(T0))


def test_page_id_strips_base64_padding():
    url = "ios://benefits/foo"
    expected = base64.b64encode(url.encode()).decode().rstrip("=")
    assert payloads.page_id(url) == expected
    assert "=" not in payloads.page_id("ios://x")


@pytest.mark.parametrize(
    "offset, expected",
    [(2.5, 2), (0.4, 1), (5.0, 5), (15.999, 15), (0.0, None), (-3.0, None)],
)
def test_elapsed_seconds_floor_with_minimum_one(offset, expected):
    assert payloads.elapsed_seconds(T0, T0 + offset) == expected


def test_unmeasurable_fields_are_explicit_nulls():
    timing = payloads.performance_timing()
    assert set(timing) == {
        "domContentLoaded",
        "loadEventEnd",
        "responseStart",
        "firstPaint",
        "firstContentfulPaint",
    }
    assert all(value is None for value in timing.values())
    network = payloads.network_state()
    assert network == {"online": True, "effectiveType": None, "downlink": None, "rtt": None}


def test_click_envelope_round_trips_through_json(device):
    timestamp = payloads.format_timestamp(T0)
    session = SessionSnapshot(timestamp, timestamp, 1)
    data = payloads.base_event_data(
        session=session,
        device=device,
        session_id="session_1",
        timestamp=timestamp,
        page_url="ios://benefits/foo",
        page_title="Benefit: Foo",
        metadata=payloads.click_metadata(device, timestamp),
        element=payloads.element_info(element_id="x", text="Claim"),
    )
    envelope = payloads.build_envelope(
        distributor="acme",
        url="ios://benefits/foo",
        event_type=EventType.CLICK,
        sequence_number=4,
        event_timestamp=timestamp,
        event_data=data,
    )
    decoded = json.loads(json.dumps(envelope))
    assert list(decoded) == [
        "distributor",
        "url",
        "eventId",
        "sequenceNumber",
        "eventTimestamp",
        "eventType",
        "eventData",
    ]
    assert decoded["eventData"]["element"]["id"] == "x"
    assert decoded["eventData"]["element"]["text"] == "Claim"
    assert decoded["eventData"]["page"]["pageId"] == (
        base64.b64encode(b"ios://benefits/foo").decode().replace("=", "")
    )
    assert decoded["eventData"]["metadata"]["coordinates"] == {"x": None, "y": None}
    assert decoded["eventData"]["metadata"]["viewport"] == "393x852"
    assert decoded["eventData"]["user"]["userAgent"] == "iOS/17.2 (iPhone)"
    assert decoded["eventData"]["user"]["language"] == "en"


def test_fresh_event_id_unless_one_is_given():
    common = dict(
        distributor="acme",
        url="ios://",
        event_type=EventType.PAGEVIEW,
        sequence_number=1,
        event_timestamp="t",
        event_data={},
    )
    first = payloads.build_envelope(**common)
    second = payloads.build_envelope(**common)
    pinned = payloads.build_envelope(event_id="FIXED", **common)
    assert first["eventId"] != second["eventId"]
    assert pinned["eventId"] == "FIXED"


def test_parse_json_object_falls_back_to_empty():
    assert payloads.parse_json_object('{"w": 10}') == {"w": 10}
    assert payloads.parse_json_object("[1, 2]") == {}
    assert payloads.parse_json_object("nope") == {}
    assert payloads.parse_json_object("") == {}


def test_benefit_info_only_includes_reason_when_given():
    benefit = BenefitItem(id=3, title="Gym Pass", labels=["Health"])
    assert payloads.benefit_info(benefit) == {"id": 3, "title": "Gym Pass", "labels": ["Health"]}
    assert payloads.benefit_info(benefit, "exit")["reason"] == "exit"


def test_heatmap_points_keep_order_and_shape():
    points = [HeatmapPoint("click", 1, 2, 10), HeatmapPoint("move", 3, 4, 20)]
    assert payloads.heatmap_points(points) == [
        {"type": "click", "x": 1, "y": 2, "ts": 10},
        {"type": "move", "x": 3, "y": 4, "ts": 20},
    ]


def test_benefit_and_tab_page_urls():
    benefit = BenefitItem(id=1, title="  Free Coffee & Snacks! ")
    assert benefit.page_url == "ios://benefits/free-coffee-snacks"
    assert benefit.page_title == "Benefit: " + benefit.title
    assert MainTab.EXPLORE.page_url == "ios://explore"
    assert MainTab.SWAP.page_title == "Swap"
