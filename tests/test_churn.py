import gc

import pytest

from miracle_tracker.churn import ChurnGate
from miracle_tracker.heatmap import HeatmapQueue
from miracle_tracker.models import ScenePhase

from conftest import T0

pytestmark = pytest.mark.unit


def test_triggers_half_a_second_apart_emit_one_churn(service, scheduler, dispatcher):
    assert service.churn.trigger_if_due(T0) is True
    assert service.churn.trigger_if_due(T0 + 0.5) is False
    scheduler.run_pending()
    assert len(dispatcher.of_type("churnpoint")) == 1


def test_triggers_one_and_a_half_seconds_apart_emit_two(service, scheduler, dispatcher):
    service.churn.trigger_if_due(T0)
    service.churn.trigger_if_due(T0 + 1.5)
    scheduler.run_pending()
    assert len(dispatcher.of_type("churnpoint")) == 2


def test_debounce_window_closes_before_async_work_runs(service, scheduler):
    service.churn.trigger_if_due(T0)
    assert service.churn.last_churn_at_ms == int(T0 * 1000)
    assert scheduler.pending
    assert service.churn.trigger_if_due(T0 + 0.999) is False
    assert len(scheduler.pending) == 1


def test_heatmap_is_flushed_before_churn_point(service, scheduler, dispatcher):
    service.set_current_page("ios://explore", "Explore")
    service.heatmap.add_click(10, 10)
    service.churn.trigger_if_due()
    scheduler.run_pending()

    assert [envelope["eventType"] for envelope in dispatcher.sent] == ["heatmap", "churnpoint"]
    heatmap, churn = dispatcher.sent
    assert heatmap["sequenceNumber"] < churn["sequenceNumber"]
    assert churn["url"] == "ios://explore"
    assert churn["eventData"]["page"]["title"] == "Explore"
    assert "heatmap" not in churn["eventData"]


def test_churn_falls_back_to_default_page_when_queue_is_gone(scheduler, clock):
    sent = []
    queue = HeatmapQueue(lambda *args: None, scheduler=scheduler, time_fn=clock)
    gate = ChurnGate(queue, lambda url, title: sent.append((url, title)), scheduler=scheduler, time_fn=clock)
    del queue
    gc.collect()

    gate.trigger_if_due()
    scheduler.run_pending()
    assert sent == [("ios://", "")]


def test_background_phase_triggers_churn(service, scheduler, dispatcher):
    service.on_scene_phase(ScenePhase.INACTIVE)
    service.on_scene_phase(ScenePhase.BACKGROUND)
    scheduler.run_pending()
    assert len(dispatcher.of_type("churnpoint")) == 1
