"""FastAPI bridge so web-view and hybrid hosts can forward UI signals to the tracker."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .models import BenefitItem, EXPLORE_REFERRER, ScenePhase, TimeSpentReason
from .tracker import TrackerService


class PagePayload(BaseModel):
    url: str = Field(..., min_length=1)
    title: str = ""


class PointPayload(BaseModel):
    x: int
    y: int


class ClickPayload(BaseModel):
    element_id: str = Field(..., min_length=1)
    text: str = ""
    page_url: str = Field(..., min_length=1)
    page_title: str = ""
    tag_name: str = "Button"
    classes: str = ""
    bounding_rect_json: str = "{}"
    data_attributes_json: str = "{}"


class BenefitPayload(BaseModel):
    id: int
    title: str = Field(..., min_length=1)
    thumbnail: str = ""
    description: str = ""
    labels: List[str] = Field(default_factory=list)
    date_label: str = ""

    def to_item(self) -> BenefitItem:
        return BenefitItem(
            id=self.id,
            title=self.title,
            thumbnail=self.thumbnail,
            description=self.description,
            labels=list(self.labels),
            date_label=self.date_label,
        )


class VisitPayload(BaseModel):
    benefit: BenefitPayload
    referrer: str = EXPLORE_REFERRER


class VisitResponse(BaseModel):
    benefit_id: int
    event_id: Optional[str] = None
    page_url: str


class LifecyclePayload(BaseModel):
    phase: ScenePhase


class EnvelopeResponse(BaseModel):
    event_id: str
    sequence_number: int
    event_type: str


def create_app(service: TrackerService) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        service.start()
        try:
            yield
        finally:
            service.shutdown()

    app = FastAPI(
        title="Miracle Tracker Bridge",
        version="1.0.0",
        description="Forwards host UI interactions to the analytics collector.",
        lifespan=lifespan,
    )

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok" if service.started else "stopped"}

    @app.put("/page")
    def set_page(payload: PagePayload) -> Dict[str, str]:
        service.set_current_page(payload.url, payload.title)
        return {"url": payload.url, "title": payload.title}

    @app.post("/heatmap/click")
    def heatmap_click(point: PointPayload) -> Dict[str, bool]:
        service.heatmap.add_click(point.x, point.y)
        return {"accepted": True}

    @app.post("/heatmap/move")
    def heatmap_move(point: PointPayload) -> Dict[str, bool]:
        return {"accepted": service.heatmap.add_move(point.x, point.y)}

    @app.post("/heatmap/flush")
    def heatmap_flush() -> Dict[str, int]:
        pending = service.heatmap.pending_count
        service.heatmap.flush()
        return {"flushed": pending}

    @app.post("/clicks", response_model=EnvelopeResponse)
    def track_click(payload: ClickPayload) -> EnvelopeResponse:
        envelope = service.track_click(**payload.model_dump())
        return _envelope_response(envelope)

    @app.post("/benefits/visits", response_model=VisitResponse)
    def start_visit(payload: VisitPayload) -> VisitResponse:
        benefit = payload.benefit.to_item()
        visit = service.start_benefit_visit(benefit, referrer=payload.referrer)
        return VisitResponse(
            benefit_id=benefit.id,
            event_id=visit.event_id,
            page_url=benefit.page_url,
        )

    @app.delete("/benefits/visits/{benefit_id}")
    def end_visit(benefit_id: int, reason: TimeSpentReason = TimeSpentReason.EXIT) -> Dict[str, str]:
        if reason in {TimeSpentReason.PERIODIC, TimeSpentReason.BACKGROUND}:
            raise HTTPException(status_code=422, detail="reason must be exit or navigate")
        if not service.end_benefit_visit(benefit_id, reason):
            raise HTTPException(status_code=404, detail="visit not found")
        return {"status": "ended", "reason": reason.value}

    @app.post("/benefits/{benefit_id}/claim", response_model=EnvelopeResponse)
    def claim(benefit_id: int, payload: BenefitPayload) -> EnvelopeResponse:
        if payload.id != benefit_id:
            raise HTTPException(status_code=422, detail="benefit id mismatch")
        envelope = service.track_benefit_claim_click(payload.to_item())
        return _envelope_response(envelope)

    @app.post("/lifecycle")
    def lifecycle(payload: LifecyclePayload) -> Dict[str, str]:
        service.on_scene_phase(payload.phase)
        return {"phase": payload.phase.value}

    return app


def _envelope_response(envelope: Dict[str, object]) -> EnvelopeResponse:
    return EnvelopeResponse(
        event_id=str(envelope["eventId"]),
        sequence_number=int(envelope["sequenceNumber"]),  # type: ignore[arg-type]
        event_type=str(envelope["eventType"]),
    )
