import base64
import binascii
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import Field

from agents import FeedbackAgent, build_llm, default_feedback
from config import settings
from crm import build_day_summaries, filter_date_range
from models import (
    AnalysisResult,
    CamelModel,
    DailyFeedbackKind,
    DaySummaryRecord,
    EventRecord,
    Feedback,
    FeedbackDraft,
    FeedbackKind,
    FoodAnalysisResult,
    LogKind,
    UserProfile,
    ViewId,
    utc_now,
)
from service import LifelogService
from store import create_store

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:(image/[\w.+-]+);base64,")


# ------------------------------------------------------------------
# Request/Response Models
# ------------------------------------------------------------------
class DailyAnalysisRequest(CamelModel):
    logs: List[EventRecord] = Field(default_factory=list)
    feedback_type: DailyFeedbackKind
    user_id: str
    date: str


class DailyAnalysisResponse(CamelModel):
    feedback: FeedbackDraft


class PatternAnalysisRequest(CamelModel):
    logs: List[EventRecord] = Field(default_factory=list)


class FoodAnalysisRequest(CamelModel):
    image: Optional[str] = None


class DateRange(CamelModel):
    date_from: str = Field(alias="from")
    date_to: str = Field(alias="to")


class CRMSyncRequest(CamelModel):
    user_id: Optional[str] = None
    logs: Optional[List[EventRecord]] = None
    feedbacks: Optional[List[Feedback]] = None
    date_range: Optional[DateRange] = None


class CRMSyncResponse(CamelModel):
    success: bool
    records_created: int
    records: List[DaySummaryRecord]
    synced_at: str


class LogCreate(CamelModel):
    user_id: Optional[str] = None
    date: str
    kind: LogKind
    value: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LogUpdate(CamelModel):
    date: Optional[str] = None
    kind: Optional[LogKind] = None
    value: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None


class DailyFeedbackRequest(CamelModel):
    date: Optional[str] = None
    kind: Optional[DailyFeedbackKind] = None


class InsightsRequest(CamelModel):
    record_warning: bool = False


class ProfileUpdate(CamelModel):
    name: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    height: Optional[float] = None
    target_weight: Optional[float] = None
    health_goals: Optional[List[str]] = None
    avatar_url: Optional[str] = None


class UIState(CamelModel):
    active_view: ViewId
    selected_date: str


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------
def get_service(request: Request) -> LifelogService:
    return request.app.state.service


def build_service() -> LifelogService:
    store = create_store(settings)
    try:
        llm = build_llm(settings)
    except Exception as e:
        logger.error(f"Gemini client setup failed: {str(e)}")
        llm = None
    agent = FeedbackAgent(llm, language=settings.RESPONSE_LANGUAGE) if llm else None
    return LifelogService(store, agent, evening_hour=settings.EVENING_HOUR)


def decode_image(image: str) -> tuple:
    """Data URL or bare base64 -> (bytes, mime type)."""
    mime_type = "image/jpeg"
    match = DATA_URL_PREFIX.match(image)
    if match:
        mime_type = match.group(1)
        image = image[match.end() :]
    return base64.b64decode(image, validate=True), mime_type


# ------------------------------------------------------------------
# AI analysis routes
# ------------------------------------------------------------------
router = APIRouter(prefix="/api")


@router.post("/analyze/daily", response_model=DailyAnalysisResponse)
async def analyze_daily(
    body: DailyAnalysisRequest, service: LifelogService = Depends(get_service)
):
    if service.agent is None:
        feedback = default_feedback(body.user_id, body.date, body.feedback_type)
    else:
        feedback = await service.agent.request_feedback(
            body.logs, body.feedback_type, body.user_id, body.date
        )
    return DailyAnalysisResponse(feedback=feedback)


@router.post("/analyze", response_model=AnalysisResult)
async def analyze_patterns(
    body: PatternAnalysisRequest, service: LifelogService = Depends(get_service)
):
    if not body.logs:
        raise HTTPException(status_code=400, detail="No data to analyze.")
    return await service.request_pattern_analysis(body.logs)


@router.post("/analyze/food", response_model=FoodAnalysisResult)
async def analyze_food(
    body: FoodAnalysisRequest, service: LifelogService = Depends(get_service)
):
    if not body.image:
        raise HTTPException(status_code=400, detail="An image is required.")

    try:
        image, mime_type = decode_image(body.image)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="The image could not be read.")

    if len(image) > settings.MAX_IMAGE_BYTES:
        limit_mb = settings.MAX_IMAGE_BYTES // (1024 * 1024)
        raise HTTPException(
            status_code=413, detail=f"Images must be {limit_mb}MB or smaller."
        )

    return await service.analyze_food(image, mime_type)


# ------------------------------------------------------------------
# CRM routes
# ------------------------------------------------------------------
@router.post("/crm/sync", response_model=CRMSyncResponse)
async def crm_sync(body: CRMSyncRequest, service: LifelogService = Depends(get_service)):
    if not body.user_id:
        raise HTTPException(status_code=400, detail="A user ID is required.")

    try:
        records = service.store.records if body.logs is None else body.logs
        feedbacks = service.store.feedbacks if body.feedbacks is None else body.feedbacks
        if body.date_range:
            records, feedbacks = filter_date_range(
                records, feedbacks, body.date_range.date_from, body.date_range.date_to
            )

        # No real CRM transport: shape the records and hand them back
        summaries = build_day_summaries(body.user_id, records, feedbacks)
        return CRMSyncResponse(
            success=True,
            records_created=len(summaries),
            records=summaries,
            synced_at=utc_now().isoformat(),
        )
    except Exception as e:
        logger.error(f"CRM sync failed: {str(e)}")
        raise HTTPException(status_code=500, detail="CRM sync failed.")


@router.get("/crm/sync")
async def crm_status(user_id: Optional[str] = Query(None, alias="userId")):
    if not user_id:
        raise HTTPException(status_code=400, detail="A user ID is required.")
    return {
        "userId": user_id,
        "lastSyncAt": None,
        "status": "ready",
        "message": "CRM sync ready",
    }


# ------------------------------------------------------------------
# Store routes
# ------------------------------------------------------------------
@router.get("/logs", response_model=List[EventRecord])
async def list_logs(
    date: Optional[str] = None,
    kind: Optional[LogKind] = None,
    service: LifelogService = Depends(get_service),
):
    records = service.store.records
    if date:
        records = [r for r in records if r.date == date]
    if kind:
        records = [r for r in records if r.kind == kind]
    return records


@router.post("/logs", response_model=EventRecord, status_code=201)
async def submit_log(body: LogCreate, service: LifelogService = Depends(get_service)):
    try:
        record = await run_in_threadpool(
            service.submit_log,
            body.user_id or service.store.user_id,
            body.date,
            body.kind,
            body.value,
            body.metadata,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if record.date == service.today():
        service.schedule_daily_feedback(record.date, settings.FEEDBACK_DELAY_SECONDS)
    return record


@router.patch("/logs/{record_id}", response_model=EventRecord)
def update_log(
    record_id: str, body: LogUpdate, service: LifelogService = Depends(get_service)
):
    try:
        return service.store.update_record(record_id, **body.model_dump(exclude_unset=True))
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found.")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/logs/{record_id}", status_code=204)
def delete_log(record_id: str, service: LifelogService = Depends(get_service)):
    try:
        service.store.delete_record(record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found.")


@router.get("/feedbacks", response_model=List[Feedback])
async def list_feedbacks(
    date: Optional[str] = None,
    kind: Optional[FeedbackKind] = None,
    service: LifelogService = Depends(get_service),
):
    feedbacks = service.store.feedbacks
    if date:
        feedbacks = [f for f in feedbacks if f.date == date]
    if kind:
        feedbacks = [f for f in feedbacks if f.kind == kind]
    return feedbacks


@router.get("/feedbacks/latest", response_model=Optional[Feedback])
async def latest_feedback(
    kind: FeedbackKind, service: LifelogService = Depends(get_service)
):
    return service.store.latest_feedback(kind)


@router.post("/feedbacks/daily", response_model=Feedback)
async def daily_feedback(
    body: DailyFeedbackRequest, service: LifelogService = Depends(get_service)
):
    return await service.request_daily_feedback(body.date or service.today(), body.kind)


@router.post("/insights", response_model=AnalysisResult)
async def insights(body: InsightsRequest, service: LifelogService = Depends(get_service)):
    return await service.request_pattern_analysis(record_warning=body.record_warning)


@router.get("/profile", response_model=Optional[UserProfile])
async def get_profile(service: LifelogService = Depends(get_service)):
    return service.store.profile


@router.put("/profile", response_model=UserProfile)
def set_profile(body: UserProfile, service: LifelogService = Depends(get_service)):
    return service.store.set_profile(body)


@router.patch("/profile", response_model=UserProfile)
def update_profile(
    body: ProfileUpdate, service: LifelogService = Depends(get_service)
):
    try:
        profile = service.store.update_profile(**body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if profile is None:
        raise HTTPException(status_code=404, detail="No profile set.")
    return profile


@router.get("/ui", response_model=UIState)
async def get_ui_state(service: LifelogService = Depends(get_service)):
    return UIState(
        active_view=service.store.active_view,
        selected_date=service.store.selected_date,
    )


@router.put("/ui", response_model=UIState)
async def set_ui_state(body: UIState, service: LifelogService = Depends(get_service)):
    try:
        service.store.set_selected_date(body.selected_date)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date.")
    service.store.set_active_view(body.active_view)
    return body


@router.get("/export/raw")
async def export_raw(service: LifelogService = Depends(get_service)):
    filename = f"lifelog-export-{service.today()}.json"
    return JSONResponse(
        content=service.export_raw_data(),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export/crm", response_model=List[DaySummaryRecord])
async def export_crm(
    user_id: Optional[str] = Query(None, alias="userId"),
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    service: LifelogService = Depends(get_service),
):
    try:
        return service.export_crm(user_id or "", date_from, date_to)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/data", status_code=204)
def clear_data(service: LifelogService = Depends(get_service)):
    service.store.clear()


# ------------------------------------------------------------------
# FastAPI App
# ------------------------------------------------------------------
def create_app(service: Optional[LifelogService] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "service", None) is None:
            app.state.service = build_service()
        yield
        app.state.service.cancel_scheduled()

    app = FastAPI(title="Lifelog Coach", lifespan=lifespan)
    if service is not None:
        app.state.service = service

    app.add_middleware(
        CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]
    )
    app.include_router(router)
    return app


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT, reload=True)
