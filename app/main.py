"""FastAPI application for interview pipeline tracking."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from supabase import AsyncClient

from app.constants import AUTO_PROGRESS_STAGE_DELAY_SECONDS, EVENT_SOCKET_QUEUE_SIZE
from app.database.client import create_supabase_client
from app.exceptions import (
    AIScoringError,
    CascadeFailure,
    NotFound,
    PartialUpdateFailure,
    PipelineError,
    ValidationFailure
)
from app.models import (
    AdvanceResult,
    AutoProgressResult,
    CandidatePipelineView,
    PipelineCandidate,
    PipelineStageSnapshot,
    RemovalResult,
    ScheduleResult,
    StageEvent
)
from app.repositories.candidate_repository import CandidateRepository
from app.repositories.event_repository import EventRepository
from app.repositories.invitation_repository import InvitationRepository
from app.repositories.response_repository import ResponseRepository
from app.repositories.stage_repository import StageRepository
from app.services.auto_progress_service import AutoProgressService
from app.services.live_status_relay import CandidateEventFeed, LiveStatusRelay
from app.services.notification_service import NotificationService
from app.services.pipeline_service import PipelineService
from app.services.scoring_service import ScoringService
from app.services.stage_catalog import StageCatalog, human_facing_stages
from app.api.schemas.responses import ErrorResponse, ProgressResponse, StageListResponse
from app.api.schemas.requests import (
    AutoProgressRequest,
    BulkMoveRequest,
    MoveCandidateRequest,
    RejectCandidateRequest,
    ScheduleStageRequest,
    ScoreCandidateRequest,
    UpdateEventStatusRequest
)


logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Services shared by all requests."""
    pipeline: PipelineService
    auto_progress: AutoProgressService
    relay: LiveStatusRelay


def build_services(db_client: AsyncClient) -> Services:
    """Wire repositories and services around a Supabase client.

    Args:
        db_client: Async Supabase client (or a compatible test double).

    Returns:
        Services container.
    """
    event_repository = EventRepository(db_client)
    scoring_service = ScoringService(db_client)

    pipeline_service = PipelineService(
        StageCatalog(StageRepository(db_client)),
        CandidateRepository(db_client),
        event_repository,
        InvitationRepository(db_client),
        ResponseRepository(db_client),
        notification_service=NotificationService(db_client),
        scoring_service=scoring_service
    )
    stage_delay = float(os.environ.get("AUTO_PROGRESS_STAGE_DELAY", AUTO_PROGRESS_STAGE_DELAY_SECONDS))

    return Services(
        pipeline=pipeline_service,
        auto_progress=AutoProgressService(pipeline_service, scoring_service, stage_delay=stage_delay),
        relay=LiveStatusRelay(db_client, event_repository)
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_client = await create_supabase_client()
    app.state.services = build_services(db_client)
    logger.info("Interview pipeline services initialized")
    yield
    await app.state.services.relay.close()


app = FastAPI(lifespan=lifespan)

# Configure CORS
allowed_origins = [
    origin.strip()
    for origin in os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_pipeline_service(services: Services = Depends(get_services)) -> PipelineService:
    return services.pipeline


def get_auto_progress_service(services: Services = Depends(get_services)) -> AutoProgressService:
    return services.auto_progress


# Global exception handlers
def _error_response(status_code: int, exc: Exception, **extra: Any) -> JSONResponse:
    body = ErrorResponse(detail=str(exc), error_type=type(exc).__name__, **extra)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return _error_response(404, exc)


@app.exception_handler(ValidationFailure)
async def validation_failure_handler(request: Request, exc: ValidationFailure):
    """Convert validation failures and illegal transitions to 400 Bad Request."""
    return _error_response(400, exc)


@app.exception_handler(CascadeFailure)
async def cascade_failure_handler(request: Request, exc: CascadeFailure):
    """Report a part-way removal, naming what was already deleted."""
    return _error_response(
        500,
        exc,
        requires_manual_cleanup=True,
        completed_steps=exc.completed_steps,
        failed_step=exc.failed_step
    )


@app.exception_handler(PartialUpdateFailure)
async def partial_update_handler(request: Request, exc: PartialUpdateFailure):
    return _error_response(500, exc, requires_manual_cleanup=True)


@app.exception_handler(AIScoringError)
async def ai_scoring_handler(request: Request, exc: AIScoringError):
    return _error_response(502, exc)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return _error_response(500, exc)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Convert unexpected exceptions to 500 Internal Server Error.

    Prevents stack traces from being exposed to clients.
    """
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    body = ErrorResponse(detail="Internal server error", error_type="InternalError")
    return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))


@app.get("/")
def root():
    """Health check endpoint.

    Returns:
        Dictionary with status indicator.
    """
    return {"status": "ok"}


# Stage endpoints
@app.get("/pipeline/stages", response_model=StageListResponse)
async def list_stages(job_id: Optional[str] = None, service: PipelineService = Depends(get_pipeline_service)):
    """List the ordered stages of a job's pipeline.

    Args:
        job_id: Job whose pipeline is requested; omitted returns the shared set.

    Returns:
        All stages plus the human-facing subset (automated pre-screens hidden).
    """
    stages = await service.stage_catalog.get_stages(job_id)
    return StageListResponse(job_id=job_id, stages=stages, human_facing=human_facing_stages(stages))


@app.get("/pipeline/jobs/{job_id}", response_model=List[PipelineStageSnapshot])
async def get_pipeline_snapshot(job_id: str, service: PipelineService = Depends(get_pipeline_service)):
    """Active candidates of a job grouped by stage."""
    return await service.get_pipeline_snapshot(job_id)


# Candidate endpoints
@app.get("/pipeline/candidates/{candidate_id}", response_model=CandidatePipelineView)
async def get_candidate(candidate_id: str, service: PipelineService = Depends(get_pipeline_service)):
    return await service.get_candidate_steps(candidate_id)


@app.get("/pipeline/candidates/{candidate_id}/progress", response_model=ProgressResponse)
async def get_progress(
    candidate_id: str,
    human_facing: bool = False,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Completed stage percentage of a candidate.

    Args:
        candidate_id: Interview candidate ID.
        human_facing: Count only stages shown to operators.
    """
    stages = None
    if human_facing:
        candidate = await service.require_candidate(candidate_id)
        stages = human_facing_stages(await service.stage_catalog.get_stages(candidate.job_id))

    progress = await service.get_progress(candidate_id, stages)
    return ProgressResponse(candidate_id=candidate_id, progress=progress)


@app.post("/pipeline/candidates/{candidate_id}/move", response_model=PipelineCandidate)
async def move_candidate(
    candidate_id: str,
    request: MoveCandidateRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    return await service.move_candidate(candidate_id, request.stage_id)


@app.post("/pipeline/candidates/{candidate_id}/advance", response_model=AdvanceResult)
async def advance_candidate(candidate_id: str, service: PipelineService = Depends(get_pipeline_service)):
    """Pass the current stage and move to the next one.

    Returns 200 with advanced=false when the candidate is at the final stage.
    """
    return await service.advance_to_next_stage(candidate_id)


@app.post("/pipeline/candidates/{candidate_id}/schedule", response_model=ScheduleResult)
async def schedule_stage(
    candidate_id: str,
    request: ScheduleStageRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Schedule a stage and send the invitation.

    A failed invitation email does not fail the request; the response
    carries notification_sent=false and notification_error instead.
    """
    return await service.schedule_stage(
        candidate_id,
        request.stage_id,
        request.scheduled_at,
        request.meeting_link,
        attendees=request.attendees,
        assessment_attendees=request.assessment_attendees,
        notes=request.notes
    )


@app.put("/pipeline/candidates/{candidate_id}/stages/{stage_id}/status", response_model=StageEvent)
async def update_event_status(
    candidate_id: str,
    stage_id: str,
    request: UpdateEventStatusRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    return await service.update_event_status(
        candidate_id, stage_id, request.status, notes=request.notes, ai_score=request.ai_score
    )


@app.post("/pipeline/candidates/{candidate_id}/reject", response_model=PipelineCandidate)
async def reject_candidate(
    candidate_id: str,
    request: RejectCandidateRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    return await service.reject_candidate(candidate_id, notes=request.notes, ai_score=request.ai_score)


@app.post("/pipeline/candidates/{candidate_id}/score", response_model=PipelineCandidate)
async def score_candidate(
    candidate_id: str,
    request: ScoreCandidateRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    return await service.score_candidate(candidate_id, request.candidate_profile, request.job_details)


@app.post("/pipeline/candidates/{candidate_id}/auto-progress", response_model=AutoProgressResult)
async def auto_progress_candidate(
    candidate_id: str,
    request: AutoProgressRequest,
    service: AutoProgressService = Depends(get_auto_progress_service)
):
    return await service.auto_progress(
        candidate_id, auto_progress_all=request.auto_progress_all, job_title=request.job_title
    )


@app.delete("/pipeline/candidates/{candidate_id}", response_model=RemovalResult)
async def remove_candidate(candidate_id: str, service: PipelineService = Depends(get_pipeline_service)):
    """Delete a candidate with its events, invitations and responses.

    Raises:
        PersistenceError: Reported as 500 without manual cleanup when the
            first delete fails.
        CascadeFailure: Reported as 500 with the completed steps when
            removal stops part way.
    """
    return await service.remove_candidate(candidate_id)


@app.post("/pipeline/bulk-move")
async def bulk_move(request: BulkMoveRequest, service: PipelineService = Depends(get_pipeline_service)):
    """Move several candidates to one stage.

    Returns:
        200 when every move succeeded, 207 Multi-Status when any failed.
        The body lists the outcome of each candidate.
    """
    result = await service.bulk_move(request.candidate_ids, request.stage_id)
    return JSONResponse(
        status_code=207 if result.has_failures else 200,
        content=result.model_dump(mode="json")
    )


# Realtime
def feed_snapshot(feed: CandidateEventFeed) -> Dict[str, Any]:
    return {
        "candidate_id": feed.candidate_id,
        "stale": feed.stale,
        "live": feed.live,
        "events": [event.model_dump(mode="json") for event in feed.events],
    }


def push_latest(queue: asyncio.Queue, item: Any) -> None:
    """Enqueue without blocking, dropping the oldest item when full."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(item)


@app.websocket("/ws/candidates/{candidate_id}/events")
async def candidate_events_socket(websocket: WebSocket, candidate_id: str):
    """Stream a candidate's stage events.

    Sends a full snapshot of the candidate's events after every change. The
    subscription belongs to this socket and is removed when it closes.
    """
    services: Services = websocket.app.state.services
    try:
        await services.pipeline.require_candidate(candidate_id)
    except NotFound as error:
        await websocket.close(code=4404, reason=str(error))
        return

    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue(maxsize=EVENT_SOCKET_QUEUE_SIZE)

    def push(feed: CandidateEventFeed) -> None:
        push_latest(queue, feed_snapshot(feed))

    feed = await services.relay.subscribe(candidate_id, push, view_id=f"ws-{id(websocket)}")

    async def forward() -> None:
        while True:
            await websocket.send_json(await queue.get())

    sender = asyncio.ensure_future(forward())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Event socket for candidate {candidate_id} closed")
    finally:
        sender.cancel()
        with suppress(asyncio.CancelledError, Exception):
            await sender
        await services.relay.unsubscribe(feed, push)
