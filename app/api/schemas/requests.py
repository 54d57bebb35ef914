"""Request schemas for API endpoints."""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from app.models.pipeline import EventStatus


class MoveCandidateRequest(BaseModel):
    """Request model for moving a candidate to a stage."""
    stage_id: str


class BulkMoveRequest(BaseModel):
    """Request model for moving several candidates to one stage."""
    candidate_ids: List[str] = Field(min_length=1)
    stage_id: str


class ScheduleStageRequest(BaseModel):
    """Request model for scheduling a stage.

    scheduled_at and meeting_link are optional here so that the service
    reports missing values as a validation failure.
    """
    stage_id: str
    scheduled_at: Optional[datetime] = None
    meeting_link: Optional[str] = None
    attendees: List[str] = []
    assessment_attendees: List[str] = []
    notes: Optional[str] = None


class UpdateEventStatusRequest(BaseModel):
    """Request model for changing a stage event's status."""
    status: EventStatus
    notes: Optional[str] = None
    ai_score: Optional[float] = Field(default=None, ge=0, le=100)

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class RejectCandidateRequest(BaseModel):
    """Request model for rejecting a candidate at the current stage."""
    notes: Optional[str] = None
    ai_score: Optional[float] = Field(default=None, ge=0, le=100)


class ScoreCandidateRequest(BaseModel):
    """Request model for AI resume scoring."""
    candidate_profile: Dict[str, Any] = {}
    job_details: Dict[str, Any] = {}


class AutoProgressRequest(BaseModel):
    """Request model for AI auto-progress."""
    auto_progress_all: bool = True
    job_title: Optional[str] = None
