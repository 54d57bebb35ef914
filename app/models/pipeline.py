"""Pydantic models for interview stages, pipeline candidates, events and invitations."""

from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum


class CandidateStatus(str, Enum):
    """Overall status of a candidate within a job pipeline."""
    ACTIVE = "active"
    SHORTLISTED = "shortlisted"
    HIRED = "hired"
    REJECTED = "rejected"
    PENDING_CONFIRMATION = "pending_confirmation"
    INTERVIEW_COMPLETE = "interview_complete"


class EventStatus(str, Enum):
    """Status of a single stage event."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SCHEDULED = "scheduled"
    PASSED = "passed"
    COMPLETED = "completed"
    FAILED = "failed"


class InvitationEmailStatus(str, Enum):
    """Delivery status of an invitation email."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Display status of a stage within a candidate's pipeline."""
    COMPLETED = "completed"
    CURRENT = "current"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"
    PENDING = "pending"


class StageDirection(str, Enum):
    """Direction used when resolving an adjacent stage."""
    NEXT = "next"
    PREVIOUS = "previous"


class Stage(BaseModel):
    """A single named step in a hiring pipeline.

    Attributes:
        id: Unique stage identifier.
        name: Display name (e.g., "Technical Assessment").
        stage_order: Ordinal position within the pipeline (1, 2, 3...).
        is_ai_automated: Whether the stage is evaluated by AI without an operator.
        job_id: Owning job for job-specific pipelines, None for the shared set.
        created_at: When the stage was configured.
    """
    id: str
    name: str
    stage_order: int
    is_ai_automated: Optional[bool] = False
    job_id: Optional[str] = None
    created_at: Optional[datetime] = None


class PipelineCandidate(BaseModel):
    """A candidate's participation in one job's pipeline.

    Attributes:
        id: Unique interview candidate identifier.
        candidate_id: Profile ID of the candidate.
        job_id: Job the candidate applied to.
        current_stage_id: Stage the candidate is positioned at, if any.
        status: Overall status in the pipeline.
        ai_score: Resume score from 0 to 100.
        ai_analysis: Opaque analysis payload returned by the AI scorer.
        resume_url: Location of the uploaded resume.
        applied_at: When the candidate applied.
        updated_at: Last update timestamp.
    """
    id: str
    candidate_id: str
    job_id: str
    current_stage_id: Optional[str] = None
    status: Optional[CandidateStatus] = CandidateStatus.ACTIVE
    ai_score: Optional[float] = None
    ai_analysis: Optional[Dict[str, Any]] = None
    resume_url: Optional[str] = None
    applied_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def display_name(self) -> str:
        candidate_data = (self.ai_analysis or {}).get("candidate_data") or {}
        return candidate_data.get("full_name") or candidate_data.get("name") or "Candidate"


class StageEvent(BaseModel):
    """One attempt of a candidate at a stage.

    Attributes:
        id: Unique event identifier.
        interview_candidate_id: Owning pipeline candidate.
        stage_id: Stage this attempt belongs to.
        status: Current status of the attempt.
        scheduled_at: When the stage is scheduled.
        completed_at: When the stage reached a terminal status.
        ai_score: AI evaluation score from 0 to 100.
        ai_feedback: Structured AI evaluation details.
        notes: Free-text notes from operators or the AI evaluator.
        created_at: When the event was created.
        updated_at: Last update timestamp, used to order concurrent versions.
    """
    id: str
    interview_candidate_id: str
    stage_id: str
    status: Optional[EventStatus] = EventStatus.PENDING
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    ai_score: Optional[float] = None
    ai_feedback: Optional[Any] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def version(self) -> Optional[datetime]:
        """Timestamp of this version of the record."""
        return self.updated_at or self.created_at


class Invitation(BaseModel):
    """Tokenized link granting a candidate access to a scheduled stage event.

    Attributes:
        id: Unique invitation identifier.
        interview_event_id: Event the token grants access to.
        invitation_token: Opaque url-safe token.
        meeting_link: Link to the interview meeting.
        expires_at: When the token stops being accepted.
        email_status: Delivery status of the invitation email.
        email_sent_at: When the invitation email was sent.
        created_at: When the invitation was created.
    """
    id: str
    interview_event_id: str
    invitation_token: Optional[str] = None
    meeting_link: Optional[str] = None
    expires_at: Optional[datetime] = None
    email_status: Optional[InvitationEmailStatus] = InvitationEmailStatus.PENDING
    email_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at


class PipelineStep(BaseModel):
    """Display state of one stage for one candidate."""
    stage_id: str
    stage_name: str
    stage_order: int
    status: StepStatus = StepStatus.PENDING
    event_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    ai_score: Optional[float] = None
    notes: Optional[str] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class CandidatePipelineView(BaseModel):
    """A pipeline candidate with its per-stage steps and progress."""
    candidate: PipelineCandidate
    steps: List[PipelineStep] = []
    progress: int = 0


class PipelineStageSnapshot(BaseModel):
    """Read projection of a stage and the candidates positioned at it.

    Never persisted.
    """
    stage: Stage
    candidates: List[CandidatePipelineView] = []
