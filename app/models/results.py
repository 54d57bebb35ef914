"""Pydantic models describing the outcome of pipeline operations."""

from pydantic import BaseModel
from typing import Any, Dict, List, Optional

from app.models.pipeline import Invitation, PipelineCandidate, Stage, StageEvent


class AdvanceResult(BaseModel):
    """Outcome of advancing a candidate to the next stage.

    Attributes:
        advanced: False when the candidate was already at the final stage.
        message: Human-readable summary.
        previous_stage: Stage the candidate was at before the call.
        current_stage: Stage the candidate is at after the call.
        passed_event: Event marked as passed for the previous stage.
        new_event: Pending event created for the new stage.
    """
    advanced: bool
    message: str
    previous_stage: Optional[Stage] = None
    current_stage: Optional[Stage] = None
    passed_event: Optional[StageEvent] = None
    new_event: Optional[StageEvent] = None


class ScheduleResult(BaseModel):
    """Outcome of scheduling a stage.

    The schedule is committed whenever a result is returned. A failed
    notification is reported through notification_sent/notification_error.
    """
    event: StageEvent
    invitation: Invitation
    candidate: PipelineCandidate
    created: bool
    notification_sent: bool = False
    notification_error: Optional[str] = None

    @property
    def partially_succeeded(self) -> bool:
        return not self.notification_sent


class BulkMoveItem(BaseModel):
    """Per-candidate outcome of a bulk move."""
    candidate_id: str
    success: bool
    candidate: Optional[PipelineCandidate] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


class BulkMoveResult(BaseModel):
    """Outcome of a bulk move, one item per requested candidate."""
    target_stage_id: str
    items: List[BulkMoveItem] = []

    @property
    def succeeded(self) -> List[str]:
        return [item.candidate_id for item in self.items if item.success]

    @property
    def failed(self) -> List[str]:
        return [item.candidate_id for item in self.items if not item.success]

    @property
    def has_failures(self) -> bool:
        return any(not item.success for item in self.items)


class RemovalResult(BaseModel):
    """Counts of records deleted while removing a candidate."""
    candidate_id: str
    responses_deleted: int = 0
    invitations_deleted: int = 0
    events_deleted: int = 0
    completed_steps: List[str] = []


class StageEvaluation(BaseModel):
    """AI evaluation of a candidate at one stage."""
    score: float
    passed: bool
    feedback: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class AutoProgressStageResult(BaseModel):
    """Result of one automatically evaluated stage."""
    stage: str
    stage_order: int
    score: float
    passed: bool
    feedback: Optional[str] = None


class AutoProgressResult(BaseModel):
    """Outcome of an AI auto-progress run.

    Attributes:
        status: One of "skipped", "progressed", "rejected", "completed".
        message: Human-readable summary.
        current_stage: Name of the stage the candidate ends at.
        rejected_at: Name of the stage the candidate failed, if any.
        results: Per-stage evaluations in the order they ran.
    """
    status: str
    message: str
    current_stage: Optional[str] = None
    rejected_at: Optional[str] = None
    results: List[AutoProgressStageResult] = []
