"""Pydantic models for the interview pipeline service."""

from app.models.pipeline import (
    CandidateStatus,
    EventStatus,
    InvitationEmailStatus,
    StepStatus,
    StageDirection,
    Stage,
    PipelineCandidate,
    StageEvent,
    Invitation,
    PipelineStep,
    CandidatePipelineView,
    PipelineStageSnapshot
)
from app.models.results import (
    AdvanceResult,
    ScheduleResult,
    BulkMoveItem,
    BulkMoveResult,
    RemovalResult,
    StageEvaluation,
    AutoProgressStageResult,
    AutoProgressResult
)

__all__ = [
    "CandidateStatus",
    "EventStatus",
    "InvitationEmailStatus",
    "StepStatus",
    "StageDirection",
    "Stage",
    "PipelineCandidate",
    "StageEvent",
    "Invitation",
    "PipelineStep",
    "CandidatePipelineView",
    "PipelineStageSnapshot",
    "AdvanceResult",
    "ScheduleResult",
    "BulkMoveItem",
    "BulkMoveResult",
    "RemovalResult",
    "StageEvaluation",
    "AutoProgressStageResult",
    "AutoProgressResult"
]
