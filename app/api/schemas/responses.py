"""Response schemas for API endpoints."""

from pydantic import BaseModel
from typing import List, Optional

from app.models.pipeline import Stage


class ProgressResponse(BaseModel):
    """Response model for candidate progress."""
    candidate_id: str
    progress: int


class StageListResponse(BaseModel):
    """Response model for a job's stages."""
    job_id: Optional[str] = None
    stages: List[Stage]
    human_facing: List[Stage]


class ErrorResponse(BaseModel):
    """Body returned for pipeline errors."""
    detail: str
    error_type: str
    requires_manual_cleanup: bool = False
    completed_steps: Optional[List[str]] = None
    failed_step: Optional[str] = None
