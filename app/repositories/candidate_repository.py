"""Repository for pipeline candidate data access operations."""

from typing import Dict, Optional, Any, List

from supabase import AsyncClient

from app.constants import CANDIDATES_TABLE
from app.models.pipeline import PipelineCandidate
from app.repositories.base_repository import BaseRepository, utc_now_iso


class CandidateRepository(BaseRepository):
    """Repository for managing interview candidate persistence.

    Extends BaseRepository to provide candidate-specific operations
    while inheriting common CRUD functionality.

    Attributes:
        db_client: Async Supabase client instance for database operations.
        table_name: Set to "interview_candidates" for this repository.
    """

    def __init__(self, db_client: AsyncClient):
        """Initialize the repository with a database client.

        Args:
            db_client: Async Supabase client instance.
        """
        super().__init__(db_client, CANDIDATES_TABLE)

    async def get_candidate(self, candidate_id: str) -> Optional[PipelineCandidate]:
        """Retrieve a single pipeline candidate by ID.

        Args:
            candidate_id: The interview candidate's unique identifier.

        Returns:
            PipelineCandidate if found, None otherwise.
        """
        # Use inherited get_by_id() and convert to PipelineCandidate
        row = await self.get_by_id(candidate_id)

        if not row:
            return None

        return PipelineCandidate(**row)

    async def get_by_job(self, job_id: str, status: Optional[str] = None) -> List[PipelineCandidate]:
        """Retrieve all candidates in a job's pipeline.

        Args:
            job_id: The job's unique identifier.
            status: Optional candidate status filter.

        Returns:
            List of PipelineCandidate objects ordered by application date.
        """
        filters: Dict[str, Any] = {"job_id": job_id}
        if status:
            filters["status"] = status

        rows = await self.get_where(filters, order_by="applied_at")
        return [PipelineCandidate(**row) for row in rows]

    async def update_candidate(self, candidate_id: str, updates: Dict[str, Any]) -> PipelineCandidate:
        """Update a candidate and stamp updated_at.

        Args:
            candidate_id: The interview candidate's unique identifier.
            updates: Dictionary of fields to update.

        Returns:
            Updated PipelineCandidate.
        """
        # Auto-update the updated_at timestamp
        updates = {**updates, "updated_at": utc_now_iso()}
        row = await self.update(candidate_id, updates)
        return PipelineCandidate(**row)
