"""Repository for interview stage event data access operations."""

from typing import Dict, List, Any

from supabase import AsyncClient

from app.constants import EVENTS_TABLE
from app.models.pipeline import StageEvent
from app.repositories.base_repository import BaseRepository, utc_now_iso


class EventRepository(BaseRepository):
    """Repository for managing stage event persistence.

    Every write stamps updated_at so that observers can order concurrent
    versions of the same event.

    Attributes:
        db_client: Async Supabase client instance for database operations.
        table_name: Set to "interview_events" for this repository.
    """

    def __init__(self, db_client: AsyncClient):
        """Initialize the repository with a database client.

        Args:
            db_client: Async Supabase client instance.
        """
        super().__init__(db_client, EVENTS_TABLE)

    async def create_event(self, event_data: Dict[str, Any]) -> StageEvent:
        """Insert a new stage event.

        Args:
            event_data: Dictionary containing event information.
                Should include: interview_candidate_id, stage_id, status,
                and optional fields like scheduled_at, notes, ai_score.

        Returns:
            The inserted StageEvent.
        """
        row = await self.create({**event_data, "updated_at": utc_now_iso()})
        return StageEvent(**row)

    async def update_event(self, event_id: str, updates: Dict[str, Any]) -> StageEvent:
        """Update a stage event with new data.

        Args:
            event_id: The unique identifier of the event.
            updates: Dictionary of fields to update.

        Returns:
            Updated StageEvent.

        Raises:
            PersistenceError: If update fails or event not found.
        """
        # Auto-update the updated_at timestamp
        row = await self.update(event_id, {**updates, "updated_at": utc_now_iso()})
        return StageEvent(**row)

    async def get_by_candidate(self, interview_candidate_id: str) -> List[StageEvent]:
        """Retrieve all events of a pipeline candidate, oldest first.

        Args:
            interview_candidate_id: The interview candidate's unique identifier.

        Returns:
            List of StageEvent objects ordered by created_at.
        """
        rows = await self.get_where(
            {"interview_candidate_id": interview_candidate_id},
            order_by="created_at"
        )
        return [StageEvent(**row) for row in rows]

    async def get_by_candidate_and_stage(self, interview_candidate_id: str, stage_id: str) -> List[StageEvent]:
        """Retrieve every attempt of a candidate at one stage, oldest first."""
        rows = await self.get_where(
            {"interview_candidate_id": interview_candidate_id, "stage_id": stage_id},
            order_by="created_at"
        )
        return [StageEvent(**row) for row in rows]

    async def get_by_candidates(self, interview_candidate_ids: List[str]) -> List[StageEvent]:
        """Retrieve the events of several candidates in one query."""
        rows = await self.get_where_in("interview_candidate_id", interview_candidate_ids, order_by="created_at")
        return [StageEvent(**row) for row in rows]
