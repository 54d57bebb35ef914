"""Repository for interview stage configuration."""

from typing import List, Optional

from supabase import AsyncClient

from app.constants import STAGES_TABLE
from app.exceptions import PersistenceError
from app.models.pipeline import Stage
from app.repositories.base_repository import BaseRepository


class StageRepository(BaseRepository):
    """Read access to the interview stage catalog.

    Stages are configured outside this service; the repository never writes.

    Attributes:
        db_client: Async Supabase client instance for database operations.
        table_name: Set to "interview_stages" for this repository.
    """

    def __init__(self, db_client: AsyncClient):
        """Initialize the repository with a database client.

        Args:
            db_client: Async Supabase client instance.
        """
        super().__init__(db_client, STAGES_TABLE)

    async def get_stage(self, stage_id: str) -> Optional[Stage]:
        """Retrieve a single stage by ID, or None if it does not exist."""
        row = await self.get_by_id(stage_id)
        return Stage(**row) if row else None

    async def get_all_ordered(self) -> List[Stage]:
        """Retrieve every configured stage ordered by stage_order.

        Returns:
            List of Stage objects across all pipelines.
        """
        try:
            response = await (
                self.db_client.table(self.table_name)
                .select("*")
                .order("stage_order")
                .execute()
            )
            return [Stage(**row) for row in response.data or []]
        except Exception as error:
            raise PersistenceError(f"Failed to get interview stages: {str(error)}") from error
