"""Repository for interview invitation data access operations."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Any

from supabase import AsyncClient

from app.constants import INVITATIONS_TABLE, INVITATION_EXPIRY_DAYS, INVITATION_TOKEN_BYTES
from app.models.pipeline import Invitation, InvitationEmailStatus
from app.repositories.base_repository import BaseRepository


class InvitationRepository(BaseRepository):
    """Repository for managing interview invitation persistence.

    Attributes:
        db_client: Async Supabase client instance for database operations.
        table_name: Set to "interview_invitations" for this repository.
    """

    def __init__(self, db_client: AsyncClient):
        """Initialize the repository with a database client.

        Args:
            db_client: Async Supabase client instance.
        """
        super().__init__(db_client, INVITATIONS_TABLE)

    async def create_invitation(
        self,
        event_id: str,
        meeting_link: Optional[str],
        expiry_days: int = INVITATION_EXPIRY_DAYS
    ) -> Invitation:
        """Create an invitation with a fresh token for a stage event.

        Args:
            event_id: The stage event the token grants access to.
            meeting_link: Link to the interview meeting.
            expiry_days: Days until the token expires.

        Returns:
            The inserted Invitation.
        """
        expires_at = datetime.now(timezone.utc) + timedelta(days=expiry_days)
        row = await self.create({
            "interview_event_id": event_id,
            "invitation_token": secrets.token_urlsafe(INVITATION_TOKEN_BYTES),
            "meeting_link": meeting_link,
            "expires_at": expires_at.isoformat(),
            "email_status": InvitationEmailStatus.PENDING.value
        })
        return Invitation(**row)

    async def get_by_event(self, event_id: str) -> Optional[Invitation]:
        """Retrieve the most recent invitation for a stage event."""
        rows = await self.get_where({"interview_event_id": event_id}, order_by="created_at", desc=True)
        return Invitation(**rows[0]) if rows else None

    async def update_invitation(self, invitation_id: str, updates: Dict[str, Any]) -> Invitation:
        """Update an invitation with new data."""
        row = await self.update(invitation_id, updates)
        return Invitation(**row)
