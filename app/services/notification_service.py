"""Service for dispatching interview notifications through Supabase Edge Functions."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from supabase import AsyncClient

from app.constants import SEND_INVITATION_FUNCTION, SEND_STATUS_FUNCTION
from app.exceptions import DispatchFailure


logger = logging.getLogger(__name__)


class NotificationService:
    """Sends invitation and stage-transition emails.

    Delivery itself happens in the Edge Functions; this service only builds
    the payload and reports failures as DispatchFailure. Callers decide
    whether a failure matters; the pipeline service never rolls back a
    committed state change because of one.

    Attributes:
        db_client: Async Supabase client used to invoke Edge Functions.
    """

    def __init__(self, db_client: AsyncClient):
        """Initialize the notification service.

        Args:
            db_client: Async Supabase client instance.
        """
        self.db_client = db_client

    async def send_interview_invitation(
        self,
        interview_candidate_id: str,
        stage_name: str,
        scheduled_at: datetime,
        meeting_link: str,
        panel_attendee_emails: Sequence[str] = (),
        assessment_member_emails: Sequence[str] = (),
        notes: Optional[str] = None
    ) -> Any:
        """Send the invitation email for a scheduled stage.

        Args:
            interview_candidate_id: Pipeline candidate being invited.
            stage_name: Name of the scheduled stage.
            scheduled_at: When the stage takes place.
            meeting_link: Link to the interview meeting.
            panel_attendee_emails: Interview panel members to copy.
            assessment_member_emails: Assessors to copy.
            notes: Free-text notes included in the email.

        Returns:
            Edge Function response payload.

        Raises:
            DispatchFailure: If the Edge Function call fails.
        """
        body = {
            "interviewCandidateId": interview_candidate_id,
            "stageName": stage_name,
            "scheduledDate": scheduled_at.isoformat(),
            "meetingLink": meeting_link,
            "isManualInterview": True,
            "panelAttendeeEmails": list(panel_attendee_emails),
            "assessmentMemberEmails": list(assessment_member_emails),
            "additionalNotes": notes,
        }
        return await self._invoke(SEND_INVITATION_FUNCTION, body)

    async def send_stage_transition(
        self,
        interview_candidate_id: str,
        stage_name: str,
        passed: bool,
        score: Optional[float] = None,
        feedback: Optional[str] = None,
        next_stage_name: Optional[str] = None
    ) -> Any:
        """Tell the candidate the outcome of a stage.

        Raises:
            DispatchFailure: If the Edge Function call fails.
        """
        body = {
            "interviewCandidateId": interview_candidate_id,
            "stageName": stage_name,
            "passed": passed,
            "score": score,
            "feedback": feedback,
            "nextStageName": next_stage_name,
        }
        return await self._invoke(SEND_STATUS_FUNCTION, body)

    async def _invoke(self, function_name: str, body: Dict[str, Any]) -> Any:
        try:
            return await self.db_client.functions.invoke(
                function_name,
                invoke_options={"body": body, "responseType": "json"}
            )
        except Exception as error:
            logger.warning(f"Notification {function_name} failed: {error}")
            raise DispatchFailure(f"Failed to send {function_name}: {str(error)}") from error
