"""Service for moving candidates through interview pipelines.

PipelineService is the only writer of a candidate's current stage and of
stage event status. Multi-step operations record compensating actions so a
failure part way either restores the earlier state or is reported as
requiring manual cleanup.
"""

import asyncio
import logging
import weakref
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import partial
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from app.exceptions import (
    CascadeFailure,
    DispatchFailure,
    InvalidTransition,
    NotFound,
    PipelineError,
    ValidationFailure
)
from app.models.pipeline import (
    CandidatePipelineView,
    CandidateStatus,
    EventStatus,
    InvitationEmailStatus,
    PipelineCandidate,
    PipelineStageSnapshot,
    PipelineStep,
    Stage,
    StageDirection,
    StageEvent,
    StepStatus
)
from app.models.results import (
    AdvanceResult,
    BulkMoveItem,
    BulkMoveResult,
    RemovalResult,
    ScheduleResult
)
from app.repositories.base_repository import utc_now_iso
from app.repositories.candidate_repository import CandidateRepository
from app.repositories.event_repository import EventRepository
from app.repositories.invitation_repository import InvitationRepository
from app.repositories.response_repository import ResponseRepository
from app.services.compensation import CompensationLog, remediation_logger
from app.services.event_lifecycle import (
    COMPLETED_STATUSES,
    TERMINAL_STATUSES,
    active_event,
    ensure_transition,
    is_terminal,
    parse_status
)
from app.services.notification_service import NotificationService
from app.services.scoring_service import ScoringService
from app.services.stage_catalog import StageCatalog, resolve_adjacent_stage


logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def compute_progress(events: Sequence[StageEvent], stages: Sequence[Stage]) -> int:
    """Percentage of pipeline stages a candidate has completed.

    A stage counts once it has any event with status passed or completed.
    Only the given stages are considered, so callers that hide automated
    pre-screens pass the filtered list.

    Args:
        events: The candidate's stage events.
        stages: Stages making up the pipeline.

    Returns:
        Integer percentage from 0 to 100. An empty pipeline yields 0.
    """
    if not stages:
        return 0

    stage_ids = {stage.id for stage in stages}
    completed = {
        event.stage_id
        for event in events
        if event.stage_id in stage_ids and event.status in COMPLETED_STATUSES
    }
    return min(100, round(len(completed) * 100 / len(stage_ids)))


def build_steps(
    candidate: PipelineCandidate,
    stages: Sequence[Stage],
    events: Sequence[StageEvent]
) -> List[PipelineStep]:
    """Derive the per-stage display state of a candidate.

    Stages with an event take their status from the active event. Without
    an event, the current stage is "current", earlier stages count as
    completed and later ones are pending. A candidate without a current stage
    is shown at the first stage.
    """
    current_id = candidate.current_stage_id or (stages[0].id if stages else None)
    current_order = next((stage.stage_order for stage in stages if stage.id == current_id), None)

    steps = []
    for stage in stages:
        event = active_event(events, stage.id)
        if event is not None:
            if event.status in COMPLETED_STATUSES:
                status = StepStatus.COMPLETED
            elif event.status == EventStatus.FAILED.value:
                status = StepStatus.FAILED
            elif event.status == EventStatus.IN_PROGRESS.value:
                status = StepStatus.IN_PROGRESS
            else:
                status = StepStatus.CURRENT
        elif stage.id == current_id:
            status = StepStatus.CURRENT
        elif current_order is not None and stage.stage_order < current_order:
            status = StepStatus.COMPLETED
        else:
            status = StepStatus.PENDING

        steps.append(PipelineStep(
            stage_id=stage.id,
            stage_name=stage.name,
            stage_order=stage.stage_order,
            status=status,
            event_id=event.id if event else None,
            scheduled_at=event.scheduled_at if event else None,
            completed_at=event.completed_at if event else None,
            ai_score=event.ai_score if event else None,
            notes=event.notes if event else None
        ))
    return steps


class PipelineService:
    """Service for candidate position and stage event management.

    Operations on the same candidate issued within this process run one at
    a time. Writes from other processes are not coordinated; the last write
    to commit wins.

    Attributes:
        stage_catalog: StageCatalog for ordered stages per job.
        candidate_repository: Repository for interview candidates.
        event_repository: Repository for stage events.
        invitation_repository: Repository for invitations.
        response_repository: Repository for interview responses.
        notification_service: Optional NotificationService for emails.
        scoring_service: Optional ScoringService for resume scoring.
    """

    def __init__(
        self,
        stage_catalog: StageCatalog,
        candidate_repository: CandidateRepository,
        event_repository: EventRepository,
        invitation_repository: InvitationRepository,
        response_repository: ResponseRepository,
        notification_service: Optional[NotificationService] = None,
        scoring_service: Optional[ScoringService] = None
    ):
        """Initialize the service with its repositories and collaborators.

        Args:
            stage_catalog: StageCatalog instance.
            candidate_repository: CandidateRepository instance.
            event_repository: EventRepository instance.
            invitation_repository: InvitationRepository instance.
            response_repository: ResponseRepository instance.
            notification_service: Optional NotificationService for emails.
            scoring_service: Optional ScoringService for resume scoring.
        """
        self.stage_catalog = stage_catalog
        self.candidate_repository = candidate_repository
        self.event_repository = event_repository
        self.invitation_repository = invitation_repository
        self.response_repository = response_repository
        self.notification_service = notification_service
        self.scoring_service = scoring_service
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def candidate_lock(self, candidate_id: str) -> AsyncIterator[None]:
        """Serialize operations on one candidate within this process."""
        lock = self._locks.get(candidate_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[candidate_id] = lock
        async with lock:
            yield

    # Moves

    async def move_candidate(self, candidate_id: str, target_stage_id: str) -> PipelineCandidate:
        """Set a candidate's current stage.

        The target does not need to be adjacent to the current stage, and no
        event is created; call schedule_stage for that.

        Args:
            candidate_id: Interview candidate ID.
            target_stage_id: Stage to move the candidate to.

        Returns:
            Updated PipelineCandidate.

        Raises:
            NotFound: If the candidate or stage does not exist.
            ValidationFailure: If the stage is not part of the candidate's job pipeline.
        """
        async with self.candidate_lock(candidate_id):
            candidate = await self.require_candidate(candidate_id)
            stage = await self.require_stage(target_stage_id)
            stages = await self.stage_catalog.get_stages(candidate.job_id)
            self._ensure_in_pipeline(stage, stages, candidate)

            updated = await self.candidate_repository.update_candidate(
                candidate_id, {"current_stage_id": stage.id}
            )

        logger.info(f"Moved candidate {candidate_id} to stage {stage.name}")
        return updated

    async def bulk_move(self, candidate_ids: Sequence[str], target_stage_id: str) -> BulkMoveResult:
        """Move several candidates to one stage independently.

        Each move succeeds or fails on its own; failures never undo the
        moves that succeeded.

        Args:
            candidate_ids: Interview candidate IDs to move.
            target_stage_id: Stage to move them to.

        Returns:
            BulkMoveResult with one item per requested ID, in request order.
        """
        items = await asyncio.gather(
            *(self._bulk_move_one(candidate_id, target_stage_id) for candidate_id in candidate_ids)
        )
        result = BulkMoveResult(target_stage_id=target_stage_id, items=list(items))

        if result.has_failures:
            logger.warning(
                f"Bulk move to {target_stage_id}: {len(result.succeeded)} moved, "
                f"{len(result.failed)} failed ({', '.join(result.failed)})"
            )
        return result

    async def _bulk_move_one(self, candidate_id: str, target_stage_id: str) -> BulkMoveItem:
        try:
            candidate = await self.move_candidate(candidate_id, target_stage_id)
        except PipelineError as error:
            return BulkMoveItem(
                candidate_id=candidate_id,
                success=False,
                error=str(error),
                error_type=type(error).__name__
            )
        return BulkMoveItem(candidate_id=candidate_id, success=True, candidate=candidate)

    async def advance_to_next_stage(self, candidate_id: str) -> AdvanceResult:
        """Pass the current stage and move the candidate to the next one.

        Steps, in order:
        1. Mark the active event of the current stage as passed
        2. Set the candidate's current stage to the next stage
        3. Create a pending event for the next stage

        A candidate without a current stage enters the first stage. A
        candidate at the final stage is left untouched.

        Args:
            candidate_id: Interview candidate ID.

        Returns:
            AdvanceResult; advanced is False at the final stage.

        Raises:
            NotFound: If the candidate does not exist.
            ValidationFailure: If the job has no stages or the current stage
                is outside the job pipeline.
            InvalidTransition: If the current stage was failed.
            PartialUpdateFailure: If a step failed and rollback failed too.
        """
        async with self.candidate_lock(candidate_id):
            candidate = await self.require_candidate(candidate_id)
            stages = await self.stage_catalog.get_stages(candidate.job_id)
            if not stages:
                raise ValidationFailure(f"No interview stages configured for job {candidate.job_id}")

            current = self._find_stage(stages, candidate.current_stage_id)
            if candidate.current_stage_id and current is None:
                raise ValidationFailure(
                    f"Current stage {candidate.current_stage_id} is not part of job {candidate.job_id}"
                )

            next_stage = stages[0] if current is None else resolve_adjacent_stage(
                stages, current.id, StageDirection.NEXT
            )
            if next_stage is None:
                return AdvanceResult(
                    advanced=False,
                    message=f"Candidate is already at final stage ({current.name})",
                    previous_stage=current,
                    current_stage=current
                )

            events = await self.event_repository.get_by_candidate(candidate_id)
            log = CompensationLog("advance_to_next_stage", candidate_id)
            passed_event = None

            try:
                if current is not None:
                    passed_event = await self._mark_passed(candidate_id, current, events, log)
                await self._set_current_stage(candidate, next_stage.id, log)
                new_event = await self.event_repository.create_event({
                    "interview_candidate_id": candidate_id,
                    "stage_id": next_stage.id,
                    "status": EventStatus.PENDING.value
                })
            except Exception as error:
                await log.rollback(error)
                raise

        logger.info(
            f"Advanced candidate {candidate_id} from "
            f"{current.name if current else 'no stage'} to {next_stage.name}"
        )
        return AdvanceResult(
            advanced=True,
            message=f"Candidate advanced to {next_stage.name}",
            previous_stage=current,
            current_stage=next_stage,
            passed_event=passed_event,
            new_event=new_event
        )

    async def _mark_passed(
        self,
        candidate_id: str,
        stage: Stage,
        events: Sequence[StageEvent],
        log: CompensationLog
    ) -> StageEvent:
        event = active_event(events, stage.id)

        if event is None:
            created = await self.event_repository.create_event({
                "interview_candidate_id": candidate_id,
                "stage_id": stage.id,
                "status": EventStatus.PASSED.value,
                "completed_at": utc_now_iso()
            })
            log.record(f"delete event {created.id}", partial(self.event_repository.delete, created.id))
            return created

        if event.status in COMPLETED_STATUSES:
            return event

        ensure_transition(event.status, EventStatus.PASSED.value)
        previous = {"status": event.status, "completed_at": _iso(event.completed_at)}
        updated = await self.event_repository.update_event(event.id, {
            "status": EventStatus.PASSED.value,
            "completed_at": utc_now_iso()
        })
        log.record(
            f"restore event {event.id} to {event.status}",
            partial(self.event_repository.update_event, event.id, previous)
        )
        return updated

    async def _set_current_stage(
        self,
        candidate: PipelineCandidate,
        stage_id: str,
        log: CompensationLog,
        extra: Optional[Dict[str, Any]] = None
    ) -> PipelineCandidate:
        updates: Dict[str, Any] = {"current_stage_id": stage_id, **(extra or {})}
        previous = {field: getattr(candidate, field) for field in updates}

        updated = await self.candidate_repository.update_candidate(candidate.id, updates)
        log.record(
            f"restore candidate {candidate.id} fields {', '.join(previous)}",
            partial(self.candidate_repository.update_candidate, candidate.id, previous)
        )
        return updated

    # Scheduling

    async def schedule_stage(
        self,
        candidate_id: str,
        stage_id: str,
        scheduled_at: Optional[datetime],
        meeting_link: Optional[str],
        attendees: Sequence[str] = (),
        assessment_attendees: Sequence[str] = (),
        notes: Optional[str] = None
    ) -> ScheduleResult:
        """Schedule a stage for a candidate and send the invitation.

        An open (non-terminal) event for the same stage is rescheduled in
        place and its invitation link updated. Otherwise a new pending event
        and a new invitation with a fresh token are created. The candidate's
        current stage becomes the scheduled stage.

        The schedule is committed before the invitation is sent. A failed
        send is reported on the result and never undoes the schedule.

        Args:
            candidate_id: Interview candidate ID.
            stage_id: Stage to schedule.
            scheduled_at: When the stage takes place.
            meeting_link: Link to the interview meeting.
            attendees: Panel attendee emails.
            assessment_attendees: Assessment member emails.
            notes: Free-text notes for the event and email.

        Returns:
            ScheduleResult with the event, invitation and notification outcome.

        Raises:
            ValidationFailure: If scheduled_at or meeting_link is missing, or
                the stage is outside the candidate's pipeline.
            NotFound: If the candidate or stage does not exist.
            InvalidTransition: If the stage's interview is already in progress.
            PartialUpdateFailure: If a step failed and rollback failed too.
        """
        if scheduled_at is None:
            raise ValidationFailure("scheduled_at is required to schedule a stage")
        if not meeting_link or not meeting_link.strip():
            raise ValidationFailure("meeting_link is required to schedule a stage")

        scheduled_at = _as_utc(scheduled_at)
        meeting_link = meeting_link.strip()

        async with self.candidate_lock(candidate_id):
            candidate = await self.require_candidate(candidate_id)
            stage = await self.require_stage(stage_id)
            stages = await self.stage_catalog.get_stages(candidate.job_id)
            self._ensure_in_pipeline(stage, stages, candidate)

            attempts = await self.event_repository.get_by_candidate_and_stage(candidate_id, stage_id)
            existing = active_event(attempts, stage_id)
            if existing is not None and is_terminal(existing.status):
                # Retrying a concluded stage starts a new attempt
                existing = None
            if existing is not None and existing.status == EventStatus.IN_PROGRESS.value:
                raise InvalidTransition(existing.status, EventStatus.PENDING.value)

            log = CompensationLog("schedule_stage", candidate_id)
            try:
                if existing is not None:
                    event, invitation = await self._reschedule(existing, scheduled_at, meeting_link, notes, log)
                else:
                    event = await self.event_repository.create_event({
                        "interview_candidate_id": candidate_id,
                        "stage_id": stage_id,
                        "status": EventStatus.PENDING.value,
                        "scheduled_at": scheduled_at.isoformat(),
                        "notes": notes
                    })
                    log.record(f"delete event {event.id}", partial(self.event_repository.delete, event.id))

                    invitation = await self.invitation_repository.create_invitation(event.id, meeting_link)
                    log.record(
                        f"delete invitation {invitation.id}",
                        partial(self.invitation_repository.delete, invitation.id)
                    )

                candidate = await self._set_current_stage(candidate, stage_id, log)
            except Exception as error:
                await log.rollback(error)
                raise

        result = ScheduleResult(
            event=event,
            invitation=invitation,
            candidate=candidate,
            created=existing is None
        )
        logger.info(
            f"{'Scheduled' if result.created else 'Rescheduled'} {stage.name} for candidate "
            f"{candidate_id} at {scheduled_at.isoformat()}"
        )

        await self._send_invitation(result, stage, scheduled_at, meeting_link, attendees, assessment_attendees, notes)
        return result

    async def _reschedule(
        self,
        event: StageEvent,
        scheduled_at: datetime,
        meeting_link: str,
        notes: Optional[str],
        log: CompensationLog
    ):
        ensure_transition(event.status, EventStatus.PENDING.value)
        previous = {"scheduled_at": _iso(event.scheduled_at), "status": event.status, "notes": event.notes}
        updated = await self.event_repository.update_event(event.id, {
            "scheduled_at": scheduled_at.isoformat(),
            "status": EventStatus.PENDING.value,
            "notes": notes
        })
        log.record(f"restore event {event.id}", partial(self.event_repository.update_event, event.id, previous))

        invitation = await self.invitation_repository.get_by_event(event.id)
        if invitation is None:
            invitation = await self.invitation_repository.create_invitation(event.id, meeting_link)
            log.record(f"delete invitation {invitation.id}", partial(self.invitation_repository.delete, invitation.id))
        else:
            previous_link = invitation.meeting_link
            invitation = await self.invitation_repository.update_invitation(
                invitation.id, {"meeting_link": meeting_link}
            )
            log.record(
                f"restore invitation {invitation.id} link",
                partial(self.invitation_repository.update_invitation, invitation.id, {"meeting_link": previous_link})
            )

        return updated, invitation

    async def _send_invitation(
        self,
        result: ScheduleResult,
        stage: Stage,
        scheduled_at: datetime,
        meeting_link: str,
        attendees: Sequence[str],
        assessment_attendees: Sequence[str],
        notes: Optional[str]
    ) -> None:
        if self.notification_service is None:
            result.notification_error = "Notification service is not configured"
            return

        try:
            await self.notification_service.send_interview_invitation(
                result.candidate.id,
                stage.name,
                scheduled_at,
                meeting_link,
                panel_attendee_emails=attendees,
                assessment_member_emails=assessment_attendees,
                notes=notes
            )
        except DispatchFailure as error:
            result.notification_error = str(error)
            email_updates: Dict[str, Any] = {"email_status": InvitationEmailStatus.FAILED.value}
            logger.warning(
                f"{stage.name} scheduled for candidate {result.candidate.id} but notification failed: {error}"
            )
        else:
            result.notification_sent = True
            email_updates = {"email_status": InvitationEmailStatus.SENT.value, "email_sent_at": utc_now_iso()}

        try:
            result.invitation = await self.invitation_repository.update_invitation(
                result.invitation.id, email_updates
            )
        except PipelineError as error:
            logger.warning(f"Could not record email status for invitation {result.invitation.id}: {error}")

    # Event status

    async def update_event_status(
        self,
        candidate_id: str,
        stage_id: str,
        new_status: str,
        notes: Optional[str] = None,
        ai_score: Optional[float] = None
    ) -> StageEvent:
        """Change the status of a candidate's active event for a stage.

        Transitions follow the event lifecycle table; setting the current
        status again only updates notes/score. Terminal statuses stamp
        completed_at. If the stage has no event yet, one is created.

        Args:
            candidate_id: Interview candidate ID.
            stage_id: Stage whose event changes.
            new_status: Target status.
            notes: Optional notes to store on the event.
            ai_score: Optional score to store on the event.

        Returns:
            The updated or created StageEvent.

        Raises:
            ValidationFailure: For unknown statuses or stages outside the pipeline.
            InvalidTransition: If the lifecycle forbids the change.
            NotFound: If the candidate or stage does not exist.
        """
        status = parse_status(new_status)

        async with self.candidate_lock(candidate_id):
            candidate = await self.require_candidate(candidate_id)
            stage = await self.require_stage(stage_id)
            stages = await self.stage_catalog.get_stages(candidate.job_id)
            self._ensure_in_pipeline(stage, stages, candidate)

            attempts = await self.event_repository.get_by_candidate_and_stage(candidate_id, stage_id)
            event = active_event(attempts, stage_id)

            updates: Dict[str, Any] = {}
            if notes is not None:
                updates["notes"] = notes
            if ai_score is not None:
                updates["ai_score"] = ai_score

            if event is None:
                ensure_transition(None, status)
                if status in TERMINAL_STATUSES:
                    updates["completed_at"] = utc_now_iso()
                return await self.event_repository.create_event({
                    "interview_candidate_id": candidate_id,
                    "stage_id": stage_id,
                    "status": status,
                    **updates
                })

            ensure_transition(event.status, status)
            if event.status != status:
                updates["status"] = status
                if status in TERMINAL_STATUSES:
                    updates["completed_at"] = utc_now_iso()

            if not updates:
                return event

            updated = await self.event_repository.update_event(event.id, updates)

        logger.info(f"Event {event.id} of candidate {candidate_id} at {stage.name}: {event.status} -> {status}")
        return updated

    async def reject_candidate(
        self,
        candidate_id: str,
        notes: Optional[str] = None,
        ai_score: Optional[float] = None
    ) -> PipelineCandidate:
        """Fail the candidate's current stage and mark the candidate rejected.

        Args:
            candidate_id: Interview candidate ID.
            notes: Reason recorded on the failed event.
            ai_score: Optional score recorded on the failed event.

        Returns:
            Updated PipelineCandidate.
        """
        async with self.candidate_lock(candidate_id):
            candidate = await self.require_candidate(candidate_id)
            stages = await self.stage_catalog.get_stages(candidate.job_id)
            current = self._find_stage(stages, candidate.current_stage_id)

            log = CompensationLog("reject_candidate", candidate_id)
            try:
                if current is not None:
                    events = await self.event_repository.get_by_candidate_and_stage(candidate_id, current.id)
                    await self._mark_failed(candidate_id, current, events, notes or "Candidate rejected", ai_score, log)

                previous_status = candidate.status
                updated = await self.candidate_repository.update_candidate(
                    candidate_id, {"status": CandidateStatus.REJECTED.value}
                )
                log.record(
                    f"restore candidate {candidate_id} status",
                    partial(self.candidate_repository.update_candidate, candidate_id, {"status": previous_status})
                )
            except Exception as error:
                await log.rollback(error)
                raise

        logger.info(f"Rejected candidate {candidate_id} at {current.name if current else 'no stage'}")
        await self.notify_transition(updated, current.name if current else "Application", False, ai_score, notes)
        return updated

    async def _mark_failed(
        self,
        candidate_id: str,
        stage: Stage,
        events: Sequence[StageEvent],
        notes: str,
        ai_score: Optional[float],
        log: CompensationLog
    ) -> StageEvent:
        event = active_event(events, stage.id)
        fields: Dict[str, Any] = {
            "status": EventStatus.FAILED.value,
            "completed_at": utc_now_iso(),
            "notes": notes
        }
        if ai_score is not None:
            fields["ai_score"] = ai_score

        if event is not None and event.status == EventStatus.FAILED.value:
            return event

        if event is not None and not is_terminal(event.status):
            previous = {
                "status": event.status,
                "completed_at": _iso(event.completed_at),
                "notes": event.notes,
                "ai_score": event.ai_score
            }
            updated = await self.event_repository.update_event(event.id, fields)
            log.record(f"restore event {event.id}", partial(self.event_repository.update_event, event.id, previous))
            return updated

        created = await self.event_repository.create_event({
            "interview_candidate_id": candidate_id,
            "stage_id": stage.id,
            **fields
        })
        log.record(f"delete event {created.id}", partial(self.event_repository.delete, created.id))
        return created

    async def notify_transition(
        self,
        candidate: PipelineCandidate,
        stage_name: str,
        passed: bool,
        score: Optional[float] = None,
        feedback: Optional[str] = None,
        next_stage_name: Optional[str] = None
    ) -> bool:
        """Send a stage outcome email; failures are logged and reported as False."""
        if self.notification_service is None:
            return False

        try:
            await self.notification_service.send_stage_transition(
                candidate.id, stage_name, passed, score, feedback, next_stage_name
            )
        except DispatchFailure as error:
            logger.warning(f"Stage notification for candidate {candidate.id} failed: {error}")
            return False
        return True

    # Removal

    async def remove_candidate(self, candidate_id: str) -> RemovalResult:
        """Delete a candidate and every record that depends on it.

        Deletes, in order: interview responses of the candidate's events,
        invitations of those events, the events, then the candidate. Steps
        are not undone on failure; deleted records stay deleted.

        Args:
            candidate_id: Interview candidate ID.

        Returns:
            RemovalResult with counts per record set.

        Raises:
            NotFound: If the candidate does not exist. Nothing was deleted.
            PersistenceError: If the first delete failed. Nothing was deleted.
            CascadeFailure: If a later step failed. completed_steps lists what
                was already deleted; manual cleanup is required.
        """
        async with self.candidate_lock(candidate_id):
            await self.require_candidate(candidate_id)
            events = await self.event_repository.get_by_candidate(candidate_id)
            event_ids = [event.id for event in events]

            steps = [
                ("responses", partial(self.response_repository.delete_where_in, "interview_event_id", event_ids)),
                ("invitations", partial(self.invitation_repository.delete_where_in, "interview_event_id", event_ids)),
                ("events", partial(self.event_repository.delete_where_in, "interview_candidate_id", [candidate_id])),
                ("candidate", partial(self.candidate_repository.delete, candidate_id)),
            ]

            result = RemovalResult(candidate_id=candidate_id)
            for step_name, step in steps:
                try:
                    deleted = await step()
                except Exception as error:
                    if not result.completed_steps:
                        raise
                    failure = CascadeFailure(candidate_id, result.completed_steps, step_name, error)
                    remediation_logger.error(str(failure))
                    raise failure from error

                result.completed_steps.append(step_name)
                if step_name == "responses":
                    result.responses_deleted = deleted
                elif step_name == "invitations":
                    result.invitations_deleted = deleted
                elif step_name == "events":
                    result.events_deleted = deleted

        logger.info(
            f"Removed candidate {candidate_id} with {result.events_deleted} events, "
            f"{result.invitations_deleted} invitations and {result.responses_deleted} responses"
        )
        return result

    # AI scoring

    async def score_candidate(
        self,
        candidate_id: str,
        candidate_profile: Dict[str, Any],
        job_details: Dict[str, Any]
    ) -> PipelineCandidate:
        """Score a candidate's resume and store the score and analysis.

        Raises:
            ValidationFailure: If no scoring service is configured.
            NotFound: If the candidate does not exist.
            AIScoringError: If the scoring service fails.
        """
        if self.scoring_service is None:
            raise ValidationFailure("AI scoring is not configured")

        candidate = await self.require_candidate(candidate_id)
        score, analysis = await self.scoring_service.analyze_resume(
            candidate_id,
            candidate.job_id,
            candidate_profile,
            job_details,
            candidate.resume_url
        )

        async with self.candidate_lock(candidate_id):
            current = await self.require_candidate(candidate_id)
            merged = {**(current.ai_analysis or {}), **analysis}
            return await self.candidate_repository.update_candidate(
                candidate_id, {"ai_score": score, "ai_analysis": merged}
            )

    # Read projections

    async def get_progress(self, candidate_id: str, stages: Optional[Sequence[Stage]] = None) -> int:
        """Completed stage percentage for a candidate.

        Args:
            candidate_id: Interview candidate ID.
            stages: Stages to count; defaults to the full job pipeline.
        """
        candidate = await self.require_candidate(candidate_id)
        if stages is None:
            stages = await self.stage_catalog.get_stages(candidate.job_id)
        events = await self.event_repository.get_by_candidate(candidate_id)
        return compute_progress(events, stages)

    async def get_candidate_steps(self, candidate_id: str) -> CandidatePipelineView:
        """A candidate with per-stage display state and progress."""
        candidate = await self.require_candidate(candidate_id)
        stages = await self.stage_catalog.get_stages(candidate.job_id)
        events = await self.event_repository.get_by_candidate(candidate_id)
        return CandidatePipelineView(
            candidate=candidate,
            steps=build_steps(candidate, stages, events),
            progress=compute_progress(events, stages)
        )

    async def get_pipeline_snapshot(self, job_id: str) -> List[PipelineStageSnapshot]:
        """Group a job's active candidates by the stage they are at.

        Candidates without a current stage are listed at the first stage.

        Args:
            job_id: Job whose pipeline is requested.

        Returns:
            One PipelineStageSnapshot per stage, in stage order.
        """
        stages = await self.stage_catalog.get_stages(job_id)
        snapshots = [PipelineStageSnapshot(stage=stage) for stage in stages]
        if not stages:
            return snapshots

        candidates = await self.candidate_repository.get_by_job(job_id, status=CandidateStatus.ACTIVE.value)
        events = await self.event_repository.get_by_candidates([candidate.id for candidate in candidates])

        events_by_candidate: Dict[str, List[StageEvent]] = defaultdict(list)
        for event in events:
            events_by_candidate[event.interview_candidate_id].append(event)

        by_stage = {snapshot.stage.id: snapshot for snapshot in snapshots}
        for candidate in candidates:
            stage_id = candidate.current_stage_id
            if stage_id not in by_stage:
                if stage_id is not None:
                    logger.warning(f"Candidate {candidate.id} points at stage {stage_id} outside job {job_id}")
                stage_id = stages[0].id

            candidate_events = events_by_candidate[candidate.id]
            by_stage[stage_id].candidates.append(CandidatePipelineView(
                candidate=candidate,
                steps=build_steps(candidate, stages, candidate_events),
                progress=compute_progress(candidate_events, stages)
            ))

        return snapshots

    # Helpers

    async def require_candidate(self, candidate_id: str) -> PipelineCandidate:
        candidate = await self.candidate_repository.get_candidate(candidate_id)
        if candidate is None:
            raise NotFound("Interview candidate", candidate_id)
        return candidate

    async def require_stage(self, stage_id: str) -> Stage:
        stage = await self.stage_catalog.get_stage(stage_id)
        if stage is None:
            raise NotFound("Interview stage", stage_id)
        return stage

    @staticmethod
    def _find_stage(stages: Sequence[Stage], stage_id: Optional[str]) -> Optional[Stage]:
        if stage_id is None:
            return None
        return next((stage for stage in stages if stage.id == stage_id), None)

    @staticmethod
    def _ensure_in_pipeline(stage: Stage, stages: Sequence[Stage], candidate: PipelineCandidate) -> None:
        if all(existing.id != stage.id for existing in stages):
            raise ValidationFailure(f"Stage {stage.name} is not part of job {candidate.job_id} pipeline")
