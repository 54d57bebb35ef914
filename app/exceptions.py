"""Exception types raised by the interview pipeline services."""

from typing import List, Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class PersistenceError(PipelineError):
    """A Supabase query failed."""


class NotFound(PipelineError):
    """A referenced candidate, stage, or event does not exist."""

    def __init__(self, entity: str, entity_id: Optional[str]):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} not found")


class ValidationFailure(PipelineError):
    """Input was rejected before any write was attempted."""


class InvalidTransition(ValidationFailure):
    """An event status change is not allowed by the event lifecycle."""

    def __init__(self, current_status: str, new_status: str):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(f"Cannot change event status from {current_status} to {new_status}")


class DispatchFailure(PipelineError):
    """A notification could not be sent.

    Raised by the notification service only. The pipeline service records it
    on the operation result instead of propagating it, since the state change
    that triggered the notification has already been committed.
    """


class AIScoringError(PipelineError):
    """The AI scoring collaborator returned an error or an unusable payload."""


class CascadeFailure(PipelineError):
    """A multi-step delete stopped part way.

    Attributes:
        candidate_id: Interview candidate being removed.
        completed_steps: Names of delete steps that already committed.
        failed_step: Name of the step that failed.
    """

    requires_manual_cleanup = True

    def __init__(self, candidate_id: str, completed_steps: List[str], failed_step: str, cause: Exception):
        self.candidate_id = candidate_id
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step
        self.cause = cause
        done = ", ".join(self.completed_steps) or "none"
        super().__init__(
            f"Removal of candidate {candidate_id} failed at step '{failed_step}' "
            f"after completing: {done}. Manual cleanup required: {cause}"
        )


class PartialUpdateFailure(PipelineError):
    """A multi-step update failed and could not be rolled back.

    Attributes:
        operation: Name of the pipeline operation.
        candidate_id: Interview candidate the operation was applied to.
        failed_compensations: Descriptions of rollback actions that failed.
    """

    requires_manual_cleanup = True

    def __init__(self, operation: str, candidate_id: str, cause: Exception, failed_compensations: List[str]):
        self.operation = operation
        self.candidate_id = candidate_id
        self.cause = cause
        self.failed_compensations = list(failed_compensations)
        super().__init__(
            f"{operation} for candidate {candidate_id} partially applied and could not be "
            f"rolled back ({'; '.join(self.failed_compensations)}): {cause}"
        )
