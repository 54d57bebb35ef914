"""Compensating actions for multi-step pipeline mutations.

Supabase offers no transaction spanning several PostgREST calls, so each
multi-step operation records how to undo every write it has committed. If a
later step fails the recorded actions run in reverse order. Rollback that
cannot complete is logged to the remediation log for manual cleanup.
"""

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Tuple

from app.constants import LOGS_DIR, REMEDIATION_LOG_FILE
from app.exceptions import PartialUpdateFailure


logger = logging.getLogger(__name__)


# Setup file logging for failures that need an operator
def setup_remediation_logger() -> logging.Logger:
    """Configure and return logger for partially applied operations.

    Creates logs directory if it doesn't exist and writes ERROR records to
    the remediation log file.

    Returns:
        Configured logger instance.
    """
    logs_dir = Path(LOGS_DIR)
    logs_dir.mkdir(exist_ok=True)

    remediation = logging.getLogger("pipeline_remediation")
    remediation.setLevel(logging.INFO)

    # Avoid duplicate handlers if logger already configured
    if not remediation.handlers:
        file_handler = logging.FileHandler(logs_dir / REMEDIATION_LOG_FILE)
        file_handler.setLevel(logging.ERROR)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        file_handler.setFormatter(formatter)
        remediation.addHandler(file_handler)

    return remediation


# Initialize logger
remediation_logger = setup_remediation_logger()


Compensation = Callable[[], Awaitable[Any]]


class CompensationLog:
    """Ordered list of undo actions for one operation.

    Attributes:
        operation: Name of the pipeline operation, used in errors and logs.
        candidate_id: Interview candidate the operation applies to.
    """

    def __init__(self, operation: str, candidate_id: str):
        self.operation = operation
        self.candidate_id = candidate_id
        self._actions: List[Tuple[str, Compensation]] = []

    def __len__(self) -> int:
        return len(self._actions)

    def record(self, description: str, action: Compensation) -> None:
        """Register the undo action for a write that just committed.

        Args:
            description: Short description of what the action restores.
            action: Zero-argument coroutine function performing the undo.
        """
        self._actions.append((description, action))

    async def rollback(self, cause: Exception) -> None:
        """Run recorded actions newest first.

        Args:
            cause: The error that interrupted the operation.

        Raises:
            PartialUpdateFailure: If any compensating action fails. The caller
                re-raises the original error when rollback succeeds.
        """
        if not self._actions:
            return

        logger.warning(
            f"Rolling back {len(self._actions)} step(s) of {self.operation} "
            f"for candidate {self.candidate_id}: {cause}"
        )

        failed: List[str] = []
        for description, action in reversed(self._actions):
            try:
                await action()
            except Exception as error:
                failed.append(f"{description}: {error}")

        self._actions.clear()

        if failed:
            remediation_logger.error(
                f"{self.operation} for candidate {self.candidate_id} left partially applied. "
                f"Failed compensations: {'; '.join(failed)}. Cause: {cause}"
            )
            raise PartialUpdateFailure(self.operation, self.candidate_id, cause, failed) from cause
