"""Allowed status transitions for stage events."""

from typing import Dict, FrozenSet, List, Optional, Sequence

from app.exceptions import InvalidTransition, ValidationFailure
from app.models.pipeline import EventStatus, StageEvent


TERMINAL_STATUSES: FrozenSet[str] = frozenset({
    EventStatus.PASSED.value,
    EventStatus.COMPLETED.value,
    EventStatus.FAILED.value,
})

# Statuses that count a stage as done when computing progress
COMPLETED_STATUSES: FrozenSet[str] = frozenset({
    EventStatus.PASSED.value,
    EventStatus.COMPLETED.value,
})

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    EventStatus.PENDING.value: frozenset({
        EventStatus.SCHEDULED.value,
        EventStatus.IN_PROGRESS.value,
        EventStatus.PASSED.value,
        EventStatus.COMPLETED.value,
        EventStatus.FAILED.value,
    }),
    EventStatus.SCHEDULED.value: frozenset({
        EventStatus.PENDING.value,
        EventStatus.IN_PROGRESS.value,
        EventStatus.PASSED.value,
        EventStatus.COMPLETED.value,
        EventStatus.FAILED.value,
    }),
    EventStatus.IN_PROGRESS.value: frozenset({
        EventStatus.PASSED.value,
        EventStatus.COMPLETED.value,
        EventStatus.FAILED.value,
    }),
    EventStatus.PASSED.value: frozenset(),
    EventStatus.COMPLETED.value: frozenset(),
    EventStatus.FAILED.value: frozenset(),
}


def parse_status(status: str) -> str:
    """Normalize a status to its stored string value.

    Raises:
        ValidationFailure: If the status is not a known event status.
    """
    try:
        return EventStatus(status).value
    except ValueError:
        allowed = ", ".join(member.value for member in EventStatus)
        raise ValidationFailure(f"Unknown event status '{status}'. Expected one of: {allowed}")


def is_terminal(status: Optional[str]) -> bool:
    return (status or EventStatus.PENDING.value) in TERMINAL_STATUSES


def can_transition(current: Optional[str], new: str) -> bool:
    current = parse_status(current or EventStatus.PENDING.value)
    new = parse_status(new)
    if current == new:
        return True
    return new in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: Optional[str], new: str) -> None:
    """Raise InvalidTransition unless current -> new is allowed."""
    if not can_transition(current, new):
        raise InvalidTransition(current or EventStatus.PENDING.value, new)


def active_event(events: Sequence[StageEvent], stage_id: str) -> Optional[StageEvent]:
    """Pick the event shown for a stage.

    The most recent non-terminal attempt wins; when every attempt is terminal
    the most recent one is returned. Events are expected oldest first.
    """
    attempts: List[StageEvent] = [event for event in events if event.stage_id == stage_id]
    if not attempts:
        return None

    for event in reversed(attempts):
        if not is_terminal(event.status):
            return event
    return attempts[-1]
