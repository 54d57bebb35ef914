"""Stage catalog: ordered interview stages per job and adjacency resolution."""

from typing import List, Optional, Sequence

from app.constants import AUTOMATED_PRESCREEN_MARKERS
from app.exceptions import ValidationFailure
from app.models.pipeline import Stage, StageDirection
from app.repositories.stage_repository import StageRepository


def order_stages(stages: Sequence[Stage]) -> List[Stage]:
    """Sort stages by stage_order.

    Args:
        stages: Stages of a single pipeline in any order.

    Returns:
        New list sorted by stage_order.

    Raises:
        ValidationFailure: If two stages share an ordinal position.
    """
    ordered = sorted(stages, key=lambda stage: stage.stage_order)
    for previous, current in zip(ordered, ordered[1:]):
        if previous.stage_order == current.stage_order:
            raise ValidationFailure(
                f"Stages {previous.name} and {current.name} share stage_order {current.stage_order}"
            )
    return ordered


def resolve_adjacent_stage(
    stages: Sequence[Stage],
    current_stage_id: Optional[str],
    direction: StageDirection = StageDirection.NEXT
) -> Optional[Stage]:
    """Find the stage one position after or before the current stage.

    Moving past either end of the pipeline is not an error; it simply has no
    adjacent stage.

    Args:
        stages: Stages of the candidate's pipeline.
        current_stage_id: ID of the stage the candidate is at.
        direction: StageDirection.NEXT or StageDirection.PREVIOUS.

    Returns:
        The adjacent Stage, or None when out of bounds or when
        current_stage_id is not part of the pipeline.

    Example:
        >>> resolve_adjacent_stage([screening, technical, hr], hr.id)
        None
    """
    ordered = order_stages(stages)
    position = next(
        (index for index, stage in enumerate(ordered) if stage.id == current_stage_id),
        None
    )
    if position is None:
        return None

    step = 1 if StageDirection(direction) == StageDirection.NEXT else -1
    target = position + step
    if target < 0 or target >= len(ordered):
        return None
    return ordered[target]


def is_automated_prescreen(stage: Stage) -> bool:
    """Check if a stage is a fully automated pre-screen hidden from operators.

    Matched on the stage name only; other AI-automated stages stay visible.
    """
    name = stage.name.lower().strip()
    return any(marker in name for marker in AUTOMATED_PRESCREEN_MARKERS)


def human_facing_stages(stages: Sequence[Stage]) -> List[Stage]:
    """Filter automated pre-screens out of the stage list shown to operators.

    This is a presentation filter: stage order and persisted data are
    untouched, and ordinals keep their gaps.
    """
    return [stage for stage in order_stages(stages) if not is_automated_prescreen(stage)]


class StageCatalog:
    """Supplies the ordered stage list for a job.

    A job uses its own stage set when one is configured, otherwise the
    shared set (stages without a job_id).

    Attributes:
        stage_repository: Repository for stage configuration.
    """

    def __init__(self, stage_repository: StageRepository):
        self.stage_repository = stage_repository

    async def get_stages(self, job_id: Optional[str] = None) -> List[Stage]:
        """Return the ordered pipeline for a job.

        Args:
            job_id: Job whose pipeline is requested. None returns the shared set.

        Returns:
            Stages ordered by stage_order.
        """
        all_stages = await self.stage_repository.get_all_ordered()

        job_stages = [stage for stage in all_stages if job_id and stage.job_id == job_id]
        if job_stages:
            return order_stages(job_stages)

        return order_stages([stage for stage in all_stages if stage.job_id is None])

    async def get_stage(self, stage_id: str) -> Optional[Stage]:
        return await self.stage_repository.get_stage(stage_id)
