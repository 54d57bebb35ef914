"""Service for AI-driven progression through automated interview stages."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from app.constants import AUTO_PROGRESS_STAGE_DELAY_SECONDS, DEFAULT_PRIOR_AI_SCORE
from app.exceptions import ValidationFailure
from app.models.pipeline import CandidateStatus, EventStatus, PipelineCandidate, Stage
from app.models.results import AutoProgressResult, AutoProgressStageResult, StageEvaluation
from app.repositories.base_repository import utc_now_iso
from app.services.event_lifecycle import active_event, is_terminal
from app.services.pipeline_service import PipelineService
from app.services.scoring_service import ScoringService


logger = logging.getLogger(__name__)


class AutoProgressService:
    """Evaluates a candidate stage by stage with the AI scorer.

    Starting at the candidate's current stage, each stage is evaluated and
    recorded. Evaluation stops before the first non-automated stage other
    than the one the candidate is at, when the candidate fails a stage, or
    after the final stage.

    Attributes:
        pipeline_service: PipelineService providing repositories and locking.
        scoring_service: ScoringService used for stage evaluations.
        stage_delay: Seconds to wait between stage evaluations.
    """

    def __init__(
        self,
        pipeline_service: PipelineService,
        scoring_service: ScoringService,
        stage_delay: float = AUTO_PROGRESS_STAGE_DELAY_SECONDS
    ):
        self.pipeline_service = pipeline_service
        self.scoring_service = scoring_service
        self.stage_delay = stage_delay

    async def auto_progress(
        self,
        candidate_id: str,
        auto_progress_all: bool = True,
        job_title: Optional[str] = None
    ) -> AutoProgressResult:
        """Run AI evaluation over the candidate's automated stages.

        Args:
            candidate_id: Interview candidate ID.
            auto_progress_all: Keep going after the first passed stage.
            job_title: Job title given to the evaluator.

        Returns:
            AutoProgressResult with status "skipped", "progressed",
            "rejected" or "completed".

        Raises:
            NotFound: If the candidate does not exist.
            ValidationFailure: If the job has no stages configured.
            AIScoringError: If an evaluation fails.
        """
        candidate = await self.pipeline_service.require_candidate(candidate_id)

        if candidate.status != CandidateStatus.ACTIVE.value:
            return AutoProgressResult(
                status="skipped",
                message=f"Candidate is {candidate.status}, cannot progress"
            )

        stages = await self.pipeline_service.stage_catalog.get_stages(candidate.job_id)
        if not stages:
            raise ValidationFailure(f"No interview stages configured for job {candidate.job_id}")

        current_order = next(
            (stage.stage_order for stage in stages if stage.id == candidate.current_stage_id),
            stages[0].stage_order
        )
        results: List[AutoProgressStageResult] = []
        evaluated = 0

        for index, stage in enumerate(stages):
            if stage.stage_order < current_order:
                continue

            if not stage.is_ai_automated and stage.stage_order != current_order:
                logger.info(f"Stopping at non-automated stage {stage.name} for candidate {candidate_id}")
                break

            if evaluated:
                await asyncio.sleep(self.stage_delay)
            evaluated += 1

            logger.info(f"Evaluating {stage.name} (order {stage.stage_order}) for candidate {candidate_id}")
            evaluation = await self.scoring_service.evaluate_stage(
                candidate.display_name,
                job_title or "Position",
                stage.name,
                candidate.ai_score if candidate.ai_score is not None else DEFAULT_PRIOR_AI_SCORE,
                candidate.ai_analysis or {}
            )

            next_stage = stages[index + 1] if index + 1 < len(stages) else None
            recorded = await self._record_evaluation(candidate, stage, evaluation, next_stage)
            if recorded is None:
                return AutoProgressResult(
                    status="skipped",
                    message=f"Candidate changed while {stage.name} was being evaluated, stopping",
                    results=results
                )
            candidate = recorded
            results.append(AutoProgressStageResult(
                stage=stage.name,
                stage_order=stage.stage_order,
                score=evaluation.score,
                passed=evaluation.passed,
                feedback=evaluation.feedback
            ))

            await self.pipeline_service.notify_transition(
                candidate,
                stage.name,
                evaluation.passed,
                evaluation.score,
                evaluation.feedback,
                next_stage.name if evaluation.passed and next_stage else None
            )

            if not evaluation.passed:
                return AutoProgressResult(
                    status="rejected",
                    message=f"Candidate did not pass {stage.name} (Score: {evaluation.score:g}%)",
                    current_stage=stage.name,
                    rejected_at=stage.name,
                    results=results
                )

            if next_stage is None:
                return AutoProgressResult(
                    status="completed",
                    message="Candidate has successfully completed all interview stages",
                    current_stage=stage.name,
                    results=results
                )

            if not auto_progress_all:
                return AutoProgressResult(
                    status="progressed",
                    message=f"Candidate advanced to {next_stage.name}",
                    current_stage=next_stage.name,
                    results=results
                )

        current = next((stage for stage in stages if stage.id == candidate.current_stage_id), None)
        current_name = current.name if current else None
        return AutoProgressResult(
            status="progressed",
            message=f"Pipeline processing complete. Current stage: {current_name}",
            current_stage=current_name,
            results=results
        )

    async def _record_evaluation(
        self,
        candidate: PipelineCandidate,
        stage: Stage,
        evaluation: StageEvaluation,
        next_stage: Optional[Stage]
    ) -> Optional[PipelineCandidate]:
        """Store a stage evaluation and move the candidate accordingly.

        Returns:
            The updated candidate, or None if the candidate was rejected,
            moved or otherwise changed since the evaluation started.
        """
        service = self.pipeline_service
        fields: Dict[str, Any] = {
            "status": EventStatus.COMPLETED.value if evaluation.passed else EventStatus.FAILED.value,
            "completed_at": utc_now_iso(),
            "ai_score": evaluation.score,
            "ai_feedback": evaluation.details,
            "notes": evaluation.feedback
        }

        async with service.candidate_lock(candidate.id):
            latest = await service.require_candidate(candidate.id)
            if latest.status != CandidateStatus.ACTIVE.value or latest.current_stage_id != candidate.current_stage_id:
                logger.warning(
                    f"Candidate {candidate.id} changed during evaluation of {stage.name} "
                    f"(status {latest.status}), discarding result"
                )
                return None

            attempts = await service.event_repository.get_by_candidate_and_stage(candidate.id, stage.id)
            event = active_event(attempts, stage.id)
            if event is not None and not is_terminal(event.status):
                await service.event_repository.update_event(event.id, fields)
            else:
                await service.event_repository.create_event({
                    "interview_candidate_id": candidate.id,
                    "stage_id": stage.id,
                    **fields
                })

            if not evaluation.passed:
                updates = {"status": CandidateStatus.REJECTED.value, "current_stage_id": stage.id}
            elif next_stage is not None:
                updates = {"current_stage_id": next_stage.id}
            else:
                updates = {"status": CandidateStatus.HIRED.value}

            return await service.candidate_repository.update_candidate(candidate.id, updates)
