"""Service for AI scoring of resumes and interview stages."""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from supabase import AsyncClient

from app.constants import AI_SCORING_ATTEMPTS, ANALYZE_RESUME_FUNCTION, EVALUATE_STAGE_FUNCTION
from app.exceptions import AIScoringError
from app.models.results import StageEvaluation


logger = logging.getLogger(__name__)


def clamp_score(value: Any) -> float:
    """Coerce an AI score into the 0-100 range.

    Raises:
        AIScoringError: If the value is not numeric.
    """
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise AIScoringError(f"AI score '{value}' is not a number")
    return max(0.0, min(100.0, score))


class ScoringService:
    """Client for the AI scoring Edge Functions.

    Scoring calls have no side effects on pipeline state, so a failed call is
    retried before giving up.

    Attributes:
        db_client: Async Supabase client used to invoke Edge Functions.
        attempts: Number of tries per call.
    """

    def __init__(self, db_client: AsyncClient, attempts: int = AI_SCORING_ATTEMPTS):
        """Initialize the scoring service.

        Args:
            db_client: Async Supabase client instance.
            attempts: Number of tries per call (at least 1).
        """
        self.db_client = db_client
        self.attempts = max(1, attempts)

    async def analyze_resume(
        self,
        candidate_id: str,
        job_id: str,
        candidate_profile: Dict[str, Any],
        job_details: Dict[str, Any],
        resume_url: Optional[str] = None
    ) -> Tuple[float, Dict[str, Any]]:
        """Score a candidate's resume against a job.

        Args:
            candidate_id: Interview candidate ID.
            job_id: Job the candidate applied to.
            candidate_profile: Candidate identity fields (name, email, skills...).
            job_details: Job identity fields (title, requirements, skills...).
            resume_url: Location of the resume file.

        Returns:
            Tuple of (score, analysis).

        Raises:
            AIScoringError: If every attempt fails or the payload has no score.
        """
        data = await self._invoke(ANALYZE_RESUME_FUNCTION, {
            "candidateId": candidate_id,
            "jobId": job_id,
            "resumeUrl": resume_url,
            "candidateProfile": candidate_profile,
            "jobDetails": job_details,
        })

        analysis = data.get("analysis") or {}
        score = data.get("score", analysis.get("score") if isinstance(analysis, dict) else None)
        if score is None:
            raise AIScoringError("Resume analysis returned no score")

        return clamp_score(score), analysis if isinstance(analysis, dict) else {"summary": analysis}

    async def evaluate_stage(
        self,
        candidate_name: str,
        job_title: str,
        stage_name: str,
        prior_score: float,
        analysis: Optional[Dict[str, Any]] = None
    ) -> StageEvaluation:
        """Evaluate a candidate at an AI-automated stage.

        Returns:
            StageEvaluation with score, pass/fail, feedback and details.

        Raises:
            AIScoringError: If every attempt fails or the payload has no score.
        """
        data = await self._invoke(EVALUATE_STAGE_FUNCTION, {
            "candidateName": candidate_name,
            "jobTitle": job_title,
            "stageName": stage_name,
            "resumeScore": prior_score,
            "candidateAnalysis": analysis or {},
        })

        if "score" not in data:
            raise AIScoringError(f"Evaluation of {stage_name} returned no score")

        score = clamp_score(data["score"])
        return StageEvaluation(
            score=score,
            passed=bool(data.get("passed", score >= 60)),
            feedback=data.get("feedback"),
            details=data.get("details")
        )

    async def _invoke(self, function_name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.attempts + 1):
            try:
                data = await self.db_client.functions.invoke(
                    function_name,
                    invoke_options={"body": body, "responseType": "json"}
                )
            except Exception as error:
                last_error = error
                logger.warning(f"{function_name} attempt {attempt}/{self.attempts} failed: {error}")
                continue

            if isinstance(data, (bytes, str)):
                data = json.loads(data)
            if not isinstance(data, dict):
                raise AIScoringError(f"{function_name} returned an unexpected payload")
            if data.get("error"):
                raise AIScoringError(f"{function_name} failed: {data['error']}")
            return data

        raise AIScoringError(f"{function_name} failed after {self.attempts} attempts: {last_error}")
