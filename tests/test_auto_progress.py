"""Tests for AI auto-progress through automated stages."""

import pytest

from app.exceptions import AIScoringError
from app.services.auto_progress_service import AutoProgressService

from tests.conftest import HR_ID, SCREENING_ID, TECHNICAL_ID, seed_candidate


EVALUATE = "evaluate-interview-stage"


@pytest.fixture
def automated_stages(fake_db):
    fake_db.seed(
        "interview_stages",
        {"id": SCREENING_ID, "name": "Resume Screening", "stage_order": 1, "is_ai_automated": True},
        {"id": TECHNICAL_ID, "name": "AI Phone Interview", "stage_order": 2, "is_ai_automated": True},
        {"id": HR_ID, "name": "HR Round", "stage_order": 3, "is_ai_automated": False},
    )


@pytest.fixture
def auto_progress(pipeline_service):
    return AutoProgressService(pipeline_service, pipeline_service.scoring_service, stage_delay=0)


def evaluation(score, passed):
    return {"score": score, "passed": passed, "feedback": f"Scored {score}", "details": {"confidence_level": "high"}}


async def test_progresses_until_first_manual_stage(fake_db, auto_progress, automated_stages):
    seed_candidate(fake_db, "cand-1")
    fake_db.functions.script(EVALUATE, evaluation(82, True), evaluation(75, True))

    result = await auto_progress.auto_progress("cand-1")

    assert result.status == "progressed"
    assert result.current_stage == "HR Round"
    assert [stage.stage for stage in result.results] == ["Resume Screening", "AI Phone Interview"]
    assert fake_db.rows("interview_candidates")[0]["current_stage_id"] == HR_ID
    events = {row["stage_id"]: row for row in fake_db.rows("interview_events")}
    assert events[SCREENING_ID]["status"] == "completed"
    assert events[SCREENING_ID]["ai_score"] == 82
    assert events[TECHNICAL_ID]["notes"] == "Scored 75"
    assert len(fake_db.functions.calls_to("send-status-notification")) == 2


async def test_failed_stage_rejects_candidate(fake_db, auto_progress, automated_stages):
    seed_candidate(fake_db, "cand-1")
    fake_db.functions.script(EVALUATE, evaluation(41, False))

    result = await auto_progress.auto_progress("cand-1")

    assert result.status == "rejected"
    assert result.rejected_at == "Resume Screening"
    candidate = fake_db.rows("interview_candidates")[0]
    assert candidate["status"] == "rejected"
    assert candidate["current_stage_id"] == SCREENING_ID
    assert fake_db.rows("interview_events")[0]["status"] == "failed"


async def test_single_step_when_not_progressing_all(fake_db, auto_progress, automated_stages):
    seed_candidate(fake_db, "cand-1")
    fake_db.functions.script(EVALUATE, evaluation(90, True))

    result = await auto_progress.auto_progress("cand-1", auto_progress_all=False)

    assert result.status == "progressed"
    assert result.current_stage == "AI Phone Interview"
    assert len(result.results) == 1


async def test_passing_final_stage_hires_candidate(fake_db, auto_progress, automated_stages):
    seed_candidate(fake_db, "cand-1", current_stage_id=HR_ID)
    fake_db.seed("interview_events", {"interview_candidate_id": "cand-1", "stage_id": HR_ID, "status": "in_progress"})
    fake_db.functions.script(EVALUATE, evaluation(88, True))

    result = await auto_progress.auto_progress("cand-1")

    assert result.status == "completed"
    assert fake_db.rows("interview_candidates")[0]["status"] == "hired"
    [event] = fake_db.rows("interview_events")
    assert event["status"] == "completed"


async def test_inactive_candidate_is_skipped(fake_db, auto_progress, automated_stages):
    seed_candidate(fake_db, "cand-1", status="hired")

    result = await auto_progress.auto_progress("cand-1")

    assert result.status == "skipped"
    assert fake_db.functions.calls == []


async def test_rejection_during_evaluation_is_not_overwritten(fake_db, auto_progress, automated_stages):
    seed_candidate(fake_db, "cand-1", current_stage_id=HR_ID)
    fake_db.seed("interview_events", {"interview_candidate_id": "cand-1", "stage_id": HR_ID, "status": "in_progress"})

    def reject_mid_call(body):
        for row in fake_db.tables["interview_candidates"]:
            row["status"] = "rejected"
        return evaluation(88, True)

    fake_db.functions.script(EVALUATE, reject_mid_call)

    result = await auto_progress.auto_progress("cand-1")

    assert result.status == "skipped"
    assert result.results == []
    assert fake_db.rows("interview_candidates")[0]["status"] == "rejected"
    assert fake_db.rows("interview_events")[0]["status"] == "in_progress"
    assert fake_db.functions.calls_to("send-status-notification") == []


async def test_move_during_evaluation_stops_progress(fake_db, auto_progress, automated_stages):
    seed_candidate(fake_db, "cand-1")

    def move_mid_call(body):
        for row in fake_db.tables["interview_candidates"]:
            row["current_stage_id"] = HR_ID
        return evaluation(90, True)

    fake_db.functions.script(EVALUATE, move_mid_call)

    result = await auto_progress.auto_progress("cand-1")

    assert result.status == "skipped"
    assert fake_db.rows("interview_candidates")[0]["current_stage_id"] == HR_ID
    assert fake_db.rows("interview_events") == []


async def test_notification_failure_is_not_fatal(fake_db, auto_progress, automated_stages):
    seed_candidate(fake_db, "cand-1", current_stage_id=HR_ID)
    fake_db.functions.script(EVALUATE, evaluation(70, True))
    fake_db.functions.script("send-status-notification", RuntimeError("mail down"))

    result = await auto_progress.auto_progress("cand-1")

    assert result.status == "completed"


async def test_scoring_errors_propagate_after_retry(fake_db, auto_progress, automated_stages):
    seed_candidate(fake_db, "cand-1")
    fake_db.functions.script(EVALUATE, RuntimeError("gateway timeout"))

    with pytest.raises(AIScoringError):
        await auto_progress.auto_progress("cand-1")

    assert len(fake_db.functions.calls_to(EVALUATE)) == 2
    assert fake_db.rows("interview_events") == []
