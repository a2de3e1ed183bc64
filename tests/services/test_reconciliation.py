import pytest
from sqlalchemy import select

from app.models.answer import Answer
from app.services.grading.reconciliation import (
    competition_ranks,
    compute_percentage,
    score_assessment,
    score_submission,
    total_marks_obtained,
)
from app.utils.enums import AssessmentStatus, SubmissionStatus
from tests.fakes import create_assessment, create_submission


@pytest.mark.parametrize(
    "obtained, total, expected",
    [
        (7, 10, 70.0),
        (2, 3, 66.67),
        (1, 8, 12.5),
        (0.125, 1, 12.5),
        (5, 0, 0.0),
    ],
)
def test_compute_percentage(obtained, total, expected):
    assert compute_percentage(obtained, total) == expected


def test_competition_ranks_share_ties_and_skip():
    ranks = competition_ranks([("a", 80.0), ("b", 90.0), ("c", 90.0), ("d", 70.0)])
    assert ranks == {"b": 1, "c": 1, "a": 3, "d": 4}


def test_competition_ranks_empty():
    assert competition_ranks([]) == {}


@pytest.mark.asyncio
async def test_totals_are_derived_from_answers(db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    submission = await create_submission(db_session, assessment, marks=(4, 2.5))

    assert await total_marks_obtained(db_session, submission.id) == 6.5

    answer = await db_session.scalar(
        select(Answer).where(Answer.submission_id == submission.id, Answer.marks_obtained == 2.5)
    )
    answer.marks_obtained = 5
    await db_session.commit()

    score = await score_submission(db_session, submission)
    assert score.total_marks_obtained == 9.0
    assert score.total_marks == 10.0
    assert score.percentage == 90.0


@pytest.mark.asyncio
async def test_only_approved_submissions_are_ranked(db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    top = await create_submission(db_session, assessment, status=SubmissionStatus.approved, marks=(5, 4))
    tied = await create_submission(db_session, assessment, status=SubmissionStatus.approved, marks=(4, 5))
    third = await create_submission(db_session, assessment, status=SubmissionStatus.approved, marks=(3, 3))
    pending = await create_submission(db_session, assessment, marks=(5, 5))
    empty = await create_submission(db_session, assessment, status=SubmissionStatus.failed)

    scores = await score_assessment(db_session, assessment.id)

    assert scores[top.id].rank == 1
    assert scores[tied.id].rank == 1
    assert scores[third.id].rank == 3
    assert scores[pending.id].rank is None
    assert scores[pending.id].percentage == 100.0
    assert scores[empty.id].total_marks_obtained == 0.0
    assert scores[empty.id].rank is None
