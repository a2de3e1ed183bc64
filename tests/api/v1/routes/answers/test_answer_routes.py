import pytest
from sqlalchemy import select

from app.models.answer import Answer
from app.models.question import Question
from app.utils.enums import AssessmentStatus, SubmissionStatus
from tests.fakes import create_assessment, create_student, create_submission, create_user

pytestmark = pytest.mark.asyncio


async def _first_answer(db_session, submission):
    return await db_session.scalar(
        select(Answer.id)
        .join(Question, Question.id == Answer.question_id)
        .where(Answer.submission_id == submission.id)
        .order_by(Question.question_number)
        .limit(1)
    )


async def test_editing_marks_starts_verification(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    submission = await create_submission(db_session, assessment, marks=(2, 2))
    answer_id = await _first_answer(db_session, submission)

    response = await client.patch(
        f"/api/v1/answers/{answer_id}", json={"marks_obtained": 4.5, "ai_explanation": "Adjusted"}
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["answer"]["marks_obtained"] == 4.5
    assert data["answer"]["ai_explanation"] == "Adjusted"
    assert data["submission_status"] == "Verifying"

    detail = (await client.get(f"/api/v1/submissions/{submission.id}")).json()["data"]
    assert detail["score"]["total_marks_obtained"] == 6.5


async def test_marks_above_maximum_are_rejected(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    submission = await create_submission(db_session, assessment, marks=(2, 2))
    answer_id = await _first_answer(db_session, submission)

    too_high = await client.patch(f"/api/v1/answers/{answer_id}", json={"marks_obtained": 6})
    negative = await client.patch(f"/api/v1/answers/{answer_id}", json={"marks_obtained": -1})

    assert too_high.status_code == 422
    assert too_high.json()["data"]["max_marks"] == 5.0
    assert negative.status_code == 422


async def test_unverifying_answer_reopens_approved_submission(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.completed)
    ada = await create_student(db_session, "S-001", "Ada Obi")
    submission = await create_submission(
        db_session, assessment, status=SubmissionStatus.approved, student=ada, marks=(5, 5), verified=True
    )
    answer_id = await _first_answer(db_session, submission)

    response = await client.patch(f"/api/v1/answers/{answer_id}", json={"verified": False})

    data = response.json()["data"]
    assert data["answer"]["verified"] is False
    assert data["submission_status"] == "Verifying"
    detail = (await client.get(f"/api/v1/assessments/{assessment.id}")).json()["data"]
    assert detail["status"] == "Ans Pending Approval"


async def test_clearing_feedback_with_null(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    submission = await create_submission(db_session, assessment, status=SubmissionStatus.verifying, marks=(2, 2))
    answer_id = await _first_answer(db_session, submission)

    await client.patch(f"/api/v1/answers/{answer_id}", json={"user_feedback": "Show working"})
    response = await client.patch(f"/api/v1/answers/{answer_id}", json={"user_feedback": None})

    assert response.json()["data"]["answer"].get("user_feedback") is None
    assert response.json()["data"]["answer"]["ai_explanation"] == "model rationale"


async def test_in_flight_submission_cannot_be_edited(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.processing_ans)
    submission = await create_submission(db_session, assessment, status=SubmissionStatus.processing, marks=(2, 2))
    answer_id = await _first_answer(db_session, submission)

    response = await client.patch(f"/api/v1/answers/{answer_id}", json={"marks_obtained": 1})

    assert response.status_code == 409


async def test_other_teachers_answers_are_hidden(client, db_session):
    stranger = await create_user(db_session, email="other@school.edu")
    assessment = await create_assessment(db_session, stranger, status=AssessmentStatus.ans_pending_approval)
    submission = await create_submission(db_session, assessment, marks=(2, 2))
    answer_id = await _first_answer(db_session, submission)

    response = await client.patch(f"/api/v1/answers/{answer_id}", json={"marks_obtained": 1})

    assert response.status_code == 403
