import pytest
from sqlalchemy import select

from app.models.answer import Answer
from app.models.question import Question
from app.services.providers.base import AnswerCandidate
from app.utils.enums import AssessmentStatus, SubmissionStatus
from tests.fakes import create_assessment, create_student, create_submission, header, make_pages

pytestmark = pytest.mark.asyncio

SHEET = b"%PDF-1.7 answer sheets"


async def _answer_ids(db_session, submission):
    rows = await db_session.scalars(
        select(Answer.id)
        .join(Question, Question.id == Answer.question_id)
        .where(Answer.submission_id == submission.id)
        .order_by(Question.question_number)
    )
    return [str(answer_id) for answer_id in rows.all()]


async def test_upload_split_and_list_with_scores(client, db_session, teacher, services, primary, renderer):
    assessment = await create_assessment(db_session, teacher)
    renderer.page_count = 2
    primary.headers = {1: header(1, "Ada Obi", "S-001"), 2: header(2, "Ben Ade", "S-002")}
    primary.answers = [AnswerCandidate(1, 5, "Correct"), AnswerCandidate(2, 2, "Partial")]

    response = await client.post(
        f"/api/v1/assessments/{assessment.id}/submissions",
        files={"file": ("sheet.pdf", SHEET, "application/pdf")},
    )
    assert response.status_code == 202
    assert response.json()["data"]["status"] == "Extracting"

    await services.runner.drain(timeout=5)

    listing = await client.get(f"/api/v1/assessments/{assessment.id}/submissions")
    submissions = listing.json()["data"]
    assert len(submissions) == 2
    for item in submissions:
        assert item["status"] == "Ready for Verification"
        assert item["score"]["total_marks_obtained"] == 7.0
        assert item["score"]["percentage"] == 70.0
        assert item["score"].get("rank") is None

    detail = (await client.get(f"/api/v1/submissions/{submissions[0]['id']}")).json()["data"]
    assert [a["question_number"] for a in detail["answers"]] == [1, 2]
    assert detail["answers"][1]["max_marks"] == 5.0


async def test_upload_requires_ready_assessment(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.processing_ques)

    response = await client.post(
        f"/api/v1/assessments/{assessment.id}/submissions",
        files={"file": ("sheet.pdf", SHEET, "application/pdf")},
    )

    assert response.status_code == 409


async def test_approve_flow_and_ranking(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    ada = await create_student(db_session, "S-001", "Ada Obi")
    ben = await create_student(db_session, "S-002", "Ben Ade")
    first = await create_submission(db_session, assessment, student=ada, marks=(5, 4))
    second = await create_submission(db_session, assessment, student=ben, marks=(3, 3))

    for submission in (first, second):
        response = await client.post(f"/api/v1/submissions/{submission.id}/status", json={"status": "Approved"})
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "Approved"

    listing = (await client.get(f"/api/v1/assessments/{assessment.id}/submissions")).json()["data"]
    ranks = {item["id"]: item["score"]["rank"] for item in listing}
    assert ranks == {str(first.id): 1, str(second.id): 2}

    detail = (await client.get(f"/api/v1/assessments/{assessment.id}")).json()["data"]
    assert detail["status"] == "Completed"

    answers = (await client.get(f"/api/v1/submissions/{first.id}")).json()["data"]["answers"]
    assert all(a["verified"] for a in answers)


async def test_approval_needs_a_student(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    submission = await create_submission(db_session, assessment, marks=(1, 1))

    response = await client.post(f"/api/v1/submissions/{submission.id}/status", json={"status": "Approved"})

    assert response.status_code == 422


async def test_assign_student_and_duplicate_approval_guard(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    ada = await create_student(db_session, "S-001", "Ada Obi")
    await create_submission(db_session, assessment, status=SubmissionStatus.approved, student=ada)
    unmatched = await create_submission(db_session, assessment)

    conflict = await client.post(
        f"/api/v1/submissions/{unmatched.id}/student", json={"student_id": str(ada.id)}
    )
    assert conflict.status_code == 409

    ben = await create_student(db_session, "S-002", "Ben Ade")
    assigned = await client.post(
        f"/api/v1/submissions/{unmatched.id}/student", json={"student_id": str(ben.id)}
    )
    assert assigned.status_code == 200
    assert assigned.json()["data"]["student_id"] == str(ben.id)
    assert assigned.json()["data"]["status"] == "Verifying"


async def test_reject_then_regrade_keeps_feedback(client, db_session, teacher, services, primary):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    ada = await create_student(db_session, "S-001", "Ada Obi")
    submission = await create_submission(db_session, assessment, student=ada, marks=(1, 1))
    answer_id = (await _answer_ids(db_session, submission))[0]
    await client.patch(f"/api/v1/answers/{answer_id}", json={"user_feedback": "Check the units"})
    primary.answers = [AnswerCandidate(1, 3, "Regraded"), AnswerCandidate(2, 4, "Regraded")]

    rejected = await client.post(f"/api/v1/submissions/{submission.id}/status", json={"status": "Rejected"})
    assert rejected.json()["data"]["status"] == "Rejected"

    regrade = await client.post(f"/api/v1/submissions/{submission.id}/regrade")
    assert regrade.status_code == 202
    assert regrade.json()["data"]["status"] == "Pending"
    await services.runner.drain(timeout=5)

    detail = (await client.get(f"/api/v1/submissions/{submission.id}")).json()["data"]
    assert detail["status"] == "Ready for Verification"
    by_number = {a["question_number"]: a for a in detail["answers"]}
    assert by_number[1]["marks_obtained"] == 3.0
    assert by_number[1]["ai_explanation"] == "Regraded"
    assert by_number[1]["user_feedback"] == "Check the units"
    assert detail["score"]["total_marks_obtained"] == 7.0


async def test_status_pending_means_regrade(client, db_session, teacher, services, primary):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    submission = await create_submission(db_session, assessment, marks=(1, 1))
    primary.answers = [AnswerCandidate(1, 2, "ok")]

    response = await client.post(f"/api/v1/submissions/{submission.id}/status", json={"status": "Pending"})
    assert response.json()["data"]["status"] == "Pending"
    await services.runner.drain(timeout=5)

    detail = (await client.get(f"/api/v1/submissions/{submission.id}")).json()["data"]
    assert detail["status"] == "Ready for Verification"


async def test_unknown_status_is_rejected(client, db_session, teacher):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    submission = await create_submission(db_session, assessment)

    response = await client.post(f"/api/v1/submissions/{submission.id}/status", json={"status": "Failed"})

    assert response.status_code == 422


async def test_delete_keeps_shared_sheet_until_last_submission(client, db_session, teacher, storage, services):
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    link = "memory://answer-sheets/shared.pdf"
    first = await create_submission(db_session, assessment, link=link, marks=(1, 1))
    second = await create_submission(db_session, assessment, link=link)
    services.page_cache.put(link, make_pages(2))

    assert (await client.delete(f"/api/v1/submissions/{first.id}")).status_code == 200
    assert storage.deleted == []
    assert services.page_cache.get(link) is not None

    assert (await client.delete(f"/api/v1/submissions/{second.id}")).status_code == 200
    assert storage.deleted == [link]
    assert services.page_cache.get(link) is None

    detail = (await client.get(f"/api/v1/assessments/{assessment.id}")).json()["data"]
    assert detail["status"] == "Ready for Grading"
