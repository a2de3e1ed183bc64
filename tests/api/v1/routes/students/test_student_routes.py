import pytest

from app.utils.enums import AssessmentStatus, SubmissionStatus
from tests.fakes import create_assessment, create_student, create_submission

pytestmark = pytest.mark.asyncio


async def test_create_and_fetch_student(client):
    response = await client.post(
        "/api/v1/students/",
        json={"student_identifier": " S-010 ", "student_name": "Chi Eze", "class": "JSS2", "roll_number": "3"},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["student_identifier"] == "S-010"
    assert data["class"] == "JSS2"
    assert data["organisation"] == "Greenfield High"

    fetched = await client.get(f"/api/v1/students/{data['id']}")
    assert fetched.json()["data"]["student_name"] == "Chi Eze"


async def test_duplicate_identifier_conflicts(client, db_session):
    await create_student(db_session, "S-001", "Ada Obi")

    response = await client.post("/api/v1/students/", json={"student_identifier": "S-001", "student_name": "Someone"})

    assert response.status_code == 409


async def test_list_filters_by_class_and_search(client, db_session):
    await create_student(db_session, "S-001", "Ada Obi", roll="1", klass="JSS1")
    await create_student(db_session, "S-002", "Ben Ade", roll="2", klass="JSS1")
    await create_student(db_session, "S-003", "Chi Eze", roll="1", klass="JSS2")

    by_class = (await client.get("/api/v1/students/", params={"class": "JSS1"})).json()["data"]
    assert [s["student_identifier"] for s in by_class] == ["S-001", "S-002"]

    by_search = (await client.get("/api/v1/students/", params={"search": "eze"})).json()["data"]
    assert [s["student_identifier"] for s in by_search] == ["S-003"]


async def test_update_student(client, db_session):
    student = await create_student(db_session, "S-001", "Ada Obi")

    response = await client.patch(f"/api/v1/students/{student.id}", json={"class": "JSS3", "student_name": "Ada O."})

    data = response.json()["data"]
    assert data["class"] == "JSS3"
    assert data["student_name"] == "Ada O."


async def test_delete_student_unlinks_submissions(client, db_session, teacher):
    student = await create_student(db_session, "S-001", "Ada Obi")
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.ans_pending_approval)
    submission = await create_submission(db_session, assessment, student=student)

    response = await client.delete(f"/api/v1/students/{student.id}")
    assert response.status_code == 200

    detail = (await client.get(f"/api/v1/submissions/{submission.id}")).json()["data"]
    assert detail.get("student_id") is None
    assert (await client.get(f"/api/v1/students/{student.id}")).status_code == 404


async def test_student_submission_history(client, db_session, teacher):
    student = await create_student(db_session, "S-001", "Ada Obi")
    assessment = await create_assessment(db_session, teacher, status=AssessmentStatus.completed)
    await create_submission(
        db_session, assessment, status=SubmissionStatus.approved, student=student, marks=(4, 4)
    )

    history = (await client.get(f"/api/v1/students/{student.id}/submissions")).json()["data"]

    assert len(history) == 1
    entry = history[0]
    assert entry["assessment_title"] == "Mid-term Biology"
    assert entry["status"] == "Approved"
    assert entry["total_marks_obtained"] == 8.0
    assert entry["percentage"] == 80.0
    assert entry["rank"] == 1
