import pytest

from app.services.partitioning.identity import IdentityResolver, name_similarity
from app.services.partitioning.partitioner import StudentIdentity
from app.services.roster_service import RosterStore
from app.utils.enums import IdentityAction, SubmissionStatus
from tests.fakes import ORGANISATION, create_assessment, create_student, create_submission

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize(
    "first, second, expected",
    [
        ("Ada Obi", "ada obi", 1.0),
        ("Ada", "Ada Obi", 0.9),
        ("Ada Chioma Obi", "Obi Ada", 2 / 3),
        ("Ada Obi", "Ben Ade", 0.0),
        (None, "Ada", 0.0),
    ],
)
async def test_name_similarity(first, second, expected):
    assert name_similarity(first, second) == pytest.approx(expected)


async def test_identifier_match_is_selected(db_session, teacher):
    student = await create_student(db_session, "S-001", "Ada Obi")
    assessment = await create_assessment(db_session, teacher)
    resolver = IdentityResolver(RosterStore(db_session, ORGANISATION))

    match = await resolver.resolve(StudentIdentity(student_identifier="S-001"), assessment.id)

    assert match.action == IdentityAction.select
    assert match.confidence == 1.0
    assert match.method == "identifier"
    assert match.student_id == student.id


async def test_roll_and_name_match_needs_review(db_session, teacher):
    student = await create_student(db_session, "S-001", "Ada Chioma Obi", roll="7", klass="JSS1")
    assessment = await create_assessment(db_session, teacher)
    resolver = IdentityResolver(RosterStore(db_session, ORGANISATION))

    match = await resolver.resolve(
        StudentIdentity(student_name="Ada Obi", student_identifier="X-999", roll_number="7", class_name="jss1"),
        assessment.id,
    )

    assert match.action == IdentityAction.review
    assert match.confidence == 0.85
    assert match.method == "roll_and_name"
    assert match.student_id == student.id


async def test_roll_match_with_unrelated_name_is_ignored(db_session, teacher):
    await create_student(db_session, "S-001", "Ada Obi", roll="7", klass="JSS1")
    assessment = await create_assessment(db_session, teacher)
    resolver = IdentityResolver(RosterStore(db_session, ORGANISATION))

    match = await resolver.resolve(
        StudentIdentity(student_name="Ben Ade", roll_number="7", class_name="JSS1"), assessment.id
    )

    assert match.action == IdentityAction.create


async def test_student_with_approved_submission_is_excluded(db_session, teacher):
    student = await create_student(db_session, "S-001", "Ada Obi")
    assessment = await create_assessment(db_session, teacher)
    await create_submission(db_session, assessment, status=SubmissionStatus.approved, student=student)
    resolver = IdentityResolver(RosterStore(db_session, ORGANISATION))

    match = await resolver.resolve(StudentIdentity(student_identifier="S-001"), assessment.id)

    assert match.action == IdentityAction.review
    assert match.student_id is None
    assert "already approved" in match.reason


async def test_other_organisation_is_not_searched(db_session, teacher):
    await create_student(db_session, "S-001", "Ada Obi")
    assessment = await create_assessment(db_session, teacher)
    resolver = IdentityResolver(RosterStore(db_session, "Another School"))

    match = await resolver.resolve(StudentIdentity(student_identifier="S-001"), assessment.id)

    assert match.action == IdentityAction.create
    assert match.as_dict()["student_id"] is None
