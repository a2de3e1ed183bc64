"""Apply lifecycle transitions to stored rows.

Every status write is a compare-and-set: ``UPDATE ... WHERE status = <the
status we computed from>``. A zero rowcount means another writer moved the
row first. Callers own the transaction and commit.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.exceptions import NotFoundError, StateConflictError
from app.models.answer import Answer
from app.models.assessment import Assessment
from app.models.student_submission import StudentSubmission
from app.services.lifecycle.transitions import (
    AssessmentEvent,
    CascadeOutcome,
    SubmissionEvent,
    cascade_answer_unverified,
    next_assessment_status,
    next_submission_status,
    settle_assessment_status,
)
from app.utils.enums import AssessmentStatus, SubmissionStatus

logger = logging.getLogger(__name__)

_MAX_CAS_ATTEMPTS = 5


async def ensure_no_other_approved(
    session: AsyncSession,
    assessment_id: uuid.UUID,
    student_id: Optional[uuid.UUID],
    exclude_submission_id: Optional[uuid.UUID] = None,
) -> None:
    """At most one Approved submission per (assessment, student)."""
    if student_id is None:
        return
    conditions = [
        StudentSubmission.assessment_id == assessment_id,
        StudentSubmission.student_id == student_id,
        StudentSubmission.status == SubmissionStatus.approved,
    ]
    if exclude_submission_id is not None:
        conditions.append(StudentSubmission.id != exclude_submission_id)
    already = await session.scalar(select(exists().where(*conditions)))
    if already:
        raise StateConflictError(
            "This student already has an approved submission for this assessment",
            data={"assessment_id": str(assessment_id), "student_id": str(student_id)},
        )


async def apply_submission_event(
    session: AsyncSession,
    submission: StudentSubmission,
    event: SubmissionEvent,
    **values: Any,
) -> SubmissionStatus:
    current = SubmissionStatus(submission.status)
    target = next_submission_status(current, event)
    if event == SubmissionEvent.approve:
        await ensure_no_other_approved(
            session, submission.assessment_id, submission.student_id, submission.id
        )

    result = await session.execute(
        update(StudentSubmission)
        .where(StudentSubmission.id == submission.id, StudentSubmission.status == current)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StateConflictError(
            "Submission status changed concurrently; reload and try again",
            data={"submission_id": str(submission.id), "expected": current.value},
        )

    set_committed_value(submission, "status", target)
    for key, value in values.items():
        set_committed_value(submission, key, value)
    logger.info(f"Submission {submission.id}: {current.value} -> {target.value} ({event.value})")
    return target


async def apply_assessment_event(
    session: AsyncSession,
    assessment: Assessment,
    event: AssessmentEvent,
    **values: Any,
) -> AssessmentStatus:
    current = AssessmentStatus(assessment.status)
    target = next_assessment_status(current, event)
    result = await session.execute(
        update(Assessment)
        .where(Assessment.id == assessment.id, Assessment.status == current)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StateConflictError(
            "Assessment status changed concurrently; reload and try again",
            data={"assessment_id": str(assessment.id), "expected": current.value},
        )

    set_committed_value(assessment, "status", target)
    for key, value in values.items():
        set_committed_value(assessment, key, value)
    logger.info(f"Assessment {assessment.id}: {current.value} -> {target.value} ({event.value})")
    return target


async def advance_assessment(
    session: AsyncSession,
    assessment: Assessment,
    event: AssessmentEvent,
) -> AssessmentStatus:
    """Apply ``event`` against the stored status, re-reading whenever another writer got there first.

    Unlike ``apply_assessment_event`` the caller's loaded status is not trusted;
    a StateConflictError means the stored status no longer allows the event.
    """
    for _ in range(_MAX_CAS_ATTEMPTS):
        current = await session.scalar(select(Assessment.status).where(Assessment.id == assessment.id))
        if current is None:
            raise NotFoundError("Assessment not found")
        current = AssessmentStatus(current)
        target = next_assessment_status(current, event)
        if await _compare_and_set_assessment(session, assessment.id, current, target):
            set_committed_value(assessment, "status", target)
            logger.info(f"Assessment {assessment.id}: {current.value} -> {target.value} ({event.value})")
            return target
    raise StateConflictError("Assessment status kept changing; reload and try again")


async def _compare_and_set_assessment(
    session: AsyncSession, assessment_id: uuid.UUID, expected: AssessmentStatus, target: AssessmentStatus
) -> bool:
    result = await session.execute(
        update(Assessment)
        .where(Assessment.id == assessment_id, Assessment.status == expected)
        .values(status=target)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def settle_assessment(session: AsyncSession, assessment_id: uuid.UUID) -> AssessmentStatus:
    """Recompute the grading-phase status from the current submission statuses."""
    for _ in range(_MAX_CAS_ATTEMPTS):
        current = await session.scalar(select(Assessment.status).where(Assessment.id == assessment_id))
        if current is None:
            raise NotFoundError("Assessment not found")
        current = AssessmentStatus(current)
        statuses = (
            await session.scalars(
                select(StudentSubmission.status).where(StudentSubmission.assessment_id == assessment_id)
            )
        ).all()
        target = settle_assessment_status(current, [SubmissionStatus(s) for s in statuses])
        if target == current:
            return current
        if await _compare_and_set_assessment(session, assessment_id, current, target):
            logger.info(f"Assessment {assessment_id}: {current.value} -> {target.value} (settled)")
            return target
    raise StateConflictError("Assessment status kept changing while settling")


async def unverify_answer(session: AsyncSession, answer: Answer) -> CascadeOutcome:
    """Clear ``answer.verified`` and run the answer -> submission -> assessment cascade.

    Safe under concurrent calls on sibling answers: whichever caller loses the
    compare-and-set re-reads, finds the submission already Verifying, and stops.
    """
    await session.execute(
        update(Answer)
        .where(Answer.id == answer.id)
        .values(verified=False)
        .execution_options(synchronize_session=False)
    )
    set_committed_value(answer, "verified", False)

    for _ in range(_MAX_CAS_ATTEMPTS):
        row = (
            await session.execute(
                select(StudentSubmission.status, Assessment.id, Assessment.status)
                .join(Assessment, Assessment.id == StudentSubmission.assessment_id)
                .where(StudentSubmission.id == answer.submission_id)
            )
        ).one()
        submission_status = SubmissionStatus(row[0])
        assessment_id = row[1]
        assessment_status = AssessmentStatus(row[2])

        outcome = cascade_answer_unverified(submission_status, assessment_status)
        if not outcome.submission_changed(submission_status):
            return outcome

        demoted = await session.execute(
            update(StudentSubmission)
            .where(
                StudentSubmission.id == answer.submission_id,
                StudentSubmission.status == submission_status,
            )
            .values(status=outcome.submission_status, verified_at=None, verified_by=None)
            .execution_options(synchronize_session=False)
        )
        if demoted.rowcount == 0:
            continue

        logger.info(
            f"Submission {answer.submission_id} reverted to {outcome.submission_status.value} "
            f"after answer {answer.id} was unverified"
        )
        if outcome.assessment_changed(assessment_status):
            # Another writer may already have moved the assessment; that is fine.
            await _compare_and_set_assessment(
                session, assessment_id, assessment_status, outcome.assessment_status
            )
        return outcome

    raise StateConflictError("Submission status kept changing while unverifying an answer")
