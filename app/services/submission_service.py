"""Teacher-driven submission actions: review, approval, regrading and deletion."""
from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import delete, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, StateConflictError, StorageError, ValidationError
from app.models.answer import Answer
from app.models.assessment import Assessment
from app.models.question import Question
from app.models.student_submission import StudentSubmission
from app.models.user import User
from app.services.assessment_service import get_owned_assessment
from app.services.lifecycle.persistence import (
    apply_submission_event,
    ensure_no_other_approved,
    settle_assessment,
)
from app.services.lifecycle.transitions import AWAITING_REVIEW, SubmissionEvent
from app.services.pipeline.jobs import Job
from app.services.pipeline.services import PipelineServices
from app.services.pipeline.submissions import submit_grading
from app.services.roster_service import RosterStore
from app.services.rendering.page_cache import PageRenderCache
from app.services.storage_service import StorageBackend
from app.utils.datetime_utils import get_current_utc_datetime
from app.utils.enums import SubmissionStatus

logger = logging.getLogger(__name__)


async def get_owned_submission(
    session: AsyncSession, submission_id: uuid.UUID, user: User
) -> Tuple[StudentSubmission, Assessment]:
    submission = await session.get(StudentSubmission, submission_id)
    if submission is None:
        raise NotFoundError("Submission not found")
    assessment = await get_owned_assessment(session, submission.assessment_id, user)
    return submission, assessment


async def list_submissions(session: AsyncSession, assessment_id: uuid.UUID) -> List[StudentSubmission]:
    rows = await session.scalars(
        select(StudentSubmission)
        .where(StudentSubmission.assessment_id == assessment_id)
        .order_by(StudentSubmission.created_at)
    )
    return list(rows.all())


async def list_answers(session: AsyncSession, submission_id: uuid.UUID) -> List[Tuple[Answer, Question]]:
    rows = await session.execute(
        select(Answer, Question)
        .join(Question, Question.id == Answer.question_id)
        .where(Answer.submission_id == submission_id)
        .order_by(Question.question_number)
    )
    return [(answer, question) for answer, question in rows.all()]


async def assign_student(
    session: AsyncSession, submission: StudentSubmission, user: User, student_id: uuid.UUID
) -> StudentSubmission:
    status = SubmissionStatus(submission.status)
    if status not in AWAITING_REVIEW:
        raise StateConflictError(
            f"Cannot change the student of a submission in status '{status.value}'",
            data={"status": status.value},
        )
    student = await RosterStore(session, user.organisation).get(student_id)
    await ensure_no_other_approved(session, submission.assessment_id, student.id, submission.id)

    submission.student_id = student.id
    if status == SubmissionStatus.ready_for_verification:
        await apply_submission_event(session, submission, SubmissionEvent.begin_verification)
    await session.commit()
    logger.info(f"Submission {submission.id} assigned to student {student.id} by {user.id}")
    return submission


async def change_status(
    session: AsyncSession, submission: StudentSubmission, user: User, target: SubmissionStatus
) -> StudentSubmission:
    """Move a submission to Verifying, Approved or Rejected.

    Approved and Rejected accept a Ready for Verification submission by
    passing through Verifying first.
    """
    current = SubmissionStatus(submission.status)

    if target in (SubmissionStatus.approved, SubmissionStatus.rejected):
        if target == SubmissionStatus.approved and submission.student_id is None:
            raise ValidationError("Assign a student before approving this submission")
        if current == SubmissionStatus.ready_for_verification:
            await apply_submission_event(session, submission, SubmissionEvent.begin_verification)

        if target == SubmissionStatus.approved:
            await apply_submission_event(
                session,
                submission,
                SubmissionEvent.approve,
                verified_by=user.id,
                verified_at=get_current_utc_datetime(),
            )
            await session.execute(
                update(Answer)
                .where(Answer.submission_id == submission.id)
                .values(verified=True)
                .execution_options(synchronize_session=False)
            )
        else:
            await apply_submission_event(session, submission, SubmissionEvent.reject)

    elif target == SubmissionStatus.verifying:
        if current == SubmissionStatus.ready_for_verification:
            await apply_submission_event(session, submission, SubmissionEvent.begin_verification)
        else:
            await apply_submission_event(
                session, submission, SubmissionEvent.reopen, verified_by=None, verified_at=None
            )
    else:
        raise ValidationError(f"Status '{target.value}' cannot be set directly")

    await settle_assessment(session, submission.assessment_id)
    await session.commit()
    return submission


async def regrade(session: AsyncSession, services: PipelineServices, submission: StudentSubmission) -> Job:
    await apply_submission_event(
        session,
        submission,
        SubmissionEvent.regrade,
        error_message=None,
        verified_by=None,
        verified_at=None,
    )
    await settle_assessment(session, submission.assessment_id)
    await session.commit()
    return submit_grading(services, submission.id)


async def delete_submission(
    session: AsyncSession,
    submission: StudentSubmission,
    storage: Optional[StorageBackend] = None,
    page_cache: Optional[PageRenderCache] = None,
) -> None:
    link = submission.answer_sheet_link
    await session.execute(delete(Answer).where(Answer.submission_id == submission.id))
    await session.execute(delete(StudentSubmission).where(StudentSubmission.id == submission.id))
    await settle_assessment(session, submission.assessment_id)

    # Split sheets are shared by every submission cut from them.
    still_used = bool(link) and await session.scalar(
        select(exists().where(StudentSubmission.answer_sheet_link == link))
    )
    await session.commit()
    logger.info(f"Deleted submission {submission.id}")

    if page_cache is not None and link and not still_used:
        page_cache.evict(link)

    if storage is not None and link and not still_used:
        try:
            await storage.delete(link)
        except StorageError as exc:
            logger.warning(f"Could not remove stored answer sheet {link}: {exc}")
