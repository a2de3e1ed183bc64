"""Answer-sheet upload, multi-student fan-out and grading dispatch."""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DomainError, PersistenceError, StateConflictError, StorageError, ValidationError
from app.models.assessment import Assessment
from app.models.student_submission import StudentSubmission
from app.models.user import User
from app.services.assessment_service import assessment_context
from app.services.grading.grader import fail_submission, run_grading
from app.services.lifecycle.persistence import (
    advance_assessment,
    apply_submission_event,
    settle_assessment,
)
from app.services.lifecycle.transitions import AssessmentEvent, SubmissionEvent, ensure_accepts_submissions
from app.services.partitioning.identity import IdentityMatch, IdentityResolver
from app.services.partitioning.partitioner import PartitionResult, StudentGroup
from app.services.pipeline.jobs import Job
from app.services.pipeline.services import PipelineServices
from app.services.roster_service import RosterStore
from app.utils.enums import AssessmentStatus, IdentityAction, SubmissionStatus

logger = logging.getLogger(__name__)

ANSWER_SHEET_FOLDER = "answer-sheets"


def submit_grading(services: PipelineServices, submission_id: uuid.UUID) -> Job:
    return services.runner.submit(f"grade-submission:{submission_id}", run_grading(submission_id, services))


async def _discard_upload(services: PipelineServices, link: str) -> None:
    try:
        await services.storage.delete(link)
    except StorageError as exc:
        logger.warning(f"Could not remove orphaned answer sheet {link}: {exc.message}")


async def upload_answer_sheet(
    session: AsyncSession,
    services: PipelineServices,
    assessment: Assessment,
    user: User,
    *,
    data: bytes,
    filename: str,
    content_type: Optional[str] = None,
    student_id: Optional[uuid.UUID] = None,
) -> tuple[StudentSubmission, Job]:
    """Store the sheet, create one Extracting submission and start processing.

    With ``student_id`` the whole document belongs to that student and
    partitioning is skipped.
    """
    ensure_accepts_submissions(AssessmentStatus(assessment.status))
    if not data:
        raise ValidationError("The uploaded answer sheet is empty")

    roster = RosterStore(session, user.organisation)
    if student_id is not None:
        await roster.get(student_id)

    # A storage failure leaves nothing behind.
    link = await services.storage.upload(data, filename, ANSWER_SHEET_FOLDER, content_type)

    try:
        submission = StudentSubmission(
            assessment_id=assessment.id,
            student_id=student_id,
            answer_sheet_link=link,
            status=SubmissionStatus.extracting,
        )
        session.add(submission)
        await session.flush()
        # Grading jobs may have settled the assessment while the sheet was uploading.
        await advance_assessment(session, assessment, AssessmentEvent.submission_uploaded)
        await session.commit()
    except (DomainError, SQLAlchemyError):
        await session.rollback()
        await _discard_upload(services, link)
        raise
    logger.info(f"User {user.id} uploaded answer sheet {link} as submission {submission.id}")

    job = services.runner.submit(
        f"process-answer-sheet:{submission.id}",
        process_answer_sheet(submission.id, services, created_by=user.id, organisation=user.organisation),
    )
    return submission, job


async def process_answer_sheet(
    submission_id: uuid.UUID,
    services: PipelineServices,
    *,
    created_by: Optional[uuid.UUID],
    organisation: str,
) -> List[Job]:
    """Partition the sheet, fan out one submission per student and dispatch grading.

    Returns the grading jobs that were started.
    """
    async with services.session_factory() as session:
        submission = await session.get(StudentSubmission, submission_id)
        if submission is None:
            logger.warning(f"Submission {submission_id} disappeared before processing started")
            return []
        if submission.student_id is not None:
            return [submit_grading(services, submission.id)]

        assessment = await session.get(Assessment, submission.assessment_id)
        context = assessment_context(assessment)
        await session.commit()

        try:
            partition = await services.partitioner().partition(submission.answer_sheet_link, context)
            graded_ids = await _fan_out(
                session, services, submission, partition, created_by=created_by, organisation=organisation
            )
        except StateConflictError as exc:
            await session.rollback()
            stored = await session.scalar(
                select(StudentSubmission.status).where(StudentSubmission.id == submission_id)
            )
            if stored == SubmissionStatus.extracting:
                await fail_submission(session, submission_id, f"Could not split answer sheet: {exc.message}")
            else:
                logger.warning(f"Processing of submission {submission_id} superseded: {exc.message}")
            return []
        except DomainError as exc:
            await fail_submission(session, submission_id, f"Could not split answer sheet: {exc.message}")
            return []
        except Exception as exc:
            await fail_submission(session, submission_id, f"Unexpected error: {exc}")
            raise

    return [submit_grading(services, sid) for sid in graded_ids]


async def _fan_out(
    session: AsyncSession,
    services: PipelineServices,
    submission: StudentSubmission,
    partition: PartitionResult,
    *,
    created_by: Optional[uuid.UUID],
    organisation: str,
) -> List[uuid.UUID]:
    """Write one submission per group in a single transaction."""
    roster = RosterStore(session, organisation)
    resolver = IdentityResolver(roster, services.name_match_threshold)
    single_student = len(partition.groups) == 1
    graded_ids: List[uuid.UUID] = []

    try:
        for index, group in enumerate(partition.groups):
            if index == 0:
                target = submission
            else:
                target = StudentSubmission(
                    assessment_id=submission.assessment_id,
                    answer_sheet_link=submission.answer_sheet_link,
                    status=SubmissionStatus.extracting,
                )
                session.add(target)
                await session.flush()

            target.page_numbers = None if single_student else list(group.page_numbers)
            info = group.as_dict()

            if not group.is_valid:
                info["match"] = None
                target.extracted_student_info = info
                await apply_submission_event(
                    session,
                    target,
                    SubmissionEvent.fail,
                    error_message="; ".join(e.message for e in group.errors),
                )
                continue

            match = await _resolve_student(resolver, roster, group, submission.assessment_id, created_by)
            info["match"] = match.as_dict()
            target.extracted_student_info = info
            if match.action == IdentityAction.select:
                target.student_id = match.student_id
            graded_ids.append(target.id)

        await session.flush()
        await settle_assessment(session, submission.assessment_id)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Could not store the split submissions") from exc

    logger.info(
        f"Answer sheet {submission.answer_sheet_link} split into {len(partition.groups)} submission(s); "
        f"{len(graded_ids)} queued for grading"
    )
    return graded_ids


async def _resolve_student(
    resolver: IdentityResolver,
    roster: RosterStore,
    group: StudentGroup,
    assessment_id: uuid.UUID,
    created_by: Optional[uuid.UUID],
) -> IdentityMatch:
    identity = group.identity
    match = await resolver.resolve(identity, assessment_id)
    if match.action != IdentityAction.create:
        return match

    try:
        async with roster.session.begin_nested():
            student = await roster.create(
                created_by=created_by,
                student_identifier=identity.student_identifier,
                student_name=identity.student_name or identity.student_identifier,
                roll_number=identity.roll_number,
                class_name=identity.class_name,
            )
    except StateConflictError:
        # Another sheet created the same identifier after we resolved.
        existing = await roster.find_by_identifier(identity.student_identifier)
        if existing is None:
            raise
        if existing.id in await roster.approved_student_ids(assessment_id):
            return replace(
                match,
                action=IdentityAction.review,
                confidence=0.0,
                method="identifier",
                reason=f"Student '{existing.student_identifier}' already has an approved submission",
            )
        return replace(
            match,
            action=IdentityAction.select,
            confidence=1.0,
            method="identifier",
            student_id=existing.id,
            student_name=existing.student_name,
        )

    return replace(
        match,
        action=IdentityAction.select,
        confidence=1.0,
        method="created",
        student_id=student.id,
        student_name=student.student_name,
    )
