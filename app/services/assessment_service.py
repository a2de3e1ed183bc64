"""Assessment ownership checks and question-set editing."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AccessDenied,
    NotFoundError,
    PersistenceError,
    StateConflictError,
    StorageError,
    ValidationError,
)
from app.models.answer import Answer
from app.models.assessment import Assessment
from app.models.question import Question
from app.models.student_submission import StudentSubmission
from app.models.user import User
from app.services.lifecycle.persistence import apply_assessment_event
from app.services.lifecycle.transitions import AssessmentEvent, ensure_questions_editable
from app.services.providers.base import AssessmentContext
from app.services.rendering.page_cache import PageRenderCache
from app.services.storage_service import StorageBackend
from app.utils.enums import AssessmentStatus

logger = logging.getLogger(__name__)

_QUESTION_FIELDS = {"question_identifier", "question_text", "max_marks", "page_number", "topics"}


async def get_owned_assessment(session: AsyncSession, assessment_id: uuid.UUID, user: User) -> Assessment:
    assessment = await session.get(Assessment, assessment_id)
    if assessment is None:
        raise NotFoundError("Assessment not found")
    if assessment.owner_id != user.id:
        raise AccessDenied("You do not have access to this assessment")
    return assessment


async def list_assessments(session: AsyncSession, user: User) -> List[Assessment]:
    rows = await session.scalars(
        select(Assessment).where(Assessment.owner_id == user.id).order_by(Assessment.created_at.desc())
    )
    return list(rows.all())


async def list_questions(session: AsyncSession, assessment_id: uuid.UUID) -> List[Question]:
    rows = await session.scalars(
        select(Question).where(Question.assessment_id == assessment_id).order_by(Question.question_number)
    )
    return list(rows.all())


async def next_question_number(session: AsyncSession, assessment_id: uuid.UUID) -> int:
    current = await session.scalar(
        select(func.coalesce(func.max(Question.question_number), 0)).where(
            Question.assessment_id == assessment_id
        )
    )
    return int(current) + 1


async def question_totals(session: AsyncSession, assessment_id: uuid.UUID) -> tuple[int, float]:
    count, total = (
        await session.execute(
            select(func.count(Question.id), func.coalesce(func.sum(Question.max_marks), 0)).where(
                Question.assessment_id == assessment_id
            )
        )
    ).one()
    return int(count), float(total or 0)


async def refresh_question_totals(session: AsyncSession, assessment: Assessment) -> None:
    """Recompute the cached question_count / total_marks."""
    await session.flush()
    assessment.question_count, assessment.total_marks = await question_totals(session, assessment.id)


async def delete_questions(session: AsyncSession, assessment_id: uuid.UUID) -> int:
    question_ids = select(Question.id).where(Question.assessment_id == assessment_id)
    await session.execute(delete(Answer).where(Answer.question_id.in_(question_ids)))
    result = await session.execute(delete(Question).where(Question.assessment_id == assessment_id))
    return result.rowcount or 0


async def _get_question(session: AsyncSession, assessment: Assessment, question_id: uuid.UUID) -> Question:
    question = await session.get(Question, question_id)
    if question is None or question.assessment_id != assessment.id:
        raise NotFoundError("Question not found")
    return question


def _validate_question_fields(changes: Dict[str, Any]) -> None:
    if "question_text" in changes and not (changes["question_text"] or "").strip():
        raise ValidationError("question_text cannot be empty")
    if "max_marks" in changes and changes["max_marks"] is not None and changes["max_marks"] < 0:
        raise ValidationError("max_marks cannot be negative")


async def update_question(
    session: AsyncSession, assessment: Assessment, question_id: uuid.UUID, changes: Dict[str, Any]
) -> Question:
    question = await _get_question(session, assessment, question_id)
    content_changes = {k: v for k, v in changes.items() if k in _QUESTION_FIELDS}
    if content_changes:
        # Question content freezes once grading starts; the verified flag never does.
        ensure_questions_editable(AssessmentStatus(assessment.status))
        _validate_question_fields(content_changes)
    for key, value in content_changes.items():
        setattr(question, key, value)
    if changes.get("verified") is not None:
        question.verified = changes["verified"]

    if "max_marks" in content_changes:
        await refresh_question_totals(session, assessment)
    await session.commit()
    return question


async def add_question(session: AsyncSession, assessment: Assessment, data: Dict[str, Any]) -> Question:
    ensure_questions_editable(AssessmentStatus(assessment.status), structural=True)
    _validate_question_fields(data)
    question = Question(
        assessment_id=assessment.id,
        question_number=await next_question_number(session, assessment.id),
        question_identifier=data.get("question_identifier"),
        question_text=data["question_text"].strip(),
        max_marks=data.get("max_marks") if data.get("max_marks") is not None else 1,
        page_number=data.get("page_number") or 1,
        topics=data.get("topics") or [],
        verified=False,
    )
    session.add(question)
    await refresh_question_totals(session, assessment)
    await session.commit()
    return question


async def delete_question(session: AsyncSession, assessment: Assessment, question_id: uuid.UUID) -> None:
    ensure_questions_editable(AssessmentStatus(assessment.status), structural=True)
    question = await _get_question(session, assessment, question_id)
    await session.execute(delete(Answer).where(Answer.question_id == question.id))
    await session.execute(delete(Question).where(Question.id == question.id))
    await refresh_question_totals(session, assessment)
    await session.commit()


async def approve_questions(session: AsyncSession, assessment: Assessment) -> Assessment:
    questions = await list_questions(session, assessment.id)
    if not questions:
        raise ValidationError("Cannot approve an assessment without questions")
    missing_marks = [q.question_number for q in questions if not q.max_marks or q.max_marks <= 0]
    if missing_marks:
        raise ValidationError(
            "Every question needs max_marks greater than 0",
            data={"question_numbers": missing_marks},
        )

    for question in questions:
        question.verified = True
    await session.flush()
    count, total = await question_totals(session, assessment.id)
    await apply_assessment_event(
        session,
        assessment,
        AssessmentEvent.approve_questions,
        question_count=count,
        total_marks=total,
    )
    await session.commit()
    return assessment


async def delete_assessment(
    session: AsyncSession,
    assessment: Assessment,
    storage: Optional[StorageBackend] = None,
    page_cache: Optional[PageRenderCache] = None,
) -> None:
    """Owner-initiated delete; questions, submissions and answers go with it."""
    links = [assessment.question_paper_link] if assessment.question_paper_link else []
    links += [
        link
        for link in (
            await session.scalars(
                select(StudentSubmission.answer_sheet_link)
                .where(StudentSubmission.assessment_id == assessment.id)
                .distinct()
            )
        ).all()
        if link
    ]
    submission_ids = select(StudentSubmission.id).where(StudentSubmission.assessment_id == assessment.id)
    try:
        await session.execute(delete(Answer).where(Answer.submission_id.in_(submission_ids)))
        await session.execute(
            delete(StudentSubmission).where(StudentSubmission.assessment_id == assessment.id)
        )
        await delete_questions(session, assessment.id)
        await session.execute(delete(Assessment).where(Assessment.id == assessment.id))
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Could not delete assessment") from exc

    if page_cache is not None:
        for link in links:
            page_cache.evict(link)
    if storage is not None:
        for link in links:
            try:
                await storage.delete(link)
            except StorageError as exc:
                logger.warning(f"Could not remove stored file {link}: {exc}")
    logger.info(f"Deleted assessment {assessment.id}")


def assessment_context(assessment: Assessment) -> AssessmentContext:
    return AssessmentContext(
        title=assessment.title, class_name=assessment.class_name, subject=assessment.subject
    )


def ensure_has_paper(assessment: Assessment) -> str:
    if not assessment.question_paper_link:
        raise StateConflictError("Assessment has no stored question paper; upload it again")
    return assessment.question_paper_link
