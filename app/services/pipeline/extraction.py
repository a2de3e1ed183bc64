"""Question-paper upload and the detached question-extraction job."""
from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DomainError, PersistenceError, StateConflictError, StorageError, ValidationError
from app.models.assessment import Assessment
from app.models.question import Question
from app.models.user import User
from app.services.assessment_service import (
    assessment_context,
    delete_questions,
    ensure_has_paper,
    next_question_number,
    question_totals,
)
from app.services.lifecycle.persistence import apply_assessment_event
from app.services.lifecycle.transitions import AssessmentEvent
from app.services.pipeline.jobs import Job
from app.services.pipeline.services import PipelineServices
from app.services.providers.base import QuestionCandidate
from app.utils.enums import AssessmentStatus

logger = logging.getLogger(__name__)

QUESTION_PAPER_FOLDER = "question-papers"


async def upload_question_paper(
    session: AsyncSession,
    services: PipelineServices,
    owner: User,
    *,
    title: str,
    data: bytes,
    filename: str,
    content_type: Optional[str] = None,
    class_name: Optional[str] = None,
    subject: Optional[str] = None,
) -> tuple[Assessment, Job]:
    if not (title or "").strip():
        raise ValidationError("title is required")
    if not data:
        raise ValidationError("The uploaded question paper is empty")

    assessment = Assessment(
        owner_id=owner.id,
        title=title.strip(),
        class_name=class_name,
        subject=subject,
        status=AssessmentStatus.processing_ques,
    )
    session.add(assessment)
    await session.commit()

    try:
        link = await services.storage.upload(data, filename, QUESTION_PAPER_FOLDER, content_type)
    except StorageError as exc:
        logger.error(
            f"Storing question paper for assessment {assessment.id} failed: {exc.message}",
            extra={"assessment_id": str(assessment.id)},
        )
        await apply_assessment_event(
            session, assessment, AssessmentEvent.upload_failed, error_message=exc.message
        )
        await session.commit()
        raise

    assessment.question_paper_link = link
    await session.commit()
    logger.info(f"User {owner.id} uploaded question paper for assessment {assessment.id}: {link}")

    job = await start_extraction(session, assessment, services)
    return assessment, job


async def start_extraction(session: AsyncSession, assessment: Assessment, services: PipelineServices) -> Job:
    """Commit the move to Processing Ques, then hand off to a detached job."""
    ensure_has_paper(assessment)
    await apply_assessment_event(
        session, assessment, AssessmentEvent.start_extraction, error_message=None
    )
    await session.commit()
    return services.runner.submit(
        f"extract-questions:{assessment.id}", run_question_extraction(assessment.id, services)
    )


async def run_question_extraction(assessment_id: uuid.UUID, services: PipelineServices) -> Optional[int]:
    """Replace the assessment's questions with a fresh extraction.

    Returns the number of questions stored, or None when the run ended in
    Extraction Failed (or was superseded).
    """
    async with services.session_factory() as session:
        assessment = await session.get(Assessment, assessment_id)
        if assessment is None:
            logger.warning(f"Assessment {assessment_id} disappeared before extraction started")
            return None

        try:
            removed = await delete_questions(session, assessment.id)
            await session.commit()
            if removed:
                logger.info(f"Removed {removed} previously extracted question(s) from {assessment_id}")

            pages = await services.render_pages(ensure_has_paper(assessment))
            result = await services.chain.extract_questions(pages, assessment_context(assessment))
            logger.info(
                f"Provider {result.provider} extracted {len(result.value)} question(s) "
                f"from {len(pages)} page(s) for assessment {assessment_id}"
            )
            return await _store_questions(session, assessment, result.value)
        except StateConflictError as exc:
            await session.rollback()
            logger.warning(f"Extraction for assessment {assessment_id} superseded: {exc.message}")
            return None
        except DomainError as exc:
            await _mark_extraction_failed(session, assessment_id, exc.message)
            return None
        except Exception as exc:
            await _mark_extraction_failed(session, assessment_id, f"Unexpected error: {exc}")
            raise


async def _store_questions(
    session: AsyncSession, assessment: Assessment, candidates: Sequence[QuestionCandidate]
) -> int:
    try:
        number = await next_question_number(session, assessment.id)
        stored: List[Question] = []
        for candidate in candidates:
            text = (candidate.question_text or "").strip()
            if not text:
                continue
            stored.append(
                Question(
                    assessment_id=assessment.id,
                    question_number=number,
                    question_identifier=candidate.question_identifier,
                    question_text=text,
                    max_marks=candidate.max_marks,
                    page_number=candidate.page_number,
                    topics=[t.as_dict() for t in candidate.topics],
                    verified=False,
                )
            )
            number += 1
        if not stored:
            raise ValidationError("No questions could be extracted from the question paper")

        session.add_all(stored)
        await session.flush()
        count, total = await question_totals(session, assessment.id)
        await apply_assessment_event(
            session,
            assessment,
            AssessmentEvent.extraction_succeeded,
            question_count=count,
            total_marks=total,
            error_message=None,
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Could not save extracted questions") from exc

    logger.info(f"Stored {len(stored)} question(s) for assessment {assessment.id}")
    return len(stored)


async def _mark_extraction_failed(session: AsyncSession, assessment_id: uuid.UUID, message: str) -> None:
    logger.error(
        f"Question extraction failed for assessment {assessment_id}: {message}",
        extra={"assessment_id": str(assessment_id)},
    )
    await session.rollback()
    assessment = await session.get(Assessment, assessment_id)
    if assessment is None:
        return
    try:
        await apply_assessment_event(
            session, assessment, AssessmentEvent.extraction_failed, error_message=message
        )
        await session.commit()
    except StateConflictError as exc:
        await session.rollback()
        logger.warning(f"Could not mark assessment {assessment_id} as failed: {exc.message}")
