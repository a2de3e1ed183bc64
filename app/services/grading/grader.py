"""Detached answer-grading job for one submission."""
from __future__ import annotations

import logging
import uuid
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DomainError, PersistenceError, StateConflictError, ValidationError
from app.models.answer import Answer
from app.models.assessment import Assessment
from app.models.question import Question
from app.models.student import Student
from app.models.student_submission import StudentSubmission
from app.services.assessment_service import assessment_context, list_questions
from app.services.lifecycle.persistence import apply_submission_event, settle_assessment
from app.services.lifecycle.transitions import SubmissionEvent
from app.services.pipeline.services import PipelineServices
from app.services.providers.base import AnswerCandidate, RenderedPage
from app.services.providers.prompts import grading_prompt

logger = logging.getLogger(__name__)


def select_pages(pages: Sequence[RenderedPage], page_numbers: Optional[Iterable[int]]) -> List[RenderedPage]:
    """None means the whole document belongs to the submission."""
    if page_numbers is None:
        return list(pages)
    wanted = set(page_numbers)
    return [page for page in pages if page.number in wanted]


def _question_payload(question: Question) -> dict:
    return {
        "question_number": question.question_number,
        "question_identifier": question.question_identifier,
        "question_text": question.question_text,
        "max_marks": question.max_marks,
        "topics": question.topics or [],
    }


def clamp_marks(marks: float, max_marks: float) -> float:
    return round(min(max(float(marks), 0.0), float(max_marks or 0)), 2)


async def _student_name(session: AsyncSession, submission: StudentSubmission) -> Optional[str]:
    if submission.student_id is not None:
        student = await session.get(Student, submission.student_id)
        if student is not None:
            return student.student_name
    return (submission.extracted_student_info or {}).get("student_name")


async def run_grading(submission_id: uuid.UUID, services: PipelineServices) -> Optional[int]:
    """Grade one submission; returns the number of answers written."""
    async with services.session_factory() as session:
        submission = await session.get(StudentSubmission, submission_id)
        if submission is None:
            logger.warning(f"Submission {submission_id} disappeared before grading started")
            return None

        try:
            await apply_submission_event(
                session, submission, SubmissionEvent.start_grading, error_message=None
            )
            await session.commit()
        except StateConflictError as exc:
            await session.rollback()
            logger.warning(f"Skipping grading for submission {submission_id}: {exc.message}")
            return None

        try:
            return await _grade(session, submission, services)
        except StateConflictError as exc:
            await session.rollback()
            logger.warning(f"Grading for submission {submission_id} superseded: {exc.message}")
            return None
        except DomainError as exc:
            await fail_submission(session, submission_id, exc.message)
            return None
        except Exception as exc:
            await fail_submission(session, submission_id, f"Unexpected error: {exc}")
            raise


async def _grade(session: AsyncSession, submission: StudentSubmission, services: PipelineServices) -> int:
    assessment = await session.get(Assessment, submission.assessment_id)
    questions = await list_questions(session, assessment.id)
    if not questions:
        raise ValidationError("Assessment has no questions to grade against")
    if not submission.answer_sheet_link:
        raise ValidationError("Submission has no stored answer sheet")

    pages = select_pages(await services.render_pages(submission.answer_sheet_link), submission.page_numbers)
    if not pages:
        raise ValidationError(f"None of pages {submission.page_numbers} exist in the answer sheet")

    prompt = grading_prompt(
        [_question_payload(q) for q in questions],
        assessment_context(assessment),
        student_name=await _student_name(session, submission),
    )
    # Nothing stays open across the provider call.
    await session.commit()

    result = await services.chain.grade_answers(pages, prompt)
    logger.info(
        f"Provider {result.provider} graded {len(result.value)} answer(s) for submission {submission.id}"
    )
    return await _store_answers(session, submission, questions, result.value)


def _match_candidates(
    questions: Sequence[Question], candidates: Iterable[AnswerCandidate]
) -> Dict[int, Tuple[Question, AnswerCandidate]]:
    by_number = {q.question_number: q for q in questions}
    matched: Dict[int, Tuple[Question, AnswerCandidate]] = {}
    for candidate in candidates:
        question = by_number.get(candidate.question_number)
        if question is None:
            logger.warning(f"Ignoring graded answer for unknown question {candidate.question_number}")
            continue
        # Last one wins when a provider repeats a question.
        matched[question.question_number] = (question, candidate)
    return matched


async def _store_answers(
    session: AsyncSession,
    submission: StudentSubmission,
    questions: Sequence[Question],
    candidates: Sequence[AnswerCandidate],
) -> int:
    matched = _match_candidates(questions, candidates)
    if not matched:
        raise ValidationError("The provider returned no answers for this assessment's questions")

    try:
        existing = {
            answer.question_id: answer
            for answer in (
                await session.scalars(select(Answer).where(Answer.submission_id == submission.id))
            ).all()
        }
        for question, candidate in matched.values():
            answer = existing.get(question.id)
            if answer is None:
                answer = Answer(submission_id=submission.id, question_id=question.id)
                session.add(answer)
            answer.marks_obtained = clamp_marks(candidate.marks_obtained, question.max_marks)
            answer.ai_explanation = candidate.explanation or None
            answer.page_number = candidate.page_number
            answer.verified = False

        await apply_submission_event(
            session, submission, SubmissionEvent.grading_succeeded, error_message=None
        )
        await settle_assessment(session, submission.assessment_id)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Could not save graded answers") from exc

    return len(matched)


async def fail_submission(session: AsyncSession, submission_id: uuid.UUID, message: str) -> None:
    """Roll back whatever was in progress and move the submission to Failed."""
    logger.error(
        f"Submission {submission_id} failed: {message}",
        extra={"submission_id": str(submission_id)},
    )
    await session.rollback()
    submission = await session.get(StudentSubmission, submission_id)
    if submission is None:
        return
    try:
        await apply_submission_event(session, submission, SubmissionEvent.fail, error_message=message)
        await settle_assessment(session, submission.assessment_id)
        await session.commit()
    except StateConflictError as exc:
        await session.rollback()
        logger.warning(f"Could not mark submission {submission_id} as failed: {exc.message}")
