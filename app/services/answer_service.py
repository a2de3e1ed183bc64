"""Teacher edits to graded answers."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, StateConflictError, ValidationError
from app.models.answer import Answer
from app.models.question import Question
from app.models.student_submission import StudentSubmission
from app.models.user import User
from app.services.lifecycle.persistence import apply_submission_event, unverify_answer
from app.services.lifecycle.transitions import IN_FLIGHT_SUBMISSION, SubmissionEvent
from app.services.submission_service import get_owned_submission
from app.utils.enums import SubmissionStatus

logger = logging.getLogger(__name__)


async def update_answer(
    session: AsyncSession, answer_id: uuid.UUID, user: User, changes: Dict[str, Any]
) -> Tuple[Answer, StudentSubmission]:
    """Apply a partial update.

    ``ai_explanation`` only changes when a value is given; ``user_feedback``
    is written whenever the key is present, including ``None``. Clearing
    ``verified`` demotes an Approved submission back to Verifying.
    """
    answer = await session.get(Answer, answer_id)
    if answer is None:
        raise NotFoundError("Answer not found")
    submission, _assessment = await get_owned_submission(session, answer.submission_id, user)

    status = SubmissionStatus(submission.status)
    if status in IN_FLIGHT_SUBMISSION or status == SubmissionStatus.failed:
        raise StateConflictError(
            f"Answers cannot be edited while the submission is '{status.value}'",
            data={"status": status.value},
        )

    edited = False
    marks = changes.get("marks_obtained")
    if marks is not None:
        question = await session.get(Question, answer.question_id)
        if marks < 0 or marks > question.max_marks:
            raise ValidationError(
                f"marks_obtained must be between 0 and {question.max_marks:g}",
                data={"max_marks": question.max_marks},
            )
        answer.marks_obtained = marks
        edited = True
    if changes.get("ai_explanation") is not None:
        answer.ai_explanation = changes["ai_explanation"]
        edited = True
    if "user_feedback" in changes:
        answer.user_feedback = changes["user_feedback"]
        edited = True

    if edited and status == SubmissionStatus.ready_for_verification:
        await apply_submission_event(session, submission, SubmissionEvent.begin_verification)

    verified = changes.get("verified")
    if verified is True:
        answer.verified = True
    elif verified is False:
        outcome = await unverify_answer(session, answer)
        if outcome.submission_changed(status):
            logger.info(f"Answer {answer.id} unverified; submission {submission.id} reopened for verification")

    await session.commit()
    await session.refresh(submission)
    return answer, submission
