"""Derived scores, always computed from Answer rows on read.

Nothing here writes. Totals, percentages and ranks are never stored on the
submission or the assessment, so an edit to one answer shows up everywhere
without any invalidation step.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Hashable, Iterable, List, Optional, Tuple, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.answer import Answer
from app.models.assessment import Assessment
from app.models.student_submission import StudentSubmission
from app.utils.enums import SubmissionStatus

K = TypeVar("K", bound=Hashable)

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class SubmissionScore:
    submission_id: uuid.UUID
    status: SubmissionStatus
    total_marks_obtained: float
    total_marks: float
    percentage: float
    rank: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "total_marks_obtained": self.total_marks_obtained,
            "total_marks": self.total_marks,
            "percentage": self.percentage,
            "rank": self.rank,
        }


def compute_percentage(obtained: float, total: float) -> float:
    """obtained / total * 100, half-up to two decimals; 0 when total is 0."""
    if not total:
        return 0.0
    value = Decimal(str(obtained)) / Decimal(str(total)) * 100
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def competition_ranks(scores: Iterable[Tuple[K, float]]) -> Dict[K, int]:
    """Standard competition ranking ("1224"): ties share a rank, the next rank skips."""
    ordered = sorted(scores, key=lambda item: item[1], reverse=True)
    ranks: Dict[K, int] = {}
    previous: Optional[float] = None
    current_rank = 0
    for position, (key, score) in enumerate(ordered, start=1):
        if score != previous:
            current_rank = position
            previous = score
        ranks[key] = current_rank
    return ranks


def _round_marks(value) -> float:
    return float(Decimal(str(value or 0)).quantize(_CENT, rounding=ROUND_HALF_UP))


async def _assessment_total(session: AsyncSession, assessment_id: uuid.UUID) -> float:
    total = await session.scalar(select(Assessment.total_marks).where(Assessment.id == assessment_id))
    if total is None:
        raise NotFoundError("Assessment not found")
    return float(total)


async def total_marks_obtained(session: AsyncSession, submission_id: uuid.UUID) -> float:
    total = await session.scalar(
        select(func.coalesce(func.sum(Answer.marks_obtained), 0)).where(
            Answer.submission_id == submission_id
        )
    )
    return _round_marks(total)


async def score_assessment(
    session: AsyncSession, assessment_id: uuid.UUID
) -> Dict[uuid.UUID, SubmissionScore]:
    """Score every submission of an assessment; only Approved ones are ranked."""
    total = await _assessment_total(session, assessment_id)
    rows = (
        await session.execute(
            select(
                StudentSubmission.id,
                StudentSubmission.status,
                func.coalesce(func.sum(Answer.marks_obtained), 0),
            )
            .outerjoin(Answer, Answer.submission_id == StudentSubmission.id)
            .where(StudentSubmission.assessment_id == assessment_id)
            .group_by(StudentSubmission.id, StudentSubmission.status)
        )
    ).all()

    scores: Dict[uuid.UUID, SubmissionScore] = {}
    for submission_id, status, obtained in rows:
        obtained = _round_marks(obtained)
        scores[submission_id] = SubmissionScore(
            submission_id=submission_id,
            status=SubmissionStatus(status),
            total_marks_obtained=obtained,
            total_marks=total,
            percentage=compute_percentage(obtained, total),
        )

    ranks = competition_ranks(
        (sid, score.percentage)
        for sid, score in scores.items()
        if score.status == SubmissionStatus.approved
    )
    for sid, rank in ranks.items():
        scores[sid] = replace(scores[sid], rank=rank)
    return scores


async def score_submission(session: AsyncSession, submission: StudentSubmission) -> SubmissionScore:
    scores = await score_assessment(session, submission.assessment_id)
    try:
        return scores[submission.id]
    except KeyError:
        raise NotFoundError("Submission not found") from None


async def score_submissions(
    session: AsyncSession, submissions: List[StudentSubmission]
) -> Dict[uuid.UUID, SubmissionScore]:
    """Score submissions that may belong to different assessments."""
    result: Dict[uuid.UUID, SubmissionScore] = {}
    for assessment_id in {s.assessment_id for s in submissions}:
        result.update(await score_assessment(session, assessment_id))
    wanted = {s.id for s in submissions}
    return {sid: score for sid, score in result.items() if sid in wanted}
