"""Pure state machines for submissions and assessments.

Each function takes the current status and an event and returns the next
status, raising ``StateConflictError`` for a transition the source state does
not allow. Nothing here touches the database; ``persistence`` applies the
results with compare-and-set updates.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from app.core.exceptions import StateConflictError
from app.utils.enums import AssessmentStatus as A
from app.utils.enums import SubmissionStatus as S


class SubmissionEvent(str, enum.Enum):
    start_grading = "start_grading"
    grading_succeeded = "grading_succeeded"
    begin_verification = "begin_verification"
    approve = "approve"
    reject = "reject"
    reopen = "reopen"                    # Approved/Rejected back to Verifying
    answer_unverified = "answer_unverified"
    regrade = "regrade"
    fail = "fail"


class AssessmentEvent(str, enum.Enum):
    start_extraction = "start_extraction"
    extraction_succeeded = "extraction_succeeded"
    extraction_failed = "extraction_failed"
    upload_failed = "upload_failed"
    approve_questions = "approve_questions"
    submission_uploaded = "submission_uploaded"
    submission_demoted = "submission_demoted"


IN_FLIGHT_SUBMISSION: FrozenSet[S] = frozenset({S.pending, S.extracting, S.processing})
AWAITING_REVIEW: FrozenSet[S] = frozenset({S.ready_for_verification, S.verifying, S.rejected})

# Failed is terminal and cannot be re-failed; Approved/Rejected are settled outcomes.
FAILABLE_SUBMISSION: FrozenSet[S] = frozenset(
    {S.pending, S.extracting, S.processing, S.ready_for_verification, S.verifying}
)

_SUBMISSION_TABLE: Dict[SubmissionEvent, Tuple[FrozenSet[S], Optional[S]]] = {
    SubmissionEvent.start_grading: (frozenset({S.pending, S.extracting}), S.processing),
    SubmissionEvent.grading_succeeded: (frozenset({S.processing}), S.ready_for_verification),
    SubmissionEvent.begin_verification: (frozenset({S.ready_for_verification}), S.verifying),
    SubmissionEvent.approve: (frozenset({S.verifying}), S.approved),
    SubmissionEvent.reject: (frozenset({S.verifying}), S.rejected),
    SubmissionEvent.reopen: (frozenset({S.approved, S.rejected}), S.verifying),
    SubmissionEvent.regrade: (frozenset({S.ready_for_verification, S.verifying, S.rejected}), S.pending),
    SubmissionEvent.fail: (FAILABLE_SUBMISSION, S.failed),
}

EDITABLE_QUESTION_STATUSES: FrozenSet[A] = frozenset(
    {A.ques_pending_approval, A.processing_ques, A.ready_for_grading}
)
QUESTION_SET_MUTABLE_STATUSES: FrozenSet[A] = frozenset({A.ques_pending_approval, A.processing_ques})
ACCEPTS_SUBMISSIONS: FrozenSet[A] = frozenset(
    {A.ready_for_grading, A.processing_ans, A.ans_pending_approval, A.completed}
)
GRADING_PHASE: FrozenSet[A] = frozenset({A.processing_ans, A.ans_pending_approval, A.completed})

_ASSESSMENT_TABLE: Dict[AssessmentEvent, Tuple[FrozenSet[A], A]] = {
    AssessmentEvent.start_extraction: (
        frozenset(
            {
                A.processing_ques,
                A.ques_pending_approval,
                A.ready_for_grading,
                A.extraction_failed,
                A.upload_failed,
            }
        ),
        A.processing_ques,
    ),
    AssessmentEvent.extraction_succeeded: (frozenset({A.processing_ques}), A.ques_pending_approval),
    AssessmentEvent.extraction_failed: (frozenset({A.processing_ques}), A.extraction_failed),
    AssessmentEvent.upload_failed: (frozenset({A.processing_ques}), A.upload_failed),
    AssessmentEvent.approve_questions: (frozenset({A.ques_pending_approval}), A.ready_for_grading),
    AssessmentEvent.submission_uploaded: (ACCEPTS_SUBMISSIONS, A.processing_ans),
}


def next_submission_status(current: S, event: SubmissionEvent) -> S:
    if event == SubmissionEvent.answer_unverified:
        # Cascade from a cleared answer flag: only an approved submission moves.
        return S.verifying if current == S.approved else current

    allowed, target = _SUBMISSION_TABLE[event]
    if current not in allowed:
        raise StateConflictError(
            f"Cannot {event.value.replace('_', ' ')} a submission in status '{current.value}'",
            data={"status": current.value, "event": event.value},
        )
    return target


def next_assessment_status(current: A, event: AssessmentEvent) -> A:
    if event == AssessmentEvent.submission_demoted:
        return A.ans_pending_approval if current == A.completed else current

    allowed, target = _ASSESSMENT_TABLE[event]
    if current not in allowed:
        raise StateConflictError(
            f"Cannot {event.value.replace('_', ' ')} while assessment is '{current.value}'",
            data={"status": current.value, "event": event.value},
        )
    return target


def settle_assessment_status(current: A, submission_statuses: Iterable[S]) -> A:
    """Derive the grading-phase status from the statuses of every submission.

    Outside the grading phase the status is left alone.
    """
    if current not in GRADING_PHASE:
        return current
    statuses = list(submission_statuses)
    if not statuses or all(s == S.failed for s in statuses):
        return A.ready_for_grading
    if all(s == S.approved for s in statuses):
        return A.completed
    if any(s in AWAITING_REVIEW or s == S.approved for s in statuses):
        return A.ans_pending_approval
    return A.processing_ans


@dataclass(frozen=True)
class CascadeOutcome:
    submission_status: S
    assessment_status: A

    def submission_changed(self, before: S) -> bool:
        return self.submission_status != before

    def assessment_changed(self, before: A) -> bool:
        return self.assessment_status != before


def cascade_answer_unverified(submission_status: S, assessment_status: A) -> CascadeOutcome:
    """answer -> submission -> assessment, composed explicitly."""
    next_submission = next_submission_status(submission_status, SubmissionEvent.answer_unverified)
    next_assessment = assessment_status
    if next_submission != submission_status:
        next_assessment = next_assessment_status(assessment_status, AssessmentEvent.submission_demoted)
    return CascadeOutcome(next_submission, next_assessment)


def ensure_questions_editable(status: A, *, structural: bool = False) -> None:
    allowed = QUESTION_SET_MUTABLE_STATUSES if structural else EDITABLE_QUESTION_STATUSES
    if status not in allowed:
        action = "add or remove questions" if structural else "edit questions"
        raise StateConflictError(
            f"Cannot {action} while assessment is '{status.value}'",
            data={"status": status.value},
        )


def ensure_accepts_submissions(status: A) -> None:
    if status not in ACCEPTS_SUBMISSIONS:
        raise StateConflictError(
            f"Assessment must be ready for grading before answer sheets are uploaded (current: '{status.value}')",
            data={"status": status.value},
        )
