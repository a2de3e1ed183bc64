from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.utils.datetime_utils import UTCDateTime
from app.utils.enums import SubmissionStatus


class ScoreOut(BaseModel):
    """Derived on read from the submission's answers."""

    total_marks_obtained: float
    total_marks: float
    percentage: float
    rank: Optional[int] = None


class SubmissionOut(BaseModel):
    id: UUID
    assessment_id: UUID
    student_id: Optional[UUID] = None
    answer_sheet_link: Optional[str] = None
    extracted_student_info: Optional[Dict[str, Any]] = None
    page_numbers: Optional[List[int]] = None
    status: SubmissionStatus
    error_message: Optional[str] = None
    verified_by: Optional[UUID] = None
    verified_at: Optional[UTCDateTime] = None
    created_at: Optional[UTCDateTime] = None
    score: Optional[ScoreOut] = None

    model_config = ConfigDict(from_attributes=True)


class AnswerOut(BaseModel):
    id: UUID
    submission_id: UUID
    question_id: UUID
    question_number: Optional[int] = None
    max_marks: Optional[float] = None
    marks_obtained: float
    ai_explanation: Optional[str] = None
    user_feedback: Optional[str] = None
    page_number: Optional[int] = None
    verified: bool

    model_config = ConfigDict(from_attributes=True)


class SubmissionDetail(SubmissionOut):
    answers: List[AnswerOut] = Field(default_factory=list)


class AssignStudentRequest(BaseModel):
    student_id: UUID


class SubmissionStatusRequest(BaseModel):
    status: Literal["Verifying", "Approved", "Rejected", "Pending"] = Field(
        ..., description="Pending re-runs grading"
    )


class AnswerUpdate(BaseModel):
    marks_obtained: Optional[float] = Field(None, ge=0)
    ai_explanation: Optional[str] = None
    user_feedback: Optional[str] = None
    verified: Optional[bool] = None
