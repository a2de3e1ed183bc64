from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from app.utils.datetime_utils import UTCDateTime
from app.utils.enums import AssessmentStatus


StrippedStr = Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]


class TopicWeightSchema(BaseModel):
    topic: StrippedStr
    weight: float = Field(0, description="Provider-supplied weight; totals are not checked")


class QuestionOut(BaseModel):
    id: UUID
    question_number: int
    question_identifier: Optional[str] = None
    question_text: str
    max_marks: float
    page_number: int
    topics: List[TopicWeightSchema] = Field(default_factory=list)
    verified: bool

    model_config = ConfigDict(from_attributes=True)


class QuestionCreate(BaseModel):
    question_text: StrippedStr
    question_identifier: Optional[str] = None
    max_marks: float = Field(1, gt=0)
    page_number: int = Field(1, ge=1)
    topics: List[TopicWeightSchema] = Field(default_factory=list)


class QuestionUpdate(BaseModel):
    question_text: Optional[StrippedStr] = None
    question_identifier: Optional[str] = None
    max_marks: Optional[float] = Field(None, ge=0)
    page_number: Optional[int] = Field(None, ge=1)
    topics: Optional[List[TopicWeightSchema]] = None
    verified: Optional[bool] = None


class AssessmentOut(BaseModel):
    id: UUID
    title: str
    class_name: Optional[str] = Field(None, serialization_alias="class")
    subject: Optional[str] = None
    status: AssessmentStatus
    question_count: int
    total_marks: float
    question_paper_link: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None

    model_config = ConfigDict(from_attributes=True)


class AssessmentDetail(AssessmentOut):
    questions: List[QuestionOut] = Field(default_factory=list)
