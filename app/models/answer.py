import uuid
from sqlalchemy import (
    Column, Text, Integer, Numeric, Boolean, DateTime, ForeignKey, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship
from app.db.deps import Base
from app.utils.datetime_utils import get_current_utc_datetime


class Answer(Base):
    __tablename__ = "answers"
    __table_args__ = (
        UniqueConstraint("submission_id", "question_id", name="uq_answer_per_question"),
    )

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        PG_UUID(as_uuid=True), ForeignKey("student_submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id = Column(
        PG_UUID(as_uuid=True), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    marks_obtained = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    ai_explanation = Column(Text, nullable=True)
    user_feedback = Column(Text, nullable=True)
    page_number = Column(Integer, nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=get_current_utc_datetime)
    updated_at = Column(DateTime(timezone=True), onupdate=get_current_utc_datetime)

    submission = relationship("StudentSubmission", back_populates="answers")
    question = relationship("Question", back_populates="answers")
