import uuid
from sqlalchemy import Column, String, Text, Integer, Numeric, DateTime, ForeignKey, Enum
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship
from app.db.deps import Base
from app.utils.datetime_utils import get_current_utc_datetime
from app.utils.enums import AssessmentStatus, enum_values


class Assessment(Base):
    __tablename__ = "assessments"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(
        PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String, nullable=False)
    class_name = Column("class", String, nullable=True)
    subject = Column(String, nullable=True)
    status = Column(
        Enum(AssessmentStatus, name="assessment_status", values_callable=enum_values),
        nullable=False,
        default=AssessmentStatus.processing_ques,
    )
    question_count = Column(Integer, nullable=False, default=0)
    # Cached sum of question max_marks, refreshed whenever questions change.
    total_marks = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    question_paper_link = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=get_current_utc_datetime)
    updated_at = Column(DateTime(timezone=True), onupdate=get_current_utc_datetime)

    owner = relationship("User", back_populates="assessments")
    questions = relationship(
        "Question",
        back_populates="assessment",
        cascade="all, delete-orphan",
        order_by="Question.question_number",
    )
    submissions = relationship(
        "StudentSubmission", back_populates="assessment", cascade="all, delete-orphan"
    )
