import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, Enum
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship
from app.db.deps import Base
from app.utils.datetime_utils import get_current_utc_datetime
from app.utils.enums import SubmissionStatus, enum_values


class StudentSubmission(Base):
    __tablename__ = "student_submissions"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    assessment_id = Column(
        PG_UUID(as_uuid=True), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Nullable: the partitioner may leave an identity unresolved.
    student_id = Column(
        PG_UUID(as_uuid=True), ForeignKey("students.id", ondelete="SET NULL"), nullable=True, index=True
    )
    answer_sheet_link = Column(String, nullable=True)
    extracted_student_info = Column(JSON, nullable=True)
    # None means every page of the sheet belongs to this submission.
    page_numbers = Column(JSON, nullable=True)
    status = Column(
        Enum(SubmissionStatus, name="submission_status", values_callable=enum_values),
        nullable=False,
        default=SubmissionStatus.pending,
    )
    error_message = Column(Text, nullable=True)
    verified_by = Column(PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=get_current_utc_datetime)
    updated_at = Column(DateTime(timezone=True), onupdate=get_current_utc_datetime)

    assessment = relationship("Assessment", back_populates="submissions")
    student = relationship("Student", back_populates="submissions")
    answers = relationship("Answer", back_populates="submission", cascade="all, delete-orphan")
