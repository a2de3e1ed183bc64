import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship
from app.db.deps import Base
from app.utils.datetime_utils import get_current_utc_datetime


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("organisation", "student_identifier", name="uq_student_identifier_per_org"),
    )

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organisation = Column(String, nullable=False, index=True)
    student_identifier = Column(String, nullable=False)
    student_name = Column(String, nullable=False)
    class_name = Column("class", String, nullable=True)
    section = Column(String, nullable=True)
    roll_number = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    created_by = Column(PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=get_current_utc_datetime)
    updated_at = Column(DateTime(timezone=True), onupdate=get_current_utc_datetime)

    submissions = relationship("StudentSubmission", back_populates="student", passive_deletes=True)
