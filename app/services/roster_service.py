"""Roster store: organisation-scoped CRUD over Student rows."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, List, Optional, Set

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, StateConflictError, ValidationError
from app.models.student import Student
from app.models.student_submission import StudentSubmission
from app.utils.enums import SubmissionStatus

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {
    "student_identifier",
    "student_name",
    "class_name",
    "section",
    "roll_number",
    "email",
    "phone",
}


class RosterStore:
    def __init__(self, session: AsyncSession, organisation: str):
        if not organisation:
            raise ValidationError("An organisation is required to access the roster")
        self.session = session
        self.organisation = organisation

    async def get(self, student_id: uuid.UUID) -> Student:
        student = await self.session.get(Student, student_id)
        if student is None or student.organisation != self.organisation:
            raise NotFoundError("Student not found")
        return student

    async def list_students(
        self,
        *,
        class_name: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Student]:
        stmt = select(Student).where(Student.organisation == self.organisation)
        if class_name:
            stmt = stmt.where(Student.class_name == class_name)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Student.student_name).like(pattern),
                    func.lower(Student.student_identifier).like(pattern),
                    func.lower(func.coalesce(Student.roll_number, "")).like(pattern),
                )
            )
        stmt = stmt.order_by(Student.class_name, Student.roll_number, Student.student_name)
        return list((await self.session.scalars(stmt.limit(limit).offset(offset))).all())

    async def find_by_identifier(self, identifier: str) -> Optional[Student]:
        return await self.session.scalar(
            select(Student).where(
                Student.organisation == self.organisation,
                Student.student_identifier == identifier,
            )
        )

    async def find_by_class_and_roll(
        self, class_name: str, roll_number: str, exclude_ids: Iterable[uuid.UUID] = ()
    ) -> List[Student]:
        stmt = select(Student).where(
            Student.organisation == self.organisation,
            func.lower(Student.class_name) == class_name.lower(),
            Student.roll_number == roll_number,
        )
        excluded = list(exclude_ids)
        if excluded:
            stmt = stmt.where(Student.id.notin_(excluded))
        return list((await self.session.scalars(stmt)).all())

    async def approved_student_ids(self, assessment_id: uuid.UUID) -> Set[uuid.UUID]:
        """Students already holding an Approved submission for ``assessment_id``."""
        rows = await self.session.scalars(
            select(StudentSubmission.student_id).where(
                StudentSubmission.assessment_id == assessment_id,
                StudentSubmission.status == SubmissionStatus.approved,
                StudentSubmission.student_id.is_not(None),
            )
        )
        return set(rows.all())

    async def create(self, *, created_by: Optional[uuid.UUID] = None, **fields: Any) -> Student:
        identifier = (fields.get("student_identifier") or "").strip()
        name = (fields.get("student_name") or "").strip()
        if not identifier or not name:
            raise ValidationError("student_identifier and student_name are required")
        if await self.find_by_identifier(identifier):
            raise StateConflictError(f"Student with identifier '{identifier}' already exists")

        student = Student(
            organisation=self.organisation,
            created_by=created_by,
            **{k: v for k, v in fields.items() if k in _UPDATABLE_FIELDS},
        )
        student.student_identifier = identifier
        student.student_name = name
        self.session.add(student)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise StateConflictError(f"Student with identifier '{identifier}' already exists") from exc
        logger.info(f"Created student {student.id} ({identifier}) in {self.organisation}")
        return student

    async def update(self, student_id: uuid.UUID, **changes: Any) -> Student:
        student = await self.get(student_id)
        new_identifier = changes.get("student_identifier")
        if new_identifier and new_identifier != student.student_identifier:
            if await self.find_by_identifier(new_identifier):
                raise StateConflictError(f"Student with identifier '{new_identifier}' already exists")
        for key, value in changes.items():
            if key in _UPDATABLE_FIELDS and value is not None:
                setattr(student, key, value)
        await self.session.flush()
        return student

    async def delete(self, student_id: uuid.UUID) -> None:
        student = await self.get(student_id)
        # Submissions outlive the roster entry; they just lose the link.
        await self.session.execute(
            update(StudentSubmission)
            .where(StudentSubmission.student_id == student.id)
            .values(student_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.delete(student)
        await self.session.flush()
