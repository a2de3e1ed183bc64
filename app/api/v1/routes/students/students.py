import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.routes.auth.auth import get_current_user
from app.core.response import ResponseModel, success_response
from app.db.deps import get_db
from app.models.assessment import Assessment
from app.models.student_submission import StudentSubmission
from app.models.user import User
from app.schemas.students import StudentCreate, StudentOut, StudentUpdate
from app.services.grading.reconciliation import score_submissions
from app.services.roster_service import RosterStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/students", tags=["students"])


def get_roster(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RosterStore:
    return RosterStore(db, current_user.organisation)


@router.post("/", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
async def create_student(
    payload: StudentCreate,
    current_user: User = Depends(get_current_user),
    roster: RosterStore = Depends(get_roster),
):
    student = await roster.create(created_by=current_user.id, **payload.model_dump())
    await roster.session.commit()
    return success_response(
        msg="Student created",
        data=StudentOut.model_validate(student),
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/", response_model=ResponseModel)
async def list_students(
    class_name: Optional[str] = Query(None, alias="class"),
    search: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    roster: RosterStore = Depends(get_roster),
):
    students = await roster.list_students(class_name=class_name, search=search, limit=limit, offset=offset)
    return success_response(
        msg="Students retrieved",
        data=[StudentOut.model_validate(s) for s in students],
    )


@router.get("/{student_id}", response_model=ResponseModel)
async def get_student(student_id: uuid.UUID, roster: RosterStore = Depends(get_roster)):
    student = await roster.get(student_id)
    return success_response(msg="Student retrieved", data=StudentOut.model_validate(student))


@router.patch("/{student_id}", response_model=ResponseModel)
async def update_student(
    student_id: uuid.UUID,
    payload: StudentUpdate,
    roster: RosterStore = Depends(get_roster),
):
    student = await roster.update(student_id, **payload.model_dump(exclude_unset=True))
    await roster.session.commit()
    return success_response(msg="Student updated", data=StudentOut.model_validate(student))


@router.delete("/{student_id}", response_model=ResponseModel)
async def delete_student(student_id: uuid.UUID, roster: RosterStore = Depends(get_roster)):
    await roster.delete(student_id)
    await roster.session.commit()
    return success_response(msg="Student deleted", data={"student_id": str(student_id)})


@router.get("/{student_id}/submissions", response_model=ResponseModel)
async def student_submissions(
    student_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    roster: RosterStore = Depends(get_roster),
):
    """The student's submissions on the caller's assessments, with derived scores."""
    student = await roster.get(student_id)
    db = roster.session
    rows = await db.execute(
        select(StudentSubmission, Assessment.title)
        .join(Assessment, Assessment.id == StudentSubmission.assessment_id)
        .where(StudentSubmission.student_id == student.id, Assessment.owner_id == current_user.id)
        .order_by(StudentSubmission.created_at.desc())
    )
    pairs = rows.all()
    scores = await score_submissions(db, [s for s, _title in pairs])

    data = []
    for submission, title in pairs:
        score = scores.get(submission.id)
        data.append(
            {
                "submission_id": submission.id,
                "assessment_id": submission.assessment_id,
                "assessment_title": title,
                "status": submission.status,
                "total_marks_obtained": score.total_marks_obtained if score else 0,
                "total_marks": score.total_marks if score else 0,
                "percentage": score.percentage if score else 0,
                "rank": score.rank if score else None,
            }
        )
    return success_response(msg="Student submissions retrieved", data=data)
