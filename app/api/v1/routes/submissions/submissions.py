# Standard library imports
import logging
import uuid
from typing import Optional

# Third-party imports
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

# Local imports
from app.api.v1.routes.assessments.assessments import ensure_pdf
from app.api.v1.routes.auth.auth import get_current_user
from app.core.response import ResponseModel, success_response
from app.db.deps import get_db
from app.models.student_submission import StudentSubmission
from app.models.user import User
from app.schemas.submissions import (
    AnswerOut,
    AssignStudentRequest,
    ScoreOut,
    SubmissionDetail,
    SubmissionOut,
    SubmissionStatusRequest,
)
from app.services import submission_service
from app.services.assessment_service import get_owned_assessment
from app.services.grading.reconciliation import SubmissionScore, score_assessment, score_submission
from app.services.pipeline.services import PipelineServices, get_pipeline_services
from app.services.pipeline.submissions import upload_answer_sheet
from app.utils.enums import SubmissionStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["submissions"])


def submission_out(submission: StudentSubmission, score: Optional[SubmissionScore] = None) -> SubmissionOut:
    out = SubmissionOut.model_validate(submission)
    if score is not None:
        out.score = ScoreOut(
            total_marks_obtained=score.total_marks_obtained,
            total_marks=score.total_marks,
            percentage=score.percentage,
            rank=score.rank,
        )
    return out


async def _detail(db: AsyncSession, submission: StudentSubmission) -> SubmissionDetail:
    answers = []
    for answer, question in await submission_service.list_answers(db, submission.id):
        item = AnswerOut.model_validate(answer)
        item.question_number = question.question_number
        item.max_marks = question.max_marks
        answers.append(item)
    out = submission_out(submission, await score_submission(db, submission))
    return SubmissionDetail(**out.model_dump(), answers=answers)


@router.post(
    "/assessments/{assessment_id}/submissions",
    response_model=ResponseModel,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_submission(
    assessment_id: uuid.UUID,
    file: UploadFile = File(...),
    student_id: Optional[uuid.UUID] = Form(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: PipelineServices = Depends(get_pipeline_services),
):
    """Upload an answer sheet. Sheets holding several students are split in the background."""
    ensure_pdf(file)
    assessment = await get_owned_assessment(db, assessment_id, current_user)
    submission, _job = await upload_answer_sheet(
        db,
        services,
        assessment,
        current_user,
        data=await file.read(),
        filename=file.filename or "answer-sheet.pdf",
        content_type=file.content_type,
        student_id=student_id,
    )
    return success_response(
        msg="Answer sheet uploaded. Processing started.",
        data=submission_out(submission),
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.get("/assessments/{assessment_id}/submissions", response_model=ResponseModel)
async def list_submissions(
    assessment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assessment = await get_owned_assessment(db, assessment_id, current_user)
    submissions = await submission_service.list_submissions(db, assessment.id)
    scores = await score_assessment(db, assessment.id)
    return success_response(
        msg="Submissions retrieved",
        data=[submission_out(s, scores.get(s.id)) for s in submissions],
    )


@router.get("/submissions/{submission_id}", response_model=ResponseModel)
async def get_submission(
    submission_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    submission, _assessment = await submission_service.get_owned_submission(db, submission_id, current_user)
    return success_response(msg="Submission retrieved", data=await _detail(db, submission))


@router.post("/submissions/{submission_id}/student", response_model=ResponseModel)
async def assign_student(
    submission_id: uuid.UUID,
    payload: AssignStudentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    submission, _assessment = await submission_service.get_owned_submission(db, submission_id, current_user)
    await submission_service.assign_student(db, submission, current_user, payload.student_id)
    return success_response(msg="Student assigned", data=submission_out(submission))


@router.post("/submissions/{submission_id}/status", response_model=ResponseModel)
async def change_submission_status(
    submission_id: uuid.UUID,
    payload: SubmissionStatusRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: PipelineServices = Depends(get_pipeline_services),
):
    submission, _assessment = await submission_service.get_owned_submission(db, submission_id, current_user)
    target = SubmissionStatus(payload.status)
    if target == SubmissionStatus.pending:
        await submission_service.regrade(db, services, submission)
        return success_response(msg="Submission reopened for grading", data=submission_out(submission))

    await submission_service.change_status(db, submission, current_user, target)
    return success_response(msg=f"Submission is now {target.value}", data=submission_out(submission))


@router.post(
    "/submissions/{submission_id}/regrade",
    response_model=ResponseModel,
    status_code=status.HTTP_202_ACCEPTED,
)
async def regrade_submission(
    submission_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: PipelineServices = Depends(get_pipeline_services),
):
    submission, _assessment = await submission_service.get_owned_submission(db, submission_id, current_user)
    await submission_service.regrade(db, services, submission)
    return success_response(
        msg="Regrading started",
        data=submission_out(submission),
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.delete("/submissions/{submission_id}", response_model=ResponseModel)
async def delete_submission(
    submission_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: PipelineServices = Depends(get_pipeline_services),
):
    submission, _assessment = await submission_service.get_owned_submission(db, submission_id, current_user)
    await submission_service.delete_submission(db, submission, services.storage, services.page_cache)
    return success_response(msg="Submission deleted", data={"submission_id": str(submission_id)})
