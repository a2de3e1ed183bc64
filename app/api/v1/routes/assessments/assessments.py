# Standard library imports
import logging
import os
import uuid
from typing import Optional

# Third-party imports
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

# Local imports
from app.api.v1.routes.auth.auth import get_current_user
from app.core.exceptions import ValidationError
from app.core.response import ResponseModel, success_response
from app.db.deps import get_db
from app.models.user import User
from app.schemas.assessments import (
    AssessmentDetail,
    AssessmentOut,
    QuestionCreate,
    QuestionOut,
    QuestionUpdate,
)
from app.services import assessment_service
from app.services.pipeline.extraction import start_extraction, upload_question_paper
from app.services.pipeline.services import PipelineServices, get_pipeline_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assessments", tags=["assessments"])

ACCEPTED_EXTENSIONS = {".pdf"}


def ensure_pdf(file: UploadFile) -> None:
    _, ext = os.path.splitext(file.filename or "")
    if ext.lower() not in ACCEPTED_EXTENSIONS and file.content_type != "application/pdf":
        raise ValidationError(
            "Unsupported file type. Please upload a PDF.",
            data={"error_type": "UNSUPPORTED_FILE_TYPE", "accepted_types": sorted(ACCEPTED_EXTENSIONS)},
        )


async def _detail(db: AsyncSession, assessment) -> AssessmentDetail:
    questions = await assessment_service.list_questions(db, assessment.id)
    return AssessmentDetail(
        **AssessmentOut.model_validate(assessment).model_dump(),
        questions=[QuestionOut.model_validate(q) for q in questions],
    )


@router.post("/upload", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
async def upload_assessment(
    title: str = Form(...),
    class_name: Optional[str] = Form(None, alias="class"),
    subject: Optional[str] = Form(None),
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: PipelineServices = Depends(get_pipeline_services),
):
    """Upload a question paper; question extraction continues in the background."""
    ensure_pdf(file)
    assessment, _job = await upload_question_paper(
        db,
        services,
        current_user,
        title=title,
        class_name=class_name,
        subject=subject,
        data=await file.read(),
        filename=file.filename or "question-paper.pdf",
        content_type=file.content_type,
    )
    return success_response(
        msg="Question paper uploaded. Extracting questions.",
        data=AssessmentOut.model_validate(assessment),
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/", response_model=ResponseModel)
async def list_assessments(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assessments = await assessment_service.list_assessments(db, current_user)
    return success_response(
        msg="Assessments retrieved",
        data=[AssessmentOut.model_validate(a) for a in assessments],
    )


@router.get("/{assessment_id}", response_model=ResponseModel)
async def get_assessment(
    assessment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assessment = await assessment_service.get_owned_assessment(db, assessment_id, current_user)
    return success_response(msg="Assessment retrieved", data=await _detail(db, assessment))


@router.post("/{assessment_id}/extract", response_model=ResponseModel, status_code=status.HTTP_202_ACCEPTED)
async def extract_questions(
    assessment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: PipelineServices = Depends(get_pipeline_services),
):
    """Throw away the current questions and extract them again."""
    assessment = await assessment_service.get_owned_assessment(db, assessment_id, current_user)
    await start_extraction(db, assessment, services)
    return success_response(
        msg="Question extraction started.",
        data=AssessmentOut.model_validate(assessment),
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.post("/{assessment_id}/questions", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
async def add_question(
    assessment_id: uuid.UUID,
    payload: QuestionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assessment = await assessment_service.get_owned_assessment(db, assessment_id, current_user)
    question = await assessment_service.add_question(db, assessment, payload.model_dump())
    return success_response(
        msg="Question added",
        data=QuestionOut.model_validate(question),
        status_code=status.HTTP_201_CREATED,
    )


@router.patch("/{assessment_id}/questions/{question_id}", response_model=ResponseModel)
async def update_question(
    assessment_id: uuid.UUID,
    question_id: uuid.UUID,
    payload: QuestionUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assessment = await assessment_service.get_owned_assessment(db, assessment_id, current_user)
    question = await assessment_service.update_question(
        db, assessment, question_id, payload.model_dump(exclude_unset=True)
    )
    return success_response(msg="Question updated", data=QuestionOut.model_validate(question))


@router.delete("/{assessment_id}/questions/{question_id}", response_model=ResponseModel)
async def delete_question(
    assessment_id: uuid.UUID,
    question_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assessment = await assessment_service.get_owned_assessment(db, assessment_id, current_user)
    await assessment_service.delete_question(db, assessment, question_id)
    return success_response(msg="Question deleted", data=AssessmentOut.model_validate(assessment))


@router.post("/{assessment_id}/approve-questions", response_model=ResponseModel)
async def approve_questions(
    assessment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    assessment = await assessment_service.get_owned_assessment(db, assessment_id, current_user)
    await assessment_service.approve_questions(db, assessment)
    return success_response(msg="Questions approved. Ready for grading.", data=await _detail(db, assessment))


@router.delete("/{assessment_id}", response_model=ResponseModel)
async def delete_assessment(
    assessment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: PipelineServices = Depends(get_pipeline_services),
):
    """Delete an assessment with its questions, submissions and answers."""
    assessment = await assessment_service.get_owned_assessment(db, assessment_id, current_user)
    await assessment_service.delete_assessment(db, assessment, services.storage, services.page_cache)
    return success_response(msg="Assessment deleted", data={"assessment_id": str(assessment_id)})
