import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.routes.auth.auth import get_current_user
from app.core.response import ResponseModel, success_response
from app.db.deps import get_db
from app.models.user import User
from app.schemas.submissions import AnswerOut, AnswerUpdate
from app.services.answer_service import update_answer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/answers", tags=["answers"])


@router.patch("/{answer_id}", response_model=ResponseModel)
async def patch_answer(
    answer_id: uuid.UUID,
    payload: AnswerUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Partially update a graded answer.

    Clearing ``verified`` on an approved submission sends it back to Verifying.
    """
    answer, submission = await update_answer(
        db, answer_id, current_user, payload.model_dump(exclude_unset=True)
    )
    return success_response(
        msg="Answer updated",
        data={
            "answer": AnswerOut.model_validate(answer),
            "submission_status": submission.status,
        },
    )
