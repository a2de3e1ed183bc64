# Main Router - app/api/v1/routes/router.py
from fastapi import APIRouter

from app.api.v1.routes.answers.answers import router as answers_router
from app.api.v1.routes.assessments.assessments import router as assessments_router
from app.api.v1.routes.auth.auth import router as auth_router
from app.api.v1.routes.students.students import router as students_router
from app.api.v1.routes.submissions.submissions import router as submissions_router

router = APIRouter()

# Public/Auth routes
router.include_router(auth_router)

# Protected routes; each endpoint depends on get_current_user
router.include_router(assessments_router)
router.include_router(submissions_router)
router.include_router(answers_router)
router.include_router(students_router)
