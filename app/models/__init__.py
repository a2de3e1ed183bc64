# app/models/__init__.py

from .user import User
from .assessment import Assessment
from .question import Question
from .student import Student
from .student_submission import StudentSubmission
from .answer import Answer

__all__ = [
    "User",
    "Assessment",
    "Question",
    "Student",
    "StudentSubmission",
    "Answer",
]
