"""In-memory stand-ins for the pipeline's external collaborators, plus seed helpers."""
from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select

from app.core.exceptions import RenderError, StorageError
from app.core.security import get_password_hash
from app.models.answer import Answer
from app.models.assessment import Assessment
from app.models.question import Question
from app.models.student import Student
from app.models.student_submission import StudentSubmission
from app.models.user import User
from app.services.partitioning.partitioner import PartitionRules
from app.services.pipeline.jobs import JobRunner
from app.services.pipeline.services import PipelineServices
from app.services.providers.base import (
    AnswerCandidate,
    HeaderCandidate,
    QuestionCandidate,
    RenderedPage,
)
from app.services.providers.chain import ProviderChain
from app.services.rendering.page_cache import PageRenderCache
from app.utils.enums import AssessmentStatus, SubmissionStatus

ORGANISATION = "Greenfield High"


def make_pages(count: int) -> List[RenderedPage]:
    return [
        RenderedPage(number=n, image_bytes=f"page-{n}".encode(), width=800, height=1100)
        for n in range(1, count + 1)
    ]


def header(page: int, name: Optional[str], identifier: Optional[str], roll=None, klass=None, confidence=0.95):
    return HeaderCandidate(
        page_number=page,
        student_name=name,
        student_identifier=identifier,
        roll_number=roll,
        class_name=klass,
        confidence=confidence,
    )


class FakeAdapter:
    """Scripted provider adapter.

    ``error`` is raised by every operation. ``header_errors`` maps page numbers
    to exceptions raised only by ``read_header`` for that page.
    """

    def __init__(
        self,
        name: str,
        priority: int = 1,
        *,
        questions: Optional[List[QuestionCandidate]] = None,
        answers: Optional[List[AnswerCandidate]] = None,
        headers: Optional[Dict[int, HeaderCandidate]] = None,
        header_errors: Optional[Dict[int, Exception]] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
        enabled: bool = True,
    ):
        self.name = name
        self.priority = priority
        self.enabled = enabled
        self.questions = questions or []
        self.answers = answers or []
        self.headers = headers or {}
        self.header_errors = header_errors or {}
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    async def _pause(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def extract(self, pages: Sequence[RenderedPage], context) -> List[QuestionCandidate]:
        self.calls.append(("extract", [p.number for p in pages]))
        await self._pause()
        return list(self.questions)

    async def grade(self, pages: Sequence[RenderedPage], prompt: str) -> List[AnswerCandidate]:
        self.calls.append(("grade", [p.number for p in pages]))
        await self._pause()
        return list(self.answers)

    async def read_header(self, page: RenderedPage, context) -> HeaderCandidate:
        self.calls.append(("read_header", page.number))
        await self._pause()
        if page.number in self.header_errors:
            raise self.header_errors[page.number]
        return self.headers.get(page.number, HeaderCandidate(page_number=page.number))

    def operations(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


class FakeRenderer:
    def __init__(self, page_count: int = 1, error: Optional[str] = None):
        self.page_count = page_count
        self.error = error
        self.calls: List[object] = []

    async def render(self, source) -> List[RenderedPage]:
        self.calls.append(source)
        if self.error:
            raise RenderError(self.error)
        return make_pages(self.page_count)


class FakeStorage:
    def __init__(self, fail_upload: bool = False):
        self.fail_upload = fail_upload
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    async def upload(self, data: bytes, name: str, folder: str, content_type: str | None = None) -> str:
        if self.fail_upload:
            raise StorageError("bucket unavailable")
        url = f"memory://{folder}/{len(self.objects) + 1}-{name}"
        self.objects[url] = data
        return url

    async def delete(self, url: str) -> None:
        self.deleted.append(url)
        self.objects.pop(url, None)

    async def get_bytes(self, url: str) -> bytes:
        return self.objects[url]


def build_services(
    session_factory,
    adapters: Iterable,
    *,
    renderer: Optional[FakeRenderer] = None,
    storage: Optional[FakeStorage] = None,
    rules: PartitionRules = PartitionRules(),
    timeout_seconds: float = 5,
) -> PipelineServices:
    return PipelineServices(
        chain=ProviderChain(adapters, timeout_seconds=timeout_seconds),
        renderer=renderer or FakeRenderer(),
        page_cache=PageRenderCache(ttl_seconds=60),
        storage=storage or FakeStorage(),
        runner=JobRunner(),
        session_factory=session_factory,
        partition_rules=rules,
    )


# Seed helpers

async def create_user(session, email: str = "teacher@school.edu", organisation: str = ORGANISATION) -> User:
    user = User(
        full_name="Ada Teacher",
        email=email,
        password_hash=get_password_hash("Password1"),
        organisation=organisation,
    )
    session.add(user)
    await session.commit()
    return user


async def create_assessment(
    session,
    owner: User,
    *,
    status: AssessmentStatus = AssessmentStatus.ready_for_grading,
    marks: Sequence[float] = (5, 5),
    paper_link: Optional[str] = "memory://question-papers/paper.pdf",
) -> Assessment:
    assessment = Assessment(
        owner_id=owner.id,
        title="Mid-term Biology",
        class_name="JSS1",
        subject="Biology",
        status=status,
        question_paper_link=paper_link,
        question_count=len(marks),
        total_marks=sum(marks),
    )
    session.add(assessment)
    await session.flush()
    for number, max_marks in enumerate(marks, start=1):
        session.add(
            Question(
                assessment_id=assessment.id,
                question_number=number,
                question_identifier=str(number),
                question_text=f"Question {number}",
                max_marks=max_marks,
                page_number=1,
                topics=[{"topic": "Cells", "weight": 100}],
                verified=True,
            )
        )
    await session.commit()
    return assessment


async def create_student(session, identifier: str, name: str, *, roll=None, klass="JSS1") -> Student:
    student = Student(
        organisation=ORGANISATION,
        student_identifier=identifier,
        student_name=name,
        roll_number=roll,
        class_name=klass,
    )
    session.add(student)
    await session.commit()
    return student


async def create_submission(
    session,
    assessment: Assessment,
    *,
    status: SubmissionStatus = SubmissionStatus.ready_for_verification,
    student: Optional[Student] = None,
    marks: Sequence[float] = (),
    verified: bool = False,
    link: str = "memory://answer-sheets/sheet.pdf",
) -> StudentSubmission:
    submission = StudentSubmission(
        assessment_id=assessment.id,
        student_id=student.id if student else None,
        answer_sheet_link=link,
        status=status,
    )
    session.add(submission)
    await session.flush()
    if marks:
        question_ids = (
            await session.scalars(
                select(Question.id)
                .where(Question.assessment_id == assessment.id)
                .order_by(Question.question_number)
            )
        ).all()
        for question_id, obtained in zip(question_ids, marks):
            session.add(
                Answer(
                    submission_id=submission.id,
                    question_id=question_id,
                    marks_obtained=obtained,
                    ai_explanation="model rationale",
                    verified=verified,
                )
            )
    await session.commit()
    return submission
