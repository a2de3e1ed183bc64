"""Canonical, adapter-independent types exchanged with document-understanding providers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence


@dataclass(frozen=True)
class RenderedPage:
    """One rasterised page of a source document. ``number`` is 1-based."""

    number: int
    image_bytes: bytes
    width: int
    height: int
    mime_type: str = "image/png"


@dataclass(frozen=True)
class AssessmentContext:
    title: str
    class_name: Optional[str] = None
    subject: Optional[str] = None


@dataclass(frozen=True)
class BoundingBox:
    x1: float
    y1: float
    x2: float
    y2: float

    @classmethod
    def full_page(cls, width: int, height: int) -> "BoundingBox":
        return cls(0, 0, float(width), float(height))


@dataclass(frozen=True)
class TopicWeight:
    topic: str
    weight: float

    def as_dict(self) -> dict:
        return {"topic": self.topic, "weight": self.weight}


@dataclass
class QuestionCandidate:
    question_text: str
    question_identifier: Optional[str] = None
    max_marks: float = 1.0
    page_number: int = 1
    topics: List[TopicWeight] = field(default_factory=list)
    bbox: Optional[BoundingBox] = None


@dataclass
class AnswerCandidate:
    question_number: int
    marks_obtained: float
    explanation: str = ""
    page_number: int = 1


@dataclass
class HeaderCandidate:
    """Student header read off one page. All fields empty means no header was found."""

    page_number: int
    student_name: Optional[str] = None
    student_identifier: Optional[str] = None
    roll_number: Optional[str] = None
    class_name: Optional[str] = None
    confidence: float = 0.0

    @property
    def has_header(self) -> bool:
        return bool(self.student_name or self.student_identifier)


class ProviderAdapter(Protocol):
    """A single document-understanding backend.

    Implementations raise ``ProviderError`` (critical or transient) and never
    return raw wire tuples.
    """

    name: str
    priority: int
    enabled: bool

    async def extract(
        self, pages: Sequence[RenderedPage], context: AssessmentContext
    ) -> List[QuestionCandidate]:
        ...

    async def grade(self, pages: Sequence[RenderedPage], prompt: str) -> List[AnswerCandidate]:
        ...

    async def read_header(self, page: RenderedPage, context: AssessmentContext) -> HeaderCandidate:
        ...
