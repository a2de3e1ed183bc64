"""Split one combined answer-sheet document into per-student page groups.

A page without a readable student header continues the previous page's
student. Groups break whenever the name or identifier changes. Identity
resolution against the roster happens afterwards in ``identity``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from app.core.exceptions import AllProvidersFailedError
from app.services.providers.base import AssessmentContext, HeaderCandidate, RenderedPage
from app.services.providers.chain import ProviderChain

logger = logging.getLogger(__name__)

HEADER_UNREADABLE = "header_unreadable"
MISSING_IDENTIFIER = "missing_identifier"
PAGE_COUNT_OUT_OF_RANGE = "page_count_out_of_range"
LOW_CONFIDENCE = "low_confidence"


@dataclass(frozen=True)
class PartitionRules:
    min_pages: int = 1
    max_pages: int = 20
    min_confidence: float = 0.5


@dataclass(frozen=True)
class StudentIdentity:
    student_name: Optional[str] = None
    student_identifier: Optional[str] = None
    roll_number: Optional[str] = None
    class_name: Optional[str] = None

    @classmethod
    def from_header(cls, header: HeaderCandidate) -> "StudentIdentity":
        return cls(
            student_name=header.student_name,
            student_identifier=header.student_identifier,
            roll_number=header.roll_number,
            class_name=header.class_name,
        )

    def differs_from(self, other: "StudentIdentity") -> bool:
        """A field only counts as different when this side actually has it."""
        return bool(
            (self.student_name and self.student_name != other.student_name)
            or (self.student_identifier and self.student_identifier != other.student_identifier)
        )

    def as_dict(self) -> dict:
        return {
            "student_name": self.student_name,
            "student_identifier": self.student_identifier,
            "roll_number": self.roll_number,
            "class": self.class_name,
        }


@dataclass
class PageReading:
    """What the provider chain said about one page."""

    page_number: int
    header: Optional[HeaderCandidate]
    provider: Optional[str] = None
    error: Optional[str] = None

    @property
    def readable(self) -> bool:
        return self.header is not None

    @property
    def has_header(self) -> bool:
        return self.header is not None and self.header.has_header


@dataclass
class GroupIssue:
    code: str
    message: str

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


@dataclass
class StudentGroup:
    identity: StudentIdentity
    page_numbers: List[int] = field(default_factory=list)
    page_confidences: List[float] = field(default_factory=list)
    warnings: List[GroupIssue] = field(default_factory=list)
    errors: List[GroupIssue] = field(default_factory=list)

    @property
    def confidence(self) -> float:
        if not self.page_confidences:
            return 0.0
        return round(sum(self.page_confidences) / len(self.page_confidences), 4)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def warn(self, code: str, message: str) -> None:
        if not any(w.code == code for w in self.warnings):
            self.warnings.append(GroupIssue(code, message))

    def as_dict(self) -> dict:
        return {
            **self.identity.as_dict(),
            "page_numbers": list(self.page_numbers),
            "confidence": self.confidence,
            "warnings": [w.as_dict() for w in self.warnings],
            "errors": [e.as_dict() for e in self.errors],
        }


@dataclass
class PartitionResult:
    groups: List[StudentGroup]
    readings: List[PageReading]

    @property
    def page_count(self) -> int:
        return len(self.readings)

    @property
    def is_multi_student(self) -> bool:
        return len(self.groups) > 1


def group_pages(readings: Sequence[PageReading]) -> List[StudentGroup]:
    """Walk pages in order, applying the continuation rule."""
    groups: List[StudentGroup] = []
    open_group: Optional[StudentGroup] = None
    last_confidence = 0.0

    for reading in sorted(readings, key=lambda r: r.page_number):
        if reading.has_header:
            identity = StudentIdentity.from_header(reading.header)
            confidence = reading.header.confidence
            starts_new = open_group is None or identity.differs_from(open_group.identity)
            last_confidence = confidence
        else:
            # Continuation page: inherit whatever group is open.
            identity = open_group.identity if open_group else StudentIdentity()
            confidence = last_confidence if reading.readable else 0.0
            starts_new = open_group is None

        if starts_new:
            open_group = StudentGroup(identity=identity)
            groups.append(open_group)
        elif reading.has_header:
            # Same student; keep details the earlier header lacked.
            open_group.identity = StudentIdentity(
                student_name=open_group.identity.student_name or identity.student_name,
                student_identifier=open_group.identity.student_identifier or identity.student_identifier,
                roll_number=open_group.identity.roll_number or identity.roll_number,
                class_name=open_group.identity.class_name or identity.class_name,
            )

        open_group.page_numbers.append(reading.page_number)
        open_group.page_confidences.append(confidence)
        if not reading.readable:
            open_group.warn(
                HEADER_UNREADABLE,
                f"Page {reading.page_number} header could not be read; assumed to continue the previous student",
            )

    return groups


def validate_groups(groups: Sequence[StudentGroup], rules: PartitionRules) -> None:
    """Flag suspicious groups. Only a missing identifier is fatal, and only to that group."""
    for group in groups:
        pages = len(group.page_numbers)
        if pages < rules.min_pages or pages > rules.max_pages:
            group.warn(
                PAGE_COUNT_OUT_OF_RANGE,
                f"Group has {pages} page(s); expected between {rules.min_pages} and {rules.max_pages}",
            )
        if group.confidence < rules.min_confidence:
            group.warn(
                LOW_CONFIDENCE,
                f"Average header confidence {group.confidence:.2f} is below {rules.min_confidence:.2f}",
            )
        if not group.identity.student_identifier:
            group.errors.append(
                GroupIssue(MISSING_IDENTIFIER, "No student identifier could be found for this group")
            )


class DocumentPartitioner:
    def __init__(
        self,
        chain: ProviderChain,
        render: Callable[[Union[str, bytes]], Awaitable[List[RenderedPage]]],
        rules: PartitionRules = PartitionRules(),
    ):
        self.chain = chain
        self._render = render
        self.rules = rules

    async def read_headers(
        self, pages: Sequence[RenderedPage], context: AssessmentContext
    ) -> List[PageReading]:
        readings: List[PageReading] = []
        last_failure: Optional[AllProvidersFailedError] = None

        # One page at a time, in order.
        for page in pages:
            try:
                result = await self.chain.read_header(page, context)
            except AllProvidersFailedError as exc:
                logger.warning(f"Header unreadable on page {page.number}: {exc.message}")
                readings.append(PageReading(page_number=page.number, header=None, error=exc.message))
                last_failure = exc
                continue
            readings.append(
                PageReading(page_number=page.number, header=result.value, provider=result.provider)
            )

        if readings and not any(r.readable for r in readings):
            raise last_failure
        return readings

    async def partition_pages(
        self, pages: Sequence[RenderedPage], context: AssessmentContext
    ) -> PartitionResult:
        readings = await self.read_headers(pages, context)
        groups = group_pages(readings)
        validate_groups(groups, self.rules)
        logger.info(
            f"Partitioned {len(readings)} page(s) into {len(groups)} group(s): "
            + ", ".join(
                f"{g.identity.student_identifier or '?'}{g.page_numbers}" for g in groups
            )
        )
        return PartitionResult(groups=groups, readings=readings)

    async def partition(self, source: Union[str, bytes], context: AssessmentContext) -> PartitionResult:
        pages = await self._render(source)
        return await self.partition_pages(pages, context)
