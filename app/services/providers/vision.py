"""Shared behaviour of the vision-model adapters.

Subclasses only implement ``_complete``: send one prompt plus images, return
the raw text. Prompting, page iteration and decoding live here.
"""
from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from typing import List, Sequence

from app.core.exceptions import ProviderError
from app.services.providers import prompts
from app.services.providers.base import (
    AnswerCandidate,
    AssessmentContext,
    BoundingBox,
    HeaderCandidate,
    QuestionCandidate,
    RenderedPage,
)
from app.services.providers.decoding import (
    QUESTION_DECODERS,
    PayloadDecodeError,
    decode_answer_v1,
    decode_header_v1,
    load_json_payload,
)

logger = logging.getLogger(__name__)


def to_data_url(page: RenderedPage) -> str:
    encoded = base64.b64encode(page.image_bytes).decode("ascii")
    return f"data:{page.mime_type};base64,{encoded}"


class VisionAdapter(ABC):
    name: str = "vision"
    question_format: str = "v1"

    def __init__(self, *, model: str, priority: int, enabled: bool = True, max_tokens: int = 16000):
        self.model = model
        self.priority = priority
        self.enabled = enabled
        self.max_tokens = max_tokens

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r}, priority={self.priority})"

    @abstractmethod
    async def _complete(self, prompt: str, pages: Sequence[RenderedPage]) -> str:
        """Run one completion; raise ProviderError on any backend failure."""

    async def extract(
        self, pages: Sequence[RenderedPage], context: AssessmentContext
    ) -> List[QuestionCandidate]:
        decoder = QUESTION_DECODERS[self.question_format]
        batched = self.question_format != "v1"
        candidates: List[QuestionCandidate] = []

        # Sequential on purpose: page order carries context for the model.
        for page in pages:
            prompt = prompts.question_extraction_prompt(context, page.number, batched=batched)
            text = await self._complete(prompt, [page])
            try:
                items = load_json_payload(text)
            except PayloadDecodeError as exc:
                logger.warning(f"{self.name}: skipping page {page.number}, unreadable output ({exc})")
                continue

            for item in items:
                candidate = decoder(item, page_number=page.number)
                if candidate is None:
                    continue
                if candidate.bbox is None:
                    candidate.bbox = BoundingBox.full_page(page.width, page.height)
                candidates.append(candidate)
            logger.debug(f"{self.name}: page {page.number} -> {len(items)} item(s)")

        return candidates

    async def grade(self, pages: Sequence[RenderedPage], prompt: str) -> List[AnswerCandidate]:
        text = await self._complete(prompt, pages)
        try:
            items = load_json_payload(text)
        except PayloadDecodeError as exc:
            raise ProviderError.transient(f"malformed grading output: {exc}", self.name) from exc
        return [answer for answer in map(decode_answer_v1, items) if answer is not None]

    async def read_header(self, page: RenderedPage, context: AssessmentContext) -> HeaderCandidate:
        text = await self._complete(prompts.header_prompt(context, page.number), [page])
        try:
            items = load_json_payload(text)
        except PayloadDecodeError as exc:
            raise ProviderError.transient(f"malformed header output: {exc}", self.name) from exc
        if not items:
            return HeaderCandidate(page_number=page.number)
        return decode_header_v1(items, page_number=page.number)
