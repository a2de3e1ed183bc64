"""Priority-ordered failover across provider adapters.

First non-empty result wins; later adapters are never consulted once one
succeeds. Each adapter gets exactly one bounded attempt per invocation.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Iterable, List, Optional, Sequence, TypeVar

from app.core.exceptions import AllProvidersFailedError, ProviderAttempt, ProviderError
from app.services.providers.base import (
    AnswerCandidate,
    AssessmentContext,
    HeaderCandidate,
    ProviderAdapter,
    QuestionCandidate,
    RenderedPage,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ChainResult(Generic[T]):
    value: T
    provider: str
    attempts: List[ProviderAttempt] = field(default_factory=list)

    @property
    def failed_providers(self) -> List[str]:
        return [a.provider for a in self.attempts if not a.succeeded]


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, HeaderCandidate):
        return False
    try:
        return len(value) == 0
    except TypeError:
        return False


class ProviderChain:
    def __init__(self, adapters: Iterable[ProviderAdapter], timeout_seconds: float = 120.0):
        enabled = [a for a in adapters if getattr(a, "enabled", True)]
        # sorted() is stable, so equal priorities keep registration order.
        self._adapters: List[ProviderAdapter] = sorted(enabled, key=lambda a: a.priority)
        self.timeout_seconds = timeout_seconds

    @property
    def adapters(self) -> List[ProviderAdapter]:
        return list(self._adapters)

    async def extract_questions(
        self, pages: Sequence[RenderedPage], context: AssessmentContext
    ) -> ChainResult[List[QuestionCandidate]]:
        return await self._run("question extraction", lambda a: a.extract(pages, context))

    async def grade_answers(
        self, pages: Sequence[RenderedPage], prompt: str
    ) -> ChainResult[List[AnswerCandidate]]:
        return await self._run("answer grading", lambda a: a.grade(pages, prompt))

    async def read_header(
        self, page: RenderedPage, context: AssessmentContext
    ) -> ChainResult[HeaderCandidate]:
        return await self._run(
            f"header reading (page {page.number})", lambda a: a.read_header(page, context)
        )

    async def _run(
        self, operation: str, call: Callable[[ProviderAdapter], Awaitable[T]]
    ) -> ChainResult[T]:
        attempts: List[ProviderAttempt] = []
        last_error: Optional[ProviderError] = None

        for adapter in self._adapters:
            try:
                value = await asyncio.wait_for(call(adapter), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                error = ProviderError.transient(
                    f"no response within {self.timeout_seconds:g}s", adapter.name
                )
            except ProviderError as exc:
                error = exc
                if error.provider is None:
                    error.provider = adapter.name
            except Exception as exc:
                # Anything the adapter did not classify is treated as a malformed response.
                logger.exception(f"Unclassified failure from provider {adapter.name}")
                error = ProviderError.transient(f"{type(exc).__name__}: {exc}", adapter.name)
            else:
                if _is_empty(value):
                    logger.info(f"Provider {adapter.name} returned no results for {operation}")
                    attempts.append(ProviderAttempt(provider=adapter.name, succeeded=False, empty=True))
                    continue
                attempts.append(ProviderAttempt(provider=adapter.name, succeeded=True))
                logger.info(f"Provider {adapter.name} succeeded for {operation}")
                return ChainResult(value=value, provider=adapter.name, attempts=attempts)

            log = logger.error if error.is_critical else logger.warning
            log(
                f"Provider {adapter.name} failed for {operation} ({error.kind.value}): {error.message}",
                extra={"provider": adapter.name, "failure_kind": error.kind.value},
            )
            attempts.append(ProviderAttempt(provider=adapter.name, succeeded=False, error=error))
            last_error = error

        failure = AllProvidersFailedError(operation, attempts, last_error)
        logger.error(failure.message)
        raise failure
