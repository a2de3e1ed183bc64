from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import openai
from openai import AsyncOpenAI

from app.core.exceptions import ProviderError
from app.services.providers.base import RenderedPage
from app.services.providers.vision import VisionAdapter, to_data_url

logger = logging.getLogger(__name__)


class OpenAIAdapter(VisionAdapter):
    name = "openai"
    question_format = "v1"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str,
        priority: int,
        enabled: bool = True,
        max_tokens: int = 16000,
        timeout: float = 120.0,
    ):
        super().__init__(model=model, priority=priority, enabled=enabled, max_tokens=max_tokens)
        self.api_key = api_key
        self.timeout = timeout
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ProviderError.critical("OPENAI_API_KEY is not configured", self.name)
            # The chain owns retries (none) and timeouts.
            self._client = AsyncOpenAI(api_key=self.api_key, max_retries=0, timeout=self.timeout)
        return self._client

    async def _complete(self, prompt: str, pages: Sequence[RenderedPage]) -> str:
        client = self._get_client()
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        content.extend(
            {"type": "image_url", "image_url": {"url": to_data_url(page), "detail": "high"}}
            for page in pages
        )
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": content}],
                max_tokens=self.max_tokens,
                temperature=0.1,
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError, openai.RateLimitError) as exc:
            raise ProviderError.critical(f"{type(exc).__name__}: {exc}", self.name) from exc
        except openai.APITimeoutError as exc:
            raise ProviderError.transient(f"request timed out: {exc}", self.name) from exc
        except openai.OpenAIError as exc:
            raise ProviderError.transient(f"{type(exc).__name__}: {exc}", self.name) from exc

        if not response.choices:
            raise ProviderError.transient("response has no choices", self.name)
        return response.choices[0].message.content or ""
