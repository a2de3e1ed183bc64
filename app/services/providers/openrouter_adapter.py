from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from app.core.exceptions import ProviderError
from app.services.providers.base import RenderedPage
from app.services.providers.vision import VisionAdapter, to_data_url

logger = logging.getLogger(__name__)

_CRITICAL_STATUSES = {401, 402, 403, 429}


class OpenRouterAdapter(VisionAdapter):
    """Chat-completions over plain HTTP against OpenRouter."""

    name = "openrouter"
    question_format = "v1"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str,
        priority: int,
        enabled: bool = True,
        max_tokens: int = 16000,
        base_url: str = "https://openrouter.ai/api/v1",
        referer: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model=model, priority=priority, enabled=enabled, max_tokens=max_tokens)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.referer = referer
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "Assessment Grader",
        }
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        return headers

    async def _complete(self, prompt: str, pages: Sequence[RenderedPage]) -> str:
        if not self.api_key:
            raise ProviderError.critical("OPENROUTER_API_KEY is not configured", self.name)

        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        content.extend(
            {"type": "image_url", "image_url": {"url": to_data_url(page)}} for page in pages
        )
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": self.max_tokens,
            "temperature": 0.1,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions", json=body, headers=self._headers()
                )
        except httpx.TimeoutException as exc:
            raise ProviderError.transient(f"request timed out: {exc}", self.name) from exc
        except httpx.HTTPError as exc:
            raise ProviderError.transient(f"request failed: {exc}", self.name) from exc

        if response.status_code >= 400:
            snippet = response.text[:200]
            logger.warning(f"OpenRouter returned {response.status_code}: {snippet}")
            if response.status_code in _CRITICAL_STATUSES:
                raise ProviderError.critical(f"HTTP {response.status_code}: {snippet}", self.name)
            raise ProviderError.transient(f"HTTP {response.status_code}: {snippet}", self.name)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError.transient("response body is not JSON", self.name) from exc

        # OpenRouter reports upstream failures inside a 200 body.
        error = payload.get("error") if isinstance(payload, dict) else None
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if code in _CRITICAL_STATUSES:
                raise ProviderError.critical(message, self.name)
            raise ProviderError.transient(message, self.name)

        try:
            return payload["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError.transient("response has no completion content", self.name) from exc
