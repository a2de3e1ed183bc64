from __future__ import annotations

from typing import Any, List, Optional, Sequence

from app.core.genai_client import GeminiVisionClient
from app.services.providers.base import RenderedPage
from app.services.providers.vision import VisionAdapter


class GeminiAdapter(VisionAdapter):
    """Google Gemini over google-generativeai. Emits the batched question format."""

    name = "gemini"
    question_format = "v2"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str,
        priority: int,
        enabled: bool = True,
        max_tokens: int = 16384,
        client: Optional[GeminiVisionClient] = None,
    ):
        super().__init__(model=model, priority=priority, enabled=enabled, max_tokens=max_tokens)
        self._client = client or GeminiVisionClient(
            api_key, model_name=model, max_output_tokens=max_tokens, provider_name=self.name
        )

    async def _complete(self, prompt: str, pages: Sequence[RenderedPage]) -> str:
        parts: List[Any] = [prompt]
        parts.extend({"mime_type": page.mime_type, "data": page.image_bytes} for page in pages)
        return await self._client.generate_content_async(parts)
