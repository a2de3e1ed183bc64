from __future__ import annotations

import logging
from typing import List

from app.core.config import Settings
from app.services.providers.base import ProviderAdapter
from app.services.providers.chain import ProviderChain
from app.services.providers.gemini_adapter import GeminiAdapter
from app.services.providers.openai_adapter import OpenAIAdapter
from app.services.providers.openrouter_adapter import OpenRouterAdapter

logger = logging.getLogger(__name__)


def build_adapters(settings: Settings) -> List[ProviderAdapter]:
    adapters: List[ProviderAdapter] = [
        OpenRouterAdapter(
            api_key=settings.OPENROUTER_API_KEY,
            model=settings.OPENROUTER_MODEL,
            priority=settings.OPENROUTER_PRIORITY,
            enabled=settings.OPENROUTER_ENABLED,
            max_tokens=settings.OPENROUTER_MAX_TOKENS,
            base_url=settings.OPENROUTER_BASE_URL,
            referer=settings.OPENROUTER_REFERER,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        ),
        OpenAIAdapter(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            priority=settings.OPENAI_PRIORITY,
            enabled=settings.OPENAI_ENABLED,
            max_tokens=settings.OPENAI_MAX_TOKENS,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        ),
        GeminiAdapter(
            api_key=settings.GOOGLE_API_KEY,
            model=settings.GEMINI_MODEL,
            priority=settings.GEMINI_PRIORITY,
            enabled=settings.GEMINI_ENABLED,
            max_tokens=settings.GEMINI_MAX_TOKENS,
        ),
    ]
    return adapters


def build_provider_chain(settings: Settings) -> ProviderChain:
    chain = ProviderChain(build_adapters(settings), timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS)
    order = ", ".join(f"{a.name}({a.priority})" for a in chain.adapters) or "none"
    logger.info(f"Provider chain order: {order}")
    return chain
