"""Process-wide collaborators for the grading pipeline.

Built once and injected into routes through ``get_pipeline_services``; tests
override that dependency with fakes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

from app.core.config import Settings, settings as app_settings
from app.services.partitioning.partitioner import DocumentPartitioner, PartitionRules
from app.services.pipeline.jobs import JobRunner
from app.services.providers.base import RenderedPage
from app.services.providers.chain import ProviderChain
from app.services.providers.registry import build_provider_chain
from app.services.rendering.page_cache import PageRenderCache
from app.services.rendering.renderer import DocumentRenderer, LocalPdfRenderer, RemotePdfRenderer
from app.services.storage_service import StorageBackend, get_storage_backend

logger = logging.getLogger(__name__)


@dataclass
class PipelineServices:
    chain: ProviderChain
    renderer: DocumentRenderer
    page_cache: PageRenderCache
    storage: StorageBackend
    runner: JobRunner
    session_factory: Callable[[], Any]
    partition_rules: PartitionRules = PartitionRules()
    name_match_threshold: float = 0.5

    async def render_pages(self, source: Union[str, bytes]) -> List[RenderedPage]:
        return await self.page_cache.get_or_render(source, lambda: self.renderer.render(source))

    def partitioner(self) -> DocumentPartitioner:
        return DocumentPartitioner(self.chain, self.render_pages, self.partition_rules)


def build_pipeline_services(
    settings: Settings = app_settings,
    session_factory: Optional[Callable[[], Any]] = None,
) -> PipelineServices:
    if session_factory is None:
        from app.db.deps import AsyncSessionLocal

        session_factory = AsyncSessionLocal

    storage = get_storage_backend()
    if settings.PDF_RENDERER == "remote":
        renderer: DocumentRenderer = RemotePdfRenderer(
            settings.PDF_SERVICE_URL, timeout=settings.PDF_SERVICE_TIMEOUT_SECONDS
        )
    else:
        renderer = LocalPdfRenderer(storage.get_bytes, dpi=settings.PDF_RENDER_DPI)

    services = PipelineServices(
        chain=build_provider_chain(settings),
        renderer=renderer,
        page_cache=PageRenderCache(ttl_seconds=settings.PAGE_CACHE_TTL_SECONDS),
        storage=storage,
        runner=JobRunner(),
        session_factory=session_factory,
        partition_rules=PartitionRules(
            min_pages=settings.PARTITION_MIN_PAGES,
            max_pages=settings.PARTITION_MAX_PAGES,
            min_confidence=settings.PARTITION_MIN_CONFIDENCE,
        ),
        name_match_threshold=settings.NAME_MATCH_THRESHOLD,
    )
    logger.info(f"Pipeline services ready (renderer={settings.PDF_RENDERER})")
    return services


_services: Optional[PipelineServices] = None


def get_pipeline_services() -> PipelineServices:
    """FastAPI dependency returning the shared pipeline services."""
    global _services
    if _services is None:
        _services = build_pipeline_services()
    return _services


def reset_pipeline_services() -> None:
    global _services
    _services = None
