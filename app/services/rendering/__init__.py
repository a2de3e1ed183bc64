"""Page rendering collaborators and the shared render cache."""

from .page_cache import PageRenderCache, document_key
from .renderer import DocumentRenderer, LocalPdfRenderer, RemotePdfRenderer

__all__ = [
    "DocumentRenderer",
    "LocalPdfRenderer",
    "PageRenderCache",
    "RemotePdfRenderer",
    "document_key",
]
