"""Document renderers: turn a stored document into page images.

``RemotePdfRenderer`` delegates to the external conversion service;
``LocalPdfRenderer`` rasterises in-process with PyMuPDF.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Union

import fitz
import httpx

from app.core.exceptions import RenderError
from app.services.providers.base import RenderedPage

logger = logging.getLogger(__name__)

DocumentSource = Union[str, bytes]


class DocumentRenderer(Protocol):
    async def render(self, source: DocumentSource) -> List[RenderedPage]:
        """Render every page, numbered from 1. Raises RenderError."""
        ...


class RemotePdfRenderer:
    """POST ``{pdfUrl}`` to ``{base_url}/convert-pdf`` and decode the base64 pages."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise RenderError("PDF_SERVICE_URL is not configured.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def render(self, source: DocumentSource) -> List[RenderedPage]:
        if not isinstance(source, str):
            raise RenderError("Remote renderer requires a document URL.")

        url = f"{self.base_url}/convert-pdf"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json={"pdfUrl": source})
        except httpx.HTTPError as exc:
            logger.error("PDF service request failed: %s", exc)
            raise RenderError(f"PDF conversion request failed: {exc}") from exc

        if response.status_code >= 400:
            snippet = response.text[:200]
            logger.error("PDF service returned %s: %s", response.status_code, snippet)
            raise RenderError(f"PDF service responded with status {response.status_code}.")

        try:
            data = response.json()
        except ValueError as exc:
            raise RenderError("PDF service returned a non-JSON body.") from exc

        if not data.get("success"):
            raise RenderError(data.get("error") or "Remote PDF conversion failed")

        pages: List[RenderedPage] = []
        try:
            for index, image in enumerate(data.get("images") or [], start=1):
                pages.append(
                    RenderedPage(
                        number=int(image.get("pageNumber") or index),
                        image_bytes=base64.b64decode(image["base64"]),
                        width=int(image.get("width") or 0),
                        height=int(image.get("height") or 0),
                    )
                )
        except (KeyError, TypeError, ValueError, binascii.Error) as exc:
            raise RenderError(f"PDF service returned an invalid page payload: {exc}") from exc

        if not pages:
            raise RenderError("PDF service returned no pages.")
        pages.sort(key=lambda p: p.number)
        logger.info(f"Rendered {len(pages)} page(s) via PDF service")
        return pages


def _filetype_for(data: bytes) -> str:
    if data.startswith(b"%PDF"):
        return "pdf"
    if data.startswith(b"\x89PNG"):
        return "png"
    if data.startswith(b"\xff\xd8"):
        return "jpeg"
    return "pdf"


def rasterise_document(data: bytes, dpi: int = 150) -> List[RenderedPage]:
    """Blocking PyMuPDF rasterisation. Run it in an executor."""
    try:
        doc = fitz.open(stream=data, filetype=_filetype_for(data))
    except (RuntimeError, ValueError) as exc:
        raise RenderError(f"Could not open document: {exc}") from exc

    pages: List[RenderedPage] = []
    matrix = fitz.Matrix(dpi / 72.0, dpi / 72.0)
    with doc:
        for index, page in enumerate(doc, start=1):
            pix = page.get_pixmap(matrix=matrix, alpha=False)
            pages.append(
                RenderedPage(
                    number=index,
                    image_bytes=pix.tobytes("png"),
                    width=pix.width,
                    height=pix.height,
                )
            )
    if not pages:
        raise RenderError("Document has no pages.")
    return pages


class LocalPdfRenderer:
    """Rasterise with PyMuPDF; URLs are resolved to bytes through ``fetch``."""

    def __init__(self, fetch: Callable[[str], Awaitable[bytes]], dpi: int = 150):
        self._fetch = fetch
        self.dpi = dpi

    async def render(self, source: DocumentSource) -> List[RenderedPage]:
        if isinstance(source, str):
            try:
                data = await self._fetch(source)
            except Exception as exc:
                raise RenderError(f"Could not read document {source}: {exc}") from exc
        else:
            data = source

        loop = asyncio.get_running_loop()
        pages = await loop.run_in_executor(None, rasterise_document, data, self.dpi)
        logger.info(f"Rendered {len(pages)} page(s) locally at {self.dpi} DPI")
        return pages
