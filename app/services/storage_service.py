"""Blob storage for question papers and answer sheets.

Provides a pluggable interface with an S3-compatible implementation
(Cloudflare R2) and a local filesystem fallback. Objects are addressed by
the public URL returned from ``upload``.
"""
from __future__ import annotations
import asyncio
import logging
import mimetypes
import os
import re
import time
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlparse

import boto3
import httpx
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)

LOCAL_URL_SCHEME = "local://"


class StorageBackend(Protocol):
    async def upload(self, data: bytes, name: str, folder: str, content_type: str | None = None) -> str:
        """Store bytes and return the object's public URL."""
        ...

    async def delete(self, url: str) -> None:
        ...

    async def get_bytes(self, url: str) -> bytes:
        """Read back an object previously returned by ``upload``."""
        ...


def sanitize_filename(name: str) -> str:
    base = os.path.basename(name or "") or "file"
    return re.sub(r"[^a-zA-Z0-9.\-]", "_", base)


def build_object_key(name: str, folder: str) -> str:
    return f"{folder.strip('/')}/{int(time.time() * 1000)}-{sanitize_filename(name)}"


@dataclass
class LocalStorageBackend:
    base_path: str = "uploads"

    def _path_for(self, url: str) -> str:
        if not url.startswith(LOCAL_URL_SCHEME):
            raise StorageError(f"Not a local storage URL: {url}")
        key = url[len(LOCAL_URL_SCHEME):]
        path = os.path.normpath(os.path.join(self.base_path, key))
        if not path.startswith(os.path.normpath(self.base_path)):
            raise StorageError(f"Refusing to access outside storage root: {url}")
        return path

    async def upload(self, data: bytes, name: str, folder: str, content_type: str | None = None) -> str:
        key = build_object_key(name, folder)
        path = os.path.join(self.base_path, key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Local upload failed: {e}") from e
        return f"{LOCAL_URL_SCHEME}{key}"

    async def delete(self, url: str) -> None:
        path = self._path_for(url)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.info(f"Local object already gone: {url}")
        except OSError as e:
            raise StorageError(f"Local delete failed: {e}") from e

    async def get_bytes(self, url: str) -> bytes:
        path = self._path_for(url)
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Local read failed: {e}") from e


@dataclass
class S3StorageBackend:
    bucket: str
    endpoint_url: str | None
    region: str | None
    access_key: str
    secret_key: str
    public_base_url: str | None = None
    client: Any = field(init=False, repr=False)

    def __post_init__(self):
        self.client = boto3.client(
            's3',
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            region_name=self.region or 'auto',
            config=BotoConfig(signature_version='s3v4')
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def key_from_url(self, url: str) -> str:
        if self.public_base_url and url.startswith(self.public_base_url.rstrip('/') + '/'):
            return url[len(self.public_base_url.rstrip('/')) + 1:]
        path = urlparse(url).path.lstrip('/')
        if path.startswith(f"{self.bucket}/"):
            path = path[len(self.bucket) + 1:]
        return path

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 operation failed: {e}") from e

    async def upload(self, data: bytes, name: str, folder: str, content_type: str | None = None) -> str:
        content_type = content_type or mimetypes.guess_type(name)[0] or 'application/octet-stream'
        key = build_object_key(name, folder)
        await self._run(self._upload_sync, key, data, content_type)
        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return self.public_url(key)

    def _upload_sync(self, key: str, data: bytes, content_type: str):
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    async def delete(self, url: str) -> None:
        key = self.key_from_url(url)
        await self._run(self._delete_sync, key)

    def _delete_sync(self, key: str):
        self.client.delete_object(Bucket=self.bucket, Key=key)

    async def get_bytes(self, url: str) -> bytes:
        key = self.key_from_url(url)
        try:
            return await self._run(self._get_object_bytes_sync, key)
        except StorageError:
            # Objects are public; fall back to a plain GET when the key cannot be resolved.
            logger.warning(f"S3 read failed for {key}; retrying via public URL")
        try:
            async with httpx.AsyncClient(timeout=60) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise StorageError(f"Could not download {url}: {e}") from e

    def _get_object_bytes_sync(self, key: str) -> bytes:
        obj = self.client.get_object(Bucket=self.bucket, Key=key)
        return obj['Body'].read()


_backend: StorageBackend | None = None


def reset_storage_backend():
    """Force reset of cached storage backend for testing."""
    global _backend
    _backend = None


def get_storage_backend() -> StorageBackend:
    """Get storage backend instance (cached)."""
    global _backend
    if _backend is not None:
        return _backend

    bucket = settings.S3_BUCKET_NAME
    access = settings.S3_ACCESS_KEY_ID
    secret = settings.S3_SECRET_ACCESS_KEY

    if settings.STORAGE_BACKEND == 's3':
        if not (bucket and access and secret):
            raise StorageError("STORAGE_BACKEND=s3 requires bucket name and credentials")
        _backend = S3StorageBackend(
            bucket=bucket,
            endpoint_url=settings.S3_ENDPOINT_URL,
            region=settings.S3_REGION,
            access_key=access,
            secret_key=secret,
            public_base_url=settings.S3_PUBLIC_BASE_URL,
        )
        logger.info(f"Initialized S3StorageBackend with bucket={bucket}")
        return _backend

    _backend = LocalStorageBackend(base_path=settings.LOCAL_STORAGE_PATH)
    logger.info("Initialized LocalStorageBackend")
    return _backend
