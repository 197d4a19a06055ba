# src/storage/s3_source.py — v2
"""S3-compatible content source.

Supports AWS S3, MinIO, and other S3-compatible storage via boto3.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import boto3

from docbrief.core.models import SourceRef
from docbrief.storage.base_content_source import (
    BaseContentSource,
    ContentUnavailable,
    FetchedContent,
)

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class S3ContentSource(BaseContentSource):
    """Stream object bodies from S3 up to a byte ceiling."""

    def __init__(
        self,
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client: Any = None,
    ) -> None:
        """Initialize the source.

        Args:
            region: AWS region (optional, uses boto3 default if not set).
            endpoint_url: Custom endpoint for MinIO/compatible storage.
            access_key_id: Explicit key id; default credential chain if empty.
            secret_access_key: Explicit secret; default credential chain if empty.
            client: Pre-built boto3 S3 client (tests).
        """
        if client is not None:
            self._s3 = client
            return

        kwargs: dict[str, Any] = {}
        if region:
            kwargs["region_name"] = region
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if access_key_id and secret_access_key:
            kwargs["aws_access_key_id"] = access_key_id
            kwargs["aws_secret_access_key"] = secret_access_key

        self._s3 = boto3.client("s3", **kwargs)

    async def fetch(self, ref: SourceRef, max_bytes: int) -> FetchedContent:
        return await asyncio.to_thread(self._fetch_blocking, ref, max_bytes)

    def _fetch_blocking(self, ref: SourceRef, max_bytes: int) -> FetchedContent:
        start = time.monotonic()
        logger.debug("Downloading: %s", ref)
        try:
            response = self._s3.get_object(Bucket=ref.container, Key=ref.path)
            body = response["Body"]
            try:
                fetched = _read_bounded(body, max_bytes)
            finally:
                body.close()
        except Exception as e:
            raise ContentUnavailable(ref, str(e)) from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if fetched.truncated:
            logger.warning(
                "File too large (%d > %d bytes), truncating: %s",
                fetched.total_bytes, max_bytes, ref.path,
            )
        logger.debug(
            "Downloaded %d bytes of %s in %dms", len(fetched.data), ref.path, elapsed_ms,
        )
        return fetched


def _read_bounded(body: Any, max_bytes: int) -> FetchedContent:
    """Read chunks until the running total exceeds max_bytes.

    The chunk that crosses the ceiling is cut at the ceiling, so the kept
    prefix is exactly max_bytes long when the object is larger.
    """
    chunks: list[bytes] = []
    total = 0
    for chunk in body.iter_chunks(chunk_size=READ_CHUNK_SIZE):
        kept = total
        total += len(chunk)
        if total > max_bytes:
            chunks.append(chunk[: max_bytes - kept])
            return FetchedContent(data=b"".join(chunks), total_bytes=total, truncated=True)
        chunks.append(chunk)
    return FetchedContent(data=b"".join(chunks), total_bytes=total)
