"""Streaming download-and-hash worker.

Each worker streams one URL through an incremental :mod:`hashlib` object, so
archives are never held in memory.  Bytes are hashed exactly as served
(``Accept-Encoding: identity`` plus raw iteration), which matches what a
build tool saves to disk.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Optional, Tuple

import httpx

from .entries import ChecksumEntry
from .errors import FetchError
from .progress import ProgressChannel, ProgressEvent

__all__ = ["content_length", "fetch_and_hash"]

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


def content_length(response: httpx.Response) -> int:
    """Return the advertised body length of ``response`` or ``0``."""

    raw = response.headers.get("content-length")
    if raw is None:
        return 0
    try:
        return max(int(raw.strip()), 0)
    except ValueError:
        return 0


async def fetch_and_hash(
    client: httpx.AsyncClient,
    url: str,
    *,
    entry_index: int,
    position: int,
    channel: Optional[ProgressChannel] = None,
    algorithm: str = "sha256",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Tuple[int, str]:
    """Download ``url`` and return ``(position, "<algorithm>::<hex digest>")``.

    Args:
        client: Shared async client.
        url: Resolved download URL.
        entry_index: Call-wide index used to label progress events.
        position: Index of the entry within its source field.
        channel: Optional progress channel receiving one event per chunk and a
            final ``done`` event.
        algorithm: :mod:`hashlib` algorithm name.
        chunk_size: Read size for the response stream.

    Raises:
        FetchError: On a non-success status or any transport failure,
            including timeouts.
    """

    hasher = hashlib.new(algorithm)
    total = 0
    received = 0
    try:
        async with client.stream("GET", url, headers={"Accept-Encoding": "identity"}) as response:
            if not response.is_success:
                raise FetchError(
                    f"GET {url} returned HTTP {response.status_code}",
                    url=url,
                    status_code=response.status_code,
                )
            total = content_length(response)
            async for chunk in response.aiter_raw(chunk_size):
                if not chunk:
                    continue
                hasher.update(chunk)
                received += len(chunk)
                if channel is not None:
                    channel.publish(ProgressEvent(entry_index, False, len(chunk), total))
    except httpx.HTTPError as exc:
        raise FetchError(f"GET {url} failed: {exc}", url=url) from exc

    digest = await asyncio.to_thread(hasher.hexdigest)
    if channel is not None:
        channel.publish(ProgressEvent(entry_index, True, total, total))
    logger.info(
        "computed checksum",
        extra={
            "stage": "hash",
            "url": url,
            "algorithm": algorithm,
            "bytes": received,
            "position": position,
        },
    )
    return position, str(ChecksumEntry.hashed(algorithm, digest))
