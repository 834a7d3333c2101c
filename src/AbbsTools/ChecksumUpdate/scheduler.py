# === NAVMAP v1 ===
# {
#   "module": "AbbsTools.ChecksumUpdate.scheduler",
#   "purpose": "Bounded-concurrency fetch-and-hash scheduling across source fields",
#   "sections": [
#     {"id": "source-fields", "name": "source_fields", "anchor": "function-source-fields", "kind": "function"},
#     {"id": "compute-field", "name": "compute_field", "anchor": "function-compute-field", "kind": "function"},
#     {"id": "compute-checksums", "name": "compute_checksums", "anchor": "function-compute-checksums", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Bounded-concurrency scheduling of fetch-and-hash workers.

One :class:`asyncio.Semaphore` bounds the number of in-flight downloads for a
whole refresh call, across every source field.  Fields are handled one after
another in recipe order; within a field, workers run concurrently and report
``(position, checksum)`` pairs that are sorted back into token order once all
of them have finished.  The first failure cancels the remaining workers and
propagates, so a partial checksum list is never produced.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from operator import itemgetter
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import httpx

from .entries import ChecksumEntry, SourceEntry, classify_field
from .errors import ConfigError
from .hashing import fetch_and_hash
from .progress import ProgressChannel
from .resolvers import resolve_locator
from .settings import ChecksumUpdateConfiguration, get_default_config

__all__ = ["checksum_fields", "compute_checksums", "compute_field", "source_fields"]

logger = logging.getLogger(__name__)


def source_fields(
    context: Mapping[str, str], config: ChecksumUpdateConfiguration
) -> List[str]:
    """Return the names of source fields in ``context`` in recipe order."""

    return [name for name in context if config.is_source_field(name)]


def checksum_fields(
    computed: Mapping[str, List[str]], config: ChecksumUpdateConfiguration
) -> Dict[str, List[str]]:
    """Re-key ``computed`` from source field names to checksum field names."""

    result: Dict[str, List[str]] = {}
    for source_field, tokens in computed.items():
        target = config.checksum_field_for(source_field)
        if target is not None:
            result[target] = tokens
    return result


async def _bounded_fetch(
    semaphore: asyncio.Semaphore,
    client: httpx.AsyncClient,
    url: str,
    *,
    entry_index: int,
    position: int,
    channel: Optional[ProgressChannel],
    config: ChecksumUpdateConfiguration,
) -> Tuple[int, str]:
    async with semaphore:
        return await fetch_and_hash(
            client,
            url,
            entry_index=entry_index,
            position=position,
            channel=channel,
            algorithm=config.hash_algorithm,
            chunk_size=config.chunk_size,
        )


async def compute_field(
    client: httpx.AsyncClient,
    field: str,
    value: str,
    *,
    semaphore: asyncio.Semaphore,
    indices: Iterator[int],
    channel: Optional[ProgressChannel] = None,
    config: Optional[ChecksumUpdateConfiguration] = None,
) -> List[str]:
    """Compute the ordered checksum tokens for one source field.

    Raises:
        ConfigError: If a token cannot be classified.
        ResolutionError: If a registry locator cannot be resolved.
        FetchError: If any download fails.
    """

    config = config or get_default_config()
    entries: List[SourceEntry] = classify_field(
        field,
        value,
        vcs_transports=config.vcs_transports,
        registry_transports=config.registry_transports,
    )

    collected: List[Tuple[int, str]] = []
    pending: List[Tuple[SourceEntry, str]] = []
    for entry in entries:
        if not entry.needs_fetch:
            collected.append((entry.position, str(ChecksumEntry.skip())))
            continue
        url = await resolve_locator(client, entry, config)
        pending.append((entry, url))

    tasks = [
        asyncio.ensure_future(
            _bounded_fetch(
                semaphore,
                client,
                url,
                entry_index=next(indices),
                position=entry.position,
                channel=channel,
                config=config,
            )
        )
        for entry, url in pending
    ]
    try:
        for next_done in asyncio.as_completed(tasks):
            collected.append(await next_done)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    collected.sort(key=itemgetter(0))
    if [position for position, _ in collected] != list(range(len(entries))):
        raise RuntimeError(f"{field}: checksum positions out of sync with sources")
    tokens = [token for _, token in collected]
    logger.info(
        "computed field checksums",
        extra={
            "stage": "schedule",
            "field": field,
            "sources": len(entries),
            "fetched": len(pending),
        },
    )
    return tokens


async def compute_checksums(
    client: httpx.AsyncClient,
    context: Mapping[str, str],
    *,
    channel: Optional[ProgressChannel] = None,
    max_concurrency: Optional[int] = None,
    config: Optional[ChecksumUpdateConfiguration] = None,
) -> Dict[str, List[str]]:
    """Compute checksum tokens for every source field of ``context``.

    Returns:
        Mapping of source field name to its checksum tokens in source order.
    """

    config = config or get_default_config()
    bound = max_concurrency if max_concurrency is not None else config.max_concurrency
    if bound < 1:
        raise ConfigError("max_concurrency must be at least 1")
    semaphore = asyncio.Semaphore(bound)
    indices = itertools.count()

    computed: Dict[str, List[str]] = {}
    for field in source_fields(context, config):
        computed[field] = await compute_field(
            client,
            field,
            context[field],
            semaphore=semaphore,
            indices=indices,
            channel=channel,
            config=config,
        )
    return computed
