"""Checksum refresh entry points.

:func:`refresh` is the synchronous facade used by the CLI; it runs
:func:`refresh_async`, which parses the recipe, computes fresh checksums for
every source field, decides whether anything changed, and patches the checksum
fields into the original text.  Any failure raises a
:class:`~AbbsTools.ChecksumUpdate.errors.ChecksumUpdateError` subclass and no
text is returned, so callers never write a partially updated recipe.

Example:
    >>> from AbbsTools.ChecksumUpdate import refresh
    >>> result = refresh(open("extra-libs/foo/spec").read())  # doctest: +SKIP
    >>> result.changed  # doctest: +SKIP
    True
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

import httpx

from .changes import detect_changes, merge_context
from .errors import ProgressCallbackError
from .net import create_http_client
from .patcher import apply_patches
from .progress import ProgressCallback, ProgressChannel
from .recipe import parse_recipe
from .scheduler import checksum_fields, compute_checksums
from .settings import ChecksumUpdateConfiguration, get_default_config

__all__ = ["RefreshResult", "UpdateResult", "refresh", "refresh_async", "update_from_str"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateResult:
    """Computed checksums for a recipe, before any text is patched."""

    changed: bool
    checksums: Dict[str, List[str]]
    context: Dict[str, str] = field(default_factory=dict)
    lenient: bool = False


class RefreshResult(NamedTuple):
    """Rewritten recipe text and the global ``changed`` verdict."""

    text: str
    changed: bool


async def update_from_str(
    text: str,
    *,
    channel: Optional[ProgressChannel] = None,
    max_concurrency: Optional[int] = None,
    config: Optional[ChecksumUpdateConfiguration] = None,
    client: Optional[httpx.AsyncClient] = None,
    allow_fallback: Optional[bool] = None,
) -> UpdateResult:
    """Compute fresh checksums for every source field of the recipe ``text``.

    Args:
        text: Raw recipe text.
        channel: Progress channel receiving worker events.
        max_concurrency: In-flight download bound for this call; defaults to
            ``config.max_concurrency``.
        config: Runtime configuration; defaults to :func:`get_default_config`.
        client: Async client to reuse; a private one is created and closed
            otherwise.
        allow_fallback: Accept the lenient parser when strict parsing fails;
            defaults to ``config.allow_lenient_parse``.
    """

    config = config or get_default_config()
    if allow_fallback is None:
        allow_fallback = config.allow_lenient_parse
    outcome = parse_recipe(text, allow_fallback=allow_fallback)
    context = outcome.context

    if client is None:
        async with create_http_client(config) as owned_client:
            computed = await compute_checksums(
                owned_client,
                context,
                channel=channel,
                max_concurrency=max_concurrency,
                config=config,
            )
    else:
        computed = await compute_checksums(
            client,
            context,
            channel=channel,
            max_concurrency=max_concurrency,
            config=config,
        )

    checksums = checksum_fields(computed, config)
    changed = detect_changes(context, checksums)
    logger.debug(
        "update result",
        extra={"stage": "compare", "changed": changed, "fields": sorted(checksums)},
    )
    return UpdateResult(
        changed=changed,
        checksums=checksums,
        context=merge_context(context, checksums),
        lenient=outcome.lenient,
    )


async def _discard_drainer(drainer: "asyncio.Future[int]") -> None:
    """Stop the progress drainer after the refresh itself already failed."""

    drainer.cancel()
    (outcome,) = await asyncio.gather(drainer, return_exceptions=True)
    if isinstance(outcome, Exception):
        logger.warning(
            "progress callback failed: %s",
            outcome,
            extra={"stage": "progress"},
        )


async def refresh_async(
    recipe_text: str,
    progress_callback: Optional[ProgressCallback] = None,
    max_concurrency: Optional[int] = None,
    *,
    config: Optional[ChecksumUpdateConfiguration] = None,
    client: Optional[httpx.AsyncClient] = None,
    allow_fallback: Optional[bool] = None,
    append_missing: Optional[bool] = None,
) -> RefreshResult:
    """Return ``recipe_text`` with refreshed checksum fields.

    Progress events are drained into ``progress_callback`` as
    ``(done, entry_index, delta_or_total_bytes, total_bytes)`` while the
    downloads run.

    Raises:
        ParseError: If the recipe cannot be parsed and fallback is disabled.
        ConfigError: If a source token is malformed.
        ResolutionError: If a registry lookup fails.
        FetchError: If a download fails.
        PatchError: If a checksum field cannot be rewritten.
        ProgressCallbackError: If ``progress_callback`` raised.
    """

    config = config or get_default_config()
    if append_missing is None:
        append_missing = config.append_missing_fields

    channel = ProgressChannel()
    drainer = (
        asyncio.ensure_future(channel.drain(progress_callback))
        if progress_callback is not None
        else None
    )
    try:
        result = await update_from_str(
            recipe_text,
            channel=channel,
            max_concurrency=max_concurrency,
            config=config,
            client=client,
            allow_fallback=allow_fallback,
        )
    except BaseException:
        channel.close()
        if drainer is not None:
            await _discard_drainer(drainer)
        raise

    channel.close()
    if drainer is not None:
        try:
            await drainer
        except Exception as exc:
            raise ProgressCallbackError(f"progress callback failed: {exc}") from exc

    text = apply_patches(recipe_text, result.checksums, append_missing=append_missing)
    return RefreshResult(text=text, changed=result.changed)


def refresh(
    recipe_text: str,
    progress_callback: Optional[ProgressCallback] = None,
    max_concurrency: Optional[int] = None,
    **kwargs,
) -> RefreshResult:
    """Synchronous wrapper around :func:`refresh_async`."""

    return asyncio.run(
        refresh_async(recipe_text, progress_callback, max_concurrency, **kwargs)
    )
