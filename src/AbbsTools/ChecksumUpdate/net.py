"""HTTPX client factory for checksum refresh runs.

A refresh call owns a single :class:`httpx.AsyncClient`; every fetch worker
and registry lookup shares its connection pool.  Tests inject an
``httpx.MockTransport`` through the ``transport`` argument.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .settings import ChecksumUpdateConfiguration, get_default_config

__all__ = ["create_http_client"]

logger = logging.getLogger(__name__)


async def _request_hook(request: httpx.Request) -> None:
    logger.debug(
        "http request",
        extra={"stage": "http", "method": request.method, "url": str(request.url)},
    )


async def _response_hook(response: httpx.Response) -> None:
    logger.debug(
        "http response",
        extra={
            "stage": "http",
            "url": str(response.request.url),
            "status": response.status_code,
            "content_length": response.headers.get("content-length"),
        },
    )


def create_http_client(
    config: Optional[ChecksumUpdateConfiguration] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Build the async client used for registry lookups and source downloads."""

    config = config or get_default_config()
    timeout = httpx.Timeout(
        config.read_timeout_sec,
        connect=config.connect_timeout_sec,
    )
    limits = httpx.Limits(
        max_connections=max(config.max_concurrency * 2, 10),
        max_keepalive_connections=config.max_concurrency,
    )
    return httpx.AsyncClient(
        headers={"User-Agent": config.user_agent},
        timeout=timeout,
        limits=limits,
        follow_redirects=config.follow_redirects,
        transport=transport,
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
    )
