"""Testing utilities for exercising checksum refreshes without a network.

:class:`FakeMirror` plays the role of every upstream server a recipe points
at.  It serves registered payloads through an ``httpx.MockTransport``,
records each request, and tracks how many requests were being served at the
same time so that concurrency bounds can be asserted.
"""

from __future__ import annotations

import asyncio
import hashlib
import json as _json
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import httpx

from ..net import create_http_client
from ..settings import ChecksumUpdateConfiguration

__all__ = ["FakeMirror", "RequestRecord", "ResponseSpec", "sha256_token"]


def sha256_token(payload: bytes) -> str:
    """Return the ``sha256::<hex>`` token ABBS records for ``payload``."""

    return f"sha256::{hashlib.sha256(payload).hexdigest()}"


@dataclass
class ResponseSpec:
    """Canned response served for one URL."""

    status: int = 200
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    delay: float = 0.0
    error: Optional[str] = None


@dataclass
class RequestRecord:
    """Request observed by the fake mirror."""

    method: str
    url: str
    headers: Mapping[str, str]


class FakeMirror:
    """In-process stand-in for source mirrors and the PyPI JSON API."""

    def __init__(self) -> None:
        self._responses: Dict[str, ResponseSpec] = {}
        self.requests: List[RequestRecord] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def register(
        self,
        url: str,
        body: bytes = b"",
        *,
        status: int = 200,
        delay: float = 0.0,
        headers: Optional[Mapping[str, str]] = None,
        error: Optional[str] = None,
    ) -> str:
        """Serve ``body`` at ``url`` and return its ``sha256::`` token."""

        self._responses[url] = ResponseSpec(
            status=status,
            body=body,
            headers=dict(headers or {}),
            delay=delay,
            error=error,
        )
        return sha256_token(body)

    def register_pypi(
        self,
        package: str,
        version: str,
        artifacts: List[Mapping[str, str]],
        *,
        base_url: str = "https://pypi.org/pypi",
        status: int = 200,
    ) -> None:
        """Serve a PyPI JSON metadata document listing ``artifacts``."""

        payload = _json.dumps({"urls": list(artifacts)}).encode("utf-8")
        self.register(
            f"{base_url}/{package}/{version}/json",
            payload,
            status=status,
            headers={"Content-Type": "application/json"},
        )

    def urls_requested(self) -> List[str]:
        return [record.url for record in self.requests]

    async def _handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(RequestRecord(request.method, url, dict(request.headers)))
        spec = self._responses.get(url)
        if spec is None:
            return httpx.Response(
                404,
                headers={"Content-Length": "9"},
                stream=httpx.ByteStream(b"not found"),
            )

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if spec.delay:
                await asyncio.sleep(spec.delay)
            if spec.error is not None:
                raise httpx.ConnectError(spec.error, request=request)
            # An unread stream, so callers can iterate it with ``aiter_raw``.
            headers = {"Content-Length": str(len(spec.body)), **spec.headers}
            return httpx.Response(
                spec.status, headers=headers, stream=httpx.ByteStream(spec.body)
            )
        finally:
            self.in_flight -= 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handler)

    def client(self, config: Optional[ChecksumUpdateConfiguration] = None) -> httpx.AsyncClient:
        """Return an async client wired to this mirror."""

        return create_http_client(config, transport=self.transport())
