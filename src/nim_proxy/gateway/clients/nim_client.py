"""HTTP client for the NVIDIA NIM chat-completions endpoint.

Uses aiohttp.ClientSession, shared by all requests of one proxy process.

One network round trip per call. No retries, no circuit breaker: every
failure is surfaced to the caller as-is.
"""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import aiohttp

from nim_proxy.gateway.errors import UpstreamError, upstream_error_message

logger = logging.getLogger(__name__)


@dataclass
class NIMClientConfig:
    """Configuration for the NIM client."""

    base_url: str
    api_key: str

    # Timeouts (seconds); None waits forever.
    # read_timeout bounds the gap between reads, not the whole stream.
    connect_timeout: float | None = None
    read_timeout: float | None = None


@dataclass
class NIMClient:
    """HTTP client for the NIM backend.

    Provides a buffered ``send`` and a streamed ``open_stream``.
    """

    config: NIMClientConfig
    _session: aiohttp.ClientSession | None = None

    @property
    def url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/chat/completions"

    async def connect(self) -> None:
        """Create the shared HTTP session."""
        timeout = aiohttp.ClientTimeout(
            total=None,
            connect=self.config.connect_timeout,
            sock_read=self.config.read_timeout,
        )
        self._session = aiohttp.ClientSession(
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._session:
            await self._session.close()
            self._session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("Client not connected. Call connect() first.")
        return self._session

    async def send(self, request_body: dict[str, Any], trace_id: str | None = None) -> Any:
        """Non-streaming request.

        Args:
            request_body: Backend chat request (``stream`` false)
            trace_id: Optional trace ID for correlation

        Returns:
            Decoded JSON body of the backend response (None for an empty body)

        Raises:
            UpstreamError: If the backend answers with a non-2xx status
            aiohttp.ClientError: On connection failures
            json.JSONDecodeError: If a 2xx body is not JSON
        """
        session = self._require_session()
        async with session.post(self.url, json=request_body) as response:
            if not 200 <= response.status < 300:
                raise await self._upstream_error(response, trace_id)
            return await response.json(content_type=None)

    @asynccontextmanager
    async def open_stream(
        self,
        request_body: dict[str, Any],
        trace_id: str | None = None,
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        """Streaming request.

        Yields the open upstream response once the backend has answered 2xx.
        Leaving the context releases the upstream connection, including when
        the caller stops reading early.

        Raises:
            UpstreamError: If the backend answers with a non-2xx status
            aiohttp.ClientError: On connection failures
        """
        session = self._require_session()
        async with session.post(self.url, json=request_body) as response:
            if not 200 <= response.status < 300:
                raise await self._upstream_error(response, trace_id)
            logger.debug("[%s] Upstream stream opened (status %d)", trace_id, response.status)
            yield response

    @staticmethod
    async def iter_chunks(response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
        """Yield body bytes as they arrive, without re-framing."""
        async for chunk in response.content.iter_any():
            yield chunk

    async def _upstream_error(
        self,
        response: aiohttp.ClientResponse,
        trace_id: str | None,
    ) -> UpstreamError:
        """Read a non-2xx answer and turn it into an UpstreamError."""
        raw = await response.read()
        error_body = raw.decode("utf-8", errors="replace")
        try:
            payload = json.loads(error_body)
        except ValueError:
            payload = None

        message = upstream_error_message(payload) or f"Upstream returned {response.status}"
        logger.error(
            "[%s] Upstream error %d: %s",
            trace_id,
            response.status,
            error_body[:500],
        )
        return UpstreamError(message, response.status, error_body)
