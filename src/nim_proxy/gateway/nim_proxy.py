"""OpenAI-compatible proxy server in front of NVIDIA NIM.

Exposes the OpenAI chat-completions surface and forwards to NIM:
1. Maps the client model id to a NIM model id (static table)
2. Forwards the request body, otherwise untouched
3. Streams SSE bodies back byte-for-byte, or
4. Reshapes buffered JSON responses into the OpenAI schema

Routes:
- GET  /health
- GET  /v1/models
- POST /v1/chat/completions
- anything else -> 404 error envelope
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from aiohttp import web
from pydantic import ValidationError

from nim_proxy.gateway.catalog import ModelCatalog
from nim_proxy.gateway.clients.nim_client import NIMClient, NIMClientConfig
from nim_proxy.gateway.config import SERVICE_NAME, NIMProxyConfig
from nim_proxy.gateway.errors import (
    DEFAULT_ERROR_MESSAGE,
    MODEL_NOT_FOUND,
    UpstreamError,
    error_envelope,
)
from nim_proxy.gateway.tracing import RequestTracer
from nim_proxy.gateway.transforms.chat import build_backend_request, reshape_response
from nim_proxy.gateway.transforms.validation import ChatCompletionRequest

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

CORS_ALLOW_METHODS = "GET,HEAD,PUT,PATCH,POST,DELETE"


@dataclass
class NIMProxyServer:
    """Server that accepts OpenAI chat-completions requests
    and proxies them to NVIDIA NIM.

    Example:
        >>> config = load_config()
        >>> server = NIMProxyServer(config=config)
        >>> await server.serve()
    """

    config: NIMProxyConfig
    _app: web.Application | None = None
    _runner: web.AppRunner | None = None
    _client: NIMClient | None = None
    _shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)
    _catalog: ModelCatalog = field(init=False)
    _tracer: RequestTracer = field(init=False)
    port: int | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self._catalog = ModelCatalog(mapping=self.config.model_mapping)
        self._tracer = RequestTracer(debug_dir=self.config.debug_dir)

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes registered."""
        app = web.Application(
            client_max_size=self.config.max_body_size,
            middlewares=[self._cors_preflight_middleware],
        )
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/v1/models", self._handle_models)
        app.router.add_post("/v1/chat/completions", self._handle_chat_completions)
        # Must stay last: catches every path and method not matched above
        app.router.add_route("*", "/{tail:.*}", self._handle_not_found)
        app.on_response_prepare.append(self._add_cors_headers)
        return app

    async def start(self) -> None:
        """Connect the upstream client and start listening."""
        self._client = NIMClient(
            config=NIMClientConfig(
                base_url=self.config.upstream_base_url,
                api_key=self.config.upstream_api_key,
                connect_timeout=self.config.connect_timeout,
                read_timeout=self.config.read_timeout,
            )
        )
        await self._client.connect()

        self._app = self.build_app()
        # Cancel the handler (and its upstream request) when the client goes away
        self._runner = web.AppRunner(self._app, handler_cancellation=True)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await site.start()
        self.port = self._runner.addresses[0][1]

        logger.info("%s running on port %d", SERVICE_NAME, self.port)
        logger.info("Health check: http://localhost:%d/health", self.port)
        logger.info("Forwarding to: %s", self.config.upstream_base_url)
        if self.config.debug_dir:
            logger.info("Debug files will be saved to: %s", self.config.debug_dir)

    async def serve(self) -> None:
        """Start the proxy and block until shutdown is requested."""
        await self.start()
        await self._shutdown_event.wait()
        logger.info("Shutdown requested")
        await self.stop()

    def shutdown(self) -> None:
        """Request a graceful shutdown of a running ``serve()``."""
        self._shutdown_event.set()

    async def stop(self) -> None:
        """Stop the proxy server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        if self._client:
            await self._client.close()
            self._client = None

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /health."""
        return web.json_response({"status": "ok", "service": SERVICE_NAME})

    async def _handle_models(self, request: web.Request) -> web.Response:
        """Handle GET /v1/models."""
        return web.json_response(self._catalog.to_list_response())

    async def _handle_not_found(self, request: web.Request) -> web.Response:
        return self._error_response(
            f"Endpoint {request.path} not found on this proxy.",
            code=404,
            status=404,
        )

    async def _handle_chat_completions(self, request: web.Request) -> web.StreamResponse:
        """Handle POST /v1/chat/completions - main proxy endpoint."""
        content_type = request.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            return self._error_response(
                f"Content-Type must be application/json, got: {content_type}",
                code=400,
                status=400,
            )

        try:
            body = await request.json()
        except (ValueError, LookupError) as e:
            # JSONDecodeError, UnicodeDecodeError, or an unknown charset
            return self._error_response(f"Invalid JSON: {e}", code=400, status=400)
        if not isinstance(body, dict):
            return self._error_response(
                "Request body must be a JSON object", code=400, status=400
            )

        trace_id = self._tracer.generate_trace_id(body)
        chat_request = ChatCompletionRequest.model_validate(body)
        client_model = chat_request.model

        backend_model = self._catalog.resolve(client_model)
        if backend_model is None:
            logger.warning("[%s] Unsupported model: %r", trace_id, client_model)
            return self._error_response(
                f"Model '{client_model}' is not supported by this proxy.",
                code=MODEL_NOT_FOUND,
                status=400,
            )

        backend_request = build_backend_request(chat_request, backend_model)
        self._tracer.save_debug(trace_id, "1_request.json", body)
        self._tracer.save_debug(trace_id, "2_nim_request.json", backend_request)

        messages = body.get("messages")
        logger.info(
            "[%s] Request: model=%s -> %s, messages=%d, stream=%s",
            trace_id,
            client_model,
            backend_model,
            len(messages) if isinstance(messages, list) else 0,
            backend_request["stream"],
        )

        if backend_request["stream"]:
            return await self._handle_streaming(request, backend_request, trace_id)
        return await self._handle_non_streaming(backend_request, client_model, trace_id)

    async def _handle_streaming(
        self,
        request: web.Request,
        backend_request: dict[str, Any],
        trace_id: str,
    ) -> web.StreamResponse:
        """Pipe the upstream SSE body to the client unchanged."""
        client = self._require_client()
        response: web.StreamResponse | None = None
        chunk_count = 0
        byte_count = 0

        try:
            async with client.open_stream(backend_request, trace_id) as upstream:
                response = web.StreamResponse(status=200, headers=SSE_HEADERS)
                await response.prepare(request)

                async for chunk in client.iter_chunks(upstream):
                    try:
                        await response.write(chunk)
                    except ConnectionResetError:
                        logger.debug("[%s] Client disconnected during streaming", trace_id)
                        break
                    chunk_count += 1
                    byte_count += len(chunk)
        except Exception as e:
            if response is None:
                return self._failure_response(e, trace_id)
            # Headers are already sent; all we can do is end the stream
            logger.exception("[%s] Upstream stream failed mid-response", trace_id)

        logger.info(
            "[%s] Stream complete, forwarded %d chunks (%d bytes)",
            trace_id,
            chunk_count,
            byte_count,
        )

        try:
            await response.write_eof()
        except ConnectionResetError:
            logger.debug("[%s] Client already disconnected", trace_id)

        return response

    async def _handle_non_streaming(
        self,
        backend_request: dict[str, Any],
        client_model: str,
        trace_id: str,
    ) -> web.Response:
        """Await the full upstream body and reshape it."""
        client = self._require_client()

        try:
            payload = await client.send(backend_request, trace_id)
            self._tracer.save_debug(trace_id, "3_nim_response.json", payload)
            outbound = reshape_response(payload, client_model)
        except Exception as e:
            return self._failure_response(e, trace_id)

        self._tracer.save_debug(trace_id, "4_response.json", outbound)
        usage = outbound["usage"] if isinstance(outbound["usage"], dict) else {}
        logger.info(
            "[%s] Response complete: prompt_tokens=%s, completion_tokens=%s",
            trace_id,
            usage.get("prompt_tokens", "?"),
            usage.get("completion_tokens", "?"),
        )
        return web.json_response(outbound)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_client(self) -> NIMClient:
        if self._client is None:
            raise RuntimeError("Upstream client not initialized. Call start() first.")
        return self._client

    def _error_response(self, message: str, code: int | str, status: int) -> web.Response:
        """Return an OpenAI-format error response."""
        return web.json_response(error_envelope(message, code), status=status)

    def _failure_response(self, exc: Exception, trace_id: str) -> web.Response:
        """Map an upstream/transport/reshaping failure onto the error envelope.

        Uses the backend status when one was received, else 500.
        """
        status = 500
        if isinstance(exc, UpstreamError):
            status = exc.status_code
            logger.error("[%s] Upstream error %d: %s", trace_id, status, exc)
        elif isinstance(exc, aiohttp.ClientResponseError) and exc.status >= 400:
            status = exc.status
            logger.error("[%s] Upstream error %d: %s", trace_id, status, exc.message)
        elif isinstance(exc, (aiohttp.ClientError, ValidationError, ValueError)):
            logger.error("[%s] Upstream request failed: %s", trace_id, exc)
        else:
            logger.exception("[%s] Unexpected error", trace_id)

        if isinstance(exc, aiohttp.ClientResponseError):
            message = exc.message or str(exc)
        else:
            message = str(exc)
        return self._error_response(message or DEFAULT_ERROR_MESSAGE, code=status, status=status)

    @web.middleware
    async def _cors_preflight_middleware(
        self,
        request: web.Request,
        handler: Any,
    ) -> web.StreamResponse:
        """Answer CORS preflight requests before routing."""
        if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
            headers = {"Access-Control-Allow-Methods": CORS_ALLOW_METHODS}
            requested_headers = request.headers.get("Access-Control-Request-Headers")
            if requested_headers:
                headers["Access-Control-Allow-Headers"] = requested_headers
                headers["Vary"] = "Access-Control-Request-Headers"
            return web.Response(status=204, headers=headers)
        return await handler(request)

    async def _add_cors_headers(
        self,
        request: web.Request,
        response: web.StreamResponse,
    ) -> None:
        """Attach the allow-origin header to every response, streams included."""
        response.headers.setdefault("Access-Control-Allow-Origin", self.config.cors_allow_origin)
