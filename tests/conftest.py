"""Pytest configuration and fixtures."""

from dataclasses import replace

import pytest
from aiohttp import web

from nim_proxy.gateway.config import NIMProxyConfig
from nim_proxy.gateway.nim_proxy import NIMProxyServer

NIM_BASE_URL = "https://api.test.nvidia.com/v1"


@pytest.fixture
def proxy_config():
    """Proxy config pointing at a mocked NIM backend."""
    return NIMProxyConfig(
        upstream_api_key="test-key",
        upstream_base_url=NIM_BASE_URL,
        host="127.0.0.1",
        port=0,  # Let OS pick a port
    )


@pytest.fixture
async def running_proxy(proxy_config):
    """Start a proxy server on a free port.

    Yields (server, base_url). Mock the backend with
    ``aioresponses(passthrough=[base_url])`` so calls to the proxy itself
    still reach the real socket.
    """
    server = NIMProxyServer(config=proxy_config)
    await server.start()

    yield server, f"http://127.0.0.1:{server.port}"

    await server.stop()


@pytest.fixture
async def nim_backend():
    """Run a local NIM stand-in on a free port.

    Call with a handler for POST /v1/chat/completions; returns the base URL
    to point a proxy at. Used where chunk timing or connection state matters.
    """
    runners = []

    async def start(handler):
        app = web.Application()
        app.router.add_post("/v1/chat/completions", handler)
        runner = web.AppRunner(app)
        await runner.setup()
        await web.TCPSite(runner, "127.0.0.1", 0).start()
        runners.append(runner)
        return f"http://127.0.0.1:{runner.addresses[0][1]}/v1"

    yield start

    for runner in runners:
        await runner.cleanup()


@pytest.fixture
async def proxy_for(proxy_config):
    """Start a proxy forwarding to the given backend base URL; returns its URL."""
    servers = []

    async def start(upstream_base_url):
        server = NIMProxyServer(config=replace(proxy_config, upstream_base_url=upstream_base_url))
        await server.start()
        servers.append(server)
        return f"http://127.0.0.1:{server.port}"

    yield start

    for server in servers:
        await server.stop()
