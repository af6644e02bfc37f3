"""Tests for NIMClient."""

import json

import aiohttp
import pytest
from aioresponses import aioresponses
from yarl import URL

from nim_proxy.gateway.clients.nim_client import NIMClient, NIMClientConfig
from nim_proxy.gateway.errors import UpstreamError

NIM_URL = "https://api.test.nvidia.com/v1/chat/completions"


@pytest.fixture
def client_config():
    return NIMClientConfig(
        base_url="https://api.test.nvidia.com/v1",
        api_key="test-key",
    )


@pytest.fixture
async def client(client_config):
    client = NIMClient(config=client_config)
    await client.connect()
    yield client
    await client.close()


class TestNIMClientSession:
    """Tests for session setup."""

    async def test_auth_headers(self, client):
        """Session should carry bearer auth and JSON content type."""
        assert client._session.headers["Authorization"] == "Bearer test-key"
        assert client._session.headers["Content-Type"] == "application/json"

    async def test_no_timeout_by_default(self, client):
        """Outbound calls have no timeout unless configured."""
        assert client._session.timeout.total is None
        assert client._session.timeout.connect is None
        assert client._session.timeout.sock_read is None

    async def test_configured_timeouts(self, client_config):
        client_config.connect_timeout = 5.0
        client_config.read_timeout = 60.0
        client = NIMClient(config=client_config)
        await client.connect()
        try:
            assert client._session.timeout.connect == 5.0
            assert client._session.timeout.sock_read == 60.0
            assert client._session.timeout.total is None
        finally:
            await client.close()

    def test_url_strips_trailing_slash(self):
        client = NIMClient(config=NIMClientConfig(base_url="https://x.test/v1/", api_key="k"))
        assert client.url == "https://x.test/v1/chat/completions"

    async def test_client_not_connected_raises(self, client_config):
        """Sending without connecting should raise RuntimeError."""
        client = NIMClient(config=client_config)

        with pytest.raises(RuntimeError, match="not connected"):
            await client.send({})


class TestNIMClientSend:
    """Tests for NIMClient.send() non-streaming method."""

    async def test_successful_request(self, client):
        """2xx body should be returned decoded and unmodified."""
        payload = {
            "id": "cmpl-upstream",
            "model": "deepseek-ai/deepseek-v3.1",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": "hi"}}],
        }
        with aioresponses() as m:
            m.post(NIM_URL, payload=payload)

            result = await client.send({"model": "deepseek-ai/deepseek-v3.1", "stream": False})

        assert result == payload

    async def test_request_body_forwarded(self, client):
        """The request body should be posted as JSON without changes."""
        body = {"model": "z-ai/glm4.7", "messages": [], "temperature": 0.2, "stream": False}
        with aioresponses() as m:
            m.post(NIM_URL, payload={"choices": []})

            await client.send(body)

            call = m.requests[("POST", URL(NIM_URL))][0]
            assert call.kwargs["json"] == body

    async def test_error_message_from_payload(self, client):
        """error.message from the backend body should become the exception message."""
        with aioresponses() as m:
            m.post(NIM_URL, status=503, payload={"error": {"message": "overloaded"}})

            with pytest.raises(UpstreamError) as exc_info:
                await client.send({})

        assert exc_info.value.status_code == 503
        assert str(exc_info.value) == "overloaded"
        assert json.loads(exc_info.value.response_body) == {"error": {"message": "overloaded"}}

    async def test_error_string_payload(self, client):
        with aioresponses() as m:
            m.post(NIM_URL, status=422, payload={"error": "bad messages"})

            with pytest.raises(UpstreamError) as exc_info:
                await client.send({})

        assert exc_info.value.status_code == 422
        assert str(exc_info.value) == "bad messages"

    async def test_error_non_json_body(self, client):
        """A non-JSON error body should fall back to a generic message."""
        with aioresponses() as m:
            m.post(NIM_URL, status=401, body="Unauthorized")

            with pytest.raises(UpstreamError) as exc_info:
                await client.send({})

        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == "Upstream returned 401"
        assert exc_info.value.response_body == "Unauthorized"

    async def test_no_retry(self, client):
        """A failed request should not be repeated."""
        with aioresponses() as m:
            m.post(NIM_URL, status=500, body="Server error")
            m.post(NIM_URL, payload={"choices": []})

            with pytest.raises(UpstreamError):
                await client.send({})

            assert len(m.requests[("POST", URL(NIM_URL))]) == 1

    async def test_connection_error_propagates(self, client):
        with aioresponses() as m:
            m.post(NIM_URL, exception=aiohttp.ClientConnectionError("connection refused"))

            with pytest.raises(aiohttp.ClientConnectionError, match="connection refused"):
                await client.send({})

    async def test_malformed_body_raises(self, client):
        with aioresponses() as m:
            m.post(NIM_URL, body="not json", content_type="text/plain")

            with pytest.raises(json.JSONDecodeError):
                await client.send({})


class TestNIMClientStream:
    """Tests for NIMClient.open_stream() streaming method."""

    async def test_stream_bytes_unchanged(self, client):
        """Body bytes should come through in order and unparsed."""
        sse_response = (
            b'data: {"choices":[{"delta":{"content":"Hello"}}]}\n\n'
            b'data: {"choices":[{"delta":{"content":" World"}}]}\n\n'
            b"data: [DONE]\n\n"
        )
        with aioresponses() as m:
            m.post(NIM_URL, body=sse_response, headers={"Content-Type": "text/event-stream"})

            received = b""
            async with client.open_stream({"stream": True}) as upstream:
                async for chunk in client.iter_chunks(upstream):
                    received += chunk

        assert received == sse_response

    async def test_stream_error_before_body(self, client):
        """A non-2xx answer should raise before anything is yielded."""
        with aioresponses() as m:
            m.post(NIM_URL, status=429, payload={"error": {"message": "rate limited"}})

            with pytest.raises(UpstreamError) as exc_info:
                async with client.open_stream({"stream": True}):
                    pytest.fail("stream should not open")

        assert exc_info.value.status_code == 429
        assert str(exc_info.value) == "rate limited"
