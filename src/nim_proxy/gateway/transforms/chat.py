"""Chat-completions payload transforms between the client and NIM.

Request direction: swap the client model id for the backend id and default
``stream`` to false. Response direction: project the backend body back onto
the OpenAI schema with the client model id and locally generated metadata.
"""

from __future__ import annotations

import time
from typing import Any

from nim_proxy.gateway.transforms.validation import BackendChatResponse, ChatCompletionRequest

ZERO_USAGE = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


def build_backend_request(request: ChatCompletionRequest, backend_model: str) -> dict[str, Any]:
    """Build the body forwarded to NIM.

    Args:
        request: Parsed inbound request.
        backend_model: Backend model id resolved from the mapping table.

    Returns:
        Inbound fields with ``model`` replaced and ``stream`` set explicitly.
    """
    fields = request.passthrough_fields()
    return {
        **fields,
        "model": backend_model,
        "stream": fields.get("stream") or False,
    }


def reshape_response(
    payload: Any,
    client_model: str,
    now: float | None = None,
) -> dict[str, Any]:
    """Reshape a buffered NIM response into an OpenAI chat completion.

    Args:
        payload: Decoded backend JSON body.
        client_model: The model id the client asked for.
        now: Timestamp override (seconds since epoch).

    Returns:
        Outbound chat-completion body.

    Raises:
        pydantic.ValidationError: If the backend body has no usable ``choices``.
    """
    backend = BackendChatResponse.model_validate(payload)
    now = time.time() if now is None else now

    return {
        "id": f"chatcmpl-{int(now * 1000)}",
        "object": "chat.completion",
        "created": int(now),
        "model": client_model,
        "choices": [
            {
                "index": choice.index,
                "message": choice.message,
                "finish_reason": choice.finish_reason,
            }
            for choice in backend.choices
        ],
        "usage": backend.usage if backend.usage is not None else dict(ZERO_USAGE),
    }
