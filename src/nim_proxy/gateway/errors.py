"""Shared error definitions for the gateway.

Every error body produced by the proxy uses the OpenAI envelope:
``{"error": {"message": ..., "type": ..., "code": ...}}``.
"""

from __future__ import annotations

from typing import Any

# The proxy reports every failure with this type, including upstream ones
INVALID_REQUEST_ERROR = "invalid_request_error"
MODEL_NOT_FOUND = "model_not_found"
DEFAULT_ERROR_MESSAGE = "Internal server error"


class ConfigError(Exception):
    """Raised when process-wide configuration cannot be resolved."""


class UpstreamError(Exception):
    """Raised when the NIM backend answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


def error_envelope(
    message: str,
    code: int | str,
    error_type: str = INVALID_REQUEST_ERROR,
) -> dict[str, Any]:
    """Build an OpenAI-format error body."""
    return {"error": {"message": message, "type": error_type, "code": code}}


def upstream_error_message(payload: Any) -> str | None:
    """Extract ``error.message`` from a decoded backend error body.

    A bare string under ``error`` is accepted as the message too.
    """
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    elif isinstance(error, str) and error:
        return error
    return None
