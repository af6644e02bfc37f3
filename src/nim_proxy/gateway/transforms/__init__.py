"""Payload transforms between OpenAI clients and the NIM backend."""

from .chat import ZERO_USAGE, build_backend_request, reshape_response
from .validation import BackendChatResponse, ChatCompletionRequest, Choice

__all__ = [
    "BackendChatResponse",
    "ChatCompletionRequest",
    "Choice",
    "ZERO_USAGE",
    "build_backend_request",
    "reshape_response",
]
