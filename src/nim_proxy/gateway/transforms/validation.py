"""Pydantic models for the chat-completions payloads the proxy touches.

Only the fields the proxy interprets are declared. Everything else is kept
(inbound request) or dropped (backend choices) according to ``extra``.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class ChatCompletionRequest(BaseModel):
    """Inbound OpenAI chat-completions request.

    ``model`` is looked up in the mapping table rather than validated here,
    so an absent or non-string model reaches the handler as-is and is
    reported as ``model_not_found``.
    """

    model_config = ConfigDict(extra="allow")

    model: Any = None
    stream: Any = None

    def passthrough_fields(self) -> dict[str, Any]:
        """Every field the client sent except ``model``, unexamined."""
        fields = dict(self.model_extra or {})
        if "stream" in self.model_fields_set:
            fields["stream"] = self.stream
        return fields


class Choice(BaseModel):
    """A single backend choice; unknown keys are discarded."""

    model_config = ConfigDict(extra="ignore")

    # Copied as the backend sent them, without coercion
    index: Any = None
    message: Any = None
    finish_reason: Any = None


class BackendChatResponse(BaseModel):
    """Non-streaming NIM chat-completions response."""

    model_config = ConfigDict(extra="allow")

    choices: list[Choice]
    usage: Any = None

    @field_validator("usage", mode="before")
    @classmethod
    def falsy_usage_to_none(cls, v: Any) -> Any:
        """Treat null, false, 0 and "" as missing. Any object, even empty, is kept."""
        if isinstance(v, dict):
            return v
        return v or None
