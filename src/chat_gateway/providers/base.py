"""Base provider interface and common types for completion sources."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]

# Finish reason that marks a token-limit truncation
FINISH_REASON_LENGTH = "length"


def _count(usage: Mapping[str, Any], *keys: str) -> int:
    for key in keys:
        value = usage.get(key)
        if value is not None:
            return int(value)
    return 0


@dataclass(frozen=True)
class TokenUsage:
    """Token counts for one invocation, or running totals."""

    completion_tokens: int = 0
    prompt_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_mapping(cls, usage: Mapping[str, Any] | None) -> "TokenUsage":
        """Read provider usage; missing fields are 0, never "unknown".

        Accepts the snake_case, camelCase and ``input_tokens``/``output_tokens``
        spellings providers use.
        """
        if not usage:
            return cls()
        completion = _count(usage, "completion_tokens", "completionTokens", "output_tokens")
        prompt = _count(usage, "prompt_tokens", "promptTokens", "input_tokens")
        total = _count(usage, "total_tokens", "totalTokens")
        return cls(completion_tokens=completion, prompt_tokens=prompt, total_tokens=total)

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            completion_tokens=self.completion_tokens + other.completion_tokens,
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "completionTokens": self.completion_tokens,
            "promptTokens": self.prompt_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class ChatMessage:
    """A message in a chat conversation."""

    role: Role
    content: str
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.id is not None:
            data["id"] = self.id
        return data


@dataclass
class StreamEvent:
    """Event emitted by a completion source.

    ``reasoning`` events carry the model's thought channel; ``done`` is the
    terminal event and carries usage and the finish reason.
    """

    type: Literal["token", "reasoning", "done", "error"]
    content: str | None = None
    usage: dict[str, int] | None = None
    finish_reason: str | None = None
    error: str | None = None


@dataclass
class CompletionRequest:
    """Request parameters for one model invocation."""

    model: str
    provider: str
    messages: list[ChatMessage]
    max_tokens: int = 8000
    api_key: str | None = None
    prompt_id: str | None = None
    # Set by context reduction
    summary: str | None = None
    context_files: dict[str, Any] | None = None
    message_slice_id: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def prompt_messages(self) -> list[ChatMessage]:
        """Messages to send: the recent window only when a summary replaces the rest."""
        if self.summary and self.message_slice_id:
            return self.messages[self.message_slice_id :]
        return self.messages


class CompletionProvider(ABC):
    """Abstract base class for completion providers.

    A provider turns a CompletionRequest into a lazy, single-pass sequence of
    StreamEvents. Timeouts and provider-side retries are the provider's concern;
    raising from ``stream`` ends the invocation with an error.
    """

    name: str = ""
    requires_api_key: bool = True

    @abstractmethod
    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Stream one completion."""

    async def close(self) -> None:
        """Clean up resources."""
        return None
