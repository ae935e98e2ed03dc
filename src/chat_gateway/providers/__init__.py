# Completion providers

from .base import (
    FINISH_REASON_LENGTH,
    ChatMessage,
    CompletionProvider,
    CompletionRequest,
    StreamEvent,
    TokenUsage,
)
from .registry import ProviderRegistry

__all__ = [
    "FINISH_REASON_LENGTH",
    "ChatMessage",
    "CompletionProvider",
    "CompletionRequest",
    "ProviderRegistry",
    "StreamEvent",
    "TokenUsage",
]
