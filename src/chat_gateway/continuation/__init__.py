"""Continuation of truncated responses and session-wide usage accounting."""

from chat_gateway.continuation.controller import (
    ContinuationController,
    SegmentRecorder,
    SessionState,
)
from chat_gateway.continuation.usage import TokenUsage, UsageAccumulator

__all__ = [
    "ContinuationController",
    "SegmentRecorder",
    "SessionState",
    "TokenUsage",
    "UsageAccumulator",
]
