"""Outbound chat stream: framing, source switching and reasoning annotation."""

from chat_gateway.streaming.annotator import (
    THOUGHT_CLOSE,
    THOUGHT_OPEN,
    ChunkAnnotator,
    annotate_reasoning,
)
from chat_gateway.streaming.protocol import Frame, FrameKind, encode_frame, frame_from_event
from chat_gateway.streaming.switchable import SwitchableStream

__all__ = [
    "THOUGHT_CLOSE",
    "THOUGHT_OPEN",
    "ChunkAnnotator",
    "Frame",
    "FrameKind",
    "SwitchableStream",
    "annotate_reasoning",
    "encode_frame",
    "frame_from_event",
]
