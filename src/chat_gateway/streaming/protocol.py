"""Line-oriented data-stream framing for the outbound chat stream.

Every frame is ``<code>:<json>\\n``. The code tells a client whether the line is
a text delta, a data record, an annotation, an error or a finish marker, so
annotation records can never be mistaken for text.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from chat_gateway.providers.base import FINISH_REASON_LENGTH, StreamEvent, TokenUsage


class FrameKind(str, Enum):
    """Frame type codes."""

    TEXT = "0"
    DATA = "2"
    ERROR = "3"
    ANNOTATION = "8"
    FINISH_MESSAGE = "d"
    FINISH_STEP = "e"
    REASONING = "g"


@dataclass(frozen=True)
class Frame:
    """One outbound record."""

    kind: FrameKind
    payload: Any

    def encode(self) -> str:
        """Serialize to the wire line."""
        body = json.dumps(self.payload, ensure_ascii=False, separators=(",", ":"))
        return f"{self.kind.value}:{body}\n"

    @property
    def is_reasoning(self) -> bool:
        return self.kind is FrameKind.REASONING

    @classmethod
    def text(cls, content: str) -> "Frame":
        return cls(FrameKind.TEXT, content)

    @classmethod
    def reasoning(cls, content: str) -> "Frame":
        return cls(FrameKind.REASONING, content)

    @classmethod
    def data(cls, record: dict[str, Any]) -> "Frame":
        return cls(FrameKind.DATA, [record])

    @classmethod
    def annotation(cls, record: dict[str, Any]) -> "Frame":
        return cls(FrameKind.ANNOTATION, [record])

    @classmethod
    def error(cls, message: str) -> "Frame":
        return cls(FrameKind.ERROR, message)

    @classmethod
    def finish_step(cls, finish_reason: str, usage: dict[str, int]) -> "Frame":
        return cls(
            FrameKind.FINISH_STEP,
            {
                "finishReason": finish_reason,
                "usage": usage,
                "isContinued": finish_reason == FINISH_REASON_LENGTH,
            },
        )

    @classmethod
    def finish_message(cls, finish_reason: str, usage: dict[str, int]) -> "Frame":
        return cls(FrameKind.FINISH_MESSAGE, {"finishReason": finish_reason, "usage": usage})


def usage_payload(usage: dict[str, int] | None) -> dict[str, int]:
    """Wire form of a provider usage dict; absent fields count as 0."""
    parsed = TokenUsage.from_mapping(usage)
    return {"promptTokens": parsed.prompt_tokens, "completionTokens": parsed.completion_tokens}


def frame_from_event(event: StreamEvent) -> Frame | None:
    """Map a completion-source event to its outbound frame."""
    if event.type == "token":
        return Frame.text(event.content or "") if event.content else None
    if event.type == "reasoning":
        return Frame.reasoning(event.content or "") if event.content else None
    if event.type == "done":
        return Frame.finish_step(event.finish_reason or "unknown", usage_payload(event.usage))
    return Frame.error(event.error or "An error occurred.")


def encode_frame(frame: Frame) -> bytes:
    return frame.encode().encode("utf-8")
