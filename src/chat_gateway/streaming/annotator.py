"""Reasoning delimiters for the outbound stream.

Reasoning frames are rewritten as plain text frames wrapped in a thought
block: an opening delimiter is injected when the stream enters the reasoning
channel and a closing delimiter when it leaves. Nothing else is touched.
"""

from collections.abc import AsyncGenerator, AsyncIterator

from chat_gateway.streaming.protocol import Frame

THOUGHT_OPEN = '<div class="__boltThought__">'
THOUGHT_CLOSE = "</div>\n"


class ChunkAnnotator:
    """Per-stream transform tracking whether the previous frame was reasoning."""

    def __init__(self) -> None:
        self._in_reasoning = False

    @property
    def in_reasoning(self) -> bool:
        return self._in_reasoning

    def feed(self, frame: Frame) -> list[Frame]:
        """Annotate one frame, returning the frames to send in its place."""
        out: list[Frame] = []
        if frame.is_reasoning and not self._in_reasoning:
            out.append(Frame.text(THOUGHT_OPEN))
        elif not frame.is_reasoning and self._in_reasoning:
            out.append(Frame.text(THOUGHT_CLOSE))
        self._in_reasoning = frame.is_reasoning

        out.append(Frame.text(frame.payload) if frame.is_reasoning else frame)
        return out

    async def annotate(self, frames: AsyncIterator[Frame]) -> AsyncGenerator[Frame, None]:
        async for frame in frames:
            for annotated in self.feed(frame):
                yield annotated


def annotate_reasoning(frames: AsyncIterator[Frame]) -> AsyncGenerator[Frame, None]:
    """Wrap a frame sequence with a fresh annotator."""
    return ChunkAnnotator().annotate(frames)
