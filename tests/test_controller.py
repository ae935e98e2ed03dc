"""Tests for the continuation controller.

Tests cover:
- Completion without continuation
- Continuation after length truncation
- Segment limit
- Source failures
- Cancellation
"""

import asyncio
from collections.abc import AsyncIterator

import pytest

from chat_gateway.continuation import ContinuationController, SessionState
from chat_gateway.prompts import CONTINUE_PROMPT
from chat_gateway.providers.base import (
    ChatMessage,
    CompletionProvider,
    CompletionRequest,
    StreamEvent,
)
from chat_gateway.streaming import Frame, FrameKind, SwitchableStream
from tests.conftest import FakeProvider, collect, text_events

SEGMENT_LIMIT_MESSAGE = "Cannot continue message: Maximum segments reached"


def make_request() -> CompletionRequest:
    return CompletionRequest(
        model="gemini-2.0-flash",
        provider="Google",
        messages=[ChatMessage(role="user", content="Build a todo app", id="m1")],
    )


async def run_controller(
    provider: CompletionProvider, max_segments: int = 2
) -> tuple[ContinuationController, SessionState, list[Frame], SwitchableStream]:
    stream = SwitchableStream()
    controller = ContinuationController(stream, provider, make_request(), max_segments)
    consumer = asyncio.create_task(collect(stream.frames()))
    state = await controller.run()
    frames = await consumer
    return controller, state, frames, stream


def progress_messages(frames: list[Frame]) -> list[str]:
    return [f.payload[0]["message"] for f in frames if f.kind is FrameKind.DATA]


def of_kind(frames: list[Frame], kind: FrameKind) -> list[Frame]:
    return [f for f in frames if f.kind is kind]


class BlockingProvider(CompletionProvider):
    """Provider that emits one token and then waits forever."""

    name = "Google"
    requires_api_key = False

    def __init__(self) -> None:
        self.finalized = False

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[StreamEvent]:
        try:
            yield StreamEvent(type="token", content="partial")
            await asyncio.Event().wait()
        finally:
            self.finalized = True


@pytest.mark.asyncio
class TestCompletion:
    """Test sessions that finish without continuation."""

    async def test_stop_finishes_session(self):
        """Test a stop finish reason ends the session as DONE."""
        usage = {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
        provider = FakeProvider([text_events("Hello", " world", usage=usage)])

        controller, state, frames, stream = await run_controller(provider)

        assert state is SessionState.DONE
        assert stream.closed
        assert [f.payload for f in of_kind(frames, FrameKind.TEXT)] == ["Hello", " world"]
        assert progress_messages(frames) == ["Generating Response", "Response Generated"]
        assert len(provider.requests) == 1

    async def test_final_usage_annotation_and_finish_message(self):
        """Test totals are sent once, followed by the finish message."""
        usage = {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
        provider = FakeProvider([text_events("Hi", usage=usage)])

        _, _, frames, _ = await run_controller(provider)

        annotations = of_kind(frames, FrameKind.ANNOTATION)
        assert annotations == [
            Frame.annotation(
                {
                    "type": "usage",
                    "value": {"completionTokens": 5, "promptTokens": 10, "totalTokens": 15},
                }
            )
        ]
        assert frames[-1].kind is FrameKind.FINISH_MESSAGE
        assert frames[-1].payload == {
            "finishReason": "stop",
            "usage": {"promptTokens": 10, "completionTokens": 5},
        }

    async def test_missing_done_event_treated_as_finished(self):
        """Test a source ending without a done event finishes with reason unknown."""
        provider = FakeProvider([[StreamEvent(type="token", content="cut")]])

        _, state, frames, _ = await run_controller(provider)

        assert state is SessionState.DONE
        assert frames[-1].payload["finishReason"] == "unknown"

    async def test_progress_order_strictly_increasing(self):
        """Test progress order indexes increase."""
        provider = FakeProvider(
            [text_events("a", finish_reason="length"), text_events("b")]
        )

        _, _, frames, _ = await run_controller(provider)

        orders = [f.payload[0]["order"] for f in of_kind(frames, FrameKind.DATA)]
        assert orders == [1, 2, 3]


@pytest.mark.asyncio
class TestContinuation:
    """Test continuation after length truncation."""

    async def test_length_then_stop_continues_once(self):
        """Test one truncated segment is continued on the same stream."""
        provider = FakeProvider(
            [
                text_events("Part one", finish_reason="length", usage={"prompt_tokens": 10}),
                text_events(" part two", usage={"prompt_tokens": 20, "completion_tokens": 4}),
            ]
        )

        controller, state, frames, stream = await run_controller(provider)

        assert state is SessionState.DONE
        assert stream.switch_count == 1
        assert [f.payload for f in of_kind(frames, FrameKind.TEXT)] == ["Part one", " part two"]
        assert progress_messages(frames) == [
            "Generating Response",
            "Continuing Response",
            "Response Generated",
        ]
        assert controller.usage.totals.prompt_tokens == 30
        assert controller.usage.totals.completion_tokens == 4

    async def test_continuation_extends_conversation(self):
        """Test the partial answer and continue directive are appended."""
        provider = FakeProvider(
            [text_events("Part ", "one", finish_reason="length"), text_events("two")]
        )

        await run_controller(provider)

        second = provider.requests[1]
        assert len(second.messages) == 3
        assert second.messages[1].role == "assistant"
        assert second.messages[1].content == "Part one"
        assert second.messages[2].role == "user"
        assert second.messages[2].content == (
            f"[Model: gemini-2.0-flash]\n\n[Provider: Google]\n\n{CONTINUE_PROMPT}"
        )

    async def test_finish_steps_per_invocation(self):
        """Test each invocation reports its own finish step."""
        provider = FakeProvider([text_events("a", finish_reason="length"), text_events("b")])

        _, _, frames, _ = await run_controller(provider)

        steps = of_kind(frames, FrameKind.FINISH_STEP)
        assert [s.payload["isContinued"] for s in steps] == [True, False]

    async def test_segment_limit(self):
        """Test an always-truncated response stops after MAX switches."""
        provider = FakeProvider([text_events("more", finish_reason="length")])

        controller, state, frames, stream = await run_controller(provider, max_segments=2)

        assert state is SessionState.FAILED
        assert stream.switch_count == 2
        assert len(provider.requests) == 3
        assert frames[-1] == Frame.error(SEGMENT_LIMIT_MESSAGE)
        assert controller.error == SEGMENT_LIMIT_MESSAGE
        assert not of_kind(frames, FrameKind.FINISH_MESSAGE)

    async def test_zero_segments_never_continues(self):
        """Test a limit of 0 fails on the first truncation."""
        provider = FakeProvider([text_events("more", finish_reason="length")])

        _, state, _, stream = await run_controller(provider, max_segments=0)

        assert state is SessionState.FAILED
        assert stream.switch_count == 0
        assert len(provider.requests) == 1


@pytest.mark.asyncio
class TestFailures:
    """Test source failures."""

    async def test_raising_source_fails_without_retry(self):
        """Test a raising source is reported in-band and not retried."""
        provider = FakeProvider(
            [[StreamEvent(type="token", content="half"), RuntimeError("upstream 500")]]
        )

        controller, state, frames, stream = await run_controller(provider)

        assert state is SessionState.FAILED
        assert stream.closed
        assert len(provider.requests) == 1
        assert Frame.text("half") in frames
        assert frames[-1] == Frame.error("upstream 500")
        assert controller.error == "upstream 500"

    async def test_error_event_fails(self):
        """Test an error event from the source fails the session."""
        provider = FakeProvider([[StreamEvent(type="error", error="Invalid API key")]])

        _, state, frames, _ = await run_controller(provider)

        assert state is SessionState.FAILED
        assert Frame.error("Invalid API key") in frames
        assert not of_kind(frames, FrameKind.FINISH_MESSAGE)


@pytest.mark.asyncio
class TestCancellation:
    """Test client disconnect handling."""

    async def test_cancel_closes_stream_and_source(self):
        """Test cancelling the session closes the stream and the bound source."""
        provider = BlockingProvider()
        stream = SwitchableStream()
        controller = ContinuationController(stream, provider, make_request(), max_segments=2)

        task = asyncio.create_task(controller.run())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.state is SessionState.CANCELLED
        assert stream.closed
        assert provider.finalized is True
