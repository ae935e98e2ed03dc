"""Continuation of token-limited responses.

A provider that stops with finish reason ``length`` has been cut off by its
output limit. The controller extends the conversation with the partial answer
and a continue directive, starts a new invocation and binds it to the same
outbound stream, so the client receives one uninterrupted response. The number
of switches per session is capped.
"""

import asyncio
import dataclasses
from enum import Enum

import structlog

from chat_gateway.continuation.usage import TokenUsage, UsageAccumulator
from chat_gateway.exceptions import SegmentLimitExceededError, StreamClosedError
from chat_gateway.progress import ProgressLabel, ProgressReporter
from chat_gateway.prompts import continuation_directive
from chat_gateway.providers.base import (
    FINISH_REASON_LENGTH,
    ChatMessage,
    CompletionProvider,
    CompletionRequest,
    StreamEvent,
)
from chat_gateway.streaming.protocol import Frame
from chat_gateway.streaming.switchable import SwitchableStream

logger = structlog.get_logger()

FINISH_REASON_UNKNOWN = "unknown"


class SessionState(str, Enum):
    """Lifecycle of one chat session."""

    GENERATING = "generating"
    CONTINUING = "continuing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SegmentRecorder:
    """Stream observer collecting what one invocation produced."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self.usage: TokenUsage | None = None
        self.finish_reason: str | None = None
        self.error: str | None = None

    def __call__(self, event: StreamEvent) -> None:
        if event.type == "token" and event.content:
            self._parts.append(event.content)
        elif event.type == "done":
            self.usage = TokenUsage.from_mapping(event.usage)
            self.finish_reason = event.finish_reason
        elif event.type == "error":
            self.error = event.error or "An error occurred."

    @property
    def text(self) -> str:
        return "".join(self._parts)


class ContinuationController:
    """Drives the invocations of one session over a SwitchableStream.

    ``run()`` returns the terminal state. Whatever happens, the stream is closed
    when ``run()`` returns or raises.
    """

    def __init__(
        self,
        stream: SwitchableStream,
        provider: CompletionProvider,
        request: CompletionRequest,
        max_segments: int,
        usage: UsageAccumulator | None = None,
        progress: ProgressReporter | None = None,
    ) -> None:
        self._stream = stream
        self._provider = provider
        self._request = request
        self._max_segments = max_segments
        self._usage = usage or UsageAccumulator()
        self._progress = progress or ProgressReporter(stream.write)
        self._state = SessionState.GENERATING
        self._error: str | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def request(self) -> CompletionRequest:
        """The request of the latest invocation, including continuation messages."""
        return self._request

    @property
    def usage(self) -> UsageAccumulator:
        return self._usage

    async def run(self) -> SessionState:
        try:
            await self._progress.started(ProgressLabel.RESPONSE, "Generating Response")
            while True:
                self._state = SessionState.GENERATING
                recorder = await self._invoke()

                if recorder.error is not None:
                    # Already forwarded to the client as an error frame
                    self._fail(recorder.error)
                    return self._state

                self._usage.add(recorder.usage)
                finish_reason = recorder.finish_reason or FINISH_REASON_UNKNOWN

                if finish_reason != FINISH_REASON_LENGTH:
                    await self._complete(finish_reason)
                    return self._state

                if self._stream.switch_count >= self._max_segments:
                    error = SegmentLimitExceededError(self._max_segments)
                    await self._stream.write(Frame.error(str(error)))
                    self._fail(str(error))
                    return self._state

                await self._continue(recorder.text)
        except asyncio.CancelledError:
            self._state = SessionState.CANCELLED
            logger.info("Chat session cancelled", switch_count=self._stream.switch_count)
            raise
        except StreamClosedError:
            self._state = SessionState.CANCELLED
            return self._state
        except Exception as e:
            logger.exception("Chat session failed", error=str(e))
            if not self._stream.closed:
                await self._stream.write(Frame.error(str(e) or "An error occurred."))
            self._fail(str(e))
            return self._state
        finally:
            await self._stream.aclose()

    async def _invoke(self) -> SegmentRecorder:
        recorder = SegmentRecorder()
        source = self._provider.stream(self._request)
        await self._stream.bind(source, recorder)
        await self._stream.drain()
        return recorder

    async def _continue(self, partial_text: str) -> None:
        self._state = SessionState.CONTINUING
        switches_left = self._max_segments - self._stream.switch_count
        logger.info(
            "Reached max token limit, continuing message",
            switches_left=switches_left,
            model=self._request.model,
            provider=self._request.provider,
        )
        messages = [
            *self._request.messages,
            ChatMessage(role="assistant", content=partial_text),
            ChatMessage(
                role="user",
                content=continuation_directive(self._request.model, self._request.provider),
            ),
        ]
        self._request = dataclasses.replace(self._request, messages=messages)
        await self._progress.started(ProgressLabel.RESPONSE, "Continuing Response")

    async def _complete(self, finish_reason: str) -> None:
        totals = self._usage.totals
        logger.debug("Usage", **totals.to_dict())
        await self._stream.write(Frame.annotation(self._usage.to_annotation()))
        await self._progress.completed(ProgressLabel.RESPONSE, "Response Generated")
        await self._stream.write(
            Frame.finish_message(
                finish_reason,
                {
                    "promptTokens": totals.prompt_tokens,
                    "completionTokens": totals.completion_tokens,
                },
            )
        )
        self._state = SessionState.DONE

    def _fail(self, error: str) -> None:
        logger.error("Chat session ended with error", error=error)
        self._error = error
        self._state = SessionState.FAILED
