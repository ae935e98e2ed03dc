"""One chat request from context reduction to the last outbound frame."""

import asyncio
import contextlib
import dataclasses
from collections.abc import AsyncGenerator, Mapping
from typing import Any

import structlog

from chat_gateway.config import Settings, get_settings
from chat_gateway.context import (
    LLMContextReducer,
    ReducerFactory,
    get_file_paths,
    reduce_context,
)
from chat_gateway.continuation import ContinuationController, SessionState, UsageAccumulator
from chat_gateway.exceptions import StreamClosedError
from chat_gateway.progress import ProgressReporter
from chat_gateway.prompts import extract_model_and_provider, last_user_message
from chat_gateway.providers.base import ChatMessage, CompletionProvider, CompletionRequest
from chat_gateway.streaming import Frame, SwitchableStream, annotate_reasoning, encode_frame

logger = structlog.get_logger()


def resolve_model_and_provider(
    messages: list[ChatMessage],
    model: str | None = None,
    provider: str | None = None,
    settings: Settings | None = None,
) -> tuple[str, str]:
    """Pick the active model and provider.

    Explicit request values win, then the markers in the last user message,
    then the configured defaults.
    """
    settings = settings or get_settings()
    marked_model, marked_provider = extract_model_and_provider(last_user_message(messages))
    return (
        model or marked_model or settings.DEFAULT_MODEL,
        provider or marked_provider or settings.DEFAULT_PROVIDER,
    )


def message_slice_id(message_count: int, window: int) -> int:
    """Index of the first message sent when a summary stands in for the rest."""
    if window > 0 and message_count > window:
        return message_count - window
    return 0


class ChatSession:
    """Owns the outbound stream, usage totals and progress order of one chat."""

    def __init__(
        self,
        request: CompletionRequest,
        provider: CompletionProvider,
        files: Mapping[str, Any] | None = None,
        context_optimization: bool = False,
        reducer_factory: ReducerFactory | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._request = request
        self._provider = provider
        self._files = files or {}
        self._context_optimization = context_optimization
        self._reducer_factory = reducer_factory or LLMContextReducer.for_request
        self._stream = SwitchableStream()
        self._usage = UsageAccumulator()
        self._progress = ProgressReporter(self._stream.write)
        self._controller: ContinuationController | None = None

    @property
    def usage(self) -> UsageAccumulator:
        return self._usage

    @property
    def progress(self) -> ProgressReporter:
        return self._progress

    @property
    def state(self) -> SessionState | None:
        return self._controller.state if self._controller else None

    async def frames(self) -> AsyncGenerator[Frame, None]:
        """Annotated outbound frames. Closing the generator cancels the session."""
        task = asyncio.create_task(self._run())
        try:
            async for frame in annotate_reasoning(self._stream.frames()):
                yield frame
        finally:
            if not task.done():
                logger.info("Client disconnected, cancelling chat session")
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            self._stream.close()

    async def encoded(self) -> AsyncGenerator[bytes, None]:
        """Wire bytes for a streaming HTTP response."""
        async for frame in self.frames():
            yield encode_frame(frame)

    async def _run(self) -> None:
        try:
            request = await self._prepare_request()
            self._controller = ContinuationController(
                stream=self._stream,
                provider=self._provider,
                request=request,
                max_segments=self._settings.MAX_RESPONSE_SEGMENTS,
                usage=self._usage,
                progress=self._progress,
            )
            await self._controller.run()
        except StreamClosedError:
            logger.debug("Outbound stream closed before the session finished")
        except Exception as e:
            logger.exception("Chat session setup failed", error=str(e))
            if not self._stream.closed:
                await self._stream.write(Frame.error(str(e) or "An error occurred."))
        finally:
            await self._stream.aclose()

    async def _prepare_request(self) -> CompletionRequest:
        request = self._request
        slice_id = message_slice_id(len(request.messages), self._settings.CONTEXT_MESSAGE_WINDOW)

        if not (self._context_optimization and get_file_paths(self._files)):
            return request

        reduction = await reduce_context(
            reducer=self._reducer_factory(self._provider, request),
            messages=request.messages,
            files=self._files,
            progress=self._progress,
            write=self._stream.write,
            usage=self._usage,
            work_dir=self._settings.WORK_DIR,
        )
        if not reduction.applied:
            return request

        return dataclasses.replace(
            request,
            summary=reduction.summary,
            context_files=reduction.files,
            message_slice_id=slice_id,
        )
