"""Outbound stream whose producer can be swapped without the client noticing.

A SwitchableStream owns one outbound frame queue for the life of a chat
session. Completion sources are bound to it one at a time; each bind starts a
forwarding task that copies the source's events into the queue. Rebinding never
ends the outbound sequence; only ``close()`` does, exactly once.

Each forwarded event is also handed to an optional observer before it is
queued. The observer is how the caller sees text, usage and the finish reason
without consuming the source a second time.
"""

import asyncio
import contextlib
from collections.abc import AsyncGenerator, AsyncIterator, Callable

import structlog

from chat_gateway.exceptions import StreamClosedError
from chat_gateway.providers.base import StreamEvent
from chat_gateway.streaming.protocol import Frame, frame_from_event

logger = structlog.get_logger()

Observer = Callable[[StreamEvent], None]

_END_OF_STREAM = object()


class SwitchableStream:
    """Single outbound frame sequence fed by a series of completion sources."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._forwarder: asyncio.Task[None] | None = None
        self._binds = 0
        self._closed = False

    @property
    def switch_count(self) -> int:
        """Number of binds after the first."""
        return max(self._binds - 1, 0)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_forwarding(self) -> bool:
        return self._forwarder is not None and not self._forwarder.done()

    async def bind(
        self,
        source: AsyncIterator[StreamEvent],
        observer: Observer | None = None,
    ) -> None:
        """Start forwarding ``source`` into the outbound sequence.

        If a previous source is still forwarding it is superseded: its task is
        cancelled and awaited before the new source starts, so the two never
        interleave.

        Raises:
            StreamClosedError: If the stream was already closed
        """
        if self._closed:
            raise StreamClosedError("Cannot bind a source to a closed stream")

        if self.is_forwarding:
            logger.warning("Superseding active completion source", switch_count=self.switch_count)
            await self._cancel_forwarder()

        self._binds += 1
        self._forwarder = asyncio.create_task(self._forward(source, observer))

    async def drain(self) -> None:
        """Wait until the bound source has been forwarded through its last event."""
        if self._forwarder is not None:
            await self._forwarder

    async def write(self, frame: Frame) -> None:
        """Queue a frame produced outside any source (progress, annotations, errors).

        Raises:
            StreamClosedError: If the stream was already closed
        """
        if self._closed:
            raise StreamClosedError("Cannot write to a closed stream")
        await self._queue.put(frame)

    def close(self) -> None:
        """Signal end-of-stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self.is_forwarding and self._forwarder is not None:
            self._forwarder.cancel()
        self._queue.put_nowait(_END_OF_STREAM)

    async def aclose(self) -> None:
        """Close and wait for any cancelled forwarder to finish unwinding."""
        self.close()
        if self._forwarder is not None:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._forwarder

    async def frames(self) -> AsyncGenerator[Frame, None]:
        """Outbound frames in order, ending after ``close()``. Single consumer."""
        while True:
            item = await self._queue.get()
            if item is _END_OF_STREAM:
                return
            if isinstance(item, Frame):
                yield item

    async def _cancel_forwarder(self) -> None:
        if self._forwarder is None:
            return
        self._forwarder.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await self._forwarder

    def _emit(self, frame: Frame) -> None:
        if not self._closed:
            self._queue.put_nowait(frame)

    async def _forward(
        self,
        source: AsyncIterator[StreamEvent],
        observer: Observer | None,
    ) -> None:
        try:
            async for event in source:
                if self._closed:
                    break
                if observer is not None:
                    observer(event)
                frame = frame_from_event(event)
                if frame is not None:
                    self._emit(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Reported in-band; whatever was already forwarded stays forwarded
            message = str(e) or type(e).__name__
            logger.debug("Completion source raised", error=message)
            if observer is not None:
                observer(StreamEvent(type="error", error=message))
            self._emit(Frame.error(message))
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(Exception):
                    await aclose()
