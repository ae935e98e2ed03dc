"""Progress milestones for a chat session.

Progress records tell the client which phase a request is in: analysing the
conversation, choosing code files and generating the response. They share the
outbound stream with the response text as ``2:`` data records.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from chat_gateway.streaming.protocol import Frame

logger = structlog.get_logger()


class ProgressStatus(str, Enum):
    """Status of a progress milestone."""

    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"


class ProgressLabel(str, Enum):
    """Phase a milestone belongs to."""

    SUMMARY = "summary"
    CONTEXT = "context"
    RESPONSE = "response"


@dataclass(frozen=True)
class ProgressEvent:
    """A single ordered milestone."""

    label: str
    status: ProgressStatus
    order: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to the outbound data record."""
        return {
            "type": "progress",
            "label": self.label,
            "status": self.status.value,
            "order": self.order,
            "message": self.message,
        }


Writer = Callable[[Frame], Awaitable[None]]


class ProgressReporter:
    """Assigns order indexes and writes milestones to the outbound stream.

    The order index starts at 1 and is strictly increasing for the life of the
    reporter, which is one chat session.
    """

    def __init__(self, write: Writer) -> None:
        self._write = write
        self._order = 0
        self._history: list[ProgressEvent] = []

    @property
    def history(self) -> list[ProgressEvent]:
        return list(self._history)

    @property
    def last_order(self) -> int:
        return self._order

    async def report(
        self,
        label: ProgressLabel | str,
        status: ProgressStatus,
        message: str,
    ) -> ProgressEvent:
        self._order += 1
        event = ProgressEvent(
            label=label.value if isinstance(label, ProgressLabel) else label,
            status=status,
            order=self._order,
            message=message,
        )
        self._history.append(event)
        logger.debug(
            "Progress",
            label=event.label,
            status=event.status.value,
            order=event.order,
        )
        await self._write(Frame.data(event.to_dict()))
        return event

    async def started(self, label: ProgressLabel | str, message: str) -> ProgressEvent:
        return await self.report(label, ProgressStatus.IN_PROGRESS, message)

    async def completed(self, label: ProgressLabel | str, message: str) -> ProgressEvent:
        return await self.report(label, ProgressStatus.COMPLETE, message)
