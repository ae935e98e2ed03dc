"""Progress milestones emitted on the outbound chat stream."""

from chat_gateway.progress.tracker import (
    ProgressEvent,
    ProgressLabel,
    ProgressReporter,
    ProgressStatus,
)

__all__ = [
    "ProgressEvent",
    "ProgressLabel",
    "ProgressReporter",
    "ProgressStatus",
]
