"""Context reduction for chats with attached project files.

Before the main invocation, the conversation is summarized and the attached
file map is cut down to the files the latest request needs. Both steps are
answered by the session's own completion provider and their token usage counts
towards the session totals. A failed reduction never aborts the chat; the
session continues with the full conversation and no file context.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from chat_gateway.continuation.usage import UsageAccumulator
from chat_gateway.exceptions import GenerationError, StreamClosedError
from chat_gateway.progress import ProgressLabel, ProgressReporter
from chat_gateway.prompts import (
    FILE_SELECTION_PROMPT,
    INCLUDE_FILE_TAG,
    SUMMARIZATION_PROMPT,
    last_user_message,
    strip_markers,
)
from chat_gateway.providers.base import ChatMessage, CompletionProvider, CompletionRequest
from chat_gateway.streaming.protocol import Frame

logger = structlog.get_logger()

FileMap = Mapping[str, Any]


def get_file_paths(files: FileMap | None) -> list[str]:
    """Paths of the file entries in a file map, skipping folders."""
    paths = []
    for path, entry in (files or {}).items():
        if isinstance(entry, str) or (isinstance(entry, Mapping) and entry.get("type") == "file"):
            paths.append(path)
    return paths


def relative_to_work_dir(path: str, work_dir: str) -> str:
    if work_dir and path.startswith(work_dir):
        return path[len(work_dir) :]
    return path


@dataclass
class ContextReduction:
    """Outcome of context reduction. Empty when reduction was skipped or failed."""

    summary: str | None = None
    files: dict[str, Any] | None = None

    @property
    def applied(self) -> bool:
        return self.summary is not None


class ContextReducer(ABC):
    """Summarizes a conversation and selects the files relevant to it."""

    @abstractmethod
    async def summarize(self, messages: list[ChatMessage], usage: UsageAccumulator) -> str:
        """Summarize the conversation."""

    @abstractmethod
    async def select_files(
        self,
        messages: list[ChatMessage],
        files: FileMap,
        summary: str,
        usage: UsageAccumulator,
    ) -> dict[str, Any]:
        """Return the subset of ``files`` the latest request needs, values unchanged."""


class LLMContextReducer(ContextReducer):
    """Context reducer backed by a completion provider."""

    DEFAULT_MAX_FILES = 10
    DEFAULT_MAX_TOKENS = 2000

    def __init__(
        self,
        provider: CompletionProvider,
        model: str,
        provider_name: str,
        api_key: str | None = None,
        max_files: int | None = None,
        max_tokens: int | None = None,
    ) -> None:
        """Initialize reducer.

        Args:
            provider: Provider answering the summary and selection prompts
            model: Model to use for both prompts
            provider_name: Provider name recorded on the requests
            api_key: Credential resolved for the session
            max_files: Upper bound on selected files
            max_tokens: Output limit for each prompt
        """
        self._provider = provider
        self._model = model
        self._provider_name = provider_name
        self._api_key = api_key
        self._max_files = max_files or self.DEFAULT_MAX_FILES
        self._max_tokens = max_tokens or self.DEFAULT_MAX_TOKENS

    @classmethod
    def for_request(
        cls, provider: CompletionProvider, request: CompletionRequest
    ) -> "LLMContextReducer":
        """Build a reducer using the same model and credential as the chat request."""
        return cls(
            provider=provider,
            model=request.model,
            provider_name=request.provider,
            api_key=request.api_key,
        )

    async def summarize(self, messages: list[ChatMessage], usage: UsageAccumulator) -> str:
        prompt = SUMMARIZATION_PROMPT.format(conversation=self._format_conversation(messages))
        summary = (await self._complete(prompt, usage, purpose="summary")).strip()
        logger.info(
            "Created conversation summary",
            messages_summarized=len(messages),
            summary_chars=len(summary),
        )
        return summary

    async def select_files(
        self,
        messages: list[ChatMessage],
        files: FileMap,
        summary: str,
        usage: UsageAccumulator,
    ) -> dict[str, Any]:
        paths = get_file_paths(files)
        if not paths:
            return {}

        last = last_user_message(messages)
        prompt = FILE_SELECTION_PROMPT.format(
            summary=summary,
            request=strip_markers(last.content) if last else "",
            files="\n".join(paths),
            max_files=self._max_files,
        )
        response = await self._complete(prompt, usage, purpose="file selection")

        selected: dict[str, Any] = {}
        for path in INCLUDE_FILE_TAG.findall(response):
            if path in files and path not in selected:
                selected[path] = files[path]
            if len(selected) >= self._max_files:
                break

        logger.info("Selected context files", available=len(paths), selected=len(selected))
        return selected

    async def _complete(self, prompt: str, usage: UsageAccumulator, purpose: str) -> str:
        request = CompletionRequest(
            model=self._model,
            provider=self._provider_name,
            messages=[ChatMessage(role="user", content=prompt)],
            max_tokens=self._max_tokens,
            api_key=self._api_key,
        )
        parts: list[str] = []
        async for event in self._provider.stream(request):
            if event.type == "token" and event.content:
                parts.append(event.content)
            elif event.type == "done":
                totals = usage.add(event.usage)
                logger.debug("Context reduction token usage", purpose=purpose, **totals.to_dict())
            elif event.type == "error":
                raise GenerationError(f"{purpose} failed: {event.error}")
        return "".join(parts)

    def _format_conversation(self, messages: list[ChatMessage]) -> str:
        lines = []
        for msg in messages:
            lines.append(f"{msg.role.capitalize()}: {strip_markers(msg.content)}")
        return "\n\n".join(lines)


ReducerFactory = Callable[[CompletionProvider, CompletionRequest], ContextReducer]


async def reduce_context(
    reducer: ContextReducer,
    messages: list[ChatMessage],
    files: FileMap,
    progress: ProgressReporter,
    write: Callable[[Frame], Awaitable[None]],
    usage: UsageAccumulator,
    work_dir: str = "",
) -> ContextReduction:
    """Run both reduction phases, reporting progress and annotations.

    Emits the ``summary`` and ``context`` progress pairs, then a ``chatSummary``
    annotation and a ``codeContext`` annotation listing the selected files
    relative to ``work_dir``. Annotations are only written once both phases
    succeed; on failure the open progress label is completed and an empty
    reduction is returned.
    """
    open_label: ProgressLabel | None = None
    try:
        open_label = ProgressLabel.SUMMARY
        await progress.started(open_label, "Analysing Request")
        summary = await reducer.summarize(list(messages), usage)
        await progress.completed(open_label, "Analysis Complete")

        open_label = ProgressLabel.CONTEXT
        await progress.started(open_label, "Determining Files to Read")
        selected = await reducer.select_files(list(messages), files, summary, usage)
    except StreamClosedError:
        raise
    except Exception as e:
        logger.warning("Context reduction failed, continuing without it", error=str(e))
        if open_label is not None:
            await progress.completed(open_label, "Context Reduction Skipped")
        return ContextReduction()

    await write(
        Frame.annotation(
            {
                "type": "chatSummary",
                "summary": summary,
                "chatId": messages[-1].id if messages else None,
            }
        )
    )
    await write(
        Frame.annotation(
            {
                "type": "codeContext",
                "files": [relative_to_work_dir(path, work_dir) for path in selected],
            }
        )
    )
    await progress.completed(ProgressLabel.CONTEXT, "Code Files Selected")
    return ContextReduction(summary=summary, files=selected)
