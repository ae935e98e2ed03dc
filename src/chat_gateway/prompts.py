"""Prompt text and model/provider markers embedded in user messages."""

import re

from chat_gateway.providers.base import ChatMessage

CONTINUE_PROMPT = (
    "Continue your prior response. IMPORTANT: Immediately begin from where you left off "
    "without any interruptions.\n"
    "Do not repeat any content, including artifact and action tags."
)

MODEL_MARKER = re.compile(r"\[Model: (.*?)\]\n\n")
PROVIDER_MARKER = re.compile(r"\[Provider: (.*?)\]\n\n")

SUMMARIZATION_PROMPT = """Summarize the following conversation between a user and an AI assistant.
Focus on:
1. The user's goal and the current state of the work
2. Key decisions made and requirements discovered
3. Files and components that were discussed or changed
4. Any pending tasks or unresolved issues

Be concise but preserve all critical information that would be needed to continue the conversation.

Conversation:
{conversation}

Summary:"""

FILE_SELECTION_PROMPT = """You are selecting which project files are needed to answer the user's latest request.

Conversation summary:
{summary}

Latest request:
{request}

Available files:
{files}

Reply with one tag per needed file, using only paths from the list above:
<includeFile path="/full/path/to/file"/>
Select at most {max_files} files. Reply with no tags if no file is needed."""

INCLUDE_FILE_TAG = re.compile(r'<includeFile\s+path="([^"]+)"\s*/>')


def extract_model_and_provider(message: ChatMessage | None) -> tuple[str | None, str | None]:
    """Read ``[Model: X]`` and ``[Provider: Y]`` markers from a message."""
    if message is None:
        return None, None
    model = MODEL_MARKER.search(message.content)
    provider = PROVIDER_MARKER.search(message.content)
    return (
        model.group(1) if model else None,
        provider.group(1) if provider else None,
    )


def strip_markers(content: str) -> str:
    """Remove model/provider markers from message content."""
    return PROVIDER_MARKER.sub("", MODEL_MARKER.sub("", content))


def continuation_directive(model: str, provider: str) -> str:
    """User message asking the model to keep generating where it stopped."""
    return f"[Model: {model}]\n\n[Provider: {provider}]\n\n{CONTINUE_PROMPT}"


def last_user_message(messages: list[ChatMessage]) -> ChatMessage | None:
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None
