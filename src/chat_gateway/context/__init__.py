"""Conversation summarization and code-file selection."""

from chat_gateway.context.reducer import (
    ContextReducer,
    ContextReduction,
    LLMContextReducer,
    ReducerFactory,
    get_file_paths,
    reduce_context,
    relative_to_work_dir,
)

__all__ = [
    "ContextReducer",
    "ContextReduction",
    "LLMContextReducer",
    "ReducerFactory",
    "get_file_paths",
    "reduce_context",
    "relative_to_work_dir",
]
