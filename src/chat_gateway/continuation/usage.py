"""Token usage accounting across the invocations of one chat session."""

from collections.abc import Mapping
from typing import Any

from chat_gateway.providers.base import TokenUsage

__all__ = ["TokenUsage", "UsageAccumulator"]


class UsageAccumulator:
    """Running totals summed over every invocation in a session. Never reset."""

    def __init__(self) -> None:
        self._totals = TokenUsage()
        self._invocations = 0

    @property
    def totals(self) -> TokenUsage:
        return self._totals

    @property
    def invocations(self) -> int:
        return self._invocations

    def add(self, usage: TokenUsage | Mapping[str, Any] | None) -> TokenUsage:
        """Add one invocation's usage and return the new totals."""
        if not isinstance(usage, TokenUsage):
            usage = TokenUsage.from_mapping(usage)
        self._totals = self._totals + usage
        self._invocations += 1
        return self._totals

    def to_annotation(self) -> dict[str, Any]:
        """The ``usage`` message annotation."""
        return {"type": "usage", "value": self._totals.to_dict()}
