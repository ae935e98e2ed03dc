"""Token-balance access tiers.

The tier table is the single source of truth for:
- balance thresholds per tier
- provider-name patterns each tier may use (an empty set means every provider)
- the feature descriptions shown to clients

It is built once per process (``get_tier_policy``) and never mutated.
"""

import json
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any

import structlog

from chat_gateway.config import get_settings
from chat_gateway.exceptions import TierPolicyError

logger = structlog.get_logger()


class Tier(str, Enum):
    """Access tiers, lowest first."""

    FREE = "free"
    TIER1 = "tier1"
    TIER2 = "tier2"
    TIER3 = "tier3"
    WHALE = "whale"

    @property
    def rank(self) -> int:
        """Position in tier order (FREE is 0)."""
        return list(Tier).index(self)


@dataclass(frozen=True)
class TierEntry:
    """One row of the tier table."""

    tier: Tier
    threshold: float
    allowed_providers: frozenset[str] = frozenset()
    features: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def allows_all_providers(self) -> bool:
        """Empty pattern set is the "everything allowed" sentinel, not "no access"."""
        return not self.allowed_providers

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "tier": self.tier.value,
            "threshold": self.threshold,
            "allowedProviders": sorted(self.allowed_providers),
            "allModels": self.allows_all_providers,
            "features": dict(self.features),
        }


DEFAULT_TIER_ENTRIES: tuple[TierEntry, ...] = (
    TierEntry(
        tier=Tier.FREE,
        threshold=0,
        allowed_providers=frozenset({"Google"}),
        features={
            "models": ["Google Gemini"],
            "responseTime": "Basic",
            "support": "Community",
            "features": "Standard",
        },
    ),
    TierEntry(
        tier=Tier.TIER1,
        threshold=100_000,
        allowed_providers=frozenset({"Google", "Deepseek"}),
        features={
            "models": ["Google Gemini", "OpenRouter DeepSeek"],
            "responseTime": "Faster",
            "support": "Priority",
            "features": "Enhanced",
        },
    ),
    TierEntry(
        tier=Tier.TIER2,
        threshold=350_000,
        allowed_providers=frozenset({"Google", "Deepseek", "Anthropic"}),
        features={
            "models": ["Google Gemini", "OpenRouter DeepSeek", "Claude 3.7"],
            "responseTime": "Fast",
            "support": "Premium",
            "features": "Advanced",
            "wordCount": "Limited monthly",
        },
    ),
    TierEntry(
        tier=Tier.TIER3,
        threshold=1_000_000,
        features={
            "models": "All AI models",
            "responseTime": "Priority",
            "support": "VIP",
            "features": "Advanced",
            "wordCount": "Higher monthly limit",
        },
    ),
    TierEntry(
        tier=Tier.WHALE,
        threshold=10_000_000,
        features={
            "models": "Unlimited access to all models",
            "responseTime": "Fastest priority",
            "support": "Direct developer support",
            "features": "Early access",
            "wordCount": "No limits",
            "extras": ["Exclusive Alpha Whale group access"],
        },
    ),
)


def _parse_allowed_providers(row: Mapping[str, Any]) -> frozenset[str]:
    """Provider patterns of a JSON tier row; a missing value means all providers."""
    value = row.get("allowedProviders")
    if value is None:
        return frozenset()
    if not isinstance(value, list) or not all(isinstance(p, str) and p for p in value):
        raise TierPolicyError(
            f"allowedProviders must be a list of non-empty strings, got {value!r}"
        )
    return frozenset(value)


class TierPolicy:
    """Read-only tier table with balance resolution."""

    def __init__(self, entries: Iterable[TierEntry]) -> None:
        ordered = sorted(entries, key=lambda e: e.tier.rank)
        seen = [e.tier for e in ordered]
        if seen != list(Tier):
            raise TierPolicyError(
                f"Tier table must contain each tier exactly once, got {[t.value for t in seen]}"
            )
        if ordered[0].threshold != 0:
            raise TierPolicyError("The lowest tier must have a threshold of 0")
        for lower, higher in zip(ordered, ordered[1:], strict=False):
            if higher.threshold <= lower.threshold:
                raise TierPolicyError(
                    f"Thresholds must be strictly increasing: {lower.tier.value}="
                    f"{lower.threshold}, {higher.tier.value}={higher.threshold}"
                )
        self._entries: tuple[TierEntry, ...] = tuple(ordered)
        self._by_tier = {e.tier: e for e in ordered}

    @property
    def entries(self) -> tuple[TierEntry, ...]:
        return self._entries

    @property
    def unrestricted_tiers(self) -> frozenset[Tier]:
        """The two highest tiers, which may use any provider."""
        return frozenset(e.tier for e in self._entries[-2:])

    def entry(self, tier: Tier) -> TierEntry:
        return self._by_tier[tier]

    def threshold(self, tier: Tier) -> float:
        return self._by_tier[tier].threshold

    def resolve_tier(self, balance: float) -> Tier:
        """Map a token balance to the highest tier whose threshold it meets.

        Args:
            balance: Non-negative token balance (already scaled by decimals)

        Returns:
            The resolved tier; 0 maps to FREE

        Raises:
            ValueError: If balance is negative or not a number
        """
        value = float(balance)
        if math.isnan(value) or value < 0:
            raise ValueError(f"balance must be a non-negative number, got {balance!r}")
        for entry in reversed(self._entries):
            if value >= entry.threshold:
                return entry.tier
        return self._entries[0].tier

    def allowed_providers(self, tier: Tier) -> frozenset[str]:
        """Provider-name patterns for a tier. Empty means all providers are allowed."""
        return self._by_tier[tier].allowed_providers

    def to_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

    @classmethod
    def from_json(cls, raw: str) -> "TierPolicy":
        """Build a policy from a JSON list of tier rows.

        Each row: ``{"tier": "free", "threshold": 0, "allowedProviders": [...],
        "features": {...}}``.
        """
        try:
            rows = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TierPolicyError(f"Invalid tier policy JSON: {e}") from e
        if not isinstance(rows, list):
            raise TierPolicyError("Tier policy JSON must be a list of tier entries")

        entries = []
        for row in rows:
            if not isinstance(row, dict):
                raise TierPolicyError(f"Tier entry must be an object, got {row!r}")
            try:
                tier = Tier(row["tier"])
                threshold = float(row["threshold"])
            except (KeyError, ValueError, TypeError) as e:
                raise TierPolicyError(f"Invalid tier entry {row!r}: {e}") from e
            entries.append(
                TierEntry(
                    tier=tier,
                    threshold=threshold,
                    allowed_providers=_parse_allowed_providers(row),
                    features=row.get("features") or {},
                )
            )
        return cls(entries)


@lru_cache
def get_tier_policy() -> TierPolicy:
    """Get the process-wide tier policy, loaded once."""
    raw = get_settings().TIER_POLICY_JSON
    if raw:
        policy = TierPolicy.from_json(raw)
        logger.info("Loaded tier policy override", tiers=len(policy.entries))
        return policy
    return TierPolicy(DEFAULT_TIER_ENTRIES)


def resolve_tier(balance: float, policy: TierPolicy | None = None) -> Tier:
    """Resolve a balance to its tier using the process-wide policy by default."""
    return (policy or get_tier_policy()).resolve_tier(balance)


def allowed_providers(tier: Tier, policy: TierPolicy | None = None) -> frozenset[str]:
    """Provider patterns for a tier; callers must treat an empty set as "all allowed"."""
    return (policy or get_tier_policy()).allowed_providers(tier)
