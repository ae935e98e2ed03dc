"""Tests for access gating.

Tests cover:
- check_access decision order
- Provider pattern matching
- verify_access without a wallet
- Fail-open on lookup errors and timeouts
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from chat_gateway.access import StaticBalanceLookup, Tier, TierPolicy, check_access, verify_access
from chat_gateway.access.balance import BalanceLookup
from chat_gateway.exceptions import BalanceServiceError
from tests.conftest import FREE_WALLET, TIER1_WALLET, WHALE_WALLET


class SlowBalanceLookup(BalanceLookup):
    """Lookup that never answers in time."""

    async def get_balance(self, wallet_address: str) -> float:
        await asyncio.sleep(10)
        return 0.0


class TestCheckAccess:
    """Test the pure access decision."""

    def test_free_tier_denied_openai(self, tier_policy: TierPolicy):
        """Test FREE may not use OpenAI."""
        decision = check_access(Tier.FREE, "gpt-4o", "OpenAI", tier_policy)

        assert decision.allowed is False
        assert "gpt-4o" in decision.reason
        assert "upgrade" in decision.reason

    def test_free_tier_allowed_google(self, tier_policy: TierPolicy):
        """Test FREE may use Google."""
        decision = check_access(Tier.FREE, "gemini-2.0-flash", "Google", tier_policy)

        assert decision.allowed is True
        assert decision.reason is None

    def test_match_is_case_insensitive(self, tier_policy: TierPolicy):
        """Test provider names are case-folded."""
        assert check_access(Tier.FREE, "gemini", "GOOGLE", tier_policy).allowed is True

    def test_provider_containing_pattern_allowed(self, tier_policy: TierPolicy):
        """Test a provider name containing an allowed pattern matches."""
        assert check_access(Tier.TIER1, "deepseek-r1", "OpenRouterDeepseek", tier_policy).allowed

    def test_provider_contained_in_pattern_allowed(self, tier_policy: TierPolicy):
        """Test a provider name contained in an allowed pattern matches."""
        assert check_access(Tier.TIER2, "claude", "Anthrop", tier_policy).allowed

    def test_empty_provider_denied(self, tier_policy: TierPolicy):
        """Test an empty provider name never matches."""
        assert check_access(Tier.FREE, "x", "", tier_policy).allowed is False

    def test_tier2_denied_openai(self, tier_policy: TierPolicy):
        """Test TIER2 may not use OpenAI."""
        assert check_access(Tier.TIER2, "gpt-4o", "OpenAI", tier_policy).allowed is False

    @pytest.mark.parametrize("tier", [Tier.TIER3, Tier.WHALE])
    def test_top_tiers_always_allowed(self, tier_policy: TierPolicy, tier: Tier):
        """Test the two highest tiers may use anything."""
        assert check_access(tier, "gpt-4o", "OpenAI", tier_policy).allowed is True

    def test_empty_pattern_set_allows_everything(self):
        """Test an empty set for a lower tier means all allowed, not none."""
        raw = (
            '[{"tier": "free", "threshold": 0, "allowedProviders": []},'
            ' {"tier": "tier1", "threshold": 1}, {"tier": "tier2", "threshold": 2},'
            ' {"tier": "tier3", "threshold": 3}, {"tier": "whale", "threshold": 4}]'
        )
        policy = TierPolicy.from_json(raw)

        assert check_access(Tier.FREE, "gpt-4o", "OpenAI", policy).allowed is True


@pytest.mark.asyncio
class TestVerifyAccess:
    """Test wallet-based verification."""

    async def test_no_wallet_google_allowed(self, tier_policy: TierPolicy):
        """Test requests without a wallet may use Google."""
        decision = await verify_access(
            None, "gemini", "Google", StaticBalanceLookup(), 1.0, tier_policy
        )

        assert decision.allowed is True
        assert decision.tier is Tier.FREE

    async def test_no_wallet_other_provider_denied(self, tier_policy: TierPolicy):
        """Test requests without a wallet may not use other providers."""
        decision = await verify_access(
            None, "claude-3-7", "Anthropic", StaticBalanceLookup(), 1.0, tier_policy
        )

        assert decision.allowed is False
        assert "claude-3-7" in decision.reason

    async def test_no_wallet_requires_exact_google(self, tier_policy: TierPolicy):
        """Test the no-wallet rule is an exact match, not a substring match."""
        decision = await verify_access(
            None, "gemini", "GoogleVertex", StaticBalanceLookup(), 1.0, tier_policy
        )

        assert decision.allowed is False

    async def test_tier_resolved_from_balance(
        self, tier_policy: TierPolicy, balance_lookup: StaticBalanceLookup
    ):
        """Test the wallet's balance decides the tier."""
        decision = await verify_access(
            TIER1_WALLET, "deepseek-chat", "Deepseek", balance_lookup, 1.0, tier_policy
        )

        assert decision.allowed is True
        assert decision.tier is Tier.TIER1
        assert decision.balance == 100_000.0
        assert decision.verified is True

    async def test_low_balance_denied(
        self, tier_policy: TierPolicy, balance_lookup: StaticBalanceLookup
    ):
        """Test a FREE wallet is denied a premium provider."""
        decision = await verify_access(
            FREE_WALLET, "gpt-4o", "OpenAI", balance_lookup, 1.0, tier_policy
        )

        assert decision.allowed is False
        assert decision.tier is Tier.FREE

    async def test_whale_allowed_anything(
        self, tier_policy: TierPolicy, balance_lookup: StaticBalanceLookup
    ):
        """Test a WHALE wallet may use any provider."""
        decision = await verify_access(
            WHALE_WALLET, "gpt-4o", "OpenAI", balance_lookup, 1.0, tier_policy
        )

        assert decision.allowed is True
        assert decision.tier is Tier.WHALE

    async def test_lookup_error_fails_open(self, tier_policy: TierPolicy):
        """Test a failed balance lookup lets the request through."""
        lookup = AsyncMock(spec=BalanceLookup)
        lookup.get_balance.side_effect = BalanceServiceError("rpc down", status_code=503)

        decision = await verify_access(FREE_WALLET, "gpt-4o", "OpenAI", lookup, 1.0, tier_policy)

        assert decision.allowed is True
        assert decision.verified is False
        assert decision.tier is Tier.FREE

    async def test_lookup_timeout_fails_open(self, tier_policy: TierPolicy):
        """Test a slow balance lookup is abandoned and the request allowed."""
        decision = await verify_access(
            FREE_WALLET, "gpt-4o", "OpenAI", SlowBalanceLookup(), 0.01, tier_policy
        )

        assert decision.allowed is True
        assert decision.verified is False

    async def test_invalid_wallet_fails_open(self, tier_policy: TierPolicy):
        """Test a malformed address is treated like a lookup failure."""
        decision = await verify_access(
            "not-a-wallet", "gpt-4o", "OpenAI", StaticBalanceLookup(), 1.0, tier_policy
        )

        assert decision.allowed is True
        assert decision.verified is False
