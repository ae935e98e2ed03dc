"""Tier-based access decisions for chat requests.

Decision order:
1. The two highest tiers may use any provider
2. A tier with an empty pattern set may use any provider
3. Otherwise the provider name must contain, or be contained by, an allowed pattern

Balance verification is fail-open: if a wallet was supplied but its balance
cannot be read (error or timeout), the request is logged and allowed. A request
without a wallet is treated as FREE and limited to Google.
"""

import asyncio
from dataclasses import dataclass

import structlog

from chat_gateway.access.balance import BalanceLookup
from chat_gateway.access.tiers import Tier, TierPolicy, get_tier_policy

logger = structlog.get_logger()

NO_WALLET_PROVIDER = "google"


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of an access check."""

    allowed: bool
    tier: Tier
    reason: str | None = None
    balance: float | None = None
    # False when the balance could not be read and the request was let through
    verified: bool = True


def denial_reason(model: str) -> str:
    """Human-readable denial naming the model and the need to upgrade."""
    return f"Your wallet does not have access to the {model} model. Please upgrade to a higher tier."


def _provider_matches(provider: str, pattern: str) -> bool:
    name = provider.casefold()
    allowed = pattern.casefold()
    return allowed in name or (bool(name) and name in allowed)


def check_access(
    tier: Tier,
    requested_model: str,
    requested_provider: str,
    policy: TierPolicy | None = None,
) -> AccessDecision:
    """Decide whether a tier may use the requested provider. Pure."""
    policy = policy or get_tier_policy()

    if tier in policy.unrestricted_tiers:
        return AccessDecision(allowed=True, tier=tier)

    patterns = policy.allowed_providers(tier)
    if not patterns:
        return AccessDecision(allowed=True, tier=tier)

    if any(_provider_matches(requested_provider, p) for p in patterns):
        return AccessDecision(allowed=True, tier=tier)

    return AccessDecision(allowed=False, tier=tier, reason=denial_reason(requested_model))


async def lookup_tier(
    wallet_address: str,
    lookup: BalanceLookup,
    timeout: float,
    policy: TierPolicy | None = None,
) -> tuple[float, Tier]:
    """Read a wallet's balance within ``timeout`` seconds and resolve its tier.

    Raises:
        VerificationError: If the lookup fails
        TimeoutError: If the lookup does not finish in time
    """
    policy = policy or get_tier_policy()
    balance = await asyncio.wait_for(lookup.get_balance(wallet_address), timeout=timeout)
    return balance, policy.resolve_tier(balance)


async def verify_access(
    wallet_address: str | None,
    model: str,
    provider: str,
    lookup: BalanceLookup,
    timeout: float,
    policy: TierPolicy | None = None,
) -> AccessDecision:
    """Gate a chat request on the wallet's tier.

    Args:
        wallet_address: Connected wallet, if any
        model: Requested model identifier
        provider: Requested provider name
        lookup: Balance collaborator
        timeout: Upper bound in seconds for the balance lookup
        policy: Tier table (process-wide policy by default)

    Returns:
        AccessDecision; ``verified`` is False when fail-open was applied
    """
    policy = policy or get_tier_policy()

    if not wallet_address:
        if provider.casefold() == NO_WALLET_PROVIDER:
            return AccessDecision(allowed=True, tier=Tier.FREE, balance=0.0)
        return AccessDecision(
            allowed=False, tier=Tier.FREE, reason=denial_reason(model), balance=0.0
        )

    try:
        balance, tier = await lookup_tier(wallet_address, lookup, timeout, policy)
    except Exception as e:
        # Availability over strictness: an unreadable balance never blocks the request
        logger.error(
            "Error verifying wallet tier access, allowing request",
            wallet=wallet_address,
            model=model,
            provider=provider,
            error=str(e) or type(e).__name__,
        )
        return AccessDecision(allowed=True, tier=Tier.FREE, verified=False)

    decision = check_access(tier, model, provider, policy)
    logger.debug(
        "Wallet tier resolved",
        wallet=wallet_address,
        tier=tier.value,
        model=model,
        provider=provider,
        allowed=decision.allowed,
    )
    return AccessDecision(
        allowed=decision.allowed,
        tier=tier,
        reason=decision.reason,
        balance=balance,
    )
