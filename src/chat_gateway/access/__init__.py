"""Token-balance tiers and access gating."""

from chat_gateway.access.balance import (
    BalanceLookup,
    HttpBalanceLookup,
    StaticBalanceLookup,
    validate_wallet_address,
)
from chat_gateway.access.gate import AccessDecision, check_access, lookup_tier, verify_access
from chat_gateway.access.tiers import (
    Tier,
    TierEntry,
    TierPolicy,
    allowed_providers,
    get_tier_policy,
    resolve_tier,
)

__all__ = [
    "AccessDecision",
    "BalanceLookup",
    "HttpBalanceLookup",
    "StaticBalanceLookup",
    "Tier",
    "TierEntry",
    "TierPolicy",
    "allowed_providers",
    "check_access",
    "get_tier_policy",
    "lookup_tier",
    "resolve_tier",
    "validate_wallet_address",
    "verify_access",
]
