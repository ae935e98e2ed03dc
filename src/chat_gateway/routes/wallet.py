"""Wallet balance, tier verification and tier table routes."""

import time
from decimal import Decimal
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from chat_gateway.access import Tier, check_access, lookup_tier
from chat_gateway.access.gate import NO_WALLET_PROVIDER
from chat_gateway.deps import GatewayServices, get_services

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["wallet"])


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def format_balance(balance: float) -> str:
    """Balance as a decimal string; whole amounts carry no trailing ".0"."""
    value = float(balance)
    if value.is_integer():
        return str(int(value))
    return format(Decimal(str(value)), "f")


def _lookup_failed(error: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": f"Failed to verify wallet: {str(error) or type(error).__name__}",
            "hasAccess": False,
        },
    )


@router.get("/verify-wallet", response_model=None)
async def verify_wallet(
    services: Annotated[GatewayServices, Depends(get_services)],
    wallet: Annotated[str | None, Query()] = None,
    model: Annotated[str | None, Query()] = None,
    provider: Annotated[str | None, Query()] = None,
) -> dict[str, Any] | JSONResponse:
    """Report a wallet's tier and whether it may use a model.

    Unlike the chat gate, a failed balance lookup is reported as an error here
    rather than waved through.
    """
    if not wallet:
        return {
            "tier": Tier.FREE.value,
            "hasAccess": (provider or "").casefold() == NO_WALLET_PROVIDER,
            "balance": "0",
            "timestamp": _timestamp_ms(),
        }

    try:
        balance, tier = await lookup_tier(
            wallet,
            services.balance_lookup,
            services.settings.BALANCE_LOOKUP_TIMEOUT,
            services.tier_policy,
        )
    except Exception as e:
        logger.error("Error verifying wallet balance", wallet=wallet, error=str(e))
        return _lookup_failed(e)

    has_access = True
    if model and provider:
        has_access = check_access(tier, model, provider, services.tier_policy).allowed

    return {
        "balance": format_balance(balance),
        "tier": tier.value,
        "hasAccess": has_access,
        "timestamp": _timestamp_ms(),
    }


@router.get("/fetch-balance", response_model=None)
async def fetch_balance(
    services: Annotated[GatewayServices, Depends(get_services)],
    wallet: Annotated[str | None, Query()] = None,
) -> dict[str, Any] | JSONResponse:
    """Token balance of a wallet, 0 when no wallet is given."""
    if not wallet:
        return {"balance": 0}

    try:
        balance = await services.balance_lookup.get_balance(wallet)
    except Exception as e:
        logger.error("Error fetching wallet balance", wallet=wallet, error=str(e))
        return _lookup_failed(e)

    return {"balance": balance}


@router.get("/tiers")
async def list_tiers(
    services: Annotated[GatewayServices, Depends(get_services)],
) -> list[dict[str, Any]]:
    """The tier table, lowest threshold first."""
    return services.tier_policy.to_list()
