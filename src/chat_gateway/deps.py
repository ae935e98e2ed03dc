"""Shared dependencies for gateway routes."""

from dataclasses import dataclass, field

import structlog
from fastapi import Request

from chat_gateway.access import BalanceLookup, HttpBalanceLookup, TierPolicy, get_tier_policy
from chat_gateway.config import Settings, get_settings
from chat_gateway.context import LLMContextReducer, ReducerFactory
from chat_gateway.providers import ProviderRegistry

logger = structlog.get_logger()


@dataclass
class GatewayServices:
    """Collaborators shared by every request, held on ``app.state.services``."""

    settings: Settings
    registry: ProviderRegistry
    balance_lookup: BalanceLookup
    tier_policy: TierPolicy
    reducer_factory: ReducerFactory = field(default=LLMContextReducer.for_request)

    async def close(self) -> None:
        await self.balance_lookup.close()
        await self.registry.close_all()


def build_services(settings: Settings | None = None) -> GatewayServices:
    """Build the default services from settings."""
    settings = settings or get_settings()
    return GatewayServices(
        settings=settings,
        registry=ProviderRegistry(api_keys=settings.PROVIDER_API_KEYS),
        balance_lookup=HttpBalanceLookup(
            base_url=settings.BALANCE_SERVICE_URL,
            mint_address=settings.TOKEN_MINT_ADDRESS,
            decimals=settings.TOKEN_DECIMALS,
            timeout=settings.BALANCE_LOOKUP_TIMEOUT,
        ),
        tier_policy=get_tier_policy(),
    )


def get_services(request: Request) -> GatewayServices:
    """FastAPI dependency returning the app's services."""
    services: GatewayServices = request.app.state.services
    return services
