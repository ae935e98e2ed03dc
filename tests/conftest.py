"""Shared test fixtures for chat gateway tests."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chat_gateway.access import StaticBalanceLookup, TierPolicy
from chat_gateway.access.tiers import DEFAULT_TIER_ENTRIES
from chat_gateway.config import Settings
from chat_gateway.deps import GatewayServices
from chat_gateway.providers import ProviderRegistry
from chat_gateway.providers.base import CompletionProvider, CompletionRequest, StreamEvent
from chat_gateway.streaming import Frame

# Valid base58 addresses with fixed balances
FREE_WALLET = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
TIER1_WALLET = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"
WHALE_WALLET = "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs"

WALLET_BALANCES = {
    FREE_WALLET: 50.0,
    TIER1_WALLET: 100_000.0,
    WHALE_WALLET: 25_000_000.0,
}


# ============================================
# Completion source helpers
# ============================================


def text_events(
    *chunks: str,
    finish_reason: str = "stop",
    usage: dict[str, int] | None = None,
) -> list[StreamEvent]:
    """Token events for each chunk followed by a done event."""
    events = [StreamEvent(type="token", content=chunk) for chunk in chunks]
    events.append(StreamEvent(type="done", finish_reason=finish_reason, usage=usage))
    return events


class FakeProvider(CompletionProvider):
    """Completion provider replaying scripted events.

    Invocation ``n`` replays ``scripts[n]``; once the scripts run out the last
    one is repeated. A script item that is an exception is raised in place.
    """

    def __init__(
        self,
        scripts: list[list[StreamEvent | Exception]],
        name: str = "Google",
        requires_api_key: bool = False,
    ) -> None:
        self.name = name
        self.requires_api_key = requires_api_key
        self.scripts = scripts
        self.requests: list[CompletionRequest] = []
        self.closed = False

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        self.requests.append(copy.deepcopy(request))
        script = self.scripts[min(len(self.requests), len(self.scripts)) - 1]
        return self._replay(script)

    async def _replay(self, script: list[StreamEvent | Exception]) -> AsyncIterator[StreamEvent]:
        for item in script:
            await asyncio.sleep(0)
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True


async def collect(frames: AsyncIterator[Frame]) -> list[Frame]:
    return [frame async for frame in frames]


# ============================================
# Settings and services
# ============================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        MAX_RESPONSE_SEGMENTS=2,
        PROVIDER_API_KEYS={},
        BALANCE_LOOKUP_TIMEOUT=1.0,
        WORK_DIR="/home/project",
    )


@pytest.fixture
def tier_policy() -> TierPolicy:
    return TierPolicy(DEFAULT_TIER_ENTRIES)


@pytest.fixture
def balance_lookup() -> StaticBalanceLookup:
    return StaticBalanceLookup(WALLET_BALANCES)


@pytest.fixture
def make_services(
    test_settings: Settings,
    tier_policy: TierPolicy,
    balance_lookup: StaticBalanceLookup,
) -> Callable[..., GatewayServices]:
    """Factory building GatewayServices around the given providers."""

    def _make(
        providers: dict[str, CompletionProvider] | None = None,
        api_keys: dict[str, str] | None = None,
        **overrides: Any,
    ) -> GatewayServices:
        registry = ProviderRegistry(api_keys=api_keys)
        for name, provider in (providers or {}).items():
            registry.register_provider(name, provider)
        fields: dict[str, Any] = {
            "settings": test_settings,
            "registry": registry,
            "balance_lookup": balance_lookup,
            "tier_policy": tier_policy,
        }
        fields.update(overrides)
        return GatewayServices(**fields)

    return _make


@pytest.fixture
def make_client(make_services: Callable[..., GatewayServices]) -> Callable[..., TestClient]:
    """Factory building a TestClient for an app wired to fake services."""
    from chat_gateway.main import create_app

    def _make(services: GatewayServices | None = None, **kwargs: Any) -> TestClient:
        app: FastAPI = create_app(services or make_services(**kwargs), enable_metrics=False)
        return TestClient(app, raise_server_exceptions=False)

    return _make
