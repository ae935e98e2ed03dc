"""Wallet token-balance lookup.

The on-chain query itself lives behind the balance service; this module only
knows how to ask it for a wallet's token accounts and pick out the configured
mint.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from chat_gateway.exceptions import BalanceServiceError, InvalidWalletAddressError

logger = structlog.get_logger()

# Base58 alphabet (no 0, O, I, l); Solana public keys encode to 32-44 chars
WALLET_ADDRESS_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def validate_wallet_address(wallet_address: str) -> str:
    """Return the stripped address, or raise if it cannot be a public key."""
    candidate = wallet_address.strip()
    if not WALLET_ADDRESS_PATTERN.match(candidate):
        raise InvalidWalletAddressError(wallet_address)
    return candidate


class BalanceLookup(ABC):
    """Abstract balance collaborator."""

    @abstractmethod
    async def get_balance(self, wallet_address: str) -> float:
        """Get the token balance for a wallet, scaled by the mint's decimals."""

    async def close(self) -> None:
        """Clean up resources."""
        return None


class StaticBalanceLookup(BalanceLookup):
    """Balance lookup backed by a fixed mapping. Unknown wallets hold 0."""

    def __init__(self, balances: Mapping[str, float] | None = None) -> None:
        self._balances = dict(balances or {})

    async def get_balance(self, wallet_address: str) -> float:
        address = validate_wallet_address(wallet_address)
        return float(self._balances.get(address, 0))


class HttpBalanceLookup(BalanceLookup):
    """Balance lookup against the balance service over HTTP.

    The service answers ``GET /token-accounts?owner=<wallet>`` with
    ``{"tokenAccounts": [{"mint": "...", "amount": "<raw units>", "decimals": 6}]}``.
    """

    def __init__(
        self,
        base_url: str,
        mint_address: str,
        decimals: int = 6,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._mint_address = mint_address
        self._decimals = decimals
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout, connect=5.0),
            )
        return self._client

    async def get_balance(self, wallet_address: str) -> float:
        """Fetch the wallet's balance of the configured mint.

        Args:
            wallet_address: Base58 wallet public key

        Returns:
            Balance in whole tokens; 0 when the wallet holds no account for the mint

        Raises:
            InvalidWalletAddressError: If the address is malformed
            BalanceServiceError: If the service fails or answers with garbage
        """
        address = validate_wallet_address(wallet_address)
        client = self._get_client()
        try:
            response = await client.get(
                "/token-accounts",
                params={"owner": address, "mint": self._mint_address},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise BalanceServiceError(
                e.response.text or str(e), status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise BalanceServiceError(str(e) or type(e).__name__) from e
        except ValueError as e:
            raise BalanceServiceError(f"Invalid JSON: {e}") from e

        balance = self._balance_from_payload(payload)
        logger.debug("Fetched wallet balance", wallet=address, balance=balance)
        return balance

    def _balance_from_payload(self, payload: Any) -> float:
        if not isinstance(payload, dict):
            raise BalanceServiceError("Unexpected response shape")
        accounts = payload.get("tokenAccounts") or []
        if not isinstance(accounts, list):
            raise BalanceServiceError("tokenAccounts must be a list")

        matching = [
            a for a in accounts if isinstance(a, dict) and a.get("mint") == self._mint_address
        ]
        if not matching:
            return 0.0

        account = matching[0]
        decimals = account.get("decimals", self._decimals)
        try:
            return float(account.get("amount", 0)) / 10 ** int(decimals)
        except (TypeError, ValueError) as e:
            raise BalanceServiceError(f"Unreadable token amount: {e}") from e

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
