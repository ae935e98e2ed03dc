"""Provider registry for managing completion providers."""

from collections.abc import Mapping

import structlog

from chat_gateway.exceptions import ProviderCredentialError, ProviderNotConfiguredError

from .base import CompletionProvider

logger = structlog.get_logger(__name__)


class ProviderRegistry:
    """Registry mapping provider names (case-insensitive) to completion providers."""

    def __init__(self, api_keys: Mapping[str, str] | None = None) -> None:
        self._providers: dict[str, CompletionProvider] = {}
        self._api_keys = {k.casefold(): v for k, v in (api_keys or {}).items() if v}

    def register_provider(self, name: str, provider: CompletionProvider) -> None:
        """Register a provider."""
        self._providers[name.casefold()] = provider
        logger.info("Registered completion provider", provider=name)

    def unregister_provider(self, name: str) -> None:
        """Unregister a provider."""
        self._providers.pop(name.casefold(), None)

    def get_provider(self, name: str) -> CompletionProvider | None:
        """Get a provider by name."""
        return self._providers.get(name.casefold())

    @property
    def provider_names(self) -> list[str]:
        return sorted(self._providers)

    def resolve_api_key(
        self,
        provider_name: str,
        request_keys: Mapping[str, str] | None = None,
    ) -> str | None:
        """Pick the API key for a provider: request keys first, then server-side keys."""
        wanted = provider_name.casefold()
        for name, key in (request_keys or {}).items():
            if name.casefold() == wanted and key:
                return key
        return self._api_keys.get(wanted)

    def resolve(
        self,
        provider_name: str,
        request_keys: Mapping[str, str] | None = None,
    ) -> tuple[CompletionProvider, str | None]:
        """Get the provider and its API key, failing before any generation starts.

        Raises:
            ProviderNotConfiguredError: If no provider is registered under the name
            ProviderCredentialError: If the provider needs a key and none is available
        """
        provider = self.get_provider(provider_name)
        if provider is None:
            raise ProviderNotConfiguredError(provider_name, self.provider_names)

        api_key = self.resolve_api_key(provider_name, request_keys)
        if provider.requires_api_key and not api_key:
            raise ProviderCredentialError(provider_name)
        return provider, api_key

    async def close_all(self) -> None:
        """Close all providers."""
        for name, provider in self._providers.items():
            try:
                await provider.close()
            except Exception as e:
                logger.warning("Failed to close provider", provider=name, error=str(e))

