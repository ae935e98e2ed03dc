"""Custom exception classes for the gateway service."""


class GatewayError(Exception):
    """Base class for gateway failures."""


class TierPolicyError(GatewayError, ValueError):
    """Raised when the tier table is malformed."""


class AccessDeniedError(GatewayError):
    """Raised when a tier may not use the requested provider."""

    status_code = 403

    def __init__(self, reason: str, tier: str | None = None) -> None:
        self.reason = reason
        self.tier = tier
        super().__init__(reason)


class VerificationError(GatewayError):
    """Raised when the balance/tier lookup fails."""


class InvalidWalletAddressError(VerificationError):
    """Raised when a wallet address is not a plausible base58 public key."""

    def __init__(self, wallet_address: str) -> None:
        self.wallet_address = wallet_address
        super().__init__(f"Invalid wallet address: {wallet_address}")


class BalanceServiceError(VerificationError):
    """Raised when the balance service returns an error or an unreadable payload."""

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"Balance service error: {detail}")


class SegmentLimitExceededError(GatewayError):
    """Raised when a truncated response would need more switches than allowed."""

    def __init__(self, max_segments: int) -> None:
        self.max_segments = max_segments
        super().__init__("Cannot continue message: Maximum segments reached")


class ProviderCredentialError(GatewayError):
    """Raised when a completion provider rejects or lacks credentials."""

    status_code = 401

    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        super().__init__(message or f"Invalid or missing API key for provider '{provider}'")


class ProviderNotConfiguredError(ProviderCredentialError):
    """Raised when no completion provider is registered under the requested name."""

    def __init__(self, provider: str, available: list[str]) -> None:
        self.available = available
        super().__init__(
            provider,
            f"No API key or implementation configured for provider '{provider}'. "
            f"Available providers: {available}",
        )


class GenerationError(GatewayError):
    """Raised when a completion source fails mid-stream."""


class StreamClosedError(GatewayError):
    """Raised when writing to or binding a stream that was already closed."""
