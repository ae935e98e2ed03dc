"""Structlog processor that keeps credentials out of log output.

Provider API keys reach the gateway through the ``apiKeys`` cookie and the
``PROVIDER_API_KEYS`` setting. Any bound value under a credential-like key is
replaced, values shaped like a provider key or bearer token are replaced
wherever they appear, and wallet addresses are shortened to their ends.
"""

import re
from collections.abc import Mapping, MutableMapping
from typing import Any

import structlog

REDACTED = "***REDACTED***"

# Matched as substrings of the lower-cased, underscore-normalised key
SENSITIVE_FIELDS = (
    "apikey",
    "api_key",
    "authorization",
    "bearer",
    "cookie",
    "credential",
    "password",
    "private_key",
    "privatekey",
    "secret",
    "sentry_dsn",
    "access_token",
    "refresh_token",
)

WALLET_FIELDS = frozenset({"wallet", "wallet_address", "walletaddress"})

PROVIDER_KEY_PATTERNS = (
    re.compile(r"sk-ant-[A-Za-z0-9_-]{20,}"),  # Anthropic
    re.compile(r"sk[-_][A-Za-z0-9]{20,}"),  # OpenAI, Deepseek
    re.compile(r"AIza[0-9A-Za-z_-]{35}"),  # Google
    re.compile(r"Bearer\s+[A-Za-z0-9._-]+", re.IGNORECASE),
    re.compile(r"eyJ[A-Za-z0-9_-]*\.eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*"),  # JWT
    re.compile(r"[a-fA-F0-9]{40,}"),
)


def _normalise_key(key: str) -> str:
    return key.lower().replace("-", "_")


def _is_sensitive_field(key: str) -> bool:
    normalised = _normalise_key(key)
    return any(field in normalised for field in SENSITIVE_FIELDS)


def _redact_sensitive_value(value: str) -> str:
    if any(pattern.search(value) for pattern in PROVIDER_KEY_PATTERNS):
        return REDACTED
    return value


def mask_wallet(address: str) -> str:
    """Shorten a wallet address to its first and last four characters."""
    if len(address) <= 8:
        return address
    return f"{address[:4]}...{address[-4:]}"


def _redact_value(value: Any) -> Any:
    if isinstance(value, MutableMapping):
        return _redact_dict(value)
    if isinstance(value, Mapping):
        return _redact_dict(dict(value))
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(item) for item in value)
    if isinstance(value, str):
        return _redact_sensitive_value(value)
    return value


def _redact_dict(data: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Redact ``data`` in place and return it."""
    for key, value in list(data.items()):
        name = str(key)
        if _is_sensitive_field(name):
            data[key] = REDACTED
        elif _normalise_key(name) in WALLET_FIELDS and isinstance(value, str):
            data[key] = mask_wallet(value)
        else:
            data[key] = _redact_value(value)
    return data


def redact_sensitive_data(
    logger: structlog.types.WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Redact bound key/values. The ``event`` message itself is left as written."""
    event = event_dict.pop("event", None)
    _redact_dict(event_dict)
    if event is not None:
        event_dict["event"] = event
    return event_dict
