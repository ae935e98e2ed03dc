"""Tests for logging and Sentry setup."""

from unittest.mock import patch

from chat_gateway.observability import (
    SentryConfig,
    _drop_health_transactions,
    _scrub_event,
    add_sentry_breadcrumb,
    init_sentry,
)


class TestInitSentry:
    """Test init_sentry."""

    def test_disabled_without_dsn(self):
        """Test Sentry stays off when no DSN is configured."""
        with patch("chat_gateway.observability.sentry_sdk.init") as mock_init:
            assert init_sentry(SentryConfig(service_name="chat-gateway")) is False

        mock_init.assert_not_called()

    def test_enabled_with_dsn(self):
        """Test the SDK is initialised with the service name."""
        config = SentryConfig(
            service_name="chat-gateway",
            dsn="https://public@example.ingest.sentry.io/1",
            environment="production",
        )

        with (
            patch("chat_gateway.observability.sentry_sdk.init") as mock_init,
            patch("chat_gateway.observability.sentry_sdk.set_tag") as mock_tag,
        ):
            assert init_sentry(config) is True

        kwargs = mock_init.call_args.kwargs
        assert kwargs["server_name"] == "chat-gateway"
        assert kwargs["send_default_pii"] is False
        assert kwargs["traces_sample_rate"] is None
        mock_tag.assert_called_once_with("service", "chat-gateway")


class TestEventFilters:
    """Test before_send hooks."""

    def test_scrub_headers_and_extra(self):
        """Test credentials are filtered from request headers and extras."""
        event = {
            "request": {"headers": {"cookie": "apiKeys=...", "accept": "text/plain"}},
            "extra": {"api_key": "sk-x", "model": "gpt-4o"},
        }

        scrubbed = _scrub_event(event, {})  # type: ignore[arg-type]

        assert scrubbed is not None
        assert scrubbed["request"]["headers"]["cookie"] == "[Filtered]"
        assert scrubbed["request"]["headers"]["accept"] == "text/plain"
        assert scrubbed["extra"]["api_key"] == "[Filtered]"
        assert scrubbed["extra"]["model"] == "gpt-4o"

    def test_health_transactions_dropped(self):
        """Test health and metrics transactions are not sent."""
        assert _drop_health_transactions({"transaction": "/health"}, {}) is None  # type: ignore[arg-type]
        assert _drop_health_transactions({"transaction": "/metrics"}, {}) is None  # type: ignore[arg-type]

        event = {"transaction": "/api/chat"}
        assert _drop_health_transactions(event, {}) == event  # type: ignore[arg-type]


class TestSentryBreadcrumb:
    """Test the breadcrumb processor."""

    def test_breadcrumb_carries_bound_values(self):
        """Test bound values become breadcrumb data and the event passes through."""
        event_dict = {"event": "Chat request accepted", "level": "info", "tier": "free"}

        with patch("chat_gateway.observability.sentry_sdk.add_breadcrumb") as mock_crumb:
            result = add_sentry_breadcrumb(None, "info", event_dict)

        assert result is event_dict
        mock_crumb.assert_called_once_with(
            category="log",
            message="Chat request accepted",
            level="info",
            data={"tier": "free"},
        )
