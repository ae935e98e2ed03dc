"""HTTP middleware and log processors."""

from chat_gateway.middleware.logging_filter import redact_sensitive_data
from chat_gateway.middleware.request_id import RequestIDMiddleware, get_request_id

__all__ = ["RequestIDMiddleware", "get_request_id", "redact_sensitive_data"]
