"""API routes for the gateway service."""

from chat_gateway.routes import chat, health, wallet

__all__ = ["chat", "health", "wallet"]
