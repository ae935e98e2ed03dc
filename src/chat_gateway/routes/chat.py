"""Chat completion route."""

import json
from typing import Annotated, Any, Literal
from urllib.parse import unquote

import structlog
from fastapi import APIRouter, Cookie, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from chat_gateway.access import verify_access
from chat_gateway.deps import GatewayServices, get_services
from chat_gateway.exceptions import AccessDeniedError
from chat_gateway.providers.base import ChatMessage, CompletionRequest
from chat_gateway.session import ChatSession, resolve_model_and_provider

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["chat"])

STREAM_MEDIA_TYPE = "text/event-stream; charset=utf-8"
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


class ChatMessageIn(BaseModel):
    """A conversation message as sent by the client."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Chat request."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessageIn]
    files: dict[str, Any] | None = None
    prompt_id: str | None = Field(default=None, alias="promptId")
    context_optimization: bool = Field(default=False, alias="contextOptimization")
    wallet_address: str | None = Field(default=None, alias="walletAddress")
    model: str | None = None
    provider: str | None = None


def parse_api_keys_cookie(raw: str | None) -> dict[str, str]:
    """Decode the ``apiKeys`` cookie: a URL-encoded JSON object of provider -> key."""
    if not raw:
        return {}
    try:
        data = json.loads(unquote(raw))
    except ValueError:
        logger.warning("Ignoring malformed apiKeys cookie")
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(k): str(v) for k, v in data.items() if v}


@router.post("/chat", response_model=None)
async def chat(
    body: ChatRequest,
    services: Annotated[GatewayServices, Depends(get_services)],
    api_keys: Annotated[str | None, Cookie(alias="apiKeys")] = None,
) -> StreamingResponse:
    """Stream a chat completion.

    Returns 403 with ``{"error": ...}`` when the wallet's tier may not use the
    provider and 401 when no usable credential exists for it. Once the stream
    has started, failures arrive in-band as error frames.
    """
    settings = services.settings
    messages = [ChatMessage(role=m.role, content=m.content, id=m.id) for m in body.messages]
    model, provider_name = resolve_model_and_provider(
        messages, body.model, body.provider, settings
    )

    decision = await verify_access(
        body.wallet_address,
        model,
        provider_name,
        services.balance_lookup,
        settings.BALANCE_LOOKUP_TIMEOUT,
        services.tier_policy,
    )
    if not decision.allowed:
        logger.info(
            "Chat request denied",
            wallet=body.wallet_address,
            tier=decision.tier.value,
            model=model,
            provider=provider_name,
        )
        raise AccessDeniedError(decision.reason, tier=decision.tier.value)

    logger.debug(
        "Chat request accepted",
        wallet=body.wallet_address,
        tier=decision.tier.value,
        verified=decision.verified,
        model=model,
        provider=provider_name,
    )

    # Raises ProviderCredentialError, mapped to 401 before any generation starts
    provider, api_key = services.registry.resolve(provider_name, parse_api_keys_cookie(api_keys))

    request = CompletionRequest(
        model=model,
        provider=provider_name,
        messages=messages,
        max_tokens=settings.MAX_TOKENS,
        api_key=api_key,
        prompt_id=body.prompt_id,
    )
    session = ChatSession(
        request=request,
        provider=provider,
        files=body.files,
        context_optimization=body.context_optimization,
        reducer_factory=services.reducer_factory,
        settings=settings,
    )
    return StreamingResponse(
        session.encoded(),
        media_type=STREAM_MEDIA_TYPE,
        headers=STREAM_HEADERS,
    )
