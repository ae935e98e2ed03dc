"""Chat Gateway Service - tier-gated, self-continuing chat completions."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_fastapi_instrumentator import Instrumentator

from chat_gateway.config import settings
from chat_gateway.deps import GatewayServices, build_services
from chat_gateway.exceptions import AccessDeniedError, ProviderCredentialError
from chat_gateway.middleware import RequestIDMiddleware
from chat_gateway.observability import SentryConfig, configure_logging, init_sentry
from chat_gateway.routes import chat, health, wallet

init_sentry(
    SentryConfig(
        service_name="chat-gateway",
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=f"chat-gateway@{settings.VERSION}",
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        profiles_sample_rate=settings.SENTRY_PROFILES_SAMPLE_RATE,
    )
)

logger = configure_logging("chat-gateway", environment=settings.ENVIRONMENT)


async def access_denied_handler(_request: Request, exc: AccessDeniedError) -> Response:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.reason})


async def credential_error_handler(_request: Request, exc: ProviderCredentialError) -> Response:
    logger.warning("No usable credential for provider", provider=exc.provider, error=str(exc))
    return PlainTextResponse("Invalid or missing API key", status_code=exc.status_code)


async def unhandled_error_handler(_request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error", error=str(exc))
    return Response(status_code=500)


def create_app(
    services: GatewayServices | None = None,
    enable_metrics: bool = True,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Shared collaborators; built from settings when omitted
        enable_metrics: Expose Prometheus metrics at ``/metrics``
    """
    gateway_services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "Starting Chat Gateway",
            environment=gateway_services.settings.ENVIRONMENT,
            providers=gateway_services.registry.provider_names,
        )
        yield
        logger.info("Shutting down Chat Gateway")
        await gateway_services.close()

    app = FastAPI(
        title="Chat Gateway",
        description="Tier-gated streaming chat completions with automatic continuation",
        version=settings.VERSION,
        lifespan=lifespan,
    )
    app.state.services = gateway_services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=gateway_services.settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(AccessDeniedError, access_denied_handler)
    app.add_exception_handler(ProviderCredentialError, credential_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    if enable_metrics:
        Instrumentator().instrument(app).expose(app)

    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(wallet.router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "chat_gateway.main:app",
        host="0.0.0.0",  # noqa: S104
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
    )
