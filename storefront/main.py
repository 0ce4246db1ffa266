"""Storefront MCP application module.

This module builds the FastAPI application: configuration, logging,
middleware, routers, and the objects that live for the whole process
(gateway client, session store, tools, dispatcher).
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.dispatcher import RpcDispatcher
from storefront.api.health import router as health_router
from storefront.api.middleware import setup_middleware
from storefront.api.rpc import SESSION_HEADER
from storefront.api.rpc import router as rpc_router
from storefront.api.tools import StorefrontTools
from storefront.application.cart_cache import CartCache
from storefront.application.session_store import SessionStore
from storefront.infrastructure.config import Settings
from storefront.infrastructure.config import settings as default_settings
from storefront.infrastructure.gateway_client import FakeStoreClient
from storefront.infrastructure.logging import configure_logging

logger = structlog.get_logger()


def create_app(
    settings: Settings | None = None,
    gateway: FakeStoreClient | None = None,
    session_store: SessionStore | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use; defaults to the environment settings.
        gateway: FakeStore client; built from settings when omitted.
        session_store: Session store; a fresh one when omitted.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or default_settings
    configure_logging(settings.log_level)

    gateway = gateway or FakeStoreClient(
        base_url=settings.gateway_url,
        timeout=settings.gateway_timeout,
    )
    session_store = session_store if session_store is not None else SessionStore()
    cart_cache = CartCache(gateway=gateway, ttl_ms=settings.cart_ttl_ms)
    tools = StorefrontTools(gateway=gateway, cart_cache=cart_cache)
    dispatcher = RpcDispatcher(
        store=session_store,
        tools=tools,
        server_name=settings.server_name,
        server_version=settings.api_version,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle application startup and shutdown events."""
        logger.info(
            "Starting Storefront MCP server",
            version=settings.api_version,
            gateway_url=settings.gateway_url,
            cart_ttl_seconds=settings.cart_ttl_seconds,
        )

        yield

        await gateway.close()
        logger.info("Shutting down Storefront MCP server", sessions=len(session_store))

    app = FastAPI(
        title="Storefront MCP",
        description="MCP tool server for the FakeStore catalog and cart",
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.session_store = session_store
    app.state.dispatcher = dispatcher

    # CORS middleware (must be added before custom middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    setup_middleware(app)

    app.include_router(health_router, tags=["Health"])
    app.include_router(rpc_router, tags=["MCP"])

    return app


app = create_app()


def main() -> None:
    """Run the server with uvicorn."""
    uvicorn.run(
        "storefront.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=default_settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
