"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gaswise.api.deps import register_error_handlers
from gaswise.config import get_settings
from gaswise.services import Services, build_services


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Pre-built services (built from settings if omitted)
    """
    if services is None:
        services = build_services(get_settings())
    settings = services.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        yield
        await services.close()

    app = FastAPI(
        title="GasWise API",
        description="Cross-chain gas optimization and swap orchestration",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Register routes
    from gaswise.api.routes import admin, gas, health, quotes, swaps

    app.include_router(health.router, tags=["Health"])
    app.include_router(gas.router)
    app.include_router(quotes.router)
    app.include_router(swaps.router)
    app.include_router(admin.router)

    return app
