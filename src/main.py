"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware, register_exception_handlers
from src.api.routes import (
    companies,
    company_permissions,
    health,
    invitations,
    permissions,
    roles,
    sessions,
    user_company,
    user_roles,
    users,
)
from src.core.config import get_settings
from src.core.events import get_event_bus
from src.core.rate_limiter import init_rate_limiter, shutdown_rate_limiter
from src.services.email_service import register_email_handlers
from src.services.invitation_sweeper import init_invitation_sweeper, shutdown_invitation_sweeper

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    # Startup
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    # Initialize rate limiter with cleanup task
    await init_rate_limiter()
    logger.info("Rate limiter initialized")

    # Email delivery listens on the event bus
    if settings.resend_api_key:
        register_email_handlers(get_event_bus())
        logger.info("Email handlers registered")
    else:
        logger.warning("RESEND_API_KEY not set, emails will not be sent")

    # Periodic invitation expiry
    await init_invitation_sweeper()

    yield
    # Shutdown
    await shutdown_invitation_sweeper()
    logger.info("Invitation sweeper shutdown")
    await shutdown_rate_limiter()
    logger.info("Rate limiter shutdown")
    get_event_bus().clear()
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Tenant Auth API",
        description="Multi-tenant authentication, invitation and session backend",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handler middleware (outermost - catches all errors)
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    # Envelope-shaped responses for HTTPException and request validation
    register_exception_handlers(app)

    # Mount health routes at root level (no prefix)
    app.include_router(health.router)

    api_router = APIRouter(prefix="/api")

    # Tenancy and onboarding
    api_router.include_router(companies.router)
    api_router.include_router(user_company.router)
    api_router.include_router(invitations.router)
    api_router.include_router(users.router)

    # Authentication sessions
    api_router.include_router(sessions.router)

    # Roles and permissions
    api_router.include_router(roles.router)
    api_router.include_router(user_roles.router)
    api_router.include_router(permissions.router)
    api_router.include_router(company_permissions.router)

    app.include_router(api_router)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
