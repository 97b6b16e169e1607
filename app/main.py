from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import HTTPException as FastAPIHTTPException
from sqlalchemy.exc import SQLAlchemyError

from app.cache.cache_service import redis_cache
from app.core.logger import setup_logging
from app.middleware.cors import configure_cors
from app.middleware.logging import RequestLoggerMiddleware
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.middleware import error_handler

# Routers
from app.routers import auth as auth_router
from app.routers import admin as admin_router
from app.routers import client as client_router
from app.routers import health as health_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await redis_cache.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    setup_logging()
    description = (
        "Studio Backend API.\n\n"
        "This service provides sign-in, session validation and security monitoring endpoints."
    )

    openapi_tags = [
        {"name": "authentication", "description": "Register, login (credentials, admin, Google), logout and session."},
        {"name": "client", "description": "Endpoints for signed-in clients."},
        {"name": "admin", "description": "Administrative endpoints for security monitoring."},
        {"name": "health", "description": "Health checks and service status endpoints."},
    ]

    app = FastAPI(
        title="Studio Backend API",
        version="0.1.0",
        description=description,
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )

    # Middleware
    configure_cors(app)
    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    # Exception handlers
    app.add_exception_handler(FastAPIHTTPException, error_handler.http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, error_handler.database_exception_handler)

    # Include routers
    app.include_router(health_router.router)
    app.include_router(auth_router.router, prefix="/api")
    app.include_router(client_router.router, prefix="/api")
    app.include_router(admin_router.router, prefix="/api")

    return app


app = create_app()
