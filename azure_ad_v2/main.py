"""
FastAPI Application Factory
===========================

Hosts the Azure AD v2 strategy behind a small FastAPI application.

Routers:
    - /auth/<strategy>           : Request phase (redirect to Microsoft)
    - /auth/<strategy>/callback  : Callback phase (auth hash or failure redirect)
    - /auth/failure              : Failure page
    - /health                    : Health check endpoint

Running the Service:
    Development:
        uvicorn azure_ad_v2.main:create_app --factory --reload --port 8080

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn azure_ad_v2.main:create_app --factory
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from azure_ad_v2 import __version__
from azure_ad_v2.auth.errors import ConfigurationError
from azure_ad_v2.auth.routes import auth_router
from azure_ad_v2.config import Settings, get_settings, validate_configuration


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs the configuration report on startup so missing credentials or an
    empty allow-list are visible before the first sign-in.
    """
    settings: Settings = app.state.settings
    logger = logging.getLogger("azure_ad_v2.main")

    report = validate_configuration(settings)
    for error in report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    logger.info(
        "Starting authentication service",
        extra={
            "strategy": settings.STRATEGY_NAME,
            "tenant_provider": getattr(settings.TENANT_PROVIDER, "__name__", None),
            "version": __version__,
        }
    )

    yield

    logger.info("Authentication service shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    oauth_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Settings to use; loaded from the environment when omitted
        oauth_transport: Optional httpx transport for the token request

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Azure AD v2 Authentication",
        description="OAuth 2.0 authorization code strategy for Azure AD / Entra ID",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.oauth_transport = oauth_transport

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        same_site="lax",
    )

    if settings.allowed_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins_list,
            allow_credentials=True,
            allow_methods=["GET", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(auth_router)

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        return {
            "status": "ok",
            "strategy": settings.STRATEGY_NAME,
            "version": __version__,
        }

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        """The flow cannot start without client credentials."""
        logging.getLogger("azure_ad_v2.main").error(
            f"Authentication flow misconfigured: {exc}",
            extra={"path": request.url.path},
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "configuration_error",
                "message": "Authentication is not configured",
            }
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logging.getLogger("azure_ad_v2.main").error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "azure_ad_v2.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
