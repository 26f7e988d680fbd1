"""Middleware and exception handlers for the FastAPI application"""
import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.exceptions import ExternalProviderError, StorefrontError
from app.core.security import log_api_access

logger = logging.getLogger(__name__)

# Scraped/polled constantly; no access log
UNLOGGED_PATHS = ("/metrics", "/health")


def get_allowed_origins():
    """Get list of allowed CORS origins"""
    allowed_origins = [settings.FRONTEND_URL]
    if settings.ENVIRONMENT == "development":
        allowed_origins.extend([
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173"
        ])
    return allowed_origins


def setup_cors_middleware(app):
    """Setup CORS middleware for FastAPI app"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )


async def access_log_middleware(request: Request, call_next):
    """Log every API request with its final status code"""
    status_code = 500
    error = None
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    except Exception as e:
        error = str(e)
        raise
    finally:
        if request.url.path not in UNLOGGED_PATHS:
            log_api_access(request, status_code, error)


async def storefront_exception_handler(request: Request, exc: StorefrontError):
    """StorefrontError -> {"error", "detail"} with the error's status code"""
    if isinstance(exc, ExternalProviderError):
        logger.error(
            f"{exc.provider or 'provider'} error on {request.url.path}: {exc.message} "
            f"(status {exc.provider_status}) body: {exc.response_body}"
        )
    elif exc.status_code >= 500:
        logger.error(f"{exc.error} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "detail": exc.message}
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request body/path validation failures are plain 400s"""
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
        for error in errors
    )
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "detail": detail}
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


def register_exception_handlers(app):
    app.add_exception_handler(StorefrontError, storefront_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
