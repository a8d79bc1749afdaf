import logging
from contextlib import asynccontextmanager
from typing import Callable

import sentry_sdk
import structlog
from doctor_onboarding.core.logging_config import configure_logging

# Initialize logging before anything else logs
configure_logging()

_startup_logger = logging.getLogger(__name__)

# Initialize Sentry (no-op if SENTRY_DSN is empty)
from doctor_onboarding.core.config import settings

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1,
    )

from doctor_onboarding.api.dependencies import registration_sessions
from doctor_onboarding.api.v1 import registrations
from doctor_onboarding.core.exceptions import (
    AuthenticationError,
    RegistrationError,
    RegistrationSessionNotFoundError,
    SubmissionNotAllowedError,
    SupabaseError,
    ValidationError,
)
from doctor_onboarding.middleware.trace_middleware import TraceMiddleware
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse

logger = structlog.get_logger(__name__)

limiter = registrations.limiter


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    _startup_logger.info("starting_application version=%s", settings.api_version)
    if not settings.supabase_configured:
        _startup_logger.warning("supabase_not_configured")

    yield

    _startup_logger.info("shutting_down_application")
    registration_sessions.clear()


_is_production = settings.environment == "production"

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    lifespan=lifespan,
    docs_url=None if _is_production else f"{settings.api_v1_prefix}/docs",
    redoc_url=None if _is_production else f"{settings.api_v1_prefix}/redoc",
    openapi_url=None if _is_production else f"{settings.api_v1_prefix}/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "X-Trace-Id"],
    expose_headers=["Content-Type", "X-Trace-Id"],
    max_age=600,
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: StarletteRequest, call_next: Callable) -> StarletteResponse:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if _is_production:
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains; preload"
        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TraceMiddleware)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.include_router(registrations.router, prefix=settings.api_v1_prefix)


def _error_response(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    content = {"error": error, "message": message}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.error(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP_ERROR",
            "message": exc.detail,
            "status_code": exc.status_code,
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    logger.error("request_validation_error", errors=errors, path=request.url.path)
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", "Request validation failed", errors
    )


# Domain exception handlers - convert domain exceptions to HTTP responses
@app.exception_handler(ValidationError)
async def domain_validation_handler(request: Request, exc: ValidationError):
    logger.warning("validation_error", error=exc.message, path=request.url.path)
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", exc.message, exc.details
    )


@app.exception_handler(RegistrationSessionNotFoundError)
async def registration_not_found_handler(request: Request, exc: RegistrationSessionNotFoundError):
    logger.warning("registration_session_not_found", session_id=exc.session_id)
    return _error_response(status.HTTP_404_NOT_FOUND, "REGISTRATION_NOT_FOUND", exc.message)


@app.exception_handler(SubmissionNotAllowedError)
async def submission_not_allowed_handler(request: Request, exc: SubmissionNotAllowedError):
    logger.warning("submission_not_allowed", error=exc.message, path=request.url.path)
    return _error_response(status.HTTP_409_CONFLICT, exc.error_code, exc.message, exc.details)


@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError):
    logger.error("registration_error", error_code=exc.error_code, error=exc.message)
    return _error_response(status.HTTP_502_BAD_GATEWAY, exc.error_code, exc.message)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    logger.warning("authentication_error", error=str(exc), path=request.url.path)
    return _error_response(status.HTTP_401_UNAUTHORIZED, "AUTHENTICATION_ERROR", str(exc))


@app.exception_handler(SupabaseError)
async def supabase_error_handler(request: Request, exc: SupabaseError):
    logger.error("supabase_error", error=str(exc), path=request.url.path)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "DATABASE_ERROR",
        "A database error occurred. Please try again.",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception", error=str(exc), path=request.url.path, exc_info=exc
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred",
    )


@app.get("/health")
async def health() -> JSONResponse:
    """Health check endpoint"""
    return JSONResponse(
        {
            "status": "ok",
            "version": settings.api_version,
            "supabase": "configured" if settings.supabase_configured else "not_configured",
            "active_registrations": len(registration_sessions),
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
