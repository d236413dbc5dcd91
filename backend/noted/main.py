"""
Noted.AI Backend: FastAPI Application Factory
=============================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes app configuration, middleware registration, route mounting,
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn noted.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware: RateLimit → RequestID → Logging → GZip → CORS│
    │                                                          │
    │  Routes:                                                 │
    │  /api/auth  /api/notes  /api/ai  /api/subscriptions      │
    │  /api/universities  /api/health                          │
    │                                                          │
    │  Exception Handlers:                                     │
    │  Validation→400 │ Auth→401 │ Denied/Quota→403 │ 404 │ 409 │
    │  RateLimit→429 │ LLM/Circuit→503 │ Billing→502 │ 500     │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration report (never fatal), ready banner.
    Shutdown: dispose the database engine.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from noted import __version__
from noted.config import settings
from noted.database import dispose_engine
from noted.exceptions import (
    AuthenticationError,
    BillingError,
    CircuitBreakerOpenError,
    ConflictError,
    EmailDeliveryError,
    LLMServiceError,
    NotedError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    RateLimitExceededError,
    ValidationError,
)
from noted.middleware.logging import RequestLoggingMiddleware
from noted.middleware.rate_limit import RateLimitMiddleware
from noted.middleware.request_id import RequestIDMiddleware, request_id_var
from noted.routes import ai, auth, health, notes, subscriptions, universities

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole process.

    Format: 2024-01-15T12:00:00 [INFO] noted.services.quota_service: ...
    Output goes to stdout (the container runtime collects it).
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-operation chatter from third-party libraries
    for name in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "stripe", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Noted.AI Backend %s starting up (%s)...", __version__, settings.environment)

    # Missing credentials degrade features (fallback AI, free plan only)
    # rather than stopping the server
    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Noted.AI Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    # The catch-all handler runs outside RequestIDMiddleware, where the
    # ContextVar is already reset; request.state still carries the ID
    return request_id_var.get("") or getattr(request.state, "request_id", "")


def _error_response(
    request: Request,
    status_code: int,
    exc: NotedError,
    message: Optional[str] = None,
    details: Optional[dict] = None,
    extra: Optional[dict] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content = {"error": message or exc.message, "code": exc.code}
    if details:
        content["details"] = details
    if extra:
        content.update(extra)
    content["requestId"] = _request_id(request)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy to HTTP responses.

    Body: {"error": <message>, "code": <machine code>, "details"?, "requestId"}

    Handler lookup walks the exception's MRO, so QuotaExceededError gets its
    own handler even though it subclasses PermissionDeniedError.

    Internal details (SQL, Stripe and SMTP messages, stack traces) are
    logged here and never returned.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        details = {"field": exc.field} if exc.field else None
        return _error_response(request, 400, exc, details=details)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        # Schema failures share the 400 envelope with business-rule failures
        errors = [
            {
                # loc[0] is the source: body, query, path or header
                "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        first = errors[0] if errors else {"field": "", "message": "Invalid request"}
        message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
        logger.warning("[%s] Request validation failed: %s", _request_id(request), message)
        return _error_response(
            request, 400, ValidationError(message=message), details={"errors": errors}
        )

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(request, 401, exc)

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        logger.warning("[%s] Access denied: %s %s", _request_id(request), request.method, request.url.path)
        return _error_response(request, 403, exc)

    @app.exception_handler(QuotaExceededError)
    async def handle_quota_exceeded(request: Request, exc: QuotaExceededError):
        # currentUsage/limit at top level: the client renders the upgrade prompt from them
        return _error_response(
            request, 403, exc,
            extra={"currentUsage": exc.current_usage, "limit": exc.limit},
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(request, 404, exc)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.warning("[%s] Conflict: %s", _request_id(request), exc.message)
        return _error_response(request, 409, exc)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(
            request, 429, exc,
            details={"retryAfter": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", _request_id(request), exc.message)
        return _error_response(
            request, 503, exc,
            details={"recoveryTime": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(LLMServiceError)
    async def handle_llm_error(request: Request, exc: LLMServiceError):
        logger.error("[%s] LLM service error: %s | Context: %s", _request_id(request), exc.message, exc.context)
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error_response(request, 503, exc, headers=headers)

    @app.exception_handler(BillingError)
    async def handle_billing_error(request: Request, exc: BillingError):
        logger.error("[%s] Billing error: %s | Context: %s", _request_id(request), exc.message, exc.context)
        return _error_response(request, 502, exc, message="Billing provider request failed")

    @app.exception_handler(EmailDeliveryError)
    async def handle_email_error(request: Request, exc: EmailDeliveryError):
        logger.error("[%s] Email delivery error: %s | Context: %s", _request_id(request), exc.message, exc.context)
        return _error_response(request, 500, exc, message="Failed to send email")

    @app.exception_handler(NotedError)
    async def handle_noted_error(request: Request, exc: NotedError):
        logger.error("[%s] Unhandled application error: %s | Context: %s", _request_id(request), exc.message, exc.context)
        return _error_response(request, 500, exc)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        rid = _request_id(request)
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={"error": "Route not found", "code": "not_found", "requestId": rid},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail), "code": "http_error", "requestId": rid},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = _request_id(request)
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        content = {"error": "Something went wrong!", "code": "server_error", "requestId": rid}
        if settings.is_development:
            content["message"] = str(exc)
        return JSONResponse(status_code=500, content=content)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Tests build a fresh instance per test and override dependencies on it.
    """
    app = FastAPI(
        title="Noted.AI API",
        description=(
            "Note-taking backend for students: notes and sharing, AI summaries, "
            "flashcards, assignment help and citations with per-plan quotas, "
            "Stripe subscriptions and university partnerships."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(notes.router)
    app.include_router(ai.router)
    app.include_router(subscriptions.router)
    app.include_router(universities.router)
    app.include_router(health.router)

    return app


app = create_app()
