"""
Noted.AI Backend: Custom Exception Hierarchy
============================================

What:  Application-specific exceptions for the different error scenarios.
Why:   Services raise domain errors; global handlers in main.py turn them
       into JSON responses with the right status code. Routes stay free of
       try/except boilerplate.
How:   Each exception carries a user-facing message and an optional context
       dict. Context is logged server-side and only returned where the
       handler says so (e.g. quota usage numbers).

Exception Hierarchy:
    NotedError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    ├── QuotaExceededError       → 403 Forbidden (+ currentUsage, limit)
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── LLMServiceError          → 503 Service Unavailable
    │   └── LLMQuotaError        → never reaches a client (triggers fallback)
    ├── CircuitBreakerOpenError  → 503 Service Unavailable
    ├── BillingError             → 502 Bad Gateway
    └── EmailDeliveryError       → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class NotedError(Exception):
    """
    Base exception for all Noted.AI application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, not returned by default)
    """

    code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NotedError):
    """
    Raised when client input breaks a business rule.

    HTTP: 400. Schema-level problems (wrong types, missing JSON fields) get
    the same status and envelope through the RequestValidationError handler.
    """

    code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(NotedError):
    """Missing, malformed or expired bearer token, or bad credentials. HTTP 401."""

    code = "authentication_error"

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(NotedError):
    """Authenticated, but not allowed to touch this resource. HTTP 403."""

    code = "permission_denied"

    def __init__(
        self,
        message: str = "Access denied",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class QuotaExceededError(PermissionDeniedError):
    """
    Raised when a metered AI feature is out of allowance for the user's plan.

    HTTP: 403, with `currentUsage` and `limit` added to the response body so
    the client can render an upgrade prompt.
    """

    code = "quota_exceeded"

    def __init__(
        self,
        feature: str,
        current_usage: int,
        limit: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"Feature limit reached for {feature}. Please upgrade your subscription."
        ctx = context or {}
        ctx.update({"feature": feature, "current_usage": current_usage, "limit": limit})
        super().__init__(message=message, context=ctx)
        self.feature = feature
        self.current_usage = current_usage
        self.limit = limit


class NotFoundError(NotedError):
    """
    Raised when a requested resource does not exist (or is not visible to
    the caller; ownership failures on notes are reported as 404 as well).
    """

    code = "not_found"

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message or f"{resource} not found", context=ctx)


class ConflictError(NotedError):
    """Unique constraint lost a race (e.g. two registrations with one email). HTTP 409."""

    code = "conflict"

    def __init__(
        self,
        message: str = "The resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LLMServiceError(NotedError):
    """
    Raised when the LLM provider fails after all retries, or the configured
    model does not exist.

    HTTP: 503 Service Unavailable, optional Retry-After.
    """

    code = "llm_service_error"

    def __init__(
        self,
        message: str = "AI service is temporarily unavailable. Please try again later.",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class LLMQuotaError(LLMServiceError):
    """
    The provider rejected the call for quota or rate reasons (HTTP 429 or
    `insufficient_quota`). AIService catches this and serves the fallback.
    """

    code = "llm_quota_error"


class CircuitBreakerOpenError(NotedError):
    """
    Raised when the circuit breaker is OPEN.

    CLOSED → (threshold failures) → OPEN → (recovery timeout) → HALF_OPEN
    → success: CLOSED / failure: OPEN
    """

    code = "service_unavailable"

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class BillingError(NotedError):
    """A Stripe API call failed. Details are logged; the client gets a generic message."""

    code = "billing_error"

    def __init__(
        self,
        message: str = "Billing provider request failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class EmailDeliveryError(NotedError):
    """SMTP delivery failed. HTTP 500 with a generic message."""

    code = "email_delivery_error"

    def __init__(
        self,
        message: str = "Failed to send email",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(NotedError):
    """Client exceeded the per-IP request rate limit. HTTP 429 + Retry-After."""

    code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
