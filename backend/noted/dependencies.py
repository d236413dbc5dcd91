"""
Noted.AI Backend: Route Dependencies
====================================

What:  FastAPI dependencies shared by the routers: the authenticated user,
       metered feature access, and handles on the external services.
Why:   Routes declare what they need (`user = Depends(get_current_user)`)
       and tests swap any piece through `app.dependency_overrides`.

Service handles are process-wide singletons: the OpenAI client keeps its
circuit breaker state across requests.
"""

from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from noted.database import get_db_session
from noted.exceptions import AuthenticationError
from noted.models.user import User
from noted.services.ai_service import AIService
from noted.services.auth_service import auth_service, decode_access_token
from noted.services.billing_service import StripeGateway
from noted.services.email_service import Mailer, mailer
from noted.services.llm_base import LLMService
from noted.services.openai_service import OpenAIService
from noted.services.quota_service import quota_service

# auto_error=False: a missing header should produce our 401 body, not FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


# ── Authentication ────────────────────────────────────────────────────────
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(message="No token, authorization denied")

    user_id = decode_access_token(credentials.credentials)
    user = await auth_service.get_user(db, user_id)
    if user is None:
        raise AuthenticationError(message="Invalid token")
    return user


def require_feature(feature: str) -> Callable:
    """
    Gate a metered AI route on the user's remaining allowance.

    Read-only: the unit is charged by QuotaService.consume after generation
    succeeds, and that UPDATE re-checks the limit, so concurrent requests
    still cannot overspend.
    """

    async def check_allowance(
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_session),
    ) -> User:
        quota_service.check(user, feature)
        # No pooled connection is held across the provider call
        await db.commit()
        return user

    return check_allowance


# ── Service handles ───────────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_llm_service() -> LLMService:
    return OpenAIService()


def get_ai_service(llm: LLMService = Depends(get_llm_service)) -> AIService:
    return AIService(llm)


def get_mailer() -> Mailer:
    return mailer


@lru_cache(maxsize=1)
def get_stripe_gateway() -> StripeGateway:
    return StripeGateway()
