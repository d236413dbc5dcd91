"""
Noted.AI Backend: Authentication Service
========================================

What:  Password hashing, JWT issue/verify, and the account workflows behind
       /api/auth/* (register, login, email verification, password reset,
       profile and password changes).
Why:   Keeps credential handling out of the route layer and in one place
       that tests can drive directly.
How:   bcrypt for password hashes (run in the default executor, since a
       12-round hash blocks for ~250ms), PyJWT HS256 for bearer tokens,
       `secrets.token_hex(32)` for verification and reset tokens.

Token payload:
    {"userId": "<uuid>", "iat": ..., "exp": now + JWT_EXPIRES_DAYS}
"""

import asyncio
import logging
import secrets
from datetime import timedelta
from functools import partial
from typing import Optional, Tuple
from uuid import UUID

import bcrypt
import jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from noted.config import settings
from noted.exceptions import (
    AuthenticationError,
    ConflictError,
    EmailDeliveryError,
    NotFoundError,
    ValidationError,
)
from noted.models.university import University
from noted.models.user import User, as_utc, utcnow
from noted.schemas.user import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from noted.services.email_service import Mailer

logger = logging.getLogger(__name__)


# ── Password hashing ─────────────────────────────────────────────────────
async def hash_password(password: str) -> str:
    loop = asyncio.get_running_loop()
    salt = await loop.run_in_executor(None, partial(bcrypt.gensalt, rounds=settings.bcrypt_rounds))
    hashed = await loop.run_in_executor(None, partial(bcrypt.hashpw, password.encode("utf-8"), salt))
    return hashed.decode("utf-8")


async def verify_password(password: str, password_hash: str) -> bool:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, partial(bcrypt.checkpw, password.encode("utf-8"), password_hash.encode("utf-8"))
    )


# ── Tokens ───────────────────────────────────────────────────────────────
def create_access_token(user_id: UUID) -> str:
    now = utcnow()
    payload = {
        "userId": str(user_id),
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expires_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UUID:
    """
    Returns the user id carried by a valid token.

    Raises:
        AuthenticationError: Expired, badly signed, or malformed token.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return UUID(payload["userId"])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(message="Token expired")
    except (jwt.InvalidTokenError, KeyError, ValueError, TypeError):
        raise AuthenticationError(message="Invalid token")


def new_opaque_token() -> str:
    """64 hex characters."""
    return secrets.token_hex(32)


class AuthService:
    """
    Account workflows. Stateless apart from the mailer handle, which is
    passed per call so routes can inject a test double.
    """

    async def _find_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def get_user(self, db: AsyncSession, user_id: UUID) -> Optional[User]:
        return await db.get(User, user_id)

    # ── Registration / login ──────────────────────────────────────────────
    async def register(
        self, db: AsyncSession, request: RegisterRequest, mailer: Mailer
    ) -> Tuple[User, str]:
        email = request.email.lower()
        if await self._find_by_email(db, email) is not None:
            raise ValidationError(message="User already exists with this email", field="email")

        university: Optional[University] = None
        if request.university_domain:
            result = await db.execute(
                select(University).where(
                    University.domain == request.university_domain.strip().lower(),
                    University.partnership_status == "active",
                )
            )
            university = result.scalar_one_or_none()
            if university is None:
                raise ValidationError(
                    message="University not found or partnership not active",
                    field="universityDomain",
                )

        verification_token = new_opaque_token()
        user = User(
            email=email,
            password_hash=await hash_password(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
            email_verification_token=verification_token,
        )
        if university is not None:
            user.university_name = university.name
            user.university_domain = university.domain

        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            raise ConflictError(message="User already exists with this email")

        logger.info("User registered: %s (university=%s)", user.id, user.university_domain)

        if mailer.configured and settings.is_production:
            await mailer.send_verification_email(user.email, verification_token)

        return user, create_access_token(user.id)

    async def login(self, db: AsyncSession, request: LoginRequest) -> Tuple[User, str]:
        user = await self._find_by_email(db, request.email)
        if user is None or not await verify_password(request.password, user.password_hash):
            raise AuthenticationError(message="Invalid credentials")

        user.last_active = utcnow()
        await db.flush()
        logger.info("User logged in: %s", user.id)
        return user, create_access_token(user.id)

    # ── Email verification ────────────────────────────────────────────────
    async def verify_email(self, db: AsyncSession, token: str, mailer: Mailer) -> User:
        result = await db.execute(select(User).where(User.email_verification_token == token))
        user = result.scalar_one_or_none()
        if user is None or not token:
            raise ValidationError(message="Invalid verification token", field="token")

        user.is_email_verified = True
        user.email_verification_token = None
        await db.flush()

        if mailer.configured:
            try:
                await mailer.send_welcome_email(user.email, user.first_name)
            except EmailDeliveryError:
                # The account is verified either way
                logger.error("Welcome email to user %s not delivered", user.id)
        return user

    async def resend_verification(self, db: AsyncSession, user: User, mailer: Mailer) -> None:
        if user.is_email_verified:
            raise ValidationError(message="Email already verified")

        user.email_verification_token = new_opaque_token()
        await db.flush()

        if mailer.configured:
            await mailer.send_verification_email(user.email, user.email_verification_token)

    # ── Password reset ────────────────────────────────────────────────────
    async def forgot_password(self, db: AsyncSession, email: str, mailer: Mailer) -> None:
        user = await self._find_by_email(db, email)
        if user is None:
            raise NotFoundError(resource="User")

        user.reset_password_token = new_opaque_token()
        user.reset_password_expires = utcnow() + timedelta(minutes=settings.reset_token_ttl_minutes)
        await db.flush()

        if mailer.configured:
            await mailer.send_password_reset_email(user.email, user.reset_password_token)

    async def reset_password(self, db: AsyncSession, request: ResetPasswordRequest) -> None:
        result = await db.execute(select(User).where(User.reset_password_token == request.token))
        user = result.scalar_one_or_none()
        expires = as_utc(user.reset_password_expires) if user is not None else None
        if user is None or expires is None or expires <= utcnow():
            raise ValidationError(message="Invalid or expired reset token", field="token")

        user.password_hash = await hash_password(request.new_password)
        user.reset_password_token = None
        user.reset_password_expires = None
        await db.flush()
        logger.info("Password reset for user %s", user.id)

    # ── Profile ───────────────────────────────────────────────────────────
    async def update_profile(self, db: AsyncSession, user: User, request: ProfileUpdateRequest) -> User:
        if request.first_name:
            user.first_name = request.first_name
        if request.last_name:
            user.last_name = request.last_name
        if request.preferences is not None:
            # Merge: only keys the client sent
            for field, value in request.preferences.model_dump(exclude_none=True).items():
                setattr(user, field, value)
        await db.flush()
        return user

    async def change_password(self, db: AsyncSession, user: User, request: ChangePasswordRequest) -> None:
        if not await verify_password(request.current_password, user.password_hash):
            raise ValidationError(message="Current password is incorrect", field="currentPassword")

        user.password_hash = await hash_password(request.new_password)
        await db.flush()
        logger.info("Password changed for user %s", user.id)


auth_service = AuthService()
