"""
Noted.AI Backend: Authentication Routes
=======================================

What:  /api/auth/*: registration, login, email verification, password
       reset, and the signed-in user's profile.
How:   Thin handlers; AuthService does the work and raises domain errors
       that main.py turns into JSON responses.

Route Inventory:
    POST /api/auth/register              public   201 {message, token, user}
    POST /api/auth/login                 public   {message, token, user}
    POST /api/auth/verify-email          public   {message}
    POST /api/auth/resend-verification   bearer   {message}
    POST /api/auth/forgot-password       public   {message}
    POST /api/auth/reset-password        public   {message}
    GET  /api/auth/me                    bearer   {user}
    PUT  /api/auth/profile               bearer   {message, user}
    PUT  /api/auth/change-password       bearer   {message}
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from noted.database import get_db_session
from noted.dependencies import get_current_user, get_mailer
from noted.models.user import User
from noted.schemas.common import ErrorResponse, MessageResponse
from noted.schemas.user import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserEnvelope,
    UserOut,
    VerifyEmailRequest,
)
from noted.services.auth_service import auth_service
from noted.services.email_service import Mailer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

UNAUTHORIZED = {401: {"description": "Missing or invalid token", "model": ErrorResponse}}


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    responses={400: {"description": "Email taken or university not partnered", "model": ErrorResponse}},
    summary="Create an account",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
    mailer: Mailer = Depends(get_mailer),
) -> AuthResponse:
    user, token = await auth_service.register(db, body, mailer)
    return AuthResponse(
        message="User registered successfully",
        token=token,
        user=UserOut.from_user(user),
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Exchange email and password for a bearer token",
)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db_session)) -> AuthResponse:
    user, token = await auth_service.login(db, body)
    return AuthResponse(message="Login successful", token=token, user=UserOut.from_user(user))


@router.post("/verify-email", response_model=MessageResponse, summary="Confirm an email address")
async def verify_email(
    body: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db_session),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    await auth_service.verify_email(db, body.token, mailer)
    return MessageResponse(message="Email verified successfully")


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    responses=UNAUTHORIZED,
    summary="Issue a fresh verification token",
)
async def resend_verification(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    await auth_service.resend_verification(db, user, mailer)
    return MessageResponse(message="Verification email sent")


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    responses={404: {"description": "Unknown email", "model": ErrorResponse}},
    summary="Start a password reset",
)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db_session),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    await auth_service.forgot_password(db, body.email, mailer)
    return MessageResponse(message="Password reset email sent")


@router.post("/reset-password", response_model=MessageResponse, summary="Set a new password with a reset token")
async def reset_password(
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await auth_service.reset_password(db, body)
    return MessageResponse(message="Password reset successfully")


@router.get("/me", response_model=UserEnvelope, responses=UNAUTHORIZED, summary="Current user")
async def me(user: User = Depends(get_current_user)) -> UserEnvelope:
    return UserEnvelope(user=UserOut.from_user(user))


@router.put("/profile", response_model=ProfileResponse, responses=UNAUTHORIZED, summary="Update name and preferences")
async def update_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    user = await auth_service.update_profile(db, user, body)
    return ProfileResponse(message="Profile updated successfully", user=UserOut.from_user(user))


@router.put("/change-password", response_model=MessageResponse, responses=UNAUTHORIZED, summary="Change password")
async def change_password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await auth_service.change_password(db, user, body)
    return MessageResponse(message="Password changed successfully")
