"""
Noted.AI Backend: Account & Auth Schemas
========================================

What:  Request bodies for /api/auth/* and the nested user representation
       returned by auth, subscription and AI usage endpoints.
How:   `UserOut.from_user()` re-nests the flat users row into the
       subscription / usage / university / preferences groups.
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import EmailStr, Field

from noted.models.user import User
from noted.schemas.common import CamelModel


# ── Nested account groups ────────────────────────────────────────────────
class FeatureLimits(CamelModel):
    ai_summaries: int
    flashcard_generation: int
    assignment_help: int
    citations: int

    @classmethod
    def from_user(cls, user: User) -> "FeatureLimits":
        return cls(
            ai_summaries=user.limit_ai_summaries,
            flashcard_generation=user.limit_flashcard_generation,
            assignment_help=user.limit_assignment_help,
            citations=user.limit_citations,
        )


class SubscriptionOut(CamelModel):
    plan: str
    status: str
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    features: FeatureLimits

    @classmethod
    def from_user(cls, user: User) -> "SubscriptionOut":
        return cls(
            plan=user.plan,
            status=user.subscription_status,
            stripe_customer_id=user.stripe_customer_id,
            stripe_subscription_id=user.stripe_subscription_id,
            current_period_end=user.current_period_end,
            features=FeatureLimits.from_user(user),
        )


class UsageOut(CamelModel):
    total_notes: int
    total_summaries: int
    total_flashcards: int
    total_assignments: int
    total_citations: int
    last_active: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UsageOut":
        return cls(
            total_notes=user.usage_total_notes,
            total_summaries=user.usage_total_summaries,
            total_flashcards=user.usage_total_flashcards,
            total_assignments=user.usage_total_assignments,
            total_citations=user.usage_total_citations,
            last_active=user.last_active,
        )


class UniversityAffiliation(CamelModel):
    name: Optional[str] = None
    domain: Optional[str] = None
    student_id: Optional[str] = None
    department: Optional[str] = None
    year: Optional[str] = None


class Preferences(CamelModel):
    citation_style: Literal["APA", "MLA", "Chicago", "Harvard"] = "APA"
    language: str = "en"
    theme: Literal["light", "dark", "auto"] = "auto"


class UserOut(CamelModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: str
    subscription: SubscriptionOut
    university: Optional[UniversityAffiliation] = None
    preferences: Preferences
    usage: UsageOut
    is_email_verified: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        university = None
        if user.university_domain:
            university = UniversityAffiliation(
                name=user.university_name,
                domain=user.university_domain,
                student_id=user.university_student_id,
                department=user.university_department,
                year=user.university_year,
            )
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            subscription=SubscriptionOut.from_user(user),
            university=university,
            preferences=Preferences(
                citation_style=user.citation_style,
                language=user.language,
                theme=user.theme,
            ),
            usage=UsageOut.from_user(user),
            is_email_verified=user.is_email_verified,
            created_at=user.created_at,
        )


# ── Requests ─────────────────────────────────────────────────────────────
class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    university_domain: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class VerifyEmailRequest(CamelModel):
    token: str


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str
    new_password: str = Field(min_length=6)


class PreferencesUpdate(CamelModel):
    citation_style: Optional[Literal["APA", "MLA", "Chicago", "Harvard"]] = None
    language: Optional[str] = None
    theme: Optional[Literal["light", "dark", "auto"]] = None


class ProfileUpdateRequest(CamelModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    preferences: Optional[PreferencesUpdate] = None


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=6)


# ── Responses ────────────────────────────────────────────────────────────
class AuthResponse(CamelModel):
    message: str
    token: str
    user: UserOut


class UserEnvelope(CamelModel):
    user: UserOut


class ProfileResponse(CamelModel):
    message: str
    user: UserOut
