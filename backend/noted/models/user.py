"""
Noted.AI Backend: User SQLAlchemy Model
=======================================

What:  ORM model for the `users` table: identity, subscription, quotas,
       usage counters, university affiliation and preferences.
Why:   Quota enforcement needs usage and limit side by side in one row so a
       single conditional UPDATE can check and consume atomically.
How:   The nested account document is flattened into column groups; the API
       layer (schemas/user.py) re-nests it as camelCase JSON.

Column groups:
    identity      email (unique, lowercase), password_hash, names, role
    subscription  plan, subscription_status, stripe ids, current_period_end
    limits        limit_* per metered feature (-1 = unlimited)
    usage         usage_total_* counters, last_active
    university    university_* affiliation fields
    preferences   citation_style, language, theme
    tokens        email verification + password reset
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from noted.database import Base

ROLES = ("student", "teacher", "admin")
PLANS = ("free", "student", "university")
SUBSCRIPTION_STATUSES = ("active", "inactive", "cancelled", "incomplete", "past_due", "trialing")
CITATION_STYLES = ("APA", "MLA", "Chicago", "Harvard")
THEMES = ("light", "dark", "auto")

UNLIMITED = -1


@dataclass(frozen=True)
class FeatureColumns:
    """Maps a metered feature key to its usage counter and limit columns."""

    usage: str
    limit: str


FEATURES: Dict[str, FeatureColumns] = {
    "aiSummaries": FeatureColumns("usage_total_summaries", "limit_ai_summaries"),
    "flashcardGeneration": FeatureColumns("usage_total_flashcards", "limit_flashcard_generation"),
    "assignmentHelp": FeatureColumns("usage_total_assignments", "limit_assignment_help"),
    "citations": FeatureColumns("usage_total_citations", "limit_citations"),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(Base):
    """
    A registered account.

    Query Patterns:
        - Login / duplicate check: WHERE email = :email (unique index)
        - Webhooks: WHERE stripe_subscription_id / stripe_customer_id = :id
        - University statistics: WHERE university_domain = :domain
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # ── Identity ──────────────────────────────────────────────────────────
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="student", server_default=text("'student'")
    )

    # ── Subscription ──────────────────────────────────────────────────────
    plan: Mapped[str] = mapped_column(
        String(20), nullable=False, default="free", server_default=text("'free'")
    )
    subscription_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active", server_default=text("'active'")
    )
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Feature limits (-1 = unlimited) ───────────────────────────────────
    limit_ai_summaries: Mapped[int] = mapped_column(
        Integer, nullable=False, default=5, server_default=text("5")
    )
    limit_flashcard_generation: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, server_default=text("3")
    )
    limit_assignment_help: Mapped[int] = mapped_column(
        Integer, nullable=False, default=2, server_default=text("2")
    )
    limit_citations: Mapped[int] = mapped_column(
        Integer, nullable=False, default=10, server_default=text("10")
    )

    # ── Usage counters ────────────────────────────────────────────────────
    usage_total_notes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    usage_total_summaries: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    usage_total_flashcards: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    usage_total_assignments: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    usage_total_citations: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_active: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # ── University affiliation ────────────────────────────────────────────
    university_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    university_domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    university_student_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    university_department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    university_year: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # ── Preferences ───────────────────────────────────────────────────────
    citation_style: Mapped[str] = mapped_column(
        String(20), nullable=False, default="APA", server_default=text("'APA'")
    )
    language: Mapped[str] = mapped_column(
        String(10), nullable=False, default="en", server_default=text("'en'")
    )
    theme: Mapped[str] = mapped_column(
        String(10), nullable=False, default="auto", server_default=text("'auto'")
    )

    # ── Verification / reset ──────────────────────────────────────────────
    is_email_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    email_verification_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    reset_password_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    reset_password_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_users_university_domain", "university_domain"),
        Index("idx_users_stripe_customer_id", "stripe_customer_id"),
        Index("idx_users_stripe_subscription_id", "stripe_subscription_id"),
    )

    # ── Feature helpers ───────────────────────────────────────────────────
    def feature_usage(self, feature: str) -> int:
        return getattr(self, FEATURES[feature].usage)

    def feature_limit(self, feature: str) -> int:
        return getattr(self, FEATURES[feature].limit)

    def can_use_feature(self, feature: str) -> bool:
        """In-memory form of the rule quota_service enforces in SQL."""
        if self.plan == "university":
            return True
        limit = self.feature_limit(feature)
        return limit == UNLIMITED or self.feature_usage(feature) < limit

    def apply_features(self, features: Dict[str, int]) -> None:
        for feature, value in features.items():
            setattr(self, FEATURES[feature].limit, value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', plan='{self.plan}')>"
