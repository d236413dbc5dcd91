"""
Noted.AI Backend: University SQLAlchemy Model
=============================================

What:  Partnership record for a university, keyed by its email domain.
How:   Scalar fields that are filtered or aggregated get their own columns
       (domain, partnership status, statistics). Free-form configuration
       blocks (branding, integrations, pricing) are JSON.

Statistics are a cache: university_service recomputes them from the users
table whenever the dashboard is opened.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from noted.database import Base
from noted.models.user import as_utc, utcnow

PARTNERSHIP_STATUSES = ("pending", "active", "inactive", "expired")
PARTNERSHIP_PLANS = ("basic", "premium", "enterprise")
BILLING_CYCLES = ("monthly", "annual")
PAYMENT_METHODS = ("card", "bank_transfer", "invoice")
LMS_TYPES = ("canvas", "blackboard", "moodle", "schoology", "other")
SSO_PROVIDERS = ("saml", "oauth", "none")


def default_partnership_features() -> dict:
    return {
        "customBranding": False,
        "analytics": False,
        "lmsIntegration": False,
        "prioritySupport": False,
        "unlimitedUsers": False,
    }


def default_settings_features() -> dict:
    return {"enableSharing": True, "enableAnalytics": True, "requireVerification": False}


def default_integrations() -> dict:
    return {
        "lms": {"type": None, "apiKey": None, "webhookUrl": None, "isActive": False},
        "sso": {"provider": "none", "config": {}},
    }


class University(Base):
    __tablename__ = "universities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # ── Partnership ───────────────────────────────────────────────────────
    partnership_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", server_default=text("'pending'")
    )
    partnership_plan: Mapped[str] = mapped_column(
        String(20), nullable=False, default="basic", server_default=text("'basic'")
    )
    partnership_start_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    partnership_end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    partnership_features: Mapped[dict] = mapped_column(
        JSON, nullable=False, default=default_partnership_features
    )
    pricing: Mapped[dict] = mapped_column(
        JSON, nullable=False,
        default=lambda: {"monthlyRate": None, "annualRate": None, "currency": "USD"},
    )

    departments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # ── Statistics (recomputed on demand) ─────────────────────────────────
    total_students: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    active_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    total_notes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    total_summaries: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    total_flashcards: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    average_usage_per_student: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default=text("0")
    )

    # ── Settings ──────────────────────────────────────────────────────────
    allowed_domains: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    default_citation_style: Mapped[str] = mapped_column(
        String(20), nullable=False, default="APA", server_default=text("'APA'")
    )
    custom_branding: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    settings_features: Mapped[dict] = mapped_column(
        JSON, nullable=False, default=default_settings_features
    )
    integrations: Mapped[dict] = mapped_column(JSON, nullable=False, default=default_integrations)

    # ── Billing ───────────────────────────────────────────────────────────
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_cycle: Mapped[str] = mapped_column(
        String(20), nullable=False, default="annual", server_default=text("'annual'")
    )
    next_billing_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_universities_partnership_status", "partnership_status"),
    )

    @property
    def is_active(self) -> bool:
        """Active partnership that has not passed its end date."""
        if self.partnership_status != "active":
            return False
        end = as_utc(self.partnership_end_date)
        return end is None or end > utcnow()

    def __repr__(self) -> str:
        return f"<University(domain='{self.domain}', status='{self.partnership_status}')>"
