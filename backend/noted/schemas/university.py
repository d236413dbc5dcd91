"""
Noted.AI Backend: University Partnership Schemas
================================================

Request/response models for /api/universities/*. `UniversityOut.from_university()`
regroups the flat partnership/statistics/settings columns into the nested
document shape the partner dashboard renders.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import EmailStr, Field, field_validator

from noted.models.university import University
from noted.schemas.common import CamelModel
from noted.schemas.user import SubscriptionOut, UsageOut


# ── Requests ─────────────────────────────────────────────────────────────
class ContactPerson(CamelModel):
    name: Optional[str] = None
    title: Optional[str] = None
    phone: Optional[str] = None


class Department(CamelModel):
    name: str
    code: Optional[str] = None
    student_count: int = 0


class ApplyRequest(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    domain: str = Field(min_length=3, max_length=255)
    contact_email: EmailStr
    contact_person: Optional[ContactPerson] = None
    departments: List[Department] = Field(default_factory=list)
    estimated_students: int = Field(default=0, ge=0)

    @field_validator("domain")
    @classmethod
    def normalize_domain(cls, v: str) -> str:
        return v.strip().lower()


class CustomBranding(CamelModel):
    logo: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None


class SettingsFeatures(CamelModel):
    enable_sharing: Optional[bool] = None
    enable_analytics: Optional[bool] = None
    require_verification: Optional[bool] = None


class SettingsUpdateRequest(CamelModel):
    allowed_domains: Optional[List[str]] = None
    default_citation_style: Optional[Literal["APA", "MLA", "Chicago", "Harvard"]] = None
    custom_branding: Optional[CustomBranding] = None
    features: Optional[SettingsFeatures] = None


class PartnershipUpdateRequest(CamelModel):
    status: Optional[Literal["pending", "active", "inactive", "expired"]] = None
    plan: Optional[Literal["basic", "premium", "enterprise"]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


# ── Output building blocks ───────────────────────────────────────────────
class PartnershipOut(CamelModel):
    status: str
    plan: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    features: Dict[str, Any]
    pricing: Dict[str, Any]


class StatisticsOut(CamelModel):
    total_students: int
    active_users: int
    total_notes: int
    total_summaries: int
    total_flashcards: int
    average_usage_per_student: float


class SettingsOut(CamelModel):
    allowed_domains: List[str]
    default_citation_style: str
    custom_branding: Dict[str, Any]
    features: Dict[str, Any]


class BillingOut(CamelModel):
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    billing_cycle: str
    next_billing_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    payment_method: Optional[str] = None


def partnership_of(university: University) -> PartnershipOut:
    return PartnershipOut(
        status=university.partnership_status,
        plan=university.partnership_plan,
        start_date=university.partnership_start_date,
        end_date=university.partnership_end_date,
        features=dict(university.partnership_features or {}),
        pricing=dict(university.pricing or {}),
    )


def settings_of(university: University) -> SettingsOut:
    return SettingsOut(
        allowed_domains=list(university.allowed_domains or []),
        default_citation_style=university.default_citation_style,
        custom_branding=dict(university.custom_branding or {}),
        features=dict(university.settings_features or {}),
    )


class UniversityOut(CamelModel):
    id: uuid.UUID
    name: str
    domain: str
    contact_email: str
    contact_person: Dict[str, Any]
    partnership: PartnershipOut
    departments: List[Dict[str, Any]]
    statistics: StatisticsOut
    settings: SettingsOut
    integrations: Dict[str, Any]
    billing: BillingOut
    is_active: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_university(cls, university: University) -> "UniversityOut":
        return cls(
            id=university.id,
            name=university.name,
            domain=university.domain,
            contact_email=university.contact_email,
            contact_person=dict(university.contact_person or {}),
            partnership=partnership_of(university),
            departments=list(university.departments or []),
            statistics=StatisticsOut(
                total_students=university.total_students,
                active_users=university.active_users,
                total_notes=university.total_notes,
                total_summaries=university.total_summaries,
                total_flashcards=university.total_flashcards,
                average_usage_per_student=university.average_usage_per_student,
            ),
            settings=settings_of(university),
            integrations=dict(university.integrations or {}),
            billing=BillingOut(
                stripe_customer_id=university.stripe_customer_id,
                stripe_subscription_id=university.stripe_subscription_id,
                billing_cycle=university.billing_cycle,
                next_billing_date=university.next_billing_date,
                last_payment_date=university.last_payment_date,
                payment_method=university.payment_method,
            ),
            is_active=university.is_active,
            created_at=university.created_at,
        )


class UniversitySummary(CamelModel):
    id: uuid.UUID
    name: str
    domain: str
    partnership: PartnershipOut


# ── Responses ────────────────────────────────────────────────────────────
class ApplyResponse(CamelModel):
    message: str
    university: UniversitySummary


class PartnershipStatus(CamelModel):
    status: str
    plan: str


class UniversityStatusResponse(CamelModel):
    name: str
    domain: str
    partnership: PartnershipStatus


class RecentUser(CamelModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    created_at: Optional[datetime] = None


class DashboardResponse(CamelModel):
    university: UniversityOut
    recent_users: List[RecentUser]


class SettingsResponse(CamelModel):
    message: str
    settings: SettingsOut


class DailyUserAnalytics(CamelModel):
    date: str = Field(description="Signup day, YYYY-MM-DD")
    new_users: int
    active_users: int


class UsageAnalytics(CamelModel):
    total_notes: int = 0
    total_summaries: int = 0
    total_flashcards: int = 0
    total_assignments: int = 0
    average_usage_per_user: float = 0.0


class AnalyticsResponse(CamelModel):
    user_analytics: List[DailyUserAnalytics]
    usage_analytics: UsageAnalytics
    period: str


class UniversityListItem(CamelModel):
    id: uuid.UUID
    name: str
    domain: str
    contact_email: str
    partnership: PartnershipOut
    statistics: StatisticsOut


class UniversityListResponse(CamelModel):
    universities: List[UniversityListItem]


class PartnershipResponse(CamelModel):
    message: str
    partnership: PartnershipOut


class UniversityMember(CamelModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    role: str
    subscription: SubscriptionOut
    usage: UsageOut
    created_at: Optional[datetime] = None


class UniversityUsersResponse(CamelModel):
    users: List[UniversityMember]
    total_pages: int
    current_page: int
    total: int
