"""
Noted.AI Backend: University Partnership Service
================================================

What:  Partnership applications, public status lookup, the partner dashboard
       (statistics, settings, analytics, member list) and admin management.
How:   Universities and their members are joined by email domain:
       users.university_domain = universities.domain.

Access rules:
    apply, status/{domain}                 → public
    dashboard, settings, analytics, users  → admin role or the university's
                                             contact email
    list, partnership                      → admin role only
    anyone else                            → 403 "Access denied"
"""

import logging
import math
from collections import OrderedDict
from datetime import timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from noted.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from noted.models.university import University
from noted.models.user import User, as_utc, utcnow
from noted.schemas.university import (
    AnalyticsResponse,
    ApplyRequest,
    ApplyResponse,
    DailyUserAnalytics,
    DashboardResponse,
    PartnershipResponse,
    PartnershipStatus,
    PartnershipUpdateRequest,
    RecentUser,
    SettingsResponse,
    SettingsUpdateRequest,
    StatisticsOut,
    UniversityListItem,
    UniversityListResponse,
    UniversityMember,
    UniversityOut,
    UniversityStatusResponse,
    UniversitySummary,
    UniversityUsersResponse,
    partnership_of,
    settings_of,
)
from noted.schemas.user import SubscriptionOut, UsageOut

logger = logging.getLogger(__name__)

ACTIVE_WINDOW_DAYS = 30
RECENT_USERS = 10
ANALYTICS_PERIODS = {"7d": 7, "30d": 30, "90d": 90}


def _require_admin(user: User) -> None:
    if user.role != "admin":
        raise PermissionDeniedError()


def _require_manager(user: User, university: University) -> None:
    if user.role != "admin" and user.email.lower() != university.contact_email.lower():
        raise PermissionDeniedError()


class UniversityService:
    """Stateless; one module-level instance."""

    async def _get(self, db: AsyncSession, university_id: UUID) -> University:
        university = await db.get(University, university_id)
        if university is None:
            raise NotFoundError(resource="University", resource_id=str(university_id))
        return university

    async def _get_managed(self, db: AsyncSession, user: User, university_id: UUID) -> University:
        university = await self._get(db, university_id)
        _require_manager(user, university)
        return university

    # ── Public ────────────────────────────────────────────────────────────
    async def apply(self, db: AsyncSession, request: ApplyRequest) -> ApplyResponse:
        existing = await db.execute(select(University.id).where(University.domain == request.domain))
        if existing.first() is not None:
            raise ValidationError(message="University already registered", field="domain")

        university = University(
            name=request.name,
            domain=request.domain,
            contact_email=str(request.contact_email).lower(),
            contact_person=(
                request.contact_person.model_dump(by_alias=True, exclude_none=True)
                if request.contact_person else {}
            ),
            departments=[d.model_dump(by_alias=True, exclude_none=True) for d in request.departments],
            total_students=request.estimated_students,
        )
        db.add(university)
        try:
            await db.flush()
        except IntegrityError:
            # A concurrent application for the same domain won
            raise ConflictError(message="University already registered")
        logger.info("Partnership application: %s (%s)", university.domain, university.id)

        return ApplyResponse(
            message="Partnership application submitted successfully",
            university=UniversitySummary(
                id=university.id,
                name=university.name,
                domain=university.domain,
                partnership=partnership_of(university),
            ),
        )

    async def status(self, db: AsyncSession, domain: str) -> UniversityStatusResponse:
        result = await db.execute(select(University).where(University.domain == domain.lower()))
        university = result.scalar_one_or_none()
        if university is None:
            raise NotFoundError(resource="University")
        return UniversityStatusResponse(
            name=university.name,
            domain=university.domain,
            partnership=PartnershipStatus(
                status=university.partnership_status,
                plan=university.partnership_plan,
            ),
        )

    # ── Partner dashboard ─────────────────────────────────────────────────
    async def refresh_statistics(self, db: AsyncSession, university: University) -> None:
        """
        Recompute statistics from member accounts.

        With no members yet, the stored numbers (seeded from the application's
        estimatedStudents) are left alone.
        """
        active_since = utcnow() - timedelta(days=ACTIVE_WINDOW_DAYS)
        row = (
            await db.execute(
                select(
                    func.count(User.id),
                    func.count(User.id).filter(User.last_active >= active_since),
                    func.coalesce(func.sum(User.usage_total_notes), 0),
                    func.coalesce(func.sum(User.usage_total_summaries), 0),
                    func.coalesce(func.sum(User.usage_total_flashcards), 0),
                ).where(User.university_domain == university.domain)
            )
        ).one()
        students, active, notes, summaries, flashcards = row
        if students == 0:
            return

        university.total_students = students
        university.active_users = active
        university.total_notes = notes
        university.total_summaries = summaries
        university.total_flashcards = flashcards
        university.average_usage_per_student = (notes + summaries + flashcards) / students
        await db.flush()

    async def dashboard(self, db: AsyncSession, user: User, university_id: UUID) -> DashboardResponse:
        university = await self._get_managed(db, user, university_id)
        await self.refresh_statistics(db, university)

        result = await db.execute(
            select(User)
            .where(User.university_domain == university.domain)
            .order_by(User.created_at.desc())
            .limit(RECENT_USERS)
        )
        recent = [
            RecentUser(
                id=member.id,
                first_name=member.first_name,
                last_name=member.last_name,
                email=member.email,
                created_at=member.created_at,
            )
            for member in result.scalars().all()
        ]
        return DashboardResponse(university=UniversityOut.from_university(university), recent_users=recent)

    async def update_settings(
        self, db: AsyncSession, user: User, university_id: UUID, request: SettingsUpdateRequest
    ) -> SettingsResponse:
        university = await self._get_managed(db, user, university_id)

        if request.allowed_domains:
            university.allowed_domains = [d.strip().lower() for d in request.allowed_domains]
        if request.default_citation_style:
            university.default_citation_style = request.default_citation_style
        if request.custom_branding is not None:
            university.custom_branding = request.custom_branding.model_dump(by_alias=True, exclude_none=True)
        if request.features is not None:
            university.settings_features = {
                **(university.settings_features or {}),
                **request.features.model_dump(by_alias=True, exclude_none=True),
            }
        await db.flush()

        return SettingsResponse(
            message="University settings updated successfully",
            settings=settings_of(university),
        )

    async def analytics(
        self, db: AsyncSession, user: User, university_id: UUID, period: str = "30d"
    ) -> AnalyticsResponse:
        university = await self._get_managed(db, user, university_id)

        days = ANALYTICS_PERIODS.get(period, 90)
        active_since = utcnow() - timedelta(days=days)

        result = await db.execute(
            select(
                User.created_at,
                User.last_active,
                User.usage_total_notes,
                User.usage_total_summaries,
                User.usage_total_flashcards,
                User.usage_total_assignments,
            )
            .where(User.university_domain == university.domain)
            .order_by(User.created_at)
        )
        rows = result.all()

        # One bucket per signup day, oldest first
        daily: "OrderedDict[str, DailyUserAnalytics]" = OrderedDict()
        totals = {"notes": 0, "summaries": 0, "flashcards": 0, "assignments": 0}
        for created_at, last_active, notes, summaries, flashcards, assignments in rows:
            day = as_utc(created_at).date().isoformat()
            bucket = daily.setdefault(day, DailyUserAnalytics(date=day, new_users=0, active_users=0))
            bucket.new_users += 1
            if last_active is not None and as_utc(last_active) >= active_since:
                bucket.active_users += 1
            totals["notes"] += notes
            totals["summaries"] += summaries
            totals["flashcards"] += flashcards
            totals["assignments"] += assignments

        usage = {
            "total_notes": totals["notes"],
            "total_summaries": totals["summaries"],
            "total_flashcards": totals["flashcards"],
            "total_assignments": totals["assignments"],
            "average_usage_per_user": (sum(totals.values()) / len(rows)) if rows else 0.0,
        }
        return AnalyticsResponse(
            user_analytics=list(daily.values()),
            usage_analytics=usage,
            period=period,
        )

    async def members(
        self, db: AsyncSession, user: User, university_id: UUID, page: int = 1, limit: int = 20
    ) -> UniversityUsersResponse:
        university = await self._get_managed(db, user, university_id)

        in_university = User.university_domain == university.domain
        total = (
            await db.execute(select(func.count()).select_from(User).where(in_university))
        ).scalar_one()
        result = await db.execute(
            select(User)
            .where(in_university)
            .order_by(User.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        return UniversityUsersResponse(
            users=[
                UniversityMember(
                    id=member.id,
                    first_name=member.first_name,
                    last_name=member.last_name,
                    email=member.email,
                    role=member.role,
                    subscription=SubscriptionOut.from_user(member),
                    usage=UsageOut.from_user(member),
                    created_at=member.created_at,
                )
                for member in result.scalars().all()
            ],
            total_pages=math.ceil(total / limit),
            current_page=page,
            total=total,
        )

    # ── Admin ─────────────────────────────────────────────────────────────
    async def list_universities(self, db: AsyncSession, user: User) -> UniversityListResponse:
        _require_admin(user)
        result = await db.execute(select(University).order_by(University.created_at.desc()))
        return UniversityListResponse(
            universities=[
                UniversityListItem(
                    id=u.id,
                    name=u.name,
                    domain=u.domain,
                    contact_email=u.contact_email,
                    partnership=partnership_of(u),
                    statistics=StatisticsOut(
                        total_students=u.total_students,
                        active_users=u.active_users,
                        total_notes=u.total_notes,
                        total_summaries=u.total_summaries,
                        total_flashcards=u.total_flashcards,
                        average_usage_per_student=u.average_usage_per_student,
                    ),
                )
                for u in result.scalars().all()
            ]
        )

    async def update_partnership(
        self, db: AsyncSession, user: User, university_id: UUID, request: PartnershipUpdateRequest
    ) -> PartnershipResponse:
        _require_admin(user)
        university = await self._get(db, university_id)

        if request.status:
            university.partnership_status = request.status
        if request.plan:
            university.partnership_plan = request.plan
        if request.start_date:
            university.partnership_start_date = request.start_date
        if request.end_date:
            university.partnership_end_date = request.end_date
        await db.flush()
        logger.info(
            "Partnership for %s updated: status=%s plan=%s",
            university.domain, university.partnership_status, university.partnership_plan,
        )

        return PartnershipResponse(
            message="Partnership status updated successfully",
            partnership=partnership_of(university),
        )


university_service = UniversityService()
