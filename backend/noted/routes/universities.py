"""
Noted.AI Backend: University Partnership Routes
===============================================

What:  /api/universities/*: public application and status lookup, the
       partner dashboard, and admin partnership management.
How:   Access checks (admin role, or the university's contact email) live
       in UniversityService so they are covered by service-level tests.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from noted.database import get_db_session
from noted.dependencies import get_current_user
from noted.models.user import User
from noted.schemas.common import ErrorResponse
from noted.schemas.university import (
    AnalyticsResponse,
    ApplyRequest,
    ApplyResponse,
    DashboardResponse,
    PartnershipResponse,
    PartnershipUpdateRequest,
    SettingsResponse,
    SettingsUpdateRequest,
    UniversityListResponse,
    UniversityStatusResponse,
    UniversityUsersResponse,
)
from noted.services.university_service import university_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/universities", tags=["Universities"])

MANAGER_RESPONSES = {
    403: {"description": "Not an admin or the university's contact", "model": ErrorResponse},
    404: {"description": "University not found", "model": ErrorResponse},
}


# ── Public ────────────────────────────────────────────────────────────────
@router.post(
    "/apply",
    status_code=201,
    response_model=ApplyResponse,
    responses={400: {"description": "Domain already registered", "model": ErrorResponse}},
    summary="Apply for a partnership",
)
async def apply(body: ApplyRequest, db: AsyncSession = Depends(get_db_session)) -> ApplyResponse:
    return await university_service.apply(db, body)


@router.get(
    "/status/{domain}",
    response_model=UniversityStatusResponse,
    responses={404: {"description": "University not found", "model": ErrorResponse}},
    summary="Partnership status by email domain",
)
async def partnership_status(domain: str, db: AsyncSession = Depends(get_db_session)) -> UniversityStatusResponse:
    return await university_service.status(db, domain)


# ── Admin ─────────────────────────────────────────────────────────────────
@router.get(
    "",
    response_model=UniversityListResponse,
    responses={403: {"description": "Admins only", "model": ErrorResponse}},
    summary="All universities, newest first",
)
async def list_universities(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UniversityListResponse:
    return await university_service.list_universities(db, user)


@router.patch(
    "/{university_id}/partnership",
    response_model=PartnershipResponse,
    responses=MANAGER_RESPONSES,
    summary="Set partnership status, plan and dates",
)
async def update_partnership(
    university_id: UUID,
    body: PartnershipUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PartnershipResponse:
    return await university_service.update_partnership(db, user, university_id, body)


# ── Partner dashboard ─────────────────────────────────────────────────────
@router.get(
    "/dashboard/{university_id}",
    response_model=DashboardResponse,
    responses=MANAGER_RESPONSES,
    summary="Refreshed statistics and newest members",
)
async def dashboard(
    university_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> DashboardResponse:
    return await university_service.dashboard(db, user, university_id)


@router.put(
    "/{university_id}/settings",
    response_model=SettingsResponse,
    responses=MANAGER_RESPONSES,
    summary="Update domains, citation style, branding and feature toggles",
)
async def update_settings(
    university_id: UUID,
    body: SettingsUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SettingsResponse:
    return await university_service.update_settings(db, user, university_id, body)


@router.get(
    "/{university_id}/analytics",
    response_model=AnalyticsResponse,
    responses=MANAGER_RESPONSES,
    summary="Signups per day and usage totals",
)
async def analytics(
    university_id: UUID,
    period: str = Query(default="30d", description="7d, 30d or 90d; anything else means 90d"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AnalyticsResponse:
    return await university_service.analytics(db, user, university_id, period)


@router.get(
    "/{university_id}/users",
    response_model=UniversityUsersResponse,
    responses=MANAGER_RESPONSES,
    summary="Members, newest first",
)
async def members(
    university_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UniversityUsersResponse:
    return await university_service.members(db, user, university_id, page, limit)
