"""
Noted.AI Backend: AI Feature Routes
===================================

What:  /api/ai/summarize, /flashcards, /assignment, /cite and /usage.
How:   Each metered route depends on `require_feature(<key>)`, which turns
       the request away early when the allowance is used up. AIService then
       validates input, calls OpenAI or the fallback generator, and charges
       the unit once output exists.

Status codes:
    200  generated (by OpenAI, or by the fallback with isFallback=true)
    400  content too short / required fields missing (unit not charged)
    403  allowance used up: {error, code, currentUsage, limit}
         (also when a concurrent request took the last unit first)
    503  OpenAI failing or circuit open (unit not charged)
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from noted.database import get_db_session
from noted.dependencies import get_ai_service, get_current_user, require_feature
from noted.models.user import User
from noted.schemas.ai import (
    AssignmentRequest,
    AssignmentResponse,
    CitationResponse,
    CiteRequest,
    FlashcardsRequest,
    FlashcardsResponse,
    SummarizeRequest,
    SummarizeResponse,
    UsageResponse,
)
from noted.schemas.common import ErrorResponse
from noted.services.ai_service import AIService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["AI"])

METERED_RESPONSES = {
    400: {"description": "Input rejected; usage not charged", "model": ErrorResponse},
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    403: {"description": "Feature limit reached", "model": ErrorResponse},
    503: {"description": "AI provider unavailable; usage not charged", "model": ErrorResponse},
}


@router.post("/summarize", response_model=SummarizeResponse, responses=METERED_RESPONSES, summary="Summarize text")
async def summarize(
    body: SummarizeRequest,
    user: User = Depends(require_feature("aiSummaries")),
    ai: AIService = Depends(get_ai_service),
    db: AsyncSession = Depends(get_db_session),
) -> SummarizeResponse:
    return await ai.summarize(db, user, body)


@router.post(
    "/flashcards",
    response_model=FlashcardsResponse,
    responses=METERED_RESPONSES,
    summary="Generate flashcards from text",
)
async def flashcards(
    body: FlashcardsRequest,
    user: User = Depends(require_feature("flashcardGeneration")),
    ai: AIService = Depends(get_ai_service),
    db: AsyncSession = Depends(get_db_session),
) -> FlashcardsResponse:
    return await ai.flashcards(db, user, body)


@router.post(
    "/assignment",
    response_model=AssignmentResponse,
    responses=METERED_RESPONSES,
    summary="Outline and guidance for an assignment",
)
async def assignment(
    body: AssignmentRequest,
    user: User = Depends(require_feature("assignmentHelp")),
    ai: AIService = Depends(get_ai_service),
    db: AsyncSession = Depends(get_db_session),
) -> AssignmentResponse:
    return await ai.assignment(db, user, body)


@router.post("/cite", response_model=CitationResponse, responses=METERED_RESPONSES, summary="Format a citation")
async def cite(
    body: CiteRequest,
    user: User = Depends(require_feature("citations")),
    ai: AIService = Depends(get_ai_service),
    db: AsyncSession = Depends(get_db_session),
) -> CitationResponse:
    return await ai.cite(db, user, body)


@router.get("/usage", response_model=UsageResponse, summary="Current usage, limits and plan")
async def usage(user: User = Depends(get_current_user)) -> UsageResponse:
    return AIService.usage(user)
