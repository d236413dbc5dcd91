"""
Noted.AI Backend: Health Check Route
====================================

What:  GET /api/health for load balancers and uptime monitors.
How:   Runs SELECT 1 against the engine and asks the LLM service for its
       state. Always answers 200; `status` says whether the database is up.

Status levels:
    OK        database answers
    degraded  database unreachable (AI state never degrades the status:
              fallback mode still serves every feature)
"""

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from noted import __version__
from noted.database import engine
from noted.dependencies import get_llm_service
from noted.models.user import utcnow
from noted.schemas.common import HealthResponse
from noted.services.llm_base import LLMService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(llm: LLMService = Depends(get_llm_service)) -> HealthResponse:
    db_status = "connected"
    overall = "OK"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "degraded"
        logger.warning("Health check: database unreachable: %s", str(e))

    return HealthResponse(
        status=overall,
        timestamp=utcnow(),
        version=__version__,
        database=db_status,
        ai=await llm.health_check(),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
