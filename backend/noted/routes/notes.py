"""
Noted.AI Backend: Notes Route Handlers
======================================

What:  CRUD, archive, study tracking, sharing and stats under /api/notes.
How:   Extracts path/query/body values, delegates to NoteService, wraps the
       result in the envelope the web client expects.

Route order matters: /stats and /shared/with-me are declared before
/{note_id}, otherwise "stats" would be parsed (and rejected) as a UUID.

Caching:
    Every response is user-specific → Cache-Control: private, no-cache on
    reads. Mutations are never cached.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from noted.database import get_db_session
from noted.dependencies import get_current_user
from noted.models.user import User
from noted.schemas.common import ErrorResponse, MessageResponse
from noted.schemas.note import (
    NoteCreate,
    NoteEnvelope,
    NoteListResponse,
    NoteOut,
    NoteStatsResponse,
    NoteUpdate,
    ShareRequest,
    SharedNotesResponse,
)
from noted.services.note_service import note_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["Notes"])

NOT_FOUND = {404: {"description": "Note not found", "model": ErrorResponse}}


def _private(response: Response) -> None:
    response.headers["Cache-Control"] = "private, no-cache"


@router.get(
    "",
    response_model=NoteListResponse,
    summary="List the caller's notes",
    description=(
        "Page-numbered listing of non-archived notes, newest edit first. "
        "`tags` is a comma-separated list; a note matches if it carries any of them. "
        "`search` matches title or content, case-insensitively."
    ),
)
async def list_notes(
    response: Response,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    subject: Optional[str] = Query(default=None),
    tags: Optional[str] = Query(default=None, description="Comma-separated, e.g. biology,exam"),
    search: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteListResponse:
    tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    result = await note_service.list_notes(
        db, user, page=page, limit=limit, subject=subject, tags=tag_list, search=search
    )
    response.headers["X-Total-Count"] = str(result.total)
    _private(response)
    return result


@router.get("/stats", response_model=NoteStatsResponse, summary="Totals over non-archived notes")
async def note_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteStatsResponse:
    return await note_service.stats(db, user)


@router.get("/shared/with-me", response_model=SharedNotesResponse, summary="Notes other users shared with me")
async def shared_with_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SharedNotesResponse:
    return await note_service.shared_with_me(db, user)


@router.get("/{note_id}", response_model=NoteEnvelope, responses=NOT_FOUND, summary="Get a single note")
async def get_note(
    note_id: UUID,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteEnvelope:
    note = await note_service.get_note(db, user, note_id)
    _private(response)
    return NoteEnvelope(note=NoteOut.from_note(note))


@router.post(
    "",
    status_code=201,
    response_model=NoteEnvelope,
    responses={400: {"description": "Title or content missing", "model": ErrorResponse}},
    summary="Create a note",
)
async def create_note(
    body: NoteCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteEnvelope:
    note = await note_service.create_note(db, user, body)
    return NoteEnvelope(message="Note created successfully", note=NoteOut.from_note(note))


@router.put("/{note_id}", response_model=NoteEnvelope, responses=NOT_FOUND, summary="Update a note")
async def update_note(
    note_id: UUID,
    body: NoteUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteEnvelope:
    note = await note_service.update_note(db, user, note_id, body)
    return NoteEnvelope(message="Note updated successfully", note=NoteOut.from_note(note))


@router.delete("/{note_id}", response_model=MessageResponse, responses=NOT_FOUND, summary="Delete a note")
async def delete_note(
    note_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await note_service.delete_note(db, user, note_id)
    return MessageResponse(message="Note deleted successfully")


@router.patch("/{note_id}/archive", response_model=NoteEnvelope, responses=NOT_FOUND, summary="Toggle archived")
async def toggle_archive(
    note_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteEnvelope:
    note = await note_service.toggle_archive(db, user, note_id)
    state = "archived" if note.is_archived else "unarchived"
    return NoteEnvelope(message=f"Note {state} successfully", note=NoteOut.from_note(note))


@router.post("/{note_id}/study", response_model=NoteEnvelope, responses=NOT_FOUND, summary="Record a study session")
async def mark_studied(
    note_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteEnvelope:
    note = await note_service.mark_studied(db, user, note_id)
    return NoteEnvelope(message="Note marked as studied", note=NoteOut.from_note(note))


@router.post(
    "/{note_id}/share",
    response_model=NoteEnvelope,
    responses={
        400: {"description": "Already shared with this user", "model": ErrorResponse},
        404: {"description": "Note or recipient not found", "model": ErrorResponse},
    },
    summary="Share a note with another user by email",
)
async def share_note(
    note_id: UUID,
    body: ShareRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteEnvelope:
    note = await note_service.share_note(db, user, note_id, body.email, body.permission)
    return NoteEnvelope(message="Note shared successfully", note=NoteOut.from_note(note))
