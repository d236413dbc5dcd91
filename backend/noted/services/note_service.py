"""
Noted.AI Backend: Note Service (Business Logic)
===============================================

What:  CRUD, archive, study tracking, sharing and statistics for notes.
Why:   Keeps ownership rules and query construction independent of HTTP
       concerns, so routes stay thin and tests can call methods directly.
How:   Async SQLAlchemy queries against notes / note_tags / note_shares;
       every method receives the request session.

Visibility rules:
    owner                → read, update, delete, archive, study, share
    user in note_shares  → read (GET /api/notes/{id}, /shared/with-me)
    anyone else          → 404 "Note not found" (existence is not leaked)

Query plan (default listing):
    SELECT ... FROM notes WHERE user_id = :me AND NOT is_archived
    ORDER BY updated_at DESC LIMIT :limit OFFSET :offset
    → idx_notes_user_updated
"""

import logging
import math
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from noted.exceptions import NotFoundError, ValidationError
from noted.models.note import Note, NoteShare, NoteTag
from noted.models.user import User
from noted.schemas.note import (
    NoteCreate,
    NoteListResponse,
    NoteOut,
    NoteOwner,
    NoteStatsResponse,
    NoteUpdate,
    SharedNoteOut,
    SharedNotesResponse,
)

logger = logging.getLogger(__name__)


def _note_not_found(note_id: UUID) -> NotFoundError:
    return NotFoundError(resource="Note", resource_id=str(note_id))


class NoteService:
    """
    Business logic layer for note operations.

    Stateless; a single module-level instance is shared by all requests.
    """

    # ── Lookups ───────────────────────────────────────────────────────────
    async def _get_owned(self, db: AsyncSession, user: User, note_id: UUID) -> Note:
        result = await db.execute(select(Note).where(Note.id == note_id, Note.user_id == user.id))
        note = result.scalar_one_or_none()
        if note is None:
            raise _note_not_found(note_id)
        return note

    async def get_note(self, db: AsyncSession, user: User, note_id: UUID) -> Note:
        """Owner or share recipient; everyone else gets NotFoundError."""
        result = await db.execute(
            select(Note).where(
                Note.id == note_id,
                or_(
                    Note.user_id == user.id,
                    Note.shares.any(NoteShare.user_id == user.id),
                ),
            )
        )
        note = result.scalar_one_or_none()
        if note is None:
            raise _note_not_found(note_id)
        return note

    async def list_notes(
        self,
        db: AsyncSession,
        user: User,
        page: int = 1,
        limit: int = 10,
        subject: Optional[str] = None,
        tags: Optional[List[str]] = None,
        search: Optional[str] = None,
    ) -> NoteListResponse:
        """
        Offset-paginated listing of the caller's non-archived notes.

        Filters combine with AND; `tags` matches notes carrying any of them;
        `search` is a case-insensitive substring match on title or content.
        """
        filters = [Note.user_id == user.id, Note.is_archived.is_(False)]
        if subject:
            filters.append(Note.subject == subject)
        if tags:
            filters.append(Note.tag_rows.any(NoteTag.tag.in_(tags)))
        if search:
            filters.append(
                or_(
                    Note.title.icontains(search, autoescape=True),
                    Note.content.icontains(search, autoescape=True),
                )
            )

        total = (
            await db.execute(select(func.count()).select_from(Note).where(*filters))
        ).scalar_one()

        result = await db.execute(
            select(Note)
            .where(*filters)
            .order_by(Note.updated_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        notes = result.scalars().all()

        return NoteListResponse(
            notes=[NoteOut.from_note(note) for note in notes],
            total_pages=math.ceil(total / limit),
            current_page=page,
            total=total,
        )

    # ── Mutations ─────────────────────────────────────────────────────────
    async def create_note(self, db: AsyncSession, user: User, request: NoteCreate) -> Note:
        if not request.title or not request.content:
            raise ValidationError(message="Title and content are required")

        # Empty collections up front: nothing to lazy-load on a new row
        note = Note(user_id=user.id, title=request.title, subject=request.subject,
                    tag_rows=[], shares=[])
        note.set_content(request.content)
        note.set_tags(request.tags)
        db.add(note)

        # Unmetered counter
        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(usage_total_notes=User.usage_total_notes + 1)
        )
        await db.flush()
        logger.info("Note created: %s (user=%s, %d words)", note.id, user.id, note.word_count)
        return note

    async def update_note(self, db: AsyncSession, user: User, note_id: UUID, request: NoteUpdate) -> Note:
        note = await self._get_owned(db, user, note_id)

        if request.title:
            note.title = request.title
        if request.content:
            note.set_content(request.content)
        if "subject" in request.model_fields_set:
            note.subject = request.subject
        if request.tags is not None:
            note.set_tags(request.tags)

        await db.flush()
        return note

    async def delete_note(self, db: AsyncSession, user: User, note_id: UUID) -> None:
        note = await self._get_owned(db, user, note_id)
        await db.delete(note)
        await db.flush()
        logger.info("Note deleted: %s (user=%s)", note_id, user.id)

    async def toggle_archive(self, db: AsyncSession, user: User, note_id: UUID) -> Note:
        note = await self._get_owned(db, user, note_id)
        note.is_archived = not note.is_archived
        await db.flush()
        return note

    async def mark_studied(self, db: AsyncSession, user: User, note_id: UUID) -> Note:
        note = await self._get_owned(db, user, note_id)
        note.mark_as_studied()
        await db.flush()
        return note

    # ── Sharing ───────────────────────────────────────────────────────────
    async def share_note(
        self, db: AsyncSession, user: User, note_id: UUID, email: str, permission: str = "view"
    ) -> Note:
        note = await self._get_owned(db, user, note_id)

        result = await db.execute(select(User).where(User.email == email.strip().lower()))
        recipient = result.scalar_one_or_none()
        if recipient is None:
            raise NotFoundError(resource="User")

        if note.is_shared_with(recipient.id):
            raise ValidationError(message="Note already shared with this user")

        note.shares.append(NoteShare(user_id=recipient.id, permission=permission))
        note.visibility = "shared"
        await db.flush()
        logger.info("Note %s shared with %s (%s)", note.id, recipient.id, permission)
        return note

    async def shared_with_me(self, db: AsyncSession, user: User) -> SharedNotesResponse:
        result = await db.execute(
            select(Note)
            .where(Note.shares.any(NoteShare.user_id == user.id))
            .options(selectinload(Note.owner))
            .order_by(Note.updated_at.desc())
        )
        notes = result.scalars().all()
        return SharedNotesResponse(
            notes=[
                SharedNoteOut(
                    **NoteOut.from_note(note).model_dump(),
                    owner=NoteOwner(
                        id=note.owner.id,
                        first_name=note.owner.first_name,
                        last_name=note.owner.last_name,
                        email=note.owner.email,
                    ),
                )
                for note in notes
            ]
        )

    # ── Stats ─────────────────────────────────────────────────────────────
    async def stats(self, db: AsyncSession, user: User) -> NoteStatsResponse:
        active = [Note.user_id == user.id, Note.is_archived.is_(False)]

        totals = (
            await db.execute(
                select(
                    func.count(Note.id),
                    func.coalesce(func.sum(Note.word_count), 0),
                    func.coalesce(func.sum(Note.reading_time), 0),
                ).where(*active)
            )
        ).one()

        subjects = (
            await db.execute(
                select(Note.subject).distinct()
                .where(*active, Note.subject.is_not(None), Note.subject != "")
                .order_by(Note.subject)
            )
        ).scalars().all()

        tags = (
            await db.execute(
                select(NoteTag.tag).distinct()
                .join(Note, Note.id == NoteTag.note_id)
                .where(*active)
                .order_by(NoteTag.tag)
            )
        ).scalars().all()

        return NoteStatsResponse(
            total_notes=totals[0],
            total_words=totals[1],
            total_reading_time=totals[2],
            subjects=list(subjects),
            tags=list(tags),
        )


note_service = NoteService()
