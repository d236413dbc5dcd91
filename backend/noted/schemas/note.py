"""
Noted.AI Backend: Note Request/Response Schemas
===============================================

What:  API contract for /api/notes/*.
Why:   The notes table is flat; clients expect the grouped document shape
       (`aiGenerated`, `metadata`, `sharedWith`). `NoteOut.from_note()` does
       that regrouping in one place.

Title/content are optional at the schema level on purpose: a missing value
carries the business-rule message ("Title and content are required"), raised
by NoteService, rather than a generic schema error.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from noted.models.note import Note
from noted.schemas.common import CamelModel


class NoteCreate(CamelModel):
    title: Optional[str] = Field(default=None, max_length=200)
    content: Optional[str] = None
    subject: Optional[str] = Field(default=None, max_length=200)
    tags: List[str] = Field(default_factory=list)


class NoteUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1)
    subject: Optional[str] = Field(default=None, max_length=200)
    tags: Optional[List[str]] = None


class ShareRequest(CamelModel):
    email: str
    permission: Literal["view", "edit"] = "view"


# ── Output building blocks ───────────────────────────────────────────────
class Flashcard(CamelModel):
    question: str
    answer: str
    difficulty: str = "medium"
    category: Optional[str] = None


class AISummary(CamelModel):
    content: Optional[str] = None
    generated_at: Optional[datetime] = None
    model: Optional[str] = None


class AIGenerated(CamelModel):
    summary: AISummary
    flashcards: List[Flashcard]
    key_points: List[str]
    study_guide: Optional[str] = None


class NoteMetadata(CamelModel):
    word_count: int
    reading_time: int
    language: str
    source: str
    original_file: Optional[str] = None


class NoteShareOut(CamelModel):
    user: uuid.UUID
    permission: str
    shared_at: Optional[datetime] = None


class NoteOut(CamelModel):
    id: uuid.UUID
    user: uuid.UUID
    title: str
    content: str
    subject: Optional[str] = None
    tags: List[str]
    ai_generated: AIGenerated
    metadata: NoteMetadata
    visibility: str
    shared_with: List[NoteShareOut]
    is_archived: bool
    last_studied: Optional[datetime] = None
    study_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_note(cls, note: Note) -> "NoteOut":
        return cls(
            id=note.id,
            user=note.user_id,
            title=note.title,
            content=note.content,
            subject=note.subject,
            tags=note.tags,
            ai_generated=AIGenerated(
                summary=AISummary(
                    content=note.ai_summary_content,
                    generated_at=note.ai_summary_generated_at,
                    model=note.ai_summary_model,
                ),
                flashcards=[Flashcard(**card) for card in (note.ai_flashcards or [])],
                key_points=list(note.ai_key_points or []),
                study_guide=note.ai_study_guide,
            ),
            metadata=NoteMetadata(
                word_count=note.word_count,
                reading_time=note.reading_time,
                language=note.language,
                source=note.source,
                original_file=note.original_file,
            ),
            visibility=note.visibility,
            shared_with=[
                NoteShareOut(user=s.user_id, permission=s.permission, shared_at=s.shared_at)
                for s in note.shares
            ],
            is_archived=note.is_archived,
            last_studied=note.last_studied,
            study_count=note.study_count,
            created_at=note.created_at,
            updated_at=note.updated_at,
        )


# ── Envelopes ────────────────────────────────────────────────────────────
class NoteEnvelope(CamelModel):
    message: Optional[str] = None
    note: NoteOut


class NoteListResponse(CamelModel):
    """Offset pagination, matching the client's page-number UI."""
    notes: List[NoteOut]
    total_pages: int
    current_page: int
    total: int


class NoteOwner(CamelModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str


class SharedNoteOut(NoteOut):
    owner: NoteOwner


class SharedNotesResponse(CamelModel):
    notes: List[SharedNoteOut]


class NoteStatsResponse(CamelModel):
    total_notes: int
    total_words: int
    total_reading_time: int
    subjects: List[str]
    tags: List[str]
