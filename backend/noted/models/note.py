"""
Noted.AI Backend: Note SQLAlchemy Models
========================================

What:  ORM models for `notes`, `note_tags` and `note_shares`.
Why:   Tags and shares are queried by value ("notes tagged X", "notes shared
       with me"), so they live in child tables with indexes rather than in
       JSON blobs. AI artifacts are only ever read whole, so they stay JSON.
Who:   Used by NoteService for CRUD and by AIService to attach summaries
       and flashcards.

Table Design Rationale:
    - word_count / reading_time are stored, recomputed on every content change
      (stats endpoint sums them without touching content)
    - is_archived hides a note from listings and stats without deleting it
    - Index (user_id, updated_at DESC) serves the default listing query
"""

import math
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from noted.database import Base
from noted.models.user import User, utcnow

VISIBILITIES = ("private", "shared", "public")
SOURCES = ("manual", "upload", "import")
SHARE_PERMISSIONS = ("view", "edit")
FLASHCARD_DIFFICULTIES = ("easy", "medium", "hard")

WORDS_PER_MINUTE = 200


def count_words(content: str) -> int:
    return len(content.split())


def reading_minutes(word_count: int) -> int:
    return math.ceil(word_count / WORDS_PER_MINUTE)


class Note(Base):
    """
    A user's note plus any AI-generated study material attached to it.

    Lifecycle:
        create → update (owner) → archive toggle / share / study → delete (owner)
    """

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # ── AI artifacts ──────────────────────────────────────────────────────
    ai_summary_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_summary_generated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    ai_summary_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    ai_flashcards: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    ai_key_points: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    ai_study_guide: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Metadata ──────────────────────────────────────────────────────────
    word_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    reading_time: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    language: Mapped[str] = mapped_column(
        String(10), nullable=False, default="en", server_default=text("'en'")
    )
    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default="manual", server_default=text("'manual'")
    )
    original_file: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    visibility: Mapped[str] = mapped_column(
        String(20), nullable=False, default="private", server_default=text("'private'")
    )
    is_archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    last_studied: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    study_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # selectin: serializing a list of notes needs tags/shares for every row
    tag_rows: Mapped[List["NoteTag"]] = relationship(
        back_populates="note", cascade="all, delete-orphan", lazy="selectin",
        order_by="NoteTag.position",
    )
    shares: Mapped[List["NoteShare"]] = relationship(
        back_populates="note", cascade="all, delete-orphan", lazy="selectin",
    )
    owner: Mapped[User] = relationship(lazy="raise")

    __table_args__ = (
        Index("idx_notes_user_updated", "user_id", updated_at.desc()),
        Index("idx_notes_user_subject", "user_id", "subject"),
    )

    # ── Domain helpers ────────────────────────────────────────────────────
    @property
    def tags(self) -> List[str]:
        return [row.tag for row in self.tag_rows]

    def set_tags(self, tags: List[str]) -> None:
        cleaned: List[str] = []
        for tag in tags:
            tag = tag.strip()
            if tag and tag not in cleaned:
                cleaned.append(tag)
        # Reuse surviving rows; the unit of work inserts before it deletes,
        # so re-adding an existing tag as a new row would hit the unique key
        existing = {row.tag: row for row in self.tag_rows}
        rows = []
        for position, tag in enumerate(cleaned):
            row = existing.get(tag) or NoteTag(tag=tag)
            row.position = position
            rows.append(row)
        self.tag_rows = rows

    def set_content(self, content: str) -> None:
        self.content = content
        self.word_count = count_words(content)
        self.reading_time = reading_minutes(self.word_count)

    def is_shared_with(self, user_id: uuid.UUID) -> bool:
        return any(share.user_id == user_id for share in self.shares)

    def mark_as_studied(self) -> None:
        self.last_studied = utcnow()
        self.study_count = (self.study_count or 0) + 1

    def add_flashcard(self, question: str, answer: str, difficulty: str = "medium",
                      category: str = "General") -> None:
        # Reassign so the JSON column is flagged dirty
        self.ai_flashcards = [
            *(self.ai_flashcards or []),
            {"question": question, "answer": answer, "difficulty": difficulty, "category": category},
        ]

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, title='{self.title}', archived={self.is_archived})>"


class NoteTag(Base):
    __tablename__ = "note_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("notes.id", ondelete="CASCADE"), nullable=False
    )
    tag: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    note: Mapped[Note] = relationship(back_populates="tag_rows")

    __table_args__ = (
        UniqueConstraint("note_id", "tag", name="uq_note_tags_note_tag"),
        Index("idx_note_tags_tag", "tag"),
    )


class NoteShare(Base):
    """A grant of view/edit access on one note to one other user."""

    __tablename__ = "note_shares"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("notes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    permission: Mapped[str] = mapped_column(
        String(10), nullable=False, default="view", server_default=text("'view'")
    )
    shared_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    note: Mapped[Note] = relationship(back_populates="shares")

    __table_args__ = (
        UniqueConstraint("note_id", "user_id", name="uq_note_shares_note_user"),
        Index("idx_note_shares_user", "user_id"),
    )
