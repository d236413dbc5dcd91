"""
Noted.AI Backend: ORM Models
============================

Importing this package registers every table on `Base.metadata`
(used by Alembic autogenerate and by the test suite's create_all()).
"""

from noted.models.note import Note, NoteShare, NoteTag
from noted.models.university import University
from noted.models.user import User

__all__ = ["Note", "NoteShare", "NoteTag", "University", "User"]
