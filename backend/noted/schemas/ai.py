"""
Noted.AI Backend: AI Feature Schemas
====================================

Request/response models for /api/ai/*.

Content length rules (50 / 100 chars) and required topic/title checks are
business rules enforced by AIService, so the matching fields are optional
here and come back as 400s with the product's wording.
"""

import uuid
from typing import List, Literal, Optional, Union

from pydantic import Field

from noted.schemas.common import CamelModel
from noted.schemas.note import Flashcard
from noted.schemas.user import FeatureLimits, UsageOut

SummaryStyle = Literal["concise", "detailed", "bullet", "study"]
AssignmentType = Literal["essay", "research", "presentation", "report"]
CitationStyle = Literal["APA", "MLA", "Chicago", "Harvard"]


class SummarizeRequest(CamelModel):
    content: Optional[str] = None
    note_id: Optional[uuid.UUID] = None
    style: SummaryStyle = "concise"


class FlashcardsRequest(CamelModel):
    content: Optional[str] = None
    note_id: Optional[uuid.UUID] = None
    count: int = Field(default=5, ge=1, le=50)
    difficulty: Literal["easy", "medium", "hard"] = "medium"


class AssignmentRequest(CamelModel):
    topic: Optional[str] = None
    requirements: Optional[str] = None
    content: Optional[str] = None
    type: AssignmentType = "essay"


class CiteRequest(CamelModel):
    title: Optional[str] = None
    authors: Optional[str] = None
    # Clients send either "2021" or 2021
    year: Optional[Union[int, str]] = None
    journal: Optional[str] = None
    url: Optional[str] = None
    doi: Optional[str] = None
    style: str = "APA"


class _MeteredResponse(CamelModel):
    model: str
    usage: int
    limit: int
    is_fallback: bool = False


class SummarizeResponse(_MeteredResponse):
    summary: str


class FlashcardsResponse(_MeteredResponse):
    flashcards: List[Flashcard]


class AssignmentResponse(_MeteredResponse):
    assignment_help: str


class CitationResponse(_MeteredResponse):
    citation: str
    style: str


class UsageResponse(CamelModel):
    usage: UsageOut
    limits: FeatureLimits
    plan: str
