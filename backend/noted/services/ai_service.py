"""
Noted.AI Backend: AI Feature Service
====================================

What:  Business logic behind /api/ai/summarize, /flashcards, /assignment, /cite.
Why:   Every feature follows the same shape (validate → pick model → call
       provider or fallback → optionally attach to a note), so the switching
       logic lives in one place instead of four route handlers.
How:   Composes an LLMService (OpenAI in production, a fake in tests) with
       the pure functions in services/fallback.py.

Flow per request:
    ┌─────────────┐   ┌──────────┐   ┌──────────────┐   ┌───────────────┐   ┌────────┐
    │ quota check │──▶│ validate │──▶│ select model │──▶│ LLM / fallback│──▶│ charge │
    │ (dependency)│   │  (400)   │   │ plan + key   │   │ 429 → fallback│   │ (403)  │
    └─────────────┘   └──────────┘   └──────────────┘   └───────────────┘   └────────┘

The unit is charged only once output exists. Output from the fallback
generator is free when no provider key is configured at all; it is charged
when it stands in for a provider that refused on quota.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from noted.config import settings
from noted.exceptions import LLMQuotaError, ValidationError
from noted.models.note import Note
from noted.models.user import User, utcnow
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
from noted.schemas.note import Flashcard
from noted.schemas.user import FeatureLimits, UsageOut
from noted.services import fallback
from noted.services.llm_base import LLMService
from noted.services.quota_service import QuotaGrant, quota_service

logger = logging.getLogger(__name__)

PAID_PLANS = ("student", "university")

SUMMARIES = "aiSummaries"
FLASHCARDS = "flashcardGeneration"
ASSIGNMENTS = "assignmentHelp"
CITATIONS = "citations"

MIN_SUMMARY_CHARS = 50
MIN_FLASHCARD_CHARS = 100

SUMMARY_SYSTEM_PROMPT = (
    "You are an expert academic assistant. Provide clear, accurate, and "
    "well-structured summaries of educational content."
)
FLASHCARD_SYSTEM_PROMPT = (
    "You are an expert educator creating study flashcards. Generate clear, "
    "educational flashcards in JSON format."
)
ASSIGNMENT_SYSTEM_PROMPT = (
    "You are an expert academic writing tutor. Provide helpful guidance for "
    "academic assignments while encouraging original thinking."
)
CITATION_SYSTEM_PROMPT = (
    "You are an expert in academic citation formats. Generate accurate "
    "citations in the requested style."
)

SUMMARY_STYLE_PROMPTS = {
    "concise": "Create a concise summary of the following academic content, "
               "highlighting the main points and key concepts:",
    "detailed": "Create a detailed summary of the following academic content, "
                "including important details and explanations:",
    "bullet": "Create a bullet-point summary of the following academic content, "
              "organizing key information clearly:",
    "study": "Create a study-friendly summary of the following academic content, "
             "focusing on concepts that are likely to appear on exams:",
}

CITATION_STYLE_NAMES = {
    "APA": "American Psychological Association (APA)",
    "MLA": "Modern Language Association (MLA)",
    "Chicago": "Chicago Manual of Style",
    "Harvard": "Harvard Referencing Style",
}

# Greedy: first "[" through last "]"
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


@dataclass
class Generation:
    output: Any
    model: str
    is_fallback: bool
    billable: bool = True


def parse_flashcards(text: str, difficulty: str) -> List[Flashcard]:
    """Pull the JSON array out of a model reply. Anything unparseable yields []."""
    match = _JSON_ARRAY.search(text or "")
    if not match:
        return []
    try:
        cards = json.loads(match.group(0))
        return [
            Flashcard(
                question=str(card.get("question") or ""),
                answer=str(card.get("answer") or ""),
                difficulty=difficulty,
                category="General",
            )
            for card in cards
        ]
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning("Flashcard parsing failed: %s", str(e))
        return []


class AIService:
    """
    Feature handlers for the AI endpoints.

    One instance per process, holding the shared LLMService (and therefore
    the shared circuit breaker).
    """

    def __init__(self, llm: LLMService):
        self.llm = llm

    # ── Model selection ───────────────────────────────────────────────────
    def select_model(self, user: User) -> str:
        """fallback without a usable key; premium model for paid plans; standard otherwise."""
        if not self.llm.configured:
            return fallback.FALLBACK_MODEL
        if user.plan in PAID_PLANS:
            return settings.openai_premium_model
        return settings.openai_standard_model

    async def _generate(
        self,
        *,
        feature: str,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        parse: Callable[[str], Any],
        produce_fallback: Callable[[], Any],
    ) -> Generation:
        if model == fallback.FALLBACK_MODEL:
            return Generation(produce_fallback(), fallback.FALLBACK_MODEL, True, billable=False)

        try:
            text = await self.llm.complete(
                model=model,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except LLMQuotaError:
            # One switch, no backoff
            logger.warning("Using fallback generator for %s (provider quota/rate limit)", feature)
            return Generation(produce_fallback(), fallback.FALLBACK_MODEL, True)

        return Generation(parse(text), model, False)

    async def _charge(self, db: AsyncSession, user: User, feature: str, result: Generation) -> QuotaGrant:
        if not result.billable:
            return QuotaGrant(feature, user.feature_usage(feature), user.feature_limit(feature))
        return await quota_service.consume(db, user.id, feature)

    async def _owned_note(self, db: AsyncSession, user: User, note_id: Optional[UUID]) -> Optional[Note]:
        if note_id is None:
            return None
        result = await db.execute(select(Note).where(Note.id == note_id, Note.user_id == user.id))
        return result.scalar_one_or_none()

    # ── Features ──────────────────────────────────────────────────────────
    async def summarize(self, db: AsyncSession, user: User, request: SummarizeRequest) -> SummarizeResponse:
        content = request.content or ""
        if len(content.strip()) < MIN_SUMMARY_CHARS:
            raise ValidationError(
                message=f"Content must be at least {MIN_SUMMARY_CHARS} characters long",
                field="content",
            )

        prompt = f"{SUMMARY_STYLE_PROMPTS[request.style]}\n\n{content}"
        result = await self._generate(
            feature=SUMMARIES,
            model=self.select_model(user),
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            user_prompt=prompt,
            max_tokens=1000,
            temperature=0.3,
            parse=lambda text: text,
            produce_fallback=lambda: fallback.summarize(content),
        )
        grant = await self._charge(db, user, SUMMARIES, result)

        note = await self._owned_note(db, user, request.note_id)
        if note is not None:
            note.ai_summary_content = result.output
            note.ai_summary_generated_at = utcnow()
            note.ai_summary_model = result.model
            await db.flush()
            logger.info("Summary attached to note %s", note.id)

        return SummarizeResponse(
            summary=result.output,
            model=result.model,
            usage=grant.usage,
            limit=grant.limit,
            is_fallback=result.is_fallback,
        )

    async def flashcards(self, db: AsyncSession, user: User, request: FlashcardsRequest) -> FlashcardsResponse:
        content = request.content or ""
        if len(content.strip()) < MIN_FLASHCARD_CHARS:
            raise ValidationError(
                message=f"Content must be at least {MIN_FLASHCARD_CHARS} characters long",
                field="content",
            )

        prompt = (
            f"Generate {request.count} flashcards from the following academic content.\n"
            f"Difficulty level: {request.difficulty}\n"
            'Format each flashcard as JSON with "question" and "answer" fields.\n'
            "Make questions challenging but fair, and answers clear and concise.\n\n"
            f"Content:\n{content}"
        )
        result = await self._generate(
            feature=FLASHCARDS,
            model=self.select_model(user),
            system_prompt=FLASHCARD_SYSTEM_PROMPT,
            user_prompt=prompt,
            max_tokens=1500,
            temperature=0.4,
            parse=lambda text: parse_flashcards(text, request.difficulty),
            produce_fallback=lambda: [
                Flashcard(**card.as_dict()) for card in fallback.flashcards(content)
            ],
        )
        grant = await self._charge(db, user, FLASHCARDS, result)

        note = await self._owned_note(db, user, request.note_id)
        if note is not None:
            note.ai_flashcards = [card.model_dump(exclude_none=True) for card in result.output]
            await db.flush()
            logger.info("%d flashcards attached to note %s", len(result.output), note.id)

        return FlashcardsResponse(
            flashcards=result.output,
            model=result.model,
            usage=grant.usage,
            limit=grant.limit,
            is_fallback=result.is_fallback,
        )

    async def assignment(self, db: AsyncSession, user: User, request: AssignmentRequest) -> AssignmentResponse:
        if not request.topic or not request.requirements:
            raise ValidationError(message="Topic and requirements are required")

        existing = f"Existing content: {request.content}\n\n" if request.content else ""
        prompt = (
            f"Help with a {request.type} assignment on: {request.topic}\n\n"
            f"Requirements: {request.requirements}\n\n"
            f"{existing}"
            "Please provide:\n"
            "1. A structured outline\n"
            "2. Key points to include\n"
            "3. Writing tips and guidance\n"
            "4. Common pitfalls to avoid"
        )
        result = await self._generate(
            feature=ASSIGNMENTS,
            model=self.select_model(user),
            system_prompt=ASSIGNMENT_SYSTEM_PROMPT,
            user_prompt=prompt,
            max_tokens=2000,
            temperature=0.3,
            parse=lambda text: text,
            produce_fallback=lambda: fallback.assignment_help(request.topic),
        )
        grant = await self._charge(db, user, ASSIGNMENTS, result)

        return AssignmentResponse(
            assignment_help=result.output,
            model=result.model,
            usage=grant.usage,
            limit=grant.limit,
            is_fallback=result.is_fallback,
        )

    async def cite(self, db: AsyncSession, user: User, request: CiteRequest) -> CitationResponse:
        if not request.title:
            raise ValidationError(message="Title is required", field="title")

        style_name = CITATION_STYLE_NAMES.get(request.style, CITATION_STYLE_NAMES["APA"])
        source_lines = [f"Title: {request.title}"]
        for label, value in (
            ("Authors", request.authors),
            ("Year", request.year),
            ("Journal", request.journal),
            ("URL", request.url),
            ("DOI", request.doi),
        ):
            if value:
                source_lines.append(f"{label}: {value}")
        prompt = (
            f"Generate a citation in {style_name} format for the following source:\n\n"
            + "\n".join(source_lines)
            + "\n\nPlease provide only the formatted citation, no additional text."
        )

        result = await self._generate(
            feature=CITATIONS,
            model=self.select_model(user),
            system_prompt=CITATION_SYSTEM_PROMPT,
            user_prompt=prompt,
            max_tokens=300,
            temperature=0.1,
            parse=lambda text: text.strip(),
            produce_fallback=lambda: fallback.citation(
                request.title, request.authors, request.year, request.style
            ),
        )
        grant = await self._charge(db, user, CITATIONS, result)

        return CitationResponse(
            citation=result.output,
            style=request.style,
            model=result.model,
            usage=grant.usage,
            limit=grant.limit,
            is_fallback=result.is_fallback,
        )

    @staticmethod
    def usage(user: User) -> UsageResponse:
        return UsageResponse(
            usage=UsageOut.from_user(user),
            limits=FeatureLimits.from_user(user),
            plan=user.plan,
        )
