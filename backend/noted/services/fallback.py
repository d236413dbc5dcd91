"""
Noted.AI Backend: Deterministic Fallback Generator
==================================================

What:  Non-AI stand-ins for the four AI features.
Why:   Users keep getting a usable (if simple) result when no OpenAI key is
       configured or the provider rejects the call for quota/rate reasons.
How:   Pure functions over the input strings: no I/O, no randomness, no
       clock. The same input always yields byte-identical output.
Who:   Called by AIService only.
"""

import re
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Union

FALLBACK_MODEL = "fallback"

# Sentence boundary: any run of . ! ?
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
# ASCII word tokens, as counted for key concepts
_WORD = re.compile(r"\b\w+\b", re.ASCII)

SUMMARY_TEMPLATE = (
    "📝 **AI Summary (Fallback Mode)**\n\n"
    "{summary}\n\n"
    "**Key Concepts:** {concepts}\n\n"
    "*Note: This is a simplified summary due to AI service limits. "
    "Upgrade your plan for enhanced AI features.*"
)

ASSIGNMENT_TEMPLATE = """📚 **Assignment Help (Fallback Mode)**

**Topic:** {topic}

**Basic Structure:**
1. Introduction
   - Hook the reader
   - Present your thesis
   - Outline main points

2. Body Paragraphs
   - Topic sentence
   - Supporting evidence
   - Analysis and explanation

3. Conclusion
   - Restate thesis
   - Summarize main points
   - Final thoughts

**Writing Tips:**
- Use clear, concise language
- Support claims with evidence
- Maintain logical flow
- Proofread carefully

*Note: This is basic guidance due to AI service limits. Upgrade your plan for detailed, personalized assistance.*"""

CITATION_TEMPLATES = {
    "APA": "{authors}. ({year}). {title}.",
    "MLA": '{authors}. "{title}." {year}.',
    "Chicago": '{authors}. "{title}." {year}.',
    "Harvard": "{authors} ({year}) {title}.",
}

MAX_KEY_CONCEPTS = 5
MAX_FALLBACK_FLASHCARDS = 5
MIN_FLASHCARD_SENTENCE = 20


@dataclass(frozen=True)
class FallbackFlashcard:
    question: str
    answer: str
    difficulty: str = "medium"

    def as_dict(self) -> dict:
        return {"question": self.question, "answer": self.answer, "difficulty": self.difficulty}


def split_sentences(content: str) -> List[str]:
    """Non-blank pieces between sentence terminators; whitespace is kept as-is."""
    return [piece for piece in _SENTENCE_SPLIT.split(content) if piece.strip()]


def key_concepts(content: str, limit: int = MAX_KEY_CONCEPTS) -> List[str]:
    """
    Most frequent words longer than three characters.

    Counter preserves first-seen order and most_common() sorts stably, so
    ties are broken by first occurrence in the text.
    """
    counts = Counter(word for word in _WORD.findall(content.lower()) if len(word) > 3)
    return [word for word, _ in counts.most_common(limit)]


def summarize(content: str) -> str:
    summary = ". ".join(split_sentences(content)[:3]) + "."
    return SUMMARY_TEMPLATE.format(summary=summary, concepts=", ".join(key_concepts(content)))


def flashcards(content: str) -> List[FallbackFlashcard]:
    sentences = [s for s in split_sentences(content) if len(s.strip()) > MIN_FLASHCARD_SENTENCE]
    return [
        FallbackFlashcard(
            question=f"What is the main point of statement {index + 1}?",
            answer=sentence.strip(),
        )
        for index, sentence in enumerate(sentences[:MAX_FALLBACK_FLASHCARDS])
    ]


def assignment_help(topic: str) -> str:
    return ASSIGNMENT_TEMPLATE.format(topic=topic)


def citation(
    title: str,
    authors: Optional[str] = None,
    year: Optional[Union[int, str]] = None,
    style: str = "APA",
) -> str:
    """Unknown styles fall back to APA."""
    template = CITATION_TEMPLATES.get(style, CITATION_TEMPLATES["APA"])
    return template.format(
        authors=authors or "Unknown",
        year=year or "n.d.",
        title=title,
    )
