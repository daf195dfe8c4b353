"""
core/faq.py - Curated FAQ shortcut
==================================

Curated question/answer pairs are checked before retrieval. When the user's
question is a near-exact match for one of the curated phrasings, the curated
answer is returned as-is and no retrieval or generation happens.

Matching uses token overlap normalized by the LARGER of the two token sets,
so a short question cannot match a long prompt just by being a subset of it.
"""

from dataclasses import dataclass, field
from typing import Optional

from config import FAQ_MATCH_THRESHOLD
from core.errors import KnowledgeValidationError
from core.text import token_set

FAQ_DISCLAIMER = "\n\nThis is educational information, not medical advice."


@dataclass(frozen=True)
class FaqEntry:
    """
    A curated FAQ item.

    Attributes:
        id: Identifier from faq.json ("unknown" when missing)
        prompts: Question phrasings that should trigger this answer (non-empty)
        answer: Curated answer text (non-empty)
        sources: List of {"title", "url"} dicts shown with the answer
    """
    id: str
    prompts: tuple
    answer: str
    sources: tuple = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prompts": list(self.prompts),
            "answer": self.answer,
            "sources": [dict(s) for s in self.sources],
        }


@dataclass(frozen=True)
class FaqMatch:
    entry: FaqEntry
    score: float


# =============================================================================
# VALIDATION
# =============================================================================

def parse_faqs(items) -> list[FaqEntry]:
    """
    Validate raw faq.json content and convert it to FaqEntry objects.

    Raises:
        KnowledgeValidationError: On the first malformed entry
    """
    if not isinstance(items, list):
        raise KnowledgeValidationError("faq.json must be an array.")

    entries = []
    for item in items:
        if not isinstance(item, dict):
            raise KnowledgeValidationError("Each FAQ item must be an object.")
        faq_id = str(item.get("id") or "unknown")

        prompts = item.get("prompts")
        if not isinstance(prompts, list) or not prompts:
            raise KnowledgeValidationError(f'FAQ "{faq_id}" must include prompts[].')
        if not all(isinstance(p, str) for p in prompts):
            raise KnowledgeValidationError(f'FAQ "{faq_id}" prompts must be strings.')

        answer = item.get("answer")
        if not isinstance(answer, str) or not answer.strip():
            raise KnowledgeValidationError(f'FAQ "{faq_id}" must include answer.')

        sources = item.get("sources")
        if not isinstance(sources, list):
            sources = []

        entries.append(FaqEntry(
            id=faq_id,
            prompts=tuple(prompts),
            answer=answer,
            sources=tuple(s for s in sources if isinstance(s, dict)),
        ))
    return entries


# =============================================================================
# MATCHING
# =============================================================================

def prompt_score(query_tokens: set, prompt: str) -> Optional[float]:
    """Overlap score for one prompt phrasing, None if the prompt has no tokens."""
    prompt_tokens = token_set(prompt)
    if not prompt_tokens:
        return None
    overlap = len(query_tokens & prompt_tokens)
    return overlap / max(len(query_tokens), len(prompt_tokens))


def find_faq_match(question: str, faqs: list[FaqEntry],
                   threshold: float = FAQ_MATCH_THRESHOLD) -> Optional[FaqMatch]:
    """
    Find the best curated answer for a question.

    Every prompt of every entry is scored; the first entry to reach the
    highest score wins. The match is accepted only if that score is at
    least `threshold`.

    Returns:
        FaqMatch, or None when nothing scores high enough
    """
    query_tokens = token_set(question)
    if not query_tokens:
        return None

    best = None
    best_score = 0.0
    for entry in faqs:
        for prompt in entry.prompts:
            score = prompt_score(query_tokens, prompt)
            if score is not None and score > best_score:
                best, best_score = entry, score

    if best is not None and best_score >= threshold:
        return FaqMatch(entry=best, score=best_score)
    return None
