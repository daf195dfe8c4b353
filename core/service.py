"""
core/service.py - Main Service Layer
=====================================

This module provides the main API for the chat assistant. The FastAPI
backend (or any other UI) should ONLY call `answer_question()`.

`answer_question()` runs one question through the pipeline:
1. Check the assistant is enabled and the question is well-formed
2. Guardrail: refuse dosage / prescription / diagnosis requests
3. FAQ: return a curated answer on a near-exact match
4. Cache: return a fresh cached answer for the same normalized question
5. Retrieve relevant documents (vector search, or keyword fallback)
6. Generate a grounded answer with the external provider
7. Cache the answer and return it with its sources

Guardrail refusals and "not enough trusted information" answers are normal
answers. Anything that prevents an answer is raised as AskFailure.
"""

import logging
from dataclasses import dataclass, field

from config import QUESTION_MAX_CHARS, QUESTION_MIN_CHARS
from core.context import ChatContext
from core.errors import AskFailure, ConfigurationError, ProviderError
from core.faq import FAQ_DISCLAIMER, find_faq_match
from core.safety import check_guardrail

logger = logging.getLogger(__name__)


# =============================================================================
# RESPONSE DATA STRUCTURE
# =============================================================================

@dataclass
class ChatResponse:
    """
    Structured response from the assistant.

    Attributes:
        answer: The text to show the user
        sources: List of {"title", "url"} citations (empty for refusals)
        served_from_cache: True when the answer came from the answer cache
    """
    answer: str
    sources: list = field(default_factory=list)
    served_from_cache: bool = False


# =============================================================================
# MESSAGES
# =============================================================================

ANSWER_DISCLAIMER = "\n\nThis is educational information and not medical advice."

INSUFFICIENT_CONTEXT_MESSAGE = (
    "I do not have enough trusted information in the current knowledge base to "
    "answer that. Please contact a licensed clinician or use our trusted resource links."
)

DISABLED_MESSAGE = "Chatbot is currently disabled."
INVALID_QUESTION_MESSAGE = (
    f"Please send a question between {QUESTION_MIN_CHARS} and {QUESTION_MAX_CHARS} characters."
)
NOT_CONFIGURED_MESSAGE = "Chatbot is not configured yet (missing OPENAI_API_KEY)."
UNAVAILABLE_MESSAGE = "Chat assistant is temporarily unavailable."


# =============================================================================
# MAIN API FUNCTION
# =============================================================================

def answer_question(context: ChatContext, question: str) -> ChatResponse:
    """
    Process a user question and return a structured response.

    Args:
        context: Loaded ChatContext (indices, FAQs, cache, providers)
        question: The user's raw question

    Returns:
        ChatResponse with answer, sources and served_from_cache

    Raises:
        AskFailure: disabled, invalid_question, not_configured or unavailable
    """
    # -------------------------------------------------------------------------
    # Step 1: Request checks
    # -------------------------------------------------------------------------
    if not context.enabled:
        raise AskFailure(AskFailure.DISABLED, DISABLED_MESSAGE)

    question = str(question or "").strip()
    if not QUESTION_MIN_CHARS <= len(question) <= QUESTION_MAX_CHARS:
        raise AskFailure(AskFailure.INVALID_QUESTION, INVALID_QUESTION_MESSAGE)

    # -------------------------------------------------------------------------
    # Step 2: Guardrail (never cached)
    # -------------------------------------------------------------------------
    refusal = check_guardrail(question)
    if refusal is not None:
        return ChatResponse(answer=refusal.message, sources=[], served_from_cache=False)

    # -------------------------------------------------------------------------
    # Step 3: Curated FAQ (never cached)
    # -------------------------------------------------------------------------
    faq_match = find_faq_match(question, context.faqs)
    if faq_match is not None:
        logger.info("FAQ hit: %s (score=%.2f)", faq_match.entry.id, faq_match.score)
        return ChatResponse(
            answer=f"{faq_match.entry.answer}{FAQ_DISCLAIMER}",
            sources=[dict(s) for s in faq_match.entry.sources],
            served_from_cache=False,
        )

    # -------------------------------------------------------------------------
    # Step 4: Answer cache
    # -------------------------------------------------------------------------
    cached = context.cache.get(question)
    if cached is not None:
        return ChatResponse(answer=cached.answer, sources=list(cached.sources), served_from_cache=True)

    # -------------------------------------------------------------------------
    # Step 5: Retrieve relevant documents
    # -------------------------------------------------------------------------
    retrieval = context.retriever.retrieve(question, context.context_chunks)
    logger.debug("Retrieved %d document(s) in %s mode", len(retrieval), retrieval.mode)

    if not retrieval.items:
        context.cache.set(question, INSUFFICIENT_CONTEXT_MESSAGE, [])
        return ChatResponse(answer=INSUFFICIENT_CONTEXT_MESSAGE, sources=[], served_from_cache=False)

    # -------------------------------------------------------------------------
    # Step 6: Generate grounded answer
    # -------------------------------------------------------------------------
    generator = context.generator
    if generator is None or not getattr(generator, "is_configured", True):
        raise AskFailure(AskFailure.NOT_CONFIGURED, NOT_CONFIGURED_MESSAGE)

    try:
        answer = generator.generate(question, retrieval.items)
    except ConfigurationError as e:
        raise AskFailure(AskFailure.NOT_CONFIGURED, NOT_CONFIGURED_MESSAGE) from e
    except ProviderError as e:
        logger.error("Chatbot generation failed: %s", e)
        raise AskFailure(AskFailure.UNAVAILABLE, UNAVAILABLE_MESSAGE) from e

    # -------------------------------------------------------------------------
    # Step 7: Cache and return
    # -------------------------------------------------------------------------
    response = ChatResponse(
        answer=f"{answer}{ANSWER_DISCLAIMER}",
        sources=retrieval.sources,
        served_from_cache=False,
    )
    context.cache.set(question, response.answer, response.sources)
    return response
