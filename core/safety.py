"""
core/safety.py - Medical Guardrail Filter
=========================================

This module rejects questions that ask for things an educational assistant
must never provide: dosages, prescriptions, or a personal diagnosis.

The check runs on the raw question before the FAQ matcher, the answer cache
and retrieval. A match produces a fixed refusal with no sources. Refusals
are never cached; the check is cheap and the answer never changes.

The pattern list below was written from knowledge/guardrails.md. That
document is informational only and is not parsed at runtime.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardrailResult:
    """
    Structured result from the guardrail check.

    Attributes:
        message: User-facing refusal
        matched_pattern: Source of the pattern that fired (for logging)
    """
    message: str
    matched_pattern: str


# =============================================================================
# PATTERNS AND RESPONSE MESSAGE
# =============================================================================

# Ordered; the first match wins
BLOCKED_MEDICAL_PATTERNS = (
    re.compile(
        r"\b(dose|dosage|mg|prescribe|prescription|medication plan|treat me|diagnose me)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bhow much\b.*\b(mg|dose)\b", re.IGNORECASE),
)

REFUSAL_MESSAGE = (
    "I can share general educational information, but I cannot provide "
    "diagnosis, prescriptions, or dosage advice. Please consult a licensed "
    "clinician for personal medical guidance."
)


# =============================================================================
# MAIN GUARDRAIL FUNCTION
# =============================================================================

def check_guardrail(question: str) -> Optional[GuardrailResult]:
    """
    Check a question against the blocked medical patterns.

    Args:
        question: The raw question text from the user

    Returns:
        GuardrailResult if the question must be refused, None if safe to proceed

    Example:
        >>> check_guardrail("What dosage of metformin should I take?").message == REFUSAL_MESSAGE
        True
        >>> check_guardrail("What is PCOS?") is None
        True
    """
    for pattern in BLOCKED_MEDICAL_PATTERNS:
        if pattern.search(question or ""):
            logger.info("Guardrail refusal (pattern=%s)", pattern.pattern)
            return GuardrailResult(message=REFUSAL_MESSAGE, matched_pattern=pattern.pattern)
    return None
