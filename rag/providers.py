"""
rag/providers.py - Embedding and answer-generation providers
============================================================

The only network calls in the system happen here. Each call is time-boxed
and never retried automatically. Responses are validated right where they
are received: callers get either well-formed Python values or a
ProviderError, never a half-parsed SDK object.

Anything with the same attributes can stand in for these classes (tests
use small in-memory fakes):

    embedding provider:  model_id, is_configured, embed(texts), embed_query(text)
    answer generator:    is_configured, generate(question, context_items) -> str
"""

import logging
import numbers
from typing import Optional, Sequence

from openai import OpenAI, OpenAIError

from config import (
    EMBEDDING_MODEL,
    EMBEDDING_QUERY_TIMEOUT,
    LLM_MAX_TOKENS,
    LLM_MODEL,
    LLM_TEMPERATURE,
    LLM_TIMEOUT,
    OPENAI_API_KEY,
)
from core.errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


# =============================================================================
# PROMPT TEMPLATES
# =============================================================================

SYSTEM_PROMPT = (
    "You are an educational assistant for Project CYSTEM about PCOS awareness. "
    "Do not provide medical diagnosis, prescriptions, or dosage advice. "
    "If asked for personalized treatment, refuse briefly and recommend consulting a licensed clinician. "
    "Use only the supplied sources. If sources are insufficient, say you do not have enough trusted information. "
    "Keep responses under 180 words and include source tags like [Source 1]."
)

USER_PROMPT_TEMPLATE = """Question: {question}

Trusted sources:
{context}"""

NO_SOURCES_TEXT = "No relevant sources found."
EMPTY_COMPLETION_ANSWER = "I could not generate an answer right now."


def build_context_text(context_items) -> str:
    """Format retrieved documents as numbered sources for the prompt."""
    return "\n\n".join(
        f"Source {i}: {item.document.title}\nURL: {item.document.url}\nExcerpt: {item.document.content}"
        for i, item in enumerate(context_items, start=1)
    )


# =============================================================================
# CLIENT
# =============================================================================

def _get_openai_client(api_key: str, timeout: float) -> OpenAI:
    """
    Get an OpenAI client with a request timeout and no automatic retries.

    Raises:
        ConfigurationError: If no API key is configured
    """
    if not api_key:
        raise ConfigurationError(
            "OpenAI API key not set. "
            "Please set OPENAI_API_KEY in your .env file or environment."
        )
    return OpenAI(api_key=api_key, timeout=timeout, max_retries=0)


def validate_vector(value, label: str) -> list[float]:
    if not isinstance(value, (list, tuple)) or not value:
        raise ProviderError(f"Embedding response missing vector for {label}.")
    if not all(isinstance(x, numbers.Real) and not isinstance(x, bool) for x in value):
        raise ProviderError(f"Embedding response for {label} contains non-numeric values.")
    return [float(x) for x in value]


# =============================================================================
# EMBEDDINGS
# =============================================================================

class OpenAIEmbeddingProvider:
    """
    Embeds texts with the OpenAI embeddings API.

    The client is created lazily so constructing the provider never fails;
    a missing API key surfaces as ConfigurationError on first use.
    """

    def __init__(self, api_key: str = OPENAI_API_KEY, model: str = EMBEDDING_MODEL,
                 timeout: float = EMBEDDING_QUERY_TIMEOUT):
        self.api_key = api_key
        self.model_id = model
        self.timeout = timeout
        self._client: Optional[OpenAI] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> OpenAI:
        """Lazy-load OpenAI client."""
        if self._client is None:
            self._client = _get_openai_client(self.api_key, self.timeout)
        return self._client

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed a batch of texts, preserving input order.

        Raises:
            ConfigurationError: No API key
            ProviderError: Request failed, or the response did not contain
                exactly one numeric vector per input
        """
        texts = list(texts)
        if not texts:
            return []
        try:
            response = self.client.embeddings.create(model=self.model_id, input=texts)
        except OpenAIError as e:
            raise ProviderError(f"Embedding request failed: {e}") from e

        data = getattr(response, "data", None)
        if not isinstance(data, list) or len(data) != len(texts):
            raise ProviderError("Embedding API returned unexpected batch response shape.")

        # The API reports each item's input position; fall back to list order
        ordered = sorted(
            enumerate(data),
            key=lambda pair: getattr(pair[1], "index", pair[0]),
        )
        return [
            validate_vector(getattr(item, "embedding", None), f"input {position}")
            for position, (_, item) in enumerate(ordered)
        ]

    def embed_query(self, text: str) -> list[float]:
        return self.embed([text])[0]


# =============================================================================
# ANSWER GENERATION
# =============================================================================

class OpenAIAnswerGenerator:
    """Generates grounded answers with the OpenAI chat completions API."""

    def __init__(self, api_key: str = OPENAI_API_KEY, model: str = LLM_MODEL,
                 max_tokens: int = LLM_MAX_TOKENS, temperature: float = LLM_TEMPERATURE,
                 timeout: float = LLM_TIMEOUT):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self._client: Optional[OpenAI] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = _get_openai_client(self.api_key, self.timeout)
        return self._client

    def generate(self, question: str, context_items) -> str:
        """
        Generate an answer to `question` grounded in `context_items`.

        Args:
            question: The user's question
            context_items: Retrieved ScoredDocument items, best first

        Returns:
            The model's answer text (trimmed)

        Raises:
            ConfigurationError: No API key
            ProviderError: Request failed or the response had no choices
        """
        user_message = USER_PROMPT_TEMPLATE.format(
            question=question,
            context=build_context_text(context_items) or NO_SOURCES_TEXT,
        )
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            raise ProviderError(f"Answer generation failed: {e}") from e

        choices = getattr(response, "choices", None)
        if not choices:
            raise ProviderError("Chat completion response contained no choices.")
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str) or not content.strip():
            return EMPTY_COMPLETION_ANSWER
        return content.strip()
