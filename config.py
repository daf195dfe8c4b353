"""
config.py - Configuration settings for the Project CYSTEM chat assistant
=========================================================================

This file centralizes all configuration values. Anything that differs
between deployments (API keys, model ids, sizes) is read from environment
variables so the same code runs locally and behind the production gateway.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


def _env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    """Read an integer environment variable, falling back to `default`."""
    raw = os.getenv(name, "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    if minimum is not None:
        value = max(minimum, value)
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() == "true"


# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Base directory (where this file lives)
BASE_DIR = Path(__file__).parent

# Curated knowledge sources (markdown documents, faq.json, guardrails.md)
KNOWLEDGE_DIR = BASE_DIR / "knowledge"

# Build artifacts consumed at request time
RAG_ARTIFACTS_DIR = BASE_DIR / "rag_artifacts"
DOCUMENTS_PATH = RAG_ARTIFACTS_DIR / "documents.json"
FAQS_PATH = RAG_ARTIFACTS_DIR / "faqs.json"
GUARDRAILS_PATH = RAG_ARTIFACTS_DIR / "guardrails.txt"
EMBEDDINGS_PATH = RAG_ARTIFACTS_DIR / "embeddings.json"

# Persisted answer cache
CHAT_CACHE_PATH = BASE_DIR / "cache" / "chat-cache.json"

# =============================================================================
# CHUNKING CONFIGURATION
# =============================================================================

# Character-based chunking of knowledge documents
CHUNK_MAX_CHARS = _env_int("KB_CHUNK_MAX_CHARS", 1800)
CHUNK_OVERLAP_CHARS = _env_int("KB_CHUNK_OVERLAP_CHARS", 260)

# =============================================================================
# EMBEDDING CONFIGURATION
# =============================================================================

EMBEDDING_MODEL = os.getenv("CHATBOT_EMBEDDING_MODEL", "text-embedding-3-small")

# Pending chunks are embedded in sequential batches of this size
EMBEDDING_BATCH_SIZE = _env_int("KB_EMBED_BATCH_SIZE", 20, minimum=1)

# Timeouts (seconds) for embedding calls at build time and at query time
EMBEDDING_BUILD_TIMEOUT = 20.0
EMBEDDING_QUERY_TIMEOUT = 12.0

# =============================================================================
# RETRIEVAL CONFIGURATION
# =============================================================================

# Number of chunks passed to the answer generator
CONTEXT_CHUNKS = _env_int("CHATBOT_CONTEXT_CHUNKS", 2, minimum=1)

# Minimum overlap score for a curated FAQ answer to short-circuit retrieval
FAQ_MATCH_THRESHOLD = 0.7

# =============================================================================
# LLM CONFIGURATION
# =============================================================================

# OpenAI API key - MUST be set in environment or .env file for vector
# retrieval and answer generation
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# Model to use for response generation
LLM_MODEL = os.getenv("CHATBOT_MODEL", "gpt-4o-mini")

# Low temperature keeps answers close to the supplied sources
LLM_TEMPERATURE = 0.2

# Maximum tokens in the response
LLM_MAX_TOKENS = _env_int("CHATBOT_MAX_OUTPUT_TOKENS", 350)

LLM_TIMEOUT = 20.0

# =============================================================================
# CHAT CONFIGURATION
# =============================================================================

CHATBOT_ENABLED = _env_bool("CHATBOT_ENABLED", False)

# Cached answers expire after this many hours
CACHE_TTL_HOURS = _env_int("CHATBOT_CACHE_TTL_HOURS", 168, minimum=1)

# Accepted question length (characters, after trimming)
QUESTION_MIN_CHARS = 4
QUESTION_MAX_CHARS = 800

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
