"""
backend/main.py
===============

FastAPI backend for the Project CYSTEM chat assistant.

Provides REST API endpoints for the chat widget:
- POST /api/chat - Ask a question and get an answer with sources
- GET /health - Health check with knowledge base counts
- POST /admin/reload - Reload artifacts after a rebuild

Rate limiting is handled by the gateway in front of this app.

Run with:
    uvicorn backend.main:app --reload --port 3000
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import LOG_LEVEL
from core.context import ChatContext
from core.errors import AskFailure
from core.service import UNAVAILABLE_MESSAGE, answer_question

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("backend")


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class ChatRequest(BaseModel):
    """Request model for chat endpoint. Length limits are enforced by the pipeline."""
    question: str = Field("", description="User's question")


class Source(BaseModel):
    """Source citation model."""
    title: str = Field(..., description="Title of the source")
    url: str = Field("", description="URL of the source")


class ChatResponse(BaseModel):
    """Response model for chat endpoint."""
    answer: str = Field(..., description="Answer text")
    sources: list[Source] = Field(default_factory=list, description="Source citations")
    cached: bool = Field(False, description="Whether the answer came from the answer cache")


class ChatbotStats(BaseModel):
    enabled: bool
    docs: int
    faqs: int
    embeddings: int
    cached_answers: int
    vector_search: bool


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    chatbot: Optional[ChatbotStats] = None


# =============================================================================
# FASTAPI APP
# =============================================================================

app = FastAPI(
    title="Project CYSTEM Assistant API",
    description="PCOS awareness assistant answering from a curated knowledge base",
    version="1.0.0",
)

ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# HTTP status for each AskFailure kind
FAILURE_STATUS = {
    AskFailure.INVALID_QUESTION: 400,
    AskFailure.DISABLED: 503,
    AskFailure.NOT_CONFIGURED: 503,
    AskFailure.UNAVAILABLE: 500,
}


# Global chat context (loaded on first request)
_chat_context: Optional[ChatContext] = None


def get_chat_context() -> ChatContext:
    """Get or load the chat context."""
    global _chat_context
    if _chat_context is None:
        _chat_context = ChatContext.load()
    return _chat_context


def set_chat_context(context: Optional[ChatContext]) -> None:
    """Replace the process-wide context (used at startup and in tests)."""
    global _chat_context
    _chat_context = context


@app.exception_handler(AskFailure)
async def ask_failure_handler(request, exc: AskFailure):
    return JSONResponse(
        status_code=FAILURE_STATUS.get(exc.kind, 500),
        content=exc.to_dict(),
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
def health_check():
    """
    Health check endpoint.

    Reports whether the assistant is enabled and how much of the knowledge
    base is loaded.
    """
    try:
        context = get_chat_context()
    except Exception:
        logger.exception("Failed to load chat context")
        return HealthResponse(status="degraded")
    return HealthResponse(status="ok", chatbot=ChatbotStats(**context.stats()))


@app.post("/api/chat", response_model=ChatResponse, tags=["Chat"])
def chat(request: ChatRequest):
    """
    Ask a question.

    Failures come back as {"error", "kind"} with 400, 503 or 500.
    """
    try:
        response = answer_question(get_chat_context(), request.question)
    except AskFailure:
        raise
    except Exception as e:
        logger.exception("Chatbot error")
        raise AskFailure(AskFailure.UNAVAILABLE, UNAVAILABLE_MESSAGE) from e

    return ChatResponse(
        answer=response.answer,
        sources=[Source(title=str(s.get("title") or ""), url=str(s.get("url") or "")) for s in response.sources],
        cached=response.served_from_cache,
    )


@app.post("/admin/reload", response_model=HealthResponse, tags=["System"])
def reload_knowledge():
    """Reload documents, FAQs, embeddings and the cache from disk."""
    context = get_chat_context()
    context.reload()
    return HealthResponse(status="ok", chatbot=ChatbotStats(**context.stats()))


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
