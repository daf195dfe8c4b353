"""
core/context.py - Process-wide chat state
=========================================

Everything the pipeline reads at request time lives in one ChatContext:
the document index, the embedding index (through the retriever), the FAQ
list, the answer cache, and the two providers. It is created once at
startup with `ChatContext.load()` and refreshed in place with `reload()`
after the artifacts have been rebuilt.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from config import (
    CACHE_TTL_HOURS,
    CHAT_CACHE_PATH,
    CHATBOT_ENABLED,
    CONTEXT_CHUNKS,
    DOCUMENTS_PATH,
    EMBEDDINGS_PATH,
    FAQS_PATH,
)
from core.cache import AnswerCache, now_ms
from rag.embeddings import load_embedding_index
from rag.knowledge import load_documents, load_faqs
from rag.providers import OpenAIAnswerGenerator, OpenAIEmbeddingProvider
from rag.retrieval import Retriever

logger = logging.getLogger(__name__)


@dataclass
class ArtifactPaths:
    documents: Path = DOCUMENTS_PATH
    faqs: Path = FAQS_PATH
    embeddings: Path = EMBEDDINGS_PATH
    cache: Optional[Path] = CHAT_CACHE_PATH


class ChatContext:
    """
    State shared by every question handled by this process.

    Attributes:
        documents: Document index
        faqs: Validated FaqEntry list
        retriever: Retriever over `documents` and the embedding index
        cache: AnswerCache
        generator: Answer generator (generate(question, items) -> str)
        enabled: Whether the assistant accepts questions at all
        context_chunks: Number of documents handed to the generator
    """

    def __init__(self, documents: list, faqs: list, retriever: Retriever, cache: AnswerCache,
                 generator=None, enabled: bool = CHATBOT_ENABLED,
                 context_chunks: int = CONTEXT_CHUNKS,
                 paths: Optional[ArtifactPaths] = None, embedding_provider=None):
        self.documents = documents
        self.faqs = faqs
        self.retriever = retriever
        self.cache = cache
        self.generator = generator
        self.enabled = enabled
        self.context_chunks = max(1, int(context_chunks))
        self.paths = paths
        self.embedding_provider = embedding_provider

    @classmethod
    def load(cls, paths: Optional[ArtifactPaths] = None, embedding_provider=None,
             generator=None, enabled: bool = CHATBOT_ENABLED,
             context_chunks: int = CONTEXT_CHUNKS,
             cache_ttl_hours: float = CACHE_TTL_HOURS, cache_clock=now_ms) -> "ChatContext":
        """
        Load all build artifacts and the persisted cache.

        Missing artifacts are not fatal: the assistant then answers from
        the guardrail, the FAQ list and whatever else is available.
        """
        paths = paths or ArtifactPaths()
        if embedding_provider is None:
            embedding_provider = OpenAIEmbeddingProvider()
        if generator is None:
            generator = OpenAIAnswerGenerator()

        context = cls(
            documents=[], faqs=[],
            retriever=Retriever([], None, embedding_provider, context_chunks),
            cache=AnswerCache(path=paths.cache, ttl_hours=cache_ttl_hours, clock=cache_clock),
            generator=generator, enabled=enabled, context_chunks=context_chunks,
            paths=paths, embedding_provider=embedding_provider,
        )
        context.reload()
        return context

    def reload(self) -> None:
        """Re-read documents, FAQs, embeddings and the cache from disk."""
        if self.paths is None:
            raise RuntimeError("This context was not loaded from artifacts and cannot reload")

        documents = load_documents(self.paths.documents)
        faqs = load_faqs(self.paths.faqs)
        embedding_index = load_embedding_index(self.paths.embeddings)
        retriever = Retriever(documents, embedding_index, self.embedding_provider, self.context_chunks)
        cache = AnswerCache.load(self.paths.cache, ttl_hours=self.cache.ttl_hours, clock=self.cache.clock)

        # Swapped together: readers never see old and new artifacts mixed
        self.documents, self.faqs, self.retriever, self.cache = documents, faqs, retriever, cache

        logger.info(
            "Loaded docs=%d, faqs=%d, embeddings=%d, cached answers=%d",
            len(documents), len(faqs), retriever.vector_count, len(cache),
        )

    def stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "docs": len(self.documents),
            "faqs": len(self.faqs),
            "embeddings": self.retriever.vector_count,
            "cached_answers": len(self.cache),
            "vector_search": self.retriever.vector_search_available(),
        }
