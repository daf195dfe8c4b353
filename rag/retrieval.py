"""
rag/retrieval.py - Vector and keyword retrieval over the document index
=======================================================================

Two strategies, chosen per query by an explicit capability check:

- VECTOR: needs an embedding provider with credentials AND at least one
  usable vector in the index. The query is embedded and every document is
  scored by cosine similarity. Documents without a usable vector are scored
  by keyword overlap instead.
- KEYWORD: token overlap between the query and `title + content`,
  normalized by the number of query tokens. Needs no provider at all.

If the vector strategy fails at the provider, or finds nothing, the query
is answered with the keyword strategy. Results keep only positive scores,
are ordered best first, and ties keep document order.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from config import CONTEXT_CHUNKS
from core.errors import ProviderError
from core.text import token_set
from rag.embeddings import EmbeddingIndex, document_hash

logger = logging.getLogger(__name__)

VECTOR_MODE = "vector"
KEYWORD_MODE = "keyword"


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class ScoredDocument:
    document: object
    score: float


@dataclass
class RetrievalResult:
    """
    Result of one retrieval.

    Attributes:
        items: ScoredDocument list, best first
        mode: VECTOR_MODE or KEYWORD_MODE (the strategy that produced `items`)
    """
    items: list = field(default_factory=list)
    mode: str = KEYWORD_MODE

    def __len__(self) -> int:
        return len(self.items)

    @property
    def sources(self) -> list[dict]:
        """Unique {title, url} citations in rank order, de-duplicated by URL."""
        seen = set()
        sources = []
        for item in self.items:
            doc = item.document
            if doc.url not in seen:
                seen.add(doc.url)
                sources.append({"title": doc.title, "url": doc.url})
        return sources


# =============================================================================
# SCORING
# =============================================================================

def cosine_similarity(a, b) -> float:
    """
    Cosine similarity of two vectors.

    Returns -1.0 when either vector is empty or all zeros, or when the
    dimensions differ, so degenerate pairs are always filtered out.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.ndim != 1 or a.shape != b.shape or a.size == 0:
        return -1.0
    norm_sq = float(np.dot(a, a)) * float(np.dot(b, b))
    if norm_sq == 0.0:
        return -1.0
    return float(np.dot(a, b)) / math.sqrt(norm_sq)


def keyword_score(query_tokens: set, document) -> float:
    """Share of query tokens that appear in the document's title or content."""
    doc_tokens = token_set(f"{document.title or ''} {document.content or ''}")
    return len(query_tokens & doc_tokens) / max(1, len(query_tokens))


def top_k(scored: list, limit: int) -> list:
    """Keep positive scores, best first; sorted() is stable so ties keep document order."""
    positive = [item for item in scored if item.score > 0]
    return sorted(positive, key=lambda item: item.score, reverse=True)[:limit]


# =============================================================================
# RETRIEVER
# =============================================================================

class Retriever:
    """
    Retrieves the most relevant documents for a question.

    Usage:
        retriever = Retriever(documents, embedding_index, provider)
        result = retriever.retrieve("What are common PCOS symptoms?")
        for item in result.items:
            print(item.score, item.document.title)
    """

    def __init__(self, documents: list, embedding_index: Optional[EmbeddingIndex] = None,
                 provider=None, limit: int = CONTEXT_CHUNKS):
        self.documents = list(documents)
        self.provider = provider
        self.limit = max(1, int(limit))
        self._vectors = self._usable_vectors(embedding_index)

    def _usable_vectors(self, embedding_index: Optional[EmbeddingIndex]) -> dict:
        """Vectors whose stored hash still matches the current document."""
        if embedding_index is None:
            return {}
        provider_model = getattr(self.provider, "model_id", None)
        if provider_model and embedding_index.model_id and embedding_index.model_id != provider_model:
            logger.warning(
                "Embedding index was built with %s but queries use %s; "
                "using keyword search until the index is rebuilt",
                embedding_index.model_id, provider_model,
            )
            return {}
        records = embedding_index.by_id()
        vectors = {}
        stale = 0
        for doc in self.documents:
            record = records.get(doc.id)
            if record is None:
                continue
            if record.content_hash != document_hash(doc):
                stale += 1
                continue
            vectors[doc.id] = np.asarray(record.vector, dtype=np.float64)
        if stale:
            logger.warning("Ignoring %d stale embedding(s); rebuild the embedding index", stale)
        return vectors

    @property
    def vector_count(self) -> int:
        return len(self._vectors)

    def vector_search_available(self) -> bool:
        """Capability check for the vector strategy."""
        provider_ready = self.provider is not None and getattr(self.provider, "is_configured", True)
        return bool(provider_ready and self._vectors)

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def keyword_search(self, question: str, limit: Optional[int] = None) -> list:
        query_tokens = token_set(question)
        if not query_tokens:
            return []
        scored = [ScoredDocument(doc, keyword_score(query_tokens, doc)) for doc in self.documents]
        return top_k(scored, limit or self.limit)

    def vector_search(self, question: str, limit: Optional[int] = None) -> list:
        """
        Rank documents by cosine similarity to the embedded question.

        Raises:
            ProviderError: The query could not be embedded
        """
        query_vector = self.provider.embed_query(question)
        query_tokens = token_set(question)

        scored = []
        for doc in self.documents:
            vector = self._vectors.get(doc.id)
            if vector is not None:
                score = cosine_similarity(query_vector, vector)
            elif query_tokens:
                score = keyword_score(query_tokens, doc)
            else:
                continue
            scored.append(ScoredDocument(doc, score))
        return top_k(scored, limit or self.limit)

    def retrieve(self, question: str, limit: Optional[int] = None) -> RetrievalResult:
        """
        Retrieve up to `limit` documents, using vectors when available.

        Never raises for provider problems; those degrade to keyword search.
        """
        if not self.documents:
            return RetrievalResult(items=[], mode=KEYWORD_MODE)

        if self.vector_search_available():
            try:
                items = self.vector_search(question, limit)
            except ProviderError as e:
                logger.warning("Embedding retrieval failed, falling back to keyword search: %s", e)
            else:
                if items:
                    return RetrievalResult(items=items, mode=VECTOR_MODE)
                logger.debug("Vector search found nothing; trying keyword search")

        return RetrievalResult(items=self.keyword_search(question, limit), mode=KEYWORD_MODE)
