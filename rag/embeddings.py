"""
rag/embeddings.py - Embedding index build with content-hash reuse
=================================================================

Each document is embedded from `title + "\\n" + content`. A SHA-256 hash of
that text is stored with the vector; on the next build, any document whose
id and hash are unchanged reuses its previous vector and only new or edited
chunks are sent to the provider.

Pending chunks go out in fixed-size batches, one batch at a time. If any
batch comes back with the wrong number of vectors the whole build aborts
and nothing is written. The resulting index is ordered like the document
list, whatever order the batches finished in.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from config import EMBEDDING_BATCH_SIZE, EMBEDDINGS_PATH
from core.errors import ProviderError
from rag.knowledge import write_json_atomic
from rag.providers import validate_vector

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class EmbeddingRecord:
    id: str
    content_hash: str
    vector: list

    def to_dict(self) -> dict:
        return {"id": self.id, "hash": self.content_hash, "embedding": list(self.vector)}


@dataclass
class EmbeddingIndex:
    """
    Vectors for the document index.

    Attributes:
        model_id: Embedding model the vectors came from
        records: EmbeddingRecords in document order
    """
    model_id: str
    records: list = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    def by_id(self) -> dict:
        return {record.id: record for record in self.records}

    def to_dict(self) -> dict:
        return {"model": self.model_id, "items": [r.to_dict() for r in self.records]}

    @classmethod
    def from_dict(cls, data: dict) -> "EmbeddingIndex":
        """Parse an embeddings.json payload, skipping malformed items."""
        records = []
        skipped = 0
        items = data.get("items")
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict) or not isinstance(item.get("id"), str):
                skipped += 1
                continue
            try:
                vector = validate_vector(item.get("embedding"), f"doc id={item['id']}")
            except ProviderError:
                skipped += 1
                continue
            records.append(EmbeddingRecord(
                id=item["id"],
                content_hash=str(item.get("hash") or ""),
                vector=vector,
            ))
        if skipped:
            logger.warning("Skipped %d malformed embedding item(s)", skipped)
        return cls(model_id=str(data.get("model") or ""), records=records)


def embedding_input(document) -> str:
    """The exact text embedded for a document."""
    return f"{document.title or ''}\n{document.content or ''}"


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def document_hash(document) -> str:
    return content_hash(embedding_input(document))


# =============================================================================
# FILE I/O
# =============================================================================

def load_embedding_index(path: Path = EMBEDDINGS_PATH) -> Optional[EmbeddingIndex]:
    """Load embeddings.json; None when missing or unreadable."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Failed to load %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("%s must contain an object; ignoring it", path)
        return None
    return EmbeddingIndex.from_dict(data)


def save_embedding_index(index: EmbeddingIndex, path: Path = EMBEDDINGS_PATH) -> None:
    write_json_atomic(index.to_dict(), Path(path))


# =============================================================================
# BUILD
# =============================================================================

def reusable_records(previous: Optional[EmbeddingIndex], model_id: str) -> dict:
    """Records from a previous build that may be reused with `model_id`."""
    if previous is None:
        return {}
    if previous.model_id and previous.model_id != model_id:
        logger.info(
            "Embedding model changed (%s -> %s); re-embedding everything",
            previous.model_id, model_id,
        )
        return {}
    return previous.by_id()


def build_embedding_index(documents: list, provider,
                          previous: Optional[EmbeddingIndex] = None,
                          batch_size: int = EMBEDDING_BATCH_SIZE,
                          progress=None) -> EmbeddingIndex:
    """
    Compute (or reuse) one vector per document.

    Args:
        documents: Documents in index order
        provider: Embedding provider (model_id, embed(texts))
        previous: Index from the last build, used for hash-based reuse
        batch_size: Number of texts per provider request
        progress: Optional callable(message) for build output

    Returns:
        EmbeddingIndex with records in document order

    Raises:
        ProviderError: A batch failed or returned the wrong number of vectors
        ConfigurationError: The provider has no credentials
    """
    batch_size = max(1, int(batch_size))
    existing = reusable_records(previous, provider.model_id)

    built = {}
    pending = []
    for doc in documents:
        digest = document_hash(doc)
        cached = existing.get(doc.id)
        if cached is not None and cached.content_hash == digest and cached.vector:
            built[doc.id] = cached
        else:
            pending.append((doc, digest))

    if progress:
        progress(f"  Reusing {len(built)} embedding(s), {len(pending)} pending")

    total_batches = (len(pending) + batch_size - 1) // batch_size
    for batch_num, start in enumerate(range(0, len(pending), batch_size), start=1):
        batch = pending[start:start + batch_size]
        vectors = provider.embed([embedding_input(doc) for doc, _ in batch])
        if not isinstance(vectors, list) or len(vectors) != len(batch):
            raise ProviderError("Embedding API returned unexpected batch response shape.")

        for (doc, digest), vector in zip(batch, vectors):
            vector = validate_vector(vector, f"doc id={doc.id}")
            built[doc.id] = EmbeddingRecord(id=doc.id, content_hash=digest, vector=vector)
        if progress:
            progress(f"  Batch {batch_num}/{total_batches}: embedded {', '.join(d.id for d, _ in batch)}")

    return EmbeddingIndex(
        model_id=provider.model_id,
        records=[built[doc.id] for doc in documents if doc.id in built],
    )
