"""Shared fixtures: in-memory providers, a manual clock, knowledge directories."""

import json
from pathlib import Path

import pytest

from core.errors import ProviderError
from core.context import ArtifactPaths, ChatContext
from rag.embeddings import EmbeddingIndex, EmbeddingRecord, document_hash
from rag.knowledge import Document


class FakeEmbeddingProvider:
    """
    Deterministic embedder: each text becomes a vector with one dimension per
    keyword, set to 1.0 when the keyword appears in the text.
    """

    def __init__(self, keywords=("ovary", "insulin", "sleep"), model_id="fake-embedding",
                 fail=False, configured=True):
        self.keywords = list(keywords)
        self.model_id = model_id
        self.fail = fail
        self.is_configured = configured
        self.calls = []

    def vector_for(self, text):
        lowered = text.lower()
        return [1.0 if k in lowered else 0.0 for k in self.keywords]

    def embed(self, texts):
        texts = list(texts)
        self.calls.append(texts)
        if self.fail:
            raise ProviderError("embedding provider timed out")
        return [self.vector_for(t) for t in texts]

    def embed_query(self, text):
        return self.embed([text])[0]


class FakeGenerator:
    def __init__(self, answer="Generated answer [Source 1].", fail=False, configured=True):
        self.answer = answer
        self.fail = fail
        self.is_configured = configured
        self.calls = []

    def generate(self, question, context_items):
        self.calls.append((question, [item.document.id for item in context_items]))
        if self.fail:
            raise ProviderError("generation provider returned 502")
        return self.answer


class ManualClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


def make_document(doc_id, title, content, url=None, section="notes"):
    return Document(
        id=doc_id,
        title=title,
        url=url if url is not None else f"https://example.org/{doc_id}",
        content=content,
        section=section,
        tags=[],
        token_estimate=len(content) // 4,
    )


def make_index(documents, provider, model_id=None):
    """Embedding index for `documents` built directly from the fake provider."""
    return EmbeddingIndex(
        model_id=model_id or provider.model_id,
        records=[
            EmbeddingRecord(id=d.id, content_hash=document_hash(d),
                            vector=provider.vector_for(f"{d.title}\n{d.content}"))
            for d in documents
        ],
    )


def write_artifacts(directory: Path, documents=(), faqs=(), embedding_index=None) -> ArtifactPaths:
    directory.mkdir(parents=True, exist_ok=True)
    paths = ArtifactPaths(
        documents=directory / "documents.json",
        faqs=directory / "faqs.json",
        embeddings=directory / "embeddings.json",
        cache=directory / "cache" / "chat-cache.json",
    )
    paths.documents.write_text(json.dumps([d.to_dict() for d in documents]), encoding="utf-8")
    paths.faqs.write_text(json.dumps(list(faqs)), encoding="utf-8")
    if embedding_index is not None:
        paths.embeddings.write_text(json.dumps(embedding_index.to_dict()), encoding="utf-8")
    return paths


SAMPLE_DOCUMENTS = [
    make_document("pcos-basics-1", "PCOS Basics", "PCOS affects the ovary and hormone levels. Irregular periods are common."),
    make_document("insulin-1", "Insulin and PCOS", "Insulin resistance is common with PCOS and affects metabolism."),
    make_document("sleep-1", "Sleep and PCOS", "Poor sleep quality is associated with insulin resistance."),
]

SAMPLE_FAQS = [
    {
        "id": "pcos-curable",
        "prompts": ["Is PCOS curable?", "Can PCOS be cured?"],
        "answer": "There is no cure for PCOS, but symptoms can be managed.",
        "sources": [{"title": "What Is PCOS?", "url": "https://example.org/pcos"}],
    }
]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def embedder():
    return FakeEmbeddingProvider()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def chat_context(tmp_path, embedder, generator, clock):
    """Enabled context over SAMPLE_DOCUMENTS and SAMPLE_FAQS, without embeddings."""
    paths = write_artifacts(tmp_path / "artifacts", SAMPLE_DOCUMENTS, SAMPLE_FAQS)
    return ChatContext.load(
        paths=paths,
        embedding_provider=embedder,
        generator=generator,
        enabled=True,
        context_chunks=2,
        cache_ttl_hours=1,
        cache_clock=clock,
    )


@pytest.fixture
def knowledge_dir(tmp_path):
    """A small knowledge directory with two sources, an FAQ list and guardrail notes."""
    root = tmp_path / "knowledge"
    root.mkdir()
    (root / "b_lifestyle.md").write_text(
        "---\ntitle: Lifestyle\nsource_url: https://example.org/lifestyle\ntags: diet, exercise\n---\n"
        "# Lifestyle\n\nRegular **exercise** helps many people.\n\nSee [the guide](https://example.org/guide).\n",
        encoding="utf-8",
    )
    (root / "a_what_is_pcos.md").write_text(
        "PCOS is a common hormonal condition.\n\n`code` and ```\nfenced\n``` are dropped.\n",
        encoding="utf-8",
    )
    (root / "guardrails.md").write_text("# Guardrails\n\nNo dosage advice.\n", encoding="utf-8")
    (root / "faq.json").write_text(json.dumps(SAMPLE_FAQS), encoding="utf-8")
    return root
