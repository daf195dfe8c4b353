import json

import pytest

from core.cache import MS_PER_HOUR
from core.context import ChatContext
from core.errors import AskFailure, ConfigurationError
from core.faq import FAQ_DISCLAIMER
from core.safety import REFUSAL_MESSAGE
from core.service import ANSWER_DISCLAIMER, INSUFFICIENT_CONTEXT_MESSAGE, answer_question

from conftest import SAMPLE_DOCUMENTS, SAMPLE_FAQS, make_document, make_index, write_artifacts

INSULIN_QUESTION = "How does insulin resistance affect metabolism?"


def ask_failure_kind(context, question):
    with pytest.raises(AskFailure) as excinfo:
        answer_question(context, question)
    return excinfo.value.kind


# =============================================================================
# Request checks
# =============================================================================

def test_disabled_assistant_refuses_everything(chat_context):
    chat_context.enabled = False
    assert ask_failure_kind(chat_context, "What is PCOS?") == AskFailure.DISABLED


@pytest.mark.parametrize("question", ["", "hi?", "   abc   ", "x" * 801, None])
def test_question_length_is_validated(chat_context, question):
    assert ask_failure_kind(chat_context, question) == AskFailure.INVALID_QUESTION


# =============================================================================
# Guardrail and FAQ
# =============================================================================

def test_guardrail_refusal_never_touches_the_cache(chat_context, generator):
    question = "What dosage of metformin should I take?"
    chat_context.cache.set(question, "A cached answer that must not be served.", [])
    before = chat_context.cache.get(question)

    response = answer_question(chat_context, question)

    assert response.answer == REFUSAL_MESSAGE
    assert response.sources == []
    assert not response.served_from_cache
    assert chat_context.cache.get(question) == before
    assert len(chat_context.cache) == 1
    assert generator.calls == []


def test_guardrail_refusal_is_not_written(chat_context):
    answer_question(chat_context, "Can you diagnose me?")
    assert len(chat_context.cache) == 0
    assert not chat_context.paths.cache.exists()


def test_faq_answer_is_served_and_not_cached(chat_context, generator):
    response = answer_question(chat_context, "Is PCOS curable?")

    assert response.answer == SAMPLE_FAQS[0]["answer"] + FAQ_DISCLAIMER
    assert response.sources == SAMPLE_FAQS[0]["sources"]
    assert not response.served_from_cache
    assert len(chat_context.cache) == 0
    assert generator.calls == []


# =============================================================================
# Retrieval, generation and caching
# =============================================================================

def test_generated_answer_is_cached(chat_context, generator):
    response = answer_question(chat_context, INSULIN_QUESTION)

    assert response.answer == "Generated answer [Source 1]." + ANSWER_DISCLAIMER
    assert response.sources == [
        {"title": "Insulin and PCOS", "url": "https://example.org/insulin-1"},
        {"title": "Sleep and PCOS", "url": "https://example.org/sleep-1"},
    ]
    assert not response.served_from_cache
    assert generator.calls == [(INSULIN_QUESTION, ["insulin-1", "sleep-1"])]

    again = answer_question(chat_context, "  how does INSULIN resistance affect metabolism ")
    assert again.served_from_cache
    assert again.answer == response.answer
    assert again.sources == response.sources
    assert len(generator.calls) == 1

    persisted = json.loads(chat_context.paths.cache.read_text(encoding="utf-8"))
    assert list(persisted) == ["how does insulin resistance affect metabolism"]


def test_stale_cache_entry_is_regenerated(chat_context, generator, clock):
    answer_question(chat_context, INSULIN_QUESTION)
    clock.advance(MS_PER_HOUR + 1)

    response = answer_question(chat_context, INSULIN_QUESTION)

    assert not response.served_from_cache
    assert len(generator.calls) == 2


def test_insufficient_information_answer_is_cached(chat_context, generator):
    question = "Tell me about thyroid nodules"
    response = answer_question(chat_context, question)

    assert response.answer == INSUFFICIENT_CONTEXT_MESSAGE
    assert response.sources == []
    assert generator.calls == []
    assert answer_question(chat_context, question).served_from_cache


def test_generation_failure_is_unavailable_and_not_cached(chat_context, generator):
    generator.fail = True
    assert ask_failure_kind(chat_context, INSULIN_QUESTION) == AskFailure.UNAVAILABLE
    assert len(chat_context.cache) == 0


def test_unconfigured_generator(chat_context, generator):
    generator.is_configured = False
    assert ask_failure_kind(chat_context, INSULIN_QUESTION) == AskFailure.NOT_CONFIGURED
    assert generator.calls == []

    chat_context.generator = None
    assert ask_failure_kind(chat_context, INSULIN_QUESTION) == AskFailure.NOT_CONFIGURED


def test_configuration_error_from_generator_is_not_configured(chat_context):
    class MissingKeyGenerator:
        def generate(self, question, context_items):
            raise ConfigurationError("OpenAI API key not set.")

    chat_context.generator = MissingKeyGenerator()
    assert ask_failure_kind(chat_context, INSULIN_QUESTION) == AskFailure.NOT_CONFIGURED


def test_vector_retrieval_feeds_generation(tmp_path, embedder, generator, clock):
    paths = write_artifacts(
        tmp_path / "artifacts", SAMPLE_DOCUMENTS, SAMPLE_FAQS,
        embedding_index=make_index(SAMPLE_DOCUMENTS, embedder),
    )
    context = ChatContext.load(paths=paths, embedding_provider=embedder, generator=generator,
                               enabled=True, context_chunks=2, cache_ttl_hours=1, cache_clock=clock)

    response = answer_question(context, "Why does sleep matter?")

    assert generator.calls == [("Why does sleep matter?", ["sleep-1"])]
    assert response.sources == [{"title": "Sleep and PCOS", "url": "https://example.org/sleep-1"}]


# =============================================================================
# Context
# =============================================================================

def test_context_stats_and_reload(chat_context, embedder, clock):
    assert chat_context.stats() == {
        "enabled": True,
        "docs": 3,
        "faqs": 1,
        "embeddings": 0,
        "cached_answers": 0,
        "vector_search": False,
    }

    answer_question(chat_context, INSULIN_QUESTION)
    documents = SAMPLE_DOCUMENTS + [make_document("diet-1", "Diet", "Fiber and protein help.")]
    write_artifacts(chat_context.paths.documents.parent, documents, SAMPLE_FAQS,
                    embedding_index=make_index(documents, embedder))

    chat_context.reload()

    stats = chat_context.stats()
    assert stats["docs"] == 4
    assert stats["embeddings"] == 4
    assert stats["vector_search"] is True
    assert stats["cached_answers"] == 1
    assert chat_context.cache.clock is clock


def test_context_tolerates_missing_artifacts(tmp_path, embedder, generator):
    paths = write_artifacts(tmp_path / "artifacts")
    paths.documents.unlink()
    context = ChatContext.load(paths=paths, embedding_provider=embedder, generator=generator, enabled=True)

    assert context.stats()["docs"] == 0
    assert answer_question(context, "Is PCOS curable?").answer == INSUFFICIENT_CONTEXT_MESSAGE


def test_malformed_artifacts_do_not_break_guardrail_or_faq(tmp_path, embedder, generator):
    paths = write_artifacts(tmp_path / "artifacts", SAMPLE_DOCUMENTS, SAMPLE_FAQS)
    documents = json.loads(paths.documents.read_text(encoding="utf-8"))
    documents[0]["token_estimate"] = "n/a"
    paths.documents.write_text(json.dumps(documents), encoding="utf-8")
    paths.embeddings.write_text(json.dumps({
        "model": embedder.model_id,
        "items": [{"id": "insulin-1", "hash": "h", "embedding": ["x", 1.0]}],
    }), encoding="utf-8")

    context = ChatContext.load(paths=paths, embedding_provider=embedder, generator=generator, enabled=True)

    assert context.stats()["docs"] == 2
    assert context.stats()["embeddings"] == 0
    assert answer_question(context, "Can you diagnose me?").answer == REFUSAL_MESSAGE
    assert answer_question(context, "Is PCOS curable?").sources == SAMPLE_FAQS[0]["sources"]
