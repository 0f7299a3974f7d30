"""
Tests for the pipeline lifecycle, retrieval boundary and chat flow.
"""

import threading

import pytest

from docbot.errors import EmbeddingUnavailable, PipelineNotReady
from docbot.ingestion import SAMPLE_DOCUMENT, SourceDocument, load_documents
from docbot.intent import Intent, KeywordIntentClassifier
from docbot.llm_backend import ConversationMessage
from docbot.pipeline import DocumentQAPipeline, IndexState
from docbot.router import RelevanceRouter, Tier
from tests.fakes import (
    FakeWebSearch,
    GatedEmbeddingBackend,
    KeywordEmbeddingBackend,
    MappingEmbeddingBackend,
    RecordingLLM,
)

SMALL_DOCUMENT = SourceDocument(
    title="Leave Notes",
    description="leave rules",
    content="Employees get vacation. Sick leave needs a note from a manager.",
    source_label="leave-notes",
)


def make_pipeline(**kwargs):
    kwargs.setdefault("embedding_backend", KeywordEmbeddingBackend())
    kwargs.setdefault("llm", RecordingLLM())
    kwargs.setdefault("web_search", None)
    kwargs.setdefault("documents", [SAMPLE_DOCUMENT])
    return DocumentQAPipeline(**kwargs)


# ── Lifecycle ─────────────────────────────────────────────────────────────

class TestLifecycle:

    def test_initialize_reaches_ready(self):
        pipeline = make_pipeline()
        assert pipeline.state is IndexState.UNINITIALIZED
        assert pipeline.wait_until_ready(timeout=0) is False

        pipeline.initialize()

        assert pipeline.state is IndexState.READY
        assert pipeline.is_initialized
        assert pipeline.wait_until_ready(timeout=0) is True
        assert pipeline.get_stats()["chunks"] > 0

    def test_initialize_is_idempotent(self, sample_pipeline, keyword_backend):
        calls = len(keyword_backend.calls)
        chunks = sample_pipeline.get_stats()["chunks"]

        sample_pipeline.initialize()

        assert len(keyword_backend.calls) == calls
        assert sample_pipeline.get_stats()["chunks"] == chunks

    def test_concurrent_initialize_shares_one_build(self):
        backend = GatedEmbeddingBackend()
        pipeline = make_pipeline(embedding_backend=backend, documents=[SMALL_DOCUMENT])
        errors = []

        def run():
            try:
                pipeline.initialize()
            except Exception as e:  # surfaced by the assertion below
                errors.append(e)

        first = threading.Thread(target=run)
        first.start()
        assert backend.started.wait(timeout=5)
        assert pipeline.state is IndexState.INITIALIZING

        second = threading.Thread(target=run)
        second.start()
        backend.gate.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert errors == []
        assert pipeline.state is IndexState.READY
        stats = pipeline.get_stats()
        assert stats["documents"] == 1
        assert len(backend.calls) == stats["chunks"]

    def test_failed_initialization_can_be_retried(self, tmp_path):
        pipeline = make_pipeline(documents=None, docs_dir=tmp_path)

        with pytest.raises(PipelineNotReady):
            pipeline.initialize()
        assert pipeline.state is IndexState.FAILED

        (tmp_path / "handbook.md").write_text("# Handbook\n\nEmployees get vacation.")
        pipeline.initialize()
        assert pipeline.state is IndexState.READY

    def test_unexpected_build_error_marks_failed(self):
        class ExplodingBackend(KeywordEmbeddingBackend):
            def embed(self, text):
                raise RuntimeError("corrupt model file")

        pipeline = make_pipeline(embedding_backend=ExplodingBackend())
        with pytest.raises(PipelineNotReady, match="corrupt model file"):
            pipeline.initialize()
        assert pipeline.state is IndexState.FAILED

    def test_use_before_initialize_raises(self):
        pipeline = make_pipeline()
        with pytest.raises(PipelineNotReady):
            pipeline.ask("How many vacation days do employees get?")
        with pytest.raises(PipelineNotReady):
            pipeline.retrieve_and_route("vacation")

    def test_chunks_without_embeddings_are_kept(self):
        backend = KeywordEmbeddingBackend(fail_on=["Benefits Package"])
        pipeline = make_pipeline(embedding_backend=backend)
        pipeline.initialize()

        stats = pipeline.get_stats()
        listing = pipeline.document_chunks()
        assert pipeline.state is IndexState.READY
        assert stats["embedded_chunks"] < stats["chunks"]
        assert len(listing) == stats["chunks"]
        assert [c["hasEmbedding"] for c in listing].count(False) >= 1

    def test_ingest_adds_document(self, sample_pipeline):
        before = sample_pipeline.get_stats()["chunks"]
        added = sample_pipeline.ingest(SMALL_DOCUMENT)

        stats = sample_pipeline.get_stats()
        assert added >= 1
        assert stats["chunks"] == before + added
        assert stats["doc_names"] == ["company-policy-manual", "leave-notes"]
        assert "Leave Notes" in sample_pipeline.out_of_scope_message()


# ── Retrieval ─────────────────────────────────────────────────────────────

class TestRetrieval:

    def test_tiny_document_end_to_end(self):
        backend = MappingEmbeddingBackend({
            "A.": [1.0, 0.0, 0.0],
            ". B?": [0.0, 1.0, 0.0],
            "? C!": [0.0, 0.0, 1.0],
            "B?": [0.0, 1.0, 0.0],
        })
        document = SourceDocument(
            title="Tiny", description="letters", content="A. B? C!", source_label="tiny"
        )
        pipeline = make_pipeline(
            embedding_backend=backend, documents=[document], chunk_size=4, chunk_overlap=1
        )
        pipeline.initialize()

        result = pipeline.retrieve_and_route("B?")

        assert result.tier is Tier.DOCUMENT_ONLY
        assert result.best_similarity == pytest.approx(1.0)
        assert result.sources[0].preview == ". B?"
        assert result.answer_context.startswith(". B?")

    def test_query_embedding_failure_propagates(self, sample_pipeline, keyword_backend):
        keyword_backend.available = False
        with pytest.raises(EmbeddingUnavailable):
            sample_pipeline.retrieve_and_route("How many vacation days do employees get?")

    def test_empty_query_rejected(self, sample_pipeline):
        with pytest.raises(ValueError):
            sample_pipeline.retrieve_and_route("   ")

    def test_explicit_zero_top_k_is_respected(self):
        pipeline = make_pipeline(top_k=0)
        pipeline.initialize()

        result = pipeline.retrieve_and_route("How many vacation days do employees get?")

        assert result.sources == []
        assert result.tier is Tier.OUT_OF_SCOPE

    def test_marginal_query_uses_web(self):
        web = FakeWebSearch()
        pipeline = make_pipeline(
            web_search=web, router=RelevanceRouter(low_threshold=0.01, high_threshold=1.01)
        )
        pipeline.initialize()

        result = pipeline.retrieve_and_route("Can I work from home?")

        assert result.tier is Tier.DOCUMENT_PLUS_WEB
        assert result.web_search_used is True
        assert len(web.search_calls) == 1
        assert "WEB SEARCH RESULTS:" in result.answer_context
        assert result.to_dict()["tier"] == "DocumentPlusWeb"


# ── Chat ──────────────────────────────────────────────────────────────────

class TestAsk:

    def test_in_scope_question_calls_llm(self, sample_pipeline, recording_llm):
        result = sample_pipeline.ask("How many vacation days do employees get?")

        assert result["response"] == "Grounded answer."
        assert result["tier"] in ("DocumentOnly", "DocumentPlusWeb")
        assert result["intent"] == "question"
        assert result["chunksFound"] >= 1
        assert result["webSearchUsed"] is False
        assert len(recording_llm.calls) == 1
        assert "vacation" in recording_llm.calls[0]["context"]
        assert "Company Policy Manual" in recording_llm.calls[0]["refusal_text"]

    @pytest.mark.parametrize(
        "question",
        [
            "What is the capital of France?",
            "Can you write me a Python function to sort a list?",
        ],
    )
    def test_out_of_scope_question_is_refused(self, sample_pipeline, recording_llm, question):
        result = sample_pipeline.ask(question)

        assert result["tier"] == "OutOfScope"
        assert result["response"] == (
            "I can only answer questions about the Company Policy Manual. "
            "Please ask something related to company policies, procedures, "
            "and employee benefits information."
        )
        assert result["sources"] == []
        assert result["answerContext"] == ""
        assert recording_llm.calls == []

    def test_history_is_forwarded(self, sample_pipeline, recording_llm):
        history = [
            ConversationMessage("user", "What about remote work?"),
            ConversationMessage("assistant", "Up to 3 days per week from home."),
        ]
        result = sample_pipeline.ask("Does my manager need to approve remote work?", history)

        assert result["conversationContext"] is True
        assert recording_llm.calls[0]["history"] == history

    def test_greeting_skips_retrieval(self, sample_pipeline, keyword_backend, recording_llm):
        calls = len(keyword_backend.calls)
        result = sample_pipeline.ask("Hello!")

        assert result["intent"] == "greeting"
        assert result["tier"] is None
        assert "Company Policy Manual" in result["response"]
        assert len(keyword_backend.calls) == calls
        assert recording_llm.calls == []

    def test_stats(self, sample_pipeline):
        stats = sample_pipeline.get_stats()
        assert stats["state"] == "ready"
        assert stats["documents"] == 1
        assert stats["embedding_backend"] == "keyword"
        assert stats["embedding_healthy"] is True
        assert stats["llm_backend"] == "recording"
        assert stats["web_search_enabled"] is False
        assert stats["web_cache"] is None
        assert stats["thresholds"] == {"low": 0.1, "high": 0.5}


# ── Intent ────────────────────────────────────────────────────────────────

class TestIntent:

    @pytest.mark.parametrize(
        "text,intent",
        [
            ("hi", Intent.GREETING),
            ("Hello!", Intent.GREETING),
            ("hi there", Intent.GREETING),
            ("hi how many sick days do I get", Intent.QUESTION),
            ("Who are you?", Intent.IDENTITY),
            ("thanks", Intent.THANKS),
            ("help", Intent.HELP),
            ("What is the remote work policy?", Intent.QUESTION),
        ],
    )
    def test_keyword_classifier(self, text, intent):
        assert KeywordIntentClassifier().classify(text) is intent


# ── Loading ───────────────────────────────────────────────────────────────

class TestLoadDocuments:

    def test_loads_text_and_markdown(self, tmp_path):
        (tmp_path / "travel_policy.txt").write_text("Book flights through the portal.")
        (tmp_path / "faq.md").write_text("# FAQ\n\nAsk HR.")
        (tmp_path / ".hidden.txt").write_text("skip me")
        (tmp_path / "data.csv").write_text("a,b")
        (tmp_path / "empty.txt").write_text("   ")

        documents = load_documents(tmp_path)

        assert [d.source_label for d in documents] == ["faq.md", "travel_policy.txt"]
        assert documents[0].doc_type == "markdown"
        assert documents[1].title == "Travel Policy"

    def test_missing_directory(self, tmp_path):
        assert load_documents(tmp_path / "nope") == []
