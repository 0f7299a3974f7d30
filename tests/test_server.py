"""
Tests for the Flask JSON API.
"""

import pytest

from docbot.errors import CompletionUnavailable
from docbot.ingestion import SAMPLE_DOCUMENT
from docbot.pipeline import DocumentQAPipeline
from frontend.server import create_app
from tests.fakes import KeywordEmbeddingBackend, RecordingLLM


@pytest.fixture
def backend():
    return KeywordEmbeddingBackend()


@pytest.fixture
def pipeline(backend):
    return DocumentQAPipeline(
        embedding_backend=backend,
        llm=RecordingLLM("Employees get 15 days of paid vacation."),
        web_search=None,
        documents=[SAMPLE_DOCUMENT],
    )


@pytest.fixture
def client(pipeline):
    app = create_app(pipeline)
    app.config["TESTING"] = True
    return app.test_client()


class TestBasics:

    def test_index(self, client):
        data = client.get("/").get_json()
        assert data["status"] == "running"
        assert data["endpoints"]["chat"] == "POST /api/chat"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"


class TestChat:

    @pytest.mark.parametrize(
        "payload",
        [None, {}, {"message": 42}, {"message": "   "}],
        ids=["no-body", "no-message", "not-a-string", "blank"],
    )
    def test_bad_message_rejected(self, client, payload):
        response = client.post("/api/chat", json=payload)
        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_answers_in_scope_question(self, client, pipeline):
        response = client.post("/api/chat", json={
            "message": "How many vacation days do employees get?",
            "conversationHistory": [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello!"},
                {"role": "bogus", "content": "dropped"},
            ],
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data["response"] == "Employees get 15 days of paid vacation."
        assert data["tier"] in ("DocumentOnly", "DocumentPlusWeb")
        assert data["conversationContext"] is True
        assert data["sources"][0]["type"] == "document"
        assert pipeline.is_initialized

    def test_refuses_out_of_scope_question(self, client):
        data = client.post("/api/chat", json={"message": "What is the capital of France?"}).get_json()
        assert data["tier"] == "OutOfScope"
        assert data["response"].startswith("I can only answer questions about the Company Policy Manual")
        assert data["sources"] == []

    def test_embedding_outage_returns_503(self, client, pipeline, backend):
        pipeline.initialize()
        backend.available = False

        response = client.post("/api/chat", json={"message": "Can I work from home?"})

        assert response.status_code == 503
        data = response.get_json()
        assert data["offline"] is True
        assert data["error"] == "Retrieval unavailable"

    def test_completion_outage_returns_503(self, backend):
        class DownLLM(RecordingLLM):
            def complete(self, prompt, context, history, refusal_text):
                raise CompletionUnavailable("model not loaded")

        pipeline = DocumentQAPipeline(
            embedding_backend=backend, llm=DownLLM(), web_search=None, documents=[SAMPLE_DOCUMENT]
        )
        client = create_app(pipeline).test_client()

        response = client.post("/api/chat", json={"message": "Can I work from home?"})
        assert response.status_code == 503
        assert response.get_json()["error"] == "Language model unavailable"

    def test_greeting(self, client):
        data = client.post("/api/chat", json={"message": "hello"}).get_json()
        assert data["intent"] == "greeting"
        assert data["sources"] == []


class TestInspection:

    def test_status(self, client, pipeline):
        pipeline.initialize()
        data = client.get("/api/status").get_json()

        assert data["status"] == "running"
        assert data["state"] == "ready"
        assert data["documents"] == 1
        assert data["embedding_healthy"] is True

    def test_status_before_initialize(self, client):
        data = client.get("/api/status").get_json()
        assert data["state"] == "uninitialized"
        assert data["chunks"] == 0

    def test_documents(self, client):
        data = client.get("/api/documents").get_json()

        assert data["totalChunks"] == len(data["chunks"])
        assert data["totalChunks"] > 0
        assert {"id", "preview", "source", "section", "hasEmbedding"} <= set(data["chunks"][0])

    def test_documents_when_initialization_fails(self, tmp_path):
        pipeline = DocumentQAPipeline(
            embedding_backend=KeywordEmbeddingBackend(),
            llm=RecordingLLM(),
            web_search=None,
            docs_dir=tmp_path,
        )
        response = create_app(pipeline).test_client().get("/api/documents")
        assert response.status_code == 503
