"""
Shared fixtures for the Document Q&A Bot tests.
"""

import pytest

from docbot.ingestion import SAMPLE_DOCUMENT
from docbot.llm_backend import MockLLMBackend
from docbot.pipeline import DocumentQAPipeline
from tests.fakes import KeywordEmbeddingBackend, RecordingLLM


@pytest.fixture
def keyword_backend():
    return KeywordEmbeddingBackend()


@pytest.fixture
def recording_llm():
    return RecordingLLM()


@pytest.fixture
def sample_pipeline(keyword_backend, recording_llm):
    """Pipeline over the sample document with fake collaborators, initialized."""
    p = DocumentQAPipeline(
        embedding_backend=keyword_backend,
        llm=recording_llm,
        web_search=None,
        documents=[SAMPLE_DOCUMENT],
    )
    p.initialize()
    return p


@pytest.fixture(scope="session")
def mock_llm_pipeline():
    """Initialize the offline pipeline once for the question table tests."""
    p = DocumentQAPipeline(
        embedding_backend=KeywordEmbeddingBackend(),
        llm=MockLLMBackend(),
        web_search=None,
        documents=[SAMPLE_DOCUMENT],
    )
    p.initialize()
    return p
