"""
Embedding module with pluggable backends.
Provides a unified interface for turning text into embedding vectors.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from docbot.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)


class EmbeddingBackend(ABC):
    """Abstract base class for embedding backends."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Embed a single text. Raises EmbeddingUnavailable on failure."""
        pass

    @abstractmethod
    def check_health(self) -> bool:
        """Liveness probe. Never raises."""
        pass

    @abstractmethod
    def list_models(self) -> List[str]:
        """Best-effort list of available models; empty on failure."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the backend name."""
        pass


def _validate_vector(raw) -> List[float]:
    if not isinstance(raw, list) or not raw:
        raise EmbeddingUnavailable("Embedding response did not contain a vector")
    try:
        return [float(x) for x in raw]
    except (TypeError, ValueError) as e:
        raise EmbeddingUnavailable(f"Embedding vector is not numeric: {e}") from e


class OllamaEmbeddingBackend(EmbeddingBackend):
    """
    Embedding backend talking to an Ollama server over HTTP.
    Uses /api/embeddings for vectors and /api/tags for health and model listing.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def model(self) -> str:
        return self._model

    def embed(self, text: str) -> List[float]:
        try:
            response = self._client.post(
                f"{self._base_url}/api/embeddings",
                json={"model": self._model, "prompt": text},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error("Error getting embeddings from Ollama: %s", e)
            raise EmbeddingUnavailable(f"Failed to generate embeddings: {e}") from e
        except ValueError as e:
            raise EmbeddingUnavailable("Ollama returned invalid JSON") from e

        if not isinstance(data, dict):
            raise EmbeddingUnavailable("Unexpected embeddings response shape")
        return _validate_vector(data.get("embedding"))

    def check_health(self) -> bool:
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            return response.is_success
        except httpx.HTTPError:
            return False

    def list_models(self) -> List[str]:
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if not response.is_success:
                return []
            models = response.json().get("models") or []
            return [m["name"] for m in models if isinstance(m, dict) and "name" in m]
        except (httpx.HTTPError, ValueError, AttributeError):
            return []


class SentenceTransformerBackend(EmbeddingBackend):
    """
    Embedding backend using Sentence Transformers (HuggingFace).
    Uses all-MiniLM-L6-v2 by default — lightweight (80MB), runs fully offline.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self._model_name = model_name
        self._model = None  # lazy load to save memory

    @property
    def name(self) -> str:
        return "sentence-transformers"

    @property
    def model(self) -> str:
        return self._model_name

    def _load_model(self):
        if self._model is None:
            logger.info("Loading embedding model: %s", self._model_name)
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self._model_name)

    def embed(self, text: str) -> List[float]:
        try:
            self._load_model()
            vector = self._model.encode(
                [text],
                show_progress_bar=False,
                normalize_embeddings=True,
            )[0]
        except Exception as e:
            raise EmbeddingUnavailable(f"Local embedding failed: {e}") from e
        return [float(x) for x in vector]

    def check_health(self) -> bool:
        try:
            self._load_model()
            return True
        except Exception:
            return False

    def list_models(self) -> List[str]:
        return [self._model_name]


def get_embedding_backend(backend_name: str = "ollama", **kwargs) -> EmbeddingBackend:
    """Factory to create an embedding backend by name."""
    backends = {
        "ollama": OllamaEmbeddingBackend,
        "sentence-transformers": SentenceTransformerBackend,
    }

    if backend_name not in backends:
        raise ValueError(
            f"Unknown embedding backend: {backend_name}. Available: {list(backends.keys())}"
        )

    return backends[backend_name](**kwargs)
