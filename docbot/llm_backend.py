"""
Pluggable LLM backend module.
Provides abstract interface and concrete implementations for answer generation.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import httpx

from docbot.errors import CompletionUnavailable
from docbot.prompts import build_conversation_prompt

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")


@dataclass(frozen=True)
class ConversationMessage:
    """One prior turn of the conversation."""
    role: str
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role}")


def parse_history(raw: Optional[Iterable]) -> List[ConversationMessage]:
    """Build conversation history from request JSON, skipping malformed entries."""
    history = []
    for item in raw or []:
        if not isinstance(item, dict):
            continue
        role, content = item.get("role"), item.get("content")
        if role in ROLES and isinstance(content, str) and content.strip():
            history.append(ConversationMessage(role=role, content=content))
    return history


class LLMBackend(ABC):
    """Abstract base class for LLM backends."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        context: str,
        history: Sequence[ConversationMessage],
        refusal_text: str,
    ) -> str:
        """Answer `prompt` grounded in `context`. Raises CompletionUnavailable."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the backend name."""
        pass


class OllamaLLMBackend(LLMBackend):
    """Completion backend using Ollama's /api/generate endpoint (non-streaming)."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3",
        timeout: float = 120.0,
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

    def complete(
        self,
        prompt: str,
        context: str,
        history: Sequence[ConversationMessage],
        refusal_text: str,
    ) -> str:
        full_prompt = build_conversation_prompt(prompt, context, history, refusal_text)
        try:
            response = self._client.post(
                f"{self._base_url}/api/generate",
                json={"model": self._model, "prompt": full_prompt, "stream": False},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Error calling Ollama: %s", e)
            raise CompletionUnavailable("Failed to generate response from LLM") from e

        answer = data.get("response") if isinstance(data, dict) else None
        if not isinstance(answer, str):
            raise CompletionUnavailable("Ollama response did not contain text")
        return answer


class MockLLMBackend(LLMBackend):
    """
    Rule-based offline backend.
    Quotes the context sentences that overlap most with the question.
    """

    STOP_WORDS = {
        "is", "the", "a", "an", "and", "or", "of", "to", "in", "for",
        "on", "with", "by", "at", "from", "as", "it", "that", "this",
        "are", "was", "were", "be", "been", "have", "has", "had", "do",
        "does", "did", "will", "would", "could", "should", "may", "can",
        "what", "how", "which", "who", "when", "where", "why", "my", "your",
        "i", "we", "our", "about", "many", "much",
    }

    @property
    def name(self) -> str:
        return "mock"

    def complete(
        self,
        prompt: str,
        context: str,
        history: Sequence[ConversationMessage],
        refusal_text: str,
    ) -> str:
        passage = self._extract_best_passage(context, prompt)
        if not passage:
            return refusal_text
        return f"Based on the document:\n\n> {passage}"

    def _keywords(self, text: str) -> set:
        return set(re.findall(r"\b\w+\b", text.lower())) - self.STOP_WORDS

    def _extract_best_passage(self, context: str, question: str, max_chars: int = 400) -> str:
        """Pick up to three context sentences with the most question keywords."""
        question_words = self._keywords(question)
        text = re.sub(r"\s+", " ", context)
        sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+", text)]

        scored = []
        for sent in sentences:
            if len(sent) < 15 or sent.endswith(":"):
                continue
            overlap = len(question_words & self._keywords(sent))
            if overlap:
                scored.append((sent, overlap))

        scored.sort(key=lambda x: x[1], reverse=True)

        result = []
        total_len = 0
        for sent, _ in scored[:3]:
            if total_len + len(sent) > max_chars:
                break
            result.append(sent)
            total_len += len(sent)

        if not result and scored:
            return scored[0][0][:max_chars]
        return " ".join(result)


def get_llm_backend(backend_name: str = "ollama", **kwargs) -> LLMBackend:
    """Factory to create an LLM backend by name."""
    backends = {
        "mock": MockLLMBackend,
        "ollama": OllamaLLMBackend,
    }

    if backend_name not in backends:
        raise ValueError(
            f"Unknown LLM backend: {backend_name}. Available: {list(backends.keys())}"
        )

    return backends[backend_name](**kwargs)
