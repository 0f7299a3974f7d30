"""
End-to-end Document Q&A Pipeline.
Orchestrates: ingestion → chunking → embedding → indexing → retrieval → routing → generation.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import config
from docbot.chunking import chunk_document
from docbot.embeddings import EmbeddingBackend, get_embedding_backend
from docbot.errors import EmbeddingUnavailable, PipelineNotReady
from docbot.ingestion import SAMPLE_DOCUMENT, SourceDocument, load_documents, out_of_scope_message
from docbot.intent import Intent, IntentClassifier, KeywordIntentClassifier
from docbot.llm_backend import ConversationMessage, LLMBackend, get_llm_backend
from docbot.router import RelevanceRouter, SourceCitation, Tier
from docbot.vectorstore import IndexedChunk, VectorStore
from docbot.websearch import SerpApiWebSearch, WebSearchBackend

logger = logging.getLogger(__name__)

# Marks constructor arguments that should be built from config.py
_FROM_CONFIG = object()


class IndexState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class RetrievalResult:
    """What retrieval hands to the caller: routed context plus citations."""
    answer_context: str
    tier: Tier
    best_similarity: float
    sources: List[SourceCitation] = field(default_factory=list)
    web_search_used: bool = False
    refusal_text: Optional[str] = None
    history: List[ConversationMessage] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "answerContext": self.answer_context,
            "sources": [s.to_dict() for s in self.sources],
            "tier": self.tier.value,
            "bestSimilarity": round(self.best_similarity, 4),
            "webSearchUsed": self.web_search_used,
        }


def _default_web_search() -> Optional[WebSearchBackend]:
    if not config.SERPAPI_API_KEY:
        return None
    return SerpApiWebSearch(
        api_key=config.SERPAPI_API_KEY,
        page_timeout=config.WEB_PAGE_TIMEOUT,
        cache_ttl=config.WEB_CACHE_TTL,
    )


def _default_embedding_backend() -> EmbeddingBackend:
    if config.EMBEDDING_BACKEND == "sentence-transformers":
        return get_embedding_backend("sentence-transformers", model_name=config.LOCAL_EMBEDDING_MODEL)
    return get_embedding_backend(
        config.EMBEDDING_BACKEND,
        base_url=config.OLLAMA_HOST,
        model=config.EMBEDDING_MODEL,
        timeout=config.OLLAMA_TIMEOUT,
    )


def _default_llm() -> LLMBackend:
    if config.LLM_BACKEND == "mock":
        return get_llm_backend("mock")
    return get_llm_backend(
        config.LLM_BACKEND,
        base_url=config.OLLAMA_HOST,
        model=config.OLLAMA_MODEL,
        timeout=config.OLLAMA_TIMEOUT,
    )


class DocumentQAPipeline:
    """
    Main pipeline class that orchestrates the full RAG workflow.

    Usage:
        pipeline = DocumentQAPipeline()
        pipeline.initialize()
        result = pipeline.ask("How many vacation days do employees get?")

    initialize() moves the index through UNINITIALIZED → INITIALIZING →
    READY (or FAILED). Concurrent callers share the in-flight build instead
    of starting a second one; a FAILED pipeline may be initialized again.
    """

    def __init__(
        self,
        embedding_backend: Optional[EmbeddingBackend] = None,
        llm: Optional[LLMBackend] = None,
        web_search=_FROM_CONFIG,
        documents: Optional[Sequence[SourceDocument]] = None,
        docs_dir: Optional[Path] = None,
        router: Optional[RelevanceRouter] = None,
        intent_classifier: Optional[IntentClassifier] = None,
        top_k: Optional[int] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        self._embedding = embedding_backend or _default_embedding_backend()
        self._llm = llm or _default_llm()
        self._web_search = _default_web_search() if web_search is _FROM_CONFIG else web_search
        self._router = router or RelevanceRouter(
            low_threshold=config.LOW_SIMILARITY_THRESHOLD,
            high_threshold=config.HIGH_SIMILARITY_THRESHOLD,
            max_web_results=config.WEB_SEARCH_RESULTS,
            max_enhanced=config.WEB_MAX_ENHANCED,
        )
        self._classifier = intent_classifier or KeywordIntentClassifier()
        self._initial_documents = list(documents) if documents is not None else None
        self._docs_dir = docs_dir or config.DOCS_DIR
        self._top_k = top_k if top_k is not None else config.TOP_K
        self._chunk_size = chunk_size if chunk_size is not None else config.CHUNK_SIZE
        self._chunk_overlap = chunk_overlap if chunk_overlap is not None else config.CHUNK_OVERLAP

        self._store = VectorStore()
        self._documents: List[SourceDocument] = []
        self._active_document: Optional[SourceDocument] = None

        # Lifecycle
        self._state = IndexState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._ready_event = threading.Event()
        self._init_error: Optional[BaseException] = None
        self._ingest_lock = threading.Lock()

    # ── Lifecycle ────────────────────────────────────────────────────────

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is IndexState.READY

    def initialize(self) -> None:
        """
        Load, chunk, embed and index the configured documents once.
        Raises PipelineNotReady if the build fails (here or in a shared build).
        """
        with self._state_lock:
            if self._state is IndexState.READY:
                return
            if self._state is IndexState.INITIALIZING:
                event = self._ready_event
                owner = False
            else:
                self._state = IndexState.INITIALIZING
                self._ready_event = event = threading.Event()
                self._init_error = None
                owner = True

        if not owner:
            event.wait()
            if self._state is not IndexState.READY:
                raise PipelineNotReady(f"Initialization failed: {self._init_error}")
            return

        try:
            self._build_index()
        except Exception as e:
            logger.error("Failed to initialize vector store: %s", e)
            with self._state_lock:
                self._init_error = e
                self._state = IndexState.FAILED
            event.set()
            raise PipelineNotReady(f"Initialization failed: {e}") from e

        with self._state_lock:
            self._state = IndexState.READY
        event.set()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until an in-flight initialization finishes; True if READY."""
        if self._state is IndexState.UNINITIALIZED:
            return False
        self._ready_event.wait(timeout)
        return self._state is IndexState.READY

    def _build_index(self) -> None:
        start = time.time()
        logger.info("Initializing vector store...")

        if self._initial_documents is not None:
            documents = self._initial_documents
        elif self._docs_dir is not None:
            documents = load_documents(Path(self._docs_dir))
        else:
            documents = [SAMPLE_DOCUMENT]

        if not documents:
            raise PipelineNotReady(f"No documents found in {self._docs_dir}")

        for document in documents:
            self.ingest(document)

        logger.info(
            "Pipeline ready (%.1fs): %d document(s), %d chunks, %d embedded",
            time.time() - start,
            len(self._documents),
            self._store.count(),
            self._store.embedded_count(),
        )

    def ingest(self, document: SourceDocument) -> int:
        """
        Chunk, embed and index one document; returns the number of chunks added.
        Chunks whose embedding fails are kept without a vector.
        """
        with self._ingest_lock:
            chunks = chunk_document(
                document.content,
                document.source_label,
                target_size=self._chunk_size,
                overlap=self._chunk_overlap,
            )

            indexed = []
            for chunk in chunks:
                try:
                    embedding = self._embedding.embed(chunk.content)
                except EmbeddingUnavailable as e:
                    logger.error("Failed to generate embedding for chunk %s: %s", chunk.id, e)
                    embedding = None
                indexed.append(IndexedChunk(chunk=chunk, embedding=embedding))

            self._store.add_chunks(indexed)
            self._documents.append(document)
            self._active_document = document

        missing = sum(1 for entry in indexed if not entry.has_embedding)
        if missing:
            logger.warning(
                "%d of %d chunks from %s have no embedding and will not be searchable",
                missing, len(indexed), document.source_label,
            )
        return len(indexed)

    def _require_ready(self) -> None:
        if self._state is not IndexState.READY:
            raise PipelineNotReady(
                f"Pipeline not ready (state: {self._state.value}). Call initialize() first."
            )

    # ── Retrieval ────────────────────────────────────────────────────────

    def out_of_scope_message(self) -> str:
        return out_of_scope_message(self._active_document)

    def retrieve_and_route(
        self, query: str, history: Optional[Sequence[ConversationMessage]] = None
    ) -> RetrievalResult:
        """
        Embed the query, search the index and route by confidence.
        The history is carried through unchanged for the completion step.
        EmbeddingUnavailable propagates: no score or context is invented.
        """
        self._require_ready()
        query = query.strip()
        if not query:
            raise ValueError("Query must not be empty")

        query_vector = self._embedding.embed(query)
        matches = self._store.similarity_search(query_vector, self._top_k)
        decision = self._router.route(
            query,
            matches,
            web_search=self._web_search,
            refusal_text=self.out_of_scope_message(),
        )

        return RetrievalResult(
            answer_context=decision.context_text,
            tier=decision.tier,
            best_similarity=decision.best_similarity,
            sources=decision.sources,
            web_search_used=decision.web_search_used,
            refusal_text=decision.refusal_text,
            history=list(history or []),
        )

    # ── Chat ─────────────────────────────────────────────────────────────

    def _conversational_reply(self, intent: Intent) -> str:
        title = self._active_document.title if self._active_document else "loaded document"

        if intent is Intent.GREETING:
            return (
                f"Hello! I'm your **Document Q&A Assistant**. I have the **{title}** "
                f"loaded and ready to search.\n\n"
                f"Ask me anything about it and I'll cite the sections I used."
            )
        if intent is Intent.IDENTITY:
            return (
                "I'm a **Document Q&A Assistant**. I answer questions using the "
                f"**{title}** and show the passages each answer is based on. "
                "When the document only partly covers a question, I add web search results."
            )
        if intent is Intent.THANKS:
            return "You're welcome! Feel free to ask more questions about the document anytime."
        return (
            "Here's how to get the best results:\n\n"
            f"- Ask specific questions about the **{title}**\n"
            "- Refer back to earlier answers (\"tell me more about that\")\n"
            "- Questions unrelated to the document will be politely declined."
        )

    def ask(
        self, message: str, history: Optional[Sequence[ConversationMessage]] = None
    ) -> Dict:
        """
        Answer a chat message, grounded in the routed context.
        Conversational messages are answered without retrieval.
        """
        self._require_ready()
        history = list(history or [])
        timestamp = datetime.now(timezone.utc).isoformat()

        intent = self._classifier.classify(message, history)
        if intent is not Intent.QUESTION:
            return {
                "response": self._conversational_reply(intent),
                "sources": [],
                "tier": None,
                "intent": intent.value,
                "chunksFound": 0,
                "conversationContext": bool(history),
                "timestamp": timestamp,
            }

        retrieval = self.retrieve_and_route(message, history)

        if retrieval.tier is Tier.OUT_OF_SCOPE:
            response = retrieval.refusal_text
        else:
            response = self._llm.complete(
                message,
                retrieval.answer_context,
                retrieval.history,
                self.out_of_scope_message(),
            )

        result = retrieval.to_dict()
        result.update({
            "response": response,
            "intent": intent.value,
            "chunksFound": sum(1 for s in retrieval.sources if s.kind == "document"),
            "conversationContext": bool(history),
            "timestamp": timestamp,
        })
        return result

    # ── Diagnostics ──────────────────────────────────────────────────────

    def document_chunks(self) -> List[Dict]:
        """Chunk listing for debugging, including chunks without embeddings."""
        return [
            {
                "id": entry.chunk.id,
                "preview": entry.chunk.content[:100] + "...",
                "source": entry.chunk.source_label,
                "section": entry.chunk.label,
                "hasEmbedding": entry.has_embedding,
            }
            for entry in self._store.all_entries()
        ]

    def get_stats(self) -> Dict:
        """Return pipeline statistics. Health and model listing are best effort."""
        web = self._web_search
        return {
            "state": self._state.value,
            "documents": len(self._documents),
            "doc_names": [d.source_label for d in self._documents],
            "chunks": self._store.count(),
            "embedded_chunks": self._store.embedded_count(),
            "embedding_backend": self._embedding.name,
            "embedding_healthy": self._embedding.check_health(),
            "models": self._embedding.list_models(),
            "llm_backend": self._llm.name,
            "web_search_enabled": web is not None,
            "web_cache": web.cache_stats() if isinstance(web, SerpApiWebSearch) else None,
            "thresholds": {
                "low": self._router.low_threshold,
                "high": self._router.high_threshold,
            },
        }
