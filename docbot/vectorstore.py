"""
In-memory vector store module.
Holds chunk/embedding pairs and answers brute-force cosine similarity queries.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from docbot.chunking import Chunk
from docbot.errors import DimensionMismatch

logger = logging.getLogger(__name__)

EmbeddingVector = Sequence[float]


@dataclass(frozen=True)
class IndexedChunk:
    """A chunk paired with its embedding; embedding is None if generation failed."""
    chunk: Chunk
    embedding: Optional[EmbeddingVector] = None

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None


@dataclass(frozen=True)
class ScoredMatch:
    """A query result: a chunk and its cosine similarity to the query."""
    chunk: Chunk
    similarity: float


def cosine_similarity(a: EmbeddingVector, b: EmbeddingVector) -> float:
    """
    Cosine similarity of two vectors, in [-1, 1].
    A zero-norm vector is treated as maximally dissimilar and scores 0.
    """
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.shape != vb.shape:
        raise DimensionMismatch(
            f"Vectors must have the same length ({va.shape[0]} != {vb.shape[0]})"
        )

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))


class VectorStore:
    """
    Append-only in-memory store for document chunks and their embeddings.

    Writes happen during ingestion; the search path only reads, so concurrent
    queries need no locking once ingestion has finished.
    """

    def __init__(self):
        self._entries: List[IndexedChunk] = []
        self._ids = set()

    def add_chunks(self, chunks: Sequence[IndexedChunk]) -> None:
        """Append chunks in order. Existing entries are never reordered."""
        for entry in chunks:
            if entry.chunk.id in self._ids:
                raise ValueError(f"Duplicate chunk id: {entry.chunk.id}")
            self._ids.add(entry.chunk.id)
            self._entries.append(entry)

        logger.info(
            "Indexed %d chunks (%d total, %d with embeddings)",
            len(chunks), self.count(), self.embedded_count(),
        )

    def similarity_search(
        self, query: EmbeddingVector, top_k: int = 4
    ) -> List[ScoredMatch]:
        """
        Return the top_k most similar chunks, best first.
        Chunks without an embedding are skipped; ties keep insertion order.
        """
        if top_k <= 0:
            return []

        scored = [
            ScoredMatch(entry.chunk, cosine_similarity(query, entry.embedding))
            for entry in self._entries
            if entry.has_embedding
        ]
        if not scored:
            return []

        # sorted() is stable, so equal scores stay in insertion order
        scored = sorted(scored, key=lambda m: m.similarity, reverse=True)
        return scored[:top_k]

    def count(self) -> int:
        return len(self._entries)

    def embedded_count(self) -> int:
        return sum(1 for e in self._entries if e.has_embedding)

    def all_chunks(self) -> List[Chunk]:
        """Snapshot of all chunks in insertion order."""
        return [e.chunk for e in self._entries]

    def all_entries(self) -> List[IndexedChunk]:
        """Snapshot of all indexed entries, including chunks without embeddings."""
        return list(self._entries)

    def source_labels(self) -> List[str]:
        """Distinct source labels in first-seen order."""
        seen = []
        for e in self._entries:
            if e.chunk.source_label not in seen:
                seen.append(e.chunk.source_label)
        return seen
