"""
Relevance routing module.
Maps the best similarity score of a query to a confidence tier and assembles
the context and source citations for that tier.
"""

import enum
import logging
import re
import string
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from docbot.vectorstore import ScoredMatch
from docbot.websearch import WebSearchBackend, WebSearchResult, format_results_for_llm

logger = logging.getLogger(__name__)

DEFAULT_LOW_THRESHOLD = 0.1
DEFAULT_HIGH_THRESHOLD = 0.5

DEFAULT_REFUSAL = (
    "I can only answer questions based on the provided document context. "
    "Please ask something related to the document content."
)

SNIPPET_MAX_CHARS = 200
PREVIEW_MAX_CHARS = 300

# Words that mark a line as information-dense when no sentence matches the query
_DENSE_LINE_RE = re.compile(r"[-•:]|\d|employee", re.IGNORECASE)


class Tier(enum.Enum):
    """Confidence tier a query is routed to."""
    OUT_OF_SCOPE = "OutOfScope"
    DOCUMENT_ONLY = "DocumentOnly"
    DOCUMENT_PLUS_WEB = "DocumentPlusWeb"


@dataclass
class SourceCitation:
    """One cited source, either a document chunk or a web result."""
    kind: str
    title: str
    snippet: str
    source: str
    chunk_id: Optional[str] = None
    section: Optional[str] = None
    sequence_index: Optional[int] = None
    similarity: Optional[float] = None
    preview: Optional[str] = None
    link: Optional[str] = None
    source_domain: Optional[str] = None

    def to_dict(self) -> dict:
        if self.kind == "web":
            return {
                "type": "web",
                "title": self.title,
                "snippet": self.snippet,
                "source": self.source,
                "link": self.link,
                "sourceDomain": self.source_domain,
            }
        return {
            "type": "document",
            "id": self.chunk_id,
            "title": self.title,
            "snippet": self.snippet,
            "content": self.preview,
            "source": self.source,
            "section": self.section,
            "similarity": round(self.similarity, 4),
            "confidence": f"{self.similarity * 100:.1f}%",
            "chunkIndex": self.sequence_index,
        }


@dataclass
class RoutingDecision:
    """The tier chosen for a query plus the context handed to the model."""
    tier: Tier
    best_similarity: float
    context_text: str = ""
    sources: List[SourceCitation] = field(default_factory=list)
    web_search_used: bool = False
    refusal_text: Optional[str] = None


# ── Citation Snippets ──────────────────────────────────────────────────────

def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _query_words(query: str) -> List[str]:
    words = (w.strip(string.punctuation) for w in query.lower().split())
    return [w for w in words if len(w) > 3]


def extract_snippet(content: str, query: str) -> str:
    """
    Pick the sentence of a chunk that best matches the query, for citation display.
    Falls back to an information-dense line, then to the first sentence.
    """
    words = _query_words(query)
    sentences = [s for s in re.split(r"[.!?]+", content) if len(s.strip()) > 10]

    best = sentences[0] if sentences else content[:150]
    max_matches = 0
    for sentence in sentences:
        lowered = sentence.lower()
        matches = sum(1 for w in words if w in lowered)
        if matches > max_matches:
            max_matches = matches
            best = sentence

    if max_matches == 0:
        lines = [line for line in content.split("\n") if len(line.strip()) > 10]
        dense = next((line for line in lines if _DENSE_LINE_RE.search(line)), None)
        if dense is not None:
            best = dense

    return _truncate(best.strip(), SNIPPET_MAX_CHARS)


def document_citation(match: ScoredMatch, query: str) -> SourceCitation:
    chunk = match.chunk
    return SourceCitation(
        kind="document",
        title=chunk.section or f"Section {chunk.sequence_index}",
        snippet=extract_snippet(chunk.content, query),
        source=chunk.source_label,
        chunk_id=chunk.id,
        section=chunk.label,
        sequence_index=chunk.sequence_index,
        similarity=match.similarity,
        preview=_truncate(chunk.content, PREVIEW_MAX_CHARS),
    )


def web_citation(result: WebSearchResult) -> SourceCitation:
    return SourceCitation(
        kind="web",
        title=result.title,
        snippet=_truncate(result.snippet, SNIPPET_MAX_CHARS),
        source=result.source_domain,
        link=result.link,
        source_domain=result.source_domain,
    )


# ── Router ─────────────────────────────────────────────────────────────────

class RelevanceRouter:
    """
    Three-tier routing on the best similarity score `s`:

    - s < low:          OUT_OF_SCOPE, no context, fixed refusal
    - low <= s < high:  DOCUMENT_PLUS_WEB, document context enriched with web results
    - s >= high:        DOCUMENT_ONLY, document context only

    Web search failures never escape; they degrade to the document-only
    context with web_search_used=False.
    """

    def __init__(
        self,
        low_threshold: float = DEFAULT_LOW_THRESHOLD,
        high_threshold: float = DEFAULT_HIGH_THRESHOLD,
        max_web_results: int = 3,
        max_enhanced: int = 2,
    ):
        if low_threshold > high_threshold:
            raise ValueError("low_threshold must not exceed high_threshold")
        self.low_threshold = low_threshold
        self.high_threshold = high_threshold
        self.max_web_results = max_web_results
        self.max_enhanced = max_enhanced

    def classify(self, best_similarity: float) -> Tier:
        if best_similarity < self.low_threshold:
            return Tier.OUT_OF_SCOPE
        if best_similarity < self.high_threshold:
            return Tier.DOCUMENT_PLUS_WEB
        return Tier.DOCUMENT_ONLY

    def route(
        self,
        query: str,
        matches: Sequence[ScoredMatch],
        web_search: Optional[WebSearchBackend] = None,
        refusal_text: str = DEFAULT_REFUSAL,
    ) -> RoutingDecision:
        best = matches[0].similarity if matches else 0.0
        tier = self.classify(best)
        logger.info("Query %r - best similarity %.3f -> %s", query, best, tier.value)

        if tier is Tier.OUT_OF_SCOPE:
            return RoutingDecision(tier=tier, best_similarity=best, refusal_text=refusal_text)

        document_context = self.build_document_context(matches)
        document_sources = [document_citation(m, query) for m in matches]

        if tier is Tier.DOCUMENT_ONLY:
            return RoutingDecision(
                tier=tier,
                best_similarity=best,
                context_text=document_context,
                sources=document_sources,
            )

        web_results = self._search_web(query, web_search)
        if not web_results:
            return RoutingDecision(
                tier=tier,
                best_similarity=best,
                context_text=document_context,
                sources=document_sources,
            )

        context = (
            f"DOCUMENT CONTEXT:\n{document_context}\n\n"
            f"{format_results_for_llm(web_results)}"
        )
        return RoutingDecision(
            tier=tier,
            best_similarity=best,
            context_text=context,
            sources=document_sources + [web_citation(r) for r in web_results],
            web_search_used=True,
        )

    @staticmethod
    def build_document_context(matches: Sequence[ScoredMatch]) -> str:
        """Concatenate retrieved chunk texts, best match first."""
        return "\n\n".join(m.chunk.content for m in matches)

    def _search_web(
        self, query: str, web_search: Optional[WebSearchBackend]
    ) -> List[WebSearchResult]:
        """Run the web search and enhancement; empty list on any failure."""
        if web_search is None:
            logger.info("Web search not configured; using document context only")
            return []

        try:
            outcome = web_search.search(query, self.max_web_results)
            if not outcome.success:
                logger.warning("Web search unsuccessful: %s", outcome.error)
                return []
            if not outcome.results:
                return []
            return web_search.enhance(outcome.results, self.max_enhanced)
        except Exception as e:
            logger.warning("Web search failed, falling back to document context: %s", e)
            return []
