"""
Web search module.
Fetches supplementary web snippets when local retrieval confidence is marginal.
"""

import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from docbot.errors import WebSearchFailure

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# Tags removed before extracting page text
REMOVE_SELECTORS = "script, style, nav, header, footer, .advertisement, .ads"

# Main content containers, tried in order before falling back to <body>
CONTENT_SELECTORS = [
    "main",
    "article",
    ".content",
    ".main-content",
    "#content",
    ".post-content",
    ".entry-content",
]

MAX_PAGE_TEXT = 500

_API_KEY_RE = re.compile(r"api_key=[^&\s'\"]+")


@dataclass(frozen=True)
class WebSearchResult:
    """A single ranked web search hit."""
    title: str
    link: str
    snippet: str
    source_domain: str


@dataclass
class BrowsingResult:
    """Outcome of one web search call."""
    success: bool
    query: str
    results: List[WebSearchResult] = field(default_factory=list)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    error: Optional[str] = None


class WebSearchBackend(ABC):
    """Abstract base class for web search providers."""

    @abstractmethod
    def search(self, query: str, max_results: int = 5) -> BrowsingResult:
        """Search the web. Failures are reported with success=False."""
        pass

    @abstractmethod
    def enhance(
        self, results: List[WebSearchResult], max_enhanced: int = 2
    ) -> List[WebSearchResult]:
        """Replace the snippets of the top results with fuller page text."""
        pass


def extract_domain(url: str) -> str:
    """Return the host of a URL without a leading 'www.'."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    if not host:
        return "Unknown source"
    return host[4:] if host.startswith("www.") else host


def format_results_for_llm(results: List[WebSearchResult]) -> str:
    """Combine web results into a numbered context block for the LLM."""
    if not results:
        return ""

    parts = ["WEB SEARCH RESULTS:\n"]
    for i, result in enumerate(results, 1):
        parts.append(
            f"{i}. **{result.title}** ({result.source_domain})\n"
            f"   {result.snippet}\n"
            f"   Source: {result.link}\n"
        )
    return "\n".join(parts)


def extract_page_text(html: str, max_chars: int = MAX_PAGE_TEXT) -> str:
    """Extract the main readable text from an HTML page."""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup.select(REMOVE_SELECTORS):
        tag.decompose()

    content = ""
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            content = element.get_text(" ").strip()
            break

    if not content and soup.body is not None:
        content = soup.body.get_text(" ").strip()

    content = re.sub(r"\s+", " ", content).strip()
    if len(content) > max_chars:
        return content[:max_chars] + "..."
    return content


class SerpApiWebSearch(WebSearchBackend):
    """
    Google web search through SerpAPI.

    Successful results are cached per (query, max_results) for `cache_ttl`
    seconds. Page fetches for enhancement each carry their own timeout.
    """

    BASE_URL = "https://serpapi.com/search.json"

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        page_timeout: float = 5.0,
        cache_ttl: float = 30 * 60,
        client: Optional[httpx.Client] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url
        self._page_timeout = page_timeout
        self._cache_ttl = cache_ttl
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._cache: Dict[Tuple[str, int], Tuple[float, BrowsingResult]] = {}
        self._cache_lock = threading.Lock()

    # ── Search ───────────────────────────────────────────────────────────

    def search(self, query: str, max_results: int = 5) -> BrowsingResult:
        key = (query, max_results)
        cached = self._cache_get(key)
        if cached is not None:
            logger.info("Using cached web search results for: %s", query)
            return cached

        try:
            logger.info("Searching web for: %s", query)
            results = self._fetch_results(query, max_results)
        except (httpx.HTTPError, ValueError, WebSearchFailure) as e:
            error = self._redact(str(e))
            logger.warning("Web search error for %r: %s", query, error)
            return BrowsingResult(success=False, query=query, error=error)

        result = BrowsingResult(success=True, query=query, results=results)
        self._cache_put(key, result)
        logger.info("Found %d web results for: %s", len(results), query)
        return result

    def _fetch_results(self, query: str, max_results: int) -> List[WebSearchResult]:
        params = {
            "engine": "google",
            "q": query,
            "api_key": self._api_key,
            "num": max_results,
            "hl": "en",
            "gl": "us",
        }
        response = self._client.get(self._base_url, params=params)
        response.raise_for_status()
        data = response.json()

        if not isinstance(data, dict):
            raise WebSearchFailure("Unexpected search response shape")
        if data.get("error"):
            raise WebSearchFailure(data["error"])

        results = []
        for item in (data.get("organic_results") or [])[:max_results]:
            link = item.get("link") or ""
            results.append(WebSearchResult(
                title=item.get("title") or "No title",
                link=link,
                snippet=item.get("snippet") or "No snippet available",
                source_domain=extract_domain(link),
            ))

        answer_box = data.get("answer_box") or {}
        if answer_box.get("answer"):
            link = answer_box.get("link") or ""
            results.insert(0, WebSearchResult(
                title="Featured Answer",
                link=link,
                snippet=answer_box["answer"],
                source_domain=extract_domain(link),
            ))

        return results

    def _redact(self, message: str) -> str:
        """Mask the API key in messages that echo the request URL."""
        message = _API_KEY_RE.sub("api_key=***", message)
        if self._api_key:
            message = message.replace(self._api_key, "***")
        return message

    # ── Enhancement ──────────────────────────────────────────────────────

    def enhance(
        self, results: List[WebSearchResult], max_enhanced: int = 2
    ) -> List[WebSearchResult]:
        enhanced = []
        for result in results[:max_enhanced]:
            page_text = self._fetch_page_text(result.link)
            if page_text:
                enhanced.append(replace(result, snippet=page_text))
            else:
                enhanced.append(result)

        enhanced.extend(results[max_enhanced:])
        return enhanced

    def _fetch_page_text(self, url: str) -> Optional[str]:
        """Fetch a page and extract its text; None on any failure."""
        if not url:
            return None
        try:
            response = self._client.get(
                url,
                timeout=self._page_timeout,
                headers={"User-Agent": USER_AGENT},
            )
            response.raise_for_status()
            return extract_page_text(response.text) or None
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # malformed links raise outside the HTTPError hierarchy
            logger.warning("Failed to extract content from %s: %s", url, e)
            return None

    # ── Cache ────────────────────────────────────────────────────────────

    def _cache_get(self, key: Tuple[str, int]) -> Optional[BrowsingResult]:
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            stored_at, result = entry
            if time.monotonic() - stored_at >= self._cache_ttl:
                del self._cache[key]
                return None
            return result

    def _cache_put(self, key: Tuple[str, int], result: BrowsingResult) -> None:
        with self._cache_lock:
            now = time.monotonic()
            expired = [k for k, (stored_at, _) in self._cache.items()
                       if now - stored_at >= self._cache_ttl]
            for k in expired:
                del self._cache[k]
            self._cache[key] = (now, result)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def cache_stats(self) -> dict:
        with self._cache_lock:
            return {
                "size": len(self._cache),
                "keys": [f"{q}_{n}" for q, n in self._cache],
            }
