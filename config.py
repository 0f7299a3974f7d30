"""
Central configuration for the Document Q&A Bot.
All tuneable parameters in one place; values can be overridden from the
environment or a .env file.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent
DOCS_DIR = Path(os.environ["DOCS_DIR"]) if os.environ.get("DOCS_DIR") else None  # None = built-in sample

# ── Ollama ─────────────────────────────────────────────────────────────────
OLLAMA_HOST = os.environ.get("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_MODEL = os.environ.get("OLLAMA_MODEL", "deepseek-r1:14b")
OLLAMA_TIMEOUT = float(os.environ.get("OLLAMA_TIMEOUT", "120"))

# ── Embedding ──────────────────────────────────────────────────────────────
EMBEDDING_BACKEND = os.environ.get("EMBEDDING_BACKEND", "ollama")    # "ollama" | "sentence-transformers"
EMBEDDING_MODEL = os.environ.get("OLLAMA_EMBEDDING_MODEL", OLLAMA_MODEL)
LOCAL_EMBEDDING_MODEL = "all-MiniLM-L6-v2"                          # SentenceTransformers model

# ── Chunking ──────────────────────────────────────────────────────────────
CHUNK_SIZE = 500          # target characters per chunk
CHUNK_OVERLAP = 50        # characters shared by consecutive chunks

# ── Retrieval & Routing ───────────────────────────────────────────────────
TOP_K = 4                                                                   # chunks retrieved per query
LOW_SIMILARITY_THRESHOLD = float(os.environ.get("LOW_SIMILARITY_THRESHOLD", "0.1"))    # below: out of scope
HIGH_SIMILARITY_THRESHOLD = float(os.environ.get("HIGH_SIMILARITY_THRESHOLD", "0.5"))  # below: add web results

# ── Web Search ────────────────────────────────────────────────────────────
SERPAPI_API_KEY = os.environ.get("SERPAPI_API_KEY", "")   # empty disables web search
WEB_SEARCH_RESULTS = 3
WEB_MAX_ENHANCED = 2                 # pages fetched for fuller snippets per query
WEB_PAGE_TIMEOUT = 5.0               # seconds, per page fetch
WEB_CACHE_TTL = 30 * 60              # seconds

# ── LLM Backend ───────────────────────────────────────────────────────────
LLM_BACKEND = os.environ.get("LLM_BACKEND", "ollama")    # "ollama" | "mock"

# ── Web Server ────────────────────────────────────────────────────────────
WEB_HOST = os.environ.get("WEB_HOST", "127.0.0.1")
WEB_PORT = int(os.environ.get("WEB_PORT", "3001"))

# ── Logging ───────────────────────────────────────────────────────────────
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
