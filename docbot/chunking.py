"""
Boundary-aware chunking module.
Splits document text into overlapping chunks and labels each with its section.
"""

import re
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

SENTENCE_TERMINATORS = (".", "?", "!")


@dataclass(frozen=True)
class Chunk:
    """An immutable unit of retrievable text."""
    content: str
    source_label: str
    sequence_index: int
    section: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        if not self.content:
            raise ValueError("Chunk content must not be empty")
        if self.sequence_index < 1:
            raise ValueError("sequence_index is 1-based")

    @property
    def label(self) -> str:
        """Section heading, or a synthesized label when none was detected."""
        return self.section or f"chunk-{self.sequence_index}"

    def to_metadata(self) -> dict:
        """Return metadata dict for display and debugging."""
        return {
            "id": self.id,
            "source": self.source_label,
            "section": self.label,
            "chunkIndex": self.sequence_index,
        }


# ── Section Detection ──────────────────────────────────────────────────────

# Matches: "## Remote Work Policy"
MARKDOWN_SUBHEADING_RE = re.compile(r"^##\s+(.+)$", re.MULTILINE)

# Tried in order after the markdown sub-heading; first match wins.
SECTION_PATTERNS = [
    re.compile(r"^([A-Z][A-Za-z ]+Policy):", re.MULTILINE),
    re.compile(r"^([A-Z][A-Za-z ]+Package):", re.MULTILINE),
    re.compile(r"^([A-Z][A-Za-z ]+Process):", re.MULTILINE),
    re.compile(r"^##\s*(.+)$", re.MULTILINE),
    re.compile(r"^#\s*(.+)$", re.MULTILINE),
]


def extract_section_label(content: str) -> Optional[str]:
    """Detect a section heading inside a chunk; return the label or None."""
    m = MARKDOWN_SUBHEADING_RE.search(content)
    if m:
        return m.group(1).strip()

    for pattern in SECTION_PATTERNS:
        m = pattern.search(content)
        if m and m.group(1).strip():
            return m.group(1).strip()

    return None


# ── Chunking Logic ─────────────────────────────────────────────────────────

def _find_break(text: str, start: int, end: int, midpoint: float) -> Optional[int]:
    """
    Find where a window should end, searching backward inside [start, end).
    Sentence terminators are kept in the chunk; spaces are not.
    """
    terminator = max(text.rfind(t, start, end) for t in SENTENCE_TERMINATORS)
    if terminator != -1 and terminator >= midpoint:
        return terminator + 1

    space = text.rfind(" ", start, end)
    if space != -1 and space >= midpoint:
        return space

    return None


def chunk_text(text: str, target_size: int = 500, overlap: int = 50) -> List[str]:
    """
    Split text into overlapping windows of at most target_size characters.

    Each window prefers to end after a sentence terminator, then at a word
    boundary, as long as the break falls in the second half of the window;
    otherwise it is cut at target_size. Consecutive chunks share `overlap`
    characters. Chunks are returned untrimmed so the original text can be
    rebuilt by dropping each later chunk's leading overlap.
    """
    if target_size <= 0:
        raise ValueError("target_size must be positive")
    if overlap < 0 or overlap >= target_size:
        raise ValueError("overlap must be in [0, target_size)")

    chunks = []
    length = len(text)
    start = 0

    while start < length:
        end = start + target_size

        if end < length:
            midpoint = start + target_size / 2
            end = _find_break(text, start, end, midpoint) or end
        else:
            end = length

        piece = text[start:end]
        if piece.strip():
            chunks.append(piece)

        if end >= length:
            break
        start = max(end - overlap, start + 1)

    return chunks


def chunk_document(
    text: str,
    source_label: str,
    target_size: int = 500,
    overlap: int = 50,
) -> List[Chunk]:
    """
    Chunk a document into retrieval-ready pieces.

    Strategy:
    1. Split the text into boundary-aware, overlapping windows
    2. Trim each window and detect its section heading
    3. Number chunks from 1 in document order
    """
    chunks = []
    for piece in chunk_text(text, target_size, overlap):
        content = piece.strip()
        chunks.append(Chunk(
            content=content,
            source_label=source_label,
            sequence_index=len(chunks) + 1,
            section=extract_section_label(content),
        ))
    return chunks
