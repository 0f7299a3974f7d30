"""
Document ingestion module.
Loads source documents (built-in sample, text, markdown or PDF) as plain text.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".txt", ".md", ".pdf"}

GENERIC_OUT_OF_SCOPE = (
    "I can only answer questions based on the loaded document. "
    "Please ask something related to the document content."
)


@dataclass(frozen=True)
class SourceDocument:
    """A whole document ready for chunking, with display metadata."""
    title: str
    description: str
    content: str
    source_label: str
    doc_type: str = "document"


SAMPLE_DOCUMENT = SourceDocument(
    title="Company Policy Manual",
    description="company policies, procedures, and employee benefits information",
    doc_type="policy-manual",
    source_label="company-policy-manual",
    content="""# Company Policy Manual

## Remote Work Policy

Our company supports flexible work arrangements including remote work. Employees may work from home up to 3 days per week with manager approval.

Remote workers must maintain regular communication with their team and be available during core business hours (9 AM - 3 PM). All remote work must be pre-approved and documented in the HR system.

## Benefits Package

Full-time employees are eligible for comprehensive health insurance, including medical, dental, and vision coverage. The company covers 80% of premium costs for employees and 60% for dependents.

Additional benefits include:
- 401(k) retirement plan with 4% company match
- 15 days paid vacation (increasing to 20 days after 3 years)
- 10 sick days per year
- Professional development budget of $2,000 annually

## Performance Review Process

Performance reviews are conducted annually in January. The review process includes:
1. Self-assessment completion
2. Manager evaluation
3. Peer feedback collection
4. Goal setting for the upcoming year

Employees receive performance ratings on a scale of 1-5, with 3 being "meets expectations". Salary adjustments and bonuses are determined based on performance ratings and company performance.""",
)


def out_of_scope_message(document: Optional[SourceDocument]) -> str:
    """Refusal text for questions outside the active document."""
    if document is None:
        return GENERIC_OUT_OF_SCOPE
    return (
        f"I can only answer questions about the {document.title}. "
        f"Please ask something related to {document.description}."
    )


def _title_from_path(path: Path) -> str:
    return path.stem.replace("_", " ").replace("-", " ").strip().title()


def load_pdf(pdf_path: Path) -> Optional[SourceDocument]:
    """Load a PDF and join its page texts into a single document."""
    try:
        doc = fitz.open(str(pdf_path))
    except Exception as e:
        logger.warning("Could not open %s: %s", pdf_path.name, e)
        return None

    try:
        pages = [doc[i].get_text("text").strip() for i in range(len(doc))]
    finally:
        doc.close()

    text = "\n\n".join(p for p in pages if p)
    if not text:
        return None

    title = _title_from_path(pdf_path)
    return SourceDocument(
        title=title,
        description=f"the contents of {pdf_path.name}",
        content=text,
        source_label=pdf_path.name,
    )


def load_text_file(path: Path) -> Optional[SourceDocument]:
    """Load a plain text or markdown document."""
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return None

    return SourceDocument(
        title=_title_from_path(path),
        description=f"the contents of {path.name}",
        content=text,
        source_label=path.name,
        doc_type="markdown" if path.suffix.lower() == ".md" else "text",
    )


def load_documents(docs_dir: Path) -> List[SourceDocument]:
    """
    Load all supported documents from a directory.
    Currently supports: .txt, .md, .pdf
    """
    if not docs_dir.exists():
        logger.error("Documents directory not found: %s", docs_dir)
        return []

    files = sorted(
        f for f in docs_dir.iterdir()
        if f.suffix.lower() in SUPPORTED_EXTENSIONS and not f.name.startswith(".")
    )
    if not files:
        logger.warning("No supported documents found in %s", docs_dir)
        return []

    documents = []
    for f in files:
        logger.info("Loading: %s", f.name)
        if f.suffix.lower() == ".pdf":
            document = load_pdf(f)
        else:
            document = load_text_file(f)
        if document is not None:
            documents.append(document)

    logger.info("Loaded %d document(s) from %s", len(documents), docs_dir)
    return documents
