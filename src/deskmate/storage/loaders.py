from __future__ import annotations

from pathlib import Path

import fitz
from docx import Document as DocxDocument

TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".csv", ".json", ".log", ".srt", ".html", ".htm", ".rst"}
BINARY_SUFFIXES = {".docx", ".pdf"}


def file_type_for(path: Path) -> str:
    return path.suffix.lower().lstrip(".") or "txt"


def _load_docx(path: Path) -> str:
    document = DocxDocument(str(path))
    paragraphs = [paragraph.text for paragraph in document.paragraphs if paragraph.text.strip()]
    return "\n".join(paragraphs)


def _load_pdf(path: Path) -> str:
    with fitz.open(str(path)) as pdf:
        pages = [page.get_text("text", sort=True) for page in pdf]
    return "\n\n".join(page.strip() for page in pages if page.strip())


def load_document_text(path: Path) -> str:
    """Extract plain text from a supported document file."""

    if not path.exists():
        raise FileNotFoundError(f"Document file does not exist: {path}")

    suffix = path.suffix.lower()
    if suffix in TEXT_SUFFIXES:
        return path.read_text(encoding="utf-8", errors="replace")
    if suffix == ".doc":
        raise ValueError("Legacy .doc files are not supported; convert the file to .docx first.")
    if suffix not in BINARY_SUFFIXES:
        allowed = ", ".join(sorted(TEXT_SUFFIXES | BINARY_SUFFIXES))
        raise ValueError(f"Unsupported document type '{path.suffix or path.name}'. Supported: {allowed}")

    try:
        text = _load_docx(path) if suffix == ".docx" else _load_pdf(path)
    except Exception as exc:
        raise ValueError(f"Failed to parse {path.name}: {exc}") from exc
    if not text.strip():
        raise ValueError(f"Document has no extractable text: {path.name}")
    return text
