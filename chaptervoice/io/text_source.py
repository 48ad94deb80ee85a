"""Raw manuscript text sources.

Responsibilities:
- Resolve a source reference into raw book text for chapter detection.
- Read UTF-8 text/markdown files and text-based PDFs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from pypdf import PdfReader
from pypdf.errors import PdfReadError


class TextSourceError(RuntimeError):
    """Raised when raw text cannot be read from a source reference."""


class TextSource(Protocol):
    """Protocol for raw text providers consumed by the pipeline."""

    def get_raw_text(self, reference: str) -> str:
        """Return raw text for a source reference."""


class FileTextSource:
    """Read raw text from local `.txt`, `.md`, and text-based `.pdf` files."""

    TEXT_SUFFIXES = frozenset({".txt", ".md", ".markdown", ".text"})

    def __init__(self, root: Path | None = None) -> None:
        """Initialize an optional root that relative references resolve against."""

        self.root = root

    def _resolve(self, reference: str) -> Path:
        path = Path(reference).expanduser()
        if not path.is_absolute() and self.root is not None:
            path = self.root / path
        return path

    def get_raw_text(self, reference: str) -> str:
        """Return raw text; PDF pages are joined with blank lines."""

        path = self._resolve(reference)
        if not path.exists():
            raise TextSourceError(f"Input file not found: {path}")

        suffix = path.suffix.lower()
        if suffix == ".pdf":
            text = "\n\n".join(self.extract_pdf_pages(path)).strip()
            if not text:
                raise TextSourceError(
                    f"No extractable text found in PDF: {path}. "
                    "Only text-based PDFs are supported."
                )
            return text
        if suffix in self.TEXT_SUFFIXES or not suffix:
            try:
                return path.read_text(encoding="utf-8")
            except UnicodeDecodeError as exc:
                raise TextSourceError(f"Input file is not valid UTF-8 text: {path}") from exc
        raise TextSourceError(
            f"Unsupported input type `{suffix}` for {path}. Use .txt, .md, or .pdf."
        )

    def extract_pdf_pages(self, pdf_path: Path) -> list[str]:
        """Extract per-page text with `pypdf`."""

        try:
            reader = PdfReader(str(pdf_path))
            pages: list[str] = []
            for page in reader.pages:
                extracted_text = page.extract_text()
                pages.append((extracted_text or "").replace("\f", "\n").strip())
        except PdfReadError as exc:
            raise TextSourceError(f"Could not read PDF {pdf_path}: {exc}") from exc
        return pages
