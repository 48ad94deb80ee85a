"""Unit tests for manuscript text sources and chapter audio storage."""

from __future__ import annotations

from pathlib import Path

import pytest
from pypdf import PdfWriter

from chaptervoice.io.storage import LocalAudioStorage, atomic_write_bytes
from chaptervoice.io.text_source import FileTextSource, TextSourceError


class _FakePage:
    """PDF page stand-in returning fixed text."""

    def __init__(self, text: str | None) -> None:
        """Store the page text."""

        self._text = text

    def extract_text(self) -> str | None:
        """Return the configured page text."""

        return self._text


def test_reads_utf8_text_relative_to_root(tmp_path: Path) -> None:
    """Relative references resolve against the configured root."""

    (tmp_path / "book.md").write_text("Chapter 1\nŽluťoučký kůň.", encoding="utf-8")

    assert FileTextSource(tmp_path).get_raw_text("book.md") == "Chapter 1\nŽluťoučký kůň."


def test_missing_and_unsupported_inputs_raise(tmp_path: Path) -> None:
    """Missing files and unknown suffixes are rejected with a clear message."""

    (tmp_path / "book.docx").write_bytes(b"PK")
    source = FileTextSource(tmp_path)

    with pytest.raises(TextSourceError, match="not found"):
        source.get_raw_text("missing.txt")
    with pytest.raises(TextSourceError, match="Unsupported input type"):
        source.get_raw_text("book.docx")


def test_pdf_pages_are_joined_with_blank_lines(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Extracted PDF page texts are stripped and joined by blank lines."""

    (tmp_path / "book.pdf").write_bytes(b"%PDF-placeholder")

    class _FakeReader:
        """Reader stand-in exposing two text pages."""

        def __init__(self, _path: str) -> None:
            """Expose fixed pages."""

            self.pages = [_FakePage(" Chapter 1\fHello. "), _FakePage(None)]

    monkeypatch.setattr("chaptervoice.io.text_source.PdfReader", _FakeReader)

    assert FileTextSource(tmp_path).get_raw_text("book.pdf") == "Chapter 1\nHello."


def test_pdf_without_text_layer_is_rejected(tmp_path: Path) -> None:
    """Image-only or blank PDFs cannot feed chapter detection."""

    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    with (tmp_path / "blank.pdf").open("wb") as handle:
        writer.write(handle)

    with pytest.raises(TextSourceError, match="No extractable text"):
        FileTextSource().get_raw_text(str(tmp_path / "blank.pdf"))


def test_local_storage_is_content_addressed_and_idempotent(tmp_path: Path) -> None:
    """Identical content maps to one file and one URL."""

    storage = LocalAudioStorage(tmp_path / "audio")

    first_url = storage.store_audio(b"audio", "abc123", "mp3")
    second_url = storage.store_audio(b"audio", "abc123", ".MP3")

    assert first_url == second_url
    assert first_url == (tmp_path / "audio" / "abc123.mp3").resolve().as_uri()
    assert storage.exists("abc123")
    assert (tmp_path / "audio" / "abc123.mp3").read_bytes() == b"audio"


def test_local_storage_uses_public_base_url(tmp_path: Path) -> None:
    """A configured base URL replaces file URIs."""

    storage = LocalAudioStorage(tmp_path, base_url="https://cdn.example.com/audio/")

    assert storage.store_audio(b"audio", "abc123", "wav") == "https://cdn.example.com/audio/abc123.wav"
    with pytest.raises(ValueError, match="content_hash"):
        storage.store_audio(b"audio", " ")


def test_atomic_write_leaves_no_temporary_files(tmp_path: Path) -> None:
    """Atomic writes replace the target and clean up their temp file."""

    target = tmp_path / "nested" / "file.bin"
    atomic_write_bytes(target, b"one")
    atomic_write_bytes(target, b"two")

    assert target.read_bytes() == b"two"
    assert [path.name for path in target.parent.iterdir()] == ["file.bin"]
