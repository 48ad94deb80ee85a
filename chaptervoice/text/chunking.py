"""Chapter-to-chunk segmentation logic.

Responsibilities:
- Split chapter text into provider-safe chunks no longer than a character limit.
- Prefer natural speech breaks: sentence, then paragraph, then word boundaries.
- Preserve sequence metadata required for ordered reassembly.
"""

from __future__ import annotations

import re

from ..models.datatypes import Chapter, TextChunk
from ..telemetry.logger import RunLogger


class TextChunker:
    """Pack sentences greedily into bounded chunks with recursive overflow splitting."""

    _SENTENCE_END_RE = re.compile(r"[.!?]+[\"'”’)\]»]*(?=\s)")
    _PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n")
    _COMMON_ABBREVIATIONS = frozenset(
        {
            "mr.",
            "mrs.",
            "ms.",
            "dr.",
            "prof.",
            "sr.",
            "jr.",
            "st.",
            "etc.",
            "e.g.",
            "i.e.",
            "vs.",
            "no.",
            "fig.",
            "al.",
        }
    )
    _ACRONYM_PATTERN = re.compile(r"(?:[A-Za-z]\.){2,}$")

    def __init__(self, lookback_chars: int = 100, run_logger: RunLogger | None = None) -> None:
        """Initialize the comma/space lookback window used for word-level splits."""

        if lookback_chars <= 0:
            raise ValueError("`lookback_chars` must be a positive integer.")
        self.lookback_chars = lookback_chars
        self._run_logger = run_logger

    def chunk(self, text: str, max_chunk_size: int) -> list[str]:
        """Split text into trimmed chunks, each at most `max_chunk_size` characters.

        Args:
            text: Chapter text.
            max_chunk_size: Provider character limit per chunk.

        Returns:
            Ordered non-empty chunks whose words, rejoined with single spaces,
            reproduce the input word sequence.
        """

        if max_chunk_size <= 0:
            raise ValueError("`max_chunk_size` must be a positive integer.")
        if not text or not text.strip():
            return []

        units: list[str] = []
        for sentence in self.split_sentences(text):
            if len(sentence) <= max_chunk_size:
                units.append(sentence)
            else:
                units.extend(self._split_oversized(sentence, max_chunk_size))

        chunks: list[str] = []
        current = ""
        for unit in units:
            if not current:
                current = unit
            elif len(current) + 1 + len(unit) <= max_chunk_size:
                current = f"{current} {unit}"
            else:
                chunks.append(current)
                current = unit
        if current:
            chunks.append(current)
        return chunks

    def to_chunks(self, chapter: Chapter, max_chunk_size: int) -> list[TextChunk]:
        """Split one chapter into sequenced `TextChunk` records."""

        return [
            TextChunk(chapter_index=chapter.index, sequence=sequence, text=text)
            for sequence, text in enumerate(self.chunk(chapter.text, max_chunk_size))
        ]

    def split_sentences(self, text: str) -> list[str]:
        """Split text after `.`, `!`, or `?` (plus closers) followed by whitespace."""

        sentences: list[str] = []
        start = 0
        for match in self._SENTENCE_END_RE.finditer(text):
            end = match.end()
            if text[match.start()] == "." and self._is_abbreviation_period(text, match.start()):
                continue
            sentence = text[start:end].strip()
            if sentence:
                sentences.append(sentence)
            start = end
        tail = text[start:].strip()
        if tail:
            sentences.append(tail)
        return sentences

    def _split_oversized(self, sentence: str, max_chunk_size: int) -> list[str]:
        """Split an over-limit sentence at paragraph breaks, then at word boundaries."""

        paragraphs = [
            paragraph.strip()
            for paragraph in self._PARAGRAPH_BREAK_RE.split(sentence)
            if paragraph.strip()
        ]
        if len(paragraphs) > 1:
            pieces: list[str] = []
            for paragraph in paragraphs:
                if len(paragraph) <= max_chunk_size:
                    pieces.append(paragraph)
                else:
                    pieces.extend(self._split_at_words(paragraph, max_chunk_size))
            return pieces
        return self._split_at_words(sentence, max_chunk_size)

    def _split_at_words(self, text: str, max_chunk_size: int) -> list[str]:
        """Split text into pieces, preferring comma then space breaks near the limit."""

        pieces: list[str] = []
        remaining = text.strip()
        while len(remaining) > max_chunk_size:
            cut = self._resolve_word_cut(remaining, max_chunk_size)
            piece = remaining[:cut].strip()
            if piece:
                pieces.append(piece)
            remaining = remaining[cut:].strip()
        if remaining:
            pieces.append(remaining)
        return pieces

    def _resolve_word_cut(self, text: str, max_chunk_size: int) -> int:
        """Return the exclusive cut index for the next word-level piece."""

        lookback = min(self.lookback_chars, max_chunk_size)
        window_start = max(1, max_chunk_size - lookback)

        for index in range(max_chunk_size - 1, window_start - 1, -1):
            if text[index] == "," and text[index + 1].isspace():
                return index + 1

        for index in range(max_chunk_size, 0, -1):
            if text[index].isspace():
                return index

        if self._run_logger is not None:
            word_length = len(text.split(maxsplit=1)[0])
            self._run_logger.log_chunk_overflow(word_length, max_chunk_size)
        return max_chunk_size

    def _is_abbreviation_period(self, text: str, punctuation_index: int) -> bool:
        """Return whether a period belongs to a likely abbreviation token."""

        start = punctuation_index
        while start > 0 and (text[start - 1].isalpha() or text[start - 1] == "."):
            start -= 1
        token = text[start : punctuation_index + 1].lower()
        if token in self._COMMON_ABBREVIATIONS:
            return True

        acronym_start = max(0, punctuation_index - 8)
        acronym_window = text[acronym_start : punctuation_index + 1]
        return bool(self._ACRONYM_PATTERN.search(acronym_window))
