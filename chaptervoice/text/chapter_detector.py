"""Heuristic chapter detection for raw manuscript text.

Responsibilities:
- Convert raw book text into ordered, titled chapter records.
- Apply heading patterns in a fixed priority order; the first match wins.
- Fall back to a single whole-text chapter when no heading is found.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import re

from ..models.datatypes import Chapter
from ..telemetry.logger import RunLogger

_NUMBER_WORDS = (
    "one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve|thirteen|"
    "fourteen|fifteen|sixteen|seventeen|eighteen|nineteen|twenty|thirty|forty|fifty"
)
_ROMAN_NUMERAL = r"(?=[ivxlcdm]+\b)m{0,3}(?:cm|cd|d?c{0,3})(?:xc|xl|l?x{0,3})(?:ix|iv|v?i{0,3})"
_NUMBER_TOKEN = (
    rf"(?P<number>\d+|{_ROMAN_NUMERAL}|"
    rf"(?:{_NUMBER_WORDS})(?:[\s-](?:{_NUMBER_WORDS}))?)"
)
_SUBTITLE = r"(?:\s*[:.\-–—]\s*|\s+)(?P<subtitle>\S.*?)"

_CHAPTER_RE = re.compile(rf"^chapter\s+{_NUMBER_TOKEN}(?:{_SUBTITLE})?\s*[:.]?$", re.IGNORECASE)
_PART_RE = re.compile(rf"^part\s+{_NUMBER_TOKEN}(?:{_SUBTITLE})?\s*[:.]?$", re.IGNORECASE)
_ROMAN_RE = re.compile(
    r"^(?=[IVXLCDM]+\.?$)(?P<number>M{0,3}(?:CM|CD|D?C{0,3})(?:XC|XL|L?X{0,3})(?:IX|IV|V?I{0,3}))\.?$"
)
_INTEGER_RE = re.compile(r"^(?P<number>\d{1,4})\.?$")
_NAMED_SECTION_RE = re.compile(
    r"^(?P<name>prologue|epilogue|appendix(?:\s+[a-z0-9]{1,4})?|preface|introduction|"
    r"foreword|afterword|interlude|conclusion|acknowledge?ments?)"
    r"(?:\s*[:.\-–—]\s*(?P<subtitle>\S.*?))?\s*$",
    re.IGNORECASE,
)
_SENTENCE_END_CHARS = ".!?,;\"'”’"


@dataclass(frozen=True, slots=True)
class _HeadingRule:
    """One named heading pattern; `match` returns a normalized title or `None`."""

    name: str
    match: Callable[[str, bool], str | None]


def _normalize_number(number: str) -> str:
    """Normalize a chapter number token (`iv` -> `IV`, `one` -> `One`)."""

    if number.isdigit():
        return str(int(number))
    if re.fullmatch(r"[ivxlcdm]+", number, re.IGNORECASE):
        return number.upper()
    return "-".join(part.capitalize() for part in re.split(r"[\s-]+", number))


def _with_subtitle(prefix: str, subtitle: str | None) -> str:
    """Merge an inline subtitle into a normalized heading prefix."""

    if subtitle:
        cleaned = subtitle.strip().rstrip(":").strip()
        if cleaned:
            return f"{prefix}: {cleaned}"
    return prefix


def _match_chapter(line: str, _standalone: bool) -> str | None:
    match = _CHAPTER_RE.match(line)
    if match is None or not match.group("number"):
        return None
    prefix = f"Chapter {_normalize_number(match.group('number'))}"
    return _with_subtitle(prefix, match.group("subtitle"))


def _match_part(line: str, _standalone: bool) -> str | None:
    match = _PART_RE.match(line)
    if match is None or not match.group("number"):
        return None
    prefix = f"Part {_normalize_number(match.group('number'))}"
    return _with_subtitle(prefix, match.group("subtitle"))


def _match_roman(line: str, _standalone: bool) -> str | None:
    match = _ROMAN_RE.match(line)
    if match is None or not match.group("number"):
        return None
    return f"Chapter {match.group('number')}"


def _match_integer(line: str, _standalone: bool) -> str | None:
    match = _INTEGER_RE.match(line)
    if match is None:
        return None
    return f"Chapter {int(match.group('number'))}"


def _match_named_section(line: str, _standalone: bool) -> str | None:
    match = _NAMED_SECTION_RE.match(line)
    if match is None:
        return None
    tokens = match.group("name").split()
    name = " ".join(token.upper() if len(token) == 1 else token.capitalize() for token in tokens)
    return _with_subtitle(name, match.group("subtitle"))


class ChapterDetector:
    """Split raw book text into titled chapters using ordered heading heuristics."""

    _MAX_PATTERN_HEADING_CHARS = 80

    def __init__(
        self,
        *,
        min_heuristic_length: int = 4,
        max_heuristic_length: int = 59,
        run_logger: RunLogger | None = None,
    ) -> None:
        """Initialize heuristic heading bounds and optional event logger."""

        self.min_heuristic_length = min_heuristic_length
        self.max_heuristic_length = max_heuristic_length
        self._run_logger = run_logger
        self._rules: tuple[_HeadingRule, ...] = (
            _HeadingRule("chapter", _match_chapter),
            _HeadingRule("part", _match_part),
            _HeadingRule("roman", _match_roman),
            _HeadingRule("integer", _match_integer),
            _HeadingRule("named_section", _match_named_section),
            _HeadingRule("heuristic", self._match_heuristic),
        )

    def detect(self, raw_text: str) -> list[Chapter]:
        """Detect chapters; always returns at least one chapter and never raises.

        Leading content before the first heading becomes an `Introduction`
        chapter when non-empty. Headings with an empty body are dropped.
        """

        normalized = (raw_text or "").replace("\r\n", "\n").replace("\r", "\n")
        lines = normalized.split("\n")

        sections: list[tuple[str, list[str]]] = []
        current_title: str | None = None
        buffer: list[str] = []
        previous_blank = True

        for raw_line in lines:
            line = raw_line.strip()
            title = self.heading_title(line, standalone=previous_blank) if line else None
            if title is not None:
                sections.append((current_title or "Introduction", buffer))
                current_title = title
                buffer = []
            else:
                buffer.append(raw_line.rstrip())
            previous_blank = not line

        sections.append((current_title or "Introduction", buffer))

        chapters: list[Chapter] = []
        for title, body_lines in sections:
            body = "\n".join(body_lines).strip()
            if not body:
                continue
            chapters.append(Chapter(index=len(chapters) + 1, title=title, text=body))

        if current_title is None or not chapters:
            return self._fallback(normalized)
        return chapters

    def heading_title(self, line: str, *, standalone: bool = True) -> str | None:
        """Return the normalized heading title for a trimmed line, or `None`.

        Rules are evaluated in fixed priority order and the first match wins.
        """

        for rule in self._rules:
            if rule.name != "heuristic" and len(line) > self._MAX_PATTERN_HEADING_CHARS:
                continue
            title = rule.match(line, standalone)
            if title is not None:
                return title
        return None

    def _match_heuristic(self, line: str, standalone: bool) -> str | None:
        """Match short standalone all-uppercase or colon-terminated heading lines."""

        if not standalone:
            return None
        if not self.min_heuristic_length <= len(line) <= self.max_heuristic_length:
            return None
        if line.endswith(":"):
            stripped = line.rstrip(":").strip()
            return stripped or None
        if line[-1] in _SENTENCE_END_CHARS:
            return None
        has_letters = any(character.isalpha() for character in line)
        if has_letters and line == line.upper():
            return line
        return None

    def _fallback(self, normalized_text: str) -> list[Chapter]:
        """Return the whole text as one `Chapter 1` and log the fallback."""

        if self._run_logger is not None:
            self._run_logger.log_detection_fallback(len(normalized_text))
        return [Chapter(index=1, title="Chapter 1", text=normalized_text.strip())]
