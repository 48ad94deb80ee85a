"""Core datatypes shared across chaptervoice modules.

Responsibilities:
- Represent immutable records exchanged between pipeline stages.
- Provide explicit typing for reproducibility and serialization.

Key types:
- `Chapter`, `TextChunk`, `ProviderAudio`, and `AudioArtifact`.
"""

from __future__ import annotations

from dataclasses import dataclass
from hashlib import sha256


@dataclass(frozen=True, slots=True)
class Chapter:
    """A chapter detected in source text.

    Attributes:
        index: 1-based chapter index.
        title: Normalized chapter title.
        text: Full chapter body text.
    """

    index: int
    title: str
    text: str

    def as_payload(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""

        return {"index": self.index, "title": self.title, "text": self.text}

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> Chapter:
        """Rebuild a chapter from its JSON payload."""

        return cls(
            index=int(payload["index"]),
            title=str(payload["title"]),
            text=str(payload["text"]),
        )


@dataclass(frozen=True, slots=True)
class TextChunk:
    """A bounded slice of chapter text submitted as one provider call.

    Attributes:
        chapter_index: 1-based index of the owning chapter.
        sequence: 0-based position within the chapter; reassembly order.
        text: Chunk text, never longer than the chunker limit.
    """

    chapter_index: int
    sequence: int
    text: str


@dataclass(frozen=True, slots=True)
class ProviderAudio:
    """Raw audio payload returned by a speech provider.

    Attributes:
        audio_bytes: Encoded audio payload.
        audio_format: Container/codec label (`mp3` or `wav`).
        duration_seconds: Provider-reported duration, when derivable.
    """

    audio_bytes: bytes
    audio_format: str
    duration_seconds: float | None = None


@dataclass(frozen=True, slots=True)
class AudioArtifact:
    """Synthesized audio for one chunk or one assembled chapter.

    Attributes:
        audio_bytes: Encoded audio payload.
        duration_seconds: Reported or estimated duration; never exact by contract.
        size_bytes: Payload size in bytes.
        audio_format: Container/codec label.
        duration_estimated: Whether duration came from the bytes-per-second estimate.
    """

    audio_bytes: bytes
    duration_seconds: float
    size_bytes: int
    audio_format: str = "mp3"
    duration_estimated: bool = False

    @property
    def content_hash(self) -> str:
        """Return sha256 hex digest of the audio payload."""

        return sha256(self.audio_bytes).hexdigest()
