"""Content-addressed cache for synthesized chunk audio.

Responsibilities:
- Build stable cache keys from normalized chunk text and voice identity.
- Reuse synthesized audio so identical text+voice never re-invokes a provider.
- Track basic cache telemetry (hits/misses) for CLI diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from hashlib import sha256
import json
from pathlib import Path
import threading
from typing import Protocol

from ..io.storage import atomic_write_bytes
from ..models.datatypes import AudioArtifact


def _normalize_text(text: str) -> str:
    """Collapse whitespace runs so layout-only differences share one key."""

    return " ".join(text.split())


def make_cache_key(text: str, voice_id: str) -> str:
    """Build a deterministic sha256 key from normalized text and voice id."""

    canonical_identity = json.dumps(
        {"text": _normalize_text(text), "voice_id": voice_id.strip()},
        sort_keys=True,
        ensure_ascii=True,
        separators=(",", ":"),
    )
    return sha256(canonical_identity.encode("utf-8")).hexdigest()


class AudioCache(Protocol):
    """Protocol for chunk-audio caches used by `SynthesisClient`."""

    hits: int
    misses: int

    def get(self, cache_key: str) -> AudioArtifact | None:
        """Return a cached artifact or `None`."""

    def set(self, cache_key: str, artifact: AudioArtifact) -> None:
        """Store an artifact under a key."""


@dataclass(slots=True)
class MemoryAudioCache:
    """Process-local audio cache shared by all jobs of one client."""

    entries: dict[str, AudioArtifact] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def get(self, cache_key: str) -> AudioArtifact | None:
        """Return cached artifact for key and update hit/miss telemetry counters."""

        with self._lock:
            artifact = self.entries.get(cache_key)
            if artifact is not None:
                self.hits += 1
            else:
                self.misses += 1
            return artifact

    def set(self, cache_key: str, artifact: AudioArtifact) -> None:
        """Store an artifact under a cache key."""

        with self._lock:
            self.entries[cache_key] = artifact


class DirectoryAudioCache:
    """Filesystem audio cache persisted across runs as `<key>.audio` + `<key>.json`."""

    def __init__(self, root: Path) -> None:
        """Initialize cache root directory."""

        self.root = root
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    def _paths(self, cache_key: str) -> tuple[Path, Path]:
        return self.root / f"{cache_key}.audio", self.root / f"{cache_key}.json"

    def get(self, cache_key: str) -> AudioArtifact | None:
        """Return cached artifact when both payload and metadata are readable."""

        audio_path, meta_path = self._paths(cache_key)
        artifact: AudioArtifact | None = None
        if audio_path.exists() and meta_path.exists():
            try:
                metadata = json.loads(meta_path.read_text(encoding="utf-8"))
                audio_bytes = audio_path.read_bytes()
                artifact = AudioArtifact(
                    audio_bytes=audio_bytes,
                    duration_seconds=float(metadata["duration_seconds"]),
                    size_bytes=len(audio_bytes),
                    audio_format=str(metadata.get("audio_format", "mp3")),
                    duration_estimated=bool(metadata.get("duration_estimated", False)),
                )
            except (OSError, ValueError, KeyError, TypeError):
                artifact = None
        with self._lock:
            if artifact is None:
                self.misses += 1
            else:
                self.hits += 1
        return artifact

    def set(self, cache_key: str, artifact: AudioArtifact) -> None:
        """Persist artifact payload and metadata with atomic replaces."""

        self.root.mkdir(parents=True, exist_ok=True)
        audio_path, meta_path = self._paths(cache_key)
        metadata = {
            "duration_seconds": artifact.duration_seconds,
            "audio_format": artifact.audio_format,
            "duration_estimated": artifact.duration_estimated,
            "content_hash": artifact.content_hash,
        }
        atomic_write_bytes(audio_path, artifact.audio_bytes)
        atomic_write_bytes(
            meta_path,
            (json.dumps(metadata, sort_keys=True, indent=2) + "\n").encode("utf-8"),
        )
