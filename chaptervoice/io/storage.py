"""Artifact storage for assembled chapter audio.

Responsibilities:
- Persist chapter audio under content-addressed file names.
- Return stable public URLs for stored artifacts.
- Provide atomic write helpers shared by filesystem-backed stores.
"""

from __future__ import annotations

import os
from pathlib import Path
import tempfile
from typing import Protocol


def atomic_write_bytes(path: Path, payload: bytes) -> Path:
    """Write bytes to a sibling temp file and atomically replace `path`."""

    path.parent.mkdir(parents=True, exist_ok=True)
    file_descriptor, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(file_descriptor, "wb") as handle:
            handle.write(payload)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
    return path


class AudioStorage(Protocol):
    """Protocol for chapter-audio storage collaborators."""

    def store_audio(self, audio_bytes: bytes, content_hash: str, extension: str = "mp3") -> str:
        """Persist audio bytes and return the public URL."""


class LocalAudioStorage:
    """Filesystem-backed audio storage writing `<content_hash>.<extension>`."""

    def __init__(self, root: Path, base_url: str | None = None) -> None:
        """Initialize the store with a root directory and optional public base URL.

        Without `base_url`, returned URLs are `file://` URIs of the stored files.
        """

        self.root = root
        self.base_url = base_url.rstrip("/") if base_url else None

    def path_for(self, content_hash: str, extension: str = "mp3") -> Path:
        """Return the deterministic storage path for a content hash."""

        normalized_extension = extension.lstrip(".").lower() or "bin"
        return self.root / f"{content_hash}.{normalized_extension}"

    def store_audio(self, audio_bytes: bytes, content_hash: str, extension: str = "mp3") -> str:
        """Save audio bytes atomically and return the public URL.

        Identical content maps to the same file; re-storing it is a no-op.
        """

        if not content_hash.strip():
            raise ValueError("`content_hash` must be a non-empty string.")
        path = self.path_for(content_hash, extension)
        if not path.exists():
            atomic_write_bytes(path, audio_bytes)
        if self.base_url is not None:
            return f"{self.base_url}/{path.name}"
        return path.resolve().as_uri()

    def exists(self, content_hash: str, extension: str = "mp3") -> bool:
        """Return whether audio for the given hash is stored."""

        return self.path_for(content_hash, extension).exists()
