"""Input text sources and output artifact storage."""

from .storage import AudioStorage, LocalAudioStorage, atomic_write_bytes
from .text_source import FileTextSource, TextSource

__all__ = [
    "AudioStorage",
    "FileTextSource",
    "LocalAudioStorage",
    "TextSource",
    "atomic_write_bytes",
]
