"""Audio payload merge helpers."""

from .merger import concatenate_audio, wav_duration_seconds

__all__ = ["concatenate_audio", "wav_duration_seconds"]
