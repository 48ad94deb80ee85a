"""Chunk audio merge helpers.

Responsibilities:
- Concatenate ordered chunk payloads into one chapter payload.
- Keep WAV headers valid by merging frames rather than raw bytes.
- Read WAV durations from payload headers when available.
"""

from __future__ import annotations

import io
import wave
from collections.abc import Sequence


def wav_duration_seconds(audio_bytes: bytes) -> float | None:
    """Return WAV duration from header metadata, or `None` when unreadable."""

    try:
        with wave.open(io.BytesIO(audio_bytes), "rb") as handle:
            framerate = handle.getframerate()
            if framerate <= 0:
                return None
            return handle.getnframes() / float(framerate)
    except (wave.Error, EOFError):
        return None


def _read_wav(payload: bytes, index: int) -> tuple[tuple[int, int, int], bytes]:
    """Return `(channels, sample_width, framerate)` and raw frames of one chunk.

    Raises:
        ValueError: If the payload is not a readable WAV file.
    """

    try:
        with wave.open(io.BytesIO(payload), "rb") as chunk:
            params = (chunk.getnchannels(), chunk.getsampwidth(), chunk.getframerate())
            return params, chunk.readframes(chunk.getnframes())
    except (wave.Error, EOFError) as exc:
        raise ValueError(f"Invalid WAV payload for chunk {index}: {exc}") from exc


def _merge_wav(parts: Sequence[bytes]) -> bytes:
    """Merge WAV payloads frame-by-frame into one WAV payload."""

    decoded = [_read_wav(payload, index) for index, payload in enumerate(parts)]
    channels, sample_width, framerate = decoded[0][0]

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as merged:
        merged.setnchannels(channels)
        merged.setsampwidth(sample_width)
        merged.setframerate(framerate)

        for index, (params, frames) in enumerate(decoded):
            if params != (channels, sample_width, framerate):
                raise ValueError(f"Incompatible WAV parameters for chunk {index}.")
            merged.writeframes(frames)

    return buffer.getvalue()


def concatenate_audio(parts: Sequence[bytes], audio_format: str) -> bytes:
    """Concatenate ordered chunk payloads for the given audio format.

    MP3 frames are self-delimiting, so MP3 (and unknown formats) are joined
    byte-for-byte. WAV payloads are merged frame-by-frame under one header.

    Raises:
        ValueError: If WAV payloads are unreadable or have mismatched parameters.
    """

    if not parts:
        return b""
    if audio_format.lower() == "wav":
        return _merge_wav(parts)
    return b"".join(parts)
