"""Rough chapter duration and audio size estimates for listings and planning."""

from __future__ import annotations

DEFAULT_WORDS_PER_MINUTE = 150
DEFAULT_BYTES_PER_SECOND = 16_000


def estimate_reading_seconds(text: str, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE) -> int:
    """Estimate narration time in whole seconds from word count."""

    if words_per_minute <= 0:
        raise ValueError("`words_per_minute` must be a positive integer.")
    word_count = len(text.split())
    return round(word_count / words_per_minute * 60)


def estimate_duration_seconds(size_bytes: int, bytes_per_second: int = DEFAULT_BYTES_PER_SECOND) -> float:
    """Estimate audio duration from payload size at a fixed bitrate assumption."""

    if bytes_per_second <= 0:
        raise ValueError("`bytes_per_second` must be a positive integer.")
    return max(0, size_bytes) / float(bytes_per_second)


def format_duration(seconds: float) -> str:
    """Format seconds as `H:MM:SS`."""

    total = max(0, int(round(seconds)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"
