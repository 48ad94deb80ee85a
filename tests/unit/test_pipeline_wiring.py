"""Unit tests for pipeline construction, estimates, and failure hints."""

from __future__ import annotations

from pathlib import Path

import pytest

from chaptervoice.config import ChaptervoiceConfig, RuntimeConfigSources
from chaptervoice.errors import PipelineStageError, SynthesisError, SynthesisErrorKind
from chaptervoice.pipeline import ChaptervoicePipeline, failure_hint
from chaptervoice.synthesis.cache import DirectoryAudioCache
from chaptervoice.text.estimates import (
    estimate_duration_seconds,
    estimate_reading_seconds,
    format_duration,
)


def test_invalid_config_maps_to_config_stage_error() -> None:
    """Pipeline construction validates config before building collaborators."""

    with pytest.raises(PipelineStageError) as exc_info:
        ChaptervoicePipeline(ChaptervoiceConfig(max_concurrent=0))

    assert exc_info.value.stage == "config"


def test_missing_input_maps_to_input_stage_error(tmp_path: Path) -> None:
    """Unreadable manuscripts fail at the input stage."""

    pipeline = ChaptervoicePipeline(ChaptervoiceConfig(output_dir=tmp_path))

    with pytest.raises(PipelineStageError) as exc_info:
        pipeline.detect_chapters(str(tmp_path / "missing.txt"))

    assert exc_info.value.stage == "input"


def test_detect_and_plan_chunks_from_file(tmp_path: Path) -> None:
    """The text-side helpers read, detect and chunk without any provider."""

    manuscript = tmp_path / "book.txt"
    manuscript.write_text(
        "Chapter 1\nHi there. This is long.\n\nChapter 2\nShort one.", encoding="utf-8"
    )
    pipeline = ChaptervoicePipeline(ChaptervoiceConfig(output_dir=tmp_path, max_chunk_size=20))

    chapters = pipeline.detect_chapters(str(manuscript))
    plan = pipeline.plan_chunks(chapters)

    assert [chapter.title for chapter in chapters] == ["Chapter 1", "Chapter 2"]
    assert [[chunk.text for chunk in chunks] for chunks in plan] == [
        ["Hi there.", "This is long."],
        ["Short one."],
    ]


def test_build_client_wires_cache_and_optional_throttle(tmp_path: Path, fake_provider) -> None:  # type: ignore[no-untyped-def]
    """The shared client gets a provider-scoped disk cache and throttle when enabled."""

    pipeline = ChaptervoicePipeline(
        ChaptervoiceConfig(output_dir=tmp_path, dynamic_throttling=True, max_concurrent=3)
    )

    client = pipeline.build_client(fake_provider)

    assert isinstance(client.cache, DirectoryAudioCache)
    assert client.cache.root == tmp_path / "cache" / "fake-mp3"
    assert client.throttle is not None
    assert client.limiter.limit == 3

    uncached = ChaptervoicePipeline(
        ChaptervoiceConfig(output_dir=tmp_path, cache_enabled=False)
    ).build_client(fake_provider)
    assert uncached.cache is None
    assert uncached.throttle is None


def test_build_provider_rejects_wav_for_elevenlabs_runtime_override(tmp_path: Path) -> None:
    """A runtime switch to ElevenLabs cannot keep a WAV output format."""

    config = ChaptervoiceConfig(
        output_dir=tmp_path,
        provider="openai",
        audio_format="wav",
        runtime_sources=RuntimeConfigSources(cli={"provider": "elevenlabs"}),
    )
    pipeline = ChaptervoicePipeline(config)
    runtime = pipeline.resolve_runtime()

    with pytest.raises(PipelineStageError, match="only supports"):
        pipeline.build_provider(runtime)


def test_failure_hint_matches_persisted_error_messages() -> None:
    """Persisted job errors map back to actionable hints."""

    quota_message = f"Chapter 2 (Middle) failed: {SynthesisError(SynthesisErrorKind.QUOTA_EXCEEDED, 'x')}"

    assert "quota" in (failure_hint(quota_message) or "")
    assert "disk space" in (failure_hint("Chapter 1 (A) failed: storage error: full") or "")
    assert failure_hint("Unexpected error: RuntimeError: boom") is None
    assert failure_hint(None) is None


def test_duration_and_size_estimates() -> None:
    """Narration and audio estimates use fixed words-per-minute and bitrate assumptions."""

    assert estimate_reading_seconds("word " * 150) == 60
    assert estimate_duration_seconds(32_000) == 2.0
    assert format_duration(3725) == "1:02:05"
