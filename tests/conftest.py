"""Shared pytest fixtures for the chaptervoice test suite."""

from __future__ import annotations

import io
import threading
import wave
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from chaptervoice.models.datatypes import ProviderAudio
from chaptervoice.synthesis.cache import MemoryAudioCache
from chaptervoice.synthesis.client import SynthesisClient
from chaptervoice.synthesis.rate_limiter import ConcurrencyLimiter, TokenBucket
from chaptervoice.telemetry.logger import RunLogger


class FakeSpeechProvider:
    """Scripted in-memory speech provider used instead of network clients.

    `script` outcomes are consumed one per call; an `Exception` is raised and a
    `ProviderAudio` is returned. Once the script is exhausted the provider
    echoes `<text>` as audio bytes. `failures` maps a text substring to an
    exception raised on every call whose text contains it.
    """

    provider_id = "fake"
    audio_format = "mp3"

    def __init__(
        self,
        script: list[object] | None = None,
        *,
        failures: Mapping[str, Exception] | None = None,
        on_call: Callable[[str], None] | None = None,
        key_valid: bool = True,
    ) -> None:
        """Initialize scripted outcomes and call recording."""

        self.script = list(script or [])
        self.failures = dict(failures or {})
        self.on_call = on_call
        self.key_valid = key_valid
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    @property
    def texts(self) -> list[str]:
        """Return texts passed to the provider in call order."""

        with self._lock:
            return [text for text, _voice in self.calls]

    def synthesize_speech(
        self,
        *,
        text: str,
        voice_id: str,
        model_params: Mapping[str, Any] | None = None,
    ) -> ProviderAudio:
        """Record the call and return or raise the next scripted outcome."""

        _ = model_params
        with self._lock:
            self.calls.append((text, voice_id))
            outcome = self.script.pop(0) if self.script else None
        if self.on_call is not None:
            self.on_call(text)
        for fragment, error in self.failures.items():
            if fragment in text:
                raise error
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ProviderAudio):
            return outcome
        return ProviderAudio(audio_bytes=f"<{text}>".encode("utf-8"), audio_format="mp3")

    def check_api_key(self) -> bool:
        """Return the configured key validity flag."""

        return self.key_valid


@pytest.fixture
def fake_provider_cls() -> type[FakeSpeechProvider]:
    """Provide the scripted provider class for tests that need custom instances."""

    return FakeSpeechProvider


@pytest.fixture
def fake_provider() -> FakeSpeechProvider:
    """Provide a provider that echoes chunk text as audio bytes."""

    return FakeSpeechProvider()


@pytest.fixture
def sleeps() -> list[float]:
    """Collect backoff delays requested by clients under test."""

    return []


@pytest.fixture
def make_client(sleeps: list[float]) -> Callable[..., SynthesisClient]:
    """Build synthesis clients with generous limits and a recording no-op sleeper."""

    def _make(provider: object, **overrides: Any) -> SynthesisClient:
        options: dict[str, Any] = {
            "token_bucket": TokenBucket(100, 100, 1.0),
            "limiter": ConcurrencyLimiter(4),
            "cache": MemoryAudioCache(),
            "acquire_timeout_seconds": 1.0,
            "sleeper": sleeps.append,
        }
        options.update(overrides)
        return SynthesisClient(provider, **options)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def run_log() -> tuple[RunLogger, io.StringIO]:
    """Provide a debug-level run logger writing into an in-memory buffer."""

    buffer = io.StringIO()
    return RunLogger(sink=buffer, level="DEBUG"), buffer


@pytest.fixture
def wav_bytes() -> Callable[..., bytes]:
    """Build silent mono 16-bit WAV payloads of a given frame count."""

    def _build(frame_count: int = 2400, framerate: int = 24000) -> bytes:
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(framerate)
            wav_file.writeframes(b"\x00\x00" * frame_count)
        return buffer.getvalue()

    return _build
