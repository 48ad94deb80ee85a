"""Rate-limited, retrying, caching synthesis client.

Responsibilities:
- Turn one `TextChunk` into one `AudioArtifact` through a speech provider.
- Apply cache lookup, token-bucket pacing, and concurrency slots per attempt.
- Retry transient provider failures with capped exponential backoff.
- Map provider failures onto the closed `SynthesisErrorKind` taxonomy.

One client instance is shared by every job worker in the process.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from time import sleep
from typing import Any, Callable

from ..errors import SynthesisError, SynthesisErrorKind
from ..models.datatypes import AudioArtifact, ProviderAudio, TextChunk
from ..telemetry.logger import RunLogger
from ..text.estimates import DEFAULT_BYTES_PER_SECOND, estimate_duration_seconds
from .cache import AudioCache, make_cache_key
from .providers import ProviderRequestError, SpeechProvider
from .rate_limiter import AdaptiveConcurrencyController, ConcurrencyLimiter, TokenBucket

_TRANSIENT_FAILURE_KINDS = frozenset({"rate_limited", "server_error", "timeout", "transport"})


class SynthesisClient:
    """Synthesize chunks through a provider under shared rate limits."""

    def __init__(
        self,
        provider: SpeechProvider,
        *,
        token_bucket: TokenBucket,
        limiter: ConcurrencyLimiter,
        cache: AudioCache | None = None,
        retry_attempts: int = 3,
        retry_base_delay_seconds: float = 1.0,
        retry_max_delay_seconds: float = 5.0,
        acquire_timeout_seconds: float | None = 120.0,
        bytes_per_second: int = DEFAULT_BYTES_PER_SECOND,
        throttle: AdaptiveConcurrencyController | None = None,
        model_params: Mapping[str, Any] | None = None,
        sleeper: Callable[[float], None] = sleep,
        run_logger: RunLogger | None = None,
    ) -> None:
        """Initialize client collaborators and retry policy."""

        if retry_attempts <= 0:
            raise ValueError("`retry_attempts` must be a positive integer.")
        self.provider = provider
        self.token_bucket = token_bucket
        self.limiter = limiter
        self.cache = cache
        self.retry_attempts = retry_attempts
        self.retry_base_delay_seconds = retry_base_delay_seconds
        self.retry_max_delay_seconds = retry_max_delay_seconds
        self.acquire_timeout_seconds = acquire_timeout_seconds
        self.bytes_per_second = bytes_per_second
        self.throttle = throttle
        self.model_params = dict(model_params or {})
        self._sleeper = sleeper
        self._run_logger = run_logger
        self._counter_lock = threading.Lock()
        self._provider_call_count = 0
        self._retry_attempt_count = 0

    @property
    def provider_call_count(self) -> int:
        """Return total provider invocations made by this client."""

        with self._counter_lock:
            return self._provider_call_count

    @property
    def retry_attempt_count(self) -> int:
        """Return retry attempts performed after transient failures."""

        with self._counter_lock:
            return self._retry_attempt_count

    @property
    def cache_hits(self) -> int:
        """Return cache hit count, or `0` without a cache."""

        return self.cache.hits if self.cache is not None else 0

    @property
    def cache_misses(self) -> int:
        """Return cache miss count, or `0` without a cache."""

        return self.cache.misses if self.cache is not None else 0

    def backoff_delay(self, retry_number: int) -> float:
        """Return `min(base * 2**retry_number, max)` for a 0-based retry number."""

        return min(
            self.retry_base_delay_seconds * (2**retry_number),
            self.retry_max_delay_seconds,
        )

    def synthesize(self, chunk: TextChunk, voice_id: str) -> AudioArtifact:
        """Synthesize one chunk, consulting the cache before any limiter.

        Raises:
            SynthesisError: When the chunk cannot be synthesized.
        """

        cache_key = make_cache_key(chunk.text, voice_id)
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                if self._run_logger is not None:
                    self._run_logger.log_cache_hit(chunk.chapter_index, chunk.sequence)
                return cached

        try:
            provider_audio = self._synthesize_with_retry(chunk, voice_id)
        except SynthesisError as exc:
            if self._run_logger is not None:
                self._run_logger.log_synthesis_failure(
                    chunk.chapter_index, chunk.sequence, exc.kind.value
                )
            raise

        artifact = self._to_artifact(provider_audio)
        if self.cache is not None:
            self.cache.set(cache_key, artifact)
        return artifact

    def _synthesize_with_retry(self, chunk: TextChunk, voice_id: str) -> ProviderAudio:
        """Run the attempt loop and return a non-empty provider payload."""

        attempt = 0
        while True:
            attempt += 1
            self._acquire_token()
            try:
                provider_audio = self._call_provider(chunk.text, voice_id)
            except ProviderRequestError as exc:
                terminal = self._terminal_error_for(exc)
                if terminal is not None:
                    raise terminal from exc
                if self.throttle is not None:
                    self.throttle.record_error()
                if attempt >= self.retry_attempts:
                    raise self._exhausted_error(exc) from exc
                delay = self.backoff_delay(attempt - 1)
                with self._counter_lock:
                    self._retry_attempt_count += 1
                if self._run_logger is not None:
                    self._run_logger.log_retry(attempt, exc.failure_kind, delay)
                self._sleeper(delay)
                continue

            if not provider_audio.audio_bytes:
                raise SynthesisError(
                    SynthesisErrorKind.EMPTY,
                    f"chunk {chunk.sequence} of chapter {chunk.chapter_index} produced 0 bytes.",
                )
            if self.throttle is not None:
                self.throttle.record_success()
            return provider_audio

    def _exhausted_error(self, last_error: ProviderRequestError) -> SynthesisError:
        """Return the error reported once every retry attempt failed transiently."""

        if last_error.failure_kind == "rate_limited":
            return SynthesisError(
                SynthesisErrorKind.QUOTA_EXCEEDED,
                f"still rate limited after {self.retry_attempts} attempts. {last_error}",
            )
        return SynthesisError(
            SynthesisErrorKind.PROVIDER_ERROR,
            f"failed after {self.retry_attempts} attempts. {last_error}",
        )

    def _acquire_token(self) -> None:
        if not self.token_bucket.acquire(self.acquire_timeout_seconds):
            raise SynthesisError(
                SynthesisErrorKind.RATE_LIMIT_TIMEOUT,
                f"no request token within {self.acquire_timeout_seconds}s.",
            )

    def _call_provider(self, text: str, voice_id: str) -> ProviderAudio:
        """Invoke the provider while holding exactly one concurrency slot."""

        with self.limiter.slot(self.acquire_timeout_seconds) as acquired:
            if not acquired:
                raise SynthesisError(
                    SynthesisErrorKind.RATE_LIMIT_TIMEOUT,
                    f"no concurrency slot within {self.acquire_timeout_seconds}s.",
                )
            with self._counter_lock:
                self._provider_call_count += 1
            return self.provider.synthesize_speech(
                text=text,
                voice_id=voice_id,
                model_params=self.model_params,
            )

    @staticmethod
    def _terminal_error_for(exc: ProviderRequestError) -> SynthesisError | None:
        """Return the non-retryable error for a provider failure, if any."""

        kind = exc.failure_kind
        if kind == "insufficient_quota":
            return SynthesisError(SynthesisErrorKind.QUOTA_EXCEEDED, str(exc))
        if kind == "invalid_api_key":
            return SynthesisError(SynthesisErrorKind.INVALID_KEY, str(exc))
        if kind == "empty_response":
            return SynthesisError(SynthesisErrorKind.EMPTY, str(exc))
        if kind in _TRANSIENT_FAILURE_KINDS:
            return None
        return SynthesisError(SynthesisErrorKind.PROVIDER_ERROR, str(exc))

    def _to_artifact(self, provider_audio: ProviderAudio) -> AudioArtifact:
        """Build an artifact, estimating duration when the provider did not report one."""

        size_bytes = len(provider_audio.audio_bytes)
        if provider_audio.duration_seconds is not None:
            duration = provider_audio.duration_seconds
            estimated = False
        else:
            duration = estimate_duration_seconds(size_bytes, self.bytes_per_second)
            estimated = True
        return AudioArtifact(
            audio_bytes=provider_audio.audio_bytes,
            duration_seconds=duration,
            size_bytes=size_bytes,
            audio_format=provider_audio.audio_format,
            duration_estimated=estimated,
        )
