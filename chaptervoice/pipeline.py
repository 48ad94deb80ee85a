"""Pipeline wiring for chaptervoice.

Responsibilities:
- Validate configuration and map failures to stage-aware errors.
- Build the single shared `SynthesisClient` and the job collaborators around it.
- Provide text-side helpers (read, detect, chunk) used by the CLI.

Key types:
- `ChaptervoicePipeline`: construction facade over config.
"""

from __future__ import annotations

import os
from time import sleep
from typing import Callable

from .assembly.assembler import ChapterAssembler
from .config import ChaptervoiceConfig, ProviderRuntimeConfig, RuntimeConfigSources
from .errors import PipelineStageError, SynthesisErrorKind, synthesis_headline
from .io.storage import LocalAudioStorage
from .io.text_source import FileTextSource, TextSource, TextSourceError
from .jobs.coordinator import JobCoordinator
from .jobs.store import JsonJobStore
from .jobs.worker_pool import JobWorkerPool
from .models.datatypes import Chapter, TextChunk
from .provider_factory import ProviderFactory
from .synthesis.cache import DirectoryAudioCache
from .synthesis.client import SynthesisClient
from .synthesis.providers import SpeechProvider
from .synthesis.rate_limiter import (
    AdaptiveConcurrencyController,
    ConcurrencyLimiter,
    TokenBucket,
)
from .telemetry.logger import RunLogger
from .text.chapter_detector import ChapterDetector
from .text.chunking import TextChunker

_FAILURE_HINTS = {
    SynthesisErrorKind.INVALID_KEY: (
        "Verify the provider API key (`chaptervoice check-key`), then resubmit the job."
    ),
    SynthesisErrorKind.QUOTA_EXCEEDED: (
        "Check provider billing/quota or wait for the rate window to reset, then resubmit."
    ),
    SynthesisErrorKind.PROVIDER_ERROR: (
        "Check provider status and voice/model configuration, then resubmit the job."
    ),
    SynthesisErrorKind.EMPTY: "Retry later or try a different voice/model.",
    SynthesisErrorKind.RATE_LIMIT_TIMEOUT: (
        "Reduce concurrent jobs or raise `acquire_timeout_seconds`, then resubmit."
    ),
}


def failure_hint(error_message: str | None) -> str | None:
    """Return an actionable hint for a persisted job error message."""

    if not error_message:
        return None
    for kind, hint in _FAILURE_HINTS.items():
        if synthesis_headline(kind) in error_message:
            return hint
    if "storage error" in error_message:
        return "Check free disk space and output directory permissions."
    return None


class ChaptervoicePipeline:
    """Build pipeline collaborators from one validated configuration."""

    def __init__(
        self,
        config: ChaptervoiceConfig,
        *,
        run_logger: RunLogger | None = None,
        text_source: TextSource | None = None,
    ) -> None:
        """Validate config and initialize text-side collaborators."""

        self._validate_config(config)
        self.config = config
        self.run_logger = run_logger
        self.text_source = text_source or FileTextSource()
        self.detector = ChapterDetector(run_logger=run_logger)
        self.chunker = TextChunker(run_logger=run_logger)

    def _validate_config(self, config: ChaptervoiceConfig) -> None:
        """Validate top-level configuration and map failures to stage-aware error."""

        try:
            config.validate()
        except ValueError as exc:
            raise PipelineStageError(
                stage="config",
                detail=str(exc),
                hint="Update configuration values and rerun the command.",
            ) from exc

    def resolve_runtime(self) -> ProviderRuntimeConfig:
        """Resolve runtime provider settings with deterministic source precedence."""

        try:
            env_source = self.config.runtime_sources.env or os.environ
            runtime_sources = RuntimeConfigSources(
                cli=self.config.runtime_sources.cli,
                secure=self.config.runtime_sources.secure,
                env=env_source,
            )
            return self.config.resolved_provider_runtime(runtime_sources)
        except ValueError as exc:
            raise PipelineStageError(
                stage="config",
                detail=str(exc),
                hint=(
                    "Set a supported provider ID and non-empty model/voice values in "
                    "CLI flags, secure credentials, env vars, or config."
                ),
            ) from exc

    def read_text(self, reference: str) -> str:
        """Read raw manuscript text from the configured text source."""

        try:
            return self.text_source.get_raw_text(reference)
        except TextSourceError as exc:
            raise PipelineStageError(
                stage="input",
                detail=str(exc),
                hint="Pass an existing UTF-8 text/markdown file or a text-based PDF.",
            ) from exc

    def detect_chapters(self, reference: str) -> list[Chapter]:
        """Read a source and split it into chapters."""

        return self.detector.detect(self.read_text(reference))

    def plan_chunks(self, chapters: list[Chapter]) -> list[list[TextChunk]]:
        """Return the chunk plan for each chapter without synthesizing anything."""

        return [
            self.chunker.to_chunks(chapter, self.config.max_chunk_size) for chapter in chapters
        ]

    def build_provider(self, runtime: ProviderRuntimeConfig) -> SpeechProvider:
        """Create the speech provider for resolved runtime settings."""

        if runtime.provider == "elevenlabs" and self.config.audio_format != "mp3":
            raise PipelineStageError(
                stage="config",
                detail="Provider `elevenlabs` only supports `audio_format: mp3`.",
                hint="Set `audio_format: mp3` or use provider `openai` for WAV output.",
            )
        try:
            return ProviderFactory.create_speech_provider(
                runtime.provider,
                runtime.model_id,
                runtime.api_key,
                audio_format=self.config.audio_format,
                timeout_seconds=self.config.request_timeout_seconds,
            )
        except ValueError as exc:
            raise PipelineStageError(
                stage="config",
                detail=str(exc),
                hint="Use provider `elevenlabs` or `openai`.",
            ) from exc

    def build_client(
        self,
        provider: SpeechProvider,
        *,
        sleeper: Callable[[float], None] = sleep,
    ) -> SynthesisClient:
        """Build the one shared synthesis client with its limiter and cache."""

        config = self.config
        limiter = ConcurrencyLimiter(
            config.max_concurrent,
            min_concurrent=config.min_concurrent,
        )
        throttle = None
        if config.dynamic_throttling:
            throttle = AdaptiveConcurrencyController(
                limiter=limiter,
                window_seconds=config.throttle_window_seconds,
                error_threshold_ratio=config.throttle_error_ratio,
                decrease_step=config.throttle_decrease_step,
                increase_step=config.throttle_increase_step,
                cooldown_seconds=config.throttle_cooldown_seconds,
                run_logger=self.run_logger,
            )
        return SynthesisClient(
            provider,
            token_bucket=TokenBucket(
                config.rate_limit_tokens,
                config.rate_limit_tokens,
                config.rate_limit_interval_seconds,
            ),
            limiter=limiter,
            cache=(
                DirectoryAudioCache(
                    config.cache_dir / f"{provider.provider_id}-{provider.audio_format}"
                )
                if config.cache_enabled
                else None
            ),
            retry_attempts=config.retry_attempts,
            retry_base_delay_seconds=config.retry_base_delay_seconds,
            retry_max_delay_seconds=config.retry_max_delay_seconds,
            acquire_timeout_seconds=config.acquire_timeout_seconds,
            bytes_per_second=config.bytes_per_second,
            throttle=throttle,
            model_params=config.extra,
            sleeper=sleeper,
            run_logger=self.run_logger,
        )

    def job_store(self) -> JsonJobStore:
        """Return the JSON job store rooted under the output directory."""

        return JsonJobStore(self.config.jobs_dir)

    def build_coordinator(self, client: SynthesisClient) -> JobCoordinator:
        """Build a coordinator that shares `client` across all jobs."""

        assembler = ChapterAssembler(
            self.chunker,
            client,
            max_chunk_size=self.config.max_chunk_size,
            chunk_workers=self.config.chunk_workers,
        )
        return JobCoordinator(
            self.job_store(),
            assembler,
            LocalAudioStorage(self.config.audio_dir),
            run_logger=self.run_logger,
        )

    def build_worker_pool(self, coordinator: JobCoordinator) -> JobWorkerPool:
        """Start the configured number of job workers."""

        return JobWorkerPool(
            coordinator,
            self.config.job_workers,
            job_timeout_seconds=self.config.job_timeout_seconds,
            run_logger=self.run_logger,
        )
