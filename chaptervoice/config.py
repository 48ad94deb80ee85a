"""Configuration model and loaders for chaptervoice.

Responsibilities:
- Define runtime configuration as a typed dataclass.
- Provide deterministic precedence resolution for provider/model/voice/key settings.
- Provide loader entry points for file- and environment-based configuration.

Key types:
- `ChaptervoiceConfig`: normalized runtime settings for generation jobs.
- `ProviderRuntimeConfig`: resolved provider/model/voice values.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `ChaptervoiceConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import (
    normalize_optional_string,
    parse_non_negative_float,
    parse_permissive_boolean,
    parse_positive_int,
)
from .synthesis.voices import DEFAULT_VOICE_NAMES, resolve_voice_id

SUPPORTED_PROVIDER_IDS = frozenset({"elevenlabs", "openai"})
SUPPORTED_AUDIO_FORMATS = frozenset({"mp3", "wav"})
DEFAULT_MODEL_IDS = {
    "elevenlabs": "eleven_multilingual_v2",
    "openai": "gpt-4o-mini-tts",
}
API_KEY_ENV_KEYS = {
    "elevenlabs": "ELEVENLABS_API_KEY",
    "openai": "OPENAI_API_KEY",
}
ENV_PREFIX = "CHAPTERVOICE_"


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        secure: Values loaded from secure local credential storage.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    secure: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProviderRuntimeConfig:
    """Resolved runtime provider, model, and voice for one run.

    Attributes:
        provider: Speech provider identifier.
        model_id: Provider model identifier.
        voice_id: Provider-native voice identifier.
        api_key: Optional provider API key (resolved but never persisted or logged).
    """

    provider: str
    model_id: str
    voice_id: str
    api_key: str | None = None

    def as_metadata(self) -> dict[str, str]:
        """Return non-secret runtime metadata safe to print or persist."""

        return {
            "provider": self.provider,
            "model_id": self.model_id,
            "voice_id": self.voice_id,
            "api_key": "set" if self.api_key else "missing",
        }


@dataclass(slots=True)
class ChaptervoiceConfig:
    """Runtime configuration for generation jobs.

    Attributes:
        output_dir: Root for stored audio, job files, and the audio cache.
        provider: Speech provider identifier (`elevenlabs` or `openai`).
        model_id: Provider model id; provider default when unset.
        voice_id: Friendly voice name or provider voice id; provider default when unset.
        api_key: Optional provider API key.
        max_chunk_size: Provider character limit per chunk.
        audio_format: Output audio container (`mp3` or `wav`).
        bytes_per_second: Bitrate assumption for duration estimates.
        rate_limit_tokens: Token bucket capacity and refill amount.
        rate_limit_interval_seconds: Token bucket refill interval.
        max_concurrent: Maximum in-flight provider calls.
        min_concurrent: Concurrency floor under dynamic throttling.
        acquire_timeout_seconds: Maximum wait for a token or concurrency slot.
        retry_attempts: Total provider calls per chunk, first call included.
        retry_base_delay_seconds: First backoff delay.
        retry_max_delay_seconds: Backoff delay cap.
        request_timeout_seconds: HTTP timeout for one provider call.
        cache_enabled: Whether chunk audio is cached on disk.
        chunk_workers: Parallel chunk syntheses per chapter.
        job_workers: Background job workers.
        job_timeout_seconds: Optional wall-clock limit per job (cancels on expiry).
        dynamic_throttling: Whether provider errors lower the concurrency ceiling.
        throttle_window_seconds: Sliding window for counting provider errors.
        throttle_error_ratio: Error count threshold as a fraction of the ceiling.
        throttle_decrease_step: Ceiling decrease on threshold breach.
        throttle_increase_step: Ceiling increase per success after cooldown.
        throttle_cooldown_seconds: Error-free time required before recovery.
        voice_mapping: Friendly voice names mapped to provider voice ids.
        runtime_sources: Optional runtime source overrides injected by CLI.
        extra: Additional provider model parameters.
    """

    output_dir: Path = Path("out")
    provider: str = "elevenlabs"
    model_id: str | None = None
    voice_id: str | None = None
    api_key: str | None = None
    max_chunk_size: int = 4000
    audio_format: str = "mp3"
    bytes_per_second: int = 16_000
    rate_limit_tokens: int = 50
    rate_limit_interval_seconds: float = 60.0
    max_concurrent: int = 5
    min_concurrent: int = 1
    acquire_timeout_seconds: float = 120.0
    retry_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 5.0
    request_timeout_seconds: float = 60.0
    cache_enabled: bool = True
    chunk_workers: int = 1
    job_workers: int = 1
    job_timeout_seconds: float | None = None
    dynamic_throttling: bool = False
    throttle_window_seconds: float = 60.0
    throttle_error_ratio: float = 0.5
    throttle_decrease_step: int = 2
    throttle_increase_step: int = 1
    throttle_cooldown_seconds: float = 30.0
    voice_mapping: dict[str, str] = field(default_factory=dict)
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def audio_dir(self) -> Path:
        """Return the directory for stored chapter audio."""

        return self.output_dir / "audio"

    @property
    def jobs_dir(self) -> Path:
        """Return the directory for persisted job snapshots."""

        return self.output_dir / "jobs"

    @property
    def cache_dir(self) -> Path:
        """Return the directory for cached chunk audio."""

        return self.output_dir / "cache"

    def validate(self) -> None:
        """Validate configuration values before building pipeline collaborators."""

        self._validate_provider_id(self.provider)
        if self.audio_format not in SUPPORTED_AUDIO_FORMATS:
            supported = ", ".join(sorted(SUPPORTED_AUDIO_FORMATS))
            raise ValueError(
                f"Unsupported `audio_format` value `{self.audio_format}`; supported: {supported}."
            )
        if self.provider == "elevenlabs" and self.audio_format != "mp3":
            raise ValueError("Provider `elevenlabs` only supports `audio_format: mp3`.")
        for name in _POSITIVE_INT_FIELDS:
            if getattr(self, name) <= 0:
                raise ValueError(f"`{name}` must be a positive integer.")
        for name in _NON_NEGATIVE_FLOAT_FIELDS:
            if getattr(self, name) < 0:
                raise ValueError(f"`{name}` must be a non-negative number.")
        if self.rate_limit_interval_seconds <= 0:
            raise ValueError("`rate_limit_interval_seconds` must be positive.")
        if self.min_concurrent > self.max_concurrent:
            raise ValueError("`min_concurrent` must not exceed `max_concurrent`.")
        if self.retry_base_delay_seconds > self.retry_max_delay_seconds:
            raise ValueError(
                "`retry_base_delay_seconds` must not exceed `retry_max_delay_seconds`."
            )
        if self.job_timeout_seconds is not None and self.job_timeout_seconds <= 0:
            raise ValueError("`job_timeout_seconds` must be positive when set.")
        if not 0.0 < self.throttle_error_ratio <= 1.0:
            raise ValueError("`throttle_error_ratio` must be in (0, 1].")
        if self.throttle_increase_step > self.throttle_decrease_step:
            raise ValueError(
                "`throttle_increase_step` must not exceed `throttle_decrease_step`."
            )

    def resolved_provider_runtime(
        self, sources: RuntimeConfigSources | None = None
    ) -> ProviderRuntimeConfig:
        """Resolve provider, model, voice, and API key with deterministic precedence.

        Precedence for each key is:
        `cli` > `secure` > `env` > config field default.
        """

        resolved_sources = sources if sources is not None else self.runtime_sources

        provider = self._resolve_runtime_value(
            key="provider",
            env_key=f"{ENV_PREFIX}PROVIDER",
            default_value=self.provider,
            sources=resolved_sources,
        )
        self._validate_provider_id(provider)
        model_id = self._resolve_runtime_value(
            key="model_id",
            env_key=f"{ENV_PREFIX}MODEL_ID",
            default_value=self.model_id or DEFAULT_MODEL_IDS[provider],
            sources=resolved_sources,
        )
        voice = self._resolve_runtime_value(
            key="voice_id",
            env_key=f"{ENV_PREFIX}VOICE_ID",
            default_value=self.voice_id or DEFAULT_VOICE_NAMES[provider],
            sources=resolved_sources,
        )
        api_key = self._resolve_optional_runtime_value(
            key="api_key",
            env_key=API_KEY_ENV_KEYS[provider],
            default_value=self.api_key,
            sources=resolved_sources,
        )
        return ProviderRuntimeConfig(
            provider=provider,
            model_id=model_id,
            voice_id=resolve_voice_id(voice, provider=provider, overrides=self.voice_mapping),
            api_key=api_key,
        )

    def _resolve_runtime_value(
        self,
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str:
        """Resolve a runtime value from sources in deterministic precedence order."""

        value = self._resolve_optional_runtime_value(key, env_key, default_value, sources)
        if value is None:
            raise ValueError(
                f"`{key}` could not be resolved from CLI, secure storage, env, or defaults."
            )
        return value

    def _resolve_optional_runtime_value(
        self,
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str | None:
        """Resolve an optional runtime value from sources in deterministic order."""

        for mapping, lookup_key in (
            (sources.cli, key),
            (sources.secure, key),
            (sources.env, env_key),
        ):
            value = self._normalized_lookup(mapping, lookup_key)
            if value is not None:
                return value
        return normalize_optional_string(default_value)

    @staticmethod
    def _normalized_lookup(mapping: Mapping[str, str], key: str) -> str | None:
        """Return a stripped mapping value for a key or `None` when missing/blank."""

        if key not in mapping:
            return None
        return normalize_optional_string(mapping.get(key))

    @staticmethod
    def _validate_provider_id(provider_id: str) -> None:
        """Validate provider identifiers against supported providers."""

        if provider_id not in SUPPORTED_PROVIDER_IDS:
            supported = ", ".join(sorted(SUPPORTED_PROVIDER_IDS))
            raise ValueError(
                f"Unsupported `provider` value `{provider_id}`; supported: {supported}."
            )


_STRING_FIELDS = ("provider", "model_id", "voice_id", "api_key", "audio_format")
_POSITIVE_INT_FIELDS = (
    "max_chunk_size",
    "bytes_per_second",
    "rate_limit_tokens",
    "max_concurrent",
    "min_concurrent",
    "retry_attempts",
    "chunk_workers",
    "job_workers",
    "throttle_decrease_step",
    "throttle_increase_step",
)
_NON_NEGATIVE_FLOAT_FIELDS = (
    "rate_limit_interval_seconds",
    "acquire_timeout_seconds",
    "retry_base_delay_seconds",
    "retry_max_delay_seconds",
    "request_timeout_seconds",
    "throttle_window_seconds",
    "throttle_error_ratio",
    "throttle_cooldown_seconds",
)
_BOOLEAN_FIELDS = ("cache_enabled", "dynamic_throttling")


class ConfigLoader:
    """Factory methods for creating `ChaptervoiceConfig` from external sources."""

    _SUPPORTED_YAML_KEYS = frozenset(
        {field_info.name for field_info in fields(ChaptervoiceConfig)} - {"runtime_sources"}
    )
    _RUNTIME_ENV_KEYS = frozenset(
        {
            f"{ENV_PREFIX}PROVIDER",
            f"{ENV_PREFIX}MODEL_ID",
            f"{ENV_PREFIX}VOICE_ID",
            *API_KEY_ENV_KEYS.values(),
        }
    )

    @staticmethod
    def from_yaml(path: Path) -> ChaptervoiceConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        try:
            payload = yaml.safe_load(path_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` could not be parsed: {exc}") from exc
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return ConfigLoader.from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> ChaptervoiceConfig:
        """Create a validated config from `CHAPTERVOICE_*` environment variables."""

        env_map: Mapping[str, str] = os.environ if env is None else env

        payload: dict[str, Any] = {}
        for name in ConfigLoader._SUPPORTED_YAML_KEYS:
            if name in {"api_key", "voice_mapping", "extra"}:
                continue
            env_key = f"{ENV_PREFIX}{name.upper()}"
            value = normalize_optional_string(env_map.get(env_key))
            if value is not None:
                payload[name] = value

        runtime_env = {
            key: value
            for key, value in env_map.items()
            if key in ConfigLoader._RUNTIME_ENV_KEYS
            and normalize_optional_string(value) is not None
        }

        config = ConfigLoader.from_mapping(payload, source_label="Environment")
        config.runtime_sources = RuntimeConfigSources(env=runtime_env)
        return config

    @staticmethod
    def from_mapping(payload: Mapping[str, Any], source_label: str) -> ChaptervoiceConfig:
        """Build a validated config from a normalized mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        values: dict[str, Any] = {}
        try:
            for name, raw_value in payload.items():
                if name == "output_dir":
                    output_dir = normalize_optional_string(raw_value)
                    if output_dir is not None:
                        values[name] = Path(output_dir).expanduser()
                elif name in _STRING_FIELDS:
                    values[name] = normalize_optional_string(raw_value)
                elif name in _POSITIVE_INT_FIELDS:
                    values[name] = parse_positive_int(raw_value, name)
                elif name in _NON_NEGATIVE_FLOAT_FIELDS:
                    values[name] = parse_non_negative_float(raw_value, name)
                elif name == "job_timeout_seconds":
                    values[name] = (
                        None
                        if normalize_optional_string(raw_value) is None
                        else parse_non_negative_float(raw_value, name)
                    )
                elif name in _BOOLEAN_FIELDS:
                    values[name] = ConfigLoader._boolean(raw_value, name)
                elif name in {"voice_mapping", "extra"}:
                    values[name] = ConfigLoader._string_map(raw_value, name)
        except ValueError as exc:
            raise ValueError(f"{source_label}: {exc}") from exc

        if values.get("provider") is None:
            values.pop("provider", None)
        if values.get("audio_format") is None:
            values.pop("audio_format", None)

        config = ChaptervoiceConfig(**values)
        try:
            config.validate()
        except ValueError as exc:
            raise ValueError(f"{source_label}: {exc}") from exc
        return config

    @staticmethod
    def _boolean(raw_value: object, key: str) -> bool:
        """Read and validate a boolean field."""

        parsed = parse_permissive_boolean(raw_value)
        if parsed is None:
            raise ValueError(
                f"`{key}` must be a boolean value (`true`/`false`, `1`/`0`, `yes`/`no`)."
            )
        return parsed

    @staticmethod
    def _string_map(raw: object, key: str) -> dict[str, str]:
        """Read an optional mapping with non-empty string keys and values."""

        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"`{key}` must be a mapping/object.")

        normalized: dict[str, str] = {}
        for raw_key, raw_value in raw.items():
            key_value = normalize_optional_string(raw_key)
            value_value = normalize_optional_string(raw_value)
            if key_value is None:
                raise ValueError(f"`{key}` contains a blank key.")
            if value_value is None:
                raise ValueError(f"`{key}` contains blank value for `{key_value}`.")
            normalized[key_value] = value_value
        return normalized
