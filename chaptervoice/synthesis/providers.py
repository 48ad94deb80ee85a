"""HTTP speech-provider clients used by the synthesis stage.

Responsibilities:
- Send single text-to-speech requests to ElevenLabs or OpenAI REST APIs.
- Classify provider failures into deterministic failure kinds.
- Raise actionable provider exceptions for retry-policy decisions.

Key types:
- `SpeechProvider`: protocol consumed by `SynthesisClient`.
- `ElevenLabsSpeechProvider`, `OpenAISpeechProvider`: requests-based clients.
- `ProviderRequestError`: one failed provider call with classification metadata.
"""

from __future__ import annotations

import json
import re
import socket
from typing import Any, Mapping, Protocol

import requests

from ..audio.merger import wav_duration_seconds
from ..models.datatypes import ProviderAudio


class ProviderRequestError(RuntimeError):
    """Raised when one provider request fails or returns an unusable payload."""

    def __init__(
        self,
        message: str,
        *,
        failure_kind: str = "unknown",
        status_code: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        """Initialize provider error metadata for retry and diagnostic mapping."""

        super().__init__(message)
        self.failure_kind = failure_kind
        self.status_code = status_code
        self.provider_code = provider_code


class SpeechProvider(Protocol):
    """Protocol for one-call text-to-speech providers."""

    provider_id: str
    audio_format: str

    def synthesize_speech(
        self,
        *,
        text: str,
        voice_id: str,
        model_params: Mapping[str, Any] | None = None,
    ) -> ProviderAudio:
        """Synthesize one text payload and return encoded audio."""

    def check_api_key(self) -> bool:
        """Return whether the configured credential is accepted by the provider."""


class _HttpSpeechProvider:
    """Shared HTTP settings, error decoding, and failure classification."""

    _MAX_PROVIDER_MESSAGE_CHARS = 180
    _QUOTA_CODES = frozenset({"quota_exceeded", "insufficient_quota"})
    _AUTH_CODES = frozenset({"invalid_api_key", "unauthorized", "invalid_request_key"})

    provider_id = "http"
    provider_label = "Provider"
    api_key_env = "API_KEY"

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialize provider HTTP client settings."""

        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _auth_headers(self) -> dict[str, str]:
        """Return provider-specific authentication headers."""

        raise NotImplementedError

    def _require_api_key(self) -> None:
        """Require API key presence before issuing provider requests."""

        if not self.api_key:
            raise ProviderRequestError(
                f"Missing {self.provider_label} API key. Set `{self.api_key_env}`, use "
                "`--api-key`, or `--prompt-api-key`.",
                failure_kind="invalid_api_key",
            )

    def _post_audio_bytes(
        self,
        *,
        endpoint_path: str,
        payload: dict[str, Any],
        params: dict[str, str] | None = None,
        accept: str = "audio/mpeg",
    ) -> bytes:
        """POST a JSON payload and return the non-empty raw response body."""

        endpoint = f"{self.base_url}{endpoint_path}"
        headers = {
            **self._auth_headers(),
            "Accept": accept,
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(
                endpoint,
                headers=headers,
                json=payload,
                params=params,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            response_bytes = bytes(response.content)
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc) from exc
        except requests.RequestException as exc:
            raise self._transport_error_to_provider_error(exc) from exc
        except TimeoutError as exc:
            raise ProviderRequestError(
                f"{self.provider_label} request timed out.",
                failure_kind="timeout",
            ) from exc

        if not response_bytes:
            raise ProviderRequestError(
                f"{self.provider_label} speech response is empty.",
                failure_kind="empty_response",
                status_code=getattr(response, "status_code", None),
            )
        return response_bytes

    def _get_status_code(self, endpoint_path: str) -> int:
        """Issue an authenticated GET request and return its HTTP status code."""

        endpoint = f"{self.base_url}{endpoint_path}"
        try:
            response = requests.get(
                endpoint,
                headers=self._auth_headers(),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise self._transport_error_to_provider_error(exc) from exc
        return int(response.status_code)

    def check_api_key(self) -> bool:
        """Return whether the provider accepts the configured credential."""

        if not self.api_key:
            return False
        status_code = self._get_status_code(self._key_check_path())
        if status_code in {401, 403}:
            return False
        if status_code >= 400:
            raise ProviderRequestError(
                f"{self.provider_label} key check failed (HTTP {status_code}).",
                failure_kind=self._classify_http_failure(status_code, "", None),
                status_code=status_code,
            )
        return True

    def _key_check_path(self) -> str:
        """Return an authenticated, side-effect-free endpoint path."""

        raise NotImplementedError

    def _transport_error_to_provider_error(
        self, exc: requests.RequestException
    ) -> ProviderRequestError:
        """Convert network-layer failures into normalized provider exceptions."""

        failure_kind = self._classify_transport_failure(exc)
        if failure_kind == "timeout":
            detail = f"{self.provider_label} request timed out."
        else:
            detail = (
                f"{self.provider_label} request transport error: "
                f"{self._short_message(str(exc))}"
            )
        return ProviderRequestError(detail, failure_kind=failure_kind)

    @staticmethod
    def _decode_error_body(exc: requests.HTTPError) -> str:
        """Decode an HTTP error body into a best-effort UTF-8 payload string."""

        response = exc.response
        if response is None:
            return ""
        try:
            return bytes(response.content).decode("utf-8", errors="replace").strip()
        except (TypeError, ValueError):
            return ""

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact API-key-like tokens from provider error content."""

        redacted = re.sub(r"\bsk(?:_|-)[A-Za-z0-9_-]{8,}\b", "[redacted-key]", text)
        redacted = re.sub(
            r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
            "Bearer [redacted-token]",
            redacted,
        )
        return redacted

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap user-facing provider message length."""

        compact = " ".join(text.split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> tuple[str, str | None]:
        """Extract a concise provider message and optional provider error code.

        Understands OpenAI `{"error": {...}}` and ElevenLabs `{"detail": ...}` bodies.
        """

        if not body:
            return "", None

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(cls._redact_sensitive_tokens(body)), None

        provider_code: str | None = None
        message: str | None = None
        if isinstance(payload, dict):
            error_payload = payload.get("error", payload.get("detail"))
            if isinstance(error_payload, dict):
                for code_key in ("code", "status"):
                    code_value = error_payload.get(code_key)
                    if isinstance(code_value, str) and code_value.strip():
                        provider_code = code_value.strip()
                        break
                message_value = error_payload.get("message")
                if isinstance(message_value, str) and message_value.strip():
                    message = message_value.strip()
            elif isinstance(error_payload, str) and error_payload.strip():
                message = error_payload.strip()

        if message is None:
            message = body

        return cls._short_message(cls._redact_sensitive_tokens(message)), provider_code

    @classmethod
    def _classify_http_failure(
        cls,
        status_code: int,
        provider_message: str,
        provider_code: str | None,
    ) -> str:
        """Classify HTTP errors into deterministic failure kinds."""

        message_lower = provider_message.lower()
        normalized_code = provider_code.lower() if provider_code is not None else ""

        if normalized_code in cls._QUOTA_CODES or (
            status_code in {401, 402, 403} and "quota" in message_lower
        ):
            return "insufficient_quota"
        if status_code == 401 or normalized_code in cls._AUTH_CODES:
            return "invalid_api_key"
        if status_code == 429:
            return "rate_limited"
        if status_code in {408, 504}:
            return "timeout"
        if status_code >= 500:
            return "server_error"
        # Message wording only decides between client errors.
        if status_code == 403 and "api key" in message_lower:
            return "invalid_api_key"
        if "timed out" in message_lower:
            return "timeout"
        return "http_error"

    @staticmethod
    def _classify_transport_failure(reason: object) -> str:
        """Classify network-layer failures into deterministic failure kinds."""

        if isinstance(reason, TimeoutError | socket.timeout | requests.Timeout):
            return "timeout"
        return "transport"

    def _http_error_to_provider_error(self, exc: requests.HTTPError) -> ProviderRequestError:
        """Convert HTTP errors into normalized provider exceptions with metadata."""

        status_code = exc.response.status_code if exc.response is not None else 0
        body = self._decode_error_body(exc)
        provider_message, provider_code = self._extract_provider_message(body)
        failure_kind = self._classify_http_failure(status_code, provider_message, provider_code)

        headline = {
            "invalid_api_key": f"{self.provider_label} authentication failed",
            "insufficient_quota": f"{self.provider_label} quota is insufficient for this request",
            "rate_limited": f"{self.provider_label} rate limit reached",
            "timeout": f"{self.provider_label} request timed out",
            "server_error": f"{self.provider_label} service error",
        }.get(failure_kind, f"{self.provider_label} request failed")

        if provider_message:
            detail = f"{headline} (HTTP {status_code}): {provider_message}"
        else:
            detail = f"{headline} (HTTP {status_code})."

        return ProviderRequestError(
            detail,
            failure_kind=failure_kind,
            status_code=status_code,
            provider_code=provider_code,
        )


class ElevenLabsSpeechProvider(_HttpSpeechProvider):
    """Minimal requests-based ElevenLabs text-to-speech client."""

    provider_id = "elevenlabs"
    provider_label = "ElevenLabs"
    api_key_env = "ELEVENLABS_API_KEY"

    DEFAULT_VOICE_SETTINGS: Mapping[str, Any] = {
        "stability": 0.5,
        "similarity_boost": 0.5,
        "style": 0.0,
        "use_speaker_boost": True,
    }

    def __init__(
        self,
        *,
        api_key: str | None,
        model_id: str = "eleven_multilingual_v2",
        output_format: str = "mp3_44100_128",
        base_url: str = "https://api.elevenlabs.io/v1",
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialize ElevenLabs client settings."""

        super().__init__(api_key=api_key, base_url=base_url, timeout_seconds=timeout_seconds)
        self.model_id = model_id
        self.output_format = output_format
        self.audio_format = output_format.split("_", 1)[0]

    def _auth_headers(self) -> dict[str, str]:
        return {"xi-api-key": self.api_key}

    def _key_check_path(self) -> str:
        return "/voices"

    def synthesize_speech(
        self,
        *,
        text: str,
        voice_id: str,
        model_params: Mapping[str, Any] | None = None,
    ) -> ProviderAudio:
        """Return synthesized audio from `/text-to-speech/{voice_id}`."""

        self._require_api_key()

        params = dict(model_params or {})
        voice_settings = dict(self.DEFAULT_VOICE_SETTINGS)
        override_settings = params.pop("voice_settings", None)
        if isinstance(override_settings, Mapping):
            voice_settings.update(override_settings)
        payload: dict[str, Any] = {
            "text": text,
            "model_id": str(params.pop("model_id", self.model_id)),
            "voice_settings": voice_settings,
            **params,
        }
        audio_bytes = self._post_audio_bytes(
            endpoint_path=f"/text-to-speech/{voice_id}",
            payload=payload,
            params={"output_format": self.output_format},
            accept="audio/mpeg" if self.audio_format == "mp3" else "*/*",
        )
        return ProviderAudio(
            audio_bytes=audio_bytes,
            audio_format=self.audio_format,
            duration_seconds=None,
        )


class OpenAISpeechProvider(_HttpSpeechProvider):
    """Minimal requests-based OpenAI `/audio/speech` client."""

    provider_id = "openai"
    provider_label = "OpenAI"
    api_key_env = "OPENAI_API_KEY"

    def __init__(
        self,
        *,
        api_key: str | None,
        model_id: str = "gpt-4o-mini-tts",
        response_format: str = "mp3",
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialize OpenAI speech client settings."""

        super().__init__(api_key=api_key, base_url=base_url, timeout_seconds=timeout_seconds)
        self.model_id = model_id
        self.audio_format = response_format

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _key_check_path(self) -> str:
        return "/models"

    def synthesize_speech(
        self,
        *,
        text: str,
        voice_id: str,
        model_params: Mapping[str, Any] | None = None,
    ) -> ProviderAudio:
        """Return synthesized audio from OpenAI `/audio/speech`."""

        self._require_api_key()

        params = dict(model_params or {})
        speed = float(params.pop("speed", 1.0))
        payload: dict[str, Any] = {
            "model": str(params.pop("model_id", self.model_id)),
            "voice": voice_id,
            "input": text,
            "response_format": self.audio_format,
            "speed": max(0.25, min(4.0, speed)),
            **params,
        }
        audio_bytes = self._post_audio_bytes(
            endpoint_path="/audio/speech",
            payload=payload,
            accept="*/*",
        )
        duration = wav_duration_seconds(audio_bytes) if self.audio_format == "wav" else None
        return ProviderAudio(
            audio_bytes=audio_bytes,
            audio_format=self.audio_format,
            duration_seconds=duration,
        )
