"""Provider factory helpers for the synthesis stage.

Responsibilities:
- Resolve provider identifiers to concrete speech-provider clients.
- Keep pipeline wiring independent from concrete provider class construction.
"""

from __future__ import annotations

from .synthesis.providers import (
    ElevenLabsSpeechProvider,
    OpenAISpeechProvider,
    SpeechProvider,
)


class ProviderFactory:
    """Factory for speech providers used by `SynthesisClient`."""

    @staticmethod
    def create_speech_provider(
        provider_id: str,
        model_id: str,
        api_key: str | None = None,
        *,
        audio_format: str = "mp3",
        timeout_seconds: float = 60.0,
    ) -> SpeechProvider:
        """Create a speech provider client for a configured provider identifier."""

        if provider_id == "elevenlabs":
            return ElevenLabsSpeechProvider(
                api_key=api_key,
                model_id=model_id,
                timeout_seconds=timeout_seconds,
            )
        if provider_id == "openai":
            return OpenAISpeechProvider(
                api_key=api_key,
                model_id=model_id,
                response_format=audio_format,
                timeout_seconds=timeout_seconds,
            )
        raise ValueError(f"Unsupported speech provider `{provider_id}`.")
