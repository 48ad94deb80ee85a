"""Voice profile models and friendly-name resolution.

Responsibilities:
- Represent provider voice identities behind human-readable names.
- Decouple CLI/config voice names from provider-specific voice ids.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class VoiceProfile:
    """Declarative voice profile used by speech providers.

    Attributes:
        name: Human-readable profile name.
        provider_voice_id: Provider-native voice identifier.
        provider: Provider id the voice belongs to.
    """

    name: str
    provider_voice_id: str
    provider: str


_ELEVENLABS_VOICES: tuple[VoiceProfile, ...] = (
    VoiceProfile("rachel", "EXAVITQu4vr4xnSDxMaL", "elevenlabs"),
    VoiceProfile("thomas", "N2lVS1w4EtoT3dr4eOWO", "elevenlabs"),
    VoiceProfile("emily", "jsCqWAovK2LkecY7zXl4", "elevenlabs"),
    VoiceProfile("james", "pNInz6obpgDQGcFmaJgB", "elevenlabs"),
    VoiceProfile("michael", "pNInz6obpgDQGcFmaJgB", "elevenlabs"),
    VoiceProfile("ana", "rCmVtv8cYU60uhlsOo1M", "elevenlabs"),
    VoiceProfile("benjamin", "LruHrtVF6PSyGItzMNHS", "elevenlabs"),
    VoiceProfile("adeline", "5l5f8iK3YPeGga21rQIX", "elevenlabs"),
)

_OPENAI_VOICES: tuple[VoiceProfile, ...] = tuple(
    VoiceProfile(name, name, "openai")
    for name in ("alloy", "ash", "coral", "echo", "fable", "nova", "onyx", "sage", "shimmer")
)

DEFAULT_VOICES: dict[str, tuple[VoiceProfile, ...]] = {
    "elevenlabs": _ELEVENLABS_VOICES,
    "openai": _OPENAI_VOICES,
}

DEFAULT_VOICE_NAMES: dict[str, str] = {"elevenlabs": "rachel", "openai": "echo"}


def default_voice_mapping(provider: str) -> dict[str, str]:
    """Return the built-in friendly-name mapping for a provider."""

    return {
        profile.name: profile.provider_voice_id
        for profile in DEFAULT_VOICES.get(provider, ())
    }


def resolve_voice_id(
    voice: str,
    *,
    provider: str,
    overrides: Mapping[str, str] | None = None,
) -> str:
    """Resolve a friendly voice name to a provider voice id.

    Config overrides win over built-in names. Unknown names are treated as
    provider-native ids and returned unchanged.
    """

    normalized = voice.strip()
    lookup = normalized.lower()
    if overrides:
        for name, voice_id in overrides.items():
            if name.strip().lower() == lookup:
                return voice_id.strip()
    builtin = default_voice_mapping(provider)
    return builtin.get(lookup, normalized)
