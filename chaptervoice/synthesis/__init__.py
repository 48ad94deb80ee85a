"""Speech synthesis: providers, rate limiting, caching, and the shared client."""

from .cache import DirectoryAudioCache, MemoryAudioCache, make_cache_key
from .client import SynthesisClient
from .providers import (
    ElevenLabsSpeechProvider,
    OpenAISpeechProvider,
    ProviderRequestError,
    SpeechProvider,
)
from .rate_limiter import AdaptiveConcurrencyController, ConcurrencyLimiter, TokenBucket
from .voices import VoiceProfile, resolve_voice_id

__all__ = [
    "AdaptiveConcurrencyController",
    "ConcurrencyLimiter",
    "DirectoryAudioCache",
    "ElevenLabsSpeechProvider",
    "MemoryAudioCache",
    "OpenAISpeechProvider",
    "ProviderRequestError",
    "SpeechProvider",
    "SynthesisClient",
    "TokenBucket",
    "VoiceProfile",
    "make_cache_key",
    "resolve_voice_id",
]
