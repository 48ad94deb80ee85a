"""Integration-test fixtures for deterministic CLI runs without network or keyring."""

from __future__ import annotations

from pathlib import Path

import pytest

from chaptervoice.provider_factory import ProviderFactory


class InMemoryCredentialStore:
    """Simple in-memory credential store used for CLI tests."""

    def __init__(self) -> None:
        """Initialize empty per-provider key storage."""

        self.keys: dict[str, str] = {}

    def is_available(self) -> bool:
        """Return availability flag expected by the CLI status command."""

        return True

    def get_api_key(self, provider: str) -> str | None:
        """Return currently stored API key value."""

        return self.keys.get(provider)

    def set_api_key(self, provider: str, api_key: str) -> None:
        """Persist a normalized API key value."""

        self.keys[provider] = api_key.strip()

    def clear_api_key(self, provider: str) -> bool:
        """Clear API key and return whether one existed."""

        return self.keys.pop(provider, None) is not None


@pytest.fixture(autouse=True)
def _isolate_runtime_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove provider environment variables that would leak into runtime resolution."""

    for key in (
        "CHAPTERVOICE_PROVIDER",
        "CHAPTERVOICE_MODEL_ID",
        "CHAPTERVOICE_VOICE_ID",
        "ELEVENLABS_API_KEY",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def credential_store(monkeypatch: pytest.MonkeyPatch) -> InMemoryCredentialStore:
    """Route CLI credential access to an in-memory store."""

    store = InMemoryCredentialStore()
    monkeypatch.setattr("chaptervoice.cli.create_credential_store", lambda: store)
    return store


@pytest.fixture
def install_provider(monkeypatch: pytest.MonkeyPatch):  # type: ignore[no-untyped-def]
    """Make the provider factory return a given provider and record its arguments."""

    created: list[dict[str, object]] = []

    def _install(provider: object) -> list[dict[str, object]]:
        def _create(provider_id: str, model_id: str, api_key: str | None = None, **kwargs: object) -> object:
            created.append({"provider_id": provider_id, "model_id": model_id, "api_key": api_key, **kwargs})
            return provider

        monkeypatch.setattr(ProviderFactory, "create_speech_provider", staticmethod(_create))
        return created

    return _install


@pytest.fixture
def manuscript(tmp_path: Path) -> Path:
    """Write a small three-chapter manuscript."""

    path = tmp_path / "book.txt"
    path.write_text(
        "\n".join(
            [
                "Chapter 1: Arrival",
                "The train arrived late. Nobody was waiting.",
                "",
                "Chapter 2: The House",
                "The house stood empty. Dust covered everything.",
                "",
                "Chapter 3: Departure",
                "She left at dawn. The door stayed open.",
            ]
        ),
        encoding="utf-8",
    )
    return path
