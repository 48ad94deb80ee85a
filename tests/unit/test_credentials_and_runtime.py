"""Unit tests for keyring credentials and CLI runtime source resolution."""

from __future__ import annotations

import pytest
from keyring.backends import fail

from chaptervoice.cli_runtime import resolve_provider_runtime_sources
from chaptervoice.credentials import KeyringCredentialStore
from chaptervoice.errors import PipelineStageError


class FakeKeyringModule:
    """In-memory keyring stand-in for deterministic credential store tests."""

    def __init__(self) -> None:
        """Initialize fake storage dictionary."""

        self._storage: dict[tuple[str, str], str] = {}

    def get_password(self, service_name: str, account_name: str) -> str | None:
        """Return previously stored password if present."""

        return self._storage.get((service_name, account_name))

    def set_password(self, service_name: str, account_name: str, value: str) -> None:
        """Store password value for the service/account key."""

        self._storage[(service_name, account_name)] = value

    def delete_password(self, service_name: str, account_name: str) -> None:
        """Delete password value for the service/account key."""

        self._storage.pop((service_name, account_name), None)


class InMemoryCredentialStore:
    """Provider-aware credential store used for runtime resolution tests."""

    def __init__(self, initial: dict[str, str] | None = None, *, fail_on_set: bool = False) -> None:
        """Initialize stored keys and the failure switch."""

        self.keys = dict(initial or {})
        self.fail_on_set = fail_on_set

    def get_api_key(self, provider: str) -> str | None:
        """Return the stored key for a provider."""

        return self.keys.get(provider)

    def set_api_key(self, provider: str, api_key: str) -> None:
        """Store a key or fail when configured to."""

        if self.fail_on_set:
            raise RuntimeError("backend locked")
        self.keys[provider] = api_key


def _patch_keyring(monkeypatch: pytest.MonkeyPatch, backend: object) -> FakeKeyringModule:
    """Route `keyring` calls in the credentials module to an in-memory fake."""

    fake = FakeKeyringModule()
    monkeypatch.setattr("chaptervoice.credentials.keyring.get_keyring", lambda: backend)
    monkeypatch.setattr("chaptervoice.credentials.keyring.get_password", fake.get_password)
    monkeypatch.setattr("chaptervoice.credentials.keyring.set_password", fake.set_password)
    monkeypatch.setattr("chaptervoice.credentials.keyring.delete_password", fake.delete_password)
    return fake


def test_keyring_store_roundtrip_per_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keys are stored, read and cleared per provider account."""

    _patch_keyring(monkeypatch, object())
    store = KeyringCredentialStore()

    assert store.is_available() is True
    assert store.get_api_key("openai") is None

    store.set_api_key("openai", "  sk-abc123  ")
    assert store.get_api_key("openai") == "sk-abc123"
    assert store.get_api_key("elevenlabs") is None

    assert store.clear_api_key("openai") is True
    assert store.get_api_key("openai") is None
    assert store.clear_api_key("openai") is False


def test_keyring_store_degrades_without_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    """The fail backend reports unavailability and refuses writes."""

    _patch_keyring(monkeypatch, fail.Keyring())
    store = KeyringCredentialStore()

    assert store.is_available() is False
    assert store.get_api_key("openai") is None
    with pytest.raises(RuntimeError, match="unavailable"):
        store.set_api_key("openai", "sk-abc123")


def test_runtime_sources_collect_cli_values_and_stored_key() -> None:
    """CLI values are normalized and the stored key is read for the effective provider."""

    store = InMemoryCredentialStore({"openai": "stored-openai", "elevenlabs": "stored-el"})

    cli_values, secure_values = resolve_provider_runtime_sources(
        default_provider="elevenlabs",
        provider=" openai ",
        model_id=" ",
        voice="nova",
        api_key=None,
        prompt_api_key=False,
        store_api_key=True,
        credential_store_factory=lambda: store,
    )

    assert cli_values == {"provider": "openai", "voice_id": "nova"}
    assert secure_values == {"api_key": "stored-openai"}


def test_prompted_key_is_stored_for_effective_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    """A hidden-prompt key becomes a CLI value and is persisted when requested."""

    store = InMemoryCredentialStore()
    monkeypatch.setattr("chaptervoice.cli_runtime.typer.prompt", lambda *_args, **_kwargs: " typed-key ")

    cli_values, secure_values = resolve_provider_runtime_sources(
        default_provider="elevenlabs",
        provider=None,
        model_id=None,
        voice=None,
        api_key=None,
        prompt_api_key=True,
        store_api_key=True,
        credential_store_factory=lambda: store,
    )

    assert cli_values == {"api_key": "typed-key"}
    assert secure_values == {}
    assert store.keys == {"elevenlabs": "typed-key"}


def test_store_failure_maps_to_credentials_stage_error() -> None:
    """Secure storage failures surface as a stage error with a workaround hint."""

    store = InMemoryCredentialStore(fail_on_set=True)

    with pytest.raises(PipelineStageError) as exc_info:
        resolve_provider_runtime_sources(
            default_provider="openai",
            provider=None,
            model_id=None,
            voice=None,
            api_key="sk-new",
            prompt_api_key=False,
            store_api_key=True,
            credential_store_factory=lambda: store,
        )

    assert exc_info.value.stage == "credentials"
    assert "--no-store-api-key" in (exc_info.value.hint or "")
