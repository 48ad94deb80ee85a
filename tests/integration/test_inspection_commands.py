"""Integration tests for inspection, credentials, and key-check CLI commands."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from chaptervoice.cli import app


def test_chapters_command_lists_detected_chapters(manuscript: Path) -> None:
    """The chapter listing shows titles, word counts and a totals line."""

    result = CliRunner().invoke(app, ["chapters", str(manuscript)])

    assert result.exit_code == 0, result.output
    assert "1. Chapter 1: Arrival (7 words, ~0:00:03)" in result.output
    assert "3. Chapter 3: Departure (" in result.output
    assert "Chapters: 3, estimated narration ~" in result.output


def test_chunks_command_prints_plan_without_provider_calls(manuscript: Path) -> None:
    """The chunk plan respects the CLI chunk limit."""

    result = CliRunner().invoke(app, ["chunks", str(manuscript), "--max-chunk-size", "25"])

    assert result.exit_code == 0, result.output
    assert "1. Chapter 1: Arrival: 2 chunk(s), 42 chars, longest 23/25" in result.output
    assert "Total: 6 chunk(s), 126 chars" in result.output


def test_invalid_config_file_fails_at_config_stage(tmp_path: Path, manuscript: Path) -> None:
    """Config validation errors are reported with the failing stage."""

    config_path = tmp_path / "chaptervoice.yml"
    config_path.write_text("max_chunk_size: 0\n", encoding="utf-8")

    result = CliRunner().invoke(app, ["chapters", str(manuscript), "--config", str(config_path)])

    assert result.exit_code == 1
    assert "chapters failed at stage `config`" in result.output


def test_missing_manuscript_fails_at_input_stage(tmp_path: Path) -> None:
    """Missing inputs fail at the input stage."""

    result = CliRunner().invoke(app, ["chapters", str(tmp_path / "missing.txt")])

    assert result.exit_code == 1
    assert "chapters failed at stage `input`" in result.output


def test_credentials_status_set_and_clear(credential_store) -> None:  # type: ignore[no-untyped-def]
    """The credentials command reports, stores and clears per-provider keys."""

    runner = CliRunner()

    status = runner.invoke(app, ["credentials"])
    assert status.exit_code == 0, status.output
    assert "Secure credential storage: available" in status.output
    assert "Stored elevenlabs API key: not set" in status.output

    stored = runner.invoke(app, ["credentials", "--provider", "openai", "--set-api-key"], input="sk-abc\n")
    assert stored.exit_code == 0, stored.output
    assert "openai API key stored in secure credential storage." in stored.output
    assert "sk-abc" not in stored.output
    assert credential_store.keys == {"openai": "sk-abc"}

    cleared = runner.invoke(app, ["credentials", "--provider", "openai", "--clear-api-key"])
    assert cleared.exit_code == 0, cleared.output
    assert "Stored openai API key cleared" in cleared.output
    assert credential_store.keys == {}


def test_credentials_rejects_conflicting_actions(credential_store) -> None:  # type: ignore[no-untyped-def]
    """Setting and clearing in one invocation is refused."""

    result = CliRunner().invoke(app, ["credentials", "--set-api-key", "--clear-api-key"])

    assert result.exit_code == 1
    assert "cannot be used together" in result.output


def test_check_key_reports_valid_and_rejected_keys(
    credential_store, install_provider, fake_provider_cls
) -> None:  # type: ignore[no-untyped-def]
    """Key checks succeed for accepted keys and exit non-zero for rejected ones."""

    runner = CliRunner()

    install_provider(fake_provider_cls(key_valid=True))
    valid = runner.invoke(app, ["check-key", "--api-key", "el-key"])
    assert valid.exit_code == 0, valid.output
    assert "elevenlabs API key is valid." in valid.output

    install_provider(fake_provider_cls(key_valid=False))
    rejected = runner.invoke(app, ["check-key", "--provider", "openai", "--api-key", "sk-key"])
    assert rejected.exit_code == 1
    assert "openai rejected the API key" in rejected.output
