"""Unit tests for CLI output and error rendering helpers."""

from __future__ import annotations

import pytest
import typer

from chaptervoice.cli_rendering import echo_job_status, echo_progress_line, exit_with_command_error
from chaptervoice.errors import PipelineStageError
from chaptervoice.models import Chapter, Job


def _job() -> Job:
    """Build a two-chapter pending job."""

    return Job(
        id="job-1",
        voice_id="voice",
        chapters=(Chapter(1, "Chapter 1", "One."), Chapter(2, "Epilogue", "Two.")),
    )


def test_exit_with_command_error_renders_stage_error_with_hint(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Renderer should print stage diagnostics and hint before exiting with code 1."""

    error = PipelineStageError(
        stage="input",
        detail="Input file not found: `book.txt`.",
        hint="Pass a readable .txt, .md, or .pdf manuscript.",
    )

    with pytest.raises(typer.Exit) as exc_info:
        exit_with_command_error("generate", error)

    captured = capsys.readouterr()
    assert exc_info.value.exit_code == 1
    assert "generate failed at stage `input`" in captured.err
    assert "Hint: Pass a readable .txt, .md, or .pdf manuscript." in captured.err


def test_exit_with_command_error_renders_non_stage_fallback(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Renderer should print fallback exception text for non-stage failures."""

    with pytest.raises(typer.Exit) as exc_info:
        exit_with_command_error("status", RuntimeError("unexpected job payload"))

    captured = capsys.readouterr()
    assert exc_info.value.exit_code == 1
    assert "status failed: unexpected job payload" in captured.err


def test_echo_job_status_lists_urls_error_and_hint(capsys: pytest.CaptureFixture[str]) -> None:
    """Status output names each stored chapter and the terminal error."""

    job = _job().start().record_chapter("file:///a.mp3").fail("Chapter 2 (Epilogue) failed: boom")

    echo_job_status(job, "Retry later.")

    output = capsys.readouterr().out.splitlines()
    assert output == [
        "Job id: job-1",
        "Status: failed",
        "Progress: 50% (1/2 chapters)",
        "Chapter 1 audio (Chapter 1): file:///a.mp3",
        "Error: Chapter 2 (Epilogue) failed: boom",
        "Hint: Retry later.",
    ]


def test_echo_progress_line_is_single_deterministic_line(capsys: pytest.CaptureFixture[str]) -> None:
    """Progress lines carry job id, status and counts."""

    echo_progress_line(_job().start().record_chapter("file:///a.mp3"))

    assert capsys.readouterr().out == "[progress] job=job-1 status=processing 1/2 50%\n"
