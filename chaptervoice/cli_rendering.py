"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
chapter listings, chunk plans, and job status summaries.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import PipelineStageError
from .models.datatypes import Chapter, TextChunk
from .models.job import Job
from .text.estimates import estimate_reading_seconds, format_duration


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_chapter_list(chapters: list[Chapter]) -> None:
    """Print deterministic chapter rows with word counts and reading-time estimates."""

    total_seconds = 0
    for chapter in sorted(chapters, key=lambda item: item.index):
        seconds = estimate_reading_seconds(chapter.text)
        total_seconds += seconds
        words = len(chapter.text.split())
        typer.echo(f"{chapter.index}. {chapter.title} ({words} words, ~{format_duration(seconds)})")
    typer.echo(f"Chapters: {len(chapters)}, estimated narration ~{format_duration(total_seconds)}")


def echo_chunk_plan(chapters: list[Chapter], plan: list[list[TextChunk]], max_chunk_size: int) -> None:
    """Print per-chapter chunk counts and the largest chunk length."""

    total_chunks = 0
    total_chars = 0
    for chapter, chunks in zip(chapters, plan):
        longest = max((len(chunk.text) for chunk in chunks), default=0)
        chars = sum(len(chunk.text) for chunk in chunks)
        total_chunks += len(chunks)
        total_chars += chars
        typer.echo(
            f"{chapter.index}. {chapter.title}: {len(chunks)} chunk(s), "
            f"{chars} chars, longest {longest}/{max_chunk_size}"
        )
    typer.echo(f"Total: {total_chunks} chunk(s), {total_chars} chars")


def echo_job_status(job: Job, hint: str | None = None) -> None:
    """Print a job snapshot summary with stored chapter URLs."""

    typer.echo(f"Job id: {job.id}")
    typer.echo(f"Status: {job.status.value}")
    typer.echo(
        f"Progress: {job.progress_percent}% "
        f"({job.processed_chapters}/{job.total_chapters} chapters)"
    )
    for index, url in enumerate(job.audio_urls, start=1):
        title = job.chapters[index - 1].title if index <= len(job.chapters) else ""
        typer.echo(f"Chapter {index} audio ({title}): {url}")
    if job.error:
        typer.secho(f"Error: {job.error}", fg=typer.colors.RED)
        if hint:
            typer.secho(f"Hint: {hint}", fg=typer.colors.YELLOW)


def echo_progress_line(job: Job) -> None:
    """Print one deterministic progress line for a running job."""

    typer.echo(
        f"[progress] job={job.id} status={job.status.value} "
        f"{job.processed_chapters}/{job.total_chapters} {job.progress_percent}%"
    )


def echo_job_list(jobs: list[Job]) -> None:
    """Print one line per persisted job, oldest first."""

    if not jobs:
        typer.echo("No jobs found.")
        return
    for job in jobs:
        typer.echo(
            f"{job.id}  {job.status.value}  {job.progress_percent}% "
            f"({job.processed_chapters}/{job.total_chapters} chapters)"
        )
