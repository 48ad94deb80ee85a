"""Command-line interface for chaptervoice.

Responsibilities:
- Expose user-facing commands for chapter inspection and audiobook generation.
- Convert CLI arguments into `ChaptervoiceConfig` and run jobs through a worker pool.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

from dataclasses import replace
import os
from pathlib import Path
from typing import Annotated, Any

import typer

from .cli_rendering import (
    echo_chapter_list,
    echo_chunk_plan,
    echo_job_list,
    echo_job_status,
    echo_progress_line,
    exit_with_command_error,
)
from .cli_runtime import resolve_provider_runtime_sources
from .config import ChaptervoiceConfig, ConfigLoader, RuntimeConfigSources
from .credentials import create_credential_store
from .errors import JobNotFoundError, PipelineStageError
from .models.job import JobStatus
from .parsing import normalize_optional_string
from .pipeline import ChaptervoicePipeline, failure_hint
from .synthesis.providers import ProviderRequestError
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="chaptervoice",
    no_args_is_help=True,
    help="Turn book manuscripts into chapter-by-chapter audiobooks.",
)

_POLL_INTERVAL_SECONDS = 0.5

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to YAML config file with command defaults."),
]
OutOption = Annotated[
    Path | None,
    typer.Option("--out", help="Output directory (overrides config file value)."),
]
ProviderOption = Annotated[
    str | None,
    typer.Option("--provider", help="Speech provider id: `elevenlabs` or `openai`."),
]


def _load_yaml_config(config_path: Path | None) -> ChaptervoiceConfig | None:
    """Load a YAML config file when requested and map failures to stage errors."""

    if config_path is None:
        return None

    try:
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid config file `{config_path}`: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc


def _resolve_command_config(
    config_file: Path | None,
    out: Path | None,
    runtime_cli_values: dict[str, str] | None = None,
    runtime_secure_values: dict[str, str] | None = None,
    **overrides: Any,
) -> ChaptervoiceConfig:
    """Resolve effective config from YAML defaults, explicit CLI overrides, and sources."""

    loaded_config = _load_yaml_config(config_file) or ChaptervoiceConfig()
    changes = {key: value for key, value in overrides.items() if value is not None}
    if out is not None:
        changes["output_dir"] = out
    changes["runtime_sources"] = RuntimeConfigSources(
        cli=runtime_cli_values or {},
        secure=runtime_secure_values or {},
        env=os.environ,
    )
    return replace(loaded_config, **changes)


@app.command("chapters")
def chapters_command(
    input_path: Annotated[Path, typer.Argument(help="Path to a .txt, .md, or .pdf manuscript.")],
    config_file: ConfigOption = None,
) -> None:
    """List detected chapters with narration-time estimates."""

    try:
        pipeline = ChaptervoicePipeline(_resolve_command_config(config_file, None))
        chapters = pipeline.detect_chapters(str(input_path))
    except Exception as exc:
        exit_with_command_error("chapters", exc)

    echo_chapter_list(chapters)


@app.command("chunks")
def chunks_command(
    input_path: Annotated[Path, typer.Argument(help="Path to a .txt, .md, or .pdf manuscript.")],
    max_chunk_size: Annotated[
        int | None,
        typer.Option("--max-chunk-size", min=1, help="Provider character limit per chunk."),
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """Show the chunk plan per chapter without calling any provider."""

    try:
        config = _resolve_command_config(config_file, None, max_chunk_size=max_chunk_size)
        pipeline = ChaptervoicePipeline(config)
        chapters = pipeline.detect_chapters(str(input_path))
        plan = pipeline.plan_chunks(chapters)
    except Exception as exc:
        exit_with_command_error("chunks", exc)

    echo_chunk_plan(chapters, plan, config.max_chunk_size)


@app.command("generate")
def generate_command(
    input_path: Annotated[Path, typer.Argument(help="Path to a .txt, .md, or .pdf manuscript.")],
    out: OutOption = None,
    config_file: ConfigOption = None,
    provider: ProviderOption = None,
    model_id: Annotated[
        str | None, typer.Option("--model", help="Provider model id override.")
    ] = None,
    voice: Annotated[
        str | None,
        typer.Option("--voice", help="Voice name (e.g. `rachel`) or provider voice id."),
    ] = None,
    api_key: Annotated[
        str | None,
        typer.Option(
            "--api-key",
            help="Provider API key override. Prefer `--prompt-api-key` to avoid shell history.",
        ),
    ] = None,
    prompt_api_key: Annotated[
        bool,
        typer.Option(
            "--prompt-api-key",
            help="Prompt for API key with hidden input (never echoed).",
        ),
    ] = False,
    store_api_key: Annotated[
        bool,
        typer.Option(
            "--store-api-key/--no-store-api-key",
            help="Persist CLI-entered API key to secure credential storage.",
        ),
    ] = True,
    max_chunk_size: Annotated[
        int | None,
        typer.Option("--max-chunk-size", min=1, help="Provider character limit per chunk."),
    ] = None,
    chunk_workers: Annotated[
        int | None,
        typer.Option("--chunk-workers", min=1, help="Parallel chunk syntheses per chapter."),
    ] = None,
    job_id: Annotated[
        str | None, typer.Option("--job-id", help="Explicit job id (default: random).")
    ] = None,
    log_level: Annotated[
        str, typer.Option("--log-level", help="Event log level (DEBUG, INFO, WARNING).")
    ] = "INFO",
) -> None:
    """Generate chapter audio for a manuscript and print the stored URLs."""

    try:
        base_config = _resolve_command_config(config_file, out)
        runtime_cli_values, runtime_secure_values = resolve_provider_runtime_sources(
            default_provider=base_config.provider,
            provider=provider,
            model_id=model_id,
            voice=voice,
            api_key=api_key,
            prompt_api_key=prompt_api_key,
            store_api_key=store_api_key,
            credential_store_factory=create_credential_store,
        )
        config = _resolve_command_config(
            config_file,
            out,
            runtime_cli_values,
            runtime_secure_values,
            max_chunk_size=max_chunk_size,
            chunk_workers=chunk_workers,
        )
        pipeline = ChaptervoicePipeline(config, run_logger=RunLogger(level=log_level.upper()))
        chapters = pipeline.detect_chapters(str(input_path))
        runtime = pipeline.resolve_runtime()
        client = pipeline.build_client(pipeline.build_provider(runtime))
        coordinator = pipeline.build_coordinator(client)
        job = coordinator.create_job(chapters, runtime.voice_id, job_id=job_id)
    except Exception as exc:
        exit_with_command_error("generate", exc)

    typer.echo(f"Job id: {job.id} ({job.total_chapters} chapters, voice {job.voice_id})")
    pool = pipeline.build_worker_pool(coordinator)
    try:
        pool.submit(job.id)
        last_processed = -1
        try:
            while not pool.wait(job.id, timeout=_POLL_INTERVAL_SECONDS):
                snapshot = coordinator.get_status(job.id)
                if snapshot.processed_chapters != last_processed:
                    last_processed = snapshot.processed_chapters
                    echo_progress_line(snapshot)
        except KeyboardInterrupt:
            typer.echo("Cancelling job; waiting for the current chunk to finish...")
            coordinator.cancel(job.id)
            pool.wait(job.id)
    finally:
        pool.shutdown()

    final = coordinator.get_status(job.id)
    echo_job_status(final, failure_hint(final.error))
    typer.echo(
        f"Provider calls: {client.provider_call_count}, retries: {client.retry_attempt_count}, "
        f"cache hits: {client.cache_hits}"
    )
    if final.status is not JobStatus.COMPLETED:
        raise typer.Exit(code=1)


@app.command("status")
def status_command(
    job_id: Annotated[str, typer.Argument(help="Job id printed by `generate`.")],
    out: OutOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Print the persisted status of a job."""

    try:
        pipeline = ChaptervoicePipeline(_resolve_command_config(config_file, out))
        job = pipeline.job_store().load_job(job_id)
    except JobNotFoundError:
        exit_with_command_error(
            "status",
            PipelineStageError(
                stage="job-store",
                detail=f"Job `{job_id}` not found.",
                hint="Pass the same `--out`/`--config` used for `generate`.",
            ),
        )
    except Exception as exc:
        exit_with_command_error("status", exc)

    echo_job_status(job, failure_hint(job.error))


@app.command("jobs")
def jobs_command(
    out: OutOption = None,
    config_file: ConfigOption = None,
) -> None:
    """List persisted jobs with their status and progress."""

    try:
        pipeline = ChaptervoicePipeline(_resolve_command_config(config_file, out))
        jobs = pipeline.job_store().list_jobs()
    except Exception as exc:
        exit_with_command_error("jobs", exc)

    echo_job_list(jobs)


@app.command("credentials")
def credentials_command(
    provider: Annotated[
        str,
        typer.Option("--provider", help="Provider whose API key is managed."),
    ] = "elevenlabs",
    set_api_key: Annotated[
        bool,
        typer.Option(
            "--set-api-key",
            help="Prompt for API key with hidden input and store it securely.",
        ),
    ] = False,
    clear_api_key: Annotated[
        bool,
        typer.Option(
            "--clear-api-key",
            help="Clear stored API key from secure credential storage.",
        ),
    ] = False,
) -> None:
    """Manage securely stored provider credentials."""

    if set_api_key and clear_api_key:
        exit_with_command_error(
            "credentials",
            PipelineStageError(
                stage="credentials",
                detail="`--set-api-key` and `--clear-api-key` cannot be used together.",
                hint="Run one credentials action per command invocation.",
            ),
        )

    credential_store = create_credential_store()
    if set_api_key:
        prompted_api_key = normalize_optional_string(
            typer.prompt(
                f"{provider} API key (hidden input)",
                default="",
                hide_input=True,
                show_default=False,
            )
        )
        if prompted_api_key is None:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail="No API key entered.",
                    hint="Provide a non-empty API key when using `--set-api-key`.",
                ),
            )
        try:
            credential_store.set_api_key(provider, prompted_api_key)
        except Exception as exc:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail=f"Failed to store API key securely: {exc}",
                    hint="Install and configure a keyring backend and retry.",
                ),
            )
        typer.echo(f"{provider} API key stored in secure credential storage.")
        return

    if clear_api_key:
        removed = credential_store.clear_api_key(provider)
        if removed:
            typer.echo(f"Stored {provider} API key cleared from secure credential storage.")
        else:
            typer.echo(f"No stored {provider} API key found in secure credential storage.")
        return

    availability = "available" if credential_store.is_available() else "unavailable"
    has_stored_key = credential_store.get_api_key(provider) is not None
    status = "present" if has_stored_key else "not set"
    typer.echo(f"Secure credential storage: {availability}")
    typer.echo(f"Stored {provider} API key: {status}")


@app.command("check-key")
def check_key_command(
    provider: ProviderOption = None,
    api_key: Annotated[
        str | None, typer.Option("--api-key", help="API key to check instead of stored/env key.")
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """Verify that the provider accepts the resolved API key."""

    try:
        base_config = _resolve_command_config(config_file, None)
        runtime_cli_values, runtime_secure_values = resolve_provider_runtime_sources(
            default_provider=base_config.provider,
            provider=provider,
            model_id=None,
            voice=None,
            api_key=api_key,
            prompt_api_key=False,
            store_api_key=False,
            credential_store_factory=create_credential_store,
        )
        config = _resolve_command_config(
            config_file, None, runtime_cli_values, runtime_secure_values
        )
        pipeline = ChaptervoicePipeline(config)
        runtime = pipeline.resolve_runtime()
        valid = pipeline.build_provider(runtime).check_api_key()
    except ProviderRequestError as exc:
        exit_with_command_error(
            "check-key",
            PipelineStageError(
                stage="check-key",
                detail=str(exc),
                hint="Check internet/proxy connectivity and retry the command.",
            ),
        )
    except Exception as exc:
        exit_with_command_error("check-key", exc)

    if not valid:
        exit_with_command_error(
            "check-key",
            PipelineStageError(
                stage="check-key",
                detail=f"{runtime.provider} rejected the API key (or no key is configured).",
                hint="Store a key via `chaptervoice credentials --set-api-key`.",
            ),
        )
    typer.echo(f"{runtime.provider} API key is valid.")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
