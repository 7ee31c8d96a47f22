"""
Command-line interface for the video translation client.

Usage (from project root):
    python -m src.cli.main create --video-url URL --source-locale en-US --target-locale es-ES
    python -m src.cli.main iterate TRANSLATION_ID --webvtt-url URL
    python -m src.cli.main status OPERATION_ID
    python -m src.cli.main list --csv translations.csv

Or, once installed, through the ``video-translation`` console script.

Exit status: 0 on success, 1 on an API/workflow failure, 2 on a
configuration error.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.markup import escape
from rich.table import Table

from src.api_client import console
from src.api_client.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_WAIT_SECONDS,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_RETRY_BASE_DELAY,
    ServiceConfig,
    load_service_config,
)
from src.api_client.errors import ConfigurationError
from src.api_client.parser import extract_operation_status, generate_resource_id
from src.api_client.translations import (
    IterationRequest,
    TranslationRequest,
    delete_translation,
    get_iteration,
    get_operation,
    get_translation,
    list_translations,
)
from src.api_client.workflow import (
    WorkflowResult,
    run_iteration_workflow,
    run_translation_workflow,
)
from src.artifacts.layout import (
    iteration_json_path,
    operation_json_path,
    safe_name,
    translation_dir,
    translation_json_path,
)
from src.artifacts.writer import (
    download_iteration_artifacts,
    export_translations_csv,
    save_json,
    save_workflow_snapshots,
    translations_to_frame,
)

EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2

app = typer.Typer(
    no_args_is_help=True,
    help="Create video translations and iterations, poll them, and download the results.",
)


@dataclass(frozen=True)
class CliOptions:
    output_dir: Path
    max_retries: int
    retry_delay: float


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_config(ctx: typer.Context) -> ServiceConfig:
    """Build the service configuration once, exiting with status 2 on error."""
    options: CliOptions = ctx.obj
    try:
        return load_service_config(
            max_retries=options.max_retries,
            retry_base_delay=options.retry_delay,
        )
    except ConfigurationError as exc:
        console.error(f"Configuration error: {exc.message}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc


def _check_ids(**ids: str | None) -> None:
    """Reject identifiers that cannot name an output folder (e.g. ``..``)."""
    for name, value in ids.items():
        if value is None:
            continue
        try:
            safe_name(value)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint=name.replace("_", "-")) from exc


def _fail(message: str) -> NoReturn:
    console.error(message)
    raise typer.Exit(code=EXIT_FAILURE)


def _print_workflow_summary(result: WorkflowResult) -> None:
    table = Table(title=f"Workflow {result.translation_id} / {result.iteration_id}")
    table.add_column("Step", style="cyan", no_wrap=True)
    table.add_column("State", style="white")
    table.add_column("Polls", justify="right")
    table.add_column("Elapsed", justify="right", style="dim")
    for step, outcome in result.outcomes.items():
        style = "green" if outcome.succeeded else "red"
        table.add_row(
            step,
            f"[{style}]{outcome.state}[/{style}]",
            str(outcome.polls),
            f"{outcome.elapsed_seconds:.0f}s",
        )
    console.console.print(table)


def _persist_workflow(
    result: WorkflowResult,
    options: CliOptions,
    config: ServiceConfig,
    download: bool,
) -> bool:
    """
    Save JSON snapshots and, for a successful run, download the results.

    Returns:
        ``True`` when every requested download succeeded.
    """
    written = save_workflow_snapshots(
        options.output_dir,
        result.translation_id,
        result.iteration_id,
        result.translation,
        result.iteration,
    )
    for outcome in result.outcomes.values():
        if outcome.payload:
            written.append(save_json(
                outcome.payload,
                operation_json_path(options.output_dir, result.translation_id, outcome.operation_id),
            ))
    for path in written:
        console.info(f"Saved {path}")

    if not (download and result.succeeded):
        return True

    summary = download_iteration_artifacts(
        result.iteration,
        options.output_dir,
        result.translation_id,
        result.iteration_id,
        max_retries=config.max_retries,
        base_delay=config.retry_base_delay,
        timeout=config.request_timeout,
    )
    return not summary["failed"]


def _finish_workflow(
    result: WorkflowResult,
    options: CliOptions,
    config: ServiceConfig,
    download: bool,
) -> None:
    _print_workflow_summary(result)
    downloads_ok = _persist_workflow(result, options, config, download)

    if not result.succeeded:
        details = f" (last status: {json.dumps(result.last_status)})" if result.last_status else ""
        _fail(f"Failed at step '{result.failed_step}': {result.error.message}{details}")
    if not downloads_ok:
        _fail("Workflow succeeded but some result files could not be downloaded.")

    console.success(
        f"Done in {result.duration_seconds:.0f}s. Results in "
        f"{translation_dir(options.output_dir, result.translation_id)}"
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.callback()
def main(
    ctx: typer.Context,
    output_dir: Path = typer.Option(
        DEFAULT_OUTPUT_DIR, "--output-dir", "-o",
        help="Root folder for saved JSON responses and downloaded files.",
    ),
    max_retries: int = typer.Option(
        DEFAULT_MAX_RETRIES, "--max-retries", min=0,
        help="Retries for transient HTTP failures (429/5xx, connection errors).",
    ),
    retry_delay: float = typer.Option(
        DEFAULT_RETRY_BASE_DELAY, "--retry-delay", min=0,
        help="Base backoff delay in seconds; doubles on every retry.",
    ),
) -> None:
    """Video translation workflow client."""
    ctx.obj = CliOptions(output_dir=output_dir, max_retries=max_retries, retry_delay=retry_delay)


@app.command()
def create(
    ctx: typer.Context,
    video_url: str = typer.Option(..., "--video-url", help="Publicly readable URL of the source video."),
    source_locale: str = typer.Option(..., "--source-locale", help="Source locale, e.g. en-US."),
    target_locale: str = typer.Option(..., "--target-locale", help="Target locale, e.g. es-ES."),
    voice_kind: str = typer.Option("PlatformVoice", "--voice-kind", help="PlatformVoice or PersonalVoice."),
    speaker_count: int | None = typer.Option(None, "--speaker-count", min=1),
    subtitle_max_chars: int | None = typer.Option(
        None, "--subtitle-max-chars", min=1, help="Max characters per subtitle segment.",
    ),
    export_subtitle_in_video: bool | None = typer.Option(
        None, "--export-subtitle-in-video/--no-export-subtitle-in-video",
    ),
    translation_id: str | None = typer.Option(None, "--translation-id", help="Generated when omitted."),
    iteration_id: str | None = typer.Option(None, "--iteration-id", help="Generated when omitted."),
    display_name: str | None = typer.Option(None, "--display-name"),
    description: str | None = typer.Option(None, "--description"),
    poll_interval: float = typer.Option(DEFAULT_POLL_INTERVAL_SECONDS, "--poll-interval", min=0, help="Seconds."),
    max_wait: float = typer.Option(
        DEFAULT_MAX_WAIT_SECONDS / 60, "--max-wait", min=0, help="Minutes to wait per operation.",
    ),
    download: bool = typer.Option(True, "--download/--no-download", help="Download result files."),
) -> None:
    """Create a translation and its first iteration, then download the results."""
    options: CliOptions = ctx.obj
    try:
        request = TranslationRequest(
            video_file_url=video_url,
            source_locale=source_locale,
            target_locale=target_locale,
            voice_kind=voice_kind,
            speaker_count=speaker_count,
            subtitle_max_char_count_per_segment=subtitle_max_chars,
            export_subtitle_in_video=export_subtitle_in_video,
            display_name=display_name,
            description=description,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--voice-kind") from exc

    _check_ids(translation_id=translation_id, iteration_id=iteration_id)
    config = _load_config(ctx)
    translation_id = translation_id or generate_resource_id("translation")
    iteration_id = iteration_id or generate_resource_id("iteration")

    result = run_translation_workflow(
        config,
        translation_id,
        request,
        iteration_id,
        IterationRequest(
            speaker_count=speaker_count,
            subtitle_max_char_count_per_segment=subtitle_max_chars,
            export_subtitle_in_video=export_subtitle_in_video,
        ),
        interval=poll_interval,
        max_wait=max_wait * 60,
    )
    _finish_workflow(result, options, config, download)


@app.command()
def iterate(
    ctx: typer.Context,
    translation_id: str = typer.Argument(..., help="Existing translation id."),
    iteration_id: str | None = typer.Option(None, "--iteration-id", help="Generated when omitted."),
    webvtt_url: str | None = typer.Option(None, "--webvtt-url", help="URL of an edited WebVTT file."),
    webvtt_kind: str = typer.Option(
        "TargetLocaleSubtitle", "--webvtt-kind",
        help="SourceLocaleSubtitle, TargetLocaleSubtitle or MetadataJson.",
    ),
    speaker_count: int | None = typer.Option(None, "--speaker-count", min=1),
    subtitle_max_chars: int | None = typer.Option(None, "--subtitle-max-chars", min=1),
    export_subtitle_in_video: bool | None = typer.Option(
        None, "--export-subtitle-in-video/--no-export-subtitle-in-video",
    ),
    description: str | None = typer.Option(None, "--description"),
    poll_interval: float = typer.Option(DEFAULT_POLL_INTERVAL_SECONDS, "--poll-interval", min=0, help="Seconds."),
    max_wait: float = typer.Option(
        DEFAULT_MAX_WAIT_SECONDS / 60, "--max-wait", min=0, help="Minutes to wait for the iteration.",
    ),
    download: bool = typer.Option(True, "--download/--no-download", help="Download result files."),
) -> None:
    """Create a refinement iteration on an existing translation."""
    options: CliOptions = ctx.obj
    try:
        request = IterationRequest(
            speaker_count=speaker_count,
            subtitle_max_char_count_per_segment=subtitle_max_chars,
            export_subtitle_in_video=export_subtitle_in_video,
            webvtt_file_url=webvtt_url,
            webvtt_file_kind=webvtt_kind,
            description=description,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--webvtt-kind") from exc

    _check_ids(translation_id=translation_id, iteration_id=iteration_id)
    config = _load_config(ctx)
    result = run_iteration_workflow(
        config,
        translation_id,
        iteration_id or generate_resource_id("iteration"),
        request,
        interval=poll_interval,
        max_wait=max_wait * 60,
    )
    _finish_workflow(result, options, config, download)


@app.command()
def status(
    ctx: typer.Context,
    operation_id: str = typer.Argument(..., help="Operation id returned at submission."),
) -> None:
    """Show the current status of an operation."""
    config = _load_config(ctx)
    result = get_operation(config, operation_id)
    if not result.ok:
        _fail(f"Could not read operation {operation_id}: {result.error}")
    console.info(f"Operation {operation_id}: {extract_operation_status(result.payload) or 'unknown'}")
    console.console.print_json(data=result.payload)


@app.command()
def get(
    ctx: typer.Context,
    translation_id: str = typer.Argument(...),
    iteration_id: str | None = typer.Option(None, "--iteration-id", help="Also fetch this iteration."),
) -> None:
    """Fetch a translation (and optionally an iteration) and save it as JSON."""
    options: CliOptions = ctx.obj
    _check_ids(translation_id=translation_id, iteration_id=iteration_id)
    config = _load_config(ctx)

    translation = get_translation(config, translation_id)
    if not translation.ok:
        _fail(f"Could not read translation {translation_id}: {translation.error}")
    path = save_json(translation.payload, translation_json_path(options.output_dir, translation_id))
    console.info(f"Translation {translation_id}: {translation.payload.get('status', 'unknown')} (saved {path})")

    if iteration_id:
        iteration = get_iteration(config, translation_id, iteration_id)
        if not iteration.ok:
            _fail(f"Could not read iteration {iteration_id}: {iteration.error}")
        path = save_json(
            iteration.payload,
            iteration_json_path(options.output_dir, translation_id, iteration_id),
        )
        console.info(f"Iteration {iteration_id}: {iteration.payload.get('status', 'unknown')} (saved {path})")


@app.command("list")
def list_command(
    ctx: typer.Context,
    top: int | None = typer.Option(None, "--top", min=1, help="Return at most this many translations."),
    csv_path: Path | None = typer.Option(None, "--csv", help="Also export the summary to this CSV file."),
) -> None:
    """List translations."""
    config = _load_config(ctx)
    result = list_translations(config, top=top)
    if not result.ok:
        _fail(f"Could not list translations: {result.error}")

    translations = result.payload["value"]
    frame = translations_to_frame(translations)
    table = Table(title=f"Translations ({len(frame)})")
    for column in frame.columns:
        table.add_column(column, no_wrap=column == "id")
    for row in frame.itertuples(index=False):
        table.add_row(*(escape(str(value)) for value in row))
    console.console.print(table)

    if csv_path is not None:
        export_translations_csv(translations, csv_path)


@app.command()
def delete(
    ctx: typer.Context,
    translation_id: str = typer.Argument(...),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Delete a translation and all of its iterations on the server."""
    if not yes:
        typer.confirm(f"Delete translation '{translation_id}'?", abort=True)
    config = _load_config(ctx)
    result = delete_translation(config, translation_id)
    if not result.ok:
        _fail(f"Could not delete translation {translation_id}: {result.error}")
    console.success(f"Deleted translation {translation_id}.")


@app.command()
def download(
    ctx: typer.Context,
    translation_id: str = typer.Argument(...),
    iteration_id: str = typer.Argument(...),
) -> None:
    """Download the result files of a finished iteration."""
    options: CliOptions = ctx.obj
    _check_ids(translation_id=translation_id, iteration_id=iteration_id)
    config = _load_config(ctx)

    iteration = get_iteration(config, translation_id, iteration_id)
    if not iteration.ok:
        _fail(f"Could not read iteration {iteration_id}: {iteration.error}")
    save_json(iteration.payload, iteration_json_path(options.output_dir, translation_id, iteration_id))

    summary = download_iteration_artifacts(
        iteration.payload,
        options.output_dir,
        translation_id,
        iteration_id,
        max_retries=config.max_retries,
        base_delay=config.retry_base_delay,
        timeout=config.request_timeout,
    )
    if summary["failed"]:
        _fail(f"{len(summary['failed'])} result file(s) could not be downloaded.")
    if not summary["downloaded"]:
        _fail(f"Iteration {iteration_id} has no result files yet.")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
