"""Command line interface for Panoptes."""

from __future__ import annotations

import difflib
import signal
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from panoptes.cli_support import (
    Runtime,
    build_runtime,
    check_inference,
    count_outcomes,
    load_config,
    open_ledger,
    open_store,
    record_to_payload,
)
from panoptes.config import (
    ConfigError,
    ConfigManager,
    PanoptesConfig,
    merge_overrides,
    resolve_with_precedence,
)
from panoptes.inference import InferenceClient, InferenceUnavailable
from panoptes.logging_setup import configure_logging
from panoptes.state import DuplicateIndex, HistoryEntry, StateError, UndoReport
from panoptes.state.history import dump_entry
from panoptes.watch import FileState, PipelineOutcome, WatchService

console = Console()


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output.
        click.ClickException: For text output.
    """
    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Print output according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: One of `detail`, `summary`, `warning` or `error`.
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """
    if quiet and mode != "error":
        return
    if summary_only and mode not in {"summary", "warning", "error"}:
        return
    console.print(message)


def _format_summary_line(command: str, root: Path | str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands."""
    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {escape(str(root))}: {parts}.[/green]"


def _output_modes(
    ctx: click.Context,
    config: PanoptesConfig,
    *,
    json_output: bool,
    quiet: bool,
    summary_mode: bool,
) -> tuple[bool, bool]:
    """Combine explicit flags with configured defaults.

    Returns:
        tuple[bool, bool]: Effective quiet and summary-only flags.

    Raises:
        click.ClickException: If the combination is contradictory.
    """
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE
    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default

    if json_output:
        if explicit_quiet and quiet_enabled:
            raise click.ClickException("--json cannot be combined with --quiet.")
        if explicit_summary and summary_only:
            raise click.ClickException("--json cannot be combined with --summary.")
        return False, False

    if quiet_enabled and summary_only:
        raise click.ClickException(
            "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
        )
    return quiet_enabled, summary_only


def _prepare(ctx: click.Context, *, json_output: bool) -> PanoptesConfig:
    """Load configuration and install logging for a command."""
    try:
        config = load_config()
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        raise  # pragma: no cover
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    configure_logging(config.logging, state_dir=config.storage.state_path(), verbose=verbose)
    return config


def _describe_outcome(outcome: PipelineOutcome) -> tuple[str, str]:
    """Return the output mode and a rich line for one outcome."""
    name = escape(outcome.path.name)
    result = outcome.result
    detail = ""
    if result is not None:
        detail = f" [dim]({escape(result.analyzer)}, {result.confidence:.2f})[/dim]"
    duplicate = " [magenta]duplicate[/magenta]" if outcome.duplicate_of else ""

    if outcome.state is FileState.RENAMED and outcome.new_path is not None:
        target = escape(outcome.new_path.name)
        return "detail", f"[green]Renamed[/green] {name} -> {target}{detail}{duplicate}"
    if outcome.state is FileState.DECIDED and outcome.new_path is not None:
        target = escape(outcome.new_path.name)
        return "detail", f"[cyan]Would rename[/cyan] {name} -> {target}{detail}{duplicate}"
    if outcome.state is FileState.FAILED:
        return "error", f"[red]Failed[/red] {name}: {escape(outcome.reason or 'unknown error')}"
    reason = escape(outcome.reason or "")
    return "detail", f"[yellow]Skipped[/yellow] {name}: {reason}{detail}{duplicate}"


def _emit_outcome(
    outcome: PipelineOutcome,
    *,
    json_output: bool,
    quiet: bool,
    summary_only: bool,
) -> None:
    if json_output:
        console.print_json(data=outcome.to_payload())
        return
    mode, line = _describe_outcome(outcome)
    _emit_message(line, mode=mode, quiet=quiet, summary_only=summary_only)


def _start_runtime(
    config: PanoptesConfig,
    *,
    dry_run: bool,
    skip_restored: bool,
    skip_health_check: bool,
    json_output: bool,
    quiet: bool,
    summary_only: bool,
) -> Runtime:
    try:
        runtime = build_runtime(config, dry_run=dry_run, skip_restored=skip_restored)
    except StateError as exc:
        _handle_cli_error(str(exc), code="state_error", json_output=json_output, original=exc)
        raise  # pragma: no cover

    if skip_health_check:
        return runtime
    try:
        missing = check_inference(runtime.client, config)
    except InferenceUnavailable as exc:
        runtime.close()
        _handle_cli_error(
            f"{exc}. Is the model server running? Use --skip-health-check to continue "
            "with fallback names.",
            code="inference_unavailable",
            json_output=json_output,
            original=exc,
        )
        raise  # pragma: no cover
    if missing and not json_output:
        _emit_message(
            f"[yellow]Models not installed: {', '.join(missing)}. "
            "Affected files fall back to metadata-based names.[/yellow]",
            mode="warning",
            quiet=quiet,
            summary_only=summary_only,
        )
    return runtime


def _format_history_entry(entry: HistoryEntry) -> tuple[str, ...]:
    return (
        entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
        escape(entry.original_path.name),
        escape(entry.new_path.name),
        entry.category or "",
        "yes" if entry.undone else "",
    )


def _undo_payload(report: UndoReport) -> dict[str, Any]:
    return {
        "dry_run": report.dry_run,
        "reverted": len(report.reverted),
        "skipped": len(report.skipped),
        "entries": [
            {
                "id": outcome.entry.id,
                "status": outcome.status,
                "reason": outcome.reason,
                "original_path": outcome.entry.original_path.as_posix(),
                "new_path": outcome.entry.new_path.as_posix(),
            }
            for outcome in report.outcomes
        ],
        "warnings": list(report.warnings),
    }


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="panoptes")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Panoptes watches folders and gives new files descriptive names.

    Args:
        ctx: Click context receiving shared options.
        verbose: Whether debug logging is enabled.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("paths", nargs=-1, type=click.Path(file_okay=False, path_type=str))
@click.option("-r", "--recursive", is_flag=True, help="Include subdirectories.")
@click.option("--dry-run", is_flag=True, help="Report decisions without renaming anything.")
@click.option("--skip-health-check", is_flag=True, help="Start even if the model server is down.")
@click.option("--json", "json_output", is_flag=True, help="Emit one JSON object per file.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def watch(
    ctx: click.Context,
    paths: tuple[str, ...],
    recursive: bool,
    dry_run: bool,
    skip_health_check: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Watch PATHS (default: configured paths) and rename new files as they arrive.

    Args:
        ctx: Click context for parameter source inspection.
        paths: Directories to monitor.
        recursive: Whether to include subdirectories.
        dry_run: When True, report decisions without renaming.
        skip_health_check: When True, do not require the model server.
        json_output: When True, emit JSON payloads instead of text.
        summary_mode: When True, restrict output to summary/warning lines.
        quiet: When True, suppress non-error output entirely.
    """
    config = _prepare(ctx, json_output=json_output)
    quiet_enabled, summary_only = _output_modes(
        ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
    )
    roots = [Path(path) for path in (paths or tuple(config.watch.paths))]
    runtime = _start_runtime(
        config,
        dry_run=dry_run,
        skip_restored=True,
        skip_health_check=skip_health_check,
        json_output=json_output,
        quiet=quiet_enabled,
        summary_only=summary_only,
    )
    service = WatchService(
        runtime.pipeline,
        config.watch,
        roots=roots,
        recursive=recursive or config.watch.recursive,
        excluded=[config.storage.state_path()],
    )

    processed: list[PipelineOutcome] = []

    def _on_outcome(outcome: PipelineOutcome) -> None:
        processed.append(outcome)
        _emit_outcome(
            outcome, json_output=json_output, quiet=quiet_enabled, summary_only=summary_only
        )

    if not json_output:
        monitored = ", ".join(escape(str(root)) for root in service.roots)
        banner = "[cyan]Watching {}{}. Press Ctrl+C to stop.[/cyan]".format(
            monitored, " (dry run)" if dry_run else ""
        )
        _emit_message(banner, mode="detail", quiet=quiet_enabled, summary_only=summary_only)

    previous: Any = None
    try:
        previous = signal.signal(signal.SIGTERM, lambda *_: service.request_stop())
    except ValueError:
        previous = None

    try:
        service.watch(_on_outcome)
    except KeyboardInterrupt:
        service.stop()
    except RuntimeError as exc:
        _handle_cli_error(
            str(exc), code="watch_runtime_error", json_output=json_output, original=exc
        )
    finally:
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)
        runtime.close()

    if not json_output:
        _emit_message(
            "[yellow]Watch stopped.[/yellow]",
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
        _emit_message(
            _format_summary_line(
                "Watch", ", ".join(map(str, service.roots)), count_outcomes(processed)
            ),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )


@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=str))
@click.option("-r", "--recursive", is_flag=True, help="Include subdirectories.")
@click.option("--dry-run", is_flag=True, help="Report decisions without renaming anything.")
@click.option("--skip-health-check", is_flag=True, help="Run even if the model server is down.")
@click.option("--json", "json_output", is_flag=True, help="Emit a JSON report.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def analyze(
    ctx: click.Context,
    path: str,
    recursive: bool,
    dry_run: bool,
    skip_health_check: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Analyze files already present in PATH once and exit.

    PATH may be a directory or a single file. Existing files are treated as
    complete, so no write-stability wait is performed.
    """
    config = _prepare(ctx, json_output=json_output)
    quiet_enabled, summary_only = _output_modes(
        ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
    )
    root = Path(path).expanduser().resolve()
    runtime = _start_runtime(
        config,
        dry_run=dry_run,
        skip_restored=False,
        skip_health_check=skip_health_check,
        json_output=json_output,
        quiet=quiet_enabled,
        summary_only=summary_only,
    )
    service = WatchService(
        runtime.pipeline,
        config.watch,
        roots=[root],
        recursive=recursive or config.watch.recursive,
        excluded=[config.storage.state_path()],
    )

    def _on_outcome(outcome: PipelineOutcome) -> None:
        if not json_output:
            _emit_outcome(
                outcome, json_output=False, quiet=quiet_enabled, summary_only=summary_only
            )

    try:
        outcomes = service.process_once(_on_outcome)
    finally:
        runtime.close()

    counts = count_outcomes(outcomes)
    if json_output:
        console.print_json(
            data={
                "root": root.as_posix(),
                "dry_run": dry_run,
                "counts": counts,
                "outcomes": [outcome.to_payload() for outcome in outcomes],
            }
        )
        return

    if not outcomes:
        _emit_message(
            "[yellow]No files matched the ignore rules and analyzers.[/yellow]",
            mode="warning",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
        return
    _emit_message(
        _format_summary_line("Analyze", root, counts),
        mode="summary",
        quiet=quiet_enabled,
        summary_only=summary_only,
    )


@cli.command()
@click.option(
    "--count",
    type=int,
    default=1,
    show_default=True,
    help="Number of renames to revert; 0 reverts all.",
)
@click.option("--dry-run", is_flag=True, help="Preview the undo without moving files.")
@click.option("--json", "json_output", is_flag=True, help="Emit a JSON report.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def undo(
    ctx: click.Context,
    count: int,
    dry_run: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Revert the most recent renames recorded in the history ledger.

    Entries whose renamed file is missing, or whose original name has been
    taken since, are reported and left in place for a later attempt.
    """
    config = _prepare(ctx, json_output=json_output)
    quiet_enabled, summary_only = _output_modes(
        ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
    )
    ledger = open_ledger(config)
    try:
        report = ledger.undo(count, dry_run=dry_run)
    except StateError as exc:
        _handle_cli_error(str(exc), code="history_error", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=_undo_payload(report))
        return

    if not report.outcomes:
        _emit_message(
            "[yellow]Nothing to undo.[/yellow]",
            mode="warning",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
        return

    for outcome in report.outcomes:
        entry = outcome.entry
        names = f"{escape(entry.new_path.name)} -> {escape(entry.original_path.name)}"
        if outcome.status == "undone":
            line = f"[green]Restored[/green] {names}"
        elif outcome.status == "would_undo":
            line = f"[cyan]Would restore[/cyan] {names}"
        else:
            line = f"[yellow]Skipped[/yellow] {names}: {escape(outcome.reason or outcome.status)}"
        mode = "detail" if outcome.status in {"undone", "would_undo"} else "warning"
        _emit_message(line, mode=mode, quiet=quiet_enabled, summary_only=summary_only)

    for warning in report.warnings:
        _emit_message(
            f"[yellow]Warning:[/yellow] {escape(warning)}",
            mode="warning",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )

    _emit_message(
        _format_summary_line(
            "Undo",
            ledger.path,
            {
                "reverted": len(report.reverted),
                "skipped": len(report.skipped),
                "dry_run": dry_run,
            },
        ),
        mode="summary",
        quiet=quiet_enabled,
        summary_only=summary_only,
    )


@cli.group()
def history() -> None:
    """Inspect or clear the rename history."""


@history.command("list")
@click.option("--limit", type=int, help="Number of entries to show (newest first).")
@click.option("--json", "json_output", is_flag=True, help="Emit entries as JSON.")
@click.pass_context
def history_list(ctx: click.Context, limit: Optional[int], json_output: bool) -> None:
    """Show recent renames, newest first."""
    config = _prepare(ctx, json_output=json_output)
    ledger = open_ledger(config)
    entries = ledger.recent(limit or config.cli.history_limit)

    if json_output:
        console.print_json(data={"entries": [dump_entry(entry) for entry in entries]})
        return
    if not entries:
        console.print("[yellow]No renames recorded yet.[/yellow]")
        return

    table = Table(title=f"Rename history ({ledger.path})")
    for column in ("When", "Original", "Renamed to", "Category", "Undone"):
        table.add_column(column)
    for entry in entries:
        table.add_row(*_format_history_entry(entry))
    console.print(table)


@history.command("clear")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def history_clear(ctx: click.Context, yes: bool) -> None:
    """Erase the rename history. Renames recorded so far can no longer be undone."""
    config = _prepare(ctx, json_output=False)
    ledger = open_ledger(config)
    if not yes:
        click.confirm(
            f"Erase {ledger.path}? Past renames will no longer be undoable", abort=True
        )
    try:
        ledger.clear()
    except OSError as exc:
        _handle_cli_error(str(exc), code="history_error", json_output=False, original=exc)
    console.print("[green]History cleared.[/green]")


@cli.command()
@click.option("--limit", type=int, default=20, show_default=True, help="Number of files to list.")
@click.option("--json", "json_output", is_flag=True, help="Emit records as JSON.")
@click.pass_context
def review(ctx: click.Context, limit: int, json_output: bool) -> None:
    """List files whose suggestions were below the rename threshold."""
    config = _prepare(ctx, json_output=json_output)
    try:
        with open_store(config) as store:
            records = store.review_queue(config.rules.rename_threshold, limit)
    except StateError as exc:
        _handle_cli_error(str(exc), code="store_error", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data={"records": [record_to_payload(record) for record in records]})
        return
    if not records:
        console.print("[green]Nothing waiting for review.[/green]")
        return

    table = Table(title="Low-confidence suggestions")
    for column in ("File", "Suggestion", "Confidence", "Analyzer", "Category"):
        table.add_column(column)
    for record in records:
        table.add_row(
            escape(record.original_path.name),
            escape(record.suggested_name),
            f"{record.confidence:.2f}",
            record.analyzer,
            record.category or "",
        )
    console.print(table)


def _missing_record(record_id: str, *, json_output: bool) -> None:
    _handle_cli_error(
        f"No stored file with id {record_id}.", code="record_not_found", json_output=json_output
    )


@cli.group()
def files() -> None:
    """Inspect, tag or forget analyzed files in the metadata store."""


@files.command("list")
@click.option("--limit", type=int, default=20, show_default=True, help="Number of files to list.")
@click.option("--json", "json_output", is_flag=True, help="Emit records as JSON.")
@click.pass_context
def files_list(ctx: click.Context, limit: int, json_output: bool) -> None:
    """List the most recently analyzed files, newest first."""
    config = _prepare(ctx, json_output=json_output)
    try:
        with open_store(config) as store:
            records = store.recent_records(limit)
    except StateError as exc:
        _handle_cli_error(str(exc), code="store_error", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data={"records": [record_to_payload(record) for record in records]})
        return
    if not records:
        console.print("[yellow]No files analyzed yet.[/yellow]")
        return

    table = Table(title="Analyzed files")
    for column in ("Id", "File", "Renamed to", "Confidence", "Tags"):
        table.add_column(column)
    for record in records:
        table.add_row(
            record.id,
            escape(record.original_path.name),
            escape(record.new_path.name) if record.new_path else "",
            f"{record.confidence:.2f}",
            escape(", ".join(record.tags)),
        )
    console.print(table)


@files.command("show")
@click.argument("record_id")
@click.option("--json", "json_output", is_flag=True, help="Emit the record as JSON.")
@click.pass_context
def files_show(ctx: click.Context, record_id: str, json_output: bool) -> None:
    """Show everything stored about one file."""
    config = _prepare(ctx, json_output=json_output)
    try:
        with open_store(config) as store:
            record = store.get_record(record_id)
            if record is None:
                _missing_record(record_id, json_output=json_output)
                return
    except StateError as exc:
        _handle_cli_error(str(exc), code="store_error", json_output=json_output, original=exc)
        return

    payload = record_to_payload(record)
    if json_output:
        console.print_json(data=payload)
        return
    console.print(Syntax(yaml.safe_dump(payload, sort_keys=False), "yaml"))


@files.command("tag")
@click.argument("record_id")
@click.argument("tags", nargs=-1, required=True)
@click.option("--remove", is_flag=True, help="Remove the tags instead of adding them.")
@click.pass_context
def files_tag(ctx: click.Context, record_id: str, tags: tuple[str, ...], remove: bool) -> None:
    """Add TAGS to a stored file, or remove them with --remove."""
    config = _prepare(ctx, json_output=False)
    try:
        with open_store(config) as store:
            if store.get_record(record_id) is None:
                _missing_record(record_id, json_output=False)
                return
            for tag in tags:
                if remove:
                    store.remove_tag(record_id, tag)
                else:
                    store.add_tag(record_id, tag)
            current = store.tags_for(record_id)
    except StateError as exc:
        _handle_cli_error(str(exc), code="store_error", json_output=False, original=exc)
        return
    console.print(f"[green]Tags for {record_id}:[/green] {escape(', '.join(current)) or '-'}")


@files.command("forget")
@click.argument("record_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def files_forget(ctx: click.Context, record_id: str, yes: bool) -> None:
    """Delete a stored file and its duplicate-index entry. The file itself is untouched."""
    config = _prepare(ctx, json_output=False)
    try:
        with open_store(config) as store:
            record = store.get_record(record_id)
            if record is None:
                _missing_record(record_id, json_output=False)
                return
            if not yes:
                click.confirm(
                    f"Forget {record.original_path.name} ({record_id})?", abort=True
                )
            DuplicateIndex(store).forget(record_id)
    except StateError as exc:
        _handle_cli_error(str(exc), code="store_error", json_output=False, original=exc)
        return
    console.print(f"[green]Forgot {escape(record.original_path.name)}.[/green]")


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit statistics as JSON.")
@click.pass_context
def stats(ctx: click.Context, json_output: bool) -> None:
    """Summarize what Panoptes has processed so far."""
    config = _prepare(ctx, json_output=json_output)
    try:
        with open_store(config) as store:
            summary = store.stats()
    except StateError as exc:
        _handle_cli_error(str(exc), code="store_error", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=summary.model_dump(mode="json"))
        return

    table = Table(title="Panoptes statistics", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Files analyzed", str(summary.total_files))
    table.add_row("Renamed", str(summary.renamed_files))
    table.add_row("Awaiting review", str(summary.pending_review))
    table.add_row("Duplicate hashes", str(summary.duplicate_hashes))
    table.add_row("Tags", str(summary.tags))
    for category, total in summary.categories.items():
        table.add_row(f"Category: {escape(category)}", str(total))
    console.print(table)


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit model status as JSON.")
@click.pass_context
def models(ctx: click.Context, json_output: bool) -> None:
    """Check the model server and the configured models."""
    config = _prepare(ctx, json_output=json_output)
    with InferenceClient(config.inference) as client:
        try:
            installed = client.health_check()
        except InferenceUnavailable as exc:
            _handle_cli_error(
                str(exc), code="inference_unavailable", json_output=json_output, original=exc
            )
            return
        settings = config.inference
        configured = {
            "vision": settings.vision_model,
            "text": settings.text_model,
            "code": settings.code_model,
        }
        status = {
            role: {"model": model, "installed": client.model_available(model, installed)}
            for role, model in configured.items()
        }
        base_url = client.base_url

    if json_output:
        console.print_json(data={"url": base_url, "installed": installed, "configured": status})
        return

    table = Table(title=f"Models on {escape(base_url)}")
    table.add_column("Role")
    table.add_column("Model")
    table.add_column("Installed")
    for role, item in status.items():
        mark = "[green]yes[/green]" if item["installed"] else "[red]no[/red]"
        table.add_row(role, escape(str(item["model"])), mark)
    console.print(table)


@cli.group()
def config() -> None:
    """Manage Panoptes configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Persist VALUE (a YAML literal) at the dotted KEY, e.g. `rules.rename_threshold 0.7`."""
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must be a dotted path such as 'rules.rename_threshold'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        file_data = merge_overrides(file_data, {".".join(segments): parsed_value})
        resolve_with_precedence(defaults=PanoptesConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()
    # The header carries a timestamp that always changes.
    diff = [
        line
        for line in difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
        if "# Last updated:" not in line
    ]
    changed = [line for line in diff if line[:1] in "+-" and line[:3] not in ("+++", "---")]
    if not changed:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


@config.command("path")
def config_path() -> None:
    """Print the location of the configuration file."""
    click.echo(str(ConfigManager().config_path))


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
