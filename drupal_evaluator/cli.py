"""
Command-line interface for the Drupal project evaluator.
"""

import asyncio
import csv
import io
import json
from enum import Enum
from pathlib import Path
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.table import Table

from drupal_evaluator.cache import clear_cache, get_cache_stats
from drupal_evaluator.config import (
    ConfigurationError,
    set_cache_dir,
    set_cache_enabled,
    set_cache_ttl,
    set_tools_dir,
    set_verbose,
    set_verify_ssl,
    set_work_dir,
)
from drupal_evaluator.core import (
    FIELD_LABELS,
    EvaluationOptions,
    Evaluator,
    load_manifest,
)
from drupal_evaluator.downloads import DownloadError
from drupal_evaluator.drupal_org.client import ProjectNotFoundError, RegistryError
from drupal_evaluator.drupal_org.releases import NoMatchingReleaseError
from drupal_evaluator.http_client import close_async_http_client

# Labels for fields that only appear on failed batch entries
EXTRA_LABELS = {"error": "Error"}

# Failures that end an evaluation with a message rather than a traceback
EVALUATION_ERRORS = (
    ConfigurationError,
    RegistryError,
    ProjectNotFoundError,
    NoMatchingReleaseError,
    DownloadError,
    ValueError,
)

# --- Typer App ---
app = typer.Typer(help="Evaluate the health of drupal.org projects.")
console = Console()
err_console = Console(stderr=True)


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"
    CSV = "csv"
    YAML = "yaml"


# --- Helper Functions ---


def apply_settings(
    verbose: bool = False,
    insecure: bool = False,
    cache_dir: Path | None = None,
    cache_ttl: int | None = None,
    no_cache: bool = False,
    work_dir: Path | None = None,
    tools_dir: Path | None = None,
) -> None:
    """Push CLI flags into the configuration layer."""
    set_verbose(verbose)
    set_verify_ssl(not insecure)
    if cache_dir:
        set_cache_dir(cache_dir)
    if cache_ttl is not None:
        set_cache_ttl(cache_ttl)
    if no_cache:
        set_cache_enabled(False)
    if work_dir:
        set_work_dir(work_dir)
    if tools_dir:
        set_tools_dir(tools_dir)


def parse_fields(fields: str | None, reports: list[dict[str, Any]]) -> list[str]:
    """
    Resolve the ``--fields`` option to an ordered field list.

    Without a selection every report field is shown, plus ``error`` when a
    batch entry failed.
    """
    known = {**FIELD_LABELS, **EXTRA_LABELS}
    if fields:
        selected = [field.strip() for field in fields.split(",") if field.strip()]
        unknown = [field for field in selected if field not in known]
        if unknown:
            raise typer.BadParameter(
                f"Unknown field(s): {', '.join(unknown)}", param_hint="--fields"
            )
        return selected

    selected = list(FIELD_LABELS)
    if any("error" in report for report in reports):
        selected.append("error")
    return selected


def _label(field: str) -> str:
    return FIELD_LABELS.get(field) or EXTRA_LABELS.get(field, field)


def _display_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


def render_reports(
    reports: list[dict[str, Any]],
    fields: list[str],
    output_format: OutputFormat,
    single: bool = False,
) -> str | Table:
    """
    Render reports in the requested format.

    Args:
        reports: Reports to render.
        fields: Fields to include, in order.
        output_format: Target format.
        single: Render the only report as one record rather than a list.

    Returns:
        Text for json/csv/yaml, or a rich Table.
    """
    rows = [{field: report.get(field) for field in fields} for report in reports]

    if output_format == OutputFormat.JSON:
        return json.dumps(rows[0] if single else rows, indent=2)

    if output_format == OutputFormat.YAML:
        return yaml.safe_dump(
            rows[0] if single else rows, sort_keys=False, allow_unicode=True
        )

    if output_format == OutputFormat.CSV:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow([_label(field) for field in fields])
        for row in rows:
            writer.writerow([_display_value(row[field]) for field in fields])
        return buffer.getvalue()

    if single:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for field in fields:
            table.add_row(_label(field), _display_value(rows[0][field]))
        return table

    table = Table(show_header=True, header_style="bold magenta")
    for field in fields:
        table.add_column(_label(field), overflow="fold")
    for row in rows:
        table.add_row(*(_display_value(row[field]) for field in fields))
    return table


def print_reports(
    reports: list[dict[str, Any]],
    fields: str | None,
    output_format: OutputFormat,
    single: bool = False,
) -> None:
    rendered = render_reports(
        reports, parse_fields(fields, reports), output_format, single
    )
    if isinstance(rendered, Table):
        console.print(rendered)
    else:
        typer.echo(rendered.rstrip("\n"))


async def _run_with_client(coroutine):
    """Await ``coroutine`` and close the shared HTTP client afterwards."""
    try:
        return await coroutine
    finally:
        await close_async_http_client()


def run_evaluation(coroutine) -> Any:
    """Run an evaluation coroutine, turning known failures into exit code 1."""
    try:
        return asyncio.run(_run_with_client(coroutine))
    except EVALUATION_ERRORS as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None


# --- Commands ---

FORMAT_OPTION = typer.Option(
    OutputFormat.TABLE, "--format", "-f", help="Output format."
)
FIELDS_OPTION = typer.Option(
    None,
    "--fields",
    help="Comma-separated list of fields to output (default: all).",
)
SCAN_STABLE_OPTION = typer.Option(
    False,
    "--scan-stable",
    help="Scan the recommended stable release rather than the dev branch.",
)
SKIP_CORE_OPTION = typer.Option(
    False,
    "--skip-core-download",
    help="Do not download Drupal core. Only use this when running repeatedly.",
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Print progress and raw tool errors to stderr.",
)
INSECURE_OPTION = typer.Option(
    False,
    "--insecure",
    help="Disable SSL certificate verification for HTTPS requests.",
)
CACHE_DIR_OPTION = typer.Option(
    None,
    "--cache-dir",
    help="Cache directory path (default: ~/.cache/drupal-evaluator).",
)
CACHE_TTL_OPTION = typer.Option(
    None,
    "--cache-ttl",
    help="Cache TTL in seconds (default: 86400 = 1 day).",
)
NO_CACHE_OPTION = typer.Option(
    False,
    "--no-cache",
    help="Disable the drupal.org response cache.",
)
WORK_DIR_OPTION = typer.Option(
    None,
    "--work-dir",
    help="Directory for Drupal core and downloaded projects.",
)
TOOLS_DIR_OPTION = typer.Option(
    None,
    "--tools-dir",
    help="Directory containing vendor/bin/phpcs and vendor/bin/drupal-check.",
)


@app.command()
def evaluate(
    name: str = typer.Argument(..., help="Project machine name, e.g. 'ctools'."),
    branch: str = typer.Argument(..., help="Branch, e.g. '8.x-3.x-dev'."),
    scan_stable: bool = SCAN_STABLE_OPTION,
    skip_core_download: bool = SKIP_CORE_OPTION,
    fields: str | None = FIELDS_OPTION,
    output_format: OutputFormat = FORMAT_OPTION,
    verbose: bool = VERBOSE_OPTION,
    insecure: bool = INSECURE_OPTION,
    cache_dir: Path | None = CACHE_DIR_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    no_cache: bool = NO_CACHE_OPTION,
    work_dir: Path | None = WORK_DIR_OPTION,
    tools_dir: Path | None = TOOLS_DIR_OPTION,
):
    """Evaluate a single project branch."""
    apply_settings(
        verbose, insecure, cache_dir, cache_ttl, no_cache, work_dir, tools_dir
    )
    options = EvaluationOptions(
        scan_stable=scan_stable, skip_core_download=skip_core_download
    )
    report = run_evaluation(Evaluator().evaluate(name, branch, options))
    print_reports([report], fields, output_format, single=True)


@app.command()
def create_report(
    manifest: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="YAML file listing projects (name, branch and optional options).",
    ),
    scan_stable: bool = SCAN_STABLE_OPTION,
    skip_core_download: bool = SKIP_CORE_OPTION,
    keep_going: bool = typer.Option(
        False,
        "--keep-going",
        help="Record failing projects in the report and continue.",
    ),
    fields: str | None = FIELDS_OPTION,
    output_format: OutputFormat = FORMAT_OPTION,
    verbose: bool = VERBOSE_OPTION,
    insecure: bool = INSECURE_OPTION,
    cache_dir: Path | None = CACHE_DIR_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    no_cache: bool = NO_CACHE_OPTION,
    work_dir: Path | None = WORK_DIR_OPTION,
    tools_dir: Path | None = TOOLS_DIR_OPTION,
):
    """Evaluate every project listed in a manifest file."""
    apply_settings(
        verbose, insecure, cache_dir, cache_ttl, no_cache, work_dir, tools_dir
    )
    try:
        entries = load_manifest(manifest)
    except ConfigurationError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    if not entries:
        err_console.print("[yellow]The manifest lists no projects.[/yellow]")
        raise typer.Exit(code=0)

    defaults = EvaluationOptions(
        scan_stable=scan_stable, skip_core_download=skip_core_download
    )
    reports = run_evaluation(
        Evaluator().evaluate_many(entries, defaults, keep_going=keep_going)
    )
    print_reports(reports, fields, output_format)


@app.command()
def cache_stats(
    cache_dir: Path | None = CACHE_DIR_OPTION,
):
    """Display cache statistics."""
    if cache_dir:
        set_cache_dir(cache_dir)
    stats = get_cache_stats()

    if not stats["exists"]:
        console.print(
            f"[yellow]Cache directory does not exist: {stats['cache_dir']}[/yellow]"
        )
        return

    console.print("[bold cyan]Cache Statistics[/bold cyan]")
    console.print(f"  Directory: {stats['cache_dir']}")
    console.print(f"  Total entries: {stats['total_entries']}")
    console.print(f"  Valid entries: [green]{stats['valid_entries']}[/green]")
    console.print(f"  Expired entries: [yellow]{stats['expired_entries']}[/yellow]")

    if stats["namespaces"]:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Namespace", style="cyan")
        table.add_column("Total", justify="right")
        table.add_column("Valid", justify="right", style="green")
        table.add_column("Expired", justify="right", style="yellow")
        for namespace, ns_stats in stats["namespaces"].items():
            table.add_row(
                namespace,
                str(ns_stats["total"]),
                str(ns_stats["valid"]),
                str(ns_stats["expired"]),
            )
        console.print(table)


@app.command(name="clear-cache")
def clear_cache_command(
    cache_dir: Path | None = CACHE_DIR_OPTION,
):
    """Delete cached drupal.org responses."""
    if cache_dir:
        set_cache_dir(cache_dir)
    cleared = clear_cache()
    console.print(f"[green]Cleared {cleared} cache file(s).[/green]")


if __name__ == "__main__":
    app()
