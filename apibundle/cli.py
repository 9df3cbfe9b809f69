"""Typer-based CLI for bundling OpenAPI documents and locating audit findings."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config
from .config_manager import get_setting, load_config, save_config
from .errors import BundleError
from .models import LocatedIssue
from .orchestrator import AuditOrchestrator
from .sarif import produce_sarif

console = Console()

app = typer.Typer(
    help="📦 apibundle: bundle multi-file OpenAPI documents and trace findings back to source.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_SEVERITY_STYLE = {
    "CRITICAL": "bold red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "cyan",
}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"apibundle v{__version__}")
        raise typer.Exit()


def _configure_logging(level: Optional[str]) -> None:
    level_name = (level or get_setting("logging", "level") or config.DEFAULT_LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level: DEBUG, INFO, WARNING, ERROR.",
    ),
):
    """apibundle: bundle split OpenAPI files and map audit findings to the files you edit."""
    _configure_logging(log_level)


def _fail(exc: Exception) -> None:
    typer.echo(f"❌ {exc}", err=True)
    raise typer.Exit(code=1)


def _display_path(path: Path) -> str:
    try:
        return os.path.relpath(path)
    except ValueError:
        return str(path)


@app.command("bundle")
def bundle(
    root_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Root OpenAPI document."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the bundled JSON here."),
    provenance: Optional[Path] = typer.Option(
        None, "--provenance", "-p", help="Write the provenance map (JSON) here."
    ),
    indent: Optional[int] = typer.Option(None, "--indent", min=0, help="JSON indentation."),
):
    """Merge a multi-file OpenAPI document into a single JSON document."""
    if indent is None:
        indent = get_setting("bundle", "indent")

    with AuditOrchestrator() as orchestrator:
        try:
            result = orchestrator.bundle(root_file)
        except BundleError as exc:
            _fail(exc)

    text = result.to_json(indent=indent)
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text + "\n", encoding="utf-8")
        typer.echo(f"Bundled '{root_file}' into {output}")

    if provenance is not None:
        provenance.write_text(json.dumps(result.provenance.to_dict(), indent=2) + "\n", encoding="utf-8")
        typer.echo(f"Provenance: {len(result.provenance)} relocated node(s) written to {provenance}")


@app.command("discover")
def discover(
    directory: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Directory to scan."),
):
    """List the OpenAPI root documents found under a directory."""
    with AuditOrchestrator() as orchestrator:
        try:
            targets = orchestrator.discover(directory)
        except BundleError as exc:
            _fail(exc)

    if not targets:
        typer.echo("No OpenAPI files found.")
        raise typer.Exit(code=0)

    table = Table(title=f"OpenAPI files in {directory}")
    table.add_column("File", style="bold")
    table.add_column("Name")
    table.add_column("API id", style="dim")
    for target in targets:
        table.add_row(target.filename, target.name, target.api_id or "-")
    console.print(table)


def _render_table(located: List[LocatedIssue]) -> None:
    if not located:
        typer.echo("✅ No issues reported.")
        return

    table = Table(title=f"{len(located)} issue(s)")
    table.add_column("Severity")
    table.add_column("Score", justify="right")
    table.add_column("Location")
    table.add_column("Issue")
    for item in located:
        style = _SEVERITY_STYLE.get(item.severity, "")
        where = (
            f"{_display_path(item.location.file)}:{item.location.line}"
            if item.location else "[dim]unknown[/dim]"
        )
        table.add_row(
            f"[{style}]{item.severity}[/{style}]" if style else item.severity,
            item.display_score,
            where,
            f"{item.id}\n{item.issue.description}",
        )
    console.print(table)

    missing = sum(1 for item in located if not item.is_located)
    if missing:
        typer.echo(f"⚠️  {missing} issue(s) could not be traced to a source line")


@app.command("locate")
def locate(
    root_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Root OpenAPI document."),
    report_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Analysis report (JSON)."),
    fmt: str = typer.Option("table", "--format", "-f", help="Output format: table, json or sarif."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write json/sarif output here."),
):
    """Map the findings of an analysis report back to the original files and lines."""
    fmt = fmt.lower()
    if fmt not in {"table", "json", "sarif"}:
        raise typer.BadParameter("Format must be one of: table, json, sarif")

    try:
        report = json.loads(report_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Report is not valid JSON: {exc}")

    with AuditOrchestrator() as orchestrator:
        try:
            located = orchestrator.locate(root_file, report)
        except (BundleError, ValueError) as exc:
            _fail(exc)

    if fmt == "table":
        _render_table(located)
        return

    if fmt == "json":
        payload = [item.to_dict() for item in located]
    else:
        payload = produce_sarif({root_file.resolve(): located})
    text = json.dumps(payload, indent=2)

    if output is None:
        typer.echo(text)
    else:
        output.write_text(text + "\n", encoding="utf-8")
        typer.echo(f"Wrote {len(located)} issue(s) to {output}")


@app.command("set-config")
def set_config(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Default logging level."),
    indent: Optional[int] = typer.Option(None, "--indent", min=0, help="Default JSON indentation for bundles."),
):
    """Update the user settings file, or show it when no option is given."""
    settings = load_config()
    if log_level is not None:
        level_name = log_level.upper()
        if not isinstance(logging.getLevelName(level_name), int):
            raise typer.BadParameter(f"Unknown logging level: {log_level}")
        settings["logging"]["level"] = level_name
    if indent is not None:
        settings["bundle"]["indent"] = indent

    if log_level is not None or indent is not None:
        path = save_config(settings)
        typer.echo(f"✅ Settings saved to {path}")

    for section, values in settings.items():
        for key, value in values.items():
            typer.echo(f"  {section}.{key} = {value}")


if __name__ == "__main__":
    app()
