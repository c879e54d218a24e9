# capcheck — Capability Guard Checker
# Copyright (C) 2026 capcheck Project Contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""capcheck CLI — Typer entry point.

Commands:
- capcheck scan <path>            — classify every catalog API call site
- capcheck catalog import <xlsx>  — build a catalog from the API spreadsheet export
- capcheck catalog stats          — capability distribution of a catalog
- capcheck catalog lookup <name>  — required capability for one API
- capcheck version
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import typer

from capcheck import __version__
from capcheck.config import ScanConfig, find_config, load_config
from capcheck.models.findings import Report, Severity
from capcheck.models.program import ProgramRepresentation, ProjectLoadError
from capcheck.policy.catalog import (
    CAPABILITY_COLUMN,
    NAME_COLUMN,
    CapabilityCatalog,
    CatalogError,
    default_catalog,
    load_catalog,
    read_spreadsheet_rows,
    rows_to_mapping,
    write_catalog,
)
from capcheck.providers.memory import load_program_json
from capcheck.providers.text_provider import load_project
from capcheck.reporter.console_out import console, print_report, reset_recording, save_text
from capcheck.reporter.json_out import to_canonical_json, write_report
from capcheck.scanner.engine import run_analysis

app = typer.Typer(
    name="capcheck",
    help=(
        "capcheck: checks that platform API calls are guarded by canIUse() "
        "and wrapped in exception handling."
    ),
    add_completion=False,
)
catalog_app = typer.Typer(help="Inspect and build capability catalogs.", add_completion=False)
app.add_typer(catalog_app, name="catalog")

logger = logging.getLogger("capcheck")

EXIT_FATAL = 2


def _configure_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        logging.basicConfig(level=logging.ERROR, force=True)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG, force=True)
    else:
        logging.basicConfig(level=logging.INFO, force=True)


def _load_catalog_or_exit(catalog_path: Optional[Path]) -> CapabilityCatalog:
    try:
        if catalog_path is not None:
            return load_catalog(catalog_path)
        return default_catalog()
    except CatalogError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)


def _resolve_config(
    path: str,
    config_file: Optional[str],
) -> ScanConfig:
    """Config precedence: --config, then <path>/capcheck.yaml, then defaults."""
    if config_file:
        return load_config(config_file)
    project_dir = Path(path)
    found = find_config(project_dir) if project_dir.is_dir() else None
    if found is not None:
        return load_config(found)
    return ScanConfig(project_dir=project_dir)


def _loader(config: ScanConfig) -> Callable[[], ProgramRepresentation]:
    if config.program_dump is not None:
        dump = config.program_dump
        return lambda: load_program_json(dump)
    return lambda: load_project(config.project_dir, config.extensions)


@app.command()
def scan(
    path: str = typer.Argument(".", help="Project directory to analyze (default: current directory)"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="capcheck.yaml or scene config JSON"),
    catalog_file: Optional[str] = typer.Option(None, "--catalog", help="Capability catalog (YAML or JSON)"),
    program_file: Optional[str] = typer.Option(None, "--program", help="Program dump JSON exported by an analysis framework"),
    extensions: Optional[list[str]] = typer.Option(None, "--ext", help="Source extensions to scan (repeatable)"),
    output_json: bool = typer.Option(False, "--json", help="Output the report as JSON to stdout"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write the JSON report to this file"),
    save_text_path: Optional[str] = typer.Option(None, "--save-text", help="Save the console report as plain text"),
    fail_on_severe: bool = typer.Option(False, "--fail-on-severe", help="Exit 1 when any severe finding exists"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress all output except errors"),
) -> None:
    """Analyze a project and classify every catalog API call site."""
    _configure_logging(verbose, quiet or output_json)
    reset_recording()

    report: Report
    config: Optional[ScanConfig] = None
    try:
        config = _resolve_config(path, config_file)
    except ProjectLoadError as e:
        logger.error("Could not load configuration: %s", e)
        report = Report.failed(str(e), project=Path(path).name)

    if config is not None:
        updates: dict = {}
        if catalog_file:
            updates["catalog_path"] = Path(catalog_file)
        if program_file:
            updates["program_dump"] = Path(program_file)
        if extensions:
            updates["extensions"] = list(extensions)
        if updates:
            config = config.model_copy(update=updates)

        catalog = _load_catalog_or_exit(config.catalog_path)
        report = run_analysis(_loader(config), catalog, project=config.display_name)

    if output_json:
        print(to_canonical_json(report), end="")
    elif not quiet:
        source = str(config.program_dump or config.project_dir) if config is not None else ""
        print_report(report, source=source)

    if output:
        write_report(report, Path(output))
    if save_text_path and not output_json:
        save_text(save_text_path)
        if not quiet:
            console.print(f"\n[dim]Report saved to {save_text_path}[/dim]")

    if report.error is not None:
        raise typer.Exit(code=EXIT_FATAL)
    if fail_on_severe and report.by_severity(Severity.SEVERE):
        raise typer.Exit(code=1)


@catalog_app.command("import")
def catalog_import(
    source: str = typer.Argument(..., help="API spreadsheet (.xlsx) or its CSV export"),
    output: str = typer.Option("catalog.yaml", "--output", "-o", help="Catalog file to write"),
    name_column: int = typer.Option(NAME_COLUMN, "--name-column", help="0-based column of the API name"),
    capability_column: int = typer.Option(CAPABILITY_COLUMN, "--capability-column", help="0-based column of the SysCap"),
    top: int = typer.Option(10, "--top", help="How many capabilities to list"),
) -> None:
    """Build a catalog from spreadsheet rows (header row skipped)."""
    try:
        rows = read_spreadsheet_rows(source)
    except CatalogError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    mapping = rows_to_mapping(rows, name_column, capability_column)

    write_catalog(mapping, Path(output))
    console.print(f"Found {len(mapping)} API mappings, wrote {output}")
    _print_counts(CapabilityCatalog(mapping), top)


def _print_counts(catalog: CapabilityCatalog, top: int) -> None:
    console.print(f"\nTop {top} capabilities:")
    for capability, count in catalog.capability_counts()[:top]:
        console.print(f"  {capability}: {count} API(s)", highlight=False)


@catalog_app.command("stats")
def catalog_stats(
    catalog_file: Optional[str] = typer.Option(None, "--catalog", help="Catalog file (default: bundled)"),
    top: int = typer.Option(10, "--top", help="How many capabilities to list"),
) -> None:
    """Show how many APIs each capability covers."""
    catalog = _load_catalog_or_exit(Path(catalog_file) if catalog_file else None)
    console.print(f"{len(catalog)} APIs in catalog")
    _print_counts(catalog, top)


@catalog_app.command("lookup")
def catalog_lookup(
    name: str = typer.Argument(..., help="API name, e.g. getCurrentLocation"),
    catalog_file: Optional[str] = typer.Option(None, "--catalog", help="Catalog file (default: bundled)"),
) -> None:
    """Print the capability an API requires."""
    catalog = _load_catalog_or_exit(Path(catalog_file) if catalog_file else None)
    capability = catalog.lookup(name)
    if capability is None:
        console.print(f"[yellow]{name} is not in the catalog[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"{name} -> {capability}", highlight=False)


@app.command()
def version() -> None:
    """Show the capcheck version."""
    console.print(f"capcheck v{__version__}")


if __name__ == "__main__":
    app()
