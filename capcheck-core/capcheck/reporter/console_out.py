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

"""Rich terminal output for analysis reports.

Sections, in order: header, APIs found, severe findings, advisory
findings, compliant usage (grouped by file and API), summary counts,
recommendations. The console records everything it prints so the same
transcript can be saved as plain text.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from capcheck.models.findings import Finding, Report, Severity


def _make_console() -> Console:
    """Console with soft wrap that records output for --save-text."""
    return Console(soft_wrap=True, record=True)


console = _make_console()

ICON_PASS = "[bold green][OK][/bold green]"
ICON_WARN = "[bold yellow][WARN][/bold yellow]"
ICON_DANGER = "[bold red][ALERT][/bold red]"


def _where(finding: Finding) -> str:
    return f"{finding.location}: {finding.api_name}() in method {finding.method_name}"


def print_header(project: str, source: str = "") -> None:
    header = Text()
    header.append("CAPABILITY GUARD ANALYSIS\n", style="bold cyan")
    header.append(f"  Project: {project or '-'}\n", style="white")
    if source:
        header.append(f"  Source:  {source}", style="dim")
    console.print(
        Panel(
            header,
            border_style="white",
            title="[bold]capcheck[/bold]",
            title_align="left",
            expand=True,
            safe_box=True,
        )
    )


def print_api_list(report: Report) -> None:
    names = report.api_names
    console.print(f"Found {len(names)} distinct API(s) to check:")
    for name in names:
        console.print(f"  - {name}")
    console.print()


def print_severe(findings: list[Finding]) -> None:
    if not findings:
        return
    console.print("[bold red]Severe - calls may fail on devices without the capability:[/bold red]")
    for finding in findings:
        console.print(f"  {ICON_DANGER} {_where(finding)}")
        console.print(
            f'      missing canIUse("{finding.required_capability}") and try/catch',
            style="dim",
        )
    console.print()


def print_advisory(findings: list[Finding]) -> None:
    if not findings:
        return
    console.print("[bold yellow]Missing canIUse check:[/bold yellow]")
    for finding in findings:
        console.print(f"  {ICON_WARN} {_where(finding)}")
        console.print(f'      add canIUse("{finding.required_capability}")', style="dim")
    console.print()


def print_compliant(findings: list[Finding]) -> None:
    if not findings:
        return
    console.print("[bold green]Correctly guarded:[/bold green]")
    grouped: dict[tuple[str, str], Finding] = {}
    for finding in findings:
        grouped.setdefault((finding.resolved_file or "unknown", finding.api_name), finding)
    for (file_name, api_name), finding in grouped.items():
        console.print(f"  {ICON_PASS} {file_name}: {api_name}() in method {finding.method_name}")
    console.print()


def print_summary(report: Report) -> None:
    summary = report.summary
    table = Table(title="Summary", show_header=False, safe_box=True)
    table.add_column("metric")
    table.add_column("count", justify="right")
    table.add_row("Distinct APIs", str(summary.distinct_apis))
    table.add_row("API call findings", str(summary.total_findings))
    table.add_row("With any canIUse", str(summary.findings_with_any_guard))
    table.add_row("With correct canIUse", str(summary.findings_with_correct_guard))
    table.add_row("With try/catch", str(summary.findings_with_exception_handling))
    console.print(table)


def print_recommendations(recommendations: list[str]) -> None:
    if not recommendations:
        return
    console.print("\n[bold]Recommendations:[/bold]")
    for rec in recommendations:
        console.print(f"  - {rec}", highlight=False)


def print_report(report: Report, source: str = "") -> None:
    """Print the full report."""
    print_header(report.project, source)

    if report.error is not None:
        console.print(f"[red]Analysis failed: {report.error}[/red]")
    elif not report.findings:
        console.print(f"{ICON_PASS} No API calls requiring capability checks found")
    else:
        print_api_list(report)
        print_severe(report.by_severity(Severity.SEVERE))
        print_advisory(report.by_severity(Severity.ADVISORY))
        print_compliant(report.by_severity(Severity.COMPLIANT))

    print_summary(report)
    print_recommendations(report.recommendations)


def reset_recording() -> None:
    """Drop anything recorded by an earlier report in this process."""
    console.export_text(clear=True)


def save_text(path: str) -> None:
    """Save everything printed so far as plain text."""
    console.save_text(path, clear=False, styles=False)
