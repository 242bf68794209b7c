"""Rich console output for dos-scanner."""

import os
from typing import Any, List, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from .models import ScanSummary, Severity, TextLocation

IS_GITHUB_ACTIONS = os.getenv("GITHUB_ACTIONS") == "true"

custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "highlight": "magenta",
    }
)

# Force colors ON in GitHub Actions (it supports ANSI colors but Rich may incorrectly disable them)
console = Console(
    theme=custom_theme,
    force_terminal=IS_GITHUB_ACTIONS or None,
    color_system="auto",
)

_SEVERITY_STYLES = {
    Severity.INFO: "info",
    Severity.WARNING: "warning",
    Severity.ERROR: "error",
}


def print_summary_table(
    title: str,
    data: List[Tuple[str, Any]],
    show_if_empty: bool = False,
) -> None:
    """
    Print a two-column summary table.

    Args:
        title: Table title
        data: List of (label, value) tuples
        show_if_empty: Whether to show the table if all values are 0/empty
    """
    if not show_if_empty:
        data = [(label, value) for label, value in data if value]

    if not data:
        return

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    for label, value in data:
        table.add_row(label, str(value))

    console.print(table)


def _format_location(location: TextLocation) -> str:
    return f"{escape(location.path)}:{location.start_line}-{location.end_line}"


def print_scan_summary(summary: ScanSummary, title: Optional[str] = None) -> None:
    """
    Print license findings, copyright findings and issues of a scan.

    Args:
        summary: Summary to print
        title: Optional heading, e.g. the scanned purls
    """
    if title:
        console.rule(f"[highlight]{title}[/highlight]")

    duration = (summary.end_time - summary.start_time).total_seconds()
    print_summary_table(
        "Scan Summary",
        [
            ("License findings", len(summary.license_findings)),
            ("Copyright findings", len(summary.copyright_findings)),
            ("Issues", len(summary.issues)),
            ("Duration (s)", f"{duration:.1f}"),
        ],
        show_if_empty=True,
    )

    if summary.license_findings:
        table = Table(title="Licenses", show_header=True, header_style="bold")
        table.add_column("License", style="cyan")
        table.add_column("Location")
        table.add_column("Score", justify="right")
        for finding in summary.sorted_license_findings():
            score = "" if finding.score is None else f"{finding.score:.2f}"
            table.add_row(escape(finding.license), _format_location(finding.location), score)
        console.print(table)

    if summary.copyright_findings:
        table = Table(title="Copyrights", show_header=True, header_style="bold")
        table.add_column("Statement")
        table.add_column("Location")
        for copyright_finding in summary.sorted_copyright_findings():
            table.add_row(escape(copyright_finding.statement), _format_location(copyright_finding.location))
        console.print(table)

    for issue in summary.issues:
        style = _SEVERITY_STYLES[issue.severity]
        console.print(f"[{style}]{issue.severity.value}[/{style}] {escape(issue.source)}: {escape(issue.message)}")


def print_final_failure(message: str) -> None:
    """Print final failure message."""
    console.print()
    console.rule("[bold red]FAILED[/bold red]", style="red")
    console.print(f"[bold red]{escape(message)}[/bold red]", justify="center")
    console.print()
