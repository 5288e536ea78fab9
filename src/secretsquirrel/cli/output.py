"""Result and configuration rendering for the CLI."""

import json
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from ..core.models import ScanResult
from ..core.rules import Severity
from ..utils.config import Config

console = Console()

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "dim",
}


def severity_style(severity: Severity) -> str:
    return SEVERITY_STYLES.get(severity, "dim")


def display_banner(version: str, target: Path, out: Optional[Console] = None):
    out = out or console
    out.print(Panel.fit(
        f"[bold cyan]Secret Squirrel v{version}[/bold cyan]\nScanning path: [yellow]{escape(str(target))}[/yellow]",
        border_style="cyan",
    ))


def print_results(result: ScanResult, out: Optional[Console] = None):
    """Print every match, grouped by file and ordered by line."""
    out = out or console

    if not result.matches:
        out.print("\n[green]No matches found.[/green]")
        return

    out.print("\n[bold red]Matches found:[/bold red]")
    out.print("[red]══════════════[/red]")

    for match in result.sorted_matches():
        style = severity_style(match.severity)
        out.print(
            f"\n[bold]Pattern:[/bold] {escape(match.rule_name)} ([{style}]{match.severity.name}[/{style}])",
            highlight=False,
        )
        if match.description:
            out.print(f"[bold]Description:[/bold] {escape(match.description)}", highlight=False)
        out.print(
            f"[bold]Location:[/bold] [cyan]{escape(match.file_path)}[/cyan]:[bold cyan]{match.line_number}[/bold cyan]",
            highlight=False,
            soft_wrap=True,
        )
        out.print(f"[bold]Match:[/bold] [dim]{escape(match.line_text.strip())}[/dim]", highlight=False, soft_wrap=True)

    out.print(f"\n[bold red]WARNING:[/bold red] {result.total_matches} potential secrets found")


def print_summary(result: ScanResult, out: Optional[Console] = None):
    """Print file counts and the per-severity breakdown."""
    out = out or console

    out.print(f"\n🔍 {result.files_scanned} files scanned")
    if result.files_with_matches:
        out.print(f"[bold red]🚨 {len(result.files_with_matches)} files contained potential secrets[/bold red]")

        table = Table(title="Matches by Severity")
        table.add_column("Severity", style="bold")
        table.add_column("Count", justify="right")
        for name, count in result.matches_by_severity.items():
            if count > 0:
                style = severity_style(Severity[name])
                table.add_row(f"[{style}]{name}[/{style}]", f"[{style}]{count}[/{style}]")
        out.print(table)

    if result.cancelled:
        out.print("[yellow]Scan interrupted: results are partial[/yellow]")

    out.print(f"[dim]Duration: {result.duration_seconds:.2f}s[/dim]")


def result_json(result: ScanResult) -> str:
    return json.dumps(result.to_dict(), indent=2)


def write_text_report(result: ScanResult, output_file: Path):
    """Write the console report, without colors, to a file."""
    with open(output_file, "w", encoding="utf-8") as f:
        file_console = Console(file=f, no_color=True, width=120, emoji=False)
        print_results(result, file_console)
        print_summary(result, file_console)


def print_config(config: Config, out: Optional[Console] = None):
    """Print the effective configuration as highlighted YAML."""
    out = out or console
    out.print("[bold cyan]Current Configuration:[/bold cyan]")
    out.print("[cyan]======================[/cyan]")
    out.print()
    out.print(Syntax(config.to_yaml(), "yaml", theme="monokai", word_wrap=True))


def print_config_summary(config: Config, out: Optional[Console] = None):
    out = out or console
    rules = config.rule_set()

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="yellow")
    table.add_row("Active patterns", str(len(rules)))
    table.add_row("Ignore patterns", str(len(config.ignore_patterns or [])))
    table.add_row("Ignore paths", str(len(config.ignore_paths or [])))
    severity = config.effective_severity()
    table.add_row("Severity", severity.name if severity is not None else Severity.LOW.name)
    out.print(table)

