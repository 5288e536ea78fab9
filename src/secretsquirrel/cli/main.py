"""CLI entry point for Secret Squirrel."""

import click
import sys
from pathlib import Path
from rich.console import Console
from rich.markup import escape

from .output import (
    console,
    display_banner,
    print_config,
    print_config_summary,
    print_results,
    print_summary,
    result_json,
    write_text_report,
)
from .progress import RichProgressSink
from ..core.progress import LoggingProgressSink
from ..core.scanner import default_concurrency, scan as run_scan
from ..utils.config import Config, init_config
from ..utils.env_loader import load_env
from ..utils.exceptions import SecretSquirrelError, ConfigError
from ..utils.logger import get_logger, setup_logging
from ..version import VERSION

logger = get_logger(__name__)

SEVERITY_CHOICE = click.Choice(["low", "medium", "high", "critical"], case_sensitive=False)

EXIT_CLEAN = 0
EXIT_MATCHES = 1
EXIT_ERROR = 3
EXIT_INTERRUPTED = 130


@click.group()
@click.version_option(version=VERSION, prog_name="Secret Squirrel")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Override default config file location")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--log-file", type=click.Path(), help="Write logs to file")
@click.pass_context
def cli(ctx, config_path, verbose, log_file):
    """
    Secret Squirrel - Find potential secrets in your code

    \b
    Examples:
        # Scan the current directory
        ssq scan

        # Only report HIGH and CRITICAL patterns
        ssq scan ./src --severity high

        # JSON report
        ssq scan . --output json --output-file results.json

        # Show the effective configuration
        ssq config show
    """
    load_env()

    try:
        setup_logging(
            level="DEBUG" if verbose else "WARNING",
            log_file=Path(log_file) if log_file else None,
            verbose=verbose,
        )
    except OSError as e:
        console.print(f"[red]Logging setup failed:[/red] {escape(str(e))}")
        sys.exit(EXIT_ERROR)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["verbose"] = verbose


def _load_config(ctx, severity=None) -> Config:
    """Load base + local config, exiting with an error code on failure."""
    try:
        cfg = init_config(ctx.obj.get("config_path"), severity)
        logger.debug("Configuration loaded successfully")
        return cfg
    except ConfigError as e:
        console.print(f"[red]Configuration Error:[/red]\n{escape(str(e))}", highlight=False)
        sys.exit(EXIT_ERROR)


@cli.command()
@click.argument("path", type=click.Path(path_type=Path), default=".")
@click.option("--severity", "-s", type=SEVERITY_CHOICE, help="Only show patterns of this severity or higher")
@click.option("--output", "-o", type=click.Choice(["console", "json"], case_sensitive=False), default="console", help="Output format")
@click.option("--output-file", "-f", type=click.Path(dir_okay=False), help="Write output to file")
@click.option("--concurrency", "-j", type=click.IntRange(min=1), help="Files scanned in parallel")
@click.option("--no-progress", is_flag=True, help="Disable the live progress display")
@click.pass_context
def scan(ctx, path, severity, output, output_file, concurrency, no_progress):
    """
    Scan a directory tree (or a single file) for potential secrets.

    \b
    Exit Codes:
        0 - No potential secrets found
        1 - Potential secrets found
        3 - Configuration or scan error
        130 - Interrupted
    """
    verbose = ctx.obj.get("verbose", False)
    cfg = _load_config(ctx, severity)
    output = output.lower()
    limit = concurrency or default_concurrency()

    if output == "console":
        display_banner(VERSION, path)

    try:
        live = output == "console" and not no_progress and console.is_terminal
        if live:
            with RichProgressSink(Console(stderr=True)) as sink:
                result = run_scan(path, cfg, concurrency_limit=limit, progress=sink)
        else:
            result = run_scan(path, cfg, concurrency_limit=limit, progress=LoggingProgressSink())

        if output == "json":
            report = result_json(result)
            if output_file:
                Path(output_file).write_text(report, encoding="utf-8")
                console.print(f"[green]Results written to {output_file}[/green]", highlight=False)
            else:
                click.echo(report)
        else:
            print_results(result)
            print_summary(result)
            if output_file:
                write_text_report(result, Path(output_file))
                console.print(f"[green]Report written to {output_file}[/green]", highlight=False)

    except SecretSquirrelError as e:
        console.print(f"\n[bold red]Error:[/bold red]\n{escape(str(e))}", highlight=False)
        logger.error(f"Scan failed: {e.message}", exc_info=verbose)
        sys.exit(EXIT_ERROR)
    except KeyboardInterrupt:
        console.print("\n[yellow]Scan interrupted[/yellow]")
        sys.exit(EXIT_INTERRUPTED)

    if result.cancelled:
        sys.exit(EXIT_INTERRUPTED)
    sys.exit(EXIT_MATCHES if result.total_matches else EXIT_CLEAN)


@cli.group()
def config():
    """Manage Secret Squirrel configuration."""
    pass


@config.command()
@click.option("--severity", "-s", type=SEVERITY_CHOICE, help="Only show patterns of this severity or higher")
@click.pass_context
def show(ctx, severity):
    """Show the effective configuration."""
    cfg = _load_config(ctx, severity)
    print_config(cfg)


@config.command()
@click.option("--overwrite", is_flag=True, help="Overwrite existing config")
def init(overwrite):
    """Install the default patterns as the user configuration."""
    try:
        config_file = Config.create_user_config(overwrite=overwrite)
        console.print(f"\n[green]Created configuration file:[/green] {config_file}", highlight=False)
        console.print("\n[dim]Edit this file to customize your patterns.[/dim]\n")
    except ConfigError as e:
        console.print(f"\n[red]Error:[/red] {escape(str(e))}\n", highlight=False)
        sys.exit(EXIT_ERROR)


@config.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def validate(config_file):
    """Check that a config file parses and all of its regexes compile."""
    console.print(f"\n[bold]Validating:[/bold] {config_file}\n", highlight=False)

    try:
        cfg = Config.from_file(Path(config_file))
        cfg.validate()
    except SecretSquirrelError as e:
        console.print(f"[red]Validation failed:[/red]\n{escape(str(e))}\n", highlight=False)
        sys.exit(EXIT_ERROR)

    console.print("[green]Configuration is valid![/green]\n")
    print_config_summary(cfg)


@cli.command()
def version():
    """Show version information."""
    console.print(f"\n[bold cyan]Secret Squirrel[/bold cyan] v[yellow]{VERSION}[/yellow]\n")


if __name__ == "__main__":
    cli(obj={})
