#!/usr/bin/env python3
"""
meshrun - CLI interface.
"""

import sys
from typing import Dict
import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from . import __version__
from .config import Config, UNLIMITED
from .connection import ExecutionResult
from .errors import MeshrunError
from .logger import StructuredLogger
from .output import OutputMode
from .pool import ConnectionPool
from .report import export_results

# Author: Vamsi


@click.group()
@click.version_option(version=__version__)
def cli():
    """meshrun - run shell commands on many SSH hosts in parallel."""
    pass


@cli.command()
@click.option('--config', '-c', default='meshrun.yaml', help='Configuration file path')
@click.option('--hosts', '-h', help='Comma-separated list of user@host (overrides config)')
@click.option('--concurrency', '-n', type=int, help='Number of parallel workers (overrides config)')
@click.option('--unlimited', is_flag=True, help='One worker per host')
@click.option('--serial', is_flag=True, help='Run on one host at a time, in list order')
@click.option('--batch-size', '-b', type=int, help='Run in waves of at most this many hosts')
@click.option('--output', 'output_mode', type=click.Choice([mode.value for mode in OutputMode]),
              help='Output handling (overrides config)')
@click.option('--continue-on-failure', is_flag=True, help='Report failing hosts instead of aborting')
@click.option('--key-file', '-k', help='SSH private key file (overrides config)')
@click.option('--password', '-p', help='SSH password (overrides config)')
@click.option('--port', type=int, help='SSH port (overrides config)')
@click.option('--timeout', type=int, help='SSH connection timeout (overrides config)')
@click.option('--export', 'export_file', help='Write results to this file')
@click.option('--format', 'export_format', default='json', type=click.Choice(['json', 'csv']),
              help='Export format')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.argument('command')
def run(config, hosts, concurrency, unlimited, serial, batch_size, output_mode, continue_on_failure,
        key_file, password, port, timeout, export_file, export_format, verbose, command):
    """Run a command on every host."""
    console = Console()

    try:
        try:
            cfg = Config.load(config)
        except FileNotFoundError:
            if config != 'meshrun.yaml':
                console.print(f"[yellow]Warning: Config file {config} not found, using defaults[/yellow]")
            cfg = Config()

        cfg.merge_cli_args(
            hosts=hosts, concurrency=concurrency, unlimited=unlimited, serial=serial,
            batch_size=batch_size, output=output_mode, continue_on_failure=continue_on_failure,
            key_file=key_file, password=password, port=port, timeout=timeout
        )

        if not cfg.hosts:
            console.print("[red]Error: No hosts specified[/red]")
            sys.exit(1)

        logger = StructuredLogger(
            level="debug" if verbose else cfg.log_level,
            log_file=cfg.log_file,
            log_format=cfg.log_format,
            enable_console=verbose,
            enable_file=bool(cfg.log_file)
        )

        with ConnectionPool(cfg.hosts, config=cfg, logger=logger) as pool:
            results = pool.execute(lambda connection: connection.run(command))

        if OutputMode.parse(cfg.output) is OutputMode.CAPTURE:
            display_results(console, results, command)

        if export_file:
            export_results(results.values(), export_file, export_format)
            console.print(f"[green]Results exported to:[/green] {export_file}")

        display_summary(console, results)

        if not all(result.success for result in results.values()):
            sys.exit(1)

    except MeshrunError as e:
        console.print(f"[red]Error:[/red] {e}")
        if verbose:
            import traceback
            console.print(traceback.format_exc())
        sys.exit(1)


@cli.command()
@click.option('--config', '-c', default='meshrun.yaml', help='Configuration file path')
def config_validate(config):
    """Validate configuration file."""
    console = Console()

    try:
        cfg = Config.load(config)
    except (FileNotFoundError, MeshrunError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]Configuration file {config} is valid[/green]")

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    if cfg.serial:
        mode = "serial"
    elif cfg.batch_size:
        mode = f"batches of {cfg.batch_size}"
    else:
        mode = "parallel"

    table.add_row("Hosts", str(len(cfg.hosts)))
    table.add_row("Mode", mode)
    table.add_row("Concurrency", "unlimited" if cfg.concurrency == UNLIMITED else str(cfg.concurrency))
    table.add_row("Output", cfg.output)
    table.add_row("Continue On Failure", "Yes" if cfg.continue_on_failure else "No")
    table.add_row("Port", str(cfg.ssh.port))
    table.add_row("Timeout", f"{cfg.ssh.timeout}s")
    table.add_row("Log Level", cfg.log_level)
    table.add_row("Log Format", cfg.log_format)

    console.print(table)


def display_results(console, results: Dict[str, ExecutionResult], command):
    """Display captured command results."""
    table = Table(title=f"Command Results: {command}")
    table.add_column("Host", style="cyan")
    table.add_column("Exit", style="magenta")
    table.add_column("Duration", style="yellow")
    table.add_column("Status", style="green")
    table.add_column("Output", style="white")

    for host_string, result in results.items():
        status = "✅ Success" if result.success else "❌ Failed"
        exit_text = str(result.exit_code) if result.exit_signal is None else f"SIG{result.exit_signal}"
        table.add_row(
            host_string,
            exit_text,
            f"{result.duration:.2f}s",
            status,
            (result.output + result.error).rstrip("\n")
        )

    console.print(table)


def display_summary(console, results: Dict[str, ExecutionResult]):
    """Display command execution summary."""
    total = len(results)
    successful = sum(1 for r in results.values() if r.success)
    failed = total - successful
    avg_duration = sum(r.duration for r in results.values()) / total if total > 0 else 0

    summary = Panel(
        f"Total: {total} | "
        f"Successful: {successful} | "
        f"Failed: {failed} | "
        f"Success Rate: {(successful / total * 100) if total else 0:.1f}% | "
        f"Avg Duration: {avg_duration:.2f}s",
        title="Summary"
    )
    console.print(summary)
