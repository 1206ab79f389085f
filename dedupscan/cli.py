"""
Command-line interface for dedupscan.

    dedupscan scan [--top-chunks N] [--top-files N] [--web-port PORT] <directory>
    dedupscan inspect <file.fidx|file.didx>
    dedupscan config init|show
"""

import signal
import sys
import threading
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.syntax import Syntax

from . import __version__
from .api import start_api_server
from .config import DEFAULT_CONFIG_FILE, ConfigManager, ScanConfig
from .core.errors import ScanError, is_fatal_error
from .core.index_format import ChunkListIndex, read_index_file
from .core.reporting import Reporter
from .core.scanner import IndexScanner
from .core.session import ScanSession
from .utils.logging_setup import get_logger, log_operation, setup_logging

logger = get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

SCAN_USAGE = "Usage: dedupscan scan [--top-chunks N] [--top-files N] [--web-port PORT] <directory>"


def _wait_for_shutdown() -> None:
    """Block until SIGINT or SIGTERM."""
    stop = threading.Event()

    def _handle(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)
    # wake up periodically so the handler runs on every platform
    while not stop.wait(1.0):
        pass
    click.echo("\nReceived shutdown signal, exiting...")


@click.group(name="dedupscan")
@click.version_option(__version__, prog_name="dedupscan")
def cli():
    """Deduplication statistics for .fidx/.didx backup index files."""
    pass


@cli.command(name="scan")
@click.argument("root", required=False, type=click.Path())
@click.option("--top-chunks", type=int, default=None, help="Show top N most referenced chunks")
@click.option("--top-files", type=int, default=None, help="Show top N files with highest dedup ratio")
@click.option("--web-port", type=int, default=None,
              help="Serve the read-only API on this port (0 disables it)")
@click.option("--web-host", type=str, default=None, help="Interface for the read-only API")
@click.option("--workers", type=int, default=None, help="Number of decoding threads")
@click.option("--queue-size", type=int, default=None, help="Capacity of the path queue")
@click.option("--show-refs", is_flag=True, help="List the referenced digest indices of every file")
@click.option("--histogram", is_flag=True, help="Summarize the digest prefix histograms")
@click.option("--table", "as_table", is_flag=True, help="Render top-N reports as tables")
@click.option("--json", "as_json", is_flag=True, help="Output the report as JSON")
@click.option("--progress/--no-progress", default=None, help="Show per-file progress")
@click.option("--config", "config_path", type=click.Path(), help="Path to configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def scan(ctx, root, top_chunks, top_files, web_port, web_host, workers, queue_size,
         show_refs, histogram, as_table, as_json, progress, config_path, verbose):
    """Scan ROOT for index files and report dedup statistics."""
    if not root:
        click.echo(SCAN_USAGE, err=True)
        ctx.exit(1)

    try:
        config = ConfigManager(config_path).config.replace(
            top_chunks=top_chunks,
            top_files=top_files,
            web_port=web_port,
            web_host=web_host,
            workers=workers,
            queue_size=queue_size,
            show_progress=progress,
        )
    except (ValueError, yaml.YAMLError) as e:
        err_console.print(f"[red]Invalid configuration: {e}[/red]")
        ctx.exit(1)

    setup_logging(level="DEBUG" if verbose else config.log_level, log_dir=config.log_dir)
    log_operation(logger, "scan", root=root, workers=config.workers)

    session = ScanSession()
    if config.web_port:
        start_api_server(session, config.web_host, config.web_port)
        err_console.print(f"Starting webserver on {config.web_host}:{config.web_port} (API at /api/)")

    show_progress = config.show_progress and not as_json
    try:
        if show_progress:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                TextColumn("{task.completed} files"),
                TimeElapsedColumn(),
                console=err_console,
                transient=True,
            ) as bar:
                task = bar.add_task("Scanning", total=None)

                def _on_file_done(path, error):
                    bar.update(task, advance=1, description=Path(path).name)

                result = IndexScanner.from_config(session, config, _on_file_done).scan(root)
        else:
            result = IndexScanner.from_config(session, config).scan(root)
    except ScanError as e:
        if not is_fatal_error(e):
            raise
        err_console.print(f"Scan error: {e}")
        ctx.exit(1)

    reporter = Reporter(session)
    if as_json:
        click.echo(reporter.render_json(result, config.top_chunks, config.top_files, histogram))
    else:
        if as_table:
            reporter.print_tables(console, config.top_chunks, config.top_files)
        else:
            if config.top_chunks > 0:
                click.echo(reporter.render_occurrences(config.top_chunks))
            if config.top_files > 0:
                click.echo(reporter.render_dedup(config.top_files))
        if show_refs:
            click.echo(reporter.render_file_references())
        if histogram:
            click.echo(reporter.render_histogram_summary())
        click.echo(reporter.render_summary(result))

    if config.web_port:
        _wait_for_shutdown()


@cli.command(name="inspect")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def inspect(ctx, path):
    """Print the header and chunk count of a single index file."""
    try:
        index = read_index_file(path)
    except ScanError as e:
        err_console.print(f"[red]Error reading {path}: {e}[/red]")
        ctx.exit(1)

    header = index.header.to_dict()
    click.echo(f"Type: {index.kind}")
    click.echo(f"UUID: {header['uuid']}")
    click.echo(f"Ctime: {header['ctime_iso'] or header['ctime']}")
    if isinstance(index, ChunkListIndex):
        click.echo(f"Size: {index.header.size}")
        click.echo(f"ChunkSize: {index.header.chunk_size}")
    else:
        click.echo(f"Size: {index.archive_size}")
    click.echo(f"Num Chunks: {index.digest_count}")

    digests = list(index.iter_digests())
    if digests:
        click.echo(f"First digest: {digests[0].hex()}")
        click.echo(f"Last digest: {digests[-1].hex()}")


@cli.group(name="config")
def config_group():
    """Manage the dedupscan configuration file."""
    pass


@config_group.command(name="init")
@click.option(
    "--path",
    type=click.Path(),
    default=DEFAULT_CONFIG_FILE,
    help="Path for config file"
)
def config_init(path):
    """Write a configuration file with default values."""
    config_path = Path(path)

    if config_path.exists():
        if not click.confirm(f"Config file {path} already exists. Overwrite?"):
            console.print("[yellow]Aborted[/yellow]")
            return

    ScanConfig().save_to_file(config_path)
    console.print(f"[green]✓ Created config file at {path}[/green]")


@config_group.command(name="show")
@click.option(
    "--path",
    type=click.Path(exists=True),
    help="Path to config file"
)
def config_show(path):
    """Display the effective configuration."""
    manager = ConfigManager(path)
    try:
        config = manager.config
    except (ValueError, yaml.YAMLError) as e:
        err_console.print(f"[red]Invalid configuration: {e}[/red]")
        sys.exit(1)

    yaml_str = yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False)
    console.print(Panel(
        Syntax(yaml_str, "yaml", theme="monokai", line_numbers=True),
        title="[bold cyan]dedupscan configuration[/bold cyan]",
        border_style="cyan"
    ))
    for issue in manager.validate_config(config):
        console.print(f"[yellow]{issue}[/yellow]")


def main():
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nReceived shutdown signal, exiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
