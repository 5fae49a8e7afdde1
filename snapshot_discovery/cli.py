"""CLI entry point for snapshot discovery."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from snapshot_discovery.errors import SnapshotError
from snapshot_discovery.models.config import CaptureConfig
from snapshot_discovery.orchestrator import Orchestrator

console = Console()

DEFAULT_CONFIG_PATH = "capture-config.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    # the package logger runs at debug for the log store, so filter at the handler
    handler = RichHandler(console=console, rich_tracebacks=True, level=level)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
    )


def _load_config(path: str) -> CaptureConfig:
    if Path(path).exists():
        return CaptureConfig.load(path)
    if path != DEFAULT_CONFIG_PATH:
        raise click.BadParameter(f"Config file not found: {path}", param_hint="--config")
    return CaptureConfig()


def _build_options(
    options_file: str | None,
    url: str | None,
    sitemap: str | None,
    base_url: str | None,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
) -> dict:
    options: dict = {}
    if options_file:
        with open(options_file) as f:
            loaded = json.load(f)
        # a bare list is shorthand for a snapshot list
        options = {"snapshots": loaded} if isinstance(loaded, list) else loaded
    if url:
        options["url"] = url
    if sitemap:
        options["sitemap"] = sitemap
    if base_url:
        options["base_url"] = base_url
    if include:
        options["include"] = list(include)
    if exclude:
        options["exclude"] = list(exclude)
    return options


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Resolve snapshot options and discover the assets each page needs."""
    setup_logging(verbose)


@cli.command()
def init() -> None:
    """Create a default configuration file."""
    config_path = Path(DEFAULT_CONFIG_PATH)
    if config_path.exists():
        if not click.confirm(f"{DEFAULT_CONFIG_PATH} already exists. Overwrite?"):
            return

    CaptureConfig().save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nYou can now customize this file and run:")
    console.print("  [blue]snapshot-discovery snapshot --url https://example.com[/blue]")


@cli.command()
@click.argument("options_file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--url", "-u", help="Snapshot a single URL")
@click.option("--sitemap", "-s", help="Snapshot every page listed in a sitemap")
@click.option("--base-url", help="Base URL relative snapshot URLs resolve against")
@click.option("--include", multiple=True, help="Only snapshot names matching this pattern")
@click.option("--exclude", multiple=True, help="Skip snapshot names matching this pattern")
@click.option("--dry-run", "-d", is_flag=True, help="List snapshots without discovering assets")
@click.option("--output-dir", "-o", default=None, help="Where manifests and resources are written")
@click.option("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Config file path")
def snapshot(
    options_file: str | None,
    url: str | None,
    sitemap: str | None,
    base_url: str | None,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    dry_run: bool,
    output_dir: str | None,
    config: str,
) -> None:
    """Gather snapshots from OPTIONS_FILE or flags and discover their assets."""
    cfg = _load_config(config)
    options = _build_options(options_file, url, sitemap, base_url, include, exclude)
    if not options:
        console.print("[red]Provide an options file, --url, or --sitemap.[/red]")
        sys.exit(1)

    orchestrator = Orchestrator(cfg, dry_run=dry_run, output_dir=output_dir)
    try:
        results = orchestrator.run(options)
    except SnapshotError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    title = "Snapshots Found" if dry_run else "Snapshots Discovered"
    table = Table(title=title)
    table.add_column("Name", style="bold")
    table.add_column("URL")
    table.add_column("Widths")
    table.add_column("Resources", justify="right")
    for entry in results["captured"]:
        table.add_row(
            entry["name"],
            entry["url"],
            ", ".join(f"{w}px" for w in entry["widths"]),
            str(len(entry["resources"])),
        )
    console.print(table)

    console.print(f"Build: [bold]{results['build_id']}[/bold] ({results['duration']}s)")
    if results["output_dir"]:
        console.print(f"  Output: [blue]{results['output_dir']}[/blue]")
