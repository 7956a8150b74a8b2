"""katsite CLI for building a site - Tyro implementation."""

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Annotated

import attrs
import tyro
from rich import print
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from katsite.config import CONFIG_FILENAME, PLUGINS_DIRNAME, RunConfig, discover_config_path
from katsite.errors import KatsiteError
from katsite.scheduler import BuildReport, BuildScheduler


# Subcommand definitions using attrs
@attrs.define
class Build:
    """Build every source document into HTML."""

    jobs: Annotated[int | None, tyro.conf.arg(aliases=["-j"])] = None
    """Worker threads for this run (overrides thread_pool_size)."""


@attrs.define
class Plugins:
    """List configured plugins in invocation order."""


@attrs.define
class Install:
    """Write a default katsite.yaml and an empty plugins directory."""

    force: bool = False
    """Overwrite an existing katsite.yaml."""


Command = (
    Annotated[Build, tyro.conf.subcommand(name="build")]
    | Annotated[Plugins, tyro.conf.subcommand(name="plugins")]
    | Annotated[Install, tyro.conf.subcommand(name="install")]
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with 100-character text width."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)-20s - %(levelname)-8s - %(message).100s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def get_templates_dir() -> Path:
    """Directory holding the bundled configuration template."""
    return Path(__file__).parent / "templates"


def install_config(config_path: Path, force: bool = False) -> None:
    """Install a default katsite.yaml and plugins directory.

    Args:
        config_path: Where to write the configuration file
        force: Whether to overwrite an existing configuration file
    """
    site_dir = config_path.parent
    if config_path.exists() and not force:
        print(f"Configuration {config_path} already exists.")
        print("Use --force to overwrite existing configuration.")
        sys.exit(1)

    site_dir.mkdir(parents=True, exist_ok=True)
    shutil.copy2(get_templates_dir() / CONFIG_FILENAME, config_path)
    print(f"  Wrote {config_path}")

    plugins_dir = site_dir / PLUGINS_DIRNAME
    plugins_dir.mkdir(exist_ok=True)
    print(f"  Created {plugins_dir}")

    print("\nNext steps:")
    print(f"  1. Put plugin executables in {plugins_dir} and list them under plugins:")
    print("  2. Build the site with: katsite build")


def load_config(config_path: Path | None, jobs: int | None = None) -> RunConfig:
    """Load the run configuration, applying command line overrides."""
    path = discover_config_path(config_path)
    overrides = {"thread_pool_size": jobs} if jobs is not None else {}
    return RunConfig.from_yaml(path, **overrides)


def print_report(report: BuildReport, console: Console) -> None:
    """Print the build summary."""
    console.print(
        f"[bold green]Built[/bold green] {report.written} of {report.discovered} file(s)"
        + (f", [yellow]{report.skipped} skipped[/yellow]" if report.skipped else "")
    )
    if report.warnings:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Hook", style="cyan")
        table.add_column("Plugin warnings", style="yellow", justify="right")
        for hook_name, count in sorted(report.warnings.items()):
            table.add_row(hook_name, str(count))
        console.print(table)


def show_plugins(config: RunConfig, console: Console) -> None:
    """Show configured plugins, their paths and whether they can run."""
    specs = config.load_plugins(check=False)
    if not specs:
        console.print("[dim]No plugins configured.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Plugin", style="cyan")
    table.add_column("Path")
    table.add_column("Status")

    for index, spec in enumerate(specs, start=1):
        if not spec.path.is_file():
            status = "[red]missing[/red]"
        elif not os.access(spec.path, os.X_OK):
            status = "[red]not executable[/red]"
        else:
            status = "[green]ok[/green]"
        table.add_row(str(index), spec.name, str(spec.path), status)

    console.print(table)


def main(
    cmd: Annotated[Command, tyro.conf.arg(name="")],
    *,
    config: Annotated[Path | None, tyro.conf.arg(help="Path to katsite.yaml")] = None,
    verbose: Annotated[bool, tyro.conf.arg(aliases=["-v"])] = False,
) -> None:
    """katsite - static site builder with subprocess plugins.

    Renders markdown to HTML and lets external plugin programs transform
    each document through the init, markdown, html and postinit hooks.
    """
    setup_logging(verbose)
    console = Console()
    err_console = Console(stderr=True)

    if isinstance(cmd, Install):
        install_config(discover_config_path(config), force=cmd.force)
        return

    try:
        run_config = load_config(config, jobs=cmd.jobs if isinstance(cmd, Build) else None)

        if isinstance(cmd, Build):
            report = BuildScheduler(run_config).run()
            print_report(report, console)

        elif isinstance(cmd, Plugins):
            show_plugins(run_config, console)

    except KatsiteError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e.category}: {escape(str(e))}")
        sys.exit(int(e.exit_code))


def entry_point() -> None:
    """Entry point for the katsite command."""
    tyro.cli(main)


if __name__ == "__main__":
    entry_point()
