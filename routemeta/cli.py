"""routemeta CLI — generate API metadata and route files from decorated controllers."""

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from routemeta import __version__
from routemeta.config import DEFAULT_CONFIG_FILE, RouteMetaConfig, load_config
from routemeta.exceptions import RouteMetaError

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log every controller, method and type")
def main(verbose: bool):
    """routemeta — compile decorated controller classes into API metadata.

    Reads controllers marked with @Route, validates their decorators and
    type hints, and writes the resulting metadata or routing glue.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(config_path: str, entry_file: str | None) -> RouteMetaConfig:
    if entry_file and not Path(config_path).exists():
        return RouteMetaConfig(entry_file=entry_file)
    config = load_config(config_path)
    if entry_file:
        config.entry_file = entry_file
    return config


def _generate(config: RouteMetaConfig):
    from routemeta.metadata.metadata_generator import MetadataGenerator

    generator = MetadataGenerator(
        entry_file=config.entry_file,
        controller_path_globs=config.controller_path_globs,
        root=config.root,
    )
    return generator.generate()


# ── Metadata ─────────────────────────────────────────────────────────


@main.command()
@click.option("--config", "-c", "config_path", default=DEFAULT_CONFIG_FILE, help="Config file")
@click.option("--entry-file", "-e", default=None, help="Controller file (overrides the config)")
@click.option("--output", "-o", default=None, help="Write metadata JSON to this file")
def metadata(config_path: str, entry_file: str | None, output: str | None):
    """Generate metadata and print a summary or write it as JSON."""
    try:
        config = _load(config_path, entry_file)
        result = _generate(config)
    except RouteMetaError as e:
        console.print(f"[red]Metadata generation failed:[/] {escape(str(e))}")
        sys.exit(1)

    output = output or config.metadata_output
    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        Path(output).write_text(json.dumps(result.to_dict(), indent=2, default=str))
        console.print(f"[green]Metadata written to:[/] {output}")
        return

    if not result.controllers:
        console.print("[yellow]No controllers found.[/]")
        return

    table = Table(title=f"Controllers ({len(result.controllers)} found)")
    table.add_column("Controller", style="cyan")
    table.add_column("Verb", style="green")
    table.add_column("Path")
    table.add_column("Handler")
    table.add_column("Security")

    for controller in result.controllers:
        for method in controller.methods:
            full_path = "/".join(p.strip("/") for p in (controller.path, method.path) if p.strip("/"))
            schemes = ", ".join(name for requirement in method.security for name in requirement)
            table.add_row(controller.name, method.method.upper(), f"/{full_path}", method.name, schemes)

    console.print(table)
    console.print(f"  {len(result.reference_type_map)} reference type(s) resolved")


# ── Routes ───────────────────────────────────────────────────────────


@main.command()
@click.option("--config", "-c", "config_path", default=DEFAULT_CONFIG_FILE, help="Config file")
@click.option("--entry-file", "-e", default=None, help="Controller file (overrides the config)")
def routes(config_path: str, entry_file: str | None):
    """Generate the routes file for the configured controllers."""
    from routemeta.routes.route_generator import RouteGenerator

    try:
        config = _load(config_path, entry_file)
        result = _generate(config)
        output_path = RouteGenerator(result, config.routes_config()).generate_routes()
    except RouteMetaError as e:
        console.print(f"[red]Route generation failed:[/] {escape(str(e))}")
        sys.exit(1)

    console.print(f"[green]Routes written to:[/] {output_path}")


if __name__ == "__main__":
    main()
