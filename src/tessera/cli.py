"""CLI for the tessera knowledge base.

Convention-based: discovers .tessera/ by walking up from cwd. Day-to-day
item work happens over MCP; the CLI covers setup and maintenance.

Usage:
    tessera init                          # Initialize .tessera/ in cwd
    tessera rebuild                       # Rebuild the item index from markdown files
    tessera index --force                 # (Re)index git-tracked source files
    tessera search-code "parse config"    # Semantic code search
    tessera index-status                  # Code index statistics
"""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path

import click

from tessera import __version__
from tessera.context import ProjectContext
from tessera.core import CONFIG_FILENAME, TESSERA_DIR_NAME, find_tessera_root, init_project
from tessera.errors import IndexerError


def _get_context() -> ProjectContext:
    """Discover .tessera/ and return an opened ProjectContext."""
    try:
        tessera_dir = find_tessera_root()
    except FileNotFoundError:
        click.echo(f"No {TESSERA_DIR_NAME}/ found. Run 'tessera init' first.", err=True)
        sys.exit(1)
    return ProjectContext.open(tessera_dir)


@click.group()
@click.version_option(version=__version__, prog_name="tessera")
def cli() -> None:
    """Tessera: agent-native local knowledge base."""


@cli.command()
@click.option("--name", default=None, help="Project name (default: directory name)")
def init(name: str | None) -> None:
    """Initialize .tessera/ in the current directory."""
    cwd = Path.cwd()
    existed = (cwd / TESSERA_DIR_NAME).exists()
    tessera_dir = init_project(cwd, name=name)
    if existed:
        click.echo(f"{TESSERA_DIR_NAME}/ already exists in {cwd}")
        return
    click.echo(f"Initialized {TESSERA_DIR_NAME}/ in {cwd}")
    click.echo(f"  Config: {tessera_dir / CONFIG_FILENAME}")
    click.echo("\nNext: register 'tessera-mcp' with your MCP client")


@cli.command()
@click.option("--upgrade-legacy", is_flag=True, help="Rewrite files that still use comma-separated lists")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def rebuild(upgrade_legacy: bool, as_json: bool) -> None:
    """Rebuild the item index from the markdown files under .tessera/data/."""
    with _get_context() as ctx:
        report = ctx.db.rebuild_index(upgrade_legacy=upgrade_legacy)
    if as_json:
        click.echo(json_mod.dumps(report, indent=2))
        return
    click.echo(f"Indexed {report['items']} item(s), {report['relations']} relation(s), {report['tags']} tag(s)")
    if report["types_registered"]:
        click.echo(f"Registered types: {', '.join(report['types_registered'])}")
    if report["legacy_files"]:
        click.echo(f"{len(report['legacy_files'])} file(s) still use comma-separated lists (rerun with --upgrade-legacy)")
    for error in report["errors"]:
        click.echo(f"  skipped: {error}", err=True)


@cli.command()
@click.option("--force", is_flag=True, help="Re-index every file, not just changed ones")
@click.option("--exclude", "excludes", multiple=True, help="Extra glob pattern to skip (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def index(force: bool, excludes: tuple[str, ...], as_json: bool) -> None:
    """Index the git-tracked source files of the project."""

    def progress(file: str, current: int, total: int) -> None:
        if not as_json:
            click.echo(f"[{current}/{total}] {file}")

    with _get_context() as ctx:
        try:
            report = ctx.indexer.index_all(progress, force=force, exclude=excludes)
        except IndexerError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    if as_json:
        click.echo(json_mod.dumps(report, indent=2))
        return
    click.echo(
        f"Indexed {report['files_indexed']} file(s) ({report['chunks_indexed']} chunks), "
        f"skipped {report['files_skipped']}, removed {report['files_removed']}"
    )


@cli.command("search-code")
@click.argument("query")
@click.option("--limit", default=10, type=click.IntRange(1, 100), help="Max results")
@click.option("--type", "file_types", multiple=True, help="Restrict to extension, e.g. py (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def search_code(query: str, limit: int, file_types: tuple[str, ...], as_json: bool) -> None:
    """Semantic search over the code index."""
    with _get_context() as ctx:
        try:
            hits = ctx.indexer.search(query, limit=limit, file_types=list(file_types) or None)
        except IndexerError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    if as_json:
        click.echo(json_mod.dumps(hits, indent=2))
        return
    if not hits:
        click.echo("No matches.")
        return
    for hit in hits:
        click.echo(f"{hit['similarity']:.3f}  {hit['file_path']}:{hit['start_line']}-{hit['end_line']}")


@cli.command("index-status")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def index_status(as_json: bool) -> None:
    """Show code index statistics."""
    with _get_context() as ctx:
        stats = ctx.indexer.get_stats()
        indexed = ctx.indexer.has_index()
    if as_json:
        click.echo(json_mod.dumps({"indexed": indexed, **stats}, indent=2))
        return
    if not indexed:
        click.echo("No code index yet. Run 'tessera index'.")
        return
    click.echo(f"Files:   {stats['total_files']}")
    click.echo(f"Chunks:  {stats['total_chunks']}")
    click.echo(f"Size:    {stats['index_size']} bytes")
    click.echo(f"Updated: {stats['last_updated']}")
