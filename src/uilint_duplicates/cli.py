"""CLI entry point for uilint-duplicates.

Commands:
    uilint-duplicates index     — Create or update the project's index
    uilint-duplicates find      — Report groups of duplicated code
    uilint-duplicates search    — Find code similar to a text query
    uilint-duplicates similar   — Find code similar to FILE:LINE
    uilint-duplicates stats     — Show index statistics
"""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.logging import RichHandler

from uilint_duplicates import __version__

if TYPE_CHECKING:
    from uilint_duplicates.detection import DuplicateGroup
    from uilint_duplicates.index.indexer import ProgressCallback
    from uilint_duplicates.query import ProjectIndex, SearchResult

console = Console()

_path_option = click.option(
    "-p",
    "--path",
    "project_path",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project root (default: current directory)",
)
_output_option = click.option(
    "-o",
    "--output",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _open(
    ctx: click.Context, project_path: Path, progress: ProgressCallback | None = None
) -> ProjectIndex:
    """Open a project index with settings from the CLI config file."""
    from uilint_duplicates.config import load_settings
    from uilint_duplicates.query import open_project

    settings = load_settings(ctx.obj.get("config_path"))
    return open_project(project_path, settings, progress=progress)


def _fail(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")
    sys.exit(1)


def _group_to_dict(group: DuplicateGroup) -> dict[str, Any]:
    return {
        "kind": str(group.kind),
        "avgSimilarity": group.avg_similarity,
        "members": [
            {
                "id": m.id,
                "filePath": m.metadata.file_path,
                "startLine": m.metadata.start_line,
                "endLine": m.metadata.end_line,
                "name": m.metadata.name,
                "kind": str(m.metadata.kind),
                "score": m.score,
            }
            for m in group.members
        ],
    }


def _print_results(results: list[SearchResult], output: str) -> None:
    if output == "json":
        click.echo(json.dumps([dataclasses.asdict(r) for r in results], indent=2))
        return
    if not results:
        console.print("No similar code found.")
        return
    for r in results:
        name = r.name or "anonymous"
        console.print(
            f"  [cyan]{r.score:.0%}[/cyan] {r.file_path}:{r.start_line}-{r.end_line}"
            f"  [bold]{name}[/bold] ({r.kind})"
        )


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", type=click.Path(exists=True), help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """uilint-duplicates — semantic duplicate detection for UI code."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None


@cli.command()
@_path_option
@click.option("--force", is_flag=True, help="Discard the existing index and rebuild")
@click.pass_context
def index(ctx: click.Context, project_path: Path, force: bool) -> None:
    """Create or incrementally update the index."""
    from uilint_duplicates.errors import DuplicateIndexError

    status = console.status("Indexing...")

    def _progress(message: str, current: int, total: int) -> None:
        suffix = f" ({current}/{total})" if total else ""
        status.update(f"{message}{suffix}")

    with _open(ctx, project_path, progress=_progress) as project:
        try:
            with status:
                result = project.index_directory(force=force)
        except DuplicateIndexError as e:
            stats = project.indexer.get_stats()
            _fail(f"{e} ({stats.total_files} files, {stats.total_chunks} chunks indexed so far)")
            return

    console.print(
        f"[green]✓[/green] Indexed in {result.duration:.2f}s:"
        f" {result.added} added, {result.modified} modified, {result.deleted} deleted"
        f" ({result.total_chunks} chunks)"
    )
    if result.failed:
        console.print(f"[yellow]![/yellow] {len(result.failed)} file(s) failed:")
        for path in result.failed:
            console.print(f"  {path}")


@cli.command()
@_path_option
@_output_option
@click.option("-t", "--threshold", type=float, default=None, help="Similarity threshold (0-1)")
@click.option("--min-group-size", type=int, default=None, help="Minimum group size")
@click.option("--min-lines", type=int, default=None, help="Ignore chunks shorter than this")
@click.option("-k", "--kind", default=None, help="Only group chunks of this kind")
@click.option("--exclude", multiple=True, help="Skip chunks whose path contains this text")
@click.pass_context
def find(
    ctx: click.Context,
    project_path: Path,
    output: str,
    threshold: float | None,
    min_group_size: int | None,
    min_lines: int | None,
    kind: str | None,
    exclude: tuple[str, ...],
) -> None:
    """Find groups of semantically duplicated code."""
    from uilint_duplicates.chunking import ChunkKind
    from uilint_duplicates.errors import DuplicateIndexError

    try:
        chunk_kind = ChunkKind(kind) if kind else None
    except ValueError:
        _fail(f"Unknown kind '{kind}'. Choose from: {', '.join(k.value for k in ChunkKind)}")
        return

    with _open(ctx, project_path) as project:
        try:
            groups = project.find_duplicates(
                threshold=threshold,
                min_group_size=min_group_size,
                kind=chunk_kind,
                min_lines=min_lines,
                exclude_paths=exclude,
            )
        except DuplicateIndexError as e:
            _fail(str(e))
            return

    if output == "json":
        click.echo(json.dumps([_group_to_dict(g) for g in groups], indent=2))
        return

    if not groups:
        console.print("[green]✓[/green] No duplicates found.")
        return

    for i, group in enumerate(groups, start=1):
        console.print(
            f"\n[bold]Group {i}[/bold] — {group.size} {group.kind} chunks,"
            f" avg similarity {group.avg_similarity:.0%}"
        )
        for m in group.members:
            meta = m.metadata
            marker = "[magenta]ref[/magenta]" if m is group.reference else f"{m.score:.0%}"
            console.print(
                f"  {marker} {meta.file_path}:{meta.start_line}-{meta.end_line}"
                f"  [bold]{meta.name or 'anonymous'}[/bold]"
            )
    console.print(f"\n[bold]Summary:[/bold] {len(groups)} duplicate groups")


@cli.command()
@click.argument("query")
@_path_option
@_output_option
@click.option("-n", "--top", type=int, default=None, help="Number of results")
@click.option("-t", "--threshold", type=float, default=None, help="Minimum similarity (0-1)")
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    project_path: Path,
    output: str,
    top: int | None,
    threshold: float | None,
) -> None:
    """Search for code similar to QUERY."""
    from uilint_duplicates.errors import DuplicateIndexError

    with _open(ctx, project_path) as project:
        try:
            results = project.search_similar(query, top=top, threshold=threshold)
        except DuplicateIndexError as e:
            _fail(str(e))
            return
    _print_results(results, output)


@cli.command()
@click.argument("location")
@_path_option
@_output_option
@click.option("-n", "--top", type=int, default=None, help="Number of results")
@click.option("-t", "--threshold", type=float, default=None, help="Minimum similarity (0-1)")
@click.pass_context
def similar(
    ctx: click.Context,
    location: str,
    project_path: Path,
    output: str,
    top: int | None,
    threshold: float | None,
) -> None:
    """Find code similar to the chunk at LOCATION (FILE:LINE)."""
    from uilint_duplicates.errors import DuplicateIndexError

    file_part, sep, line_part = location.rpartition(":")
    if not sep or not line_part.isdigit():
        _fail(f"Expected FILE:LINE, got '{location}'")
        return

    with _open(ctx, project_path) as project:
        try:
            results = project.find_similar_at_location(
                file_part, int(line_part), top=top, threshold=threshold
            )
        except DuplicateIndexError as e:
            _fail(str(e))
            return
    _print_results(results, output)


@cli.command()
@_path_option
@_output_option
@click.pass_context
def stats(ctx: click.Context, project_path: Path, output: str) -> None:
    """Show index statistics."""
    with _open(ctx, project_path) as project:
        if not project.has_index():
            _fail(f"No index found at {project.root}. Run 'uilint-duplicates index' first.")
            return
        s = project.get_index_stats()

    if output == "json":
        click.echo(json.dumps(dataclasses.asdict(s), indent=2, default=str))
        return

    console.print("\n[bold]Duplicate Index Statistics[/bold]\n")
    console.print(f"[bold]Project:[/bold] {project.root}")
    console.print(f"  Files: {s.total_files}")
    console.print(f"  Chunks: {s.total_chunks}")
    console.print(f"  Dimension: {s.dimension or '-'}")
    console.print(f"  Vector size: {s.index_size_bytes / 1024:.1f} KB")
    console.print(f"  Model: {s.embedding_model or '-'}")
    if s.updated_at is not None:
        console.print(f"  Last updated: {s.updated_at:%Y-%m-%d %H:%M:%S %Z}")


if __name__ == "__main__":
    cli()
