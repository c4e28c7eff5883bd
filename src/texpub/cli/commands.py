"""CLI command implementations"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Annotated, Optional

import typer
from sqlmodel import Session

from texpub.config import Settings, load_config
from texpub.core.cache import CacheManager
from texpub.core.convert import select_converter
from texpub.core.errors import SourceError, ToolchainUnavailable
from texpub.core.models import BuildStats, RenderStats
from texpub.core.pipeline import run_compile, run_index, run_render
from texpub.core.render import DiagramRenderer, LatexSvgRenderer, UnavailableRenderer, probe_toolchain
from texpub.crud.database import init_db, make_engine
from texpub.crud.exercises import list_chapters, search_exercises


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling and configure logging from it."""
    try:
        settings = load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")
    return settings


def _renderer(settings: Settings) -> tuple[DiagramRenderer, bool]:
    """Probe the TeX toolchain once. Returns (renderer, available)."""
    try:
        toolchain = probe_toolchain()
    except ToolchainUnavailable as e:
        typer.echo(f"Error: {e}", err=True)
        typer.echo("  Diagrams will receive error placeholders.", err=True)
        return UnavailableRenderer(str(e)), False
    typer.echo(f"Using pdflatex + {toolchain.converter}")
    return LatexSvgRenderer(toolchain, timeout=settings.render_timeout), True


def _compile(settings: Settings, path: str, incremental: bool) -> BuildStats:
    cache = CacheManager(Path(settings.cache_dir))
    converter = select_converter(settings.converter, timeout=settings.convert_timeout)
    try:
        return asyncio.run(run_compile(
            Path(path),
            Path(settings.cache_dir),
            Path(settings.artifacts_dir),
            cache,
            converter,
            public_path=settings.assets_public_path,
            workers=settings.workers,
            incremental=incremental,
        ))
    except SourceError as e:
        _fail(str(e))
    except OSError as e:
        _fail("Compilation failed", e)


def _echo_build(stats: BuildStats) -> None:
    typer.echo(
        f"Compile complete - "
        f"{stats.processed} compiled, "
        f"{stats.skipped} up to date, "
        f"{stats.errors} error(s)"
    )


def _render(settings: Settings, force: bool) -> tuple[RenderStats, bool]:
    renderer, available = _renderer(settings)
    jobs = settings.render_jobs or os.cpu_count() or 1
    try:
        stats = asyncio.run(run_render(
            Path(settings.artifacts_dir), Path(settings.static_dir), renderer, jobs, force,
        ))
    except OSError as e:
        _fail("Render failed", e)
    return stats, available


def _echo_render(stats: RenderStats) -> None:
    typer.echo(
        f"Render complete - "
        f"{stats.files} bundle(s), "
        f"{stats.compiled} rendered, "
        f"{stats.skipped} skipped, "
        f"{stats.errors} error(s)"
    )


def _index(settings: Settings) -> int:
    cache_dir = Path(settings.cache_dir)
    if not cache_dir.exists():
        _fail(f"Cache directory not found: {cache_dir}")
    engine = make_engine(settings.db_url)
    init_db(engine)
    try:
        return run_index(engine, cache_dir)
    except Exception as e:
        _fail("Index failed", e)


def compile_cmd(
    path: Annotated[Optional[str], typer.Argument(help="Source file or directory (default: input_dir)")] = None,
    out: Annotated[Optional[str], typer.Option("--out-dir", help="Compiled JSON output directory")] = None,
    artifacts: Annotated[Optional[str], typer.Option("--artifacts-dir", help="Artifact bundle directory")] = None,
    converter: Annotated[Optional[str], typer.Option("--converter", help="auto, pandoc or fallback")] = None,
    workers: Annotated[Optional[int], typer.Option("--workers", help="Files compiled concurrently")] = None,
    full: Annotated[bool, typer.Option("--full", help="Recompile every file, ignoring the cache")] = False,
    ):
    """Compile .tex exercises into JSON records and artifact bundles."""
    settings = _settings(overrides={
        "input_dir": path, "cache_dir": out, "artifacts_dir": artifacts,
        "converter": converter, "workers": workers,
    })
    stats = _compile(settings, settings.input_dir, incremental=not full)
    _echo_build(stats)
    if stats.errors:
        raise typer.Exit(1)


def render_cmd(
    artifacts: Annotated[Optional[str], typer.Option("--artifacts-dir", help="Artifact bundle directory")] = None,
    static: Annotated[Optional[str], typer.Option("--static-dir", help="Web root for SVG files")] = None,
    jobs: Annotated[Optional[int], typer.Option("--jobs", help="Concurrent renders; 0 = cpu count")] = None,
    force: Annotated[bool, typer.Option("--force", help="Re-render diagrams that already have an SVG")] = False,
    ):
    """Render TikZ diagrams of every artifact bundle to SVG."""
    settings = _settings(overrides={"artifacts_dir": artifacts, "static_dir": static, "render_jobs": jobs})
    stats, available = _render(settings, force)
    _echo_render(stats)
    if not available or stats.errors:
        raise typer.Exit(1)


def index_cmd(
    cache: Annotated[Optional[str], typer.Option("--cache-dir", help="Compiled JSON directory")] = None,
    db: Annotated[Optional[str], typer.Option("--db-url", help="Database URL")] = None,
    ):
    """Load compiled records into the search database."""
    settings = _settings(overrides={"cache_dir": cache, "db_url": db})
    count = _index(settings)
    typer.echo(f"Indexed {count} exercise(s) into {settings.db_url}")


def build_cmd(
    path: Annotated[Optional[str], typer.Argument(help="Source file or directory (default: input_dir)")] = None,
    full: Annotated[bool, typer.Option("--full", help="Recompile and re-render everything")] = False,
    skip_render: Annotated[bool, typer.Option("--skip-render", help="Do not render diagrams")] = False,
    ):
    """Run the full pipeline: compile -> render -> index."""
    settings = _settings(overrides={"input_dir": path})

    # --- compile ---
    build = _compile(settings, settings.input_dir, incremental=not full)
    _echo_build(build)

    # --- render ---
    available = True
    render = RenderStats()
    if not skip_render:
        render, available = _render(settings, force=full)
        _echo_render(render)

    # --- index ---
    count = _index(settings)
    typer.echo(f"Indexed {count} exercise(s) into {settings.db_url}")

    if build.errors or render.errors or not available:
        raise typer.Exit(1)


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search text; empty lists the newest exercises")] = "",
    chapter: Annotated[Optional[str], typer.Option("--chapter", help="Filter by chapter")] = None,
    subchapter: Annotated[Optional[str], typer.Option("--subchapter", help="Filter by subchapter")] = None,
    difficulty: Annotated[Optional[int], typer.Option("--difficulty", help="Filter by difficulty")] = None,
    author: Annotated[Optional[str], typer.Option("--author", help="Filter by author")] = None,
    limit: Annotated[int, typer.Option("--limit", help="Max results")] = 20,
    offset: Annotated[int, typer.Option("--offset", help="Results to skip")] = 0,
    chapters: Annotated[bool, typer.Option("--chapters", help="List chapters with exercise counts")] = False,
    ):
    """Search indexed exercises."""
    settings = _settings()
    engine = make_engine(settings.db_url)
    init_db(engine)
    with Session(engine) as session:
        if chapters:
            for name, count in list_chapters(session):
                typer.echo(f"{name} ({count})")
            return
        results = search_exercises(
            session, query, chapter=chapter, subchapter=subchapter,
            difficulty=difficulty, author=author, limit=limit, offset=offset,
        )
        if not results:
            typer.echo("No exercises found.")
            raise typer.Exit(1)
        for ex in results:
            level = f" [{ex.difficulty}]" if ex.difficulty is not None else ""
            typer.echo(f"{ex.uuid}  {ex.title}  ({ex.chapter}){level}")


def cache_cmd(
    cleanup: Annotated[bool, typer.Option("--cleanup", help="Drop entries whose record is gone")] = False,
    validate: Annotated[bool, typer.Option("--validate", help="Check records against cache metadata")] = False,
    ):
    """Show cache statistics, or clean up / validate the cache."""
    settings = _settings()
    cache = CacheManager(Path(settings.cache_dir))
    if cleanup:
        removed = asyncio.run(cache.cleanup())
        typer.echo(f"Removed {removed} orphaned entr{'y' if removed == 1 else 'ies'}")
    if validate:
        report = cache.validate_integrity()
        for issue in report["issues"]:
            typer.echo(f"  {issue}")
        typer.echo(f"Cache {'valid' if report['valid'] else 'invalid'} ({report['total_files']} file(s))")
        if not report["valid"]:
            raise typer.Exit(1)
    if not (cleanup or validate):
        stats = cache.get_stats()
        typer.echo(f"Files: {stats['total_files']}")
        typer.echo(f"Last update: {stats['last_update'] or 'never'}")
        typer.echo(f"Version: {stats['version']}")
        if stats["build_stats"]:
            b = stats["build_stats"]
            typer.echo(f"Last build: {b['processed']} compiled, {b['skipped']} skipped, {b['errors']} error(s)")
