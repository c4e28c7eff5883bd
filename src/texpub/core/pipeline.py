"""Pipeline step functions: compile, render, and index orchestration"""

import asyncio
import logging
from pathlib import Path

from sqlmodel import Session

from texpub.core.cache import CacheManager
from texpub.core.compile import compile_source
from texpub.core.convert import Converter
from texpub.core.errors import SourceError
from texpub.core.extract.diagrams import DEFAULT_PUBLIC_PATH
from texpub.core.models import BuildStats, RenderStats
from texpub.core.render import DiagramRenderer, render_bundle_file
from texpub.core.utils.fs import write_text_atomic
from texpub.crud.exercises import index_exercises, load_compiled


logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".tex"


def discover_sources(root: Path) -> list[Path]:
    """Sorted .tex files under root, or [root] if root is itself a .tex file."""
    root = Path(root)
    if root.is_file():
        return [root] if root.suffix == SOURCE_SUFFIX else []
    return sorted(p for p in root.rglob(f"*{SOURCE_SUFFIX}") if p.is_file())


def output_path_for(source: Path, input_root: Path, output_root: Path) -> Path:
    """content/a/b.tex -> cache/a/b.json, mirroring the input tree."""
    rel = Path(source).relative_to(input_root)
    return Path(output_root) / rel.with_suffix(".json")


async def _compile_one(
    source: Path,
    output: Path,
    artifacts_dir: Path,
    cache: CacheManager,
    converter: Converter,
    public_path: str,
    incremental: bool,
    stats: BuildStats,
    ) -> None:
    if incremental and cache.is_up_to_date(source, output):
        logger.debug("Up to date: %s", source)
        stats.skipped += 1
        return
    try:
        result = await compile_source(source, converter, public_path)
        if not result.bundle.is_empty():
            bundle_path = Path(artifacts_dir) / f"{result.document.id}.json"
            write_text_atomic(bundle_path, result.bundle.model_dump_json(indent=2))
        # last, so a file is only marked up to date once every output exists
        await cache.save(output, result.document)
    except (SourceError, OSError) as e:
        logger.error("Failed to compile %s: %s", source, e)
        stats.errors += 1
        return
    logger.info("Compiled %s -> %s", source, output)
    stats.processed += 1


async def run_compile(
    input_path: Path,
    output_dir: Path,
    artifacts_dir: Path,
    cache: CacheManager,
    converter: Converter,
    public_path: str = DEFAULT_PUBLIC_PATH,
    workers: int = 4,
    incremental: bool = True,
    ) -> BuildStats:
    """Compile every source under input_path into output_dir.

    Files compile concurrently, at most `workers` at a time. A file that
    fails is counted in stats.errors and never stops the batch. Build
    totals are written to the cache metadata when the run finishes.
    Raises SourceError if input_path does not exist.
    """
    input_path = Path(input_path)
    if not input_path.exists():
        raise SourceError(input_path, "Input path not found")
    input_root = input_path.parent if input_path.is_file() else input_path
    sources = discover_sources(input_path)
    logger.info("Found %d source file(s) under %s", len(sources), input_path)

    stats = BuildStats()
    semaphore = asyncio.Semaphore(workers)

    async def bounded(source: Path) -> None:
        async with semaphore:
            await _compile_one(
                source,
                output_path_for(source, input_root, output_dir),
                Path(artifacts_dir),
                cache,
                converter,
                public_path,
                incremental,
                stats,
            )

    try:
        await asyncio.gather(*(bounded(s) for s in sources))
    finally:
        await cache.update_metadata(stats)
    return stats


async def run_render(
    artifacts_dir: Path,
    static_dir: Path,
    renderer: DiagramRenderer,
    jobs: int,
    force: bool = False,
    ) -> RenderStats:
    """Render the diagrams of every bundle in artifacts_dir; `jobs` bounds concurrent renders."""
    artifacts_dir = Path(artifacts_dir)
    files = sorted(artifacts_dir.glob("*.json")) if artifacts_dir.exists() else []
    if not files:
        logger.info("No artifact bundles found in %s", artifacts_dir)
        return RenderStats()

    semaphore = asyncio.Semaphore(jobs)
    results = await asyncio.gather(*(
        render_bundle_file(f, renderer, Path(static_dir), semaphore, force) for f in files
    ))
    return sum(results, RenderStats())


def run_index(engine, cache_dir: Path) -> int:
    """Load compiled records from cache_dir into the database. Returns the number indexed."""
    documents = load_compiled(Path(cache_dir))
    with Session(engine) as session:
        count = index_exercises(session, documents)
        session.commit()
    return count
