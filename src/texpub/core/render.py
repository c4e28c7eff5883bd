"""TikZ to SVG rendering: toolchain discovery, isolated compilation, fallback SVGs.

Each diagram is a RenderJob moving pending -> compiling -> converting ->
rendered, or to failed from any step. A failed job still receives an SVG: a
self-contained error card showing the message and the diagram source, so the
artifact slot is never empty. Jobs never share a workspace.
"""

import asyncio
import html
import logging
import re
import shutil
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from texpub.core.errors import RenderError, ToolchainUnavailable
from texpub.core.models import ArtifactBundle, DiagramArtifact, RenderStats
from texpub.core.utils.fs import write_text_atomic
from texpub.core.utils.proc import run_process


logger = logging.getLogger(__name__)

TEX_PACKAGES = r"""
\usepackage{pgfplots}
\usepackage{tikz-cd}
\usepackage{circuitikz}
\usepackage{amsmath}
\usepackage{amssymb}
\pgfplotsset{compat=1.18}
"""

TIKZ_LIBRARIES = r"""
\usetikzlibrary{arrows,shapes,backgrounds,patterns}
\usetikzlibrary{positioning}
\usetikzlibrary{calc}
\usetikzlibrary{arrows.meta}
\usetikzlibrary{fit}
\usetikzlibrary{shapes.geometric}
\usetikzlibrary{decorations.pathmorphing}
\usetikzlibrary{decorations.markings}
"""

SVG_CLASS = "tikz-diagram"
CONVERTER_PRIORITY = ("pdf2svg", "dvisvgm", "inkscape")
ERROR_MESSAGE_LIMIT = 200
ERROR_SOURCE_LIMIT = 250
JOB_BASENAME = "tikz-figure"

TEX_ERROR_RE = re.compile(r'^!.*(?:\r\n|\n|$)', re.MULTILINE)
FATAL_SENTINEL = "Fatal error occurred, no output PDF file produced!"


class RenderState(str, Enum):
    pending = "pending"
    compiling = "compiling"
    converting = "converting"
    rendered = "rendered"
    failed = "failed"


@dataclass
class RenderJob:
    artifact: DiagramArtifact
    state: RenderState = RenderState.pending
    error: Optional[str] = None


@dataclass(frozen=True)
class Toolchain:
    compiler: str                   # path to pdflatex
    converter: str                  # one of CONVERTER_PRIORITY
    converter_path: str


class DiagramRenderer(Protocol):
    """Returns rendered SVG for a job or raises RenderError."""

    async def render(self, job: RenderJob) -> str: ...


def probe_toolchain(which: Callable[[str], Optional[str]] = shutil.which) -> Toolchain:
    """Find pdflatex and the first available PDF to SVG converter. Raises ToolchainUnavailable."""
    compiler = which("pdflatex")
    if not compiler:
        raise ToolchainUnavailable("pdflatex not found. Please install a TeX distribution (TeX Live, MiKTeX).")
    for name in CONVERTER_PRIORITY:
        path = which(name)
        if path:
            return Toolchain(compiler=compiler, converter=name, converter_path=path)
    raise ToolchainUnavailable("No SVG converter found. Install pdf2svg, dvisvgm, or inkscape.")


def build_tex_document(latex: str) -> str:
    """Standalone document around the diagram; adds the tikzpicture wrapper only if missing."""
    body = latex if latex.strip().startswith("\\begin{tikzpicture}") \
        else f"\\begin{{tikzpicture}}\n{latex}\n\\end{{tikzpicture}}"
    return (
        "\\documentclass[crop,tikz,border=2pt]{standalone}\n"
        f"{TEX_PACKAGES}\n"
        "\\usepackage{tikz}\n"
        f"{TIKZ_LIBRARIES}\n"
        "\\begin{document}\n"
        f"{body}\n"
        "\\end{document}\n"
    )


def extract_tex_error(log_path: Path) -> str:
    """First '!' line of a TeX log, else the fatal-error sentinel, else a generic message."""
    try:
        log = Path(log_path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        return f"Cannot read log file: {e}"
    m = TEX_ERROR_RE.search(log)
    if m:
        return m.group(0).strip()
    if FATAL_SENTINEL in log:
        return f"Fatal error during compilation. Check the log file: {log_path}"
    return "Unknown compilation error. Check log file."


def optimize_svg(svg: str, class_name: str = SVG_CLASS) -> str:
    """Strip XML/DOCTYPE/comment preamble, collapse whitespace, tag the root <svg> with class_name."""
    svg = re.sub(r'<\?xml.*?\?>\s*', '', svg, flags=re.DOTALL)
    svg = re.sub(r'<!DOCTYPE.*?>\s*', '', svg, flags=re.DOTALL)
    svg = re.sub(r'<!--.*?-->\s*', '', svg, flags=re.DOTALL)
    svg = re.sub(r'\s+', ' ', svg)
    svg = re.sub(r'>\s+<', '><', svg).strip()
    if class_name:
        svg = re.sub(r'<svg([^>]*)>', lambda m: f'<svg{m.group(1)} class="{class_name}">', svg, count=1)
    return svg


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def error_svg(message: str, latex: str) -> str:
    """Self-contained SVG card showing a truncated error and diagram source."""
    error = html.escape(_truncate(message, ERROR_MESSAGE_LIMIT), quote=True)
    source = html.escape(_truncate(latex, ERROR_SOURCE_LIMIT), quote=True)
    return (
        '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 500 200" class="tikz-error" '
        'style="border: 2px dashed #dc3545; background: #f8d7da; max-width: 100%; height: auto;">'
        '<g font-family="monospace" font-size="12" fill="#721c24">'
        '<text x="50%" y="25" text-anchor="middle" font-size="14" font-weight="bold">TikZ Conversion Error</text>'
        '<foreignObject x="10" y="40" width="480" height="60">'
        '<pre xmlns="http://www.w3.org/1999/xhtml" style="font-size: 10px; color: #721c24; '
        f'white-space: pre-wrap; word-wrap: break-word;">Error: {error}</pre>'
        '</foreignObject>'
        '<text x="10" y="110" font-size="10" fill="#6c757d">Content:</text>'
        '<foreignObject x="10" y="120" width="480" height="70">'
        '<pre xmlns="http://www.w3.org/1999/xhtml" style="font-size: 9px; color: #6c757d; '
        f'white-space: pre-wrap; word-wrap: break-word;">{source}</pre>'
        '</foreignObject>'
        '</g></svg>'
    )


def converter_command(toolchain: Toolchain, pdf: Path, svg: Path) -> list[str]:
    exe = toolchain.converter_path
    if toolchain.converter == "pdf2svg":
        return [exe, str(pdf), str(svg)]
    if toolchain.converter == "dvisvgm":
        return [exe, "--pdf", "--no-fonts", "--optimize=all", str(pdf), "-o", str(svg)]
    if toolchain.converter == "inkscape":
        return [exe, "--pdf-poppler", str(pdf), "--export-type=svg", f"--export-filename={svg}"]
    raise RenderError(f"Unknown converter: {toolchain.converter}", stage="convert")


class LatexSvgRenderer:
    """pdflatex + PDF-to-SVG converter, one temporary workspace per job."""

    def __init__(self, toolchain: Toolchain, timeout: float = 60.0):
        self.toolchain = toolchain
        self.timeout = timeout

    async def _compile(self, job: RenderJob, workdir: Path) -> Path:
        job.state = RenderState.compiling
        tex = workdir / f"{JOB_BASENAME}.tex"
        tex.write_text(build_tex_document(job.artifact.latex), encoding="utf-8")
        result = await run_process(
            self.toolchain.compiler,
            "-interaction=nonstopmode", "-file-line-error", "-halt-on-error",
            f"-output-directory={workdir}", str(tex),
            timeout=self.timeout,
            cwd=workdir,
        )
        log = workdir / f"{JOB_BASENAME}.log"
        if not result.ok:
            detail = result.message() if result.timed_out else extract_tex_error(log)
            raise RenderError(f"LaTeX compilation failed: {detail}", stage="compile")
        pdf = workdir / f"{JOB_BASENAME}.pdf"
        if not pdf.exists():
            raise RenderError(f"PDF file not generated. Error: {extract_tex_error(log)}", stage="compile")
        return pdf

    async def _convert(self, job: RenderJob, pdf: Path, workdir: Path) -> str:
        job.state = RenderState.converting
        svg = workdir / f"{JOB_BASENAME}.svg"
        result = await run_process(*converter_command(self.toolchain, pdf, svg), timeout=self.timeout, cwd=workdir)
        if not result.ok:
            raise RenderError(
                f"SVG conversion with {self.toolchain.converter} failed: {result.message()}", stage="convert",
            )
        if not svg.exists():
            raise RenderError("SVG file was not generated", stage="convert")
        content = optimize_svg(svg.read_text(encoding="utf-8", errors="replace"))
        if not content:
            raise RenderError("SVG file was empty", stage="convert")
        return content

    async def render(self, job: RenderJob) -> str:
        workdir = Path(tempfile.mkdtemp(prefix="tikz-texpub-"))
        try:
            pdf = await self._compile(job, workdir)
            return await self._convert(job, pdf, workdir)
        except OSError as e:
            raise RenderError(f"Workspace error: {e}", stage="workspace") from e
        finally:
            try:
                shutil.rmtree(workdir)
            except OSError as e:
                logger.warning("Cleanup warning for %s: %s", workdir, e)


class UnavailableRenderer:
    """Stands in when the toolchain probe failed: every job fails with the probe's reason."""

    def __init__(self, reason: str):
        self.reason = reason

    async def render(self, job: RenderJob) -> str:
        raise RenderError(self.reason, stage="probe")


async def render_job(job: RenderJob, renderer: DiagramRenderer, semaphore: asyncio.Semaphore) -> RenderJob:
    """Run one job; failures are recorded on the job and replaced by an error SVG."""
    async with semaphore:
        try:
            svg = await renderer.render(job)
        except RenderError as e:
            job.state = RenderState.failed
            job.error = str(e)
            job.artifact.svg = error_svg(str(e), job.artifact.latex)
            job.artifact.error = str(e)
        else:
            job.state = RenderState.rendered
            job.artifact.svg = svg
            job.artifact.error = ""
    return job


def asset_path(static_dir: Path, url: str) -> Path:
    """Filesystem location of a public URL under the static root."""
    return Path(static_dir) / url.lstrip("/")


async def render_bundle_file(
    path: Path,
    renderer: DiagramRenderer,
    static_dir: Path,
    semaphore: asyncio.Semaphore,
    force: bool = False,
    ) -> RenderStats:
    """Render the diagrams of one artifact bundle and rewrite it once, atomically.

    Diagrams that already carry a successful SVG are skipped unless force is
    set; diagrams whose last render failed are always retried.
    """
    stats = RenderStats(files=1)
    try:
        bundle = ArtifactBundle.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValidationError) as e:
        logger.error("Failed to read artifact file %s: %s", path, e)
        stats.errors += 1
        return stats

    jobs = [RenderJob(a) for a in bundle.tikz if force or a.error or not a.svg]
    stats.skipped = len(bundle.tikz) - len(jobs)
    if not jobs:
        logger.info("%s: no TikZ artifacts to render", Path(path).name)
        return stats

    for job in await asyncio.gather(*(render_job(j, renderer, semaphore) for j in jobs)):
        if job.state is RenderState.failed:
            logger.error("Error rendering %s in %s: %s", job.artifact.id, Path(path).name, job.error)
            stats.errors += 1
        else:
            stats.compiled += 1
        try:
            write_text_atomic(asset_path(static_dir, job.artifact.url), job.artifact.svg)
        except OSError as e:
            logger.error("Cannot write SVG for %s: %s", job.artifact.url, e)
            stats.errors += 1

    write_text_atomic(Path(path), bundle.model_dump_json(indent=2))
    logger.info("Updated %s", Path(path).name)
    return stats
