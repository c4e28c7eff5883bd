"""Unit tests for core/render.py"""

import asyncio
from pathlib import Path

import pytest

from texpub.core import render
from texpub.core.errors import RenderError, ToolchainUnavailable
from texpub.core.models import ArtifactBundle, DiagramArtifact
from texpub.core.render import (
    LatexSvgRenderer, RenderJob, RenderState, Toolchain, UnavailableRenderer,
    build_tex_document, converter_command, error_svg, extract_tex_error,
    optimize_svg, probe_toolchain, render_bundle_file,
)
from texpub.core.utils.proc import ProcessResult


TIKZ = "\\begin{tikzpicture}\n\\draw (0,0) -- (1,1);\n\\end{tikzpicture}"


def _bundle_file(tmp_path, artifacts):
    path = tmp_path / "artifacts" / "ex-1.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(ArtifactBundle(tikz=artifacts).model_dump_json(), encoding="utf-8")
    return path


def _artifact(n, latex=TIKZ, svg=""):
    return DiagramArtifact(id=f"tikz_{n}", url=f"/artifacts/tikz/ex-1-tikz_{n}.svg", latex=latex, svg=svg)


# --- toolchain ---

def test_probe_toolchain_prefers_pdf2svg():
    """Converters are chosen in priority order."""
    tools = {"pdflatex": "/bin/pdflatex", "pdf2svg": "/bin/pdf2svg", "dvisvgm": "/bin/dvisvgm"}
    toolchain = probe_toolchain(tools.get)
    assert toolchain.converter == "pdf2svg"
    assert toolchain.compiler == "/bin/pdflatex"


def test_probe_toolchain_falls_back_to_inkscape():
    """inkscape is used when it is the only converter present."""
    tools = {"pdflatex": "/bin/pdflatex", "inkscape": "/bin/inkscape"}
    assert probe_toolchain(tools.get).converter_path == "/bin/inkscape"


def test_probe_toolchain_missing_compiler():
    """Without pdflatex the toolchain is unavailable."""
    with pytest.raises(ToolchainUnavailable, match="pdflatex not found"):
        probe_toolchain({"pdf2svg": "/bin/pdf2svg"}.get)


def test_probe_toolchain_missing_converter():
    """Without any converter the toolchain is unavailable."""
    with pytest.raises(ToolchainUnavailable, match="No SVG converter found"):
        probe_toolchain({"pdflatex": "/bin/pdflatex"}.get)


def test_converter_commands():
    """Each converter gets its own argument layout."""
    pdf, svg = Path("in.pdf"), Path("out.svg")
    assert converter_command(Toolchain("pdflatex", "pdf2svg", "p2s"), pdf, svg) == ["p2s", "in.pdf", "out.svg"]
    assert "--pdf" in converter_command(Toolchain("pdflatex", "dvisvgm", "dv"), pdf, svg)
    assert "--export-filename=out.svg" in converter_command(Toolchain("pdflatex", "inkscape", "ink"), pdf, svg)


# --- document and output processing ---

def test_build_tex_document_keeps_existing_wrapper():
    """A full tikzpicture is embedded as-is."""
    doc = build_tex_document(TIKZ)
    assert doc.count("\\begin{tikzpicture}") == 1
    assert doc.startswith("\\documentclass[crop,tikz,border=2pt]{standalone}")
    assert "\\pgfplotsset{compat=1.18}" in doc


def test_build_tex_document_adds_missing_wrapper():
    """Bare drawing commands are wrapped in a tikzpicture."""
    doc = build_tex_document("\\draw (0,0) circle (1);")
    assert "\\begin{tikzpicture}\n\\draw (0,0) circle (1);\n\\end{tikzpicture}" in doc


def test_extract_tex_error_first_bang_line(tmp_path):
    """The first '!' line of the log is reported."""
    log = tmp_path / "job.log"
    log.write_text("This is pdfTeX\n! Undefined control sequence.\nl.5 \\foo\n! Second error.\n")
    assert extract_tex_error(log) == "! Undefined control sequence."


def test_extract_tex_error_fatal_and_unknown(tmp_path):
    """Fatal sentinel, unknown logs and unreadable logs each get a message."""
    log = tmp_path / "job.log"
    log.write_text("Fatal error occurred, no output PDF file produced!\n")
    assert "Fatal error during compilation" in extract_tex_error(log)
    log.write_text("nothing useful\n")
    assert extract_tex_error(log) == "Unknown compilation error. Check log file."
    assert extract_tex_error(tmp_path / "missing.log").startswith("Cannot read log file")


def test_optimize_svg():
    """Preamble and comments are removed, whitespace collapsed, class injected."""
    raw = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" "http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd">\n'
        '<!-- generated -->\n'
        '<svg width="10pt" height="10pt">\n  <g>\n    <path d="M 0 0"/>\n  </g>\n</svg>\n'
    )
    assert optimize_svg(raw) == '<svg width="10pt" height="10pt" class="tikz-diagram"><g><path d="M 0 0"/></g></svg>'


def test_error_svg_escapes_and_truncates():
    """Message and source are escaped and capped."""
    svg = error_svg("bad <tag> " + "x" * 300, "\\draw <" + "y" * 400)
    assert svg.startswith("<svg")
    assert "&lt;tag&gt;" in svg
    assert "x" * 190 + "..." in svg
    assert "x" * 191 not in svg
    assert "y" * 243 + "..." in svg
    assert "y" * 244 not in svg
    assert "<tag>" not in svg


# --- renderers ---

@pytest.mark.asyncio
async def test_latex_renderer_success(monkeypatch):
    """A successful job passes through compiling and converting, and its workspace is removed."""
    workdirs = []

    async def fake_run(*args, timeout, data=None, cwd=None):
        workdirs.append(Path(cwd))
        if args[0] == "pdflatex":
            (Path(cwd) / "tikz-figure.pdf").write_bytes(b"%PDF")
        else:
            Path(args[-1]).write_text("<?xml version='1.0'?>\n<svg>\n <g/>\n</svg>")
        return ProcessResult(0, "", "")

    monkeypatch.setattr(render, "run_process", fake_run)
    renderer = LatexSvgRenderer(Toolchain("pdflatex", "pdf2svg", "pdf2svg"), timeout=5)
    job = RenderJob(_artifact(1))
    svg = await renderer.render(job)
    assert svg == '<svg class="tikz-diagram"><g/></svg>'
    assert job.state is RenderState.converting
    assert workdirs and not workdirs[0].exists()


@pytest.mark.asyncio
async def test_latex_renderer_compile_failure(monkeypatch):
    """A failed compilation raises RenderError with the log's error line; the workspace is removed."""
    workdirs = []

    async def fake_run(*args, timeout, data=None, cwd=None):
        workdirs.append(Path(cwd))
        (Path(cwd) / "tikz-figure.log").write_text("! Package tikz Error: bad.\n")
        return ProcessResult(1, "", "")

    monkeypatch.setattr(render, "run_process", fake_run)
    renderer = LatexSvgRenderer(Toolchain("pdflatex", "pdf2svg", "pdf2svg"), timeout=5)
    with pytest.raises(RenderError) as exc:
        await renderer.render(RenderJob(_artifact(1)))
    assert exc.value.stage == "compile"
    assert "! Package tikz Error: bad." in str(exc.value)
    assert not workdirs[0].exists()


@pytest.mark.asyncio
async def test_render_bundle_isolates_failures(tmp_path, renderer):
    """One failing diagram gets an error SVG; the others render; the bundle is rewritten."""
    path = _bundle_file(tmp_path, [_artifact(1), _artifact(2, latex=TIKZ + "% broken"), _artifact(3, svg="<svg/>")])
    static = tmp_path / "static"
    stats = await render_bundle_file(path, renderer, static, asyncio.Semaphore(2))

    assert (stats.compiled, stats.errors, stats.skipped) == (1, 1, 1)
    assert renderer.rendered == ["tikz_1", "tikz_2"]
    bundle = ArtifactBundle.model_validate_json(path.read_text())
    assert all(a.svg for a in bundle.tikz)
    assert "TikZ Conversion Error" in bundle.tikz[1].svg
    assert (static / "artifacts/tikz/ex-1-tikz_1.svg").read_text().startswith('<svg class="tikz-diagram">')
    assert (static / "artifacts/tikz/ex-1-tikz_2.svg").exists()


@pytest.mark.asyncio
async def test_render_bundle_force_rerenders(tmp_path, renderer):
    """force re-renders diagrams that already carry an SVG."""
    path = _bundle_file(tmp_path, [_artifact(1, svg="<svg>old</svg>")])
    stats = await render_bundle_file(path, renderer, tmp_path / "static", asyncio.Semaphore(1), force=True)
    assert stats.compiled == 1
    assert "old" not in ArtifactBundle.model_validate_json(path.read_text()).tikz[0].svg


@pytest.mark.asyncio
async def test_unavailable_renderer_fills_every_slot(tmp_path):
    """Without a toolchain every diagram still receives a non-empty fallback SVG."""
    path = _bundle_file(tmp_path, [_artifact(1), _artifact(2)])
    stats = await render_bundle_file(
        path, UnavailableRenderer("pdflatex not found"), tmp_path / "static", asyncio.Semaphore(4),
    )
    assert stats.errors == 2
    bundle = ArtifactBundle.model_validate_json(path.read_text())
    assert all("pdflatex not found" in a.svg for a in bundle.tikz)
    assert all(a.error for a in bundle.tikz)


@pytest.mark.asyncio
async def test_failed_diagrams_are_retried_on_next_pass(tmp_path, renderer):
    """A diagram that got an error SVG is rendered again; a healthy one is not."""
    path = _bundle_file(tmp_path, [_artifact(1), _artifact(2, svg="<svg>ok</svg>")])
    static = tmp_path / "static"
    await render_bundle_file(path, UnavailableRenderer("pdflatex not found"), static, asyncio.Semaphore(2))

    stats = await render_bundle_file(path, renderer, static, asyncio.Semaphore(2))
    assert (stats.compiled, stats.skipped, stats.errors) == (1, 1, 0)
    assert renderer.rendered == ["tikz_1"]
    first, second = ArtifactBundle.model_validate_json(path.read_text()).tikz
    assert first.svg.startswith('<svg class="tikz-diagram">')
    assert first.error == ""
    assert second.svg == "<svg>ok</svg>"
    assert (static / "artifacts/tikz/ex-1-tikz_1.svg").read_text() == first.svg


@pytest.mark.asyncio
async def test_render_bundle_unreadable_file(tmp_path, renderer):
    """A corrupt bundle counts as one error and is left untouched."""
    path = tmp_path / "bad.json"
    path.write_text("{oops", encoding="utf-8")
    stats = await render_bundle_file(path, renderer, tmp_path, asyncio.Semaphore(1))
    assert stats.errors == 1
    assert path.read_text() == "{oops"
