"""Compile one .tex exercise into a CompiledDocument and its ArtifactBundle"""

import asyncio
import html
import logging
import re
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from texpub.core.convert import Converter
from texpub.core.errors import ConversionError, SourceError
from texpub.core.extract.commands import (
    COMMANDS_BY_NAME, VERBATIM_COMMANDS, CommandSpec, find_command, scan_commands,
)
from texpub.core.extract.diagrams import DEFAULT_PUBLIC_PATH, DiagramIndex, extract_diagrams
from texpub.core.extract.verbatim import VerbatimBlock, code_to_html, extract_verbatim_blocks
from texpub.core.models import ArtifactBundle, CodeArtifact, CompiledDocument, ContentBlock, utc_now
from texpub.core.placeholders import PlaceholderTable, protect_code_refs, protect_diagrams
from texpub.core.utils.hashing import sha256_bytes
from texpub.core.utils.latex import fold_accents, strip_comments, wrap_display_math


logger = logging.getLogger(__name__)

DIFFICULTY_MIN = 1
DIFFICULTY_MAX = 10
LEADING_INT_RE = re.compile(r'^\s*([+-]?\d+)')


@dataclass
class CompileResult:
    document: CompiledDocument
    bundle: ArtifactBundle
    warnings: list[str] = field(default_factory=list)


def generate_short_id() -> str:
    """Random 4-character URL-safe identifier."""
    return secrets.token_urlsafe(3)


def parse_difficulty(value: str) -> Optional[int]:
    """Leading integer of value if within the difficulty range, else None ('3' -> 3, 'abc' -> None)."""
    m = LEADING_INT_RE.match(value)
    if not m:
        return None
    n = int(m.group(1))
    return n if DIFFICULTY_MIN <= n <= DIFFICULTY_MAX else None


def normalize_theme(value: str) -> str:
    """'Algebra ,Geometry' -> 'Algebra, Geometry'."""
    return ', '.join(part.strip() for part in value.split(',') if part.strip())


def _apply_metadata(document: CompiledDocument, spec: CommandSpec, raw: str) -> None:
    value = fold_accents(strip_comments(raw))
    if spec.field == 'id':
        return                                  # resolved before extraction
    if spec.field == 'theme':
        document.theme = normalize_theme(value)
    elif spec.field == 'difficulty':
        document.difficulty = parse_difficulty(value)
    elif spec.field == 'video_id':
        document.video_id = value
        document.artifacts.video = value or None
    else:
        setattr(document, spec.field, value)


async def _render_block(
    raw: str,
    spec: CommandSpec,
    code_blocks: Mapping[str, VerbatimBlock],
    diagrams: DiagramIndex,
    converter: Converter,
    source_name: str,
    ) -> str:
    """Protect diagrams/code, convert, restore. Converter failure yields an inline error block."""
    latex = raw if spec.verbatim else strip_comments(raw)
    table = PlaceholderTable()
    text = protect_code_refs(latex, code_blocks, table)
    text = protect_diagrams(text, diagrams, table)
    text = wrap_display_math(text)
    if not text.strip():
        return ''

    try:
        converted = await converter.convert(text)
    except ConversionError as e:
        logger.error("Conversion failed for \\%s block in %s: %s", spec.name, source_name, e)
        return f'<div class="error">Conversion error: {html.escape(str(e), quote=False)}</div>'
    return table.restore(converted)


async def compile_text(
    text: str,
    converter: Converter,
    source_hash: str = '',
    source_name: str = '<string>',
    public_path: str = DEFAULT_PUBLIC_PATH,
    ) -> CompileResult:
    """Compile LaTeX source text. Content blocks convert concurrently; order follows the source."""
    warnings: list[str] = []

    id_match = find_command(text, 'uuid')
    doc_id = strip_comments(id_match.content) if id_match else ''
    if not doc_id:
        doc_id = generate_short_id()
    document = CompiledDocument(id=doc_id, updated_at=utc_now(), source_hash=source_hash)
    bundle = ArtifactBundle()

    code_blocks = extract_verbatim_blocks(text)
    for n, block in enumerate(code_blocks.values(), start=1):
        code_id = f"code_{n}"
        bundle.code.append(CodeArtifact(
            id=code_id,
            name=block.name,
            language=block.language,
            content=block.content.strip(),
            html=code_to_html(block.content, block.language, block.name),
        ))
        document.artifacts.code.append(code_id)

    diagrams = extract_diagrams(text, doc_id, public_path)
    bundle.tikz = diagrams.artifacts
    document.artifacts.tikz = [a.id for a in diagrams.artifacts]

    pending: list[tuple[CommandSpec, str]] = []
    for m in scan_commands(text, COMMANDS_BY_NAME, verbatim=VERBATIM_COMMANDS):
        spec = COMMANDS_BY_NAME[m.name]
        if m.truncated:
            warnings.append(f"Unclosed \\{m.name}{{ at offset {m.start}; argument runs to end of file")
        if spec.content:
            pending.append((spec, m.content.strip()))
        else:
            _apply_metadata(document, spec, m.content)

    rendered = await asyncio.gather(*(
        _render_block(raw, spec, code_blocks, diagrams, converter, source_name)
        for spec, raw in pending
    ))
    document.content = [
        ContentBlock(id=f"block_{order}", kind=spec.kind, latex=raw, html=block_html, order=order)
        for order, ((spec, raw), block_html) in enumerate(zip(pending, rendered), start=1)
    ]

    document.artifacts.geogebra = [
        m.content.strip() for m in scan_commands(text, ['geogebra'], nested=True)
    ]

    if not document.title:
        warnings.append("Missing title")
    for w in warnings:
        logger.warning("%s: %s", source_name, w)
    return CompileResult(document=document, bundle=bundle, warnings=warnings)


async def compile_source(
    path: Path,
    converter: Converter,
    public_path: str = DEFAULT_PUBLIC_PATH,
    ) -> CompileResult:
    """Read and compile one source file. Raises SourceError if it cannot be read or decoded."""
    try:
        raw = Path(path).read_bytes()
        text = raw.decode('utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise SourceError(Path(path), f"Cannot read source: {e}") from e
    return await compile_text(
        text,
        converter,
        source_hash=sha256_bytes(raw),
        source_name=str(path),
        public_path=public_path,
    )
