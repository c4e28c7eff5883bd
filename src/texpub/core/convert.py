"""LaTeX to HTML converters: pandoc subprocess and a markdown-it fallback"""

import html
import logging
import re
import shutil
from typing import Protocol

from markdown_it import MarkdownIt

from texpub.core.errors import ConversionError
from texpub.core.placeholders import MATH, PlaceholderTable
from texpub.core.utils.latex import fold_accents
from texpub.core.utils.proc import run_process


logger = logging.getLogger(__name__)

PANDOC_ARGS = ('-f', 'latex+smart', '-t', 'html', '--mathjax', '--wrap=preserve')
PANDOC_PREAMBLE = "\\documentclass{article}\n\\usepackage{amsmath}\n\\begin{document}\n"
PANDOC_POSTAMBLE = "\n\\end{document}\n"

BODY_RE = re.compile(r'<body[^>]*>(.*?)</body>', re.IGNORECASE | re.DOTALL)
ID_ATTR_RE = re.compile(r'\s+id="[^"]*"')
DATA_ATTR_RE = re.compile(r'\s+data-[^=]*="[^"]*"')
TAG_WS_RE = re.compile(r'\s+>')


class Converter(Protocol):
    """Turns one LaTeX fragment into HTML; raises ConversionError on failure."""
    name: str

    async def convert(self, latex: str) -> str: ...


def clean_pandoc_html(text: str) -> str:
    """Keep the <body> content and drop id/data-* attributes."""
    m = BODY_RE.search(text)
    if m:
        text = m.group(1)
    text = ID_ATTR_RE.sub('', text)
    text = DATA_ATTR_RE.sub('', text)
    return TAG_WS_RE.sub('>', text).strip()


class PandocConverter:
    name = 'pandoc'

    def __init__(self, executable: str = 'pandoc', timeout: float = 30.0):
        self.executable = executable
        self.timeout = timeout

    async def convert(self, latex: str) -> str:
        document = PANDOC_PREAMBLE + fold_accents(latex) + PANDOC_POSTAMBLE
        result = await run_process(
            self.executable, *PANDOC_ARGS,
            timeout=self.timeout,
            data=document.encode('utf-8'),
        )
        if not result.ok:
            raise ConversionError(f"pandoc failed: {result.message()}")
        return clean_pandoc_html(result.stdout)


# Display and inline math, shielded from markdown emphasis rules.
MATH_RE = re.compile(r'\$\$.*?\$\$|\\\[.*?\\\]|\\\(.*?\\\)|(?<!\\)\$.+?(?<!\\)\$', re.DOTALL)

INLINE_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r'\\textbf\{([^{}]*)\}'),               r'**\1**'),
    (re.compile(r'\\(?:textit|emph)\{([^{}]*)\}'),      r'*\1*'),
    (re.compile(r'\\section\*?\{([^{}]*)\}'),           r'\n\n## \1\n\n'),
    (re.compile(r'\\subsection\*?\{([^{}]*)\}'),        r'\n\n### \1\n\n'),
    (re.compile(r'\\subsubsection\*?\{([^{}]*)\}'),     r'\n\n#### \1\n\n'),
    (re.compile(r'\\\\'),                               '  \n'),
    (re.compile(r'~'),                                  '\u00a0'),
]
LIST_ENVS = (('enumerate', '1.'), ('itemize', '-'))


def _rewrite_lists(text: str) -> str:
    for env, marker in LIST_ENVS:
        pattern = re.compile(rf'\\begin\{{{env}\}}(.*?)\\end\{{{env}\}}', re.DOTALL)
        text = pattern.sub(
            lambda m: '\n\n' + re.sub(r'\s*\\item\s*', f'\n{marker} ', m.group(1)).strip() + '\n\n',
            text,
        )
    return text


class FallbackConverter:
    """Basic LaTeX -> Markdown rewrite rendered with markdown-it; used when pandoc is absent."""
    name = 'fallback'

    def __init__(self, preset: str = 'gfm-like'):
        self._md = MarkdownIt(preset, options_update={"linkify": False})

    def render(self, latex: str) -> str:
        table = PlaceholderTable()
        text = MATH_RE.sub(lambda m: table.add(MATH, html.escape(m.group(0), quote=False)), fold_accents(latex))
        text = _rewrite_lists(text)
        for pattern, repl in INLINE_RULES:
            text = pattern.sub(repl, text)
        return table.restore(self._md.render(text).strip())

    async def convert(self, latex: str) -> str:
        try:
            return self.render(latex)
        except Exception as e:
            raise ConversionError(f"fallback conversion failed: {e}") from e


def select_converter(name: str = 'auto', timeout: float = 30.0) -> Converter:
    """Return the converter for name: 'pandoc', 'fallback', or 'auto' (pandoc if on PATH)."""
    if name == 'fallback':
        return FallbackConverter()
    if name == 'pandoc':
        return PandocConverter(timeout=timeout)
    if shutil.which('pandoc'):
        return PandocConverter(timeout=timeout)
    logger.warning("pandoc not found on PATH; using basic LaTeX to HTML fallback conversion")
    return FallbackConverter()
