"""Placeholder substitution around the external LaTeX to HTML converter.

Regions the converter must not see (TikZ diagrams, \\BUseVerbatim references,
math in the fallback converter) are swapped for opaque alphanumeric tokens
before conversion. After conversion each token is replaced, by exact string
replacement, with the final HTML recorded in the table.
"""

import logging
import re
import secrets
from typing import Mapping

from texpub.core.extract.diagrams import DiagramIndex
from texpub.core.extract.verbatim import VerbatimBlock, code_to_html


logger = logging.getLogger(__name__)

TOKEN_PREFIX = "QXTPUBPH"
TOKEN_RE = re.compile(TOKEN_PREFIX + r'[A-Z]+[0-9a-f]{16}')

DIAGRAM = "TIKZ"
CODE = "CODE"
MATH = "MATH"
RESTORE_ORDER = (DIAGRAM, CODE, MATH)

# Most specific surface syntax first; later patterns only see what earlier ones left.
CODE_REF_PATTERNS: list[re.Pattern] = [
    re.compile(r'\{\\centering\s+\\fbox\{\\BUseVerbatim\{([^}]+)\}\}\\par\}'),
    re.compile(r'\\fbox\{\\BUseVerbatim\{([^}]+)\}\}'),
    re.compile(r'\{\\BUseVerbatim\{([^}]+)\}\\par\}'),
    re.compile(r'\\BUseVerbatim\{([^}]+)\}'),
]

WRAPPED_TIKZ_RE = re.compile(
    r'\\begin\{(center|figure|minipage)\}(?:\[[^\]]*\])?(?:\{[^}]*\})?\s*'
    r'(\\begin\{tikzpicture\}.*?\\end\{tikzpicture\})\s*\\end\{\1\}'
    r'|(\\begin\{tikzpicture\}.*?\\end\{tikzpicture\})',
    re.DOTALL,
)


class PlaceholderTable:
    """Token -> HTML side table for one content block, grouped by namespace."""

    def __init__(self):
        self._entries: dict[str, dict[str, str]] = {ns: {} for ns in RESTORE_ORDER}

    def __len__(self) -> int:
        return sum(len(v) for v in self._entries.values())

    def _new_token(self, namespace: str) -> str:
        while True:
            token = f"{TOKEN_PREFIX}{namespace}{secrets.token_hex(8)}"
            if not any(token in entries for entries in self._entries.values()):
                return token

    def add(self, namespace: str, fragment: str) -> str:
        """Register fragment and return the token standing in for it."""
        token = self._new_token(namespace)
        self._entries.setdefault(namespace, {})[token] = fragment
        return token

    def tokens(self, namespace: str) -> list[str]:
        return list(self._entries.get(namespace, {}))

    def restore(self, html: str) -> str:
        """Swap every token back for its fragment; diagrams before code."""
        for namespace in RESTORE_ORDER:
            for token, fragment in self._entries[namespace].items():
                if token not in html:
                    logger.warning("Placeholder %s missing from converter output", token)
                    continue
                html = html.replace(token, fragment)
        return html


def residual_tokens(text: str) -> list[str]:
    """Placeholder tokens still present in text."""
    return TOKEN_RE.findall(text)


def protect_code_refs(text: str, blocks: Mapping[str, VerbatimBlock], table: PlaceholderTable) -> str:
    """Replace \\BUseVerbatim references with tokens for the rendered code HTML.

    An unknown block name becomes a visible inline error marker.
    """
    def _sub(m: re.Match) -> str:
        name = m.group(1).strip()
        block = blocks.get(name)
        if block is None:
            logger.warning("Code block %r not found for reference", name)
            return table.add(CODE, f'<div class="code-error">Code block "{name}" not found</div>')
        return table.add(CODE, code_to_html(block.content, block.language, name))

    for pattern in CODE_REF_PATTERNS:
        text = pattern.sub(_sub, text)
    return text


def protect_diagrams(text: str, index: DiagramIndex, table: PlaceholderTable) -> str:
    """Replace tikzpicture regions (optionally inside center/figure/minipage) with image tokens."""
    def _sub(m: re.Match) -> str:
        wrapper = m.group(1)
        region = m.group(2) or m.group(3)
        img = index.image_for(region)
        if img is None:
            logger.warning("No image registered for a TikZ region; left unchanged")
            return m.group(0)
        if wrapper in ('center', 'figure'):
            fragment = f'<div class="tikz-container" style="text-align: center;">{img}</div>'
        else:
            fragment = f'<p class="tikz-container">{img}</p>'
        return table.add(DIAGRAM, fragment)

    return WRAPPED_TIKZ_RE.sub(_sub, text)
