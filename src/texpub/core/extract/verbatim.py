"""SaveVerbatim block extraction, language detection, and code-to-HTML rendering"""

import html
import re
from dataclasses import dataclass
from typing import Callable


SAVE_VERBATIM_RE = re.compile(r'\\begin\{SaveVerbatim\}\{([^}]+)\}(.*?)\\end\{SaveVerbatim\}', re.DOTALL)
LEADING_WS_RE = re.compile(r'^[ \t]*')


@dataclass(frozen=True)
class VerbatimBlock:
    name: str
    content: str
    language: str


# Ordered (predicate, label) pairs; the first matching predicate wins.
LANGUAGE_RULES: list[tuple[Callable[[str], bool], str]] = [
    (lambda n: 'python' in n or 'py' in n,              'python'),
    (lambda n: 'javascript' in n or 'js' in n,          'javascript'),
    (lambda n: 'java' in n,                             'java'),
    (lambda n: 'sql' in n,                              'sql'),
    (lambda n: 'r' in n and len(n) <= 3,                'r'),
    (lambda n: 'cpp' in n or 'c++' in n,                'cpp'),
    (lambda n: 'c' in n and 'css' not in n,             'c'),
    (lambda n: 'html' in n,                             'html'),
    (lambda n: 'css' in n,                              'css'),
    (lambda n: 'php' in n,                              'php'),
    (lambda n: 'bash' in n or 'shell' in n,             'bash'),
    (lambda n: 'matlab' in n,                           'matlab'),
]
DEFAULT_LANGUAGE = 'text'


def detect_language(block_name: str) -> str:
    """Infer a source language from a SaveVerbatim block name (e.g. 'ex1python' -> 'python')."""
    name = block_name.lower()
    for predicate, label in LANGUAGE_RULES:
        if predicate(name):
            return label
    return DEFAULT_LANGUAGE


def extract_verbatim_blocks(text: str) -> dict[str, VerbatimBlock]:
    """Return SaveVerbatim blocks keyed by name in source order; first occurrence wins."""
    blocks: dict[str, VerbatimBlock] = {}
    for m in SAVE_VERBATIM_RE.finditer(text):
        name, content = m.group(1).strip(), m.group(2)
        if name in blocks:
            continue
        blocks[name] = VerbatimBlock(name=name, content=content, language=detect_language(name))
    return blocks


def clean_code(code: str) -> str:
    """Drop blank leading/trailing lines and remove the indentation shared by all non-blank lines."""
    lines = code.split('\n')
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()

    indents = [len(LEADING_WS_RE.match(line).group(0)) for line in lines if line.strip()]
    shared = min(indents, default=0)
    return '\n'.join(line[shared:] if line.strip() else '' for line in lines)


def code_to_html(code: str, language: str, block_name: str) -> str:
    """Render a code block as escaped HTML carrying its language and block name."""
    escaped = html.escape(clean_code(code), quote=True)
    lang = html.escape(language, quote=True)
    name = html.escape(block_name, quote=True)
    return (
        f'<div class="code-block" data-language="{lang}" data-block-name="{name}">\n'
        f'  <div class="code-header">\n'
        f'    <span class="language-label">{lang.upper()}</span>\n'
        f'    <span class="block-name">{name}</span>\n'
        f'  </div>\n'
        f'  <pre><code class="language-{lang}">{escaped}</code></pre>\n'
        f'</div>'
    )
