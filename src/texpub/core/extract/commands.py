"""Brace-balanced scanner for the exercise command vocabulary"""

from dataclasses import dataclass
from typing import Iterable, Optional

from texpub.core.models import BlockKind


@dataclass(frozen=True)
class CommandSpec:
    """How one LaTeX command maps onto the compiled record."""
    name: str
    field: str
    content: bool = False               # True: becomes a ContentBlock
    kind: Optional[BlockKind] = None
    verbatim: bool = False              # True: comments are kept in the raw block


COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec('uuid',         'id'),
    CommandSpec('titre',        'title'),
    CommandSpec('chapitre',     'chapter'),
    CommandSpec('sousChapitre', 'subchapter'),
    CommandSpec('theme',        'theme'),
    CommandSpec('auteur',       'author'),
    CommandSpec('organisation', 'organization'),
    CommandSpec('video',        'video_id'),
    CommandSpec('datecreate',   'created_at'),
    CommandSpec('niveau',       'difficulty'),
    CommandSpec('texte',        'content', content=True, kind=BlockKind.text),
    CommandSpec('question',     'content', content=True, kind=BlockKind.question),
    CommandSpec('indication',   'content', content=True, kind=BlockKind.hint),
    CommandSpec('reponse',      'content', content=True, kind=BlockKind.answer),
    CommandSpec('code',         'content', content=True, kind=BlockKind.code, verbatim=True),
)
COMMANDS_BY_NAME: dict[str, CommandSpec] = {c.name: c for c in COMMANDS}
VERBATIM_COMMANDS: frozenset[str] = frozenset(c.name for c in COMMANDS if c.verbatim)


@dataclass
class CommandMatch:
    """One \\name{...} occurrence. `content` is the raw text between the outer braces."""
    name: str
    content: str
    start: int                          # offset of the backslash
    end: int                            # offset just past the closing brace
    truncated: bool = False             # argument ran to end of text without closing


def _line_end(text: str, i: int) -> int:
    """Offset of the newline ending the line containing i (or len(text))."""
    j = text.find('\n', i)
    return len(text) if j == -1 else j


def _read_argument(text: str, i: int, comments: bool = True) -> tuple[str, int, bool]:
    """Read a braced argument whose opening brace sits just before i.

    Escape pairs (\\{, \\}, \\\\, \\%) are literal. With comments=True, % comments are
    skipped for brace counting; either way they stay in the returned slice.
    Returns (content, end, truncated).
    """
    n = len(text)
    depth = 1
    j = i
    while j < n:
        ch = text[j]
        if ch == '\\':
            j += 2
            continue
        if comments and ch == '%':
            j = _line_end(text, j)
            continue
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return text[i:j], j + 1, False
        j += 1
    return text[i:], n, True


def _read_name(text: str, i: int) -> int:
    """Return the end offset of the ASCII letter run starting at i."""
    j = i
    while j < len(text) and text[j].isascii() and text[j].isalpha():
        j += 1
    return j


def scan_commands(
    text: str,
    names: Iterable[str],
    nested: bool = False,
    verbatim: Iterable[str] = (),
    ) -> list[CommandMatch]:
    """Return every uncommented \\name{...} for the given names, left to right.

    Only top-level occurrences are returned unless nested=True, in which case
    scanning resumes inside each matched argument. Arguments of the `verbatim`
    names count braces straight through %, which is literal there.
    """
    wanted = set(names)
    literal = set(verbatim)
    matches: list[CommandMatch] = []
    n = len(text)
    i = 0
    while i < n:
        ch = text[i]
        if ch == '%':
            i = _line_end(text, i)
            continue
        if ch != '\\':
            i += 1
            continue

        name_end = _read_name(text, i + 1)
        name = text[i + 1:name_end]
        if not name:
            i += 2                      # escape pair such as \% or \\
            continue
        if name not in wanted:
            i = name_end
            continue

        k = name_end
        while k < n and text[k].isspace():
            k += 1
        if k >= n or text[k] != '{':
            i = name_end
            continue

        content, end, truncated = _read_argument(text, k + 1, comments=name not in literal)
        matches.append(CommandMatch(name=name, content=content, start=i, end=end, truncated=truncated))
        i = k + 1 if nested else end

    return matches


def find_command(text: str, name: str) -> Optional[CommandMatch]:
    """First top-level occurrence of \\name{...}, or None."""
    found = scan_commands(text, [name])
    return found[0] if found else None
