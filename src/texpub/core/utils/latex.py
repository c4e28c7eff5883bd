"""Small LaTeX text helpers: comments, accents, display math"""

import re


COMMENT_RE = re.compile(r'(?<!\\)%.*$', re.MULTILINE)

ACCENTS: dict[str, str] = {
    # acute
    "\\'E": "É", "\\'e": "é", "\\'a": "á", "\\'i": "í", "\\'o": "ó", "\\'u": "ú",
    "\\'A": "Á", "\\'I": "Í", "\\'O": "Ó", "\\'U": "Ú",
    # grave
    "\\`E": "È", "\\`e": "è", "\\`a": "à", "\\`i": "ì", "\\`o": "ò", "\\`u": "ù",
    "\\`A": "À", "\\`I": "Ì", "\\`O": "Ò", "\\`U": "Ù",
    # circumflex
    "\\^E": "Ê", "\\^e": "ê", "\\^a": "â", "\\^i": "î", "\\^o": "ô", "\\^u": "û",
    "\\^A": "Â", "\\^I": "Î", "\\^O": "Ô", "\\^U": "Û",
    # diaeresis
    '\\"E': "Ë", '\\"e': "ë", '\\"a': "ä", '\\"i': "ï", '\\"o': "ö", '\\"u': "ü",
    '\\"A': "Ä", '\\"I': "Ï", '\\"O': "Ö", '\\"U': "Ü",
    # cedilla, tilde
    "\\c{C}": "Ç", "\\c{c}": "ç",
    "\\~N": "Ñ", "\\~n": "ñ",
}

DISPLAY_MATH: list[tuple[re.Pattern, str]] = [
    (re.compile(r'\\begin\{align\*\}(.*?)\\end\{align\*\}', re.DOTALL),
     r'$$\\begin{align*}\1\\end{align*}$$'),
    (re.compile(r'\\begin\{equation\*?\}(.*?)\\end\{equation\*?\}', re.DOTALL),
     r'$$\\begin{equation}\1\\end{equation}$$'),
    (re.compile(r'\\begin\{gather\*?\}(.*?)\\end\{gather\*?\}', re.DOTALL),
     r'$$\\begin{gather}\1\\end{gather}$$'),
]


def strip_comments(text: str) -> str:
    """Remove unescaped % comments to end of line, then trim."""
    return COMMENT_RE.sub('', text).strip()


def fold_accents(text: str) -> str:
    """Replace LaTeX accent macros (\\'e, \\`a, \\c{c}, ...) with Unicode characters."""
    for macro, char in ACCENTS.items():
        text = text.replace(macro, char)
    return text


def wrap_display_math(text: str) -> str:
    """Wrap align*/equation/gather environments in $$...$$ for MathJax/KaTeX."""
    for pattern, repl in DISPLAY_MATH:
        text = pattern.sub(repl, text)
    return text
