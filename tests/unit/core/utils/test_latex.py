"""Unit tests for core/utils/latex.py"""

from texpub.core.utils.latex import fold_accents, strip_comments, wrap_display_math


def test_strip_comments_keeps_escaped_percent():
    """Unescaped comments are removed; \\% stays."""
    assert strip_comments("50\\% des cas % note\nfin") == "50\\% des cas \nfin"


def test_fold_accents():
    """Acute, grave, circumflex, diaeresis, and cedilla macros are folded."""
    assert fold_accents(r"\'el\`eve, for\^et, na\"if, gar\c{c}on") == "élève, forêt, naïf, garçon"


def test_wrap_display_math():
    """align* and equation environments are wrapped in $$ delimiters."""
    out = wrap_display_math(r"\begin{align*}x&=1\end{align*} \begin{equation}y=2\end{equation}")
    assert r"$$\begin{align*}x&=1\end{align*}$$" in out
    assert r"$$\begin{equation}y=2\end{equation}$$" in out
