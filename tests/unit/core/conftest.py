"""Shared fixtures for core unit tests"""

import pytest

from texpub.core.errors import ConversionError, RenderError


SAMPLE_TEX = r"""
\uuid{ex-001}
\titre{D\'eriv\'ee d'un produit}
\chapitre{Analyse}
\sousChapitre{D\'erivation}
\theme{Algebra ,Geometry}
\niveau{3}
\auteur{A. Martin}
\video{dQw4w9WgXcQ}
% \titre{commented out}

\texte{Soit $f(x) = x^2 \cdot e^x$.}

\question{Calculer $f'(x)$. % only the derivative
\begin{center}
\begin{tikzpicture}
\draw (0,0) -- (1,1);
\end{tikzpicture}
\end{center}
}

\indication{On pourra utiliser \geogebra{gg-42}.}

\reponse{$f'(x) = (x^2 + 2x) e^x$}
"""


class FakeConverter:
    """Records every fragment and wraps it in a <p>; 'FAIL' in the input raises ConversionError."""
    name = "fake"

    def __init__(self):
        self.calls: list[str] = []

    async def convert(self, latex: str) -> str:
        self.calls.append(latex)
        if "FAIL" in latex:
            raise ConversionError("fake converter refused the fragment")
        return f"<p>{latex}</p>"


class FakeRenderer:
    """Returns a fixed SVG; diagrams whose source contains 'broken' fail at the compile stage."""

    def __init__(self):
        self.rendered: list[str] = []

    async def render(self, job) -> str:
        self.rendered.append(job.artifact.id)
        if "broken" in job.artifact.latex:
            raise RenderError("LaTeX compilation failed: ! Undefined control sequence.", stage="compile")
        return f'<svg class="tikz-diagram"><title>{job.artifact.id}</title></svg>'


@pytest.fixture(name="sample_tex")
def sample_tex_fixture():
    return SAMPLE_TEX


@pytest.fixture(name="converter")
def converter_fixture():
    return FakeConverter()


@pytest.fixture(name="renderer")
def renderer_fixture():
    return FakeRenderer()
