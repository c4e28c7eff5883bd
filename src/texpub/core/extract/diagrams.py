"""TikZ diagram discovery, deduplication, and URL assignment"""

import re
from dataclasses import dataclass, field

from texpub.core.models import DiagramArtifact
from texpub.core.utils.latex import strip_comments


TIKZ_RE = re.compile(r'(\\begin\{tikzpicture\}.*?\\end\{tikzpicture\})', re.DOTALL)
DEFAULT_PUBLIC_PATH = '/artifacts/tikz'


def diagram_key(latex: str) -> str:
    """Dedup key: the region with comments, trailing blanks and emptied lines removed."""
    lines = (line.rstrip() for line in strip_comments(latex).splitlines())
    return '\n'.join(line for line in lines if line)


def diagram_url(document_id: str, diagram_id: str, public_path: str = DEFAULT_PUBLIC_PATH) -> str:
    return f"{public_path.rstrip('/')}/{document_id}-{diagram_id}.svg"


@dataclass
class DiagramIndex:
    """Distinct diagrams of one document plus the <img> replacement for each dedup key."""
    artifacts: list[DiagramArtifact] = field(default_factory=list)
    replacements: dict[str, str] = field(default_factory=dict)

    def image_for(self, latex: str) -> str | None:
        return self.replacements.get(diagram_key(latex))


def extract_diagrams(text: str, document_id: str, public_path: str = DEFAULT_PUBLIC_PATH) -> DiagramIndex:
    """Assign tikz_1, tikz_2, ... to distinct tikzpicture regions in first-seen order."""
    index = DiagramIndex()
    for m in TIKZ_RE.finditer(text):
        raw = m.group(1)
        key = diagram_key(raw)
        if key in index.replacements:
            continue

        n = len(index.artifacts) + 1
        diagram_id = f"tikz_{n}"
        url = diagram_url(document_id, diagram_id, public_path)
        index.artifacts.append(DiagramArtifact(id=diagram_id, url=url, latex=raw))
        index.replacements[key] = f'<img src="{url}" alt="Diagramme TikZ {n}" class="tikz-svg-image">'
    return index
