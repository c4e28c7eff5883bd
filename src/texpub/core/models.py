"""Records produced by the compile pipeline and persisted as JSON"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BlockKind(str, Enum):
    """Restrict content blocks to the exercise vocabulary"""
    text = "text"
    question = "question"
    hint = "hint"
    answer = "answer"
    code = "code"


class ContentBlock(BaseModel):
    """One rendered content command, in source order."""
    id: str
    kind: BlockKind
    latex: str
    html: str
    order: int                      # 1-based, strictly increasing


class ArtifactIndex(BaseModel):
    """Ids of the artifacts owned by a document; the heavy payloads live in the bundle."""
    tikz: list[str] = []
    geogebra: list[str] = []
    code: list[str] = []
    video: Optional[str] = None


class CompiledDocument(BaseModel):
    """Structured record compiled from one .tex source."""
    id: str
    title: str = ""
    chapter: str = ""
    subchapter: str = ""
    theme: str = ""
    difficulty: Optional[int] = None
    author: str = ""
    organization: str = ""
    video_id: str = ""
    created_at: str = ""
    updated_at: str = ""
    content: list[ContentBlock] = []
    artifacts: ArtifactIndex = Field(default_factory=ArtifactIndex)
    source_hash: str = ""


class DiagramArtifact(BaseModel):
    id: str
    url: str
    latex: str
    svg: str = ""                   # filled by the render pass
    error: str = ""                 # last render failure; svg then holds the error placeholder


class CodeArtifact(BaseModel):
    id: str
    name: str
    language: str
    content: str
    html: str


class ArtifactBundle(BaseModel):
    """Diagrams and code blocks of one document, stored apart from the record."""
    tikz: list[DiagramArtifact] = []
    code: list[CodeArtifact] = []

    def is_empty(self) -> bool:
        return not self.tikz and not self.code


class CacheEntry(BaseModel):
    source_hash: str
    created_at: str
    updated_at: str
    id: str
    title: str = ""


class BuildStats(BaseModel):
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    timestamp: Optional[str] = None


class CacheMetadata(BaseModel):
    """Contents of .cache-meta.json: one entry per compiled output path."""
    version: str = "1.0.0"
    last_update: str = ""
    total_exercises: int = 0
    hash_algorithm: str = "sha256"
    files: dict[str, CacheEntry] = {}
    build_stats: Optional[BuildStats] = None


class RenderStats(BaseModel):
    files: int = 0
    compiled: int = 0
    skipped: int = 0
    errors: int = 0

    def __add__(self, other: "RenderStats") -> "RenderStats":
        return RenderStats(
            files=self.files + other.files,
            compiled=self.compiled + other.compiled,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
        )


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
