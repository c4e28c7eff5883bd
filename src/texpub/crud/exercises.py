"""Exercise persistence: load compiled records, upsert with FTS rows, search"""

import logging
import re
from pathlib import Path
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import column, delete, func, insert, or_, table, text
from sqlmodel import Session, select

from texpub.core.cache import META_FILE
from texpub.core.models import CompiledDocument, ContentBlock, utc_now
from texpub.crud.database import FTS_TABLE
from texpub.crud.models import Exercise


logger = logging.getLogger(__name__)

LIKE_QUERY_MAX = 2              # queries this short use LIKE, longer ones FTS prefix match

fts_exercises = table(
    FTS_TABLE,
    column("uuid"), column("title"), column("theme"), column("chapter"), column("content_text"),
)

_TAG_RE = re.compile(r'<[^>]*>')
_WS_RE = re.compile(r'\s+')


def search_text(content: list[ContentBlock]) -> str:
    """Plain text of each block's HTML followed by its LaTeX, blocks joined by spaces."""
    parts = []
    for block in content:
        clean = _WS_RE.sub(' ', _TAG_RE.sub(' ', block.html)).strip()
        parts.append(f"{clean} {block.latex}".strip())
    return ' '.join(parts)


def load_compiled(cache_dir: Path) -> list[CompiledDocument]:
    """Every valid compiled record under cache_dir. Records without id, title, chapter or content are skipped."""
    documents = []
    for path in sorted(Path(cache_dir).rglob("*.json")):
        if path.name == META_FILE:
            continue
        try:
            doc = CompiledDocument.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.error("Error reading %s: %s", path.name, e)
            continue
        if not (doc.id and doc.title and doc.chapter and doc.content):
            logger.warning("Invalid exercise in %s", path.name)
            continue
        documents.append(doc)
    return documents


def get_exercise(session: Session, uuid: str) -> Exercise | None:
    return session.get(Exercise, uuid)


def upsert_exercise(session: Session, doc: CompiledDocument) -> tuple[Exercise, str]:
    """Insert or replace one exercise and its search row.

    Returns (exercise, status) where status is 'created', 'updated', or 'unchanged'.
    Flushes but does not commit; the caller controls the transaction.
    """
    exercise = get_exercise(session, doc.id)
    if exercise and doc.source_hash and exercise.source_hash == doc.source_hash:
        return exercise, 'unchanged'

    status = 'updated' if exercise else 'created'
    if exercise is None:
        exercise = Exercise(uuid=doc.id, title=doc.title, chapter=doc.chapter,
                            created_at=doc.created_at or utc_now(), updated_at=doc.updated_at or utc_now())
    exercise.title = doc.title
    exercise.chapter = doc.chapter
    exercise.subchapter = doc.subchapter or None
    exercise.theme = doc.theme or None
    exercise.difficulty = doc.difficulty
    exercise.author = doc.author or None
    exercise.organization = doc.organization or None
    exercise.video_id = doc.video_id or None
    exercise.updated_at = doc.updated_at or utc_now()
    exercise.content_json = [b.model_dump(mode="json") for b in doc.content]
    exercise.source_hash = doc.source_hash or None
    session.add(exercise)

    session.execute(delete(fts_exercises).where(fts_exercises.c.uuid == doc.id))
    session.execute(insert(fts_exercises).values(
        uuid=doc.id,
        title=doc.title,
        theme=doc.theme,
        chapter=doc.chapter,
        content_text=search_text(doc.content),
    ))
    session.flush()
    return exercise, status


def index_exercises(session: Session, documents: list[CompiledDocument]) -> int:
    """Upsert every document, then optimize the FTS index. Returns count created or updated."""
    count = 0
    for doc in documents:
        _, status = upsert_exercise(session, doc)
        if status != 'unchanged':
            count += 1
    session.execute(text(f"INSERT INTO {FTS_TABLE}({FTS_TABLE}) VALUES('optimize')"))
    logger.info("Indexed %d of %d exercise(s)", count, len(documents))
    return count


def fts_query(query: str) -> Optional[str]:
    """FTS5 prefix phrase for query, or None when it is short enough for LIKE ('  Deriv ' -> '"deriv"*')."""
    clean = query.strip().lower()
    if len(clean) <= LIKE_QUERY_MAX:
        return None
    return '"' + clean.replace('"', '""') + '"*'


def search_exercises(
    session: Session,
    query: str = "",
    chapter: Optional[str] = None,
    subchapter: Optional[str] = None,
    difficulty: Optional[int] = None,
    author: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    ) -> list[Exercise]:
    """Search by text and filters.

    Queries longer than two characters use the FTS index ranked by bm25;
    shorter ones match title, chapter or theme with LIKE, ordered by title.
    Without a query the newest exercises come first.
    """
    stmt = select(Exercise)
    match = fts_query(query) if query.strip() else None
    if match:
        stmt = (
            stmt.join(fts_exercises, fts_exercises.c.uuid == Exercise.uuid)
            .where(text(f"{FTS_TABLE} MATCH :match").bindparams(match=match))
            .order_by(text(f"bm25({FTS_TABLE})"))
        )
    elif query.strip():
        pattern = f"%{query.strip()}%"
        stmt = stmt.where(or_(
            Exercise.title.like(pattern),
            Exercise.chapter.like(pattern),
            Exercise.theme.like(pattern),
        )).order_by(Exercise.title)
    else:
        stmt = stmt.order_by(Exercise.created_at.desc())

    if subchapter:
        stmt = stmt.where(Exercise.subchapter == subchapter)
    if chapter:
        stmt = stmt.where(Exercise.chapter == chapter)
    if difficulty is not None:
        stmt = stmt.where(Exercise.difficulty == difficulty)
    if author:
        stmt = stmt.where(Exercise.author == author)

    return list(session.exec(stmt.limit(limit).offset(offset)).all())


def list_chapters(session: Session) -> list[tuple[str, int]]:
    """Sorted (chapter, exercise count) pairs."""
    stmt = select(Exercise.chapter, func.count()).group_by(Exercise.chapter).order_by(Exercise.chapter)
    return [(chapter, count) for chapter, count in session.exec(stmt).all()]
