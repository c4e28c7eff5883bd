"""Engine creation and schema setup, including the FTS5 search table"""

from pathlib import Path

from sqlalchemy import text
from sqlmodel import SQLModel, create_engine

from texpub.crud import models  # noqa: F401  registers the exercises table


FTS_TABLE = "fts_exercises"
FTS_SCHEMA = (
    f"CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} "
    "USING fts5(uuid UNINDEXED, title, theme, chapter, content_text)"
)


def make_engine(db_url: str):
    """Engine for db_url; the parent directory of a file-backed SQLite URL is created."""
    if db_url.startswith("sqlite:///") and not db_url.endswith(":memory:"):
        Path(db_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(db_url, echo=False)


def init_db(engine) -> None:
    """Create tables and the FTS index if missing."""
    SQLModel.metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(text(FTS_SCHEMA))
