"""Shared fixtures for crud unit tests"""

import pytest
from sqlmodel import Session

from texpub.core.models import BlockKind, CompiledDocument, ContentBlock
from texpub.crud.database import init_db, make_engine


@pytest.fixture(name="engine")
def engine_fixture(tmp_path):
    """File-backed SQLite engine with tables and the FTS index created."""
    engine = make_engine(f"sqlite:///{tmp_path}/test.db")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    """Fresh session per test; changes are not committed."""
    with Session(engine) as s:
        yield s


def make_doc(doc_id: str, title: str, chapter: str, text: str = "", **fields) -> CompiledDocument:
    block = ContentBlock(id="block_1", kind=BlockKind.text, latex=text, html=f"<p>{text}</p>", order=1)
    data = {
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
        "source_hash": f"hash-{doc_id}",
    }
    data.update(fields)
    return CompiledDocument(id=doc_id, title=title, chapter=chapter, content=[block], **data)


@pytest.fixture(name="docs")
def docs_fixture():
    return [
        make_doc("a1", "Derivative of a product", "Analysis", "product rule for functions",
                 subchapter="Derivation", difficulty=2, author="Martin", theme="Calculus",
                 created_at="2024-01-03T00:00:00+00:00"),
        make_doc("a2", "Limits at infinity", "Analysis", "asymptotic behaviour",
                 subchapter="Limits", difficulty=3, author="Durand",
                 created_at="2024-01-02T00:00:00+00:00"),
        make_doc("g1", "Area of a triangle", "Geometry", "base times height",
                 difficulty=1, author="Martin", theme="Areas"),
    ]
