"""Root test configuration: isolate config and env, clean up runtime artifacts"""

import shutil
from pathlib import Path

import pytest


_PROJECT_ROOT = Path(__file__).parent.parent

_CLEANUP_DIRS = ["data", "cache", "static"]


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch):
    """Drop TEXPUB_* variables so tests never see the developer's configuration."""
    for name in ("DB_URL", "INPUT_DIR", "CACHE_DIR", "ARTIFACTS_DIR", "STATIC_DIR", "CONVERTER", "LOG_LEVEL"):
        monkeypatch.delenv(f"TEXPUB_{name}", raising=False)


@pytest.fixture(scope="session", autouse=True)
def cleanup_artifacts():
    """Remove database and output directories accidentally created at the project root."""
    existing = {name for name in _CLEANUP_DIRS if (_PROJECT_ROOT / name).exists()}
    yield
    for name in _CLEANUP_DIRS:
        p = _PROJECT_ROOT / name
        if name not in existing and p.exists():
            shutil.rmtree(p)
