"""
Test configuration: puts the repo root on sys.path and guards the live DB.

Every test runs with CLIENTDESK_HOME pointed at a temp directory, and
sqlite3.connect refuses the user's real database.
"""

import sqlite3
import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import clientdesk.*, api.*, tests.*
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


# =============================================================================
# DETERMINISM GUARD: Block live database access
# =============================================================================

HOME_DB_ABSOLUTE = Path.home() / ".clientdesk" / "data" / "clientdesk.db"

_FORBIDDEN_DB_PATTERNS = [
    str(HOME_DB_ABSOLUTE),
    ".clientdesk/data/clientdesk.db",
]


def _is_forbidden_path(path_str: str) -> bool:
    return any(pattern in path_str for pattern in _FORBIDDEN_DB_PATTERNS)


_original_sqlite_connect = sqlite3.connect


def _guarded_sqlite_connect(database, *args, **kwargs):
    """Intercept sqlite3.connect to block live DB access."""
    db_str = str(database)
    if _is_forbidden_path(db_str):
        raise RuntimeError(
            f"DETERMINISM VIOLATION: Test attempted to access live DB at {database}.\n"
            "Tests must use the db fixtures from tests/conftest.py."
        )
    return _original_sqlite_connect(database, *args, **kwargs)


@pytest.fixture(autouse=True)
def guard_live_db_access(monkeypatch):
    """Automatically guard all tests against live DB access."""
    monkeypatch.setattr(sqlite3, "connect", _guarded_sqlite_connect)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point CLIENTDESK_HOME at a temp dir so uploads and config stay local."""
    home = tmp_path / "home"
    monkeypatch.setenv("CLIENTDESK_HOME", str(home))
    monkeypatch.delenv("CLIENTDESK_DB", raising=False)
    monkeypatch.delenv("CLIENTDESK_API_TOKEN", raising=False)
    return home


# =============================================================================
# FIXTURE DBs
# =============================================================================


def _use_db(tmp_path, monkeypatch, name: str, seed: bool) -> Path:
    from tests.fixtures.fixture_db import create_fixture_db

    db_path = tmp_path / name
    create_fixture_db(db_path, seed=seed).close()
    monkeypatch.setenv("CLIENTDESK_DB", str(db_path))
    return db_path


@pytest.fixture
def empty_db(tmp_path, monkeypatch):
    """Fresh schema, no rows. CLIENTDESK_DB points at it."""
    return _use_db(tmp_path, monkeypatch, "empty.db", seed=False)


@pytest.fixture
def fixture_db(tmp_path, monkeypatch):
    """Fresh schema with the pinned seed rows (see tests/fixtures/fixture_db.py)."""
    return _use_db(tmp_path, monkeypatch, "fixture.db", seed=True)
