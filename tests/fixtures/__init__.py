"""
Test fixtures for deterministic testing.

- create_fixture_db: temp SQLite database with the declared schema and
  pinned seed rows
"""

from .fixture_db import create_fixture_db, get_fixture_db_path, guard_no_live_db

__all__ = ["create_fixture_db", "get_fixture_db_path", "guard_no_live_db"]
