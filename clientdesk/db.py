"""
SQLite access for ClientDesk.

Every module opens connections through get_connection(); nothing else calls
sqlite3.connect(). Functions that write several rows as one unit (a billing
record plus its activity entry plus the client's overdue flag) take an
optional ``conn`` and wrap it with use_connection() so they join the
caller's transaction instead of committing on their own.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from clientdesk import paths, safe_sql, schema, schema_engine

logger = logging.getLogger(__name__)

# DB files already converged by this process
_converged: set[Path] = set()

CORE_TABLES = ("clients", "billing", "payments", "payment_allocations", "tasks")


def now_iso() -> str:
    """Local timestamp, second precision, ISO 8601."""
    return datetime.now().replace(microsecond=0).isoformat()


def get_db_path() -> Path:
    return paths.db_path()


@contextmanager
def get_connection() -> Iterator[sqlite3.Connection]:
    """
    Open the database with Row access and foreign keys enforced.

    The block's work is committed if it finishes, rolled back if it raises.

        with get_connection() as conn:
            conn.execute("UPDATE clients SET status = ? WHERE id = ?", ("active", 3))
    """
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()
    finally:
        conn.close()


@contextmanager
def use_connection(conn: sqlite3.Connection | None = None) -> Iterator[sqlite3.Connection]:
    """Yield *conn* untouched, or a fresh get_connection() when it is None."""
    if conn is not None:
        yield conn
        return
    with get_connection() as own:
        yield own


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    ).fetchone()
    return row is not None


def schema_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def run_startup_migrations() -> dict:
    """
    Bring the database up to schema.SCHEMA_VERSION.

    Runs converge() on every call; the API calls it once at startup and the
    CLI goes through ensure_migrations().
    """
    db_path = get_db_path()
    logger.info(
        "Database startup: path=%s exists=%s target_version=%s",
        db_path,
        db_path.exists(),
        schema.SCHEMA_VERSION,
    )

    with get_connection() as conn:
        before = schema_version(conn)
        results = schema_engine.converge(conn)
        results["previous_version"] = before

        if results["tables_created"]:
            logger.info("Tables created: %s", results["tables_created"])
        if results["columns_added"]:
            logger.info("Columns added: %s", results["columns_added"])
        if results["errors"]:
            logger.warning("Convergence errors: %s", results["errors"])
        missing = [t for t in CORE_TABLES if not table_exists(conn, t)]
        if missing:
            logger.error("Tables still missing after convergence: %s", missing)

    _converged.add(db_path)
    logger.info("Schema at user_version %s (was %s)", results["schema_version"], before)
    return results


def ensure_migrations() -> None:
    if get_db_path() not in _converged:
        run_startup_migrations()


def get_db_info() -> dict:
    """Path, schema version and per-table row counts."""
    db_path = get_db_path()
    info = {
        "path": str(db_path),
        "exists": db_path.exists(),
        "sqlite_version": sqlite3.sqlite_version,
        "schema_version": None,
        "target_schema_version": schema.SCHEMA_VERSION,
        "row_counts": {},
    }
    if not info["exists"]:
        return info

    with get_connection() as conn:
        info["schema_version"] = schema_version(conn)
        info["row_counts"] = {
            table: conn.execute(safe_sql.select(table, "COUNT(*)")).fetchone()[0]
            for table in schema.TABLES
            if table_exists(conn, table)
        }
    return info
