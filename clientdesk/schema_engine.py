"""
Apply clientdesk.schema to a SQLite file.

converge(conn) is for databases that already hold data: it only ever adds
(tables, then columns, then indexes) and never drops anything, so an older
ClientDesk database picks up new columns on the next start. create_fresh(conn)
wipes the file and builds it from scratch; tests and ``clientdesk init`` on
an empty home use it.

Both return a summary dict that db.run_startup_migrations() logs.
"""

import logging
import re
import sqlite3

from clientdesk import safe_sql, schema

logger = logging.getLogger(__name__)

# Column constraints SQLite refuses in ALTER TABLE ADD COLUMN
_NOT_ADDABLE = re.compile(
    r"\bPRIMARY\s+KEY\b|\bAUTOINCREMENT\b|\bUNIQUE\b|\bCHECK\s*\([^)]*\)"
    r"|\bREFERENCES\s+\w+\s*\([^)]*\)(\s+ON\s+(DELETE|UPDATE)\s+(CASCADE|SET\s+NULL|RESTRICT|NO\s+ACTION))*",
    re.IGNORECASE,
)
_EXPR_DEFAULT = re.compile(r"\bDEFAULT\s*\(.*\)", re.IGNORECASE)
_NOT_NULL = re.compile(r"\bNOT\s+NULL\b", re.IGNORECASE)


def _squash(text: str) -> str:
    return " ".join(text.split())


def make_alter_safe(col_def: str) -> str:
    """
    Rewrite a column definition so ALTER TABLE ADD COLUMN accepts it.

    Existing rows need a value for the new column: NOT NULL without a
    default gets DEFAULT '', and expression defaults like (datetime('now'))
    are dropped together with NOT NULL.
    """
    ddl = _squash(_NOT_ADDABLE.sub("", col_def))
    if _EXPR_DEFAULT.search(ddl):
        ddl = _squash(_NOT_NULL.sub("", _EXPR_DEFAULT.sub("", ddl)))
    if _NOT_NULL.search(ddl) and not re.search(r"\bDEFAULT\b", ddl, re.IGNORECASE):
        ddl += " DEFAULT ''"
    return ddl


def build_create_sql(table_name: str, table_def: dict) -> str:
    lines = [f"    {name} {ddl}" for name, ddl in table_def["columns"]]
    lines += [f"    UNIQUE({', '.join(cols)})" for cols in table_def.get("unique", [])]
    return f"CREATE TABLE IF NOT EXISTS [{safe_sql.validate(table_name)}] (\n" + ",\n".join(lines) + "\n)"


def _index_sql(name: str, table: str, columns: str, where: str | None) -> str:
    sql = f"CREATE INDEX IF NOT EXISTS [{safe_sql.validate(name)}] ON [{safe_sql.validate(table)}]({columns})"
    return f"{sql} WHERE {where}" if where else sql


def _tables(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
    ).fetchall()
    return {r[0] for r in rows}


def _columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {r[1] for r in conn.execute(safe_sql.pragma_table_info(table)).fetchall()}


def _indexes(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'index' AND name NOT LIKE 'sqlite_%'"
    ).fetchall()
    return {r[0] for r in rows}


def _summary() -> dict:
    return {"tables_created": [], "columns_added": [], "indexes_created": [], "errors": []}


def _try(conn: sqlite3.Connection, sql: str, summary: dict, key: str, label: str) -> None:
    """Run one DDL statement; record *label* under *key*, or the error."""
    try:
        conn.execute(sql)
    except sqlite3.OperationalError as e:
        summary["errors"].append(f"{label}: {e}")
        logger.warning("schema: %s failed: %s", label, e)
    else:
        summary[key].append(label)


def _create_indexes(conn: sqlite3.Connection, summary: dict) -> None:
    tables = _tables(conn)
    present = _indexes(conn)
    for name, table, columns, where in schema.INDEXES:
        if name not in present and table in tables:
            _try(conn, _index_sql(name, table, columns, where), summary, "indexes_created", name)


def converge(conn: sqlite3.Connection) -> dict:
    """Add whatever schema.TABLES / schema.INDEXES declare and the file lacks."""
    summary = _summary()
    tables = _tables(conn)

    for table_name, table_def in schema.TABLES.items():
        if table_name not in tables:
            _try(conn, build_create_sql(table_name, table_def), summary, "tables_created", table_name)
            continue
        present = _columns(conn, table_name)
        for col_name, ddl in table_def["columns"]:
            if col_name not in present:
                _try(
                    conn,
                    f"ALTER TABLE [{table_name}] ADD COLUMN [{safe_sql.validate(col_name)}] "
                    f"{make_alter_safe(ddl)}",
                    summary,
                    "columns_added",
                    f"{table_name}.{col_name}",
                )

    _create_indexes(conn, summary)
    conn.execute(safe_sql.pragma_user_version_set(schema.SCHEMA_VERSION))
    summary["schema_version"] = schema.SCHEMA_VERSION
    return summary


def create_fresh(conn: sqlite3.Connection) -> dict:
    """Drop every table and view, then build the declared schema."""
    conn.execute("PRAGMA foreign_keys = OFF")
    for name, kind in conn.execute(
        "SELECT name, type FROM sqlite_master WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%'"
    ).fetchall():
        conn.execute(f"DROP {kind.upper()} IF EXISTS [{safe_sql.validate(name)}]")
    conn.execute("PRAGMA foreign_keys = ON")

    summary = _summary()
    for table_name, table_def in schema.TABLES.items():
        conn.execute(build_create_sql(table_name, table_def))
        summary["tables_created"].append(table_name)
    _create_indexes(conn, summary)
    if summary["errors"]:
        raise sqlite3.OperationalError("; ".join(summary["errors"]))

    conn.execute(safe_sql.pragma_user_version_set(schema.SCHEMA_VERSION))
    summary["schema_version"] = schema.SCHEMA_VERSION
    return summary
