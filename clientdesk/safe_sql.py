"""
SQL text for statements whose table or column names vary at runtime.

sqlite3 only binds values, so names coming from a field dict (a partial
client update, a task's changed columns) are checked against IDENTIFIER
before they reach an f-string. Values always travel as ``?`` parameters.

    task_id = insert_row(conn, "tasks", {"title": "Call Acme", "status": "todo"})
    update_row(conn, "tasks", task_id, {"status": "done"})
"""

# ruff: noqa: S608

from __future__ import annotations

import re
import sqlite3
from typing import Any

IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate(name: str) -> str:
    """Return *name* if it is a plain identifier, else raise ValueError."""
    if not isinstance(name, str) or not IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def _columns(names) -> list[str]:
    names = [validate(n) for n in names]
    if not names:
        raise ValueError("Statement needs at least one column")
    return names


# Schema


def pragma_table_info(table: str) -> str:
    return f"PRAGMA table_info([{validate(table)}])"


def pragma_user_version_set(version: int) -> str:
    if not isinstance(version, int) or version < 0:
        raise ValueError(f"Invalid schema version: {version!r}")
    return f"PRAGMA user_version = {version}"


# Statements


def select(table: str, columns: str = "*", where: str | None = None, order_by: str | None = None) -> str:
    """SELECT from a checked table name. *where* must bind values with ``?``."""
    sql = f"SELECT {columns} FROM {validate(table)}"
    if where:
        sql += f" WHERE {where}"
    if order_by:
        sql += f" ORDER BY {order_by}"
    return sql


def insert(table: str, columns: list[str]) -> str:
    names = _columns(columns)
    return (
        f"INSERT INTO {validate(table)} ({', '.join(names)}) "
        f"VALUES ({', '.join('?' * len(names))})"
    )


def update(table: str, columns: list[str], where: str = "id = ?") -> str:
    assignments = ", ".join(f"{name} = ?" for name in _columns(columns))
    return f"UPDATE {validate(table)} SET {assignments} WHERE {where}"


def insert_row(conn: sqlite3.Connection, table: str, values: dict[str, Any]) -> int:
    """Insert one row from a column->value dict and return its id."""
    cursor = conn.execute(insert(table, list(values)), list(values.values()))
    return cursor.lastrowid


def update_row(conn: sqlite3.Connection, table: str, row_id: int, values: dict[str, Any]) -> int:
    """Update the row with *row_id* from a column->value dict; returns rows changed."""
    cursor = conn.execute(update(table, list(values)), [*values.values(), row_id])
    return cursor.rowcount


# Clause helpers


def in_placeholders(count: int) -> str:
    """``?,?,?`` for an ``IN (...)`` list of *count* values."""
    if count <= 0:
        raise ValueError(f"IN clause needs at least 1 placeholder, got {count}")
    return ",".join("?" * count)


def where_and(conditions: list[str]) -> str:
    return " AND ".join(conditions)
