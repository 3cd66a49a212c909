"""
Task management: list, kanban and calendar views over the tasks table.

Within a status column, ``position`` is 0-based and contiguous. Every
operation that adds, removes or moves a task renumbers the affected columns.
"""

import calendar
import logging
import sqlite3
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any

from . import safe_sql
from .activity import record_activity
from .clients import get_client
from .db import get_connection, now_iso, use_connection

logger = logging.getLogger(__name__)

TASK_STATUSES = ("todo", "in_progress", "review", "done")
TASK_PRIORITIES = ("low", "normal", "high", "urgent")

PRIORITY_RANK = {"urgent": 0, "high": 1, "normal": 2, "low": 3}

SORT_KEYS = ("due_date", "priority", "created_at")

EDITABLE_FIELDS = ("title", "description", "status", "priority", "client_id", "assignee", "due_date")


@dataclass
class Task:
    id: int
    title: str
    status: str = "todo"
    priority: str = "normal"
    description: str | None = None
    client_id: int | None = None
    assignee: str | None = None
    due_date: str | None = None
    position: int = 0
    completed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    client_name: str | None = None

    @property
    def is_done(self) -> bool:
        return self.status == "done"

    def is_overdue(self, today: date) -> bool:
        return bool(not self.is_done and self.due_date and self.due_date[:10] < today.isoformat())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _row_to_task(row) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        status=row["status"],
        priority=row["priority"],
        description=row["description"],
        client_id=row["client_id"],
        assignee=row["assignee"],
        due_date=row["due_date"],
        position=row["position"],
        completed_at=row["completed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        client_name=row["client_name"],
    )


_SELECT_WITH_CLIENT = """
    SELECT t.*, c.name AS client_name
    FROM tasks t
    LEFT JOIN clients c ON c.id = t.client_id
"""


def _validate(fields: dict[str, Any], conn: sqlite3.Connection, partial: bool) -> dict[str, Any]:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown task fields: {sorted(unknown)}")

    if "title" in fields or not partial:
        title = fields.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValueError("title is required")
        fields["title"] = title.strip()
    if "status" in fields and fields["status"] not in TASK_STATUSES:
        raise ValueError(f"status must be one of {TASK_STATUSES}")
    if "priority" in fields and fields["priority"] not in TASK_PRIORITIES:
        raise ValueError(f"priority must be one of {TASK_PRIORITIES}")
    if fields.get("client_id") is not None and get_client(fields["client_id"], conn) is None:
        raise ValueError("Client not found")
    if fields.get("due_date"):
        try:
            fields["due_date"] = date.fromisoformat(str(fields["due_date"])[:10]).isoformat()
        except ValueError:
            raise ValueError("due_date must be an ISO date") from None
    elif "due_date" in fields:
        fields["due_date"] = None
    if "assignee" in fields:
        fields["assignee"] = (fields["assignee"] or "").strip() or None
    return fields


# ============================================================================
# Queries
# ============================================================================


def get_task(task_id: int, conn: sqlite3.Connection | None = None) -> Task | None:
    with use_connection(conn) as c:
        row = c.execute(_SELECT_WITH_CLIENT + " WHERE t.id = ?", (task_id,)).fetchone()
    return _row_to_task(row) if row else None


def all_tasks(conn: sqlite3.Connection | None = None) -> list[Task]:
    with use_connection(conn) as c:
        rows = c.execute(_SELECT_WITH_CLIENT + " ORDER BY t.id").fetchall()
    return [_row_to_task(r) for r in rows]


def sort_tasks(tasks: list[Task], sort: str = "created_at") -> list[Task]:
    """
    due_date: soonest first, undated last.
    priority: urgent first.
    created_at: newest first.
    """
    if sort not in SORT_KEYS:
        raise ValueError(f"sort must be one of {SORT_KEYS}")
    if sort == "due_date":
        return sorted(tasks, key=lambda t: (t.due_date is None, t.due_date or "", t.id))
    if sort == "priority":
        return sorted(tasks, key=lambda t: (PRIORITY_RANK.get(t.priority, 2), t.due_date or "9999", t.id))
    return sorted(tasks, key=lambda t: (t.created_at or "", t.id), reverse=True)


def list_tasks(
    status: str | None = None,
    priority: str | None = None,
    client_id: int | None = None,
    assignee: str | None = None,
    search: str | None = None,
    overdue: bool = False,
    sort: str = "created_at",
    today: date | None = None,
) -> list[Task]:
    """Filtered, sorted task list. Pagination is applied by the caller."""
    today = today or date.today()
    conditions: list[str] = []
    params: list[Any] = []
    if status and status != "all":
        if status not in TASK_STATUSES:
            raise ValueError(f"status must be one of {TASK_STATUSES}")
        conditions.append("t.status = ?")
        params.append(status)
    if priority and priority != "all":
        if priority not in TASK_PRIORITIES:
            raise ValueError(f"priority must be one of {TASK_PRIORITIES}")
        conditions.append("t.priority = ?")
        params.append(priority)
    if client_id is not None:
        conditions.append("t.client_id = ?")
        params.append(client_id)
    if assignee:
        conditions.append("t.assignee = ? COLLATE NOCASE")
        params.append(assignee)
    if search:
        conditions.append("(t.title LIKE ? OR t.description LIKE ?)")
        params.extend([f"%{search}%", f"%{search}%"])
    if overdue:
        conditions.append("t.status != 'done' AND t.due_date IS NOT NULL AND t.due_date < ?")
        params.append(today.isoformat())

    sql = _SELECT_WITH_CLIENT
    if conditions:
        sql += " WHERE " + safe_sql.where_and(conditions)
    with get_connection() as conn:
        rows = conn.execute(sql, params).fetchall()
    return sort_tasks([_row_to_task(r) for r in rows], sort)


def due_tasks(today: date, overdue: bool) -> list[Task]:
    """Open tasks due on *today*, or before it when *overdue*."""
    op = "<" if overdue else "="
    with get_connection() as conn:
        rows = conn.execute(
            _SELECT_WITH_CLIENT
            + f" WHERE t.status != 'done' AND t.due_date IS NOT NULL AND t.due_date {op} ?"
            + " ORDER BY t.due_date, t.id",
            (today.isoformat(),),
        ).fetchall()
    return [_row_to_task(r) for r in rows]


def kanban_board() -> list[dict[str, Any]]:
    """One column per status in workflow order, tasks by position."""
    with get_connection() as conn:
        rows = conn.execute(_SELECT_WITH_CLIENT + " ORDER BY t.position, t.id").fetchall()
    tasks = [_row_to_task(r) for r in rows]
    return [
        {"status": status, "tasks": [t for t in tasks if t.status == status]}
        for status in TASK_STATUSES
    ]


def calendar_month(year: int, month: int) -> dict[str, Any]:
    """Tasks due in one month, grouped by ISO date."""
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])

    with get_connection() as conn:
        rows = conn.execute(
            _SELECT_WITH_CLIENT
            + " WHERE t.due_date BETWEEN ? AND ? ORDER BY t.due_date, t.position, t.id",
            (first.isoformat(), last.isoformat()),
        ).fetchall()

    days: dict[str, list[Task]] = {}
    for row in rows:
        task = _row_to_task(row)
        days.setdefault(task.due_date, []).append(task)
    return {"year": year, "month": month, "days": days}


# ============================================================================
# Column ordering
# ============================================================================


def _column_ids(conn: sqlite3.Connection, status: str, exclude: int | None = None) -> list[int]:
    rows = conn.execute(
        "SELECT id FROM tasks WHERE status = ? ORDER BY position, id", (status,)
    ).fetchall()
    return [r["id"] for r in rows if r["id"] != exclude]


def _renumber(conn: sqlite3.Connection, task_ids: list[int]) -> None:
    for position, task_id in enumerate(task_ids):
        conn.execute("UPDATE tasks SET position = ? WHERE id = ?", (position, task_id))


def _completion_stamp(old_status: str | None, new_status: str, current: str | None) -> str | None:
    if new_status == "done":
        return current if old_status == "done" and current else now_iso()
    return None


# ============================================================================
# Mutations
# ============================================================================


def _log(conn: sqlite3.Connection, task: Task, action: str, verb: str, metadata=None) -> None:
    if task.client_id is None:
        return
    record_activity(
        conn,
        task.client_id,
        action,
        f'Task "{task.title}" was {verb}',
        entity_type="task",
        entity_id=task.id,
        metadata=metadata,
    )


def create_task(**fields) -> Task:
    """Create a task at the bottom of its status column."""
    fields.setdefault("status", "todo")
    fields.setdefault("priority", "normal")
    now = now_iso()

    with get_connection() as conn:
        fields = _validate(dict(fields), conn, partial=False)
        fields["position"] = len(_column_ids(conn, fields["status"]))
        fields["completed_at"] = _completion_stamp(None, fields["status"], None)
        fields["created_at"] = now
        fields["updated_at"] = now
        task = get_task(safe_sql.insert_row(conn, "tasks", fields), conn)
        _log(conn, task, "task_created", "created")

    logger.info("Created task %s (%s)", task.id, task.status)
    return task


def update_task(task_id: int, **fields) -> Task | None:
    """
    Partial update. A status change moves the task to the bottom of the new
    column.
    """
    with get_connection() as conn:
        existing = get_task(task_id, conn)
        if existing is None:
            return None
        fields = _validate(dict(fields), conn, partial=True)
        if not fields:
            return existing

        new_status = fields.get("status", existing.status)
        if new_status != existing.status:
            fields["position"] = len(_column_ids(conn, new_status))
            fields["completed_at"] = _completion_stamp(existing.status, new_status, None)
        fields["updated_at"] = now_iso()
        safe_sql.update_row(conn, "tasks", task_id, fields)
        if new_status != existing.status:
            _renumber(conn, _column_ids(conn, existing.status))

        updated = get_task(task_id, conn)
        _log(conn, updated, "task_updated", "updated", metadata=fields)
        # Client changed: the old client's history should also see it
        if existing.client_id and existing.client_id != updated.client_id:
            _log(conn, existing, "task_updated", "reassigned", metadata={"client_id": updated.client_id})
    return updated


def move_task(task_id: int, status: str, position: int) -> Task | None:
    """
    Move a task to *position* in the *status* column (clamped to the column).

    Both the source and target columns are renumbered 0..n-1.
    """
    if status not in TASK_STATUSES:
        raise ValueError(f"status must be one of {TASK_STATUSES}")
    if position < 0:
        raise ValueError("position must not be negative")

    with get_connection() as conn:
        existing = get_task(task_id, conn)
        if existing is None:
            return None

        target = _column_ids(conn, status, exclude=task_id)
        target.insert(min(position, len(target)), task_id)

        completed_at = existing.completed_at
        if status != existing.status:
            completed_at = _completion_stamp(existing.status, status, existing.completed_at)
        conn.execute(
            "UPDATE tasks SET status = ?, completed_at = ?, updated_at = ? WHERE id = ?",
            (status, completed_at, now_iso(), task_id),
        )
        _renumber(conn, target)
        if status != existing.status:
            _renumber(conn, _column_ids(conn, existing.status))

        moved = get_task(task_id, conn)
        if status != existing.status:
            _log(
                conn,
                moved,
                "task_updated",
                f"moved to {status}",
                metadata={"from": existing.status, "to": status},
            )
    return moved


def delete_task(task_id: int) -> bool:
    with get_connection() as conn:
        existing = get_task(task_id, conn)
        if existing is None:
            return False
        conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        _renumber(conn, _column_ids(conn, existing.status))
        _log(conn, existing, "task_deleted", "deleted")
    return True


def count_open_tasks(today: date | None = None) -> dict[str, int]:
    today = today or date.today()
    with get_connection() as conn:
        row = conn.execute(
            """
            SELECT
                SUM(CASE WHEN status != 'done' THEN 1 ELSE 0 END) AS open_tasks,
                SUM(CASE WHEN status != 'done' AND due_date IS NOT NULL AND due_date < ?
                    THEN 1 ELSE 0 END) AS overdue_tasks
            FROM tasks
            """,
            (today.isoformat(),),
        ).fetchone()
    return {"open_tasks": row["open_tasks"] or 0, "overdue_tasks": row["overdue_tasks"] or 0}
