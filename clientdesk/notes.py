"""Client notes, reminders and note-level tasks."""

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

NOTE_TYPES = ("note", "reminder", "task")
NOTE_PRIORITIES = ("low", "normal", "high")

# Lower sorts first
PRIORITY_RANK = {"high": 0, "normal": 1, "low": 2}

EDITABLE_FIELDS = ("title", "content", "type", "priority", "is_completed", "due_date")


@dataclass
class Note:
    id: int
    client_id: int
    title: str
    content: str
    type: str = "note"
    priority: str = "normal"
    is_completed: bool = False
    due_date: str | None = None
    created_at: str | None = None
    client_name: str | None = None

    @property
    def due_day(self) -> str | None:
        return self.due_date[:10] if self.due_date else None

    def is_overdue(self, today: date) -> bool:
        return bool(not self.is_completed and self.due_day and self.due_day < today.isoformat())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _row_to_note(row) -> Note:
    keys = row.keys()
    return Note(
        id=row["id"],
        client_id=row["client_id"],
        title=row["title"],
        content=row["content"],
        type=row["type"] or "note",
        priority=row["priority"] or "normal",
        is_completed=bool(row["is_completed"]),
        due_date=row["due_date"],
        created_at=row["created_at"],
        client_name=row["client_name"] if "client_name" in keys else None,
    )


def sort_notes(notes: list[Note]) -> list[Note]:
    """Incomplete first, then priority high to low, then newest."""
    by_newest = sorted(notes, key=lambda n: (n.created_at or "", n.id), reverse=True)
    return sorted(
        by_newest, key=lambda n: (n.is_completed, PRIORITY_RANK.get(n.priority, 1))
    )


def _validate(fields: dict[str, Any], partial: bool) -> dict[str, Any]:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown note fields: {sorted(unknown)}")

    for name in ("title", "content"):
        if name in fields or not partial:
            value = fields.get(name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} is required")
    if "type" in fields and fields["type"] not in NOTE_TYPES:
        raise ValueError(f"type must be one of {NOTE_TYPES}")
    if "priority" in fields and fields["priority"] not in NOTE_PRIORITIES:
        raise ValueError(f"priority must be one of {NOTE_PRIORITIES}")
    if "is_completed" in fields:
        fields["is_completed"] = 1 if fields["is_completed"] else 0
    if "due_date" in fields and fields["due_date"]:
        try:
            date.fromisoformat(str(fields["due_date"])[:10])
        except ValueError:
            raise ValueError("due_date must be an ISO date") from None
    elif "due_date" in fields:
        fields["due_date"] = None
    return fields


_SELECT_WITH_CLIENT = """
    SELECT n.*, c.name AS client_name
    FROM client_notes n
    JOIN clients c ON c.id = n.client_id
"""


def get_note(note_id: int, conn: sqlite3.Connection | None = None) -> Note | None:
    with use_connection(conn) as c:
        row = c.execute(_SELECT_WITH_CLIENT + " WHERE n.id = ?", (note_id,)).fetchone()
    return _row_to_note(row) if row else None


def list_notes(client_id: int) -> list[Note]:
    with get_connection() as conn:
        rows = conn.execute(
            _SELECT_WITH_CLIENT + " WHERE n.client_id = ?", (client_id,)
        ).fetchall()
    return sort_notes([_row_to_note(r) for r in rows])


def note_stats(notes: list[Note], today: date | None = None) -> dict[str, int]:
    today = today or date.today()
    tasks = [n for n in notes if n.type == "task"]
    return {
        "completed_tasks": sum(1 for n in tasks if n.is_completed),
        "pending_tasks": sum(1 for n in tasks if not n.is_completed),
        "overdue_tasks": sum(1 for n in tasks if n.is_overdue(today)),
    }


def due_notes(today: date, overdue: bool) -> list[Note]:
    """Open reminders and note-tasks due on *today*, or before it when *overdue*."""
    op = "<" if overdue else "="
    with get_connection() as conn:
        rows = conn.execute(
            _SELECT_WITH_CLIENT
            + f"""
            WHERE n.type IN ('task', 'reminder')
            AND n.is_completed = 0
            AND n.due_date IS NOT NULL
            AND substr(n.due_date, 1, 10) {op} ?
            ORDER BY n.due_date, n.id
            """,
            (today.isoformat(),),
        ).fetchall()
    return [_row_to_note(r) for r in rows]


def create_note(client_id: int, **fields) -> Note | None:
    """Returns None when the client does not exist."""
    fields.setdefault("type", "note")
    fields.setdefault("priority", "normal")
    fields = _validate(dict(fields), partial=False)
    fields.update({"client_id": client_id, "created_at": now_iso()})

    with get_connection() as conn:
        if get_client(client_id, conn) is None:
            return None
        note_id = safe_sql.insert_row(conn, "client_notes", fields)
        record_activity(
            conn,
            client_id,
            "note_created",
            f'Note "{fields["title"]}" was created',
            entity_type="note",
            entity_id=note_id,
        )
        note = get_note(note_id, conn)
    return note


def update_note(note_id: int, **fields) -> Note | None:
    fields = _validate(dict(fields), partial=True)
    with get_connection() as conn:
        existing = get_note(note_id, conn)
        if existing is None:
            return None
        if not fields:
            return existing
        safe_sql.update_row(conn, "client_notes", note_id, fields)
        updated = get_note(note_id, conn)
        if "is_completed" in fields and len(fields) == 1:
            state = "completed" if updated.is_completed else "reopened"
            description = f'Note "{updated.title}" was {state}'
        else:
            description = f'Note "{updated.title}" was updated'
        record_activity(
            conn,
            existing.client_id,
            "note_updated",
            description,
            entity_type="note",
            entity_id=note_id,
            metadata=fields,
        )
    return updated


def delete_note(note_id: int) -> bool:
    with get_connection() as conn:
        existing = get_note(note_id, conn)
        if existing is None:
            return False
        conn.execute("DELETE FROM client_notes WHERE id = ?", (note_id,))
        record_activity(
            conn,
            existing.client_id,
            "note_deleted",
            f'Note "{existing.title}" was deleted',
            entity_type="note",
            entity_id=note_id,
        )
    return True
