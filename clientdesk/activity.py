"""Per-client activity history."""

import json
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from .db import get_connection, now_iso


@dataclass
class Activity:
    id: int
    client_id: int
    action: str
    description: str
    entity_type: str | None = None
    entity_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None

    @property
    def day(self) -> str:
        return (self.created_at or "")[:10]


def record_activity(
    conn: sqlite3.Connection,
    client_id: int,
    action: str,
    description: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> int:
    """Append an activity row inside the caller's transaction. Returns its ID."""
    cursor = conn.execute(
        """
        INSERT INTO activity_log (
            client_id, action, description, entity_type, entity_id,
            metadata_json, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            client_id,
            action,
            description,
            entity_type,
            entity_id,
            json.dumps(metadata or {}, default=str),
            now_iso(),
        ),
    )
    return cursor.lastrowid


def _row_to_activity(row) -> Activity:
    return Activity(
        id=row["id"],
        client_id=row["client_id"],
        action=row["action"],
        description=row["description"],
        entity_type=row["entity_type"],
        entity_id=row["entity_id"],
        metadata=json.loads(row["metadata_json"] or "{}"),
        created_at=row["created_at"],
    )


def list_activity(client_id: int, limit: int = 200) -> list[Activity]:
    """Newest first."""
    with get_connection() as conn:
        rows = conn.execute(
            """
            SELECT * FROM activity_log
            WHERE client_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (client_id, limit),
        ).fetchall()
    return [_row_to_activity(r) for r in rows]


def group_by_day(activities: list[Activity]) -> list[dict[str, Any]]:
    """[{date, activities}] preserving the incoming (newest first) order."""
    groups: dict[str, list[Activity]] = {}
    for activity in activities:
        groups.setdefault(activity.day, []).append(activity)
    return [{"date": day, "activities": items} for day, items in groups.items()]
