"""Advertising campaigns run for clients."""

import json
import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

from . import safe_sql
from .activity import record_activity
from .clients import get_client
from .db import get_connection, now_iso, use_connection

logger = logging.getLogger(__name__)

CAMPAIGN_STATUSES = ("active", "paused", "completed")

EDITABLE_FIELDS = (
    "name",
    "platform",
    "budget",
    "start_date",
    "end_date",
    "status",
    "description",
    "target_audience",
    "keywords",
    "performance",
)


@dataclass
class Campaign:
    id: int
    client_id: int
    name: str
    platform: str
    budget: float
    start_date: str
    end_date: str | None = None
    status: str = "active"
    description: str | None = None
    target_audience: str | None = None
    keywords: list[str] = field(default_factory=list)
    performance: dict[str, Any] = field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None
    client_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _row_to_campaign(row) -> Campaign:
    keys = row.keys()
    return Campaign(
        id=row["id"],
        client_id=row["client_id"],
        name=row["name"],
        platform=row["platform"],
        budget=row["budget"] or 0.0,
        start_date=row["start_date"],
        end_date=row["end_date"],
        status=row["status"],
        description=row["description"],
        target_audience=row["target_audience"],
        keywords=json.loads(row["keywords_json"] or "[]"),
        performance=json.loads(row["performance_json"] or "{}"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        client_name=row["client_name"] if "client_name" in keys else None,
    )


def _parse_date(value, name: str) -> str | None:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value)[:10]).isoformat()
    except ValueError:
        raise ValueError(f"{name} must be an ISO date") from None


def _to_columns(fields: dict[str, Any]) -> dict[str, Any]:
    """Map validated fields to table columns."""
    columns = dict(fields)
    if "keywords" in columns:
        columns["keywords_json"] = json.dumps(columns.pop("keywords") or [])
    if "performance" in columns:
        columns["performance_json"] = json.dumps(columns.pop("performance") or {})
    return columns


def _validate(fields: dict[str, Any], current: Campaign | None = None) -> dict[str, Any]:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown campaign fields: {sorted(unknown)}")

    for name in ("name", "platform"):
        if name in fields or current is None:
            value = fields.get(name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} is required")

    if "budget" in fields or current is None:
        budget = round(float(fields.get("budget") or 0), 2)
        if budget < 0:
            raise ValueError("budget must not be negative")
        fields["budget"] = budget

    if "status" in fields and fields["status"] not in CAMPAIGN_STATUSES:
        raise ValueError(f"status must be one of {CAMPAIGN_STATUSES}")

    if "start_date" in fields or current is None:
        fields["start_date"] = _parse_date(fields.get("start_date"), "start_date")
        if fields["start_date"] is None:
            raise ValueError("start_date is required")
    if "end_date" in fields:
        fields["end_date"] = _parse_date(fields["end_date"], "end_date")

    start = fields.get("start_date", current.start_date if current else None)
    end = fields.get("end_date", current.end_date if current else None)
    if start and end and end < start:
        raise ValueError("end_date must not be before start_date")

    if "keywords" in fields:
        keywords = fields["keywords"] or []
        if isinstance(keywords, str):
            keywords = [k.strip() for k in keywords.split(",")]
        fields["keywords"] = [k for k in keywords if k]
    if "performance" in fields and not isinstance(fields["performance"] or {}, dict):
        raise ValueError("performance must be an object")
    return fields


_SELECT_WITH_CLIENT = """
    SELECT p.*, c.name AS client_name
    FROM campaigns p
    JOIN clients c ON c.id = p.client_id
"""


def get_campaign(campaign_id: int, conn: sqlite3.Connection | None = None) -> Campaign | None:
    with use_connection(conn) as c:
        row = c.execute(_SELECT_WITH_CLIENT + " WHERE p.id = ?", (campaign_id,)).fetchone()
    return _row_to_campaign(row) if row else None


def list_client_campaigns(client_id: int) -> list[Campaign]:
    with get_connection() as conn:
        rows = conn.execute(
            _SELECT_WITH_CLIENT + " WHERE p.client_id = ? ORDER BY p.start_date DESC, p.id DESC",
            (client_id,),
        ).fetchall()
    return [_row_to_campaign(r) for r in rows]


def list_campaigns(
    status: str | None = None, platform: str | None = None, search: str | None = None
) -> list[Campaign]:
    conditions: list[str] = []
    params: list[Any] = []
    if status and status != "all":
        conditions.append("p.status = ?")
        params.append(status)
    if platform:
        conditions.append("p.platform = ? COLLATE NOCASE")
        params.append(platform)
    if search:
        conditions.append("(p.name LIKE ? OR c.name LIKE ?)")
        params.extend([f"%{search}%", f"%{search}%"])

    sql = _SELECT_WITH_CLIENT
    if conditions:
        sql += " WHERE " + safe_sql.where_and(conditions)
    sql += " ORDER BY p.start_date DESC, p.id DESC"
    with get_connection() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_row_to_campaign(r) for r in rows]


def count_active_campaigns() -> int:
    with get_connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM campaigns WHERE status = 'active'").fetchone()[0]


def create_campaign(client_id: int, **fields) -> Campaign | None:
    """Returns None when the client does not exist."""
    fields.setdefault("status", "active")
    fields = _validate(dict(fields))
    columns = _to_columns(fields)
    now = now_iso()
    columns.update({"client_id": client_id, "created_at": now, "updated_at": now})

    with get_connection() as conn:
        if get_client(client_id, conn) is None:
            return None
        campaign_id = safe_sql.insert_row(conn, "campaigns", columns)
        record_activity(
            conn,
            client_id,
            "campaign_created",
            f'Campaign "{fields["name"]}" was created',
            entity_type="campaign",
            entity_id=campaign_id,
        )
        campaign = get_campaign(campaign_id, conn)
    logger.info("Created campaign %s for client %s", campaign_id, client_id)
    return campaign


def update_campaign(campaign_id: int, **fields) -> Campaign | None:
    with get_connection() as conn:
        existing = get_campaign(campaign_id, conn)
        if existing is None:
            return None
        fields = _validate(dict(fields), current=existing)
        if not fields:
            return existing

        columns = _to_columns(fields)
        columns["updated_at"] = now_iso()
        safe_sql.update_row(conn, "campaigns", campaign_id, columns)
        updated = get_campaign(campaign_id, conn)
        record_activity(
            conn,
            existing.client_id,
            "campaign_updated",
            f'Campaign "{updated.name}" was updated',
            entity_type="campaign",
            entity_id=campaign_id,
            metadata=fields,
        )
    return updated


def delete_campaign(campaign_id: int) -> bool:
    with get_connection() as conn:
        existing = get_campaign(campaign_id, conn)
        if existing is None:
            return False
        conn.execute("DELETE FROM campaigns WHERE id = ?", (campaign_id,))
        record_activity(
            conn,
            existing.client_id,
            "campaign_deleted",
            f'Campaign "{existing.name}" was deleted',
            entity_type="campaign",
            entity_id=campaign_id,
        )
    return True
