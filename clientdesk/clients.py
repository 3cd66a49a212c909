"""Client records: CRUD, search and the overdue status rule."""

import csv
import io
import logging
import sqlite3
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path
from typing import Any

from . import safe_sql
from .activity import record_activity
from .db import get_connection, now_iso, use_connection

logger = logging.getLogger(__name__)

CLIENT_STATUSES = ("active", "inactive", "pending", "overdue")

EDITABLE_FIELDS = (
    "name",
    "email",
    "phone",
    "website",
    "industry",
    "google_ad_account_id",
    "monthly_service_charge",
    "status",
    "contact_person",
    "address",
    "notes",
)

REQUIRED_FIELDS = ("name", "email", "phone")


@dataclass
class Client:
    id: int
    name: str
    email: str
    phone: str
    monthly_service_charge: float
    status: str = "active"
    website: str | None = None
    industry: str | None = None
    google_ad_account_id: str | None = None
    contact_person: str | None = None
    address: str | None = None
    notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on name, email, industry, contact."""
        q = query.lower()
        haystacks = (self.name, self.email, self.industry, self.contact_person)
        return any(h and q in h.lower() for h in haystacks)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _row_to_client(row) -> Client:
    return Client(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        phone=row["phone"],
        monthly_service_charge=row["monthly_service_charge"] or 0,
        status=row["status"] or "active",
        website=row["website"],
        industry=row["industry"],
        google_ad_account_id=row["google_ad_account_id"],
        contact_person=row["contact_person"],
        address=row["address"],
        notes=row["notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _validate(fields: dict[str, Any], partial: bool) -> dict[str, Any]:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown client fields: {sorted(unknown)}")

    for name in REQUIRED_FIELDS:
        if name in fields or not partial:
            value = fields.get(name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} is required")

    if "monthly_service_charge" in fields or not partial:
        charge = fields.get("monthly_service_charge")
        if charge is None:
            raise ValueError("monthly_service_charge is required")
        charge = round(float(charge), 2)
        if charge < 0:
            raise ValueError("monthly_service_charge must not be negative")
        fields["monthly_service_charge"] = charge

    if "status" in fields:
        if fields["status"] is None and not partial:
            fields["status"] = "active"
        elif fields["status"] not in CLIENT_STATUSES:
            raise ValueError(f"status must be one of {CLIENT_STATUSES}")

    # Empty optional strings are stored as NULL
    for key, value in list(fields.items()):
        if key not in REQUIRED_FIELDS and isinstance(value, str) and not value.strip():
            fields[key] = None
    return fields


# ============================================================================
# Queries
# ============================================================================


def get_client(client_id: int, conn: sqlite3.Connection | None = None) -> Client | None:
    with use_connection(conn) as c:
        row = c.execute("SELECT * FROM clients WHERE id = ?", (client_id,)).fetchone()
    return _row_to_client(row) if row else None


def list_clients(search: str | None = None, status: str | None = None) -> list[Client]:
    """All clients, optionally narrowed by search text and status ('all' = any)."""
    with get_connection() as conn:
        rows = conn.execute("SELECT * FROM clients ORDER BY name COLLATE NOCASE, id").fetchall()
    clients = [_row_to_client(r) for r in rows]

    if search:
        clients = [c for c in clients if c.matches(search)]
    if status and status != "all":
        clients = [c for c in clients if c.status == status]
    return clients


def client_names(conn: sqlite3.Connection) -> dict[int, str]:
    return {row["id"]: row["name"] for row in conn.execute("SELECT id, name FROM clients")}


# ============================================================================
# Mutations
# ============================================================================


def create_client(**fields) -> Client:
    """Create a client. Raises ValueError on invalid input."""
    fields.setdefault("status", "active")
    fields = _validate(dict(fields), partial=False)
    now = now_iso()

    row = {k: fields[k] for k in EDITABLE_FIELDS if k in fields}
    row.update(created_at=now, updated_at=now)

    with get_connection() as conn:
        client_id = safe_sql.insert_row(conn, "clients", row)
        record_activity(
            conn,
            client_id,
            "client_created",
            f"Client {fields['name']} was created",
            entity_type="client",
            entity_id=client_id,
        )
        client = get_client(client_id, conn)

    logger.info("Created client %s (%s)", client_id, fields["name"])
    return client


def update_client(client_id: int, **fields) -> Client | None:
    """Apply a partial update. Returns None when the client does not exist."""
    fields = _validate(dict(fields), partial=True)

    with get_connection() as conn:
        existing = get_client(client_id, conn)
        if existing is None:
            return None
        if not fields:
            return existing

        safe_sql.update_row(conn, "clients", client_id, {**fields, "updated_at": now_iso()})
        record_activity(
            conn,
            client_id,
            "client_updated",
            f"Client {fields.get('name', existing.name)} was updated",
            entity_type="client",
            entity_id=client_id,
            metadata=fields,
        )
        # A hand-set active/overdue status must still agree with the billing
        sync_overdue_status(conn, client_id)
        updated = get_client(client_id, conn)
    return updated


def delete_client(client_id: int) -> bool:
    """
    Delete a client with its billing, payments, campaigns, notes and files.
    Tasks are kept with the client reference cleared. History is kept.
    """
    with get_connection() as conn:
        existing = get_client(client_id, conn)
        if existing is None:
            return False
        stored = [
            Path(r["file_path"])
            for r in conn.execute(
                "SELECT file_path FROM client_files WHERE client_id = ?", (client_id,)
            )
        ]
        conn.execute("DELETE FROM clients WHERE id = ?", (client_id,))
        record_activity(
            conn,
            client_id,
            "client_deleted",
            f"Client {existing.name} was deleted",
            entity_type="client",
            entity_id=client_id,
        )
    # Rows are gone once committed; remove the uploaded bytes they pointed to
    for path in stored:
        path.unlink(missing_ok=True)
    logger.info(
        "Deleted client %s (%s), %d stored file(s) removed", client_id, existing.name, len(stored)
    )
    return True


# ============================================================================
# Overdue status rule
# ============================================================================


def has_overdue_billing(conn: sqlite3.Connection, client_id: int, today: date) -> bool:
    """Unpaid billing for any month before the current one."""
    row = conn.execute(
        """
        SELECT 1 FROM billing
        WHERE client_id = ? AND is_paid = 0
        AND (year * 12 + month) < ?
        LIMIT 1
        """,
        (client_id, today.year * 12 + today.month),
    ).fetchone()
    return row is not None


def sync_overdue_status(
    conn: sqlite3.Connection, client_id: int, today: date | None = None
) -> str | None:
    """
    Flip a client between 'active' and 'overdue' based on unpaid past months.

    Other statuses are left alone. Returns the new status when it changed.
    """
    today = today or date.today()
    client = get_client(client_id, conn)
    if client is None or client.status not in ("active", "overdue"):
        return None

    target = "overdue" if has_overdue_billing(conn, client_id, today) else "active"
    if target == client.status:
        return None

    conn.execute(
        "UPDATE clients SET status = ?, updated_at = ? WHERE id = ?",
        (target, now_iso(), client_id),
    )
    record_activity(
        conn,
        client_id,
        "status_changed",
        f"Client {client.name} is now {target}",
        entity_type="client",
        entity_id=client_id,
        metadata={"from": client.status, "to": target},
    )
    logger.info("Client %s status %s -> %s", client_id, client.status, target)
    return target


def sync_all_overdue_statuses(today: date | None = None) -> dict[int, str]:
    """Run the overdue rule over every client. Returns {client_id: new_status}."""
    changed = {}
    with get_connection() as conn:
        ids = [row["id"] for row in conn.execute("SELECT id FROM clients")]
        for client_id in ids:
            new_status = sync_overdue_status(conn, client_id, today)
            if new_status:
                changed[client_id] = new_status
    return changed


# ============================================================================
# Export
# ============================================================================

EXPORT_HEADERS = ["ID", "Name", "Email", "Phone", "Industry", "Monthly Charge", "Status"]


def _quoted(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def export_clients_csv(clients: list[Client] | None = None) -> str:
    """CSV of all clients, header first. Names are always quoted."""
    if clients is None:
        clients = list_clients()
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for c in clients:
        rest = io.StringIO()
        csv.writer(rest, lineterminator="").writerow(
            [
                c.email,
                c.phone,
                c.industry or "",
                f"{c.monthly_service_charge:.2f}",
                c.status,
            ]
        )
        buffer.write(f"{c.id},{_quoted(c.name)},{rest.getvalue()}\n")
    return buffer.getvalue()
