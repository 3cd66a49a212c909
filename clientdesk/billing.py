"""
Monthly billing records.

One row per client per billing month. Payment state (paid_amount, is_paid)
is owned by the reconciliation engine; this module handles the record
itself, listings and summary figures.
"""

import calendar
import logging
import sqlite3
from dataclasses import asdict, dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from . import config, safe_sql
from .activity import record_activity
from .clients import get_client, sync_overdue_status
from .db import get_connection, now_iso, use_connection

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

BILLING_STATUSES = ("paid", "partial", "unpaid")

EDITABLE_FIELDS = ("month", "year", "amount", "invoice_number", "payment_method", "paid_date", "notes")


def money(value) -> Decimal:
    """Exact cents. Floats go through str() so 0.1 stays 0.10."""
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def month_name(month: int) -> str:
    return calendar.month_name[month]


def invoice_number_for(client_id: int, year: int, month: int) -> str:
    """INV-<YYYY><MM><client id padded to 3>, e.g. INV-202403007."""
    return f"{config.INVOICE_PREFIX}-{year:04d}{month:02d}{client_id:03d}"


@dataclass
class Billing:
    id: int
    client_id: int
    month: int
    year: int
    amount: float
    paid_amount: float = 0.0
    is_paid: bool = False
    paid_date: str | None = None
    payment_method: str | None = None
    invoice_number: str | None = None
    notes: str | None = None
    created_at: str | None = None
    client_name: str | None = None
    client_email: str | None = None

    @property
    def outstanding(self) -> Decimal:
        if self.is_paid:
            return Decimal("0.00")
        return max(money(self.amount) - money(self.paid_amount), Decimal("0.00"))

    @property
    def status(self) -> str:
        if self.is_paid:
            return "paid"
        if self.paid_amount and money(self.paid_amount) > 0:
            return "partial"
        return "unpaid"

    @property
    def period(self) -> tuple[int, int]:
        return (self.year, self.month)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["outstanding"] = float(self.outstanding)
        data["status"] = self.status
        return data


def _row_to_billing(row) -> Billing:
    keys = row.keys()
    return Billing(
        id=row["id"],
        client_id=row["client_id"],
        month=row["month"],
        year=row["year"],
        amount=row["amount"],
        paid_amount=row["paid_amount"] or 0.0,
        is_paid=bool(row["is_paid"]),
        paid_date=row["paid_date"],
        payment_method=row["payment_method"],
        invoice_number=row["invoice_number"],
        notes=row["notes"],
        created_at=row["created_at"],
        client_name=row["client_name"] if "client_name" in keys else None,
        client_email=row["client_email"] if "client_email" in keys else None,
    )


def _validate_period(month, year) -> None:
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    if not isinstance(year, int) or not 1900 <= year <= 9999:
        raise ValueError("year is out of range")


# ============================================================================
# Queries
# ============================================================================

_SELECT_WITH_CLIENT = """
    SELECT b.*, c.name AS client_name, c.email AS client_email
    FROM billing b
    JOIN clients c ON c.id = b.client_id
"""


def get_billing(billing_id: int, conn: sqlite3.Connection | None = None) -> Billing | None:
    with use_connection(conn) as c:
        row = c.execute(_SELECT_WITH_CLIENT + " WHERE b.id = ?", (billing_id,)).fetchone()
    return _row_to_billing(row) if row else None


def find_billing(
    client_id: int, year: int, month: int, conn: sqlite3.Connection | None = None
) -> Billing | None:
    with use_connection(conn) as c:
        row = c.execute(
            _SELECT_WITH_CLIENT + " WHERE b.client_id = ? AND b.year = ? AND b.month = ?",
            (client_id, year, month),
        ).fetchone()
    return _row_to_billing(row) if row else None


def list_client_billing(client_id: int, conn: sqlite3.Connection | None = None) -> list[Billing]:
    """Newest period first."""
    with use_connection(conn) as c:
        rows = c.execute(
            _SELECT_WITH_CLIENT + " WHERE b.client_id = ? ORDER BY b.year DESC, b.month DESC",
            (client_id,),
        ).fetchall()
    return [_row_to_billing(r) for r in rows]


def unpaid_billing(
    conn: sqlite3.Connection, client_id: int, billing_ids: list[int] | None = None
) -> list[Billing]:
    """Open records for a client, oldest period first."""
    conditions = ["b.client_id = ?", "b.is_paid = 0"]
    params: list[Any] = [client_id]
    if billing_ids:
        conditions.append(f"b.id IN ({safe_sql.in_placeholders(len(billing_ids))})")
        params.extend(billing_ids)
    rows = conn.execute(
        _SELECT_WITH_CLIENT
        + f" WHERE {safe_sql.where_and(conditions)} ORDER BY b.year, b.month, b.id",
        params,
    ).fetchall()
    return [_row_to_billing(r) for r in rows]


def list_billing(
    status: str | None = None,
    month: int | None = None,
    year: int | None = None,
    search: str | None = None,
) -> list[Billing]:
    """All records with client name and email, newest period first."""
    if status and status != "all" and status not in BILLING_STATUSES:
        raise ValueError(f"status must be one of {BILLING_STATUSES}")

    conditions: list[str] = []
    params: list[Any] = []
    if month is not None:
        conditions.append("b.month = ?")
        params.append(month)
    if year is not None:
        conditions.append("b.year = ?")
        params.append(year)
    if search:
        conditions.append("(c.name LIKE ? OR b.invoice_number LIKE ?)")
        params.extend([f"%{search}%", f"%{search}%"])

    sql = _SELECT_WITH_CLIENT
    if conditions:
        sql += " WHERE " + safe_sql.where_and(conditions)
    sql += " ORDER BY b.year DESC, b.month DESC, c.name COLLATE NOCASE"

    with get_connection() as conn:
        records = [_row_to_billing(r) for r in conn.execute(sql, params).fetchall()]

    if status and status != "all":
        records = [r for r in records if r.status == status]
    return records


# ============================================================================
# Mutations
# ============================================================================


def create_billing(
    client_id: int,
    month: int,
    year: int,
    amount,
    invoice_number: str | None = None,
    notes: str | None = None,
    conn: sqlite3.Connection | None = None,
) -> Billing | None:
    """
    Create a billing record. Returns None when the client does not exist.

    Raises ValueError for a bad period, a non-positive amount, or a record
    that already exists for that month.
    """
    _validate_period(month, year)
    amount = money(amount)
    if amount <= 0:
        raise ValueError("amount must be greater than 0")

    with use_connection(conn) as c:
        client = get_client(client_id, c)
        if client is None:
            return None
        if find_billing(client_id, year, month, c):
            raise ValueError(f"Billing for {month}/{year} already exists")

        cursor = c.execute(
            """
            INSERT INTO billing (client_id, month, year, amount, paid_amount, is_paid,
                                 invoice_number, notes, created_at)
            VALUES (?, ?, ?, ?, 0, 0, ?, ?, ?)
            """,
            (
                client_id,
                month,
                year,
                float(amount),
                invoice_number or invoice_number_for(client_id, year, month),
                notes,
                now_iso(),
            ),
        )
        billing_id = cursor.lastrowid
        record_activity(
            c,
            client_id,
            "billing_created",
            f"Billing record created for {month}/{year}",
            entity_type="billing",
            entity_id=billing_id,
            metadata={"amount": float(amount)},
        )
        sync_overdue_status(c, client_id)
        record = get_billing(billing_id, c)

    logger.info("Created billing %s for client %s (%s/%s)", billing_id, client_id, month, year)
    return record


def update_billing(billing_id: int, conn: sqlite3.Connection | None = None, **fields) -> Billing | None:
    """
    Update record fields other than payment state.

    Lowering the amount to the already-paid figure marks the record paid;
    raising it above that figure on a paid record reopens it for the
    difference. Moving an auto-numbered record to another month renumbers it.
    """
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown billing fields: {sorted(unknown)}")

    with use_connection(conn) as c:
        existing = get_billing(billing_id, c)
        if existing is None:
            return None
        if not fields:
            return existing

        month = fields.get("month", existing.month)
        year = fields.get("year", existing.year)
        _validate_period(month, year)
        if (month, year) != (existing.month, existing.year):
            clash = find_billing(existing.client_id, year, month, c)
            if clash and clash.id != billing_id:
                raise ValueError(f"Billing for {month}/{year} already exists")

        if "amount" in fields:
            amount = money(fields["amount"])
            if amount <= 0:
                raise ValueError("amount must be greater than 0")
            if amount < money(existing.paid_amount):
                raise ValueError("amount cannot be less than the amount already paid")
            fields["amount"] = float(amount)
            paid = money(existing.paid_amount)
            if not existing.is_paid and amount == paid:
                fields["is_paid"] = 1
                fields.setdefault("paid_date", date.today().isoformat())
            elif existing.is_paid and amount > paid:
                fields["is_paid"] = 0
                fields["paid_date"] = None

        moved = (month, year) != (existing.month, existing.year)
        auto_numbered = existing.invoice_number in (
            None,
            invoice_number_for(existing.client_id, existing.year, existing.month),
        )
        if moved and auto_numbered and not fields.get("invoice_number"):
            fields["invoice_number"] = invoice_number_for(existing.client_id, year, month)

        safe_sql.update_row(c, "billing", billing_id, fields)
        record_activity(
            c,
            existing.client_id,
            "billing_updated",
            f"Billing record updated for {month}/{year}",
            entity_type="billing",
            entity_id=billing_id,
            metadata=fields,
        )
        sync_overdue_status(c, existing.client_id)
        record = get_billing(billing_id, c)
    return record


def delete_billing(billing_id: int) -> bool:
    """
    Delete a record. Money already allocated to it goes back to the paying
    payments as unapplied credit.
    """
    with get_connection() as conn:
        existing = get_billing(billing_id, conn)
        if existing is None:
            return False

        allocations = conn.execute(
            "SELECT payment_id, amount FROM payment_allocations WHERE billing_id = ?",
            (billing_id,),
        ).fetchall()
        for alloc in allocations:
            conn.execute(
                "UPDATE payments SET unapplied_amount = ROUND(unapplied_amount + ?, 2) WHERE id = ?",
                (alloc["amount"], alloc["payment_id"]),
            )

        conn.execute("DELETE FROM billing WHERE id = ?", (billing_id,))
        record_activity(
            conn,
            existing.client_id,
            "billing_deleted",
            f"Billing record deleted for {existing.month}/{existing.year}",
            entity_type="billing",
            entity_id=billing_id,
        )
        sync_overdue_status(conn, existing.client_id)

    logger.info("Deleted billing %s", billing_id)
    return True


# ============================================================================
# Summaries
# ============================================================================


def billing_stats(year: int | None = None) -> dict[str, Any]:
    """Revenue and counts for one calendar year (default: current)."""
    year = year or date.today().year
    with get_connection() as conn:
        rows = conn.execute(_SELECT_WITH_CLIENT + " WHERE b.year = ?", (year,)).fetchall()
    records = [_row_to_billing(r) for r in rows]

    total_revenue = sum((money(r.paid_amount) for r in records), Decimal("0.00"))
    pending = sum((r.outstanding for r in records), Decimal("0.00"))
    return {
        "year": year,
        "total_revenue": float(total_revenue),
        "pending_amount": float(pending),
        "paid_count": sum(1 for r in records if r.is_paid),
        "unpaid_count": sum(1 for r in records if not r.is_paid),
    }


def client_year_view(client_id: int, year: int) -> dict[str, Any] | None:
    """Twelve month slots for one client and year, with totals."""
    client = get_client(client_id)
    if client is None:
        return None

    with get_connection() as conn:
        rows = conn.execute(
            _SELECT_WITH_CLIENT + " WHERE b.client_id = ? AND b.year = ?", (client_id, year)
        ).fetchall()
    by_month = {r["month"]: _row_to_billing(r) for r in rows}

    months = [
        {"month": m, "month_name": month_name(m), "billing": by_month.get(m)}
        for m in range(1, 13)
    ]
    records = list(by_month.values())
    billed = sum((money(r.amount) for r in records), Decimal("0.00"))
    paid = sum((money(r.paid_amount) for r in records), Decimal("0.00"))
    outstanding = sum((r.outstanding for r in records), Decimal("0.00"))
    return {
        "client_id": client_id,
        "year": year,
        "months": months,
        "totals": {
            "billed": float(billed),
            "paid": float(paid),
            "outstanding": float(outstanding),
            "paid_months": sum(1 for r in records if r.is_paid),
            "unpaid_months": sum(1 for r in records if not r.is_paid),
        },
    }


def client_balance(client_id: int, today: date | None = None) -> dict[str, Any] | None:
    """Billed, paid and outstanding totals plus unapplied credit."""
    today = today or date.today()
    with get_connection() as conn:
        if get_client(client_id, conn) is None:
            return None
        records = list_client_billing(client_id, conn)
        credit = conn.execute(
            "SELECT COALESCE(SUM(unapplied_amount), 0) FROM payments WHERE client_id = ?",
            (client_id,),
        ).fetchone()[0]

    current = (today.year, today.month)
    unpaid = [r for r in records if not r.is_paid]
    return {
        "client_id": client_id,
        "billed": float(sum((money(r.amount) for r in records), Decimal("0.00"))),
        "paid": float(sum((money(r.paid_amount) for r in records), Decimal("0.00"))),
        "outstanding": float(sum((r.outstanding for r in unpaid), Decimal("0.00"))),
        "unpaid_months": len(unpaid),
        "overdue_months": sum(1 for r in unpaid if r.period < current),
        "credit": float(money(credit)),
    }
