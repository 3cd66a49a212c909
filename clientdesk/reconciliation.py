"""
Billing Reconciliation Engine.

Every payment is a row in ``payments``; the part of it applied to a billing
month is a row in ``payment_allocations``. A billing record's paid_amount is
always the sum of its allocations, and a payment's unapplied_amount is what
is left over as client credit.

Allocation rule: oldest unpaid month first (year, month), each month takes
min(remaining payment, outstanding balance). All arithmetic is Decimal
rounded to cents.
"""

import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from . import config, safe_sql
from .activity import record_activity
from .billing import (
    Billing,
    create_billing,
    find_billing,
    get_billing,
    invoice_number_for,
    money,
    month_name,
    unpaid_billing,
)
from .clients import get_client, sync_overdue_status
from .db import get_connection, now_iso, use_connection

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# (label, upper bound in days inclusive); None = open ended
AGING_BUCKETS: list[tuple[str, int | None]] = [
    ("0-15 days", 15),
    ("16-30 days", 30),
    ("31-60 days", 60),
    ("60+ days", None),
]


@dataclass
class Payment:
    id: int
    client_id: int
    amount: float
    method: str
    received_at: str
    reference: str | None = None
    notes: str | None = None
    unapplied_amount: float = 0.0
    created_at: str | None = None
    allocations: list[dict[str, Any]] = field(default_factory=list)

    @property
    def applied_amount(self) -> float:
        return float(money(self.amount) - money(self.unapplied_amount))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["applied_amount"] = self.applied_amount
        return data


def _row_to_payment(row) -> Payment:
    return Payment(
        id=row["id"],
        client_id=row["client_id"],
        amount=row["amount"],
        method=row["method"],
        received_at=row["received_at"],
        reference=row["reference"],
        notes=row["notes"],
        unapplied_amount=row["unapplied_amount"] or 0.0,
        created_at=row["created_at"],
    )


def _load_allocations(conn: sqlite3.Connection, payment_id: int) -> list[dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT a.billing_id, a.amount, b.month, b.year, b.invoice_number
        FROM payment_allocations a
        JOIN billing b ON b.id = a.billing_id
        WHERE a.payment_id = ?
        ORDER BY b.year, b.month
        """,
        (payment_id,),
    ).fetchall()
    return [
        {
            "billing_id": r["billing_id"],
            "month": r["month"],
            "year": r["year"],
            "invoice_number": r["invoice_number"],
            "amount": r["amount"],
        }
        for r in rows
    ]


def get_payment(payment_id: int, conn: sqlite3.Connection | None = None) -> Payment | None:
    with use_connection(conn) as c:
        row = c.execute("SELECT * FROM payments WHERE id = ?", (payment_id,)).fetchone()
        if row is None:
            return None
        payment = _row_to_payment(row)
        payment.allocations = _load_allocations(c, payment_id)
    return payment


def list_payments(client_id: int) -> list[Payment]:
    """Newest first, with allocations."""
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM payments WHERE client_id = ? ORDER BY received_at DESC, id DESC",
            (client_id,),
        ).fetchall()
        payments = [_row_to_payment(r) for r in rows]
        for p in payments:
            p.allocations = _load_allocations(conn, p.id)
    return payments


# ============================================================================
# Allocation
# ============================================================================


def _normalize_date(value: str | date | None) -> str:
    if value is None:
        return date.today().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    # Accept full timestamps; keep the date part
    return date.fromisoformat(str(value)[:10]).isoformat()


def allocate_payment(
    client_id: int,
    amount,
    method: str | None = None,
    received_at: str | date | None = None,
    billing_ids: list[int] | None = None,
    reference: str | None = None,
    notes: str | None = None,
    conn: sqlite3.Connection | None = None,
) -> Payment | None:
    """
    Record a payment and spread it over the client's unpaid months.

    Args:
        client_id: Paying client
        amount: Payment amount, must be > 0
        method: Payment method label (default config.DEFAULT_PAYMENT_METHOD)
        received_at: Date received (default today)
        billing_ids: Restrict allocation to these records. Already-paid
            records in the list are skipped.

    Returns:
        The stored Payment with its allocations, or None if the client does
        not exist.

    Raises:
        ValueError: non-positive amount, or billing ids that are unknown or
            belong to another client.
    """
    total = money(amount)
    if total <= 0:
        raise ValueError("Payment amount must be greater than 0")
    method = (method or "").strip() or config.DEFAULT_PAYMENT_METHOD
    received = _normalize_date(received_at)

    with use_connection(conn) as c:
        client = get_client(client_id, c)
        if client is None:
            return None

        if billing_ids:
            billing_ids = list(dict.fromkeys(billing_ids))
            found = c.execute(
                f"SELECT id FROM billing WHERE client_id = ? AND id IN "
                f"({safe_sql.in_placeholders(len(billing_ids))})",
                [client_id, *billing_ids],
            ).fetchall()
            missing = sorted(set(billing_ids) - {r["id"] for r in found})
            if missing:
                raise ValueError(f"Billing records not found for client {client_id}: {missing}")

        cursor = c.execute(
            """
            INSERT INTO payments (client_id, amount, method, received_at, reference, notes,
                                  unapplied_amount, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (client_id, float(total), method, received, reference, notes, float(total), now_iso()),
        )
        payment_id = cursor.lastrowid

        remaining = total
        applied: list[dict[str, Any]] = []
        for record in unpaid_billing(c, client_id, billing_ids):
            if remaining <= 0:
                break
            share = min(remaining, record.outstanding)
            if share <= 0:
                continue
            applied.append(_apply_share(c, payment_id, record, share, method, received))
            remaining -= share

        c.execute(
            "UPDATE payments SET unapplied_amount = ? WHERE id = ?",
            (float(remaining), payment_id),
        )

        record_activity(
            c,
            client_id,
            "payment_received",
            f"Payment of {total:.2f} received via {method}",
            entity_type="payment",
            entity_id=payment_id,
            metadata={
                "amount": float(total),
                "allocations": applied,
                "unapplied": float(remaining),
            },
        )
        sync_overdue_status(c, client_id)
        payment = get_payment(payment_id, c)

    logger.info(
        "Payment %s for client %s: %s applied to %d record(s), %s unapplied",
        payment_id,
        client_id,
        total - remaining,
        len(applied),
        remaining,
    )
    return payment


def _apply_share(
    conn: sqlite3.Connection,
    payment_id: int,
    record: Billing,
    share: Decimal,
    method: str,
    received: str,
) -> dict[str, Any]:
    new_paid = money(record.paid_amount) + share
    settled = new_paid >= money(record.amount)
    conn.execute(
        """
        UPDATE billing
        SET paid_amount = ?, is_paid = ?, paid_date = ?, payment_method = ?
        WHERE id = ?
        """,
        (
            float(new_paid),
            1 if settled else 0,
            received if settled else record.paid_date,
            method,
            record.id,
        ),
    )
    conn.execute(
        """
        INSERT INTO payment_allocations (payment_id, billing_id, amount, created_at)
        VALUES (?, ?, ?, ?)
        """,
        (payment_id, record.id, float(share), now_iso()),
    )
    return {
        "billing_id": record.id,
        "month": record.month,
        "year": record.year,
        "amount": float(share),
        "settled": settled,
    }


def bulk_settle(
    billing_ids: list[int],
    method: str | None = None,
    paid_date: str | date | None = None,
) -> list[dict[str, Any]]:
    """
    Settle the full outstanding balance of every listed record.

    One payment is recorded per client. Records that are already paid are
    ignored. Raises ValueError if any id is unknown.
    """
    if not billing_ids:
        raise ValueError("No billing records given")

    results = []
    with get_connection() as conn:
        records: dict[int, Billing] = {}
        for billing_id in dict.fromkeys(billing_ids):
            record = get_billing(billing_id, conn)
            if record is None:
                raise ValueError(f"Billing record {billing_id} not found")
            records[billing_id] = record

        by_client: dict[int, list[Billing]] = {}
        for record in records.values():
            if not record.is_paid:
                by_client.setdefault(record.client_id, []).append(record)

        for client_id, client_records in sorted(by_client.items()):
            due = sum((r.outstanding for r in client_records), ZERO)
            if due <= 0:
                continue
            payment = allocate_payment(
                client_id,
                due,
                method=method,
                received_at=paid_date,
                billing_ids=[r.id for r in client_records],
                notes="Bulk settlement",
                conn=conn,
            )
            results.append(
                {
                    "client_id": client_id,
                    "client_name": client_records[0].client_name,
                    "payment_id": payment.id,
                    "amount": float(due),
                    "billing_ids": [a["billing_id"] for a in payment.allocations],
                }
            )

    logger.info("Bulk settled %d record(s) across %d client(s)", len(records), len(results))
    return results


def settle_billing(
    billing_id: int,
    method: str | None = None,
    paid_date: str | date | None = None,
    conn: sqlite3.Connection | None = None,
) -> Billing | None:
    """Pay off one record's remaining balance. No-op when already paid."""
    with use_connection(conn) as c:
        record = get_billing(billing_id, c)
        if record is None:
            return None
        if record.is_paid:
            return record
        due = record.outstanding
        if due > 0:
            allocate_payment(
                record.client_id,
                due,
                method=method or record.payment_method,
                received_at=paid_date,
                billing_ids=[billing_id],
                conn=c,
            )
        else:
            c.execute(
                "UPDATE billing SET is_paid = 1, paid_date = ? WHERE id = ?",
                (_normalize_date(paid_date), billing_id),
            )
        return get_billing(billing_id, c)


def reopen_billing(billing_id: int, conn: sqlite3.Connection | None = None) -> Billing | None:
    """
    Undo payments on one record.

    Allocations to the record are removed and the paying payments shrink by
    the same amount; a payment left with nothing is deleted.
    """
    with use_connection(conn) as c:
        record = get_billing(billing_id, c)
        if record is None:
            return None

        allocations = c.execute(
            "SELECT id, payment_id, amount FROM payment_allocations WHERE billing_id = ?",
            (billing_id,),
        ).fetchall()
        reversed_total = ZERO
        for alloc in allocations:
            share = money(alloc["amount"])
            reversed_total += share
            c.execute("DELETE FROM payment_allocations WHERE id = ?", (alloc["id"],))
            payment = c.execute(
                "SELECT amount FROM payments WHERE id = ?", (alloc["payment_id"],)
            ).fetchone()
            left = money(payment["amount"]) - share
            if left <= 0:
                c.execute("DELETE FROM payments WHERE id = ?", (alloc["payment_id"],))
            else:
                c.execute(
                    "UPDATE payments SET amount = ? WHERE id = ?",
                    (float(left), alloc["payment_id"]),
                )

        c.execute(
            """
            UPDATE billing
            SET paid_amount = 0, is_paid = 0, paid_date = NULL, payment_method = NULL
            WHERE id = ?
            """,
            (billing_id,),
        )
        record_activity(
            c,
            record.client_id,
            "billing_updated",
            f"Billing record reopened for {record.month}/{record.year}",
            entity_type="billing",
            entity_id=billing_id,
            metadata={"is_paid": False, "reversed": float(reversed_total)},
        )
        sync_overdue_status(c, record.client_id)
        reopened = get_billing(billing_id, c)

    logger.info("Reopened billing %s, reversed %s", billing_id, reversed_total)
    return reopened


# ============================================================================
# Reports
# ============================================================================


def invoice_date(year: int, month: int) -> date:
    """Date an invoice starts aging: the 1st of the month plus the grace period."""
    return date(year, month, 1) + timedelta(days=config.INVOICE_DUE_DAYS)


def bucket_for(days: int) -> str:
    for label, upper in AGING_BUCKETS:
        if upper is None or days <= upper:
            return label
    return AGING_BUCKETS[-1][0]


def aging_buckets(as_of: date | None = None) -> list[dict[str, Any]]:
    """
    Outstanding balances grouped by age.

    Invoices dated after *as_of* are not yet due and are left out. Empty
    buckets are omitted; the rest come in bucket order.
    """
    as_of = as_of or date.today()
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT month, year, amount, paid_amount FROM billing WHERE is_paid = 0"
        ).fetchall()

    totals: dict[str, dict[str, Any]] = {}
    for row in rows:
        issued = invoice_date(row["year"], row["month"])
        if issued > as_of:
            continue
        outstanding = money(row["amount"]) - money(row["paid_amount"])
        if outstanding <= 0:
            continue
        label = bucket_for((as_of - issued).days)
        entry = totals.setdefault(label, {"count": 0, "total": ZERO})
        entry["count"] += 1
        entry["total"] += outstanding

    return [
        {"bucket": label, "count": totals[label]["count"], "total": float(totals[label]["total"])}
        for label, _ in AGING_BUCKETS
        if label in totals
    ]


def reconciliation_by_method() -> list[dict[str, Any]]:
    """Payments received per method, largest total first."""
    with get_connection() as conn:
        rows = conn.execute(
            """
            SELECT method, COUNT(*) AS count, ROUND(SUM(amount), 2) AS total
            FROM payments
            GROUP BY method
            ORDER BY total DESC, method
            """
        ).fetchall()
    return [{"method": r["method"], "count": r["count"], "total": r["total"]} for r in rows]


# ============================================================================
# Invoice generation
# ============================================================================


def generate_monthly_invoices(year: int, month: int) -> dict[str, Any]:
    """
    Create the month's billing record for every billable client.

    Billable: status other than inactive and a monthly charge above zero.
    Clients that already have a record for the month are reported as skipped.
    """
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")

    created: list[Billing] = []
    skipped: list[dict[str, Any]] = []
    with get_connection() as conn:
        clients = conn.execute(
            """
            SELECT id, name, monthly_service_charge FROM clients
            WHERE status != 'inactive' AND monthly_service_charge > 0
            ORDER BY id
            """
        ).fetchall()
        for row in clients:
            if find_billing(row["id"], year, month, conn):
                skipped.append(
                    {"client_id": row["id"], "client_name": row["name"], "reason": "already billed"}
                )
                continue
            record = create_billing(
                row["id"], month, year, row["monthly_service_charge"], conn=conn
            )
            created.append(record)

    logger.info(
        "Generated invoices for %s/%s: %d created, %d skipped",
        month,
        year,
        len(created),
        len(skipped),
    )
    return {"year": year, "month": month, "created": created, "skipped": skipped}


def invoice_view(
    client_id: int, year: int, month: int, profile: dict[str, str] | None = None
) -> dict[str, Any] | None:
    """Everything needed to render one client's invoice for a month."""
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")

    with get_connection() as conn:
        client = get_client(client_id, conn)
        if client is None:
            return None
        record = find_billing(client_id, year, month, conn)

    profile = profile or config.load_profile()
    amount = money(record.amount if record else client.monthly_service_charge)
    paid = money(record.paid_amount) if record else ZERO
    if record and record.is_paid:
        status, balance = "paid", ZERO
    else:
        balance = max(amount - paid, ZERO)
        status = "partial" if paid > 0 else "unpaid"

    issued = date(year, month, 1)
    period = f"{month_name(month)} {year}"
    return {
        "invoice_number": (record.invoice_number if record else None)
        or invoice_number_for(client_id, year, month),
        "billing_id": record.id if record else None,
        "invoice_date": issued.isoformat(),
        "due_date": invoice_date(year, month).isoformat(),
        "period": period,
        "year": year,
        "month": month,
        "currency": profile.get("currency", config.CURRENCY),
        "company": profile,
        "client": {
            "id": client.id,
            "name": client.name,
            "contact_person": client.contact_person,
            "email": client.email,
            "phone": client.phone,
            "address": client.address,
        },
        "items": [
            {
                "description": f"Digital marketing services - {period}",
                "quantity": 1,
                "unit_price": float(amount),
                "amount": float(amount),
            }
        ],
        "amount": float(amount),
        "paid_amount": float(paid),
        "balance_due": float(balance),
        "status": status,
        "paid_date": record.paid_date if record else None,
        "payment_method": record.payment_method if record else None,
    }
