"""Dashboard figures."""

from datetime import date
from typing import Any

from .billing import billing_stats, month_name
from .campaigns import count_active_campaigns
from .db import get_connection
from .tasks import count_open_tasks


def dashboard_stats(today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    with get_connection() as conn:
        row = conn.execute(
            """
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END) AS active,
                SUM(CASE WHEN status = 'overdue' THEN 1 ELSE 0 END) AS overdue
            FROM clients
            """
        ).fetchone()

    billing = billing_stats(today.year)
    tasks = count_open_tasks(today)
    return {
        "total_clients": row["total"] or 0,
        "active_clients": row["active"] or 0,
        "overdue_clients": row["overdue"] or 0,
        "active_campaigns": count_active_campaigns(),
        "monthly_revenue": billing["total_revenue"],
        "pending_payments": billing["pending_amount"],
        "paid_count": billing["paid_count"],
        "unpaid_count": billing["unpaid_count"],
        "open_tasks": tasks["open_tasks"],
        "overdue_tasks": tasks["overdue_tasks"],
    }


def revenue_series(year: int) -> list[dict[str, Any]]:
    """
    Twelve points for *year*: billed is the sum of billing amounts for the
    month; collected is cash received in that calendar month.
    """
    with get_connection() as conn:
        billed = {
            r["month"]: r["total"]
            for r in conn.execute(
                "SELECT month, ROUND(SUM(amount), 2) AS total FROM billing WHERE year = ? GROUP BY month",
                (year,),
            )
        }
        collected = {
            int(r["month"]): r["total"]
            for r in conn.execute(
                """
                SELECT substr(received_at, 6, 2) AS month, ROUND(SUM(amount), 2) AS total
                FROM payments
                WHERE substr(received_at, 1, 4) = ?
                GROUP BY month
                """,
                (f"{year:04d}",),
            )
        }
    return [
        {
            "month": m,
            "month_name": month_name(m)[:3],
            "billed": billed.get(m, 0.0),
            "collected": collected.get(m, 0.0),
        }
        for m in range(1, 13)
    ]
