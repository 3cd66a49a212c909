"""
Task reports: aging, productivity and completion.

Pure functions over a list of Task objects and an explicit ``as_of`` date,
so the same inputs always give the same report.
"""

from collections import defaultdict
from datetime import date, timedelta
from typing import Any

from .tasks import TASK_PRIORITIES, Task

TASK_AGING_BUCKETS: list[tuple[str, int | None]] = [
    ("0-7 days", 7),
    ("8-14 days", 14),
    ("15-30 days", 30),
    ("30+ days", None),
]

UNASSIGNED = "Unassigned"
NO_CLIENT = "No client"


def _day(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def percent(part: int, whole: int) -> float:
    """Percentage with one decimal; 0.0 when *whole* is zero."""
    if whole <= 0:
        return 0.0
    return round(part * 100.0 / whole, 1)


def _bucket(age_days: int) -> str:
    for label, upper in TASK_AGING_BUCKETS:
        if upper is None or age_days <= upper:
            return label
    return TASK_AGING_BUCKETS[-1][0]


def aging_report(tasks: list[Task], as_of: date) -> dict[str, Any]:
    """Open tasks grouped by days since creation. Every bucket is present."""
    buckets = {label: [] for label, _ in TASK_AGING_BUCKETS}
    ages = []
    overdue = 0
    for task in tasks:
        if task.is_done:
            continue
        age = max((as_of - _day(task.created_at)).days, 0)
        ages.append(age)
        buckets[_bucket(age)].append(task.id)
        if task.is_overdue(as_of):
            overdue += 1

    return {
        "as_of": as_of.isoformat(),
        "total_open": len(ages),
        "overdue": overdue,
        "oldest_age_days": max(ages) if ages else None,
        "buckets": [
            {"bucket": label, "count": len(ids), "task_ids": ids}
            for label, ids in buckets.items()
        ],
    }


def productivity_report(tasks: list[Task], as_of: date, days: int = 30) -> dict[str, Any]:
    """
    Tasks completed in the *days* ending on *as_of*, per assignee and per
    ISO week.
    """
    if days < 1:
        raise ValueError("days must be at least 1")
    start = as_of - timedelta(days=days - 1)

    per_assignee: dict[str, list[int]] = defaultdict(list)
    per_week: dict[str, int] = defaultdict(int)
    for task in tasks:
        finished = _day(task.completed_at) if task.is_done else None
        if finished is None or not start <= finished <= as_of:
            continue
        created = _day(task.created_at) or finished
        per_assignee[task.assignee or UNASSIGNED].append(max((finished - created).days, 0))
        iso_year, iso_week, _ = finished.isocalendar()
        per_week[f"{iso_year}-W{iso_week:02d}"] += 1

    by_assignee = [
        {
            "assignee": name,
            "completed": len(durations),
            "avg_days_to_complete": round(sum(durations) / len(durations), 1),
        }
        for name, durations in per_assignee.items()
    ]
    by_assignee.sort(key=lambda row: (-row["completed"], row["assignee"]))

    return {
        "as_of": as_of.isoformat(),
        "start": start.isoformat(),
        "days": days,
        "total_completed": sum(row["completed"] for row in by_assignee),
        "by_assignee": by_assignee,
        "by_week": [{"week": week, "completed": per_week[week]} for week in sorted(per_week)],
    }


def completion_report(tasks: list[Task], as_of: date) -> dict[str, Any]:
    """Completion rate overall, on time, by priority and by client."""
    done = [t for t in tasks if t.is_done]
    with_due = [t for t in done if t.due_date and t.completed_at]
    on_time = sum(1 for t in with_due if _day(t.completed_at) <= _day(t.due_date))

    by_priority = []
    for priority in TASK_PRIORITIES:
        group = [t for t in tasks if t.priority == priority]
        completed = sum(1 for t in group if t.is_done)
        by_priority.append(
            {
                "priority": priority,
                "total": len(group),
                "completed": completed,
                "rate": percent(completed, len(group)),
            }
        )

    clients: dict[int | None, list[Task]] = defaultdict(list)
    for task in tasks:
        clients[task.client_id].append(task)
    by_client = []
    for client_id, group in clients.items():
        completed = sum(1 for t in group if t.is_done)
        by_client.append(
            {
                "client_id": client_id,
                "client_name": group[0].client_name if client_id is not None else NO_CLIENT,
                "total": len(group),
                "completed": completed,
                "rate": percent(completed, len(group)),
            }
        )
    by_client.sort(key=lambda row: (-row["total"], row["client_name"] or ""))

    return {
        "as_of": as_of.isoformat(),
        "total": len(tasks),
        "completed": len(done),
        "open": len(tasks) - len(done),
        "overdue": sum(1 for t in tasks if t.is_overdue(as_of)),
        "rate": percent(len(done), len(tasks)),
        "on_time": on_time,
        "on_time_rate": percent(on_time, len(with_due)),
        "by_priority": by_priority,
        "by_client": by_client,
    }
