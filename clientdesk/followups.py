"""Today's and overdue follow-ups across client notes and the task board."""

from datetime import date
from typing import Any

from .notes import due_notes
from .tasks import due_tasks


def follow_ups(overdue: bool = False, today: date | None = None) -> list[dict[str, Any]]:
    """
    Open items due today (or before today when *overdue*), sorted by due
    date. Each item carries ``source`` = 'note' or 'task'.
    """
    today = today or date.today()
    items: list[dict[str, Any]] = []

    for note in due_notes(today, overdue):
        items.append(
            {
                "source": "note",
                "id": note.id,
                "title": note.title,
                "description": note.content,
                "type": note.type,
                "priority": note.priority,
                "due_date": note.due_day,
                "client_id": note.client_id,
                "client_name": note.client_name,
            }
        )
    for task in due_tasks(today, overdue):
        items.append(
            {
                "source": "task",
                "id": task.id,
                "title": task.title,
                "description": task.description,
                "type": "task",
                "priority": task.priority,
                "due_date": task.due_date,
                "client_id": task.client_id,
                "client_name": task.client_name,
                "status": task.status,
            }
        )

    items.sort(key=lambda i: (i["due_date"] or "", i["source"], i["id"]))
    return items
