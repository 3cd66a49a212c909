"""
Task Management API Router.

Endpoints:
- GET /api/tasks: list view (filters, sort, pagination)
- POST /api/tasks
- GET /api/tasks/kanban: columns by status
- GET /api/tasks/calendar: tasks due in a month by date
- GET /api/tasks/reports/aging
- GET /api/tasks/reports/productivity
- GET /api/tasks/reports/completion
- GET /api/tasks/{task_id}
- PUT /api/tasks/{task_id}
- PATCH /api/tasks/{task_id}/move: kanban drag and drop
- DELETE /api/tasks/{task_id}

Static paths are declared before /tasks/{task_id} so they are not captured
by it.
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import Field

from api.auth import require_auth
from api.pagination import PaginationParams, paginate, pagination_params
from api.response_models import (
    CamelModel,
    CompletionReportOut,
    KanbanColumnOut,
    PaginatedResponse,
    ProductivityReportOut,
    TaskAgingReportOut,
    TaskCalendarOut,
    TaskOut,
)
from clientdesk import task_reports, tasks

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"], dependencies=[Depends(require_auth)])

SORT_PARAMS = {"dueDate": "due_date", "priority": "priority", "createdAt": "created_at"}


class TaskCreate(CamelModel):
    title: str = Field(..., min_length=1)
    description: str | None = None
    status: str = "todo"
    priority: str = "normal"
    client_id: int | None = None
    assignee: str | None = None
    due_date: str | None = None


class TaskUpdate(CamelModel):
    title: str | None = Field(None, min_length=1)
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    client_id: int | None = None
    assignee: str | None = None
    due_date: str | None = None


class TaskMove(CamelModel):
    status: str
    position: int = Field(..., ge=0)


@router.get("", response_model=PaginatedResponse[TaskOut])
def list_tasks(
    status: str | None = Query(None),
    priority: str | None = Query(None),
    client_id: int | None = Query(None, alias="clientId"),
    assignee: str | None = Query(None),
    search: str | None = Query(None, description="Title or description"),
    overdue: bool = Query(False),
    sort: str = Query("createdAt", description="dueDate|priority|createdAt"),
    pagination: PaginationParams = Depends(pagination_params),
):
    if sort not in SORT_PARAMS:
        raise HTTPException(status_code=400, detail=f"sort must be one of {list(SORT_PARAMS)}")
    try:
        items = tasks.list_tasks(
            status=status,
            priority=priority,
            client_id=client_id,
            assignee=assignee,
            search=search,
            overdue=overdue,
            sort=SORT_PARAMS[sort],
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    page = paginate([t.to_dict() for t in items], pagination.page, pagination.page_size)
    return page


@router.post("", response_model=TaskOut, status_code=201)
def create_task(body: TaskCreate):
    try:
        task = tasks.create_task(**body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return task.to_dict()


@router.get("/kanban", response_model=list[KanbanColumnOut])
def get_kanban():
    return [
        {"status": col["status"], "tasks": [t.to_dict() for t in col["tasks"]]}
        for col in tasks.kanban_board()
    ]


@router.get("/calendar", response_model=TaskCalendarOut)
def get_calendar(
    year: int = Query(..., ge=1900, le=9999),
    month: int = Query(..., ge=1, le=12),
):
    view = tasks.calendar_month(year, month)
    view["days"] = {day: [t.to_dict() for t in items] for day, items in view["days"].items()}
    return view


# ==== Reports ====


@router.get("/reports/aging", response_model=TaskAgingReportOut)
def get_aging_report(as_of: date | None = Query(None)):
    return task_reports.aging_report(tasks.all_tasks(), as_of or date.today())


@router.get("/reports/productivity", response_model=ProductivityReportOut)
def get_productivity_report(
    days: int = Query(30, ge=1, le=365),
    as_of: date | None = Query(None),
):
    return task_reports.productivity_report(tasks.all_tasks(), as_of or date.today(), days)


@router.get("/reports/completion", response_model=CompletionReportOut)
def get_completion_report(as_of: date | None = Query(None)):
    return task_reports.completion_report(tasks.all_tasks(), as_of or date.today())


# ==== Single task ====


@router.get("/{task_id}", response_model=TaskOut)
def get_task(task_id: int):
    task = tasks.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task.to_dict()


@router.put("/{task_id}", response_model=TaskOut)
def update_task(task_id: int, body: TaskUpdate):
    try:
        task = tasks.update_task(task_id, **body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task.to_dict()


@router.patch("/{task_id}/move", response_model=TaskOut)
def move_task(task_id: int, body: TaskMove):
    try:
        task = tasks.move_task(task_id, body.status, body.position)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task.to_dict()


@router.delete("/{task_id}", status_code=204)
def delete_task(task_id: int):
    if not tasks.delete_task(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return Response(status_code=204)
