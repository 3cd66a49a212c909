"""
Shared Pydantic response models for API endpoints.

Library functions return dataclasses and snake_case dicts; these models
give FastAPI the schema for OpenAPI and serialize with camelCase aliases
for the browser client.

Usage:
    from api.response_models import ClientOut

    @router.get("/clients/{client_id}", response_model=ClientOut)
    def get_client(client_id: int): ...
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Reads snake_case attributes, writes camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ==== Users ====


class UserOut(CamelModel):
    id: int
    username: str
    full_name: str
    email: str | None = None


# ==== Clients ====


class ClientOut(CamelModel):
    id: int
    name: str
    email: str
    phone: str
    website: str | None = None
    industry: str | None = None
    google_ad_account_id: str | None = None
    monthly_service_charge: float
    status: str
    contact_person: str | None = None
    address: str | None = None
    notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ClientBalanceOut(CamelModel):
    client_id: int
    billed: float
    paid: float
    outstanding: float
    unpaid_months: int
    overdue_months: int
    credit: float = Field(description="Unapplied payments held as client credit")


# ==== Billing ====


class BillingOut(CamelModel):
    id: int
    client_id: int
    month: int
    year: int
    amount: float
    paid_amount: float
    outstanding: float
    status: str = Field(description="paid, partial or unpaid")
    is_paid: bool
    paid_date: str | None = None
    payment_method: str | None = None
    invoice_number: str | None = None
    notes: str | None = None
    created_at: str | None = None
    client_name: str | None = None
    client_email: str | None = None


class BillingStatsOut(CamelModel):
    year: int
    total_revenue: float
    pending_amount: float
    paid_count: int
    unpaid_count: int


class BillingMonthOut(CamelModel):
    month: int
    month_name: str
    billing: BillingOut | None = None


class BillingYearOut(CamelModel):
    client_id: int
    year: int
    months: list[BillingMonthOut]
    totals: dict[str, float]


# ==== Payments ====


class AllocationOut(CamelModel):
    billing_id: int
    month: int
    year: int
    invoice_number: str | None = None
    amount: float


class PaymentOut(CamelModel):
    id: int
    client_id: int
    amount: float
    applied_amount: float
    unapplied_amount: float
    method: str
    received_at: str
    reference: str | None = None
    notes: str | None = None
    created_at: str | None = None
    allocations: list[AllocationOut] = Field(default_factory=list)


class BulkSettleItemOut(CamelModel):
    client_id: int
    client_name: str | None = None
    payment_id: int
    amount: float
    billing_ids: list[int]


class BulkSettleOut(CamelModel):
    settled: list[BulkSettleItemOut]
    count: int = Field(description="Billing records settled")


class AgingBucketOut(CamelModel):
    bucket: str
    count: int
    total: float


class MethodTotalOut(CamelModel):
    method: str
    count: int
    total: float


class SkippedInvoiceOut(CamelModel):
    client_id: int
    client_name: str
    reason: str


class GenerateInvoicesOut(CamelModel):
    year: int
    month: int
    created: list[BillingOut]
    skipped: list[SkippedInvoiceOut]


class InvoiceItemOut(CamelModel):
    description: str
    quantity: int
    unit_price: float
    amount: float


class InvoiceOut(CamelModel):
    invoice_number: str
    billing_id: int | None = None
    invoice_date: str
    due_date: str
    period: str
    year: int
    month: int
    currency: str
    company: dict[str, str]
    client: dict[str, Any]
    items: list[InvoiceItemOut]
    amount: float
    paid_amount: float
    balance_due: float
    status: str
    paid_date: str | None = None
    payment_method: str | None = None


# ==== Campaigns ====


class CampaignOut(CamelModel):
    id: int
    client_id: int
    name: str
    platform: str
    budget: float
    start_date: str
    end_date: str | None = None
    status: str
    description: str | None = None
    target_audience: str | None = None
    keywords: list[str] = Field(default_factory=list)
    performance: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None
    client_name: str | None = None


# ==== Notes, files, activity ====


class NoteOut(CamelModel):
    id: int
    client_id: int
    title: str
    content: str
    type: str
    priority: str
    is_completed: bool
    due_date: str | None = None
    created_at: str | None = None
    client_name: str | None = None


class NoteStatsOut(CamelModel):
    completed_tasks: int
    pending_tasks: int
    overdue_tasks: int


class FollowUpOut(CamelModel):
    source: str = Field(description="note or task")
    id: int
    title: str
    description: str | None = None
    type: str
    priority: str
    due_date: str | None = None
    client_id: int | None = None
    client_name: str | None = None
    status: str | None = None


class FileOut(CamelModel):
    id: int
    client_id: int
    file_name: str
    original_name: str
    file_size: int
    mime_type: str
    file_path: str
    uploaded_by: str | None = None
    description: str | None = None
    created_at: str | None = None


class ActivityOut(CamelModel):
    id: int
    client_id: int
    action: str
    description: str
    entity_type: str | None = None
    entity_id: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None


class ActivityDayOut(CamelModel):
    date: str
    activities: list[ActivityOut]


# ==== Tasks ====


class TaskOut(CamelModel):
    id: int
    title: str
    description: str | None = None
    status: str
    priority: str
    client_id: int | None = None
    client_name: str | None = None
    assignee: str | None = None
    due_date: str | None = None
    position: int
    completed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class KanbanColumnOut(CamelModel):
    status: str
    tasks: list[TaskOut]


class TaskCalendarOut(CamelModel):
    year: int
    month: int
    days: dict[str, list[TaskOut]]


class TaskAgingBucketOut(CamelModel):
    bucket: str
    count: int
    task_ids: list[int]


class TaskAgingReportOut(CamelModel):
    as_of: str
    total_open: int
    overdue: int
    oldest_age_days: int | None = None
    buckets: list[TaskAgingBucketOut]


class AssigneeProductivityOut(CamelModel):
    assignee: str
    completed: int
    avg_days_to_complete: float


class WeekCountOut(CamelModel):
    week: str = Field(description="ISO week, e.g. 2024-W07")
    completed: int


class ProductivityReportOut(CamelModel):
    as_of: str
    start: str
    days: int
    total_completed: int
    by_assignee: list[AssigneeProductivityOut]
    by_week: list[WeekCountOut]


class PriorityCompletionOut(CamelModel):
    priority: str
    total: int
    completed: int
    rate: float


class ClientCompletionOut(CamelModel):
    client_id: int | None = None
    client_name: str | None = None
    total: int
    completed: int
    rate: float


class CompletionReportOut(CamelModel):
    as_of: str
    total: int
    completed: int
    open: int
    overdue: int
    rate: float = Field(description="Percent, one decimal")
    on_time: int
    on_time_rate: float
    by_priority: list[PriorityCompletionOut]
    by_client: list[ClientCompletionOut]


# ==== Dashboard ====


class DashboardStatsOut(CamelModel):
    total_clients: int
    active_clients: int
    overdue_clients: int
    active_campaigns: int
    monthly_revenue: float
    pending_payments: float
    paid_count: int
    unpaid_count: int
    open_tasks: int
    overdue_tasks: int


class RevenuePointOut(CamelModel):
    month: int
    month_name: str
    billed: float
    collected: float


class SettingsOut(CamelModel):
    company: str
    full_name: str
    email: str
    address: str
    currency: str


# ==== Envelopes ====


class PaginatedResponse(CamelModel, Generic[T]):
    """Standard paginated response model."""

    data: list[T] = Field(..., description="Items on this page")
    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number (1-indexed)")
    page_size: int = Field(..., description="Items per page")
    total_pages: int = Field(..., description="Total number of pages")
    has_next: bool = Field(..., description="Whether there is a next page")
    has_prev: bool = Field(..., description="Whether there is a previous page")


class HealthResponse(BaseModel):
    """Health check result."""

    status: str = Field(description="healthy or error")
    version: str = Field(description="Application version")
    timestamp: str = Field(description="ISO timestamp")
