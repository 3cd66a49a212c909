"""
Billing and Reconciliation API Router.

Endpoints:
- GET /api/clients/{client_id}/billing: client billing history
- POST /api/clients/{client_id}/billing: create a billing month
- GET /api/clients/{client_id}/billing/year/{year}: 12-month view
- PUT /api/billing/{billing_id}: update; isPaid toggles settle / reopen
- DELETE /api/billing/{billing_id}
- GET /api/billing: all records with filters
- GET /api/billing/stats: current-year totals
- POST /api/billing/bulk-pay: settle many records
- GET /api/billing/aging: outstanding by age bucket
- GET /api/billing/reconciliation: payments per method
- POST /api/billing/generate: create a month's invoices for all clients
- GET/POST /api/clients/{client_id}/payments: payment ledger
- GET /api/clients/{client_id}/invoices/{year}/{month}: invoice view
- GET /api/clients/{client_id}/invoices/{year}/{month}/pdf: invoice PDF
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import Field

from api.auth import require_auth
from api.response_models import (
    AgingBucketOut,
    BillingOut,
    BillingStatsOut,
    BillingYearOut,
    BulkSettleOut,
    CamelModel,
    GenerateInvoicesOut,
    InvoiceOut,
    MethodTotalOut,
    PaymentOut,
)
from clientdesk import billing, clients, config, reconciliation
from clientdesk.db import get_connection
from clientdesk.invoice_pdf import render_invoice_pdf

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["billing"], dependencies=[Depends(require_auth)])


class BillingCreate(CamelModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)
    amount: float = Field(..., gt=0)
    invoice_number: str | None = None
    notes: str | None = None


class BillingUpdate(CamelModel):
    month: int | None = Field(None, ge=1, le=12)
    year: int | None = Field(None, ge=1900, le=9999)
    amount: float | None = Field(None, gt=0)
    is_paid: bool | None = None
    paid_date: str | None = None
    payment_method: str | None = None
    invoice_number: str | None = None
    notes: str | None = None


class PaymentCreate(CamelModel):
    amount: float = Field(..., gt=0)
    method: str | None = None
    received_at: str | None = Field(None, description="ISO date, default today")
    billing_ids: list[int] | None = Field(None, description="Restrict allocation to these records")
    reference: str | None = None
    notes: str | None = None


class BulkPayRequest(CamelModel):
    billing_ids: list[int] = Field(..., min_length=1)
    payment_method: str | None = None
    paid_date: str | None = None


class GenerateRequest(CamelModel):
    year: int = Field(..., ge=1900, le=9999)
    month: int = Field(..., ge=1, le=12)


def _require_client(client_id: int) -> None:
    if clients.get_client(client_id) is None:
        raise HTTPException(status_code=404, detail="Client not found")


# ==== Billing records ====


@router.get("/clients/{client_id}/billing", response_model=list[BillingOut])
def list_client_billing(client_id: int):
    _require_client(client_id)
    return [b.to_dict() for b in billing.list_client_billing(client_id)]


@router.post("/clients/{client_id}/billing", response_model=BillingOut, status_code=201)
def create_client_billing(client_id: int, body: BillingCreate):
    try:
        record = billing.create_billing(client_id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if record is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return record.to_dict()


@router.get("/clients/{client_id}/billing/year/{year}", response_model=BillingYearOut)
def get_client_billing_year(client_id: int, year: int):
    view = billing.client_year_view(client_id, year)
    if view is None:
        raise HTTPException(status_code=404, detail="Client not found")
    for slot in view["months"]:
        if slot["billing"] is not None:
            slot["billing"] = slot["billing"].to_dict()
    return view


@router.put("/billing/{billing_id}", response_model=BillingOut)
def update_billing(billing_id: int, body: BillingUpdate):
    """
    Update a billing record.

    isPaid: true settles the remaining balance through the payment ledger;
    isPaid: false reverses every payment applied to the record.
    """
    fields = body.model_dump(exclude_unset=True)
    is_paid = fields.pop("is_paid", None)
    try:
        with get_connection() as conn:
            record = billing.get_billing(billing_id, conn)
            if record is None:
                raise HTTPException(status_code=404, detail="Billing record not found")
            if is_paid is False and (record.is_paid or record.paid_amount):
                reconciliation.reopen_billing(billing_id, conn=conn)
            # Payment details describe the settlement, not the record
            method = fields.get("payment_method")
            paid_date = fields.get("paid_date")
            if is_paid:
                fields.pop("paid_date", None)
                fields.pop("payment_method", None)
            if fields:
                billing.update_billing(billing_id, conn=conn, **fields)
            if is_paid:
                reconciliation.settle_billing(billing_id, method=method, paid_date=paid_date, conn=conn)
            record = billing.get_billing(billing_id, conn)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return record.to_dict()


@router.delete("/billing/{billing_id}", status_code=204)
def delete_billing(billing_id: int):
    if not billing.delete_billing(billing_id):
        raise HTTPException(status_code=404, detail="Billing record not found")
    return Response(status_code=204)


@router.get("/billing", response_model=list[BillingOut])
def list_billing(
    status: str | None = Query(None, description="paid|unpaid|partial|all"),
    month: int | None = Query(None, ge=1, le=12),
    year: int | None = Query(None),
    search: str | None = Query(None, description="Client name or invoice number"),
):
    try:
        records = billing.list_billing(status=status, month=month, year=year, search=search)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return [r.to_dict() for r in records]


@router.get("/billing/stats", response_model=BillingStatsOut)
def get_billing_stats(year: int | None = Query(None)):
    return billing.billing_stats(year)


# ==== Reconciliation ====


@router.post("/billing/bulk-pay", response_model=BulkSettleOut)
def bulk_pay(body: BulkPayRequest):
    try:
        settled = reconciliation.bulk_settle(
            body.billing_ids, method=body.payment_method, paid_date=body.paid_date
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"settled": settled, "count": sum(len(s["billing_ids"]) for s in settled)}


@router.get("/billing/aging", response_model=list[AgingBucketOut])
def get_aging(as_of: date | None = Query(None, description="Default today")):
    return reconciliation.aging_buckets(as_of)


@router.get("/billing/reconciliation", response_model=list[MethodTotalOut])
def get_reconciliation():
    return reconciliation.reconciliation_by_method()


@router.post("/billing/generate", response_model=GenerateInvoicesOut)
def generate_invoices(body: GenerateRequest):
    try:
        result = reconciliation.generate_monthly_invoices(body.year, body.month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    result["created"] = [r.to_dict() for r in result["created"]]
    return result


@router.get("/clients/{client_id}/payments", response_model=list[PaymentOut])
def list_payments(client_id: int):
    _require_client(client_id)
    return [p.to_dict() for p in reconciliation.list_payments(client_id)]


@router.post("/clients/{client_id}/payments", response_model=PaymentOut, status_code=201)
def record_payment(client_id: int, body: PaymentCreate):
    try:
        payment = reconciliation.allocate_payment(
            client_id,
            body.amount,
            method=body.method,
            received_at=body.received_at,
            billing_ids=body.billing_ids,
            reference=body.reference,
            notes=body.notes,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if payment is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return payment.to_dict()


# ==== Invoices ====


def _invoice_or_404(client_id: int, year: int, month: int) -> dict:
    try:
        invoice = reconciliation.invoice_view(client_id, year, month)
    except config.SettingsError as e:
        logger.error("Invalid settings file: %s", e)
        raise HTTPException(status_code=500, detail="Settings file is invalid") from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if invoice is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return invoice


@router.get("/clients/{client_id}/invoices/{year}/{month}", response_model=InvoiceOut)
def get_invoice(client_id: int, year: int, month: int):
    return _invoice_or_404(client_id, year, month)


@router.get("/clients/{client_id}/invoices/{year}/{month}/pdf")
def get_invoice_pdf(client_id: int, year: int, month: int):
    invoice = _invoice_or_404(client_id, year, month)
    pdf = render_invoice_pdf(invoice)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{invoice["invoice_number"]}.pdf"'},
    )


# ==== Public (no auth) ====

public_router = APIRouter(prefix="/api/public", tags=["public"])


@public_router.get("/invoices/{client_id}/{year}/{month}", response_model=InvoiceOut)
def get_public_invoice(client_id: int, year: int, month: int):
    """Shareable invoice link for the client. Read-only."""
    return _invoice_or_404(client_id, year, month)
