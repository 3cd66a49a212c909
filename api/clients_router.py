"""
Clients API Router.

Endpoints:
- GET /api/clients: list with search and status filter
- POST /api/clients: create
- GET /api/clients/{client_id}: detail
- PUT /api/clients/{client_id}: partial update
- DELETE /api/clients/{client_id}: delete with dependent records
- GET /api/clients/{client_id}/balance: billed / paid / outstanding
- GET /api/clients/{client_id}/activity: history, optionally grouped by day
- GET /api/export/clients: CSV download
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import Field

from api.auth import require_auth
from api.response_models import (
    ActivityDayOut,
    ActivityOut,
    CamelModel,
    ClientBalanceOut,
    ClientOut,
)
from clientdesk import activity, billing, clients

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["clients"], dependencies=[Depends(require_auth)])


class ClientCreate(CamelModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    website: str | None = None
    industry: str | None = None
    google_ad_account_id: str | None = None
    monthly_service_charge: float = Field(..., ge=0)
    status: str = "active"
    contact_person: str | None = None
    address: str | None = None
    notes: str | None = None


class ClientUpdate(CamelModel):
    name: str | None = Field(None, min_length=1)
    email: str | None = Field(None, min_length=1)
    phone: str | None = Field(None, min_length=1)
    website: str | None = None
    industry: str | None = None
    google_ad_account_id: str | None = None
    monthly_service_charge: float | None = Field(None, ge=0)
    status: str | None = None
    contact_person: str | None = None
    address: str | None = None
    notes: str | None = None


def _client_or_404(client_id: int) -> clients.Client:
    client = clients.get_client(client_id)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.get("/clients", response_model=list[ClientOut])
def list_clients(
    search: str | None = Query(None, description="Name, email, industry or contact"),
    status: str | None = Query(None, description="active|inactive|pending|overdue|all"),
):
    return [c.to_dict() for c in clients.list_clients(search=search, status=status)]


@router.post("/clients", response_model=ClientOut, status_code=201)
def create_client(body: ClientCreate):
    try:
        client = clients.create_client(**body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return client.to_dict()


@router.get("/clients/{client_id}", response_model=ClientOut)
def get_client(client_id: int):
    return _client_or_404(client_id).to_dict()


@router.put("/clients/{client_id}", response_model=ClientOut)
def update_client(client_id: int, body: ClientUpdate):
    try:
        client = clients.update_client(client_id, **body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return client.to_dict()


@router.delete("/clients/{client_id}", status_code=204)
def delete_client(client_id: int):
    if not clients.delete_client(client_id):
        raise HTTPException(status_code=404, detail="Client not found")
    return Response(status_code=204)


@router.get("/clients/{client_id}/balance", response_model=ClientBalanceOut)
def get_client_balance(client_id: int):
    balance = billing.client_balance(client_id)
    if balance is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return balance


@router.get(
    "/clients/{client_id}/activity",
    response_model=list[ActivityOut] | list[ActivityDayOut],
)
def get_client_activity(
    client_id: int,
    grouped: bool = Query(False, description="Group by calendar day"),
    limit: int = Query(200, ge=1, le=1000),
):
    # History outlives the client, so no existence check here
    items = activity.list_activity(client_id, limit=limit)
    if grouped:
        return [
            {"date": g["date"], "activities": [asdict(a) for a in g["activities"]]}
            for g in activity.group_by_day(items)
        ]
    return [asdict(a) for a in items]


@router.get("/export/clients")
def export_clients():
    csv_text = clients.export_clients_csv()
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="clients.csv"'},
    )
