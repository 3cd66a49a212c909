"""
Campaigns API Router.

Endpoints:
- GET /api/campaigns: all campaigns with client name
- GET /api/clients/{client_id}/campaigns
- POST /api/clients/{client_id}/campaigns
- PUT /api/campaigns/{campaign_id}
- DELETE /api/campaigns/{campaign_id}
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import Field

from api.auth import require_auth
from api.response_models import CamelModel, CampaignOut
from clientdesk import campaigns, clients

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["campaigns"], dependencies=[Depends(require_auth)])


class CampaignCreate(CamelModel):
    name: str = Field(..., min_length=1)
    platform: str = Field(..., min_length=1)
    budget: float = Field(0, ge=0)
    start_date: str
    end_date: str | None = None
    status: str = "active"
    description: str | None = None
    target_audience: str | None = None
    keywords: list[str] = Field(default_factory=list)
    performance: dict[str, Any] = Field(default_factory=dict)


class CampaignUpdate(CamelModel):
    name: str | None = Field(None, min_length=1)
    platform: str | None = Field(None, min_length=1)
    budget: float | None = Field(None, ge=0)
    start_date: str | None = None
    end_date: str | None = None
    status: str | None = None
    description: str | None = None
    target_audience: str | None = None
    keywords: list[str] | None = None
    performance: dict[str, Any] | None = None


@router.get("/campaigns", response_model=list[CampaignOut])
def list_campaigns(
    status: str | None = Query(None, description="active|paused|completed|all"),
    platform: str | None = Query(None),
    search: str | None = Query(None, description="Campaign or client name"),
):
    return [c.to_dict() for c in campaigns.list_campaigns(status, platform, search)]


@router.get("/clients/{client_id}/campaigns", response_model=list[CampaignOut])
def list_client_campaigns(client_id: int):
    if clients.get_client(client_id) is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return [c.to_dict() for c in campaigns.list_client_campaigns(client_id)]


@router.post("/clients/{client_id}/campaigns", response_model=CampaignOut, status_code=201)
def create_campaign(client_id: int, body: CampaignCreate):
    try:
        campaign = campaigns.create_campaign(client_id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if campaign is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return campaign.to_dict()


@router.put("/campaigns/{campaign_id}", response_model=CampaignOut)
def update_campaign(campaign_id: int, body: CampaignUpdate):
    try:
        campaign = campaigns.update_campaign(campaign_id, **body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign.to_dict()


@router.delete("/campaigns/{campaign_id}", status_code=204)
def delete_campaign(campaign_id: int):
    if not campaigns.delete_campaign(campaign_id):
        raise HTTPException(status_code=404, detail="Campaign not found")
    return Response(status_code=204)
