"""
Dashboard and Settings API Router.

Endpoints:
- GET /api/dashboard/stats
- GET /api/dashboard/revenue?year=
- GET /api/settings: company profile used on invoices
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from api.auth import require_auth
from api.response_models import DashboardStatsOut, RevenuePointOut, SettingsOut
from clientdesk import config, dashboard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["dashboard"], dependencies=[Depends(require_auth)])


@router.get("/dashboard/stats", response_model=DashboardStatsOut)
def get_dashboard_stats():
    return dashboard.dashboard_stats()


@router.get("/dashboard/revenue", response_model=list[RevenuePointOut])
def get_revenue(year: int | None = Query(None, ge=1900, le=9999)):
    return dashboard.revenue_series(year or date.today().year)


@router.get("/settings", response_model=SettingsOut)
def get_settings():
    try:
        return config.load_profile()
    except config.SettingsError as e:
        logger.error("Invalid settings file: %s", e)
        raise HTTPException(status_code=500, detail="Settings file is invalid") from e
