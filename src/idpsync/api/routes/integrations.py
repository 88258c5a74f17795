"""Okta integration trigger and status routes."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from idpsync.config import Settings, get_settings
from idpsync.okta.actions import (
    get_okta_status,
    get_okta_sync_history,
    get_okta_sync_stats,
    trigger_okta_sync,
)

router = APIRouter()


class OktaStatusResponse(BaseModel):
    configured: bool
    availability: Dict[str, Any]
    connection: Dict[str, Any]
    recent_runs: List[Dict[str, Any]]


class OktaStatsResponse(BaseModel):
    total_syncs: int
    successful_syncs: int
    total_users_imported: int
    total_apps_imported: int
    last_successful_sync: Optional[datetime]


@router.post("/okta/sync")
async def sync_okta(settings: Settings = Depends(get_settings)):
    """
    Run an Okta sync and return its SyncResult (for cron jobs and webhooks).
    Responds 400 when Okta is not configured, 500 when the run failed.
    """
    if not settings.okta_configured:
        return JSONResponse(
            {"success": False, "error": "Okta is not configured"},
            status_code=400,
        )

    result = await trigger_okta_sync(settings)
    return JSONResponse(
        result.to_dict(),
        status_code=200 if result.success else 500,
    )


@router.get("/okta/status", response_model=OktaStatusResponse)
def okta_status(settings: Settings = Depends(get_settings)):
    """Configured flag, connection row and the most recent runs."""
    return get_okta_status(settings)


@router.get("/okta/runs", response_model=List[Dict[str, Any]])
def okta_runs(settings: Settings = Depends(get_settings)):
    """Most recent sync runs, newest first."""
    return get_okta_sync_history(settings)


@router.get("/okta/stats", response_model=OktaStatsResponse)
def okta_stats(settings: Settings = Depends(get_settings)):
    return get_okta_sync_stats(settings)
