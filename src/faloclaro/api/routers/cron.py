"""Scheduled email dispatch hook."""

from typing import Optional

from fastapi import APIRouter, Body, Depends

from faloclaro.api.deps import get_db, require_cron
from faloclaro.services.email_engine import run_dispatcher_once
from faloclaro.utils.supabase_client import Client

router = APIRouter(prefix="/api/cron", tags=["cron"], dependencies=[Depends(require_cron)])

DEFAULT_BATCH = 50


@router.get("/email-dispatch")
def dispatch_get(db: Client = Depends(get_db)):
    return {"success": True, **run_dispatcher_once(db, limit=DEFAULT_BATCH)}


@router.post("/email-dispatch")
def dispatch_post(
    body: Optional[dict] = Body(None),
    db: Client = Depends(get_db),
):
    limit = (body or {}).get("limit") or DEFAULT_BATCH
    try:
        limit = max(1, int(limit))
    except (TypeError, ValueError):
        limit = DEFAULT_BATCH
    return {"success": True, **run_dispatcher_once(db, limit=limit)}
