# labtrack/api/v1/endpoints/maintenance.py
from typing import Dict

from fastapi import APIRouter, Depends, Request
from loguru import logger

from labtrack.api.deps import get_notification_sink, get_storage
from labtrack.core.notifications import NotificationSink
from labtrack.core.rate_limiter import limiter
from labtrack.db.storage import Storage
from labtrack.scheduler.jobs import ReconciliationSweeper, run_daily_maintenance

router = APIRouter(
    prefix="/maintenance",
    tags=["Maintenance"]
)


@router.post("/sweep")
@limiter.limit("10/minute")
async def trigger_sweep(request: Request, storage: Storage = Depends(get_storage)) -> Dict[str, int]:
    """Run the reconciliation sweep now."""
    logger.info("Manual sweep triggered.")
    updated = await ReconciliationSweeper(storage).sweep()
    return {"updated": updated}


@router.post("/run")
@limiter.limit("5/minute")
async def trigger_daily_maintenance(
    request: Request,
    storage: Storage = Depends(get_storage),
    sink: NotificationSink = Depends(get_notification_sink),
) -> Dict[str, int]:
    """Run the daily job now: sweep, return reminders and overdue notices."""
    logger.info("Manual daily maintenance triggered.")
    return await run_daily_maintenance(storage, sink)
