# labtrack/api/v1/endpoints/reports.py
from fastapi import APIRouter, Depends
from loguru import logger

from labtrack.api.deps import get_storage
from labtrack.core.reports import build_summary
from labtrack.db.storage import Storage
from labtrack.models.report import SummaryReport

router = APIRouter(
    prefix="/reports",
    tags=["Reports"]
)


@router.get("/summary", response_model=SummaryReport, summary="Transaction, archive and equipment statistics")
async def get_summary_report(storage: Storage = Depends(get_storage)):
    report = await build_summary(storage)
    logger.debug(f"Summary report: {report.transactions.total} live transaction(s), {report.records.total} record(s).")
    return report
