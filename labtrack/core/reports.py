# labtrack/core/reports.py
import logging
from datetime import datetime
from typing import Optional

from .utils import utc_now
from ..db.storage import Storage
from ..models.enum import EquipmentStatus, FineStatus, TransactionStatus
from ..models.report import EquipmentStats, FineStats, RecordStats, SummaryReport, TransactionStats

logger = logging.getLogger(__name__)

_TRANSACTION_FIELDS = {
    TransactionStatus.REQUEST: "request",
    TransactionStatus.ONGOING: "ongoing",
    TransactionStatus.OVERDUE: "overdue",
    TransactionStatus.INCOMPLETE: "incomplete",
    TransactionStatus.INCOMPLETE_AND_OVERDUE: "incomplete_and_overdue",
}


async def build_summary(storage: Storage, now: Optional[datetime] = None) -> SummaryReport:
    """Counts over live transactions, archived records, fines and equipment."""
    transactions = TransactionStats()
    for transaction in await storage.list_transactions():
        field = _TRANSACTION_FIELDS.get(transaction.status)
        if field is None:
            logger.warning(f"Live transaction {transaction.id} holds terminal status '{transaction.status.value}'.")
            continue
        setattr(transactions, field, getattr(transactions, field) + 1)
        transactions.total += 1
        transactions.outstanding_fines += transaction.fine_amount

    records = RecordStats()
    for record in await storage.list_records():
        if record.final_status is TransactionStatus.COMPLETE_AND_OVERDUE:
            records.complete_and_overdue += 1
        else:
            records.complete += 1
        records.total += 1
        records.total_fines += record.fine_amount

    fines = FineStats()
    for fine in await storage.list_fines():
        if fine.status is FineStatus.UNPAID:
            fines.unpaid_count += 1
            fines.unpaid_amount += fine.amount

    equipment = EquipmentStats()
    for item in await storage.list_equipment():
        equipment.total += 1
        if item.status is EquipmentStatus.AVAILABLE:
            equipment.available += 1
        elif item.status is EquipmentStatus.MAINTENANCE:
            equipment.maintenance += 1
        else:
            equipment.unavailable += 1
        equipment.total_units += item.total_quantity
        equipment.available_units += item.available_quantity
        equipment.borrowed_units += item.borrowed_quantity

    return SummaryReport(
        generated_at=now or utc_now(),
        transactions=transactions,
        records=records,
        fines=fines,
        equipment=equipment,
    )
