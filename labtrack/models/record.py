# labtrack/models/record.py
from typing import List
from datetime import datetime
from pydantic import BaseModel, Field

from .enum import FineStatus, FineType, TransactionStatus
from .transaction import BorrowedItem, Transaction
from ..core.utils import new_id, utc_now


class Record(BaseModel):
    """Archived final state of a fully returned transaction. Never updated after insert."""
    id: str = Field(default_factory=new_id)
    transaction_id: str
    student_id: str
    student_name: str = ""
    student_email: str = ""
    items: List[BorrowedItem]
    borrowed_date: datetime
    due_date: datetime
    returned_date: datetime
    completed_date: datetime
    final_status: TransactionStatus
    total_price: float = 0
    fine_amount: float = 0
    notes: str = ""
    created_at: datetime
    archived_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def archive(
        cls,
        transaction: Transaction,
        items: List[BorrowedItem],
        final_status: TransactionStatus,
        fine_amount: float,
        completed_at: datetime,
    ) -> "Record":
        return cls(
            transaction_id=transaction.transaction_id or transaction.id,
            student_id=transaction.student_id,
            student_name=transaction.student_name,
            student_email=transaction.student_email,
            items=items,
            borrowed_date=transaction.borrowed_date,
            due_date=transaction.due_date,
            returned_date=completed_at,
            completed_date=completed_at,
            final_status=final_status,
            total_price=transaction.total_price,
            fine_amount=fine_amount,
            created_at=transaction.created_at,
            archived_at=completed_at,
        )


class Fine(BaseModel):
    """Penalty levied when an overdue transaction is archived."""
    id: str = Field(default_factory=new_id)
    transaction_id: str
    student_id: str
    student_name: str = ""
    student_email: str = ""
    fine_type: FineType = FineType.LATE_RETURN
    amount: float
    reason: str
    days_overdue: int = Field(..., ge=0)
    status: FineStatus = FineStatus.UNPAID
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
