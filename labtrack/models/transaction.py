# labtrack/models/transaction.py
from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator

from .enum import TransactionStatus
from ..core.utils import ensure_utc, new_id, utc_now


class BorrowedItem(BaseModel):
    """One equipment line inside a transaction. `quantity` never changes after creation."""
    id: str
    equipment_id: str
    item_name: str
    quantity: int = Field(..., gt=0)
    price_per_quantity: float = Field(default=0, ge=0)
    returned: bool = False
    returned_quantity: int = Field(default=0, ge=0)
    damaged_quantity: int = Field(default=0, ge=0)
    lost_quantity: int = Field(default=0, ge=0)
    damage_notes: str = ""

    @property
    def outstanding_quantity(self) -> int:
        return self.quantity - self.returned_quantity

    @property
    def is_fully_returned(self) -> bool:
        return self.returned and self.returned_quantity == self.quantity

    @property
    def is_partially_returned(self) -> bool:
        return 0 < self.returned_quantity < self.quantity


class ItemRequest(BaseModel):
    equipment_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0, description="Number of units to borrow (must be > 0)")


class ItemReturn(BaseModel):
    """Return state for one item. `quantity` is the absolute returned total, not an increment."""
    checked: bool = False
    quantity: int


class Transaction(BaseModel):
    id: str = Field(default_factory=new_id)
    transaction_id: str = Field(..., description="Display code TXN-YYYYMMDD-NNNNNN")
    student_id: str
    student_name: str = ""
    student_email: str = ""
    items: List[BorrowedItem]
    borrowed_date: datetime
    due_date: datetime
    status: TransactionStatus
    total_price: float = 0
    fine_amount: float = 0
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    # --- Pydantic Schemas ---
    class Create(BaseModel):
        student_id: str = Field(..., min_length=1)
        student_name: str = Field(..., min_length=1)
        student_email: EmailStr
        items: List[ItemRequest] = Field(..., min_length=1)
        due_date: datetime
        is_staff_created: bool = False

        @field_validator("due_date")
        @classmethod
        def due_date_utc(cls, value: datetime) -> datetime:
            return ensure_utc(value)

    class Complete(BaseModel):
        items: Dict[str, ItemReturn] = Field(default_factory=dict, description="item id -> return state")

    class StatusChange(BaseModel):
        message: str
        transaction_id: str
        new_status: Optional[TransactionStatus] = None
