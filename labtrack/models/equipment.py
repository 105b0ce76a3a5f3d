# labtrack/models/equipment.py
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from .enum import EquipmentCondition, EquipmentStatus
from ..core.utils import new_id, utc_now


class Equipment(BaseModel):
    """
    Lab equipment with its quantity counters.
    available_quantity + borrowed_quantity == total_quantity between operations;
    counters only change through InventoryLedger.
    """
    id: str = Field(default_factory=new_id)
    name: str = Field(..., max_length=200)
    description: Optional[str] = None
    total_quantity: int = Field(default=0, ge=0)
    available_quantity: int = Field(default=0, ge=0)
    borrowed_quantity: int = Field(default=0, ge=0)
    price_per_unit: float = Field(default=0, ge=0)
    condition: EquipmentCondition = EquipmentCondition.GOOD
    status: EquipmentStatus = EquipmentStatus.AVAILABLE

    # Optimistic concurrency token, bumped by the storage on every committed write
    version: int = 0

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_balanced(self) -> bool:
        return (
            self.available_quantity >= 0
            and self.borrowed_quantity >= 0
            and self.available_quantity + self.borrowed_quantity == self.total_quantity
        )

    # --- Pydantic Schemas for API ---
    class Create(BaseModel):
        name: str = Field(..., min_length=1, max_length=200)
        description: Optional[str] = None
        total_quantity: int = Field(..., gt=0)
        price_per_unit: float = Field(default=0, ge=0)
        condition: EquipmentCondition = EquipmentCondition.GOOD
        status: EquipmentStatus = EquipmentStatus.AVAILABLE

    class Update(BaseModel):
        name: Optional[str] = Field(None, min_length=1, max_length=200)
        description: Optional[str] = None
        total_quantity: Optional[int] = Field(None, gt=0, description="New total; cannot drop below the borrowed quantity")
        price_per_unit: Optional[float] = Field(None, ge=0)
        condition: Optional[EquipmentCondition] = None
        status: Optional[EquipmentStatus] = None

        @field_validator("name", "total_quantity", "price_per_unit", "condition", "status")
        @classmethod
        def not_null(cls, value):
            # Omit a field to leave it unchanged; only description can be cleared
            if value is None:
                raise ValueError("may be omitted but not set to null")
            return value
