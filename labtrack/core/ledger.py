# labtrack/core/ledger.py
import logging
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from .errors import EquipmentNotFound, InsufficientInventory, InvalidQuantity
from .utils import utc_now
from ..models.equipment import Equipment

logger = logging.getLogger(__name__)


class InventoryLedger:
    """
    Applies quantity changes to equipment documents loaded inside one unit of work.

    Every method checks the post-condition before touching a counter, so a
    refused call leaves the document unchanged. `touched` lists the documents
    that must be staged for commit.
    """

    def __init__(self, equipment: Mapping[str, Equipment], now: Optional[datetime] = None):
        self._equipment: Dict[str, Equipment] = dict(equipment)
        self._touched: Dict[str, Equipment] = {}
        self._now = now or utc_now()

    @property
    def touched(self) -> List[Equipment]:
        return list(self._touched.values())

    def get(self, equipment_id: str) -> Equipment:
        equipment = self._equipment.get(equipment_id)
        if equipment is None:
            raise EquipmentNotFound(equipment_id)
        return equipment

    def reserve(self, equipment_id: str, quantity: int) -> Equipment:
        """Move `quantity` units from available to borrowed."""
        equipment = self.get(equipment_id)
        self._check_quantity(quantity)
        if equipment.available_quantity - quantity < 0:
            raise InsufficientInventory(
                f"Only {equipment.available_quantity} unit(s) of '{equipment.name}' available, "
                f"{quantity} requested.",
                equipment_id=equipment_id,
            )
        self._shift(equipment, -quantity)
        logger.debug(f"Reserved {quantity} of equipment {equipment_id}: available={equipment.available_quantity}, borrowed={equipment.borrowed_quantity}")
        return equipment

    def release(self, equipment_id: str, quantity: int) -> Equipment:
        """Move `quantity` units from borrowed back to available."""
        equipment = self.get(equipment_id)
        self._check_quantity(quantity)
        if equipment.borrowed_quantity - quantity < 0:
            raise InsufficientInventory(
                f"Cannot release {quantity} unit(s) of '{equipment.name}': only "
                f"{equipment.borrowed_quantity} borrowed.",
                equipment_id=equipment_id,
            )
        self._shift(equipment, quantity)
        logger.debug(f"Released {quantity} of equipment {equipment_id}: available={equipment.available_quantity}, borrowed={equipment.borrowed_quantity}")
        return equipment

    def resize(self, equipment_id: str, new_total: int) -> Equipment:
        """Change the owned total; the difference lands on (or comes from) available."""
        equipment = self.get(equipment_id)
        self._check_quantity(new_total)
        if new_total < equipment.borrowed_quantity:
            raise InsufficientInventory(
                f"Total for '{equipment.name}' cannot be less than borrowed ({equipment.borrowed_quantity}).",
                equipment_id=equipment_id,
            )
        difference = new_total - equipment.total_quantity
        if difference == 0:
            return equipment
        equipment.total_quantity = new_total
        equipment.available_quantity += difference
        self._mark(equipment)
        return equipment

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity <= 0:
            raise InvalidQuantity(f"Quantity must be greater than zero, got {quantity}.")

    def _shift(self, equipment: Equipment, to_available: int) -> None:
        equipment.available_quantity += to_available
        equipment.borrowed_quantity -= to_available
        self._mark(equipment)

    def _mark(self, equipment: Equipment) -> None:
        if not equipment.is_balanced:
            # Stored counters were already inconsistent before this change
            logger.error(
                f"Conservation violated for equipment {equipment.id}: total={equipment.total_quantity}, "
                f"available={equipment.available_quantity}, borrowed={equipment.borrowed_quantity}"
            )
        equipment.updated_at = self._now
        self._touched[equipment.id] = equipment
