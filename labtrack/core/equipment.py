# labtrack/core/equipment.py
import logging
from datetime import datetime
from typing import Callable, List, Optional

from . import config
from .atomic import run_atomic
from .errors import EquipmentInUse, EquipmentNotFound
from .ledger import InventoryLedger
from .utils import utc_now
from ..db.storage import Storage, UnitOfWork
from ..models.enum import ACTIVE_STATUSES
from ..models.equipment import Equipment

logger = logging.getLogger(__name__)


class EquipmentService:
    """Equipment administration. Quantity changes still go through InventoryLedger."""

    def __init__(
        self,
        storage: Storage,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.max_attempts = config.MAX_COMMIT_ATTEMPTS if max_attempts is None else max_attempts
        self.retry_base_delay = config.RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        self.clock = clock

    async def _atomic(self, operation: str, work):
        return await run_atomic(
            self.storage, work,
            operation=operation, max_attempts=self.max_attempts, base_delay=self.retry_base_delay,
        )

    async def create(self, data: Equipment.Create) -> Equipment:
        now = self.clock()
        equipment = Equipment(
            **data.model_dump(exclude={"total_quantity"}),
            total_quantity=data.total_quantity,
            available_quantity=data.total_quantity,
            borrowed_quantity=0,
            created_at=now,
            updated_at=now,
        )

        async def work(uow: UnitOfWork) -> Equipment:
            uow.add_equipment(equipment)
            return equipment

        created = await self._atomic("create_equipment", work)
        logger.info(f"Equipment '{created.name}' ({created.id}) created with {created.total_quantity} unit(s).")
        return created

    async def get(self, equipment_id: str) -> Equipment:
        equipment = await self.storage.get_equipment(equipment_id)
        if equipment is None:
            raise EquipmentNotFound(equipment_id)
        return equipment

    async def list_all(self) -> List[Equipment]:
        return await self.storage.list_equipment()

    async def update(self, equipment_id: str, data: Equipment.Update) -> Equipment:
        changes = data.model_dump(exclude_unset=True)
        new_total = changes.pop("total_quantity", None)

        async def work(uow: UnitOfWork) -> Equipment:
            now = self.clock()
            equipment = await uow.get_equipment(equipment_id)
            if equipment is None:
                raise EquipmentNotFound(equipment_id)
            ledger = InventoryLedger({equipment.id: equipment}, now=now)
            if new_total is not None:
                ledger.resize(equipment.id, new_total)
            equipment = Equipment.model_validate({**equipment.model_dump(), **changes, "updated_at": now})
            uow.update_equipment(equipment)
            return equipment

        updated = await self._atomic("update_equipment", work)
        logger.info(f"Equipment '{updated.name}' ({updated.id}) updated: {sorted(data.model_fields_set)}.")
        return updated

    async def delete(self, equipment_id: str) -> None:
        async def work(uow: UnitOfWork) -> None:
            equipment = await uow.get_equipment(equipment_id)
            if equipment is None:
                raise EquipmentNotFound(equipment_id)
            active = await uow.find_transactions(ACTIVE_STATUSES)
            holders = [
                t.transaction_id for t in active
                if any(item.equipment_id == equipment_id for item in t.items)
            ]
            if holders:
                raise EquipmentInUse(
                    f"Equipment '{equipment.name}' is referenced by active transaction(s): {', '.join(holders)}."
                )
            uow.remove_equipment(equipment)

        await self._atomic("delete_equipment", work)
        logger.info(f"Equipment {equipment_id} deleted.")
