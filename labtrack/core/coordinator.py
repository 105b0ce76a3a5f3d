# labtrack/core/coordinator.py
"""
Transaction lifecycle: create, approve, deny, complete and delete.

Every mutating operation reads the transaction and the equipment it touches
through one unit of work, computes the new state, stages all writes on that
unit of work and commits them together. A concurrent write detected at
commit re-runs the whole operation (see `run_atomic`).
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from . import config
from .atomic import run_atomic
from .errors import InvalidQuantity, InvalidReturnQuantity, InvalidState, TransactionNotFound
from .fines import calculate_fine, days_overdue
from .ledger import InventoryLedger
from .notifications import NotificationSink, build_approval_notice, build_denial_notice
from .status import derive_status, validate_transition
from .utils import ensure_utc, epoch_ms, generate_transaction_code, utc_now
from ..db.storage import Storage, UnitOfWork
from ..models.enum import ALL_STATUSES_FILTER, FineType, TransactionStatus
from ..models.record import Fine, Record
from ..models.transaction import BorrowedItem, ItemRequest, ItemReturn, Transaction

logger = logging.getLogger(__name__)


class TransactionCoordinator:

    def __init__(
        self,
        storage: Storage,
        notification_sink: Optional[NotificationSink] = None,
        fine_per_day: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.notification_sink = notification_sink
        self.fine_per_day = config.FINE_PER_DAY if fine_per_day is None else fine_per_day
        self.max_attempts = config.MAX_COMMIT_ATTEMPTS if max_attempts is None else max_attempts
        self.retry_base_delay = config.RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        self.clock = clock

    async def _atomic(self, operation: str, work):
        return await run_atomic(
            self.storage,
            work,
            operation=operation,
            max_attempts=self.max_attempts,
            base_delay=self.retry_base_delay,
            sink=self.notification_sink,
        )

    @staticmethod
    async def _load(uow: UnitOfWork, transaction_id: str) -> Transaction:
        transaction = await uow.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFound(transaction_id)
        return transaction

    # --- Lifecycle operations ---
    async def create(
        self,
        student_id: str,
        items: Sequence[ItemRequest],
        due_date: datetime,
        is_staff_created: bool = False,
        *,
        student_name: str = "",
        student_email: str = "",
    ) -> Transaction:
        """
        Open a transaction and reserve inventory for every line.

        Staff-created transactions start `Ongoing`, self-service ones start
        `Request`. Inventory is held from the moment of request either way.
        """
        items = list(items)
        if not items:
            raise InvalidQuantity("A transaction needs at least one item.")

        async def work(uow: UnitOfWork) -> Transaction:
            now = self.clock()
            equipment = await uow.get_equipment_many(line.equipment_id for line in items)
            ledger = InventoryLedger(equipment, now=now)

            stamp = epoch_ms(now)
            borrowed: List[BorrowedItem] = []
            for index, line in enumerate(items):
                source = ledger.reserve(line.equipment_id, line.quantity)
                borrowed.append(BorrowedItem(
                    id=f"item-{stamp}-{index}",
                    equipment_id=source.id,
                    item_name=source.name,
                    quantity=line.quantity,
                    price_per_quantity=source.price_per_unit,
                ))

            transaction = Transaction(
                transaction_id=generate_transaction_code(now),
                student_id=student_id,
                student_name=student_name,
                student_email=student_email,
                items=borrowed,
                borrowed_date=now,
                due_date=ensure_utc(due_date),
                status=TransactionStatus.ONGOING if is_staff_created else TransactionStatus.REQUEST,
                total_price=sum(item.price_per_quantity * item.quantity for item in borrowed),
                created_at=now,
                updated_at=now,
            )
            for document in ledger.touched:
                uow.update_equipment(document)
            uow.add_transaction(transaction)
            return transaction

        transaction = await self._atomic("create", work)
        logger.info(
            f"Transaction {transaction.transaction_id} ({transaction.id}) created for student "
            f"'{student_id}' with status '{transaction.status.value}'."
        )
        return transaction

    async def approve(self, transaction_id: str) -> Transaction:
        async def work(uow: UnitOfWork) -> Transaction:
            now = self.clock()
            transaction = await self._load(uow, transaction_id)
            if transaction.status is not TransactionStatus.REQUEST:
                raise InvalidState(
                    f"Only requests can be approved; transaction is '{transaction.status.value}'."
                )
            validate_transition(transaction.status, TransactionStatus.ONGOING)
            transaction.status = TransactionStatus.ONGOING
            transaction.borrowed_date = now
            transaction.updated_at = now
            uow.update_transaction(transaction)
            uow.add_notification(build_approval_notice(transaction, created_at=now))
            return transaction

        transaction = await self._atomic("approve", work)
        logger.info(f"Transaction {transaction.transaction_id} approved.")
        return transaction

    async def deny(self, transaction_id: str) -> Transaction:
        """Release every reserved unit and drop the request. Denied requests are not archived."""
        async def work(uow: UnitOfWork) -> Transaction:
            now = self.clock()
            transaction = await self._load(uow, transaction_id)
            if transaction.status is not TransactionStatus.REQUEST:
                raise InvalidState(
                    f"Only requests can be denied; transaction is '{transaction.status.value}'."
                )
            equipment = await uow.get_equipment_many(item.equipment_id for item in transaction.items)
            ledger = InventoryLedger(equipment, now=now)
            for item in transaction.items:
                ledger.release(item.equipment_id, item.quantity)

            for document in ledger.touched:
                uow.update_equipment(document)
            uow.add_notification(build_denial_notice(transaction, created_at=now))
            uow.remove_transaction(transaction)
            return transaction

        transaction = await self._atomic("deny", work)
        logger.info(f"Transaction {transaction.transaction_id} denied and removed.")
        return transaction

    async def complete(
        self,
        transaction_id: str,
        per_item_return: Mapping[str, Union[ItemReturn, dict]],
    ) -> TransactionStatus:
        """
        Record returned quantities and archive the transaction once everything is back.

        `per_item_return` maps item id to `{checked, quantity}` where quantity
        is the absolute returned total for that item. Only the increase since
        the previously recorded total goes back to inventory.
        """
        returns: Dict[str, ItemReturn] = {
            item_id: value if isinstance(value, ItemReturn) else ItemReturn.model_validate(value)
            for item_id, value in per_item_return.items()
        }

        async def work(uow: UnitOfWork) -> TransactionStatus:
            now = self.clock()
            transaction = await self._load(uow, transaction_id)
            if transaction.status is TransactionStatus.REQUEST:
                raise InvalidState("A request must be approved before items can be returned.")
            if transaction.status.is_terminal:
                raise InvalidState(f"Transaction is already '{transaction.status.value}'.")

            updated_items, increments = self._apply_returns(transaction, returns)

            equipment = await uow.get_equipment_many(item.equipment_id for item in transaction.items)
            ledger = InventoryLedger(equipment, now=now)
            for item in updated_items:
                newly_returned = increments[item.id]
                if newly_returned > 0:
                    ledger.release(item.equipment_id, newly_returned)
            for document in ledger.touched:
                uow.update_equipment(document)

            derived = derive_status(updated_items, transaction.due_date, transaction.status, now)
            fine_amount = calculate_fine(transaction.due_date, now, self.fine_per_day)

            if derived.is_terminal:
                validate_transition(transaction.status, derived)
                uow.add_record(Record.archive(transaction, updated_items, derived, fine_amount, now))
                if derived is TransactionStatus.COMPLETE_AND_OVERDUE and fine_amount > 0:
                    overdue_days = days_overdue(transaction.due_date, now)
                    uow.add_fine(Fine(
                        transaction_id=transaction.transaction_id,
                        student_id=transaction.student_id,
                        student_name=transaction.student_name,
                        student_email=transaction.student_email,
                        fine_type=FineType.LATE_RETURN,
                        amount=fine_amount,
                        reason=f"{overdue_days} days overdue",
                        days_overdue=overdue_days,
                        created_at=now,
                        updated_at=now,
                    ))
                uow.remove_transaction(transaction)
                return derived

            # Not everything is back: the loan stays live as a partial return
            status = (
                TransactionStatus.INCOMPLETE_AND_OVERDUE if derived.is_overdue
                else TransactionStatus.INCOMPLETE
            )
            validate_transition(transaction.status, status)
            transaction.items = updated_items
            transaction.status = status
            transaction.fine_amount = fine_amount
            transaction.updated_at = now
            uow.update_transaction(transaction)
            return status

        status = await self._atomic("complete", work)
        logger.info(f"Transaction {transaction_id} completed with status '{status.value}'.")
        return status

    @staticmethod
    def _apply_returns(transaction: Transaction, returns: Mapping[str, ItemReturn]):
        known = {item.id for item in transaction.items}
        unknown = sorted(set(returns) - known)
        if unknown:
            raise InvalidReturnQuantity(f"Unknown item id(s) for this transaction: {', '.join(unknown)}.")

        updated: List[BorrowedItem] = []
        increments: Dict[str, int] = {}
        for item in transaction.items:
            entry = returns.get(item.id)
            if entry is None:
                updated.append(item.model_copy())
                increments[item.id] = 0
                continue
            if entry.quantity < 0:
                raise InvalidReturnQuantity(f"Returned quantity for '{item.item_name}' cannot be negative.")
            if entry.quantity > item.quantity:
                raise InvalidReturnQuantity(
                    f"Returned quantity for '{item.item_name}' ({entry.quantity}) exceeds "
                    f"borrowed quantity ({item.quantity})."
                )
            if entry.checked and entry.quantity == 0:
                raise InvalidReturnQuantity(f"'{item.item_name}' is marked returned with a quantity of 0.")
            if entry.quantity < item.returned_quantity:
                raise InvalidReturnQuantity(
                    f"Returned quantity for '{item.item_name}' cannot drop from "
                    f"{item.returned_quantity} to {entry.quantity}."
                )
            increments[item.id] = entry.quantity - item.returned_quantity
            updated.append(item.model_copy(update={"returned": entry.checked, "returned_quantity": entry.quantity}))
        return updated, increments

    async def delete(self, transaction_id: str) -> Transaction:
        """Administrative removal: release whatever is still out, then drop without archiving."""
        async def work(uow: UnitOfWork) -> Transaction:
            now = self.clock()
            transaction = await self._load(uow, transaction_id)
            if transaction.status.is_terminal:
                raise InvalidState(f"Transaction is already '{transaction.status.value}'.")
            equipment = await uow.get_equipment_many(item.equipment_id for item in transaction.items)
            ledger = InventoryLedger(equipment, now=now)
            for item in transaction.items:
                if item.outstanding_quantity > 0:
                    ledger.release(item.equipment_id, item.outstanding_quantity)
            for document in ledger.touched:
                uow.update_equipment(document)
            uow.remove_transaction(transaction)
            return transaction

        transaction = await self._atomic("delete", work)
        logger.info(f"Transaction {transaction.transaction_id} deleted.")
        return transaction

    # --- Read queries ---
    async def get(self, transaction_id: str) -> Transaction:
        transaction = await self.storage.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFound(transaction_id)
        return transaction

    async def get_by_status(self, status: Union[TransactionStatus, str] = ALL_STATUSES_FILTER) -> List[Transaction]:
        if status == ALL_STATUSES_FILTER:
            return await self.storage.list_transactions()
        return await self.storage.list_transactions(statuses=[TransactionStatus(status)])

    async def get_by_student(self, student_id: str) -> List[Transaction]:
        return await self.storage.list_transactions(student_id=student_id)
