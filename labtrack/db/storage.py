# labtrack/db/storage.py
"""
Storage port used by the coordinator, the sweeper and the maintenance jobs.

A UnitOfWork is one atomic boundary: documents are read through it, changes are
staged on it and `commit()` applies every staged write or none of them.
Equipment and transaction writes are guarded by their `version` field, a
commit that finds a different stored version raises PersistenceConflict.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from ..models.enum import TransactionStatus
from ..models.equipment import Equipment
from ..models.notification import Notification
from ..models.record import Fine, Record
from ..models.transaction import Transaction

EQUIPMENT = "equipment"
TRANSACTIONS = "transactions"
RECORDS = "records"
FINES = "fines"
NOTIFICATIONS = "notifications"

# Collections whose documents carry an optimistic concurrency version
VERSIONED_COLLECTIONS = (EQUIPMENT, TRANSACTIONS)


class WriteKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class StagedWrite:
    kind: WriteKind
    collection: str
    document: BaseModel
    expected_version: Optional[int] = None


class UnitOfWork(ABC):

    def __init__(self):
        self._writes: List[StagedWrite] = []
        self.committed = False

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    # --- Reads inside the atomic boundary ---
    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        ...

    @abstractmethod
    async def get_equipment_many(self, equipment_ids: Iterable[str]) -> Dict[str, Equipment]:
        ...

    @abstractmethod
    async def find_transactions(
        self, statuses: Optional[Iterable[TransactionStatus]] = None
    ) -> List[Transaction]:
        ...

    async def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        found = await self.get_equipment_many([equipment_id])
        return found.get(equipment_id)

    # --- Staging ---
    def add_transaction(self, transaction: Transaction) -> None:
        self._stage(WriteKind.INSERT, TRANSACTIONS, transaction)

    def update_transaction(self, transaction: Transaction) -> None:
        self._stage(WriteKind.UPDATE, TRANSACTIONS, transaction, transaction.version)

    def remove_transaction(self, transaction: Transaction) -> None:
        self._stage(WriteKind.DELETE, TRANSACTIONS, transaction, transaction.version)

    def add_equipment(self, equipment: Equipment) -> None:
        self._stage(WriteKind.INSERT, EQUIPMENT, equipment)

    def update_equipment(self, equipment: Equipment) -> None:
        self._stage(WriteKind.UPDATE, EQUIPMENT, equipment, equipment.version)

    def remove_equipment(self, equipment: Equipment) -> None:
        self._stage(WriteKind.DELETE, EQUIPMENT, equipment, equipment.version)

    def add_record(self, record: Record) -> None:
        self._stage(WriteKind.INSERT, RECORDS, record)

    def add_fine(self, fine: Fine) -> None:
        self._stage(WriteKind.INSERT, FINES, fine)

    def add_notification(self, notification: Notification) -> None:
        self._stage(WriteKind.INSERT, NOTIFICATIONS, notification)

    @property
    def staged_writes(self) -> List[StagedWrite]:
        return list(self._writes)

    @property
    def staged_notifications(self) -> List[Notification]:
        return [w.document for w in self._writes if w.collection == NOTIFICATIONS]

    def _stage(self, kind: WriteKind, collection: str, document: BaseModel, expected_version: Optional[int] = None) -> None:
        if self.committed:
            raise RuntimeError("Unit of work already committed.")
        self._writes.append(StagedWrite(kind, collection, document, expected_version))

    @abstractmethod
    async def commit(self) -> None:
        ...


class Storage(ABC):

    @abstractmethod
    def unit_of_work(self) -> UnitOfWork:
        ...

    # --- Read queries outside any unit of work ---
    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        ...

    @abstractmethod
    async def list_transactions(
        self,
        statuses: Optional[Iterable[TransactionStatus]] = None,
        student_id: Optional[str] = None,
    ) -> List[Transaction]:
        """Newest first."""

    @abstractmethod
    async def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        ...

    @abstractmethod
    async def list_equipment(self) -> List[Equipment]:
        ...

    @abstractmethod
    async def list_records(self, student_id: Optional[str] = None) -> List[Record]:
        """Newest completion first."""

    @abstractmethod
    async def list_fines(self, student_id: Optional[str] = None) -> List[Fine]:
        ...

    @abstractmethod
    async def list_notifications(self, transaction_id: Optional[str] = None) -> List[Notification]:
        ...

    async def close(self) -> None:
        return None
