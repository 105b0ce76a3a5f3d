# labtrack/db/memory.py
import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from .storage import (
    EQUIPMENT, FINES, NOTIFICATIONS, RECORDS, TRANSACTIONS, VERSIONED_COLLECTIONS,
    StagedWrite, Storage, UnitOfWork, WriteKind,
)
from ..core.errors import PersistenceConflict
from ..models.enum import TransactionStatus
from ..models.equipment import Equipment
from ..models.notification import Notification
from ..models.record import Fine, Record
from ..models.transaction import Transaction

logger = logging.getLogger(__name__)

_COLLECTION_BY_TYPE = {
    Equipment: EQUIPMENT,
    Transaction: TRANSACTIONS,
    Record: RECORDS,
    Fine: FINES,
    Notification: NOTIFICATIONS,
}


class MemoryUnitOfWork(UnitOfWork):
    """Reads copies of the stored documents; validates and applies writes under the storage lock."""

    def __init__(self, storage: "MemoryStorage"):
        super().__init__()
        self._storage = storage

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._storage._read(TRANSACTIONS, transaction_id)

    async def get_equipment_many(self, equipment_ids: Iterable[str]) -> Dict[str, Equipment]:
        found = {}
        for equipment_id in set(equipment_ids):
            equipment = self._storage._read(EQUIPMENT, equipment_id)
            if equipment is not None:
                found[equipment_id] = equipment
        return found

    async def find_transactions(self, statuses: Optional[Iterable[TransactionStatus]] = None) -> List[Transaction]:
        return self._storage._query_transactions(statuses)

    async def commit(self) -> None:
        if self.committed:
            raise RuntimeError("Unit of work already committed.")
        async with self._storage._lock:
            for write in self._writes:
                self._storage._check(write)
            for write in self._writes:
                self._storage._apply(write)
        self.committed = True
        logger.debug(f"Memory unit of work committed {len(self._writes)} write(s).")


class MemoryStorage(Storage):
    """In-process storage engine. Used by the test suite and STORAGE_BACKEND=memory."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, BaseModel]] = {
            name: {} for name in (EQUIPMENT, TRANSACTIONS, RECORDS, FINES, NOTIFICATIONS)
        }
        self._lock = asyncio.Lock()

    def unit_of_work(self) -> MemoryUnitOfWork:
        return MemoryUnitOfWork(self)

    def seed(self, *documents: BaseModel) -> None:
        """Insert documents directly, bypassing units of work."""
        for document in documents:
            collection = _COLLECTION_BY_TYPE[type(document)]
            self._collections[collection][document.id] = document.model_copy(deep=True)

    # --- Read queries ---
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._read(TRANSACTIONS, transaction_id)

    async def list_transactions(
        self,
        statuses: Optional[Iterable[TransactionStatus]] = None,
        student_id: Optional[str] = None,
    ) -> List[Transaction]:
        found = self._query_transactions(statuses)
        if student_id is not None:
            found = [t for t in found if t.student_id == student_id]
        return found

    async def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        return self._read(EQUIPMENT, equipment_id)

    async def list_equipment(self) -> List[Equipment]:
        return sorted(self._all(EQUIPMENT), key=lambda e: e.name.lower())

    async def list_records(self, student_id: Optional[str] = None) -> List[Record]:
        records = [r for r in self._all(RECORDS) if student_id is None or r.student_id == student_id]
        return sorted(records, key=lambda r: r.completed_date, reverse=True)

    async def list_fines(self, student_id: Optional[str] = None) -> List[Fine]:
        fines = [f for f in self._all(FINES) if student_id is None or f.student_id == student_id]
        return sorted(fines, key=lambda f: f.created_at, reverse=True)

    async def list_notifications(self, transaction_id: Optional[str] = None) -> List[Notification]:
        notifications = [
            n for n in self._all(NOTIFICATIONS)
            if transaction_id is None or n.transaction_id == transaction_id
        ]
        return sorted(notifications, key=lambda n: n.created_at)

    # --- Internals ---
    def _read(self, collection: str, document_id: str):
        document = self._collections[collection].get(document_id)
        return document.model_copy(deep=True) if document is not None else None

    def _all(self, collection: str) -> list:
        return [d.model_copy(deep=True) for d in self._collections[collection].values()]

    def _query_transactions(self, statuses: Optional[Iterable[TransactionStatus]]) -> List[Transaction]:
        wanted = set(statuses) if statuses is not None else None
        found = [t for t in self._all(TRANSACTIONS) if wanted is None or t.status in wanted]
        return sorted(found, key=lambda t: t.created_at, reverse=True)

    def _check(self, write: StagedWrite) -> None:
        stored = self._collections[write.collection].get(write.document.id)
        if write.kind is WriteKind.INSERT:
            if stored is not None:
                raise PersistenceConflict(f"{write.collection} document '{write.document.id}' already exists.")
            return
        if stored is None:
            raise PersistenceConflict(f"{write.collection} document '{write.document.id}' no longer exists.")
        if write.collection in VERSIONED_COLLECTIONS and stored.version != write.expected_version:
            raise PersistenceConflict(
                f"{write.collection} document '{write.document.id}' changed concurrently "
                f"(expected version {write.expected_version}, found {stored.version})."
            )

    def _apply(self, write: StagedWrite) -> None:
        documents = self._collections[write.collection]
        if write.kind is WriteKind.DELETE:
            del documents[write.document.id]
            return
        if write.kind is WriteKind.UPDATE and write.collection in VERSIONED_COLLECTIONS:
            write.document.version = write.expected_version + 1
        documents[write.document.id] = write.document.model_copy(deep=True)
