# labtrack/db/mongo.py
import logging
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

import motor.motor_asyncio
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from .documents import DOCUMENT_BY_COLLECTION
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

ModelT = TypeVar("ModelT", bound=BaseModel)

# Commit outcome unknown: retry the commit itself, never the whole unit of work
COMMIT_RETRIES = 3


def to_mongo(document: BaseModel) -> Dict[str, Any]:
    data = document.model_dump(mode="python")
    data["_id"] = data.pop("id")
    return data


def from_mongo(model: Type[ModelT], raw: Optional[Dict[str, Any]]) -> Optional[ModelT]:
    if raw is None:
        return None
    raw = dict(raw)
    raw["id"] = str(raw.pop("_id"))
    return model.model_validate(raw)


def _status_filter(statuses: Optional[Iterable[TransactionStatus]]) -> Dict[str, Any]:
    if statuses is None:
        return {}
    return {"status": {"$in": [s.value for s in statuses]}}


class MongoUnitOfWork(UnitOfWork):
    """Reads and writes inside one multi-document MongoDB transaction."""

    def __init__(self, storage: "MongoStorage"):
        super().__init__()
        self._storage = storage
        self._session = None

    async def __aenter__(self) -> "MongoUnitOfWork":
        self._session = await self._storage.client.start_session()
        self._session.start_transaction()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if self._session.in_transaction:
                await self._session.abort_transaction()
        finally:
            await self._session.end_session()

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        raw = await self._storage.collection(TRANSACTIONS).find_one({"_id": transaction_id}, session=self._session)
        return from_mongo(Transaction, raw)

    async def get_equipment_many(self, equipment_ids: Iterable[str]) -> Dict[str, Equipment]:
        ids = list(set(equipment_ids))
        if not ids:
            return {}
        cursor = self._storage.collection(EQUIPMENT).find({"_id": {"$in": ids}}, session=self._session)
        return {e.id: e for e in [from_mongo(Equipment, raw) async for raw in cursor]}

    async def find_transactions(self, statuses: Optional[Iterable[TransactionStatus]] = None) -> List[Transaction]:
        cursor = self._storage.collection(TRANSACTIONS).find(_status_filter(statuses), session=self._session)
        return [from_mongo(Transaction, raw) async for raw in cursor]

    async def commit(self) -> None:
        if self.committed:
            raise RuntimeError("Unit of work already committed.")
        try:
            for write in self._writes:
                await self._write(write)
            await self._commit_transaction()
        except DuplicateKeyError as e:
            raise PersistenceConflict(f"Duplicate document id: {e}") from e
        except PyMongoError as e:
            if e.has_error_label("TransientTransactionError"):
                raise PersistenceConflict(f"Transaction aborted by a concurrent write: {e}") from e
            raise
        self.committed = True
        logger.debug(f"Mongo unit of work committed {len(self._writes)} write(s).")

    async def _commit_transaction(self) -> None:
        for attempt in range(1, COMMIT_RETRIES + 1):
            try:
                await self._session.commit_transaction()
                return
            except PyMongoError as e:
                if attempt < COMMIT_RETRIES and e.has_error_label("UnknownTransactionCommitResult"):
                    logger.warning(f"Commit result unknown, retrying commit ({attempt}/{COMMIT_RETRIES}).")
                    continue
                raise

    async def _write(self, write: StagedWrite) -> None:
        collection = self._storage.collection(write.collection)
        document_id = write.document.id
        versioned = write.collection in VERSIONED_COLLECTIONS

        if write.kind is WriteKind.INSERT:
            await collection.insert_one(to_mongo(write.document), session=self._session)
            return

        guard: Dict[str, Any] = {"_id": document_id}
        if versioned:
            guard["version"] = write.expected_version

        if write.kind is WriteKind.DELETE:
            result = await collection.delete_one(guard, session=self._session)
            if result.deleted_count == 0:
                raise PersistenceConflict(f"{write.collection} document '{document_id}' changed or vanished before delete.")
            return

        payload = to_mongo(write.document)
        if versioned:
            payload["version"] = write.expected_version + 1
        result = await collection.replace_one(guard, payload, session=self._session)
        if result.matched_count == 0:
            raise PersistenceConflict(f"{write.collection} document '{document_id}' changed concurrently.")
        if versioned:
            write.document.version = payload["version"]


class MongoStorage(Storage):

    def __init__(self, client: motor.motor_asyncio.AsyncIOMotorClient, database_name: str):
        self.client = client
        self.database = client[database_name]

    def collection(self, name: str):
        document_model = DOCUMENT_BY_COLLECTION.get(name)
        if document_model is not None:
            # Same collection object Beanie was initialised with
            return document_model.get_motor_collection()
        return self.database[name]

    def unit_of_work(self) -> MongoUnitOfWork:
        return MongoUnitOfWork(self)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return from_mongo(Transaction, await self.collection(TRANSACTIONS).find_one({"_id": transaction_id}))

    async def list_transactions(
        self,
        statuses: Optional[Iterable[TransactionStatus]] = None,
        student_id: Optional[str] = None,
    ) -> List[Transaction]:
        query = _status_filter(statuses)
        if student_id is not None:
            query["student_id"] = student_id
        cursor = self.collection(TRANSACTIONS).find(query).sort("created_at", DESCENDING)
        return [from_mongo(Transaction, raw) async for raw in cursor]

    async def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        return from_mongo(Equipment, await self.collection(EQUIPMENT).find_one({"_id": equipment_id}))

    async def list_equipment(self) -> List[Equipment]:
        cursor = self.collection(EQUIPMENT).find({}).sort("name", ASCENDING)
        return [from_mongo(Equipment, raw) async for raw in cursor]

    async def list_records(self, student_id: Optional[str] = None) -> List[Record]:
        query = {"student_id": student_id} if student_id is not None else {}
        cursor = self.collection(RECORDS).find(query).sort("completed_date", DESCENDING)
        return [from_mongo(Record, raw) async for raw in cursor]

    async def list_fines(self, student_id: Optional[str] = None) -> List[Fine]:
        query = {"student_id": student_id} if student_id is not None else {}
        cursor = self.collection(FINES).find(query).sort("created_at", DESCENDING)
        return [from_mongo(Fine, raw) async for raw in cursor]

    async def list_notifications(self, transaction_id: Optional[str] = None) -> List[Notification]:
        query = {"transaction_id": transaction_id} if transaction_id is not None else {}
        cursor = self.collection(NOTIFICATIONS).find(query).sort("created_at", ASCENDING)
        return [from_mongo(Notification, raw) async for raw in cursor]

    async def close(self) -> None:
        self.client.close()
        logger.info("MongoDB client closed.")
