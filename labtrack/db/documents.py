# labtrack/db/documents.py
"""
Beanie registrations for the MongoDB collections.

The storage engine reads and writes through the Motor collections these
documents expose via `get_motor_collection()`. Every write is a
`version`-guarded `replace_one` inside a session, which Beanie's `save()`
cannot express, so the classes only carry the collection name, the string
primary key and the indexes `init_beanie` creates.
"""
from beanie import Document
from pymongo import IndexModel, ASCENDING, DESCENDING

from .storage import EQUIPMENT, FINES, NOTIFICATIONS, RECORDS, TRANSACTIONS


class EquipmentDocument(Document):
    id: str

    class Settings:
        name = EQUIPMENT
        indexes = [
            IndexModel([("name", ASCENDING)], name="equipment_name_index"),
            IndexModel([("status", ASCENDING)], name="equipment_status_index"),
        ]


class TransactionDocument(Document):
    id: str

    class Settings:
        name = TRANSACTIONS
        indexes = [
            IndexModel([("status", ASCENDING)], name="transaction_status_index"),
            IndexModel([("student_id", ASCENDING)], name="transaction_student_index"),
            IndexModel([("due_date", ASCENDING)], name="transaction_due_date_index"),
            IndexModel([("items.equipment_id", ASCENDING)], name="transaction_equipment_index"),
            IndexModel([("created_at", DESCENDING)], name="transaction_created_at_index"),
        ]


class RecordDocument(Document):
    id: str

    class Settings:
        name = RECORDS
        indexes = [
            IndexModel([("student_id", ASCENDING)], name="record_student_index"),
            IndexModel([("completed_date", DESCENDING)], name="record_completed_date_index"),
        ]


class FineDocument(Document):
    id: str

    class Settings:
        name = FINES
        indexes = [
            IndexModel([("student_id", ASCENDING)], name="fine_student_index"),
            IndexModel([("status", ASCENDING)], name="fine_status_index"),
        ]


class NotificationDocument(Document):
    id: str

    class Settings:
        name = NOTIFICATIONS
        indexes = [
            IndexModel([("transaction_id", ASCENDING)], name="notification_transaction_index"),
            IndexModel([("created_at", ASCENDING)], name="notification_created_at_index"),
        ]


DOCUMENT_MODELS = [
    EquipmentDocument,
    TransactionDocument,
    RecordDocument,
    FineDocument,
    NotificationDocument,
]

DOCUMENT_BY_COLLECTION = {model.Settings.name: model for model in DOCUMENT_MODELS}
