# labtrack/core/errors.py
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INSUFFICIENT_INVENTORY = "insufficient_inventory"
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_RETURN_QUANTITY = "invalid_return_quantity"
    EQUIPMENT_IN_USE = "equipment_in_use"
    PERSISTENCE_CONFLICT = "persistence_conflict"


class LabTrackError(Exception):
    """Base error. `kind` lets callers branch without matching on messages."""
    kind: ErrorKind = ErrorKind.INVALID_STATE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(LabTrackError):
    kind = ErrorKind.NOT_FOUND


class TransactionNotFound(NotFound):
    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction '{transaction_id}' not found.")
        self.transaction_id = transaction_id


class EquipmentNotFound(NotFound):
    def __init__(self, equipment_id: str):
        super().__init__(f"Equipment '{equipment_id}' not found.")
        self.equipment_id = equipment_id


class InvalidState(LabTrackError):
    kind = ErrorKind.INVALID_STATE


class InsufficientInventory(LabTrackError):
    kind = ErrorKind.INSUFFICIENT_INVENTORY

    def __init__(self, message: str, equipment_id: Optional[str] = None):
        super().__init__(message)
        self.equipment_id = equipment_id


class InvalidQuantity(LabTrackError):
    kind = ErrorKind.INVALID_QUANTITY


class InvalidReturnQuantity(LabTrackError):
    kind = ErrorKind.INVALID_RETURN_QUANTITY


class EquipmentInUse(LabTrackError):
    kind = ErrorKind.EQUIPMENT_IN_USE


class PersistenceConflict(LabTrackError):
    """A concurrent write changed a document between read and commit. Retryable."""
    kind = ErrorKind.PERSISTENCE_CONFLICT


# HTTP status used by the API layer for each error kind
HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.INSUFFICIENT_INVENTORY: 409,
    ErrorKind.INVALID_QUANTITY: 400,
    ErrorKind.INVALID_RETURN_QUANTITY: 400,
    ErrorKind.EQUIPMENT_IN_USE: 409,
    ErrorKind.PERSISTENCE_CONFLICT: 503,
}
