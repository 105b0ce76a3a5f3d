# labtrack/api/deps.py
from fastapi import Depends, HTTPException, Request, status

from labtrack.core.coordinator import TransactionCoordinator
from labtrack.core.equipment import EquipmentService
from labtrack.core.notifications import LogNotificationSink, NotificationSink
from labtrack.db.storage import Storage


def get_storage(request: Request) -> Storage:
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Storage is not initialised.")
    return storage


def get_notification_sink(request: Request) -> NotificationSink:
    return getattr(request.app.state, "notification_sink", None) or LogNotificationSink()


def get_coordinator(
    storage: Storage = Depends(get_storage),
    sink: NotificationSink = Depends(get_notification_sink),
) -> TransactionCoordinator:
    return TransactionCoordinator(storage, notification_sink=sink)


def get_equipment_service(storage: Storage = Depends(get_storage)) -> EquipmentService:
    return EquipmentService(storage)
