import os

os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import List  # noqa: E402

import pytest  # noqa: E402

from labtrack.core.coordinator import TransactionCoordinator  # noqa: E402
from labtrack.db.memory import MemoryStorage  # noqa: E402
from labtrack.models.equipment import Equipment  # noqa: E402
from labtrack.models.notification import Notification  # noqa: E402

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
DUE = NOW + timedelta(days=7)
PER_DAY = 10


class RecordingSink:
    """Notification sink that keeps what it was given."""

    def __init__(self):
        self.delivered: List[Notification] = []

    async def deliver(self, notification: Notification) -> None:
        self.delivered.append(notification)


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_equipment(**overrides) -> Equipment:
    defaults = dict(
        id="eq-microscope",
        name="Microscope",
        total_quantity=3,
        available_quantity=3,
        borrowed_quantity=0,
        price_per_unit=150,
        created_at=NOW,
        updated_at=NOW,
    )
    defaults.update(overrides)
    return Equipment(**defaults)


@pytest.fixture
def storage() -> MemoryStorage:
    store = MemoryStorage()
    store.seed(
        make_equipment(),
        make_equipment(id="eq-beaker", name="Beaker", total_quantity=10, available_quantity=10, price_per_unit=20),
    )
    return store


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def coordinator(storage, sink, clock) -> TransactionCoordinator:
    return TransactionCoordinator(
        storage,
        notification_sink=sink,
        fine_per_day=PER_DAY,
        max_attempts=3,
        retry_base_delay=0,
        clock=clock,
    )
