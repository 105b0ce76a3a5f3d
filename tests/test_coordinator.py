"""
Tests for the transaction lifecycle: create, approve, deny, complete, delete.
"""

from datetime import timedelta

import pytest

from labtrack.core.errors import (
    EquipmentNotFound, InsufficientInventory, InvalidQuantity, InvalidReturnQuantity, InvalidState,
    TransactionNotFound,
)
from labtrack.models.enum import FineType, NotificationType, TransactionStatus
from labtrack.models.transaction import ItemRequest, ItemReturn

from conftest import DUE, PER_DAY


async def _create(coordinator, lines=(("eq-microscope", 3),), staff=True, due=DUE):
    return await coordinator.create(
        "2021-00001",
        [ItemRequest(equipment_id=eq, quantity=qty) for eq, qty in lines],
        due,
        staff,
        student_name="Ada Lovelace",
        student_email="ada@example.edu",
    )


async def _counters(storage, equipment_id="eq-microscope"):
    equipment = await storage.get_equipment(equipment_id)
    assert equipment.is_balanced
    return equipment.available_quantity, equipment.borrowed_quantity


class TestCreate:
    async def test_staff_created_is_ongoing_and_reserves(self, coordinator, storage):
        transaction = await _create(coordinator)
        assert transaction.status is TransactionStatus.ONGOING
        assert await _counters(storage) == (0, 3)

        item = transaction.items[0]
        assert item.item_name == "Microscope"
        assert item.price_per_quantity == 150
        assert transaction.total_price == 450
        assert transaction.transaction_id.startswith("TXN-20250615-")
        assert len(transaction.transaction_id.split("-")[-1]) == 6

    async def test_self_service_is_request_but_still_reserves(self, coordinator, storage):
        transaction = await _create(coordinator, lines=(("eq-microscope", 2),), staff=False)
        assert transaction.status is TransactionStatus.REQUEST
        assert await _counters(storage) == (1, 2)

    async def test_multiple_lines(self, coordinator, storage):
        transaction = await _create(coordinator, lines=(("eq-microscope", 1), ("eq-beaker", 4)))
        assert [i.equipment_id for i in transaction.items] == ["eq-microscope", "eq-beaker"]
        assert len({i.id for i in transaction.items}) == 2
        assert transaction.total_price == 150 + 4 * 20
        assert await _counters(storage, "eq-beaker") == (6, 4)

    async def test_insufficient_inventory_leaves_no_partial_reservation(self, coordinator, storage):
        with pytest.raises(InsufficientInventory):
            await _create(coordinator, lines=(("eq-beaker", 5), ("eq-microscope", 4)))
        assert await _counters(storage, "eq-beaker") == (10, 0)
        assert await _counters(storage) == (3, 0)
        assert await storage.list_transactions() == []

    async def test_empty_item_list_rejected(self, coordinator, storage):
        with pytest.raises(InvalidQuantity):
            await _create(coordinator, lines=())
        assert await storage.list_transactions() == []

    async def test_unknown_equipment(self, coordinator, storage):
        with pytest.raises(EquipmentNotFound):
            await _create(coordinator, lines=(("eq-beaker", 1), ("eq-missing", 1)))
        assert await _counters(storage, "eq-beaker") == (10, 0)


class TestApprove:
    async def test_approve_request(self, coordinator, storage, sink, clock):
        transaction = await _create(coordinator, staff=False)
        approved_at = clock.advance(hours=2)

        approved = await coordinator.approve(transaction.id)

        assert approved.status is TransactionStatus.ONGOING
        assert approved.borrowed_date == approved_at
        stored = await storage.get_transaction(transaction.id)
        assert stored.status is TransactionStatus.ONGOING
        assert stored.version == 1

        notifications = await storage.list_notifications(transaction_id=transaction.id)
        assert [n.type for n in notifications] == [NotificationType.TRANSACTION_APPROVED]
        assert notifications[0].to == "ada@example.edu"
        assert [n.id for n in sink.delivered] == [notifications[0].id]

    async def test_approve_non_request(self, coordinator):
        transaction = await _create(coordinator, staff=True)
        with pytest.raises(InvalidState):
            await coordinator.approve(transaction.id)

    async def test_approve_missing(self, coordinator):
        with pytest.raises(TransactionNotFound):
            await coordinator.approve("nope")


class TestDeny:
    async def test_deny_restores_inventory_and_leaves_nothing(self, coordinator, storage, sink):
        transaction = await _create(coordinator, lines=(("eq-microscope", 2),), staff=False)
        assert await _counters(storage) == (1, 2)

        await coordinator.deny(transaction.id)

        assert await _counters(storage) == (3, 0)
        assert await storage.get_transaction(transaction.id) is None
        assert await storage.list_records() == []
        assert await storage.list_fines() == []
        assert [n.type for n in sink.delivered] == [NotificationType.TRANSACTION_DENIED]

    async def test_deny_ongoing_refused(self, coordinator, storage):
        transaction = await _create(coordinator, staff=True)
        with pytest.raises(InvalidState):
            await coordinator.deny(transaction.id)
        assert await _counters(storage) == (0, 3)

    async def test_deny_missing(self, coordinator):
        with pytest.raises(TransactionNotFound):
            await coordinator.deny("nope")


class TestComplete:
    async def test_full_return_before_due(self, coordinator, storage, clock):
        transaction = await _create(coordinator)
        clock.advance(days=2)
        item_id = transaction.items[0].id

        status = await coordinator.complete(transaction.id, {item_id: {"checked": True, "quantity": 3}})

        assert status is TransactionStatus.COMPLETE
        assert await _counters(storage) == (3, 0)
        assert await storage.get_transaction(transaction.id) is None
        records = await storage.list_records()
        assert len(records) == 1
        assert records[0].final_status is TransactionStatus.COMPLETE
        assert records[0].transaction_id == transaction.transaction_id
        assert records[0].fine_amount == 0
        assert await storage.list_fines() == []

    async def test_full_return_one_day_late(self, coordinator, storage, clock):
        transaction = await _create(coordinator)
        clock.now = DUE + timedelta(days=1)
        item_id = transaction.items[0].id

        status = await coordinator.complete(transaction.id, {item_id: ItemReturn(checked=True, quantity=3)})

        assert status is TransactionStatus.COMPLETE_AND_OVERDUE
        record = (await storage.list_records())[0]
        assert record.final_status is TransactionStatus.COMPLETE_AND_OVERDUE
        assert record.fine_amount == PER_DAY
        fines = await storage.list_fines()
        assert len(fines) == 1
        assert fines[0].days_overdue == 1
        assert fines[0].amount == PER_DAY
        assert fines[0].fine_type is FineType.LATE_RETURN
        assert fines[0].reason == "1 days overdue"

    async def test_incremental_release_never_doubles(self, coordinator, storage):
        transaction = await _create(coordinator, lines=(("eq-beaker", 5),))
        item_id = transaction.items[0].id

        status = await coordinator.complete(transaction.id, {item_id: {"checked": False, "quantity": 2}})
        assert status is TransactionStatus.INCOMPLETE
        assert await _counters(storage, "eq-beaker") == (7, 3)

        stored = await storage.get_transaction(transaction.id)
        assert stored.items[0].returned_quantity == 2

        status = await coordinator.complete(transaction.id, {item_id: {"checked": True, "quantity": 5}})
        assert status is TransactionStatus.COMPLETE
        assert await _counters(storage, "eq-beaker") == (10, 0)

    async def test_partial_return_after_due(self, coordinator, storage, clock):
        transaction = await _create(coordinator)
        clock.now = DUE + timedelta(hours=25)
        item_id = transaction.items[0].id

        status = await coordinator.complete(transaction.id, {item_id: {"checked": False, "quantity": 1}})

        assert status is TransactionStatus.INCOMPLETE_AND_OVERDUE
        stored = await storage.get_transaction(transaction.id)
        assert stored.status is TransactionStatus.INCOMPLETE_AND_OVERDUE
        assert stored.fine_amount == 2 * PER_DAY
        assert await storage.list_records() == []

    async def test_repeating_same_total_releases_nothing(self, coordinator, storage):
        transaction = await _create(coordinator, lines=(("eq-beaker", 5),))
        item_id = transaction.items[0].id
        await coordinator.complete(transaction.id, {item_id: {"checked": False, "quantity": 2}})
        await coordinator.complete(transaction.id, {item_id: {"checked": False, "quantity": 2}})
        assert await _counters(storage, "eq-beaker") == (7, 3)

    @pytest.mark.parametrize("entry", [
        {"checked": True, "quantity": 4},
        {"checked": True, "quantity": 0},
        {"checked": False, "quantity": -1},
    ])
    async def test_invalid_quantities_rejected(self, coordinator, storage, entry):
        transaction = await _create(coordinator)
        with pytest.raises(InvalidReturnQuantity):
            await coordinator.complete(transaction.id, {transaction.items[0].id: entry})
        assert await _counters(storage) == (0, 3)

    async def test_returned_total_cannot_decrease(self, coordinator):
        transaction = await _create(coordinator)
        item_id = transaction.items[0].id
        await coordinator.complete(transaction.id, {item_id: {"checked": False, "quantity": 2}})
        with pytest.raises(InvalidReturnQuantity):
            await coordinator.complete(transaction.id, {item_id: {"checked": False, "quantity": 1}})

    async def test_unknown_item_rejected(self, coordinator):
        transaction = await _create(coordinator)
        with pytest.raises(InvalidReturnQuantity):
            await coordinator.complete(transaction.id, {"item-unknown": {"checked": True, "quantity": 1}})

    async def test_request_cannot_be_completed(self, coordinator):
        transaction = await _create(coordinator, staff=False)
        with pytest.raises(InvalidState):
            await coordinator.complete(transaction.id, {transaction.items[0].id: {"checked": True, "quantity": 3}})


class TestDelete:
    async def test_releases_unreturned_remainder(self, coordinator, storage):
        transaction = await _create(coordinator, lines=(("eq-beaker", 5),))
        item_id = transaction.items[0].id
        await coordinator.complete(transaction.id, {item_id: {"checked": False, "quantity": 2}})

        await coordinator.delete(transaction.id)

        assert await _counters(storage, "eq-beaker") == (10, 0)
        assert await storage.get_transaction(transaction.id) is None
        assert await storage.list_records() == []

    async def test_delete_request(self, coordinator, storage):
        transaction = await _create(coordinator, staff=False)
        await coordinator.delete(transaction.id)
        assert await _counters(storage) == (3, 0)

    async def test_delete_missing(self, coordinator):
        with pytest.raises(TransactionNotFound):
            await coordinator.delete("nope")


class TestConservation:
    async def test_counters_balance_after_every_call(self, coordinator, storage, clock):
        first = await _create(coordinator, lines=(("eq-microscope", 1),), staff=False)
        assert (await storage.get_equipment("eq-microscope")).is_balanced
        second = await _create(coordinator, lines=(("eq-microscope", 2),), staff=False)
        await coordinator.approve(first.id)
        assert (await storage.get_equipment("eq-microscope")).is_balanced
        await coordinator.deny(second.id)
        assert await _counters(storage) == (2, 1)

        third = await _create(coordinator, lines=(("eq-microscope", 2),))
        clock.advance(days=1)
        await coordinator.complete(first.id, {first.items[0].id: {"checked": True, "quantity": 1}})
        assert await _counters(storage) == (1, 2)
        await coordinator.complete(third.id, {third.items[0].id: {"checked": False, "quantity": 1}})
        assert await _counters(storage) == (2, 1)
        await coordinator.delete(third.id)
        assert await _counters(storage) == (3, 0)


class TestQueries:
    async def test_by_status_and_student(self, coordinator, clock):
        request = await _create(coordinator, lines=(("eq-beaker", 1),), staff=False)
        clock.advance(seconds=1)
        ongoing = await _create(coordinator, lines=(("eq-beaker", 1),), staff=True)

        assert [t.id for t in await coordinator.get_by_status("All")] == [ongoing.id, request.id]
        assert [t.id for t in await coordinator.get_by_status(TransactionStatus.REQUEST)] == [request.id]
        assert [t.id for t in await coordinator.get_by_status("Ongoing")] == [ongoing.id]
        assert len(await coordinator.get_by_student("2021-00001")) == 2
        assert await coordinator.get_by_student("someone-else") == []
        assert (await coordinator.get(request.id)).id == request.id
