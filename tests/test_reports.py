"""
Tests for the summary report.
"""

from datetime import timedelta

from labtrack.core.reports import build_summary
from labtrack.models.transaction import ItemRequest

from conftest import DUE, PER_DAY


async def _borrow(coordinator, quantity=1, staff=True):
    return await coordinator.create(
        "2021-00001", [ItemRequest(equipment_id="eq-beaker", quantity=quantity)], DUE, staff,
        student_name="Ada Lovelace", student_email="ada@example.edu",
    )


async def test_summary_counts(coordinator, storage, clock):
    await _borrow(coordinator, staff=False)
    await _borrow(coordinator, quantity=2)
    late = await _borrow(coordinator, quantity=3)
    clock.now = DUE + timedelta(days=2)
    await coordinator.complete(late.id, {late.items[0].id: {"checked": True, "quantity": 3}})

    report = await build_summary(storage, now=clock.now)

    assert report.generated_at == clock.now
    assert (report.transactions.request, report.transactions.ongoing, report.transactions.total) == (1, 1, 2)
    assert (report.records.complete, report.records.complete_and_overdue) == (0, 1)
    assert report.records.total_fines == 2 * PER_DAY
    assert (report.fines.unpaid_count, report.fines.unpaid_amount) == (1, 2 * PER_DAY)
    assert report.equipment.total == 2
    assert report.equipment.borrowed_units == 3
    assert report.equipment.total_units == 13
