# labtrack/core/status.py
from datetime import datetime
from typing import Iterable

from .errors import InvalidState
from .utils import ensure_utc
from ..models.enum import TransactionStatus
from ..models.transaction import BorrowedItem


def derive_status(
    items: Iterable[BorrowedItem],
    due_date: datetime,
    current_status: TransactionStatus,
    now: datetime,
) -> TransactionStatus:
    """
    Status a transaction should hold given its items' return state and the clock.

    Requests are never aged. Otherwise: every item fully returned gives
    Complete, any returned quantity gives Incomplete, nothing returned gives
    Ongoing; each becomes its "Overdue" variant once `now` is past `due_date`.
    """
    if current_status is TransactionStatus.REQUEST:
        return TransactionStatus.REQUEST

    items = list(items)
    is_overdue = ensure_utc(now) > ensure_utc(due_date)
    all_returned = all(item.is_fully_returned for item in items)
    any_partial = any(item.is_partially_returned for item in items)

    if all_returned:
        return TransactionStatus.COMPLETE_AND_OVERDUE if is_overdue else TransactionStatus.COMPLETE
    if any_partial or any(item.returned_quantity > 0 for item in items):
        return TransactionStatus.INCOMPLETE_AND_OVERDUE if is_overdue else TransactionStatus.INCOMPLETE
    return TransactionStatus.OVERDUE if is_overdue else TransactionStatus.ONGOING


def validate_transition(current: TransactionStatus, target: TransactionStatus) -> None:
    if not current.can_transition_to(target):
        raise InvalidState(f"Cannot move a transaction from '{current.value}' to '{target.value}'.")
