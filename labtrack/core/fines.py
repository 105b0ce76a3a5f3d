# labtrack/core/fines.py
from datetime import datetime, timedelta

from .utils import ensure_utc

DEFAULT_FINE_PER_DAY = 10
ONE_DAY = timedelta(days=1)


def days_overdue(due_date: datetime, reference_date: datetime) -> int:
    """Whole days late, rounded up: one millisecond past due counts as a full day."""
    due_date = ensure_utc(due_date)
    reference_date = ensure_utc(reference_date)
    if reference_date < due_date:
        return 0
    days, remainder = divmod(reference_date - due_date, ONE_DAY)
    return days + 1 if remainder else days


def calculate_fine(
    due_date: datetime,
    reference_date: datetime,
    per_day_rate: float = DEFAULT_FINE_PER_DAY,
) -> float:
    if per_day_rate < 0:
        raise ValueError("per_day_rate must not be negative")
    return days_overdue(due_date, reference_date) * per_day_rate
