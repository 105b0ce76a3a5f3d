# labtrack/scheduler/jobs.py
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo

from labtrack.core import config
from labtrack.core.atomic import run_atomic
from labtrack.core.fines import calculate_fine, days_overdue
from labtrack.core.notifications import NotificationSink, build_overdue_notice, build_return_reminder
from labtrack.core.status import derive_status
from labtrack.core.utils import ensure_utc, utc_now
from labtrack.db.storage import Storage, UnitOfWork
from labtrack.models.enum import SWEEPABLE_STATUSES, TransactionStatus
from labtrack.models.transaction import Transaction

logger = logging.getLogger("scheduler_jobs")

REMINDER_STATUSES = (TransactionStatus.ONGOING, TransactionStatus.INCOMPLETE)
OVERDUE_NOTICE_STATUSES = (TransactionStatus.OVERDUE, TransactionStatus.INCOMPLETE_AND_OVERDUE)


class ReconciliationSweeper:
    """
    Re-derives status and fine for every live loan against the clock.

    One sweep is one unit of work: only transactions whose status or fine
    actually changed are written. Inventory and archival are left to the
    coordinator, so a sweep never moves a loan into a terminal status.
    """

    def __init__(
        self,
        storage: Storage,
        fine_per_day: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.fine_per_day = config.FINE_PER_DAY if fine_per_day is None else fine_per_day
        self.max_attempts = config.MAX_COMMIT_ATTEMPTS if max_attempts is None else max_attempts
        self.retry_base_delay = config.RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        self.clock = clock

    async def sweep(self, now: Optional[datetime] = None) -> int:
        now = ensure_utc(now or self.clock())

        async def work(uow: UnitOfWork) -> int:
            updated = 0
            for transaction in await uow.find_transactions(SWEEPABLE_STATUSES):
                if self._reconcile(transaction, now):
                    uow.update_transaction(transaction)
                    updated += 1
            return updated

        updated = await run_atomic(
            self.storage, work,
            operation="sweep", max_attempts=self.max_attempts, base_delay=self.retry_base_delay,
        )
        logger.info(f"Sweep at {now.isoformat()} updated {updated} transaction(s).")
        return updated

    def _reconcile(self, transaction: Transaction, now: datetime) -> bool:
        changed = False
        derived = derive_status(transaction.items, transaction.due_date, transaction.status, now)
        if transaction.status.phase == 2 and derived.phase == 1:
            # Partially settled loans keep their phase and only pick up the due-date flag
            derived = (
                TransactionStatus.INCOMPLETE_AND_OVERDUE if derived.is_overdue
                else TransactionStatus.INCOMPLETE
            )
        if derived is not transaction.status:
            if derived.is_terminal:
                logger.warning(
                    f"Transaction {transaction.transaction_id} derives '{derived.value}' but is still live; "
                    f"leaving it for completion."
                )
            elif not transaction.status.can_transition_to(derived):
                logger.debug(
                    f"Transaction {transaction.transaction_id}: not moving back from "
                    f"'{transaction.status.value}' to '{derived.value}'."
                )
            else:
                logger.info(
                    f"Transaction {transaction.transaction_id}: '{transaction.status.value}' -> '{derived.value}'."
                )
                transaction.status = derived
                changed = True

        fine_amount = calculate_fine(transaction.due_date, now, self.fine_per_day)
        if fine_amount != transaction.fine_amount:
            transaction.fine_amount = fine_amount
            changed = True

        if changed:
            transaction.updated_at = now
        return changed


def _has_recipient(transaction: Transaction) -> bool:
    if transaction.student_id and transaction.student_name and transaction.student_email:
        return True
    logger.warning(f"Skipping notice for transaction {transaction.transaction_id}: missing student details.")
    return False


def _due_label(due_date: datetime, tz: ZoneInfo) -> str:
    return ensure_utc(due_date).astimezone(tz).strftime("%B %d, %Y %I:%M %p")


async def send_return_reminders(
    storage: Storage,
    sink: Optional[NotificationSink],
    now: Optional[datetime] = None,
    timezone_name: Optional[str] = None,
    per_day_rate: Optional[float] = None,
) -> int:
    """Persist a reminder for every on-loan transaction due tomorrow (local calendar day)."""
    now = ensure_utc(now or utc_now())
    tz = ZoneInfo(timezone_name or config.SCHEDULER_TIMEZONE)
    rate = config.FINE_PER_DAY if per_day_rate is None else per_day_rate
    tomorrow = (now.astimezone(tz) + timedelta(days=1)).date()

    async def work(uow: UnitOfWork) -> int:
        sent = 0
        for transaction in await uow.find_transactions(REMINDER_STATUSES):
            if ensure_utc(transaction.due_date).astimezone(tz).date() != tomorrow:
                continue
            if not _has_recipient(transaction):
                continue
            uow.add_notification(build_return_reminder(
                transaction, _due_label(transaction.due_date, tz), rate, created_at=now,
            ))
            sent += 1
        return sent

    sent = await run_atomic(storage, work, operation="return_reminders", sink=sink,
                            max_attempts=config.MAX_COMMIT_ATTEMPTS, base_delay=config.RETRY_BASE_DELAY)
    logger.info(f"Queued {sent} return reminder(s) for {tomorrow.isoformat()}.")
    return sent


async def send_overdue_notices(
    storage: Storage,
    sink: Optional[NotificationSink],
    now: Optional[datetime] = None,
    timezone_name: Optional[str] = None,
    per_day_rate: Optional[float] = None,
) -> int:
    now = ensure_utc(now or utc_now())
    tz = ZoneInfo(timezone_name or config.SCHEDULER_TIMEZONE)
    rate = config.FINE_PER_DAY if per_day_rate is None else per_day_rate

    async def work(uow: UnitOfWork) -> int:
        sent = 0
        for transaction in await uow.find_transactions(OVERDUE_NOTICE_STATUSES):
            if not _has_recipient(transaction):
                continue
            uow.add_notification(build_overdue_notice(
                transaction,
                _due_label(transaction.due_date, tz),
                days_overdue(transaction.due_date, now),
                calculate_fine(transaction.due_date, now, rate),
                created_at=now,
            ))
            sent += 1
        return sent

    sent = await run_atomic(storage, work, operation="overdue_notices", sink=sink,
                            max_attempts=config.MAX_COMMIT_ATTEMPTS, base_delay=config.RETRY_BASE_DELAY)
    logger.info(f"Queued {sent} overdue notice(s).")
    return sent


async def run_daily_maintenance(
    storage: Storage,
    sink: Optional[NotificationSink],
    now: Optional[datetime] = None,
    timezone_name: Optional[str] = None,
    per_day_rate: Optional[float] = None,
) -> Dict[str, int]:
    """Sweep first so the notices see current statuses, then queue reminders and overdue notices."""
    now = ensure_utc(now or utc_now())
    logger.info(f"Running daily maintenance at {now.isoformat()}")
    swept = await ReconciliationSweeper(storage, fine_per_day=per_day_rate).sweep(now)
    reminders = await send_return_reminders(storage, sink, now, timezone_name, per_day_rate)
    notices = await send_overdue_notices(storage, sink, now, timezone_name, per_day_rate)
    summary = {"swept": swept, "reminders": reminders, "overdue_notices": notices}
    logger.info(f"Daily maintenance finished: {summary}")
    return summary


# --- APScheduler entry points: errors are logged so the scheduler keeps running ---
async def scheduled_sweep(storage: Storage) -> None:
    try:
        await ReconciliationSweeper(storage).sweep()
    except Exception:
        logger.error("Scheduled sweep failed.", exc_info=True)


async def scheduled_daily_maintenance(storage: Storage, sink: Optional[NotificationSink]) -> None:
    try:
        await run_daily_maintenance(storage, sink)
    except Exception:
        logger.error("Scheduled daily maintenance failed.", exc_info=True)
