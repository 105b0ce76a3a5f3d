# labtrack/core/atomic.py
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import PersistenceConflict
from .notifications import NotificationSink, dispatch
from ..db.storage import Storage, UnitOfWork

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_atomic(
    storage: Storage,
    work: Callable[[UnitOfWork], Awaitable[T]],
    *,
    operation: str,
    max_attempts: int = 5,
    base_delay: float = 0.05,
    sink: Optional[NotificationSink] = None,
) -> T:
    """
    Run `work` inside a fresh unit of work and commit it.

    `work` reads through the unit of work and stages its writes there; it is
    re-run from scratch on PersistenceConflict, so it must not keep state
    between attempts. Other errors surface unchanged on the first attempt.
    Notifications staged by the committed attempt are handed to `sink`.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            async with storage.unit_of_work() as uow:
                result = await work(uow)
                await uow.commit()
        except PersistenceConflict as e:
            if attempt >= max_attempts:
                logger.error(f"{operation}: giving up after {attempt} conflicting attempt(s): {e.message}")
                raise
            delay = base_delay * (2 ** (attempt - 1))
            delay += random.uniform(0, delay)
            logger.warning(f"{operation}: write conflict on attempt {attempt}/{max_attempts}, retrying in {delay:.3f}s.")
            await asyncio.sleep(delay)
            continue

        if attempt > 1:
            logger.info(f"{operation}: committed on attempt {attempt}.")
        if sink is not None:
            await dispatch(sink, uow.staged_notifications)
        return result
