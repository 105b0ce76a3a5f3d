# labtrack/core/utils.py
import logging
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def epoch_ms(moment: datetime) -> int:
    return int(ensure_utc(moment).timestamp() * 1000)


def generate_transaction_code(created_at: datetime) -> str:
    """
    Human readable transaction code: TXN-<YYYYMMDD>-<last 6 digits of epoch ms>.
    Display identifier only, two transactions created in the same
    millisecond window can collide. The stored document id is the key.
    """
    created_at = ensure_utc(created_at)
    code = f"TXN-{created_at:%Y%m%d}-{str(epoch_ms(created_at))[-6:]}"
    logger.debug(f"Generated transaction code {code} for {created_at.isoformat()}")
    return code
