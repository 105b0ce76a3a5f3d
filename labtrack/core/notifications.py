# labtrack/core/notifications.py
"""
Notification records and the sink that delivers them.

Notifications are written to the `notifications` collection inside the same
unit of work as the change they describe. Delivery happens after commit and
is fire-and-forget: a failing sink is logged, never raised to the caller.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional, Protocol

from . import config
from .utils import utc_now
from ..models.enum import NotificationType
from ..models.notification import Notification
from ..models.transaction import Transaction

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def deliver(self, notification: Notification) -> None:
        ...


class LogNotificationSink:
    """Default sink: writes the delivery payload to the log."""

    async def deliver(self, notification: Notification) -> None:
        payload = notification.delivery_payload()
        logger.info(f"Notification '{payload['type']}' to {payload['to']}: {payload['subject']}")


async def dispatch(sink: NotificationSink, notifications: Iterable[Notification]) -> int:
    delivered = 0
    for notification in notifications:
        try:
            await sink.deliver(notification)
            delivered += 1
        except Exception:
            logger.error(
                f"Failed to deliver notification {notification.id} for transaction {notification.transaction_id}.",
                exc_info=True,
            )
    return delivered


# --- Builders ---
def _item_lines(transaction: Transaction) -> str:
    return "\n".join(f"- {item.item_name} (Qty: {item.quantity})" for item in transaction.items)


def _item_list_html(transaction: Transaction) -> str:
    return "".join(f"<li>{item.item_name} (Qty: {item.quantity})</li>" for item in transaction.items)


def _html(heading: str, color: str, body: str) -> str:
    return (
        '<div style="font-family: Arial; max-width:600px; margin:auto; padding:20px;">'
        f'<div style="background:white; padding:30px; border-radius:8px; border-top:4px solid {color};">'
        f'<h2 style="color:{color};">{heading}</h2>'
        f"{body}"
        "<hr>"
        f'<p style="font-size:12px;color:#6b7280;">Automated message from {config.SENDER_NAME}.</p>'
        "</div></div>"
    )


def _notification(
    transaction: Transaction,
    kind: NotificationType,
    subject: str,
    text: str,
    html: str,
    created_at: Optional[datetime],
) -> Notification:
    return Notification(
        to=transaction.student_email,
        subject=subject,
        text=text,
        html=html,
        user_id=transaction.student_id,
        type=kind,
        transaction_id=transaction.id,
        created_at=created_at or utc_now(),
    )


def build_approval_notice(transaction: Transaction, created_at: Optional[datetime] = None) -> Notification:
    subject = "Equipment Request Approved"
    text = (
        f"Hi {transaction.student_name},\n\n"
        "Your equipment request has been APPROVED and is now ready for pickup.\n\n"
        f"Items:\n{_item_lines(transaction)}\n\n"
        f"Transaction ID: {transaction.transaction_id}\n\n"
        "Please collect the items and return them on or before the due date.\n\nThank you!"
    )
    html = _html(
        subject, "#16a34a",
        f"<p>Hi <strong>{transaction.student_name}</strong>,</p>"
        "<p>Your request has been <strong>approved</strong>. The following items are ready for pickup:</p>"
        f"<ul>{_item_list_html(transaction)}</ul>"
        f"<p><strong>Transaction ID:</strong> <code>{transaction.transaction_id}</code></p>",
    )
    return _notification(transaction, NotificationType.TRANSACTION_APPROVED, subject, text, html, created_at)


def build_denial_notice(transaction: Transaction, created_at: Optional[datetime] = None) -> Notification:
    subject = "Equipment Request Denied"
    text = (
        f"Hi {transaction.student_name},\n\n"
        "Unfortunately, your equipment request has been DENIED.\n\n"
        f"Items:\n{_item_lines(transaction)}\n\n"
        f"Transaction ID: {transaction.transaction_id}\n\n"
        "Please contact the lab office if you need clarification.\n\nThank you."
    )
    html = _html(
        subject, "#dc2626",
        f"<p>Hi <strong>{transaction.student_name}</strong>,</p>"
        "<p>Your request has been <strong>denied</strong> for the following items:</p>"
        f"<ul>{_item_list_html(transaction)}</ul>"
        f"<p><strong>Transaction ID:</strong> <code>{transaction.transaction_id}</code></p>",
    )
    return _notification(transaction, NotificationType.TRANSACTION_DENIED, subject, text, html, created_at)


def build_return_reminder(
    transaction: Transaction,
    due_label: str,
    per_day_rate: float,
    created_at: Optional[datetime] = None,
) -> Notification:
    subject = "Equipment Return Reminder - Due Tomorrow"
    text = (
        f"Hi {transaction.student_name},\n\n"
        "This is a friendly reminder that your borrowed equipment is due tomorrow:\n\n"
        f"{_item_lines(transaction)}\n\n"
        f"Due Date: {due_label}\n"
        f"Transaction ID: {transaction.transaction_id}\n\n"
        f"Please return the equipment on time to avoid penalties ({per_day_rate:g}/day).\n\nThank you!"
    )
    html = _html(
        subject, "#2563eb",
        f"<p>Hi <strong>{transaction.student_name}</strong>,</p>"
        "<p>Your borrowed equipment is due <strong>tomorrow</strong>:</p>"
        f"<ul>{_item_list_html(transaction)}</ul>"
        f"<p><strong>Due Date:</strong> {due_label}</p>"
        f"<p><strong>Transaction ID:</strong> <code>{transaction.transaction_id}</code></p>",
    )
    return _notification(transaction, NotificationType.RETURN_REMINDER, subject, text, html, created_at)


def build_overdue_notice(
    transaction: Transaction,
    due_label: str,
    days_overdue: int,
    fine_amount: float,
    created_at: Optional[datetime] = None,
) -> Notification:
    subject = "OVERDUE: Equipment Return Required"
    text = (
        f"Hi {transaction.student_name},\n\n"
        "Your borrowed equipment is now OVERDUE:\n\n"
        f"{_item_lines(transaction)}\n\n"
        f"Due Date: {due_label}\n"
        f"Days Overdue: {days_overdue}\n"
        f"Current Fine: {fine_amount:g}\n"
        f"Transaction ID: {transaction.transaction_id}\n\n"
        "Please return the equipment immediately to avoid additional penalties.\n\n"
        "Thank you for your cooperation."
    )
    html = _html(
        subject, "#dc2626",
        f"<p>Hi <strong>{transaction.student_name}</strong>,</p>"
        "<p>Your borrowed equipment is now <strong>overdue</strong>:</p>"
        f"<ul>{_item_list_html(transaction)}</ul>"
        f"<p><strong>Due Date:</strong> {due_label}<br>"
        f"<strong>Days Overdue:</strong> {days_overdue}<br>"
        f"<strong>Current Fine:</strong> {fine_amount:g}</p>"
        f"<p><strong>Transaction ID:</strong> <code>{transaction.transaction_id}</code></p>",
    )
    return _notification(transaction, NotificationType.OVERDUE_NOTICE, subject, text, html, created_at)
