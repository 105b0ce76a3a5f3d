# labtrack/models/enum.py
from enum import Enum


class TransactionStatus(str, Enum):
    REQUEST = "Request"                                # Self-service request, inventory already reserved
    ONGOING = "Ongoing"
    OVERDUE = "Overdue"
    INCOMPLETE = "Incomplete"
    INCOMPLETE_AND_OVERDUE = "Incomplete and Overdue"
    COMPLETE = "Complete"
    COMPLETE_AND_OVERDUE = "Complete and Overdue"

    @property
    def phase(self) -> int:
        """Lifecycle phase: 0 request, 1 on loan, 2 partially returned, 3 archived."""
        return _PHASES[self]

    @property
    def is_terminal(self) -> bool:
        return self.phase == 3

    @property
    def is_overdue(self) -> bool:
        return self in (
            TransactionStatus.OVERDUE,
            TransactionStatus.INCOMPLETE_AND_OVERDUE,
            TransactionStatus.COMPLETE_AND_OVERDUE,
        )

    def can_transition_to(self, target: "TransactionStatus") -> bool:
        if self.is_terminal:
            return False
        if self is TransactionStatus.REQUEST:
            return target in (TransactionStatus.REQUEST, TransactionStatus.ONGOING)
        # A loan never moves back to an earlier phase
        return target is not TransactionStatus.REQUEST and target.phase >= self.phase


_PHASES = {
    TransactionStatus.REQUEST: 0,
    TransactionStatus.ONGOING: 1,
    TransactionStatus.OVERDUE: 1,
    TransactionStatus.INCOMPLETE: 2,
    TransactionStatus.INCOMPLETE_AND_OVERDUE: 2,
    TransactionStatus.COMPLETE: 3,
    TransactionStatus.COMPLETE_AND_OVERDUE: 3,
}

# Statuses a live transaction can hold (it is archived when it reaches a terminal one)
ACTIVE_STATUSES = (
    TransactionStatus.REQUEST,
    TransactionStatus.ONGOING,
    TransactionStatus.OVERDUE,
    TransactionStatus.INCOMPLETE,
    TransactionStatus.INCOMPLETE_AND_OVERDUE,
)

# Statuses re-evaluated by the reconciliation sweep
SWEEPABLE_STATUSES = (
    TransactionStatus.ONGOING,
    TransactionStatus.INCOMPLETE,
    TransactionStatus.OVERDUE,
    TransactionStatus.INCOMPLETE_AND_OVERDUE,
)

ALL_STATUSES_FILTER = "All"


class EquipmentCondition(str, Enum):
    GOOD = "good"
    FAIR = "fair"
    NEEDS_REPAIR = "needs repair"


class EquipmentStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    MAINTENANCE = "maintenance"


class FineType(str, Enum):
    LATE_RETURN = "late_return"


class FineStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    WAIVED = "waived"


class NotificationType(str, Enum):
    TRANSACTION_APPROVED = "transaction_approved"
    TRANSACTION_DENIED = "transaction_denied"
    RETURN_REMINDER = "return_reminder"
    OVERDUE_NOTICE = "overdue_notice"
