"""
Closed status variants and their allowed transitions.

Statuses are persisted as plain strings (the enum value) so reporting SQL
stays readable, but every status change in the services goes through
ensure_transition() instead of ad-hoc string comparison.
"""

from __future__ import annotations

import enum

from ..errors import InvalidTransitionError


class OrderStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class OrderChannel(str, enum.Enum):
    ORDER = "ORDER"  # route sale taken by a salesman/driver
    POS = "POS"      # direct sale from a van or counter


class DepositStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class ProductionStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    COMPLETED = "COMPLETED"
    DELETED = "DELETED"


class ReturnStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PROCESSED = "PROCESSED"


class TaskStatus(str, enum.Enum):
    PENDING = "PENDING"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ExpenseStatus(str, enum.Enum):
    APPROVED = "APPROVED"
    VOIDED = "VOIDED"


class PurchaseStatus(str, enum.Enum):
    RECEIVED = "RECEIVED"
    DELETED = "DELETED"


TRANSITIONS: dict[type[enum.Enum], dict[enum.Enum, frozenset]] = {
    OrderStatus: {
        OrderStatus.CONFIRMED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
        OrderStatus.DELIVERED: frozenset(),
        OrderStatus.CANCELLED: frozenset(),
    },
    DepositStatus: {
        DepositStatus.PENDING: frozenset({DepositStatus.CONFIRMED, DepositStatus.REJECTED}),
        DepositStatus.CONFIRMED: frozenset(),
        DepositStatus.REJECTED: frozenset(),
    },
    ProductionStatus: {
        ProductionStatus.DRAFT: frozenset({ProductionStatus.COMPLETED, ProductionStatus.DELETED}),
        ProductionStatus.COMPLETED: frozenset(),
        ProductionStatus.DELETED: frozenset(),
    },
    ReturnStatus: {
        ReturnStatus.PENDING: frozenset({ReturnStatus.APPROVED, ReturnStatus.REJECTED}),
        ReturnStatus.APPROVED: frozenset({ReturnStatus.PROCESSED}),
        ReturnStatus.REJECTED: frozenset(),
        ReturnStatus.PROCESSED: frozenset(),
    },
    TaskStatus: {
        TaskStatus.PENDING: frozenset({
            TaskStatus.STARTED, TaskStatus.COMPLETED, TaskStatus.DELIVERED, TaskStatus.CANCELLED,
        }),
        TaskStatus.STARTED: frozenset({TaskStatus.COMPLETED, TaskStatus.DELIVERED, TaskStatus.CANCELLED}),
        TaskStatus.COMPLETED: frozenset(),
        TaskStatus.DELIVERED: frozenset(),
        TaskStatus.CANCELLED: frozenset(),
    },
    ExpenseStatus: {
        ExpenseStatus.APPROVED: frozenset({ExpenseStatus.VOIDED}),
        ExpenseStatus.VOIDED: frozenset(),
    },
    PurchaseStatus: {
        PurchaseStatus.RECEIVED: frozenset({PurchaseStatus.DELETED}),
        PurchaseStatus.DELETED: frozenset(),
    },
}


def parse_status(enum_cls, value):
    """Coerce a stored/incoming string to its enum member."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidTransitionError(f"unknown {enum_cls.__name__} {value!r}; expected one of {allowed}")


def ensure_transition(enum_cls, current, target):
    """Return target as an enum member if current -> target is allowed."""
    cur = parse_status(enum_cls, current)
    tgt = parse_status(enum_cls, target)
    if tgt not in TRANSITIONS[enum_cls][cur]:
        raise InvalidTransitionError(
            f"{enum_cls.__name__} cannot change from {cur.value} to {tgt.value}"
        )
    return tgt
