# Overview: Cash reconciliation; driver/van cash derived on read from four event streams.

"""
Cash Reconciliation

Van cash is never stored. A driver's cash on hand is always

    SUM(task paid, status COMPLETED/DELIVERED)
  + SUM(order paid, any channel, not CANCELLED)
  + SUM(collections with payment_type 'cash')
  - SUM(deposits, status != REJECTED)

All four sums are scalar subqueries of ONE SELECT, so the figure comes from
a single snapshot: a deposit committed between two separate reads can
never be mixed with a collection read before it.

Windows: start is inclusive, as_of is inclusive.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func, select

from ..extensions import db
from ..models import Collection, DeliveryTask, Deposit, Employee, Location, Order
from ..models.cash import PAYMENT_CASH
from ..models.statuses import DepositStatus, OrderStatus, TaskStatus
from ..models.tenancy import LOCATION_VAN
from ..time_utils import day_bounds, utcnow
from .tenant_service import require_company_record


@dataclass(frozen=True)
class CashPosition:
    driver_id: int
    task_payments_cents: int
    order_payments_cents: int
    cash_collections_cents: int
    deposits_cents: int

    @property
    def cash_on_hand_cents(self) -> int:
        return (
            self.task_payments_cents
            + self.order_payments_cents
            + self.cash_collections_cents
            - self.deposits_cents
        )

    def to_dict(self) -> dict:
        return {
            "driver_id": self.driver_id,
            "task_payments_cents": self.task_payments_cents,
            "order_payments_cents": self.order_payments_cents,
            "cash_collections_cents": self.cash_collections_cents,
            "deposits_cents": self.deposits_cents,
            "cash_on_hand_cents": self.cash_on_hand_cents,
        }


def _windowed(stmt, column, start: datetime | None, as_of: datetime | None):
    if start is not None:
        stmt = stmt.where(column >= start)
    if as_of is not None:
        stmt = stmt.where(column <= as_of)
    return stmt


def _sum(column):
    return func.coalesce(func.sum(column), 0)


def _position_statement(company_id: int, driver_id: int, start: datetime | None, as_of: datetime | None):
    tasks = _windowed(
        select(_sum(DeliveryTask.paid_cents)).where(
            DeliveryTask.company_id == company_id,
            DeliveryTask.driver_id == driver_id,
            DeliveryTask.status.in_([TaskStatus.COMPLETED.value, TaskStatus.DELIVERED.value]),
        ),
        DeliveryTask.completed_at, start, as_of,
    ).scalar_subquery()

    orders = _windowed(
        select(_sum(Order.paid_cents)).where(
            Order.company_id == company_id,
            Order.driver_id == driver_id,
            Order.status != OrderStatus.CANCELLED.value,
        ),
        Order.order_date, start, as_of,
    ).scalar_subquery()

    collections = _windowed(
        select(_sum(Collection.amount_cents)).where(
            Collection.company_id == company_id,
            Collection.driver_id == driver_id,
            Collection.payment_type == PAYMENT_CASH,
        ),
        Collection.collected_at, start, as_of,
    ).scalar_subquery()

    deposits = _windowed(
        select(_sum(Deposit.amount_cents)).where(
            Deposit.company_id == company_id,
            Deposit.driver_id == driver_id,
            Deposit.status != DepositStatus.REJECTED.value,
        ),
        Deposit.deposited_at, start, as_of,
    ).scalar_subquery()

    return select(
        tasks.label("tasks"),
        orders.label("orders"),
        collections.label("collections"),
        deposits.label("deposits"),
    )


def cash_on_hand(
    company_id: int,
    driver_id: int,
    start: datetime | None = None,
    as_of: datetime | None = None,
) -> CashPosition:
    """Derived cash position for one driver. Read-only."""
    require_company_record(Employee, driver_id, company_id, label="driver")
    row = db.session.execute(_position_statement(company_id, driver_id, start, as_of)).one()
    return CashPosition(
        driver_id=driver_id,
        task_payments_cents=int(row.tasks or 0),
        order_payments_cents=int(row.orders or 0),
        cash_collections_cents=int(row.collections or 0),
        deposits_cents=int(row.deposits or 0),
    )


def van_cash(company_id: int) -> list[dict]:
    """Cash held in every van, through its assigned driver."""
    vans = (
        db.session.query(Location)
        .filter(Location.company_id == company_id, Location.kind == LOCATION_VAN)
        .order_by(Location.name)
        .all()
    )
    result = []
    for van in vans:
        position = cash_on_hand(company_id, van.driver_id) if van.driver_id else None
        balance = position.cash_on_hand_cents if position else 0
        result.append(
            {
                "van_id": van.id,
                "van_name": van.name,
                "driver_id": van.driver_id,
                "driver_name": van.driver.name if van.driver else None,
                "cash_on_hand_cents": balance,
                "max_cash_cents": van.max_cash_cents,
                "over_limit": bool(van.max_cash_cents is not None and balance > van.max_cash_cents),
            }
        )
    return result


def cash_overview(company_id: int, day: date | None = None) -> dict:
    """Collections and confirmed deposits for a day, cash in vans, pending deposits."""
    day = day or utcnow().date()
    start, end = day_bounds(day)

    todays_collections = (
        db.session.query(_sum(Collection.amount_cents))
        .filter(
            Collection.company_id == company_id,
            Collection.collected_at >= start,
            Collection.collected_at < end,
        )
        .scalar()
    )
    todays_deposits = (
        db.session.query(_sum(Deposit.amount_cents))
        .filter(
            Deposit.company_id == company_id,
            Deposit.status == DepositStatus.CONFIRMED.value,
            Deposit.deposited_at >= start,
            Deposit.deposited_at < end,
        )
        .scalar()
    )
    pending_deposits = (
        db.session.query(_sum(Deposit.amount_cents))
        .filter(Deposit.company_id == company_id, Deposit.status == DepositStatus.PENDING.value)
        .scalar()
    )

    return {
        "day": day.isoformat(),
        "collections_cents": int(todays_collections or 0),
        "confirmed_deposits_cents": int(todays_deposits or 0),
        "cash_in_vans_cents": sum(v["cash_on_hand_cents"] for v in van_cash(company_id)),
        "pending_deposits_cents": int(pending_deposits or 0),
    }
