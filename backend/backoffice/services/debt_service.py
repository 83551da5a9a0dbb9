# Overview: Balance ledger; customer debt as an atomic running total with an append-only history.

"""
Balance Ledger Invariants (authoritative)

- Customer.debt_balance_cents is changed ONLY by adjust_debt(), with an
  atomic UPDATE (debt = debt + :delta), never read-modify-write.
- Every change appends a DebtAdjustment in the same transaction, so the
  balance always equals SUM(DebtAdjustment.delta_cents).
- Orders add (+total - paid), collections subtract, return credits
  subtract, cancellations add the negated original delta.
- adjust_debt() flushes only; the triggering operation commits.
"""

from __future__ import annotations

from sqlalchemy import func, update

from ..errors import ValidationError
from ..extensions import db
from ..models import Customer, DebtAdjustment
from ..time_utils import normalize_occurred_at
from .tenant_service import require_company_record


def adjust_debt(
    *,
    company_id: int,
    customer_id: int,
    delta_cents: int,
    source_type: str,
    source_id: int | None = None,
    actor_id: int | None = None,
    occurred_at=None,
) -> DebtAdjustment | None:
    """Apply delta_cents to a customer's debt. A zero delta records nothing."""
    if isinstance(delta_cents, bool) or not isinstance(delta_cents, int):
        raise ValidationError("delta_cents must be integer cents")
    customer = require_company_record(Customer, customer_id, company_id)
    if delta_cents == 0:
        return None

    db.session.flush()
    table = Customer.__table__
    db.session.execute(
        update(table)
        .where(table.c.id == customer.id)
        .values(debt_balance_cents=table.c.debt_balance_cents + delta_cents)
    )
    db.session.expire(customer, ["debt_balance_cents"])

    adjustment = DebtAdjustment(
        company_id=company_id,
        customer_id=customer.id,
        delta_cents=delta_cents,
        source_type=source_type,
        source_id=source_id,
        actor_id=actor_id,
        occurred_at=normalize_occurred_at(occurred_at),
    )
    db.session.add(adjustment)
    db.session.flush()
    return adjustment


def get_debt(company_id: int, customer_id: int) -> int:
    customer = require_company_record(Customer, customer_id, company_id)
    db.session.refresh(customer)
    return customer.debt_balance_cents


def reconstruct_debt(company_id: int, customer_id: int) -> int:
    """Debt rebuilt from the adjustment history alone."""
    require_company_record(Customer, customer_id, company_id)
    total = (
        db.session.query(func.coalesce(func.sum(DebtAdjustment.delta_cents), 0))
        .filter(DebtAdjustment.company_id == company_id, DebtAdjustment.customer_id == customer_id)
        .scalar()
    )
    return int(total or 0)


def list_adjustments(company_id: int, customer_id: int, *, limit: int = 200) -> list[DebtAdjustment]:
    require_company_record(Customer, customer_id, company_id)
    return (
        db.session.query(DebtAdjustment)
        .filter_by(company_id=company_id, customer_id=customer_id)
        .order_by(DebtAdjustment.occurred_at.desc(), DebtAdjustment.id.desc())
        .limit(max(1, min(limit, 1000)))
        .all()
    )


def audit_debts(company_id: int) -> list[dict]:
    """Customers whose stored debt differs from their adjustment history."""
    history = dict(
        db.session.query(DebtAdjustment.customer_id, func.sum(DebtAdjustment.delta_cents))
        .filter(DebtAdjustment.company_id == company_id)
        .group_by(DebtAdjustment.customer_id)
        .all()
    )
    problems = []
    customers = (
        db.session.query(Customer)
        .filter_by(company_id=company_id)
        .order_by(Customer.id)
        .populate_existing()
        .all()
    )
    for customer in customers:
        expected = int(history.get(customer.id) or 0)
        if customer.debt_balance_cents != expected:
            problems.append(
                {
                    "customer_id": customer.id,
                    "name": customer.name,
                    "stored_cents": customer.debt_balance_cents,
                    "reconstructed_cents": expected,
                }
            )
    return problems

