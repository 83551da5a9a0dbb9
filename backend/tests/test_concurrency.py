# Overview: Pytest coverage for conflict detection and retry of business operations.

"""
Concurrency Tests

SQLite in tests cannot run two writers at once, so lost races are simulated:
the stock level is changed underneath a pending decrement, or the decrement
helper is made to report a conflict. Verifies that:
1. The conditional decrement refuses to go below the stored quantity
2. A single lost race is retried and the operation completes once
3. A conflict that persists propagates and leaves nothing behind
"""

import pytest
from sqlalchemy import update

from backoffice.errors import ConcurrencyConflictError
from backoffice.extensions import db
from backoffice.models import DebtAdjustment, JournalRecord, Order, StockLevel
from backoffice.services import debt_service, inventory_service, order_service
from backoffice.services.concurrency import run_with_retry


def _order(company, customer, location, item, quantity):
    return order_service.create_order(
        company_id=company.id,
        customer_id=customer.id,
        location_id=location.id,
        lines=[{"item_id": item.id, "quantity": quantity}],
    )


def test_decrement_checks_quantity_at_write_time(company, warehouse, product, receive):
    receive(product, warehouse, 5, 400)
    level = db.session.query(StockLevel).filter_by(item_id=product.id, location_id=warehouse.id).one()

    # Another writer takes 4 after our read
    db.session.execute(update(StockLevel.__table__).where(StockLevel.__table__.c.id == level.id).values(quantity=1))

    with pytest.raises(ConcurrencyConflictError):
        inventory_service._decrement_level(level, 3)
    db.session.rollback()


def test_lost_race_is_retried_once(company, warehouse, customer, product, receive, monkeypatch):
    receive(product, warehouse, 5, 400)
    real_decrement = inventory_service._decrement_level
    calls = []

    def flaky_decrement(level, quantity):
        calls.append(quantity)
        if len(calls) == 1:
            raise ConcurrencyConflictError("simulated lost race")
        return real_decrement(level, quantity)

    monkeypatch.setattr(inventory_service, "_decrement_level", flaky_decrement)

    order = _order(company, customer, warehouse, product, 2)

    assert calls == [2, 2]
    assert db.session.query(Order).count() == 1
    assert order.order_number.endswith("00001")
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 3
    assert debt_service.get_debt(company.id, customer.id) == 2000


def test_persistent_conflict_propagates_without_writes(company, warehouse, customer, product, receive, monkeypatch):
    receive(product, warehouse, 5, 400)

    def always_conflict(level, quantity):
        raise ConcurrencyConflictError("simulated lost race")

    monkeypatch.setattr(inventory_service, "_decrement_level", always_conflict)

    with pytest.raises(ConcurrencyConflictError):
        _order(company, customer, warehouse, product, 2)

    assert db.session.query(Order).count() == 0
    assert db.session.query(DebtAdjustment).count() == 0
    assert db.session.query(JournalRecord).count() == 0
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 5


def test_non_retriable_errors_are_not_retried(app):
    attempts = []

    def _op():
        attempts.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        run_with_retry(_op, attempts=3, backoff_base=0)
    assert len(attempts) == 1


def test_debt_adjustments_are_additive(company, customer):
    debt_service.adjust_debt(company_id=company.id, customer_id=customer.id, delta_cents=700, source_type="manual")
    debt_service.adjust_debt(company_id=company.id, customer_id=customer.id, delta_cents=-200, source_type="manual")
    db.session.commit()

    assert debt_service.get_debt(company.id, customer.id) == 500
    assert debt_service.reconstruct_debt(company.id, customer.id) == 500
