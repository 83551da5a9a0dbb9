"""
Cash reconciliation tests: driver cash is derived from tasks, orders,
collections and deposits; deposit rejection takes the deposit back out.
"""

from datetime import datetime

import pytest

from backoffice.errors import InvalidTransitionError, ValidationError
from backoffice.services import (
    cash_service,
    collection_service,
    deposit_service,
    journal_service,
    order_service,
    posting_rules,
    task_service,
)


def _complete_task(company, driver, amount_cents, **kwargs):
    task = task_service.create_task(
        company_id=company.id, title="Deliver bread", driver_id=driver.id, amount_due_cents=amount_cents
    )
    return task_service.update_task_status(company_id=company.id, task_id=task.id, status="COMPLETED", **kwargs)


def test_cash_on_hand_combines_all_streams(company, van, driver, customer, product, receive):
    receive(product, van, 5, 400)

    _complete_task(company, driver, 3000)
    order_service.create_order(
        company_id=company.id,
        customer_id=customer.id,
        location_id=van.id,
        lines=[{"item_id": product.id, "quantity": 1, "unit_price_cents": 2000}],
        channel="POS",
        paid_cents=2000,
    )
    collection_service.create_collection(
        company_id=company.id, customer_id=customer.id, amount_cents=1500, driver_id=driver.id
    )
    deposit = deposit_service.create_deposit(company_id=company.id, driver_id=driver.id, amount_cents=2500)
    deposit_service.update_deposit_status(company_id=company.id, deposit_id=deposit.id, status="CONFIRMED")

    position = cash_service.cash_on_hand(company.id, driver.id)

    assert position.task_payments_cents == 3000
    assert position.order_payments_cents == 2000
    assert position.cash_collections_cents == 1500
    assert position.deposits_cents == 2500
    assert position.cash_on_hand_cents == 4000


def test_non_cash_collections_do_not_count(company, driver, customer):
    collection_service.create_collection(
        company_id=company.id, customer_id=customer.id, amount_cents=1500, driver_id=driver.id, payment_type="check"
    )
    assert cash_service.cash_on_hand(company.id, driver.id).cash_on_hand_cents == 0


def test_cancelled_order_drops_out_of_cash(company, van, driver, customer, product, receive):
    receive(product, van, 5, 400)
    order = order_service.create_order(
        company_id=company.id,
        customer_id=customer.id,
        location_id=van.id,
        lines=[{"item_id": product.id, "quantity": 1}],
        paid_cents=1000,
    )
    assert cash_service.cash_on_hand(company.id, driver.id).cash_on_hand_cents == 1000

    order_service.cancel_order(company_id=company.id, order_id=order.id)
    assert cash_service.cash_on_hand(company.id, driver.id).cash_on_hand_cents == 0


def test_pending_deposit_counts_and_rejection_restores_cash(company, driver, customer):
    collection_service.create_collection(
        company_id=company.id, customer_id=customer.id, amount_cents=5000, driver_id=driver.id
    )
    deposit = deposit_service.create_deposit(company_id=company.id, driver_id=driver.id, amount_cents=3000)
    assert cash_service.cash_on_hand(company.id, driver.id).cash_on_hand_cents == 2000
    assert journal_service.get_account_balance(company.id, posting_rules.BANK) == 3000

    rejected = deposit_service.update_deposit_status(company_id=company.id, deposit_id=deposit.id, status="REJECTED")

    assert rejected.status == "REJECTED"
    assert cash_service.cash_on_hand(company.id, driver.id).cash_on_hand_cents == 5000
    assert journal_service.get_account_balance(company.id, posting_rules.BANK) == 0
    assert journal_service.get_account_balance(company.id, posting_rules.VAN_CASH) == 5000

    with pytest.raises(InvalidTransitionError):
        deposit_service.update_deposit_status(company_id=company.id, deposit_id=deposit.id, status="CONFIRMED")


def test_task_paid_amount_defaults_to_amount_due(company, driver):
    task = _complete_task(company, driver, 1800)
    assert task.paid_cents == 1800
    assert task.completed_at is not None

    partial = _complete_task(company, driver, 1800, paid_cents=1200)
    assert partial.paid_cents == 1200
    assert cash_service.cash_on_hand(company.id, driver.id).task_payments_cents == 3000


def test_paid_amount_only_on_completion(company, driver):
    task = task_service.create_task(company_id=company.id, title="Pick up crates", driver_id=driver.id)
    with pytest.raises(ValidationError):
        task_service.update_task_status(company_id=company.id, task_id=task.id, status="STARTED", paid_cents=100)


def test_cash_window_is_inclusive(company, driver, customer):
    collection_service.create_collection(
        company_id=company.id,
        customer_id=customer.id,
        amount_cents=700,
        driver_id=driver.id,
        collected_at=datetime(2024, 3, 1, 12, 0),
    )
    collection_service.create_collection(
        company_id=company.id,
        customer_id=customer.id,
        amount_cents=300,
        driver_id=driver.id,
        collected_at=datetime(2024, 3, 2, 12, 0),
    )

    at_first = cash_service.cash_on_hand(company.id, driver.id, as_of=datetime(2024, 3, 1, 12, 0))
    from_second = cash_service.cash_on_hand(company.id, driver.id, start=datetime(2024, 3, 2, 12, 0))

    assert at_first.cash_on_hand_cents == 700
    assert from_second.cash_on_hand_cents == 300


def test_van_cash_flags_limit(company, van, driver, customer):
    collection_service.create_collection(
        company_id=company.id, customer_id=customer.id, amount_cents=60000, driver_id=driver.id
    )

    vans = cash_service.van_cash(company.id)

    assert vans == [
        {
            "van_id": van.id,
            "van_name": "Van 1",
            "driver_id": driver.id,
            "driver_name": "Dana Driver",
            "cash_on_hand_cents": 60000,
            "max_cash_cents": 50000,
            "over_limit": True,
        }
    ]


def test_daily_overview(company, van, driver, customer):
    day = datetime(2024, 5, 10, 9, 30)
    collection_service.create_collection(
        company_id=company.id, customer_id=customer.id, amount_cents=900, driver_id=driver.id, collected_at=day
    )
    confirmed = deposit_service.create_deposit(
        company_id=company.id, driver_id=driver.id, amount_cents=400, deposited_at=day
    )
    deposit_service.update_deposit_status(company_id=company.id, deposit_id=confirmed.id, status="CONFIRMED")
    deposit_service.create_deposit(company_id=company.id, driver_id=driver.id, amount_cents=100, deposited_at=day)

    overview = cash_service.cash_overview(company.id, day=day.date())

    assert overview["collections_cents"] == 900
    assert overview["confirmed_deposits_cents"] == 400
    assert overview["pending_deposits_cents"] == 100
    assert overview["cash_in_vans_cents"] == 400
