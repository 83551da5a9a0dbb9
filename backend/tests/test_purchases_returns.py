"""
Raw material purchases (receipt, supplier payments, deletion) and customer
returns (restock at original cost, debt credit, COGS reversal).
"""

import pytest
from sqlalchemy import update

from backoffice.errors import InsufficientStockError, InvalidTransitionError, ValidationError
from backoffice.extensions import db
from backoffice.models import CostLot, Item, Order, Return
from backoffice.services import (
    debt_service,
    inventory_service,
    journal_service,
    order_service,
    posting_rules,
    production_service,
    purchase_service,
    return_service,
)
from backoffice.services.purchase_service import PurchaseError
from backoffice.services.return_service import ReturnError


def _balance(company, code):
    return journal_service.get_account_balance(company.id, code)


def _purchase(company, warehouse, item, quantity, unit_price, paid=0):
    return purchase_service.create_purchase(
        company_id=company.id,
        supplier_name="Mill Co",
        location_id=warehouse.id,
        lines=[{"item_id": item.id, "quantity": quantity, "unit_price_cents": unit_price}],
        paid_cents=paid,
    )


# =============================================================================
# PURCHASES
# =============================================================================

def test_purchase_receives_stock_and_books_payable(company, warehouse, raw_material):
    purchase = _purchase(company, warehouse, raw_material, 10, 200, paid=500)

    assert purchase.total_cents == 2000
    assert purchase.lines[0].lot_id is not None
    assert inventory_service.get_quantity_on_hand(company.id, raw_material.id, warehouse.id) == 10
    assert db.session.get(Item, raw_material.id).unit_cost_cents == 200
    assert _balance(company, posting_rules.RAW_MATERIAL_INVENTORY) == 2000
    assert _balance(company, posting_rules.ACCOUNTS_PAYABLE) == 1500
    assert _balance(company, posting_rules.CASH) == -500


def test_only_raw_materials_can_be_purchased(company, warehouse, product):
    with pytest.raises(PurchaseError):
        _purchase(company, warehouse, product, 1, 100)
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 0


def test_supplier_payment_cannot_exceed_outstanding(company, warehouse, raw_material):
    purchase = _purchase(company, warehouse, raw_material, 10, 200, paid=500)

    purchase_service.record_purchase_payment(company_id=company.id, purchase_id=purchase.id, amount_cents=1000)
    assert _balance(company, posting_rules.ACCOUNTS_PAYABLE) == 500

    with pytest.raises(ValidationError):
        purchase_service.record_purchase_payment(company_id=company.id, purchase_id=purchase.id, amount_cents=600)
    assert purchase_service.get_purchase(company.id, purchase.id).paid_cents == 1500


def test_delete_purchase_unwinds_stock_cost_and_journal(company, warehouse, raw_material, receive):
    receive(raw_material, warehouse, 10, 100)
    purchase = _purchase(company, warehouse, raw_material, 10, 300, paid=1000)
    purchase_service.record_purchase_payment(company_id=company.id, purchase_id=purchase.id, amount_cents=500)
    assert db.session.get(Item, raw_material.id).unit_cost_cents == 200

    deleted = purchase_service.delete_purchase(company_id=company.id, purchase_id=purchase.id)

    assert deleted.status == "DELETED"
    assert inventory_service.get_quantity_on_hand(company.id, raw_material.id, warehouse.id) == 10
    assert db.session.get(Item, raw_material.id).unit_cost_cents == 100
    for code in (posting_rules.RAW_MATERIAL_INVENTORY, posting_rules.ACCOUNTS_PAYABLE, posting_rules.CASH):
        assert _balance(company, code) == 0
    assert inventory_service.audit_stock_levels(company.id) == []

    with pytest.raises(InvalidTransitionError):
        purchase_service.delete_purchase(company_id=company.id, purchase_id=purchase.id)


def test_delete_refused_once_material_is_consumed(company, warehouse, product, raw_material):
    purchase = _purchase(company, warehouse, raw_material, 10, 200)
    run = production_service.create_run(
        company_id=company.id, output_item_id=product.id, output_location_id=warehouse.id, output_quantity=1
    )
    production_service.add_material(
        company_id=company.id, run_id=run.id, item_id=raw_material.id, location_id=warehouse.id, quantity=3
    )
    production_service.complete_run(company_id=company.id, run_id=run.id)

    with pytest.raises(InsufficientStockError):
        purchase_service.delete_purchase(company_id=company.id, purchase_id=purchase.id)

    assert purchase_service.get_purchase(company.id, purchase.id).status == "RECEIVED"
    assert inventory_service.get_quantity_on_hand(company.id, raw_material.id, warehouse.id) == 7
    assert _balance(company, posting_rules.ACCOUNTS_PAYABLE) == 2000


# =============================================================================
# RETURNS
# =============================================================================

@pytest.fixture
def credit_sale(company, warehouse, customer, product, receive):
    receive(product, warehouse, 10, 400)
    order = order_service.create_order(
        company_id=company.id,
        customer_id=customer.id,
        location_id=warehouse.id,
        lines=[{"item_id": product.id, "quantity": 4}],
    )
    receive(product, warehouse, 10, 700)
    return order


def test_processed_return_restocks_at_original_cost(company, warehouse, customer, product, credit_sale):
    line = credit_sale.lines[0]
    return_doc = return_service.create_return(
        company_id=company.id,
        customer_id=customer.id,
        order_id=credit_sale.id,
        lines=[{"order_line_id": line.id, "quantity": 1}],
        reason="Stale",
    )
    assert return_doc.status == "PENDING"
    assert return_doc.total_cents == 1000
    assert return_doc.cost_cents == 400

    return_service.approve_return(company_id=company.id, return_id=return_doc.id)
    processed = return_service.process_return(company_id=company.id, return_id=return_doc.id)

    assert processed.status == "PROCESSED"
    assert processed.restock_location_id == warehouse.id
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 17
    assert debt_service.get_debt(company.id, customer.id) == 3000

    newest = db.session.query(CostLot).filter_by(item_id=product.id).order_by(CostLot.id.desc()).first()
    assert (newest.unit_cost_cents, newest.quantity_remaining) == (400, 1)

    assert _balance(company, posting_rules.RETURNS_AND_REFUNDS) == 1000
    assert _balance(company, posting_rules.ACCOUNTS_RECEIVABLE) == 3000
    assert _balance(company, posting_rules.COGS) == 1600 - 400


def test_cannot_return_more_than_sold(company, customer, credit_sale):
    line = credit_sale.lines[0]
    return_service.create_return(
        company_id=company.id,
        customer_id=customer.id,
        order_id=credit_sale.id,
        lines=[{"order_line_id": line.id, "quantity": 3}],
    )

    with pytest.raises(ReturnError):
        return_service.create_return(
            company_id=company.id,
            customer_id=customer.id,
            order_id=credit_sale.id,
            lines=[{"order_line_id": line.id, "quantity": 2}],
        )


def test_rejected_return_frees_the_quantity(company, customer, credit_sale):
    line = credit_sale.lines[0]
    first = return_service.create_return(
        company_id=company.id,
        customer_id=customer.id,
        order_id=credit_sale.id,
        lines=[{"order_line_id": line.id, "quantity": 4}],
    )
    rejected = return_service.reject_return(
        company_id=company.id, return_id=first.id, rejection_reason="Not ours"
    )
    assert rejected.status == "REJECTED"

    again = return_service.create_return(
        company_id=company.id,
        customer_id=customer.id,
        order_id=credit_sale.id,
        lines=[{"order_line_id": line.id, "quantity": 4}],
    )
    assert again.total_cents == 4000


def test_return_must_be_approved_before_processing(company, customer, credit_sale):
    return_doc = return_service.create_return(
        company_id=company.id,
        customer_id=customer.id,
        order_id=credit_sale.id,
        lines=[{"order_line_id": credit_sale.lines[0].id, "quantity": 1}],
    )
    with pytest.raises(InvalidTransitionError):
        return_service.process_return(company_id=company.id, return_id=return_doc.id)


def test_free_return_without_credit_owes_the_customer(company, warehouse, customer, product, receive):
    receive(product, warehouse, 2, 400)
    return_doc = return_service.create_return(
        company_id=company.id,
        customer_id=customer.id,
        lines=[{"item_id": product.id, "quantity": 2, "unit_price_cents": 900}],
    )
    return_service.approve_return(company_id=company.id, return_id=return_doc.id)

    with pytest.raises(ValidationError):
        return_service.process_return(company_id=company.id, return_id=return_doc.id)

    processed = return_service.process_return(
        company_id=company.id, return_id=return_doc.id, restock_location_id=warehouse.id, issue_credit=False
    )

    assert processed.cost_cents == 800
    assert debt_service.get_debt(company.id, customer.id) == 0
    assert _balance(company, posting_rules.CUSTOMER_CREDITS) == 1800
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 4


# =============================================================================
# RETURNS AND CANCELLATION
# =============================================================================

def test_order_with_processed_return_cannot_be_cancelled(company, warehouse, customer, product, receive):
    receive(product, warehouse, 10, 500)
    order = order_service.create_order(
        company_id=company.id,
        customer_id=customer.id,
        location_id=warehouse.id,
        lines=[{"item_id": product.id, "quantity": 10}],
    )
    return_doc = return_service.create_return(
        company_id=company.id,
        customer_id=customer.id,
        order_id=order.id,
        lines=[{"order_line_id": order.lines[0].id, "quantity": 10}],
    )
    return_service.approve_return(company_id=company.id, return_id=return_doc.id)
    return_service.process_return(company_id=company.id, return_id=return_doc.id)

    with pytest.raises(InvalidTransitionError):
        order_service.cancel_order(company_id=company.id, order_id=order.id)

    assert db.session.get(Order, order.id).status == "CONFIRMED"
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 10
    assert debt_service.get_debt(company.id, customer.id) == 0
    assert debt_service.audit_debts(company.id) == []
    assert inventory_service.audit_stock_levels(company.id) == []


def test_pending_return_blocks_cancellation_until_rejected(company, warehouse, customer, product, credit_sale):
    return_doc = return_service.create_return(
        company_id=company.id,
        customer_id=customer.id,
        order_id=credit_sale.id,
        lines=[{"order_line_id": credit_sale.lines[0].id, "quantity": 2}],
    )

    with pytest.raises(InvalidTransitionError):
        order_service.cancel_order(company_id=company.id, order_id=credit_sale.id)

    return_service.reject_return(company_id=company.id, return_id=return_doc.id)
    cancelled = order_service.cancel_order(company_id=company.id, order_id=credit_sale.id)

    assert cancelled.status == "CANCELLED"
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 20
    assert debt_service.get_debt(company.id, customer.id) == 0


def test_return_is_not_processed_against_a_cancelled_order(company, warehouse, customer, product, credit_sale):
    return_doc = return_service.create_return(
        company_id=company.id,
        customer_id=customer.id,
        order_id=credit_sale.id,
        lines=[{"order_line_id": credit_sale.lines[0].id, "quantity": 4}],
    )
    return_service.approve_return(company_id=company.id, return_id=return_doc.id)

    # Cancellation that slipped in after approval, written straight to the row
    db.session.execute(
        update(Order.__table__).where(Order.__table__.c.id == credit_sale.id).values(status="CANCELLED")
    )
    db.session.commit()

    with pytest.raises(ReturnError):
        return_service.process_return(company_id=company.id, return_id=return_doc.id)

    assert db.session.get(Return, return_doc.id).status == "APPROVED"
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 16
    assert debt_service.get_debt(company.id, customer.id) == 4000
