"""
Production run tests: output costing, all-or-nothing completion, draft
deletion and immutability of completed runs.
"""

import pytest

from backoffice.errors import InsufficientStockError, InvalidTransitionError
from backoffice.extensions import db
from backoffice.models import Expense, Item
from backoffice.services import (
    catalog_service,
    inventory_service,
    journal_service,
    posting_rules,
    production_service,
)
from backoffice.services.production_service import ProductionError


def _run(company, product, warehouse, quantity=2):
    return production_service.create_run(
        company_id=company.id,
        output_item_id=product.id,
        output_location_id=warehouse.id,
        output_quantity=quantity,
    )


def test_output_cost_is_materials_plus_extra_over_quantity(company, warehouse, product, raw_material, receive):
    receive(raw_material, warehouse, 5, 200)
    run = _run(company, product, warehouse)
    production_service.add_material(
        company_id=company.id, run_id=run.id, item_id=raw_material.id, location_id=warehouse.id, quantity=5
    )
    production_service.add_extra_cost(company_id=company.id, run_id=run.id, amount_cents=400, description="Oven gas")

    completed = production_service.complete_run(company_id=company.id, run_id=run.id)

    assert completed.status == "COMPLETED"
    assert completed.raw_material_cost_cents == 1000
    assert completed.extra_cost_cents == 400
    assert completed.output_unit_cost_cents == 700
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 2
    assert inventory_service.get_quantity_on_hand(company.id, raw_material.id, warehouse.id) == 0
    assert db.session.get(Item, product.id).unit_cost_cents == 700

    record = journal_service.get_record_for_event(company.id, posting_rules.EVENT_PRODUCTION, run.id)
    assert record.total_debit_cents == 1400
    # Extra cost paid in cash, then absorbed into finished goods
    assert journal_service.get_account_balance(company.id, posting_rules.PRODUCTION_COST) == 0
    assert journal_service.get_account_balance(company.id, posting_rules.INVENTORY) == 1400


def test_output_joins_existing_weighted_average(company, warehouse, product, raw_material, receive):
    receive(product, warehouse, 2, 500)
    receive(raw_material, warehouse, 5, 200)
    run = _run(company, product, warehouse)
    production_service.add_material(
        company_id=company.id, run_id=run.id, item_id=raw_material.id, location_id=warehouse.id, quantity=5
    )
    production_service.add_extra_cost(company_id=company.id, run_id=run.id, amount_cents=400, description="Labour")

    production_service.complete_run(company_id=company.id, run_id=run.id)

    # (2 * 500 + 2 * 700) / 4
    assert db.session.get(Item, product.id).unit_cost_cents == 600


def test_completion_is_all_or_nothing(company, warehouse, product, raw_material, receive):
    sugar = catalog_service.create_item(
        company_id=company.id, payload={"sku": "SUGAR-1", "name": "Sugar", "kind": "RAW_MATERIAL"}
    )
    receive(sugar, warehouse, 10, 100)
    receive(raw_material, warehouse, 5, 200)

    first = _run(company, product, warehouse)
    production_service.add_material(
        company_id=company.id, run_id=first.id, item_id=raw_material.id, location_id=warehouse.id, quantity=5
    )
    second = _run(company, product, warehouse)
    production_service.add_material(
        company_id=company.id, run_id=second.id, item_id=sugar.id, location_id=warehouse.id, quantity=4
    )
    production_service.add_material(
        company_id=company.id, run_id=second.id, item_id=raw_material.id, location_id=warehouse.id, quantity=5
    )

    production_service.complete_run(company_id=company.id, run_id=first.id)

    with pytest.raises(InsufficientStockError):
        production_service.complete_run(company_id=company.id, run_id=second.id)

    assert inventory_service.get_quantity_on_hand(company.id, sugar.id, warehouse.id) == 10
    assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 2
    assert production_service.get_run_summary(company.id, second.id)["status"] == "DRAFT"
    assert journal_service.get_record_for_event(company.id, posting_rules.EVENT_PRODUCTION, second.id) is None


def test_material_availability_checked_when_added(company, warehouse, product, raw_material, receive):
    receive(raw_material, warehouse, 5, 200)
    run = _run(company, product, warehouse)
    production_service.add_material(
        company_id=company.id, run_id=run.id, item_id=raw_material.id, location_id=warehouse.id, quantity=3
    )

    with pytest.raises(InsufficientStockError):
        production_service.add_material(
            company_id=company.id, run_id=run.id, item_id=raw_material.id, location_id=warehouse.id, quantity=3
        )


def test_run_without_materials_cannot_complete(company, warehouse, product):
    run = _run(company, product, warehouse)
    with pytest.raises(ProductionError):
        production_service.complete_run(company_id=company.id, run_id=run.id)


def test_output_must_be_a_product(company, warehouse, raw_material):
    with pytest.raises(ProductionError):
        _run(company, raw_material, warehouse)


def test_deleting_draft_reverses_extra_costs(company, warehouse, product):
    run = _run(company, product, warehouse)
    cost = production_service.add_extra_cost(
        company_id=company.id, run_id=run.id, amount_cents=400, description="Packaging"
    )
    assert journal_service.get_account_balance(company.id, posting_rules.CASH) == -400

    deleted = production_service.delete_run(company_id=company.id, run_id=run.id)

    assert deleted.status == "DELETED"
    assert db.session.get(Expense, cost.expense_id).status == "VOIDED"
    assert journal_service.get_account_balance(company.id, posting_rules.CASH) == 0
    assert journal_service.get_account_balance(company.id, posting_rules.PRODUCTION_COST) == 0


def test_removing_extra_cost_unwinds_it(company, warehouse, product):
    run = _run(company, product, warehouse)
    cost = production_service.add_extra_cost(
        company_id=company.id, run_id=run.id, amount_cents=250, description="Energy"
    )

    production_service.remove_extra_cost(company_id=company.id, run_id=run.id, cost_id=cost.id)

    summary = production_service.get_run_summary(company.id, run.id)
    assert summary["extra_cost_cents"] == 0
    assert journal_service.get_account_balance(company.id, posting_rules.PRODUCTION_COST) == 0


def test_completed_run_is_immutable(company, warehouse, product, raw_material, receive):
    receive(raw_material, warehouse, 5, 200)
    run = _run(company, product, warehouse)
    production_service.add_material(
        company_id=company.id, run_id=run.id, item_id=raw_material.id, location_id=warehouse.id, quantity=5
    )
    production_service.complete_run(company_id=company.id, run_id=run.id)

    with pytest.raises(InvalidTransitionError):
        production_service.delete_run(company_id=company.id, run_id=run.id)
    with pytest.raises(ProductionError):
        production_service.add_extra_cost(company_id=company.id, run_id=run.id, amount_cents=100, description="Late")


def test_draft_summary_estimates_unit_cost(company, warehouse, product, raw_material, receive):
    receive(raw_material, warehouse, 5, 200)
    run = _run(company, product, warehouse)
    production_service.add_material(
        company_id=company.id, run_id=run.id, item_id=raw_material.id, location_id=warehouse.id, quantity=5
    )
    production_service.add_extra_cost(company_id=company.id, run_id=run.id, amount_cents=400, description="Gas")

    summary = production_service.get_run_summary(company.id, run.id)

    assert summary["estimated_raw_material_cost_cents"] == 1000
    assert summary["estimated_unit_cost_cents"] == 700
    assert inventory_service.get_quantity_on_hand(company.id, raw_material.id, warehouse.id) == 5
