"""
Production Service: turning raw materials into finished goods

WHY: A finished product's cost is whatever went into it. The run collects
raw materials (valued when they are actually consumed, at the tenant's
method) and extra costs (labour, energy...), and the output is received
at (raw material cost + extra cost) / output quantity.

DESIGN PRINCIPLES:
- Materials and extra costs can only change while the run is DRAFT.
- add_material() checks availability but deducts nothing; stock moves
  only in complete_run().
- complete_run() validates every material (aggregated per item and
  location) BEFORE the first deduction, so a run either consumes all of
  its materials or none.
- Extra costs are real expenses posted when added (production_cost
  records). Completion absorbs them into finished-goods inventory.
- COMPLETED runs are immutable and cannot be deleted. Deleting a DRAFT
  run reverses every extra-cost posting and voids its expenses.

LIFECYCLE:
DRAFT -> COMPLETED
DRAFT -> DELETED
"""

from __future__ import annotations

from collections import defaultdict

from ..errors import ValidationError
from ..extensions import db
from ..models import Expense, Item, Location, ProductionCost, ProductionMaterial, ProductionRun
from ..models.inventory import ITEM_PRODUCT, MOVEMENT_PRODUCTION_CONSUME, MOVEMENT_PRODUCTION_OUTPUT
from ..models.statuses import ProductionStatus, ensure_transition, parse_status
from ..time_utils import normalize_occurred_at, utcnow
from ..validation import MAX_AMOUNT_CENTS, require_positive_int
from . import expense_service, inventory_service, journal_service, posting_rules
from .concurrency import run_with_retry
from .cost_service import divide_cents
from .document_service import next_document_number
from .settings_service import get_valuation_method
from .tenant_service import require_company_record
from .valuation_service import quote_unit_cost

SOURCE_PRODUCTION = "PRODUCTION"


class ProductionError(Exception):
    """Raised for production run rule violations."""
    pass


def _require_draft(run: ProductionRun) -> None:
    if run.status != ProductionStatus.DRAFT.value:
        raise ProductionError(f"run {run.run_number} is {run.status}; only DRAFT runs can change")


def _get_run(company_id: int, run_id: int) -> ProductionRun:
    return require_company_record(ProductionRun, run_id, company_id, label="production run")


# =============================================================================
# RUN SETUP
# =============================================================================

def create_run(
    *,
    company_id: int,
    output_item_id: int,
    output_location_id: int,
    output_quantity: int,
    notes: str | None = None,
    actor_id: int | None = None,
) -> ProductionRun:
    quantity = require_positive_int("output_quantity", output_quantity)

    def _op() -> ProductionRun:
        item = require_company_record(Item, output_item_id, company_id)
        if item.kind != ITEM_PRODUCT:
            raise ProductionError(f"output item {item.sku} must be a product")
        location = require_company_record(Location, output_location_id, company_id)

        run = ProductionRun(
            company_id=company_id,
            run_number=next_document_number(company_id=company_id, document_type="PRODUCTION"),
            output_item_id=item.id,
            output_location_id=location.id,
            output_quantity=quantity,
            status=ProductionStatus.DRAFT.value,
            raw_material_cost_cents=0,
            extra_cost_cents=0,
            notes=notes,
            created_by=actor_id,
        )
        db.session.add(run)
        db.session.commit()
        return run

    return run_with_retry(_op)


def add_material(
    *,
    company_id: int,
    run_id: int,
    item_id: int,
    location_id: int,
    quantity: int,
) -> ProductionMaterial:
    """
    Attach a raw material to a DRAFT run.

    Availability is checked against everything the run already needs from
    the same item and location. Nothing is deducted yet.

    Raises:
        ProductionError: run not DRAFT, material is the output item.
        InsufficientStockError: not enough stock for the run's total need.
    """
    qty = require_positive_int("quantity", quantity)

    def _op() -> ProductionMaterial:
        run = _get_run(company_id, run_id)
        _require_draft(run)
        item = require_company_record(Item, item_id, company_id)
        if item.id == run.output_item_id:
            raise ProductionError("a run cannot consume its own output item")
        location = require_company_record(Location, location_id, company_id)

        already = sum(
            m.quantity for m in run.materials if m.item_id == item.id and m.location_id == location.id
        )
        inventory_service.check_available(
            company_id=company_id, item_id=item.id, location_id=location.id, quantity=already + qty
        )

        material = ProductionMaterial(run_id=run.id, item_id=item.id, location_id=location.id, quantity=qty)
        db.session.add(material)
        db.session.commit()
        return material

    return run_with_retry(_op)


def remove_material(*, company_id: int, run_id: int, material_id: int) -> None:
    def _op() -> None:
        run = _get_run(company_id, run_id)
        _require_draft(run)
        material = db.session.get(ProductionMaterial, material_id)
        if material is None or material.run_id != run.id:
            raise ProductionError(f"material {material_id} is not on run {run.run_number}")
        db.session.delete(material)
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# EXTRA COSTS
# =============================================================================

def add_extra_cost(
    *,
    company_id: int,
    run_id: int,
    amount_cents: int,
    description: str,
    actor_id: int | None = None,
    incurred_at=None,
) -> ProductionCost:
    """Record an extra cost as an approved expense and post it as production cost."""
    amount = require_positive_int("amount_cents", amount_cents, maximum=MAX_AMOUNT_CENTS)
    description = (description or "").strip()
    if not description:
        raise ValidationError("description is required")
    when = normalize_occurred_at(incurred_at)

    def _op() -> ProductionCost:
        run = _get_run(company_id, run_id)
        _require_draft(run)

        expense = expense_service.record_expense(
            company_id=company_id,
            amount_cents=amount,
            category="production",
            description=f"{run.run_number}: {description}"[:255],
            expense_date=when,
            production_run_id=run.id,
            actor_id=actor_id,
        )
        cost = ProductionCost(run_id=run.id, expense_id=expense.id, description=description[:255], amount_cents=amount)
        db.session.add(cost)
        run.extra_cost_cents += amount
        db.session.flush()

        posting_rules.post_production_cost_entry(
            company_id=company_id,
            production_cost_id=cost.id,
            amount_cents=amount,
            posted_at=when,
            actor_id=actor_id,
            description=f"{run.run_number}: {description}",
        )
        db.session.commit()
        return cost

    return run_with_retry(_op)


def _unwind_cost(company_id: int, run: ProductionRun, cost: ProductionCost, actor_id: int | None) -> None:
    expense_service.mark_voided(db.session.get(Expense, cost.expense_id), actor_id)
    journal_service.reverse_event(
        company_id=company_id,
        event_type=posting_rules.EVENT_PRODUCTION_COST,
        event_id=cost.id,
        description=f"{run.run_number}: removed {cost.description}",
        actor_id=actor_id,
    )


def remove_extra_cost(*, company_id: int, run_id: int, cost_id: int, actor_id: int | None = None) -> None:
    def _op() -> None:
        run = _get_run(company_id, run_id)
        _require_draft(run)
        cost = db.session.get(ProductionCost, cost_id)
        if cost is None or cost.run_id != run.id:
            raise ProductionError(f"cost {cost_id} is not on run {run.run_number}")

        _unwind_cost(company_id, run, cost, actor_id)
        run.extra_cost_cents -= cost.amount_cents
        db.session.delete(cost)
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# COMPLETION
# =============================================================================

def complete_run(*, company_id: int, run_id: int, actor_id: int | None = None, completed_at=None) -> ProductionRun:
    """
    Consume the materials, receive the output and post the run.

    WHY: This is the only place a run touches stock. Every material is
    checked first; the first deduction happens only when all of them fit.

    Returns:
        The COMPLETED run with raw_material_cost_cents, extra_cost_cents and
        output_unit_cost_cents filled in.

    Raises:
        ProductionError: run has no materials.
        InsufficientStockError: any material short (nothing consumed).
        InvalidTransitionError: run not DRAFT.
    """
    def _op() -> ProductionRun:
        run = _get_run(company_id, run_id)
        target = ensure_transition(ProductionStatus, run.status, ProductionStatus.COMPLETED)
        if not run.materials:
            raise ProductionError(f"run {run.run_number} has no materials")
        when = normalize_occurred_at(completed_at)

        needed: dict[tuple[int, int], int] = defaultdict(int)
        for material in run.materials:
            needed[(material.item_id, material.location_id)] += material.quantity
        for (item_id, location_id), quantity in needed.items():
            inventory_service.check_available(
                company_id=company_id, item_id=item_id, location_id=location_id, quantity=quantity
            )

        method = get_valuation_method(company_id)
        raw_cost = 0
        for material in run.materials:
            valuation = inventory_service.deduct_stock(
                company_id=company_id,
                item_id=material.item_id,
                location_id=material.location_id,
                quantity=material.quantity,
                movement_type=MOVEMENT_PRODUCTION_CONSUME,
                source_type=SOURCE_PRODUCTION,
                source_id=run.id,
                actor_id=actor_id,
                occurred_at=when,
                method=method,
            )
            material.unit_cost_cents = valuation.unit_cost_cents
            material.total_cost_cents = valuation.total_cost_cents
            raw_cost += valuation.total_cost_cents

        extra_cost = sum(c.amount_cents for c in run.costs)
        unit_cost = divide_cents(raw_cost + extra_cost, run.output_quantity)

        inventory_service.receive_stock(
            company_id=company_id,
            item_id=run.output_item_id,
            location_id=run.output_location_id,
            quantity=run.output_quantity,
            unit_cost_cents=unit_cost,
            movement_type=MOVEMENT_PRODUCTION_OUTPUT,
            source_type=SOURCE_PRODUCTION,
            source_id=run.id,
            actor_id=actor_id,
            occurred_at=when,
        )

        posting_rules.post_production_entry(
            company_id=company_id,
            run_id=run.id,
            raw_material_cost_cents=raw_cost,
            extra_cost_cents=extra_cost,
            posted_at=when,
            actor_id=actor_id,
            description=f"{run.run_number} completed",
        )

        run.raw_material_cost_cents = raw_cost
        run.extra_cost_cents = extra_cost
        run.output_unit_cost_cents = unit_cost
        run.status = target.value
        run.completed_by = actor_id
        run.completed_at = when
        db.session.commit()
        return run

    return run_with_retry(_op)


def delete_run(*, company_id: int, run_id: int, actor_id: int | None = None) -> ProductionRun:
    """
    Delete a DRAFT run: void its extra-cost expenses and reverse their postings.

    Raises:
        InvalidTransitionError: run already COMPLETED or DELETED.
    """
    def _op() -> ProductionRun:
        run = _get_run(company_id, run_id)
        target = ensure_transition(ProductionStatus, run.status, ProductionStatus.DELETED)
        for cost in run.costs:
            _unwind_cost(company_id, run, cost, actor_id)
        run.status = target.value
        run.deleted_at = utcnow()
        db.session.commit()
        return run

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_run_summary(company_id: int, run_id: int) -> dict:
    """
    Run with its costs. DRAFT runs carry an estimate at today's costs
    (read-only quote at the tenant method); completed runs show actuals.
    """
    run = _get_run(company_id, run_id)
    summary = run.to_dict()

    if run.status == ProductionStatus.DRAFT.value:
        method = get_valuation_method(company_id)
        materials = []
        estimated_raw = 0
        for material in run.materials:
            unit = quote_unit_cost(
                company_id, material.item_id, material.quantity, method=method, location_id=material.location_id
            )
            estimated_raw += unit * material.quantity
            materials.append({**material.to_dict(), "estimated_unit_cost_cents": unit})
        summary["materials"] = materials
        summary["estimated_raw_material_cost_cents"] = estimated_raw
        summary["estimated_unit_cost_cents"] = divide_cents(estimated_raw + run.extra_cost_cents, run.output_quantity)
    return summary


def list_runs(company_id: int, *, status: str | None = None) -> list[ProductionRun]:
    q = db.session.query(ProductionRun).filter(ProductionRun.company_id == company_id)
    if status:
        q = q.filter(ProductionRun.status == parse_status(ProductionStatus, status).value)
    return q.order_by(ProductionRun.id.desc()).all()
