# Overview: Valuation engine; unit cost of outgoing stock per tenant valuation method.

"""
Valuation Engine

Methods (TenantSettings.valuation_method):
- weighted_average: Item.unit_cost_cents (maintained by cost_service).
- fifo: blended cost of the oldest unconsumed cost lots.
- lifo: blended cost of the newest unconsumed cost lots.
- standard: Item.standard_cost_cents.

Lot tracking:
- Every deduction consumes lots, whatever the method (newest first for
  lifo, oldest first otherwise), so the remaining lot quantities always
  mirror physical stock and a tenant can switch methods at any time.
- Stock not covered by any lot (opening balances entered without cost)
  is valued at the item's standard cost, the same cost cost_service
  carries it at in the weighted average.

Fallback: an item with no cost history is valued at standard_cost_cents.

quote_unit_cost() is read-only; consume() decrements lots and must run
inside the caller's transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import InsufficientStockError
from ..extensions import db
from ..models import CostLot, Item
from .concurrency import lock_for_update
from .cost_service import divide_cents, has_cost_history
from .settings_service import get_valuation_method, normalize_valuation_method
from .tenant_service import require_company_record


@dataclass
class LotDraw:
    lot_id: int
    quantity: int
    unit_cost_cents: int


@dataclass
class ValuationResult:
    quantity: int
    unit_cost_cents: int
    total_cost_cents: int
    method: str
    consumptions: list[LotDraw] = field(default_factory=list)
    uncovered_quantity: int = 0
    movement_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "method": self.method,
            "uncovered_quantity": self.uncovered_quantity,
            "consumptions": [
                {"lot_id": d.lot_id, "quantity": d.quantity, "unit_cost_cents": d.unit_cost_cents}
                for d in self.consumptions
            ],
        }


def fallback_unit_cost(item: Item) -> int:
    """Cost for stock with no lot behind it."""
    if has_cost_history(item.id) and item.unit_cost_cents:
        return item.unit_cost_cents
    return item.standard_cost_cents or 0


def _open_lots_query(item_id: int, location_id: int | None, method: str):
    q = db.session.query(CostLot).filter(
        CostLot.item_id == item_id,
        CostLot.quantity_remaining > 0,
    )
    if location_id is not None:
        q = q.filter(CostLot.location_id == location_id)
    if method == "lifo":
        return q.order_by(CostLot.received_at.desc(), CostLot.id.desc())
    return q.order_by(CostLot.received_at.asc(), CostLot.id.asc())


def _plan(lots, quantity: int) -> tuple[list[LotDraw], int]:
    draws: list[LotDraw] = []
    remaining = quantity
    for lot in lots:
        if remaining <= 0:
            break
        take = min(remaining, lot.quantity_remaining)
        draws.append(LotDraw(lot_id=lot.id, quantity=take, unit_cost_cents=lot.unit_cost_cents))
        remaining -= take
    return draws, remaining


def _price(item: Item, method: str, quantity: int, draws: list[LotDraw], uncovered: int) -> tuple[int, int]:
    """(unit_cost_cents, total_cost_cents) for a planned draw."""
    if method == "standard":
        unit = item.standard_cost_cents or 0
        return unit, unit * quantity

    if method == "weighted_average":
        unit = item.unit_cost_cents if has_cost_history(item.id) else (item.standard_cost_cents or 0)
        return unit, unit * quantity

    # fifo / lifo: blended over the lots actually drawn
    total = sum(d.quantity * d.unit_cost_cents for d in draws)
    if uncovered:
        total += uncovered * (item.standard_cost_cents or 0)
    return divide_cents(total, quantity), total


def quote_unit_cost(
    company_id: int,
    item_id: int,
    quantity: int = 1,
    method: str | None = None,
    location_id: int | None = None,
) -> int:
    """
    Unit cost that deducting `quantity` would carry right now. Read-only.

    Without location_id, lots from every location are considered.
    """
    item = require_company_record(Item, item_id, company_id)
    method = normalize_valuation_method(method) if method else get_valuation_method(company_id)
    quantity = max(int(quantity or 1), 1)

    draws, uncovered = _plan(_open_lots_query(item.id, location_id, method).all(), quantity)
    unit, _total = _price(item, method, quantity, draws, uncovered)
    return unit


def consume(item: Item, location_id: int, quantity: int, method: str) -> ValuationResult:
    """
    Draw `quantity` from the item's lots at a location and price it.

    Decrements CostLot.quantity_remaining for every lot drawn (flush only).
    CostLot carries version_id, so a concurrent consumer of the same lot
    fails with StaleDataError rather than double-drawing it.
    """
    method = normalize_valuation_method(method)
    if quantity <= 0:
        raise ValueError("quantity must be positive")

    lots = lock_for_update(_open_lots_query(item.id, location_id, method)).all()
    draws, uncovered = _plan(lots, quantity)

    by_id = {lot.id: lot for lot in lots}
    for draw in draws:
        by_id[draw.lot_id].quantity_remaining -= draw.quantity
    if draws:
        db.session.flush()

    unit, total = _price(item, method, quantity, draws, uncovered)
    return ValuationResult(
        quantity=quantity,
        unit_cost_cents=unit,
        total_cost_cents=total,
        method=method,
        consumptions=draws,
        uncovered_quantity=uncovered,
    )


def consume_lot(item: Item, location_id: int, quantity: int, lot_id: int) -> ValuationResult:
    """Draw `quantity` from one specific lot (reversing the receipt that opened it)."""
    lot = lock_for_update(
        db.session.query(CostLot).filter(
            CostLot.id == lot_id,
            CostLot.item_id == item.id,
            CostLot.location_id == location_id,
        )
    ).first()
    available = lot.quantity_remaining if lot is not None else 0
    if available < quantity:
        raise InsufficientStockError(
            item_id=item.id, location_id=location_id, requested=quantity, available=available
        )

    lot.quantity_remaining -= quantity
    db.session.flush()
    return ValuationResult(
        quantity=quantity,
        unit_cost_cents=lot.unit_cost_cents,
        total_cost_cents=quantity * lot.unit_cost_cents,
        method="lot",
        consumptions=[LotDraw(lot_id=lot.id, quantity=quantity, unit_cost_cents=lot.unit_cost_cents)],
    )
