# Overview: Moving weighted-average cost and cost alerts for items.

"""
Cost Aggregator

Item.unit_cost_cents is the moving weighted-average cost. It is written
here and nowhere else:

    new = (existing_qty * existing_cost + incoming_qty * incoming_cost)
          / (existing_qty + incoming_qty)

existing_qty is the item's quantity on hand across all locations BEFORE
the receipt is applied, so callers invoke update_weighted_average() before
incrementing stock. A zero denominator yields the incoming cost.

Stock that arrived before any cost lot existed (opening balances without a
cost) is carried at the item's standard cost, never at zero.

Rounding: nearest cent, half-up, like every other cost division here.

Item carries version_id, so two receipts racing on the same item cannot
both overwrite unit_cost_cents; the loser's flush raises StaleDataError
and its whole operation is retried.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CostAlert, CostLot, Item, StockLevel
from ..models.inventory import ALERT_COST_SPIKE, ALERT_LOW_MARGIN
from .settings_service import get_tenant_settings


def divide_cents(total: int, units: int) -> int:
    """Nearest-cent division, half-up (total >= 0, units > 0)."""
    if units <= 0:
        raise ValueError("units must be positive")
    return (total + (units // 2)) // units


def has_cost_history(item_id: int) -> bool:
    return db.session.query(CostLot.id).filter(CostLot.item_id == item_id).first() is not None


def carried_unit_cost(item: Item) -> int:
    """Unit cost of the stock already on hand, before a receipt is folded in."""
    if has_cost_history(item.id):
        return item.unit_cost_cents or 0
    return item.standard_cost_cents or 0


def get_total_quantity(item_id: int) -> int:
    """Quantity on hand for an item summed over every location."""
    q = db.session.query(func.coalesce(func.sum(StockLevel.quantity), 0)).filter(
        StockLevel.item_id == item_id
    )
    return int(q.scalar() or 0)


def compute_weighted_average(
    existing_qty: int, existing_cost_cents: int, incoming_qty: int, incoming_unit_cost_cents: int
) -> int:
    denominator = existing_qty + incoming_qty
    if denominator <= 0:
        return incoming_unit_cost_cents
    numerator = existing_qty * existing_cost_cents + incoming_qty * incoming_unit_cost_cents
    return divide_cents(numerator, denominator)


def update_weighted_average(
    item: Item,
    incoming_qty: int,
    incoming_unit_cost_cents: int,
    *,
    existing_qty: int | None = None,
    source_type: str | None = None,
    source_id: int | None = None,
    check_spike: bool = True,
) -> int:
    """
    Fold a receipt into item.unit_cost_cents and return the new cost.

    check_spike=False for stock coming back at a cost it already had
    (cancelled sales). Flushes only; the enclosing business operation commits.
    """
    if existing_qty is None:
        existing_qty = get_total_quantity(item.id)
    existing_qty = max(existing_qty, 0)
    costed = has_cost_history(item.id)
    previous_cost = carried_unit_cost(item)

    if check_spike and costed:
        _check_cost_spike(
            item,
            previous_cost=previous_cost,
            incoming_cost=incoming_unit_cost_cents,
            source_type=source_type,
            source_id=source_id,
        )

    new_cost = compute_weighted_average(existing_qty, previous_cost, incoming_qty, incoming_unit_cost_cents)
    if new_cost != item.unit_cost_cents:
        item.unit_cost_cents = new_cost
        db.session.flush()
    return new_cost


def reverse_weighted_average(item: Item, removed_qty: int, removed_unit_cost_cents: int) -> int:
    """
    Take a receipt back out of the weighted average (purchase deletion).

    Call AFTER the stock has been removed. With nothing left on hand the
    current cost is kept; the result never goes below zero.
    """
    remaining_qty = get_total_quantity(item.id)
    if remaining_qty <= 0:
        return item.unit_cost_cents or 0

    before_qty = remaining_qty + removed_qty
    numerator = before_qty * (item.unit_cost_cents or 0) - removed_qty * removed_unit_cost_cents
    new_cost = divide_cents(max(numerator, 0), remaining_qty)
    if new_cost != item.unit_cost_cents:
        item.unit_cost_cents = new_cost
        db.session.flush()
    return new_cost


def _check_cost_spike(
    item: Item,
    *,
    previous_cost: int,
    incoming_cost: int,
    source_type: str | None,
    source_id: int | None,
) -> CostAlert | None:
    settings = get_tenant_settings(item.company_id)
    if not settings.enable_cost_alerts or previous_cost <= 0:
        return None

    threshold = settings.cost_spike_threshold_pct
    # incoming > previous * (1 + threshold/100), kept in integers
    if incoming_cost * 100 <= previous_cost * (100 + threshold):
        return None

    increase_pct = (incoming_cost - previous_cost) * 100 // previous_cost
    message = (
        f"{item.name}: cost rose {increase_pct}% "
        f"({previous_cost} -> {incoming_cost} cents), threshold {threshold}%"
    )
    alert = CostAlert(
        company_id=item.company_id,
        item_id=item.id,
        alert_type=ALERT_COST_SPIKE,
        previous_cost_cents=previous_cost,
        new_cost_cents=incoming_cost,
        price_cents=item.price_cents,
        message=message[:255],
        source_type=source_type,
        source_id=source_id,
    )
    db.session.add(alert)
    current_app.logger.warning("Cost spike alert: %s", message)
    return alert


def check_margin(
    item: Item,
    *,
    unit_cost_cents: int,
    unit_price_cents: int,
    source_type: str | None = None,
    source_id: int | None = None,
) -> CostAlert | None:
    """Record a LOW_MARGIN alert when a sale's margin falls below the tenant threshold."""
    settings = get_tenant_settings(item.company_id)
    if not settings.enable_cost_alerts or unit_price_cents <= 0:
        return None

    threshold = settings.low_margin_threshold_pct
    margin_x100 = (unit_price_cents - unit_cost_cents) * 100
    if margin_x100 >= threshold * unit_price_cents:
        return None

    margin_pct = margin_x100 // unit_price_cents
    message = (
        f"{item.name}: margin {margin_pct}% below {threshold}% "
        f"(price {unit_price_cents}, cost {unit_cost_cents} cents)"
    )
    alert = CostAlert(
        company_id=item.company_id,
        item_id=item.id,
        alert_type=ALERT_LOW_MARGIN,
        previous_cost_cents=None,
        new_cost_cents=unit_cost_cents,
        price_cents=unit_price_cents,
        message=message[:255],
        source_type=source_type,
        source_id=source_id,
    )
    db.session.add(alert)
    current_app.logger.warning("Low margin alert: %s", message)
    return alert


def list_cost_alerts(company_id: int, *, alert_type: str | None = None, limit: int = 100) -> list[CostAlert]:
    q = db.session.query(CostAlert).filter(CostAlert.company_id == company_id)
    if alert_type:
        q = q.filter(CostAlert.alert_type == alert_type.upper())
    return q.order_by(CostAlert.id.desc()).limit(max(1, min(limit, 500))).all()
