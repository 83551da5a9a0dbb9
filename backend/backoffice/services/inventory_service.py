# Overview: Inventory ledger; stock levels, movements, lots, receipts, deductions and transfers.

"""
Inventory Ledger Invariants (authoritative)

Stock model:
- StockLevel holds quantity per (item, location) and is written ONLY here.
- Every change appends an immutable StockMovement in the same transaction,
  so SUM(StockMovement.delta) == StockLevel.quantity for every pair
  (checked by audit_stock_levels()).
- quantity never goes negative (DB CHECK constraint as a backstop).

Deductions:
- deduct_stock() reads quantity first and raises InsufficientStockError
  before touching anything.
- The write itself is a conditional atomic decrement:
      UPDATE stock_levels SET quantity = quantity - :q
      WHERE id = :id AND quantity >= :q
  verified by rowcount. Rowcount 0 after a passing read means another
  operation won the race: ConcurrencyConflictError, and run_with_retry()
  replays the whole operation once with a fresh read.

Receipts:
- receive_stock() folds the receipt into the weighted average (cost_service)
  before incrementing stock, then opens a CostLot.
- transfer_stock() moves lots at their cost and does NOT touch the
  weighted average; the item's total quantity is unchanged.
- restore_stock() undoes a deduction (cancelled sale) by giving the quantity
  back to the very lots it drew from.

Transactions:
- The stock functions above only flush. The business operation that
  calls them commits (or rolls back) everything at once.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflictError, InsufficientStockError, ValidationError
from ..extensions import db
from ..models import CostLot, Item, Location, LotConsumption, StockLevel, StockMovement
from ..models.inventory import (
    MOVEMENT_OPENING,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
)
from ..models.tenancy import LOCATION_VAN
from ..time_utils import normalize_occurred_at, utcnow
from ..validation import require_non_negative_int, require_positive_int
from . import cost_service, valuation_service
from .concurrency import lock_for_update, run_with_retry
from .settings_service import get_valuation_method, normalize_valuation_method
from .tenant_service import require_company_record
from .valuation_service import ValuationResult


def _require_quantity(quantity) -> int:
    return require_positive_int("quantity", quantity)


def _require_cost(unit_cost_cents) -> int:
    return require_non_negative_int("unit_cost_cents", unit_cost_cents)


def _get_level(item_id: int, location_id: int) -> StockLevel | None:
    return (
        db.session.query(StockLevel)
        .filter_by(item_id=item_id, location_id=location_id)
        .populate_existing()
        .first()
    )


def _increment_level(company_id: int, item_id: int, location_id: int, quantity: int) -> None:
    db.session.flush()
    stmt = (
        update(StockLevel.__table__)
        .where(
            StockLevel.__table__.c.item_id == item_id,
            StockLevel.__table__.c.location_id == location_id,
        )
        .values(
            quantity=StockLevel.__table__.c.quantity + quantity,
            updated_at=utcnow(),
        )
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        level = db.session.query(StockLevel).filter_by(item_id=item_id, location_id=location_id).first()
        if level is not None:
            db.session.expire(level)
        return

    db.session.add(
        StockLevel(company_id=company_id, item_id=item_id, location_id=location_id, quantity=quantity)
    )
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflictError(
            f"stock level for item {item_id} at location {location_id} created concurrently"
        ) from exc


def _decrement_level(level: StockLevel, quantity: int) -> None:
    """Conditional atomic decrement; raises ConcurrencyConflictError on a lost race."""
    db.session.flush()
    table = StockLevel.__table__
    stmt = (
        update(table)
        .where(table.c.id == level.id, table.c.quantity >= quantity)
        .values(quantity=table.c.quantity - quantity, updated_at=utcnow())
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise ConcurrencyConflictError(
            f"stock for item {level.item_id} at location {level.location_id} changed concurrently"
        )
    db.session.expire(level)


def get_quantity_on_hand(company_id: int, item_id: int, location_id: int | None = None) -> int:
    """Quantity at one location, or across all locations when location_id is None."""
    q = db.session.query(func.coalesce(func.sum(StockLevel.quantity), 0)).filter(
        StockLevel.company_id == company_id,
        StockLevel.item_id == item_id,
    )
    if location_id is not None:
        q = q.filter(StockLevel.location_id == location_id)
    return int(q.scalar() or 0)


def check_available(*, company_id: int, item_id: int, location_id: int, quantity: int) -> None:
    """Read-only sufficiency check; raises InsufficientStockError."""
    qty = _require_quantity(quantity)
    available = get_quantity_on_hand(company_id, item_id, location_id)
    if available < qty:
        raise InsufficientStockError(
            item_id=item_id, location_id=location_id, requested=qty, available=available
        )


def receive_stock(
    *,
    company_id: int,
    item_id: int,
    location_id: int,
    quantity: int,
    unit_cost_cents: int,
    movement_type: str,
    source_type: str | None = None,
    source_id: int | None = None,
    actor_id: int | None = None,
    occurred_at=None,
) -> CostLot:
    """Receive stock into a location at a unit cost and open a cost lot."""
    qty = _require_quantity(quantity)
    cost = _require_cost(unit_cost_cents)
    item = require_company_record(Item, item_id, company_id)
    require_company_record(Location, location_id, company_id)
    occurred_dt = normalize_occurred_at(occurred_at)

    cost_service.update_weighted_average(item, qty, cost, source_type=source_type, source_id=source_id)

    _increment_level(company_id, item.id, location_id, qty)

    movement = StockMovement(
        company_id=company_id,
        item_id=item.id,
        location_id=location_id,
        movement_type=movement_type,
        delta=qty,
        unit_cost_cents=cost,
        total_cost_cents=qty * cost,
        source_type=source_type,
        source_id=source_id,
        actor_id=actor_id,
        occurred_at=occurred_dt,
    )
    lot = CostLot(
        company_id=company_id,
        item_id=item.id,
        location_id=location_id,
        quantity_received=qty,
        quantity_remaining=qty,
        unit_cost_cents=cost,
        received_at=occurred_dt,
        source_type=source_type or movement_type,
        source_id=source_id,
    )
    db.session.add(movement)
    db.session.add(lot)
    db.session.flush()
    return lot


def deduct_stock(
    *,
    company_id: int,
    item_id: int,
    location_id: int,
    quantity: int,
    movement_type: str,
    source_type: str | None = None,
    source_id: int | None = None,
    actor_id: int | None = None,
    occurred_at=None,
    method: str | None = None,
    from_lot_id: int | None = None,
) -> ValuationResult:
    """
    Deduct stock and return its valuation (COGS for sales).

    from_lot_id draws from that one lot at its cost instead of following
    the valuation method.

    Raises InsufficientStockError before any mutation when stock is short,
    ConfigurationError for an unknown method, ConcurrencyConflictError when
    the conditional decrement loses a race.
    """
    qty = _require_quantity(quantity)
    item = require_company_record(Item, item_id, company_id)
    require_company_record(Location, location_id, company_id)
    method = normalize_valuation_method(method) if method else get_valuation_method(company_id)
    occurred_dt = normalize_occurred_at(occurred_at)

    level = _get_level(item.id, location_id)
    available = level.quantity if level is not None else 0
    if available < qty:
        raise InsufficientStockError(
            item_id=item.id, location_id=location_id, requested=qty, available=available
        )

    if from_lot_id is not None:
        result = valuation_service.consume_lot(item, location_id, qty, from_lot_id)
    else:
        result = valuation_service.consume(item, location_id, qty, method)
    _decrement_level(level, qty)

    movement = StockMovement(
        company_id=company_id,
        item_id=item.id,
        location_id=location_id,
        movement_type=movement_type,
        delta=-qty,
        unit_cost_cents=result.unit_cost_cents,
        total_cost_cents=result.total_cost_cents,
        source_type=source_type,
        source_id=source_id,
        actor_id=actor_id,
        occurred_at=occurred_dt,
    )
    db.session.add(movement)
    db.session.flush()

    for draw in result.consumptions:
        db.session.add(
            LotConsumption(
                lot_id=draw.lot_id,
                movement_id=movement.id,
                quantity=draw.quantity,
                unit_cost_cents=draw.unit_cost_cents,
            )
        )
    db.session.flush()

    result.movement_id = movement.id
    return result


def transfer_stock(
    *,
    company_id: int,
    item_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: int,
    source_type: str = "TRANSFER",
    source_id: int | None = None,
    actor_id: int | None = None,
    occurred_at=None,
) -> ValuationResult:
    """
    Move stock between two locations of the same company at lot cost.

    Lots are drawn oldest first and re-opened at the destination with their
    original cost and received_at. The weighted average is not touched.
    """
    if from_location_id == to_location_id:
        raise ValidationError("source and destination locations must differ")
    require_company_record(Location, to_location_id, company_id)
    occurred_dt = normalize_occurred_at(occurred_at)

    result = deduct_stock(
        company_id=company_id,
        item_id=item_id,
        location_id=from_location_id,
        quantity=quantity,
        movement_type=MOVEMENT_TRANSFER_OUT,
        source_type=source_type,
        source_id=source_id,
        actor_id=actor_id,
        occurred_at=occurred_dt,
        method="fifo",
    )

    _increment_level(company_id, item_id, to_location_id, result.quantity)
    db.session.add(
        StockMovement(
            company_id=company_id,
            item_id=item_id,
            location_id=to_location_id,
            movement_type=MOVEMENT_TRANSFER_IN,
            delta=result.quantity,
            unit_cost_cents=result.unit_cost_cents,
            total_cost_cents=result.total_cost_cents,
            source_type=source_type,
            source_id=source_id,
            actor_id=actor_id,
            occurred_at=occurred_dt,
        )
    )

    for draw in result.consumptions:
        origin = db.session.get(CostLot, draw.lot_id)
        db.session.add(
            CostLot(
                company_id=company_id,
                item_id=item_id,
                location_id=to_location_id,
                quantity_received=draw.quantity,
                quantity_remaining=draw.quantity,
                unit_cost_cents=draw.unit_cost_cents,
                received_at=origin.received_at,
                source_type=source_type,
                source_id=source_id,
            )
        )
    db.session.flush()
    return result


def restore_stock(
    *,
    company_id: int,
    movement_id: int,
    movement_type: str,
    source_type: str | None = None,
    source_id: int | None = None,
    actor_id: int | None = None,
    occurred_at=None,
) -> StockMovement:
    """
    Put back what an outbound movement took, into the lots it drew from.

    The lots keep their received_at, so restored stock keeps its place in
    the FIFO/LIFO queue. Quantity the deduction took beyond every lot comes
    back uncovered. The weighted average takes the stock back at the
    deduction's unit cost with no cost-spike check.
    """
    original = db.session.get(StockMovement, movement_id)
    if original is None or original.company_id != company_id or original.delta >= 0:
        raise ValidationError(f"movement {movement_id} is not a deduction")
    qty = -original.delta
    item = require_company_record(Item, original.item_id, company_id)
    unit_cost = original.unit_cost_cents or 0

    cost_service.update_weighted_average(
        item, qty, unit_cost, source_type=source_type, source_id=source_id, check_spike=False
    )

    draws = db.session.query(LotConsumption).filter_by(movement_id=original.id).all()
    if draws:
        lots = {
            lot.id: lot
            for lot in lock_for_update(
                db.session.query(CostLot).filter(CostLot.id.in_([d.lot_id for d in draws]))
            ).all()
        }
        for draw in draws:
            lots[draw.lot_id].quantity_remaining += draw.quantity

    _increment_level(company_id, item.id, original.location_id, qty)

    movement = StockMovement(
        company_id=company_id,
        item_id=item.id,
        location_id=original.location_id,
        movement_type=movement_type,
        delta=qty,
        unit_cost_cents=unit_cost,
        total_cost_cents=original.total_cost_cents if original.total_cost_cents is not None else qty * unit_cost,
        source_type=source_type,
        source_id=source_id,
        actor_id=actor_id,
        occurred_at=normalize_occurred_at(occurred_at),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


# ===== Business operations (own their transaction) =====

def record_opening_stock(
    *,
    company_id: int,
    item_id: int,
    location_id: int,
    quantity: int,
    unit_cost_cents: int | None = None,
    actor_id: int | None = None,
    occurred_at=None,
) -> StockMovement:
    """
    Opening balance for an item at a location.

    With a cost it behaves like any receipt (lot + weighted average).
    Without one the stock is uncovered: no lot, and it enters the weighted
    average at the item's standard cost.
    """
    def _op() -> StockMovement:
        if unit_cost_cents is not None:
            receive_stock(
                company_id=company_id,
                item_id=item_id,
                location_id=location_id,
                quantity=quantity,
                unit_cost_cents=unit_cost_cents,
                movement_type=MOVEMENT_OPENING,
                source_type=MOVEMENT_OPENING,
                actor_id=actor_id,
                occurred_at=occurred_at,
            )
        else:
            qty = _require_quantity(quantity)
            item = require_company_record(Item, item_id, company_id)
            require_company_record(Location, location_id, company_id)
            cost_service.update_weighted_average(
                item, qty, item.standard_cost_cents or 0, source_type=MOVEMENT_OPENING, check_spike=False
            )
            _increment_level(company_id, item_id, location_id, qty)
            db.session.add(
                StockMovement(
                    company_id=company_id,
                    item_id=item_id,
                    location_id=location_id,
                    movement_type=MOVEMENT_OPENING,
                    delta=qty,
                    source_type=MOVEMENT_OPENING,
                    actor_id=actor_id,
                    occurred_at=normalize_occurred_at(occurred_at),
                )
            )
        db.session.flush()
        movement = (
            db.session.query(StockMovement)
            .filter_by(company_id=company_id, item_id=item_id, location_id=location_id)
            .order_by(StockMovement.id.desc())
            .first()
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def load_van(
    *,
    company_id: int,
    van_id: int,
    warehouse_id: int,
    lines: list[dict],
    actor_id: int | None = None,
    occurred_at=None,
) -> list[dict]:
    """
    Load a van from a warehouse: one transfer per line, all or nothing.

    lines: [{"item_id": int, "quantity": int}, ...]
    """
    if not lines:
        raise ValidationError("at least one line is required")

    def _op() -> list[dict]:
        van = require_company_record(Location, van_id, company_id, label="van")
        if van.kind != LOCATION_VAN:
            raise ValidationError("destination must be a van")
        require_company_record(Location, warehouse_id, company_id, label="warehouse")

        moved = []
        for line in lines:
            result = transfer_stock(
                company_id=company_id,
                item_id=line.get("item_id"),
                from_location_id=warehouse_id,
                to_location_id=van.id,
                quantity=line.get("quantity"),
                source_type="VAN_LOAD",
                source_id=van.id,
                actor_id=actor_id,
                occurred_at=occurred_at,
            )
            moved.append({"item_id": line.get("item_id"), **result.to_dict()})

        db.session.commit()
        return moved

    return run_with_retry(_op)


# ===== Read side =====

def get_stock_summary(company_id: int, location_id: int | None = None) -> list[dict]:
    """Quantity and weighted-average value per item (optionally for one location)."""
    q = (
        db.session.query(
            Item.id,
            Item.sku,
            Item.name,
            Item.kind,
            Item.unit_cost_cents,
            func.coalesce(func.sum(StockLevel.quantity), 0).label("quantity"),
        )
        .outerjoin(StockLevel, StockLevel.item_id == Item.id)
        .filter(Item.company_id == company_id)
    )
    if location_id is not None:
        q = q.filter(StockLevel.location_id == location_id)

    rows = q.group_by(Item.id, Item.sku, Item.name, Item.kind, Item.unit_cost_cents).order_by(Item.sku).all()
    return [
        {
            "item_id": r.id,
            "sku": r.sku,
            "name": r.name,
            "kind": r.kind,
            "quantity": int(r.quantity or 0),
            "unit_cost_cents": r.unit_cost_cents,
            "value_cents": int(r.quantity or 0) * (r.unit_cost_cents or 0),
        }
        for r in rows
    ]


def list_movements(
    company_id: int,
    *,
    item_id: int | None = None,
    location_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    q = db.session.query(StockMovement).filter(StockMovement.company_id == company_id)
    if item_id is not None:
        q = q.filter(StockMovement.item_id == item_id)
    if location_id is not None:
        q = q.filter(StockMovement.location_id == location_id)
    if start is not None:
        q = q.filter(StockMovement.occurred_at >= start)
    if end is not None:
        q = q.filter(StockMovement.occurred_at <= end)
    limit = max(1, min(int(limit), 1000))
    return q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()


def list_open_lots(company_id: int, item_id: int, location_id: int | None = None) -> list[CostLot]:
    q = db.session.query(CostLot).filter(
        CostLot.company_id == company_id,
        CostLot.item_id == item_id,
        CostLot.quantity_remaining > 0,
    )
    if location_id is not None:
        q = q.filter(CostLot.location_id == location_id)
    return q.order_by(CostLot.received_at.asc(), CostLot.id.asc()).all()


def audit_stock_levels(company_id: int) -> list[dict]:
    """
    Rebuild every (item, location) from the movement log.

    Returns one row per mismatch: stored quantity vs SUM(delta), and open
    lot quantity exceeding stock. Empty list means the ledger is consistent.
    """
    movement_sums = dict(
        ((r.item_id, r.location_id), int(r.total or 0))
        for r in db.session.query(
            StockMovement.item_id,
            StockMovement.location_id,
            func.sum(StockMovement.delta).label("total"),
        )
        .filter(StockMovement.company_id == company_id)
        .group_by(StockMovement.item_id, StockMovement.location_id)
        .all()
    )
    lot_sums = dict(
        ((r.item_id, r.location_id), int(r.total or 0))
        for r in db.session.query(
            CostLot.item_id,
            CostLot.location_id,
            func.sum(CostLot.quantity_remaining).label("total"),
        )
        .filter(CostLot.company_id == company_id)
        .group_by(CostLot.item_id, CostLot.location_id)
        .all()
    )
    levels = {
        (lvl.item_id, lvl.location_id): lvl.quantity
        for lvl in db.session.query(StockLevel).filter(StockLevel.company_id == company_id).all()
    }

    problems = []
    for key in sorted(set(movement_sums) | set(levels)):
        stored = levels.get(key, 0)
        derived = movement_sums.get(key, 0)
        lots = lot_sums.get(key, 0)
        if stored != derived or lots > stored or stored < 0:
            problems.append(
                {
                    "item_id": key[0],
                    "location_id": key[1],
                    "stored_quantity": stored,
                    "movement_quantity": derived,
                    "open_lot_quantity": lots,
                }
            )
    return problems
