"""
Order Service: route sales and POS sales

WHY: A sale touches every shared aggregate at once: stock at the selling
location (valued at the tenant's method for COGS), the customer's debt,
and the journal. All of it happens in ONE transaction, so a failed order
leaves no trace anywhere.

DESIGN PRINCIPLES:
- Every line is validated and stock is checked for the whole order
  (aggregated per item) before the first row is written.
- Deduction goes through inventory_service.deduct_stock(), which records
  the valuation (unit cost, COGS) on each OrderLine.
- debt += total - paid (Balance Ledger).
- Journal: "order" template for route sales, "pos_sale" for POS.
- Cancellation gives each line's stock back to the lots it was drawn from
  (same cost, same queue position), reverses the debt delta and appends a
  reversal journal record. Nothing is edited in place.
- An order with a live (non-rejected) return cannot be cancelled; the
  return already moved part of its stock and debt.

LIFECYCLE:
CONFIRMED -> DELIVERED
CONFIRMED -> CANCELLED
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from ..errors import InvalidTransitionError, ValidationError
from ..extensions import db
from ..models import Customer, Employee, Item, Location, Order, OrderLine, Return
from ..models.inventory import MOVEMENT_SALE, MOVEMENT_SALE_CANCEL
from ..models.statuses import OrderChannel, OrderStatus, ReturnStatus, ensure_transition, parse_status
from ..time_utils import normalize_occurred_at, utcnow
from ..validation import require_lines, require_non_negative_int, require_positive_int
from . import cost_service, debt_service, inventory_service, journal_service, posting_rules
from .concurrency import run_with_retry
from .document_service import next_document_number
from .settings_service import get_valuation_method
from .tenant_service import require_company_record

SOURCE_ORDER = "ORDER"
SOURCE_ORDER_CANCEL = "ORDER_CANCEL"


# =============================================================================
# VALIDATION
# =============================================================================

def _parse_lines(lines) -> list[dict]:
    parsed = []
    for raw in require_lines(lines):
        quantity = require_positive_int("quantity", raw.get("quantity"))
        price = raw.get("unit_price_cents")
        parsed.append(
            {
                "item_id": require_positive_int("item_id", raw.get("item_id"), maximum=2**31),
                "quantity": quantity,
                "unit_price_cents": None if price is None else require_non_negative_int("unit_price_cents", price),
                "discount_cents": require_non_negative_int("discount_cents", raw.get("discount_cents", 0)),
            }
        )
    return parsed


def _entry_event_type(order: Order) -> str:
    if order.channel == OrderChannel.POS.value:
        return posting_rules.EVENT_POS_SALE
    return posting_rules.EVENT_ORDER


# =============================================================================
# ORDER CREATION
# =============================================================================

def create_order(
    *,
    company_id: int,
    customer_id: int,
    location_id: int,
    lines: list[dict],
    channel: str = OrderChannel.ORDER.value,
    driver_id: int | None = None,
    paid_cents: int = 0,
    discount_cents: int = 0,
    tax_cents: int = 0,
    order_date=None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Order:
    """
    Create a confirmed order and apply all of its effects atomically.

    Args:
        lines: [{"item_id", "quantity", "unit_price_cents"?, "discount_cents"?}]
            unit_price_cents defaults to the item's price.
        channel: ORDER (route sale) or POS.
        driver_id: defaults to the van's assigned driver when selling from a van.
        paid_cents: cash taken now; the remainder becomes customer debt.

    Raises:
        ValidationError: malformed payload, paid > total.
        TenantAccessError: any referenced record outside the company.
        InsufficientStockError: any line short of stock (nothing written).
        ConfigurationError: unknown valuation method / account.
    """
    parsed = _parse_lines(lines)
    channel_value = parse_status(OrderChannel, channel).value
    paid = require_non_negative_int("paid_cents", paid_cents)
    order_discount = require_non_negative_int("discount_cents", discount_cents)
    tax = require_non_negative_int("tax_cents", tax_cents)
    order_dt = normalize_occurred_at(order_date)

    def _op() -> Order:
        customer = require_company_record(Customer, customer_id, company_id)
        location = require_company_record(Location, location_id, company_id)
        driver = None
        if driver_id is not None:
            driver = require_company_record(Employee, driver_id, company_id, label="driver")
        elif location.driver_id is not None:
            driver = db.session.get(Employee, location.driver_id)

        # Price every line and check stock for the whole order up front
        priced = []
        wanted: dict[int, int] = defaultdict(int)
        for line in parsed:
            item = require_company_record(Item, line["item_id"], company_id)
            unit_price = line["unit_price_cents"]
            if unit_price is None:
                if item.price_cents is None:
                    raise ValidationError(f"item {item.id} has no price; unit_price_cents is required")
                unit_price = item.price_cents
            gross = unit_price * line["quantity"]
            if line["discount_cents"] > gross:
                raise ValidationError(f"line discount exceeds line amount for item {item.id}")
            priced.append((item, line, unit_price, gross - line["discount_cents"]))
            wanted[item.id] += line["quantity"]

        for item_id, quantity in wanted.items():
            inventory_service.check_available(
                company_id=company_id, item_id=item_id, location_id=location.id, quantity=quantity
            )

        subtotal = sum(p[3] for p in priced)
        if order_discount > subtotal:
            raise ValidationError("discount_cents exceeds order subtotal")
        total = subtotal - order_discount + tax
        if paid > total:
            raise ValidationError("paid_cents cannot exceed the order total")

        document_type = "POS" if channel_value == OrderChannel.POS.value else "ORDER"
        order = Order(
            company_id=company_id,
            order_number=next_document_number(company_id=company_id, document_type=document_type),
            channel=channel_value,
            status=OrderStatus.CONFIRMED.value,
            customer_id=customer.id,
            driver_id=driver.id if driver else None,
            location_id=location.id,
            subtotal_cents=subtotal,
            discount_cents=order_discount,
            tax_cents=tax,
            total_cents=total,
            paid_cents=paid,
            cost_cents=0,
            order_date=order_dt,
            notes=notes,
            created_by=actor_id,
        )
        db.session.add(order)
        db.session.flush()

        method = get_valuation_method(company_id)
        cost_total = 0
        for item, line, unit_price, line_total in priced:
            valuation = inventory_service.deduct_stock(
                company_id=company_id,
                item_id=item.id,
                location_id=location.id,
                quantity=line["quantity"],
                movement_type=MOVEMENT_SALE,
                source_type=SOURCE_ORDER,
                source_id=order.id,
                actor_id=actor_id,
                occurred_at=order_dt,
                method=method,
            )
            db.session.add(
                OrderLine(
                    order_id=order.id,
                    item_id=item.id,
                    quantity=line["quantity"],
                    unit_price_cents=unit_price,
                    discount_cents=line["discount_cents"],
                    line_total_cents=line_total,
                    unit_cost_cents=valuation.unit_cost_cents,
                    cogs_cents=valuation.total_cost_cents,
                    movement_id=valuation.movement_id,
                )
            )
            cost_service.check_margin(
                item,
                unit_cost_cents=valuation.unit_cost_cents,
                unit_price_cents=unit_price,
                source_type=SOURCE_ORDER,
                source_id=order.id,
            )
            cost_total += valuation.total_cost_cents

        order.cost_cents = cost_total

        debt_service.adjust_debt(
            company_id=company_id,
            customer_id=customer.id,
            delta_cents=total - paid,
            source_type=SOURCE_ORDER,
            source_id=order.id,
            actor_id=actor_id,
            occurred_at=order_dt,
        )

        post = (
            posting_rules.post_pos_sale_entry
            if channel_value == OrderChannel.POS.value
            else posting_rules.post_order_entry
        )
        post(
            company_id=company_id,
            order_id=order.id,
            total_cents=total,
            paid_cents=paid,
            cost_cents=cost_total,
            posted_at=order_dt,
            actor_id=actor_id,
            description=f"{order.order_number} {customer.name}",
        )

        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# STATUS CHANGES
# =============================================================================

def update_order_status(*, company_id: int, order_id: int, status: str, actor_id: int | None = None) -> Order:
    """CONFIRMED -> DELIVERED. Cancellation goes through cancel_order()."""
    target = parse_status(OrderStatus, status)
    if target == OrderStatus.CANCELLED:
        return cancel_order(company_id=company_id, order_id=order_id, actor_id=actor_id)

    def _op() -> Order:
        order = require_company_record(Order, order_id, company_id)
        order.status = ensure_transition(OrderStatus, order.status, target).value
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(
    *,
    company_id: int,
    order_id: int,
    actor_id: int | None = None,
    cancelled_at=None,
) -> Order:
    """
    Cancel a CONFIRMED order.

    Each line's stock goes back into the lots it was drawn from, the debt
    delta is reversed and the sale's journal record gets a reversal.

    Raises:
        InvalidTransitionError: not CONFIRMED, or a non-rejected return
            references the order.
    """
    def _op() -> Order:
        order = require_company_record(Order, order_id, company_id)
        target = ensure_transition(OrderStatus, order.status, OrderStatus.CANCELLED)
        open_returns = (
            db.session.query(Return.return_number)
            .filter(Return.order_id == order.id, Return.status != ReturnStatus.REJECTED.value)
            .all()
        )
        if open_returns:
            numbers = ", ".join(r.return_number for r in open_returns)
            raise InvalidTransitionError(
                f"order {order.order_number} has returns ({numbers}); it cannot be cancelled"
            )
        when = normalize_occurred_at(cancelled_at)

        for line in order.lines:
            inventory_service.restore_stock(
                company_id=company_id,
                movement_id=line.movement_id,
                movement_type=MOVEMENT_SALE_CANCEL,
                source_type=SOURCE_ORDER_CANCEL,
                source_id=order.id,
                actor_id=actor_id,
                occurred_at=when,
            )

        debt_service.adjust_debt(
            company_id=company_id,
            customer_id=order.customer_id,
            delta_cents=-(order.total_cents - order.paid_cents),
            source_type=SOURCE_ORDER_CANCEL,
            source_id=order.id,
            actor_id=actor_id,
            occurred_at=when,
        )

        journal_service.reverse_event(
            company_id=company_id,
            event_type=_entry_event_type(order),
            event_id=order.id,
            posted_at=when,
            description=f"Cancellation of {order.order_number}",
            actor_id=actor_id,
        )

        order.status = target.value
        order.cancelled_at = utcnow()
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(company_id: int, order_id: int) -> Order:
    return require_company_record(Order, order_id, company_id)


def list_orders(
    company_id: int,
    *,
    status: str | None = None,
    driver_id: int | None = None,
    customer_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[Order]:
    q = db.session.query(Order).filter(Order.company_id == company_id)
    if status:
        q = q.filter(Order.status == parse_status(OrderStatus, status).value)
    if driver_id is not None:
        q = q.filter(Order.driver_id == driver_id)
    if customer_id is not None:
        q = q.filter(Order.customer_id == customer_id)
    if start is not None:
        q = q.filter(Order.order_date >= start)
    if end is not None:
        q = q.filter(Order.order_date < end)
    return q.order_by(Order.order_date.desc(), Order.id.desc()).limit(max(1, min(limit, 500))).all()
