"""
Return Service: customer returns

WHY: Returned goods go back into stock and, usually, off the customer's
debt. The critical part is COGS reversal: goods are restocked at the cost
they LEFT at (the original order line's unit cost), never at today's
weighted average, or margin history would drift.

DESIGN PRINCIPLES:
- Lines may reference an original order line; those take its unit price
  and unit cost, and cannot return more than was sold minus what earlier
  non-rejected returns already claimed.
- Free lines (no order line) need an explicit price and are restocked at
  the item's current fallback cost.
- Approval is a separate decision from processing; only processing
  touches stock, debt and the journal.
- Processed returns are immutable.

LIFECYCLE:
1. create_return (PENDING)
2. approve_return / reject_return
3. process_return (APPROVED -> PROCESSED)
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Customer, Item, Location, Order, OrderLine, Return, ReturnLine
from ..models.inventory import MOVEMENT_RETURN
from ..models.statuses import OrderStatus, ReturnStatus, ensure_transition, parse_status
from ..time_utils import normalize_occurred_at, utcnow
from ..validation import require_lines, require_non_negative_int, require_positive_int
from . import debt_service, inventory_service, posting_rules
from .concurrency import run_with_retry
from .document_service import next_document_number
from .tenant_service import require_company_record
from .valuation_service import fallback_unit_cost

SOURCE_RETURN = "RETURN"


class ReturnError(Exception):
    """Raised for return operation errors."""
    pass


# =============================================================================
# RETURN CREATION
# =============================================================================

def _returned_quantities(order_line_ids: list[int]) -> dict[int, int]:
    """Quantity already claimed per order line by returns that were not rejected."""
    if not order_line_ids:
        return {}
    rows = (
        db.session.query(ReturnLine.order_line_id, func.sum(ReturnLine.quantity))
        .join(Return, Return.id == ReturnLine.return_id)
        .filter(
            ReturnLine.order_line_id.in_(order_line_ids),
            Return.status != ReturnStatus.REJECTED.value,
        )
        .group_by(ReturnLine.order_line_id)
        .all()
    )
    return {line_id: int(qty or 0) for line_id, qty in rows}


def create_return(
    *,
    company_id: int,
    customer_id: int,
    lines: list[dict],
    order_id: int | None = None,
    reason: str | None = None,
    return_date=None,
    actor_id: int | None = None,
) -> Return:
    """
    Create a return document (status: PENDING).

    Args:
        lines: [{"order_line_id"?, "item_id"?, "quantity", "unit_price_cents"?}]
            With order_line_id the item, price and cost come from the order.
        order_id: required when any line references an order line.

    Returns:
        Return document with PENDING status

    Raises:
        ReturnError: order cancelled, line not on the order, over-return.
        ValidationError: malformed lines.
    """
    raw_lines = require_lines(lines)
    when = normalize_occurred_at(return_date)

    def _op() -> Return:
        customer = require_company_record(Customer, customer_id, company_id)
        order = None
        if order_id is not None:
            order = require_company_record(Order, order_id, company_id)
            if order.customer_id != customer.id:
                raise ReturnError(f"order {order.order_number} belongs to another customer")
            if order.status == OrderStatus.CANCELLED.value:
                raise ReturnError(f"order {order.order_number} is cancelled")

        prepared = []
        claimed: dict[int, int] = defaultdict(int)
        for raw in raw_lines:
            quantity = require_positive_int("quantity", raw.get("quantity"))
            order_line_id = raw.get("order_line_id")

            if order_line_id is not None:
                if order is None:
                    raise ValidationError("order_id is required for lines referencing an order line")
                order_line = db.session.get(OrderLine, require_positive_int("order_line_id", order_line_id, maximum=2**31))
                if order_line is None or order_line.order_id != order.id:
                    raise ReturnError(f"order line {order_line_id} is not on order {order.order_number}")
                claimed[order_line.id] += quantity
                price = raw.get("unit_price_cents")
                unit_price = (
                    require_non_negative_int("unit_price_cents", price)
                    if price is not None
                    else order_line.line_total_cents // order_line.quantity
                )
                prepared.append((order_line.item_id, order_line.id, quantity, unit_price, order_line.unit_cost_cents))
            else:
                item = require_company_record(Item, raw.get("item_id"), company_id)
                if raw.get("unit_price_cents") is None:
                    raise ValidationError("unit_price_cents is required for lines without an order line")
                unit_price = require_non_negative_int("unit_price_cents", raw.get("unit_price_cents"))
                prepared.append((item.id, None, quantity, unit_price, fallback_unit_cost(item)))

        already = _returned_quantities(list(claimed))
        for order_line_id, quantity in claimed.items():
            sold = db.session.get(OrderLine, order_line_id).quantity
            if already.get(order_line_id, 0) + quantity > sold:
                raise ReturnError(
                    f"order line {order_line_id}: returning {quantity} exceeds "
                    f"{sold - already.get(order_line_id, 0)} still returnable"
                )

        return_doc = Return(
            company_id=company_id,
            return_number=next_document_number(company_id=company_id, document_type="RETURN"),
            customer_id=customer.id,
            order_id=order.id if order else None,
            status=ReturnStatus.PENDING.value,
            reason=reason,
            total_cents=sum(qty * price for _i, _ol, qty, price, _c in prepared),
            cost_cents=sum(qty * cost for _i, _ol, qty, _p, cost in prepared),
            return_date=when,
            created_by=actor_id,
        )
        db.session.add(return_doc)
        db.session.flush()

        for item_id, order_line_id, quantity, unit_price, unit_cost in prepared:
            db.session.add(
                ReturnLine(
                    return_id=return_doc.id,
                    item_id=item_id,
                    order_line_id=order_line_id,
                    quantity=quantity,
                    unit_price_cents=unit_price,
                    line_total_cents=quantity * unit_price,
                    unit_cost_cents=unit_cost,
                )
            )

        db.session.commit()
        return return_doc

    return run_with_retry(_op)


# =============================================================================
# APPROVAL
# =============================================================================

def approve_return(*, company_id: int, return_id: int, actor_id: int | None = None) -> Return:
    def _op() -> Return:
        return_doc = require_company_record(Return, return_id, company_id, label="return")
        return_doc.status = ensure_transition(ReturnStatus, return_doc.status, ReturnStatus.APPROVED).value
        return_doc.decided_by = actor_id
        return_doc.decided_at = utcnow()
        db.session.commit()
        return return_doc

    return run_with_retry(_op)


def reject_return(
    *,
    company_id: int,
    return_id: int,
    rejection_reason: str | None = None,
    actor_id: int | None = None,
) -> Return:
    def _op() -> Return:
        return_doc = require_company_record(Return, return_id, company_id, label="return")
        return_doc.status = ensure_transition(ReturnStatus, return_doc.status, ReturnStatus.REJECTED).value
        return_doc.decided_by = actor_id
        return_doc.decided_at = utcnow()
        return_doc.rejection_reason = rejection_reason
        db.session.commit()
        return return_doc

    return run_with_retry(_op)


# =============================================================================
# PROCESSING
# =============================================================================

def process_return(
    *,
    company_id: int,
    return_id: int,
    restock_location_id: int | None = None,
    issue_credit: bool = True,
    actor_id: int | None = None,
) -> Return:
    """
    Restock, credit and post an APPROVED return.

    WHY: This is the point where the return becomes financial. Stock comes
    back at each line's recorded unit cost; with issue_credit the total
    comes off the customer's debt, otherwise it is owed to the customer
    as a credit.

    Args:
        restock_location_id: defaults to the original order's location.

    Raises:
        InvalidTransitionError: not APPROVED.
        ReturnError: the original order has been cancelled since.
        ValidationError: no restock location can be determined.
    """
    def _op() -> Return:
        return_doc = require_company_record(Return, return_id, company_id, label="return")
        target = ensure_transition(ReturnStatus, return_doc.status, ReturnStatus.PROCESSED)

        order = db.session.get(Order, return_doc.order_id) if return_doc.order_id is not None else None
        if order is not None and order.status == OrderStatus.CANCELLED.value:
            raise ReturnError(f"order {order.order_number} was cancelled; reject this return instead")

        location_id = restock_location_id
        if location_id is None and order is not None:
            location_id = order.location_id
        if location_id is None:
            raise ValidationError("restock_location_id is required")
        location = require_company_record(Location, location_id, company_id)
        when = utcnow()

        for line in return_doc.lines:
            inventory_service.receive_stock(
                company_id=company_id,
                item_id=line.item_id,
                location_id=location.id,
                quantity=line.quantity,
                unit_cost_cents=line.unit_cost_cents,
                movement_type=MOVEMENT_RETURN,
                source_type=SOURCE_RETURN,
                source_id=return_doc.id,
                actor_id=actor_id,
                occurred_at=when,
            )

        if issue_credit:
            debt_service.adjust_debt(
                company_id=company_id,
                customer_id=return_doc.customer_id,
                delta_cents=-return_doc.total_cents,
                source_type=SOURCE_RETURN,
                source_id=return_doc.id,
                actor_id=actor_id,
                occurred_at=when,
            )

        posting_rules.post_return_entry(
            company_id=company_id,
            return_id=return_doc.id,
            total_cents=return_doc.total_cents,
            cost_cents=return_doc.cost_cents,
            issue_credit=bool(issue_credit),
            posted_at=when,
            actor_id=actor_id,
            description=return_doc.return_number,
        )

        return_doc.status = target.value
        return_doc.issue_credit = bool(issue_credit)
        return_doc.restock_location_id = location.id
        return_doc.processed_by = actor_id
        return_doc.processed_at = when
        db.session.commit()
        return return_doc

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_return(company_id: int, return_id: int) -> Return:
    return require_company_record(Return, return_id, company_id, label="return")


def list_returns(company_id: int, *, status: str | None = None, customer_id: int | None = None) -> list[Return]:
    q = db.session.query(Return).filter(Return.company_id == company_id)
    if status:
        q = q.filter(Return.status == parse_status(ReturnStatus, status).value)
    if customer_id is not None:
        q = q.filter(Return.customer_id == customer_id)
    return q.order_by(Return.return_date.desc(), Return.id.desc()).all()
