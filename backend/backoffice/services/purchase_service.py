"""
Purchase Service: raw material purchases from suppliers

WHY: A purchase is the only way raw material cost enters the system. Each
line is received at its unit price, which opens a cost lot and moves the
item's weighted average. The unpaid part is a supplier liability.

DESIGN PRINCIPLES:
- Only RAW_MATERIAL items can be purchased.
- Every line opens its own lot (PurchaseLine.lot_id) so the purchase can be
  taken back out exactly.
- paid_cents at creation is cash out in the same journal record; later
  payments are PurchasePayment rows with their own supplier_payment record.
- Deletion is refused when any received quantity has already been consumed
  (sold, transferred, used in production): the lot must still be whole.

LIFECYCLE:
RECEIVED -> DELETED
"""

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Item, Location, PurchaseLine, PurchasePayment, RawMaterialPurchase
from ..models.inventory import ITEM_RAW_MATERIAL, MOVEMENT_PURCHASE, MOVEMENT_PURCHASE_REVERSAL
from ..models.statuses import PurchaseStatus, ensure_transition, parse_status
from ..time_utils import normalize_occurred_at, utcnow
from ..validation import MAX_AMOUNT_CENTS, require_lines, require_non_negative_int, require_positive_int
from . import cost_service, inventory_service, journal_service, posting_rules
from .concurrency import run_with_retry
from .document_service import next_document_number
from .tenant_service import require_company_record

SOURCE_PURCHASE = "PURCHASE"


class PurchaseError(Exception):
    """Raised for purchase rule violations."""
    pass


# =============================================================================
# PURCHASE CREATION
# =============================================================================

def create_purchase(
    *,
    company_id: int,
    supplier_name: str,
    location_id: int,
    lines: list[dict],
    paid_cents: int = 0,
    purchase_date=None,
    actor_id: int | None = None,
) -> RawMaterialPurchase:
    """
    Receive a supplier delivery.

    Args:
        lines: [{"item_id", "quantity", "unit_price_cents"}]
        paid_cents: paid on delivery; the rest goes to Accounts Payable.

    Raises:
        ValidationError: malformed lines, paid > total.
        PurchaseError: a line item is not a raw material.
    """
    supplier = (supplier_name or "").strip()
    if not supplier:
        raise ValidationError("supplier_name is required")
    parsed = [
        (
            require_positive_int("item_id", raw.get("item_id"), maximum=2**31),
            require_positive_int("quantity", raw.get("quantity")),
            require_non_negative_int("unit_price_cents", raw.get("unit_price_cents")),
        )
        for raw in require_lines(lines)
    ]
    total = sum(qty * price for _item, qty, price in parsed)
    paid = require_non_negative_int("paid_cents", paid_cents)
    if total > MAX_AMOUNT_CENTS:
        raise ValidationError(f"purchase total cannot exceed {MAX_AMOUNT_CENTS}")
    if paid > total:
        raise ValidationError("paid_cents cannot exceed the purchase total")
    when = normalize_occurred_at(purchase_date)

    def _op() -> RawMaterialPurchase:
        location = require_company_record(Location, location_id, company_id)
        for item_id, _qty, _price in parsed:
            item = require_company_record(Item, item_id, company_id)
            if item.kind != ITEM_RAW_MATERIAL:
                raise PurchaseError(f"item {item.sku} is not a raw material")

        purchase = RawMaterialPurchase(
            company_id=company_id,
            purchase_number=next_document_number(company_id=company_id, document_type="PURCHASE"),
            supplier_name=supplier[:255],
            location_id=location.id,
            status=PurchaseStatus.RECEIVED.value,
            total_cents=total,
            paid_cents=paid,
            purchase_date=when,
            created_by=actor_id,
        )
        db.session.add(purchase)
        db.session.flush()

        for item_id, qty, price in parsed:
            lot = inventory_service.receive_stock(
                company_id=company_id,
                item_id=item_id,
                location_id=location.id,
                quantity=qty,
                unit_cost_cents=price,
                movement_type=MOVEMENT_PURCHASE,
                source_type=SOURCE_PURCHASE,
                source_id=purchase.id,
                actor_id=actor_id,
                occurred_at=when,
            )
            db.session.add(
                PurchaseLine(
                    purchase_id=purchase.id,
                    item_id=item_id,
                    quantity=qty,
                    unit_price_cents=price,
                    line_total_cents=qty * price,
                    lot_id=lot.id,
                )
            )

        posting_rules.post_purchase_entry(
            company_id=company_id,
            purchase_id=purchase.id,
            total_cents=total,
            paid_cents=paid,
            posted_at=when,
            actor_id=actor_id,
            description=f"{purchase.purchase_number} {purchase.supplier_name}",
        )
        db.session.commit()
        return purchase

    return run_with_retry(_op)


# =============================================================================
# SUPPLIER PAYMENTS
# =============================================================================

def record_purchase_payment(
    *,
    company_id: int,
    purchase_id: int,
    amount_cents: int,
    paid_at=None,
    actor_id: int | None = None,
) -> PurchasePayment:
    """Pay part of the outstanding balance (Dr Accounts Payable / Cr Cash)."""
    amount = require_positive_int("amount_cents", amount_cents, maximum=MAX_AMOUNT_CENTS)
    when = normalize_occurred_at(paid_at)

    def _op() -> PurchasePayment:
        purchase = require_company_record(RawMaterialPurchase, purchase_id, company_id, label="purchase")
        if purchase.status != PurchaseStatus.RECEIVED.value:
            raise PurchaseError(f"purchase {purchase.purchase_number} is {purchase.status}")
        outstanding = purchase.total_cents - purchase.paid_cents
        if amount > outstanding:
            raise ValidationError(f"amount_cents exceeds the outstanding balance of {outstanding}")

        payment = PurchasePayment(
            company_id=company_id,
            purchase_id=purchase.id,
            amount_cents=amount,
            paid_at=when,
            created_by=actor_id,
        )
        db.session.add(payment)
        purchase.paid_cents += amount
        db.session.flush()

        posting_rules.post_supplier_payment_entry(
            company_id=company_id,
            payment_id=payment.id,
            amount_cents=amount,
            posted_at=when,
            actor_id=actor_id,
            description=f"Payment on {purchase.purchase_number}",
        )
        db.session.commit()
        return payment

    return run_with_retry(_op)


# =============================================================================
# DELETION
# =============================================================================

def delete_purchase(*, company_id: int, purchase_id: int, actor_id: int | None = None) -> RawMaterialPurchase:
    """
    Take a purchase back out of stock, cost and the journal.

    Each line is deducted from the exact lot it opened and removed from the
    weighted average. Then the purchase record and every supplier payment
    record are reversed.

    Raises:
        InsufficientStockError: part of a line was already consumed (nothing
            is changed).
        InvalidTransitionError: purchase already deleted.
    """
    def _op() -> RawMaterialPurchase:
        purchase = require_company_record(RawMaterialPurchase, purchase_id, company_id, label="purchase")
        target = ensure_transition(PurchaseStatus, purchase.status, PurchaseStatus.DELETED)
        when = utcnow()

        for line in purchase.lines:
            inventory_service.deduct_stock(
                company_id=company_id,
                item_id=line.item_id,
                location_id=purchase.location_id,
                quantity=line.quantity,
                movement_type=MOVEMENT_PURCHASE_REVERSAL,
                source_type=SOURCE_PURCHASE,
                source_id=purchase.id,
                actor_id=actor_id,
                occurred_at=when,
                from_lot_id=line.lot_id,
            )
            item = db.session.get(Item, line.item_id)
            cost_service.reverse_weighted_average(item, line.quantity, line.unit_price_cents)

        journal_service.reverse_event(
            company_id=company_id,
            event_type=posting_rules.EVENT_RM_PURCHASE,
            event_id=purchase.id,
            posted_at=when,
            description=f"Deleted {purchase.purchase_number}",
            actor_id=actor_id,
        )
        for payment in purchase.payments:
            journal_service.reverse_event(
                company_id=company_id,
                event_type=posting_rules.EVENT_SUPPLIER_PAYMENT,
                event_id=payment.id,
                posted_at=when,
                description=f"Deleted {purchase.purchase_number} payment",
                actor_id=actor_id,
            )

        purchase.status = target.value
        purchase.deleted_at = when
        db.session.commit()
        return purchase

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_purchase(company_id: int, purchase_id: int) -> RawMaterialPurchase:
    return require_company_record(RawMaterialPurchase, purchase_id, company_id, label="purchase")


def list_purchases(company_id: int, *, status: str | None = None) -> list[RawMaterialPurchase]:
    q = db.session.query(RawMaterialPurchase).filter(RawMaterialPurchase.company_id == company_id)
    if status:
        q = q.filter(RawMaterialPurchase.status == parse_status(PurchaseStatus, status).value)
    return q.order_by(RawMaterialPurchase.purchase_date.desc(), RawMaterialPurchase.id.desc()).all()
