# Overview: Customer debt collections by drivers and the office.

from __future__ import annotations

from datetime import datetime

from ..errors import ValidationError
from ..extensions import db
from ..models import Collection, Customer, Employee
from ..models.cash import PAYMENT_CASH, PAYMENT_TYPES
from ..time_utils import normalize_occurred_at
from ..validation import MAX_AMOUNT_CENTS, require_positive_int
from . import debt_service, posting_rules
from .concurrency import run_with_retry
from .document_service import next_document_number
from .tenant_service import require_company_record

SOURCE_COLLECTION = "COLLECTION"


def _payment_type(value) -> str:
    payment_type = (value or PAYMENT_CASH).strip().lower()
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of {', '.join(PAYMENT_TYPES)}")
    return payment_type


def create_collection(
    *,
    company_id: int,
    customer_id: int,
    amount_cents: int,
    payment_type: str = PAYMENT_CASH,
    driver_id: int | None = None,
    reference: str | None = None,
    collected_at=None,
    actor_id: int | None = None,
) -> Collection:
    """
    Record money received against a customer's debt.

    Debt goes down by the full amount (a collection larger than the debt
    leaves a credit balance). Cash collections taken by a driver count
    toward that driver's cash on hand.
    """
    amount = require_positive_int("amount_cents", amount_cents, maximum=MAX_AMOUNT_CENTS)
    kind = _payment_type(payment_type)
    when = normalize_occurred_at(collected_at)

    def _op() -> Collection:
        customer = require_company_record(Customer, customer_id, company_id)
        if driver_id is not None:
            require_company_record(Employee, driver_id, company_id, label="driver")

        collection = Collection(
            company_id=company_id,
            collection_number=next_document_number(company_id=company_id, document_type="COLLECTION"),
            customer_id=customer.id,
            driver_id=driver_id,
            amount_cents=amount,
            payment_type=kind,
            reference=reference,
            collected_at=when,
            created_by=actor_id,
        )
        db.session.add(collection)
        db.session.flush()

        debt_service.adjust_debt(
            company_id=company_id,
            customer_id=customer.id,
            delta_cents=-amount,
            source_type=SOURCE_COLLECTION,
            source_id=collection.id,
            actor_id=actor_id,
            occurred_at=when,
        )
        posting_rules.post_collection_entry(
            company_id=company_id,
            collection_id=collection.id,
            amount_cents=amount,
            payment_type=kind,
            posted_at=when,
            actor_id=actor_id,
            description=f"{collection.collection_number} {customer.name}",
        )

        db.session.commit()
        return collection

    return run_with_retry(_op)


def list_collections(
    company_id: int,
    *,
    customer_id: int | None = None,
    driver_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[Collection]:
    q = db.session.query(Collection).filter(Collection.company_id == company_id)
    if customer_id is not None:
        q = q.filter(Collection.customer_id == customer_id)
    if driver_id is not None:
        q = q.filter(Collection.driver_id == driver_id)
    if start is not None:
        q = q.filter(Collection.collected_at >= start)
    if end is not None:
        q = q.filter(Collection.collected_at < end)
    return q.order_by(Collection.collected_at.desc(), Collection.id.desc()).limit(max(1, min(limit, 1000))).all()
