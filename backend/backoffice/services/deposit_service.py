# Overview: Driver deposits; cash handed over from a van to the office or the bank.

"""
Deposits leave a driver's cash on hand as soon as they are recorded
(PENDING counts, only REJECTED does not). The journal follows the same
rule: the deposit is posted at creation and a rejection posts a reversal.
"""

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Deposit, Employee
from ..models.cash import PAYMENT_BANK, PAYMENT_TYPES
from ..models.statuses import DepositStatus, ensure_transition, parse_status
from ..time_utils import normalize_occurred_at, utcnow
from ..validation import MAX_AMOUNT_CENTS, require_positive_int
from . import journal_service, posting_rules
from .concurrency import run_with_retry
from .document_service import next_document_number
from .tenant_service import require_company_record


def create_deposit(
    *,
    company_id: int,
    driver_id: int,
    amount_cents: int,
    deposit_type: str = PAYMENT_BANK,
    reference: str | None = None,
    deposited_at=None,
    actor_id: int | None = None,
) -> Deposit:
    amount = require_positive_int("amount_cents", amount_cents, maximum=MAX_AMOUNT_CENTS)
    kind = (deposit_type or PAYMENT_BANK).strip().lower()
    if kind not in PAYMENT_TYPES:
        raise ValidationError(f"deposit_type must be one of {', '.join(PAYMENT_TYPES)}")
    when = normalize_occurred_at(deposited_at)

    def _op() -> Deposit:
        driver = require_company_record(Employee, driver_id, company_id, label="driver")
        deposit = Deposit(
            company_id=company_id,
            deposit_number=next_document_number(company_id=company_id, document_type="DEPOSIT"),
            driver_id=driver.id,
            amount_cents=amount,
            deposit_type=kind,
            status=DepositStatus.PENDING.value,
            reference=reference,
            deposited_at=when,
            created_by=actor_id,
        )
        db.session.add(deposit)
        db.session.flush()

        posting_rules.post_deposit_entry(
            company_id=company_id,
            deposit_id=deposit.id,
            amount_cents=amount,
            deposit_type=kind,
            posted_at=when,
            actor_id=actor_id,
            description=f"{deposit.deposit_number} {driver.name}",
        )
        db.session.commit()
        return deposit

    return run_with_retry(_op)


def update_deposit_status(
    *,
    company_id: int,
    deposit_id: int,
    status: str,
    actor_id: int | None = None,
) -> Deposit:
    """PENDING -> CONFIRMED | REJECTED. Rejection reverses the deposit's journal record."""
    target = parse_status(DepositStatus, status)

    def _op() -> Deposit:
        deposit = require_company_record(Deposit, deposit_id, company_id)
        deposit.status = ensure_transition(DepositStatus, deposit.status, target).value
        deposit.decided_by = actor_id
        deposit.decided_at = utcnow()

        if target == DepositStatus.REJECTED:
            journal_service.reverse_event(
                company_id=company_id,
                event_type=posting_rules.EVENT_DEPOSIT,
                event_id=deposit.id,
                description=f"Rejected {deposit.deposit_number}",
                actor_id=actor_id,
            )

        db.session.commit()
        return deposit

    return run_with_retry(_op)


def list_deposits(company_id: int, *, status: str | None = None, driver_id: int | None = None) -> list[Deposit]:
    q = db.session.query(Deposit).filter(Deposit.company_id == company_id)
    if status:
        q = q.filter(Deposit.status == parse_status(DepositStatus, status).value)
    if driver_id is not None:
        q = q.filter(Deposit.driver_id == driver_id)
    return q.order_by(Deposit.deposited_at.desc(), Deposit.id.desc()).all()
