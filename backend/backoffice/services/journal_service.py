# Overview: Journal posting engine; balanced double-entry records, reversals and derived balances.

"""
Journal Posting Invariants (authoritative)

- Every record balances: SUM(debit_cents) == SUM(credit_cents). An
  unbalanced record is a programming defect in a line template; it is
  logged at error level and raised (UnbalancedPostingError), never coerced.
- Records are written in the SAME transaction as the business event they
  describe; a posting failure aborts the event.
- (company_id, event_type, event_id) is unique. Re-posting an event with
  identical lines returns the existing record; different lines raise
  DuplicatePostingError.
- Records and lines are never updated or deleted. A correction is a new
  record (event_type "reversal") with sides swapped and reverses_record_id
  set.
- Account balances are derived on read from lines; nothing is stored.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    DuplicatePostingError,
    TenantAccessError,
    UnbalancedPostingError,
    ValidationError,
)
from ..extensions import db
from ..models import Account, JournalLine, JournalRecord
from ..models.accounting import (
    ACCOUNT_ASSET,
    ACCOUNT_EQUITY,
    ACCOUNT_EXPENSE,
    ACCOUNT_LIABILITY,
    ACCOUNT_REVENUE,
    DEBIT_NORMAL_TYPES,
)
from ..time_utils import normalize_occurred_at
from .concurrency import run_with_retry
from .document_service import next_document_number
from .settings_service import get_tenant_settings
from .tenant_service import require_company

EVENT_REVERSAL = "reversal"
EVENT_MANUAL = "manual"

# Default chart of accounts, seeded per company
DEFAULT_CHART = (
    ("1000", "Cash on Hand", ACCOUNT_ASSET),
    ("1010", "Bank", ACCOUNT_ASSET),
    ("1020", "Accounts Receivable", ACCOUNT_ASSET),
    ("1030", "Inventory", ACCOUNT_ASSET),
    ("1035", "Raw Material Inventory", ACCOUNT_ASSET),
    ("1040", "Van Cash", ACCOUNT_ASSET),
    ("2000", "Accounts Payable", ACCOUNT_LIABILITY),
    ("2010", "Customer Credits", ACCOUNT_LIABILITY),
    ("2020", "Tax Payable", ACCOUNT_LIABILITY),
    ("3000", "Owner Equity", ACCOUNT_EQUITY),
    ("3010", "Retained Earnings", ACCOUNT_EQUITY),
    ("4000", "Sales Revenue", ACCOUNT_REVENUE),
    ("4010", "Direct Sales", ACCOUNT_REVENUE),
    ("4020", "Online Sales", ACCOUNT_REVENUE),
    ("4090", "Other Income", ACCOUNT_REVENUE),
    ("5000", "Cost of Goods Sold", ACCOUNT_EXPENSE),
    ("5010", "Raw Material Cost", ACCOUNT_EXPENSE),
    ("5020", "Production Cost", ACCOUNT_EXPENSE),
    ("6000", "Salaries", ACCOUNT_EXPENSE),
    ("6010", "General Expenses", ACCOUNT_EXPENSE),
    ("6020", "Delivery Expenses", ACCOUNT_EXPENSE),
    ("6090", "Returns & Refunds", ACCOUNT_EXPENSE),
)


@dataclass(frozen=True)
class PostingLine:
    account_code: str
    debit_cents: int = 0
    credit_cents: int = 0
    memo: str | None = None


def debit(account_code: str, amount_cents: int, memo: str | None = None) -> PostingLine:
    return PostingLine(account_code=account_code, debit_cents=amount_cents, memo=memo)


def credit(account_code: str, amount_cents: int, memo: str | None = None) -> PostingLine:
    return PostingLine(account_code=account_code, credit_cents=amount_cents, memo=memo)


# ===== Chart of accounts =====

def seed_default_accounts(company_id: int) -> int:
    """Create any missing default accounts for a company (idempotent, flush only)."""
    existing = {
        code for (code,) in db.session.query(Account.code).filter(Account.company_id == company_id).all()
    }
    created = 0
    for code, name, account_type in DEFAULT_CHART:
        if code in existing:
            continue
        db.session.add(Account(company_id=company_id, code=code, name=name, account_type=account_type))
        created += 1
    if created:
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflictError(f"chart of accounts for company {company_id} seeded concurrently") from exc
    return created


def _resolve_accounts(company_id: int, codes: set[str]) -> dict[str, Account]:
    def _load() -> dict[str, Account]:
        rows = (
            db.session.query(Account)
            .filter(Account.company_id == company_id, Account.code.in_(codes))
            .all()
        )
        return {a.code: a for a in rows}

    accounts = _load()
    if len(accounts) < len(codes):
        seed_default_accounts(company_id)
        accounts = _load()

    missing = sorted(codes - set(accounts))
    if missing:
        raise ConfigurationError(f"unknown account code(s): {', '.join(missing)}")
    inactive = sorted(code for code, acct in accounts.items() if not acct.is_active)
    if inactive:
        raise ConfigurationError(f"inactive account code(s): {', '.join(inactive)}")
    return accounts


# ===== Line validation =====

def _as_amount(value, *, event_type: str, event_id) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise UnbalancedPostingError(
            f"{event_type}/{event_id}: amounts must be integer cents, got {value!r}"
        )
    return value


def _normalize_lines(lines, *, event_type: str, event_id) -> list[PostingLine]:
    """Drop zero lines; reject negative or two-sided lines."""
    kept: list[PostingLine] = []
    for line in lines:
        if not isinstance(line, PostingLine):
            line = PostingLine(**line)
        dr = _as_amount(line.debit_cents or 0, event_type=event_type, event_id=event_id)
        cr = _as_amount(line.credit_cents or 0, event_type=event_type, event_id=event_id)
        if dr < 0 or cr < 0:
            raise UnbalancedPostingError(
                f"{event_type}/{event_id}: negative amount on account {line.account_code}"
            )
        if dr and cr:
            raise UnbalancedPostingError(
                f"{event_type}/{event_id}: line on account {line.account_code} has both debit and credit"
            )
        if not dr and not cr:
            continue
        kept.append(PostingLine(str(line.account_code), dr, cr, line.memo))
    return kept


def _line_signature(pairs) -> list[tuple[str, int, int]]:
    return sorted(pairs)


# ===== Posting =====

def get_record_for_event(company_id: int, event_type: str, event_id) -> JournalRecord | None:
    return (
        db.session.query(JournalRecord)
        .filter_by(company_id=company_id, event_type=event_type, event_id=str(event_id))
        .first()
    )


def post_journal(
    *,
    company_id: int,
    event_type: str,
    event_id,
    lines,
    posted_at=None,
    description: str | None = None,
    actor_id: int | None = None,
    reverses_record_id: int | None = None,
) -> JournalRecord | None:
    """
    Validate and append one balanced journal record (flush only).

    Returns None when every line is zero (nothing to post).
    """
    if not event_type:
        raise ValidationError("event_type is required")
    if event_id is None or str(event_id) == "":
        raise ValidationError("event_id is required")
    event_id = str(event_id)

    kept = _normalize_lines(lines, event_type=event_type, event_id=event_id)
    if not kept:
        return None

    total_debit = sum(line.debit_cents for line in kept)
    total_credit = sum(line.credit_cents for line in kept)
    if total_debit != total_credit:
        current_app.logger.error(
            "Unbalanced journal posting %s/%s for company %s: debit %s != credit %s",
            event_type, event_id, company_id, total_debit, total_credit,
        )
        raise UnbalancedPostingError(
            f"{event_type}/{event_id}: debits {total_debit} != credits {total_credit}"
        )

    existing = get_record_for_event(company_id, event_type, event_id)
    if existing is not None:
        wanted = _line_signature((l.account_code, l.debit_cents, l.credit_cents) for l in kept)
        stored = _line_signature(
            (l.account.code, l.debit_cents, l.credit_cents) for l in existing.lines
        )
        if wanted == stored:
            return existing
        raise DuplicatePostingError(
            f"{event_type}/{event_id} already posted as {existing.entry_number} with different lines"
        )

    accounts = _resolve_accounts(company_id, {line.account_code for line in kept})
    settings = get_tenant_settings(company_id)

    record = JournalRecord(
        company_id=company_id,
        entry_number=next_document_number(company_id=company_id, document_type="JOURNAL"),
        event_type=event_type,
        event_id=event_id,
        posted_at=normalize_occurred_at(posted_at),
        description=(description or f"{event_type} {event_id}")[:255],
        currency_code=settings.currency_code,
        exchange_rate=settings.exchange_rate,
        total_debit_cents=total_debit,
        total_credit_cents=total_credit,
        reverses_record_id=reverses_record_id,
        created_by=actor_id,
    )
    db.session.add(record)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflictError(f"{event_type}/{event_id} posted concurrently") from exc

    for line in kept:
        db.session.add(
            JournalLine(
                record_id=record.id,
                account_id=accounts[line.account_code].id,
                debit_cents=line.debit_cents,
                credit_cents=line.credit_cents,
                memo=line.memo,
            )
        )
    db.session.flush()
    return record


def reverse_journal_record(
    *,
    company_id: int,
    record: JournalRecord,
    posted_at=None,
    description: str | None = None,
    actor_id: int | None = None,
) -> JournalRecord:
    """Append the offsetting record for `record` (flush only, idempotent)."""
    if record.company_id != company_id:
        raise TenantAccessError(f"journal record {record.id} not found")

    lines = [
        PostingLine(l.account.code, debit_cents=l.credit_cents, credit_cents=l.debit_cents, memo=l.memo)
        for l in record.lines
    ]
    return post_journal(
        company_id=company_id,
        event_type=EVENT_REVERSAL,
        event_id=record.id,
        lines=lines,
        posted_at=posted_at,
        description=description or f"Reversal of {record.entry_number}",
        actor_id=actor_id,
        reverses_record_id=record.id,
    )


def reverse_event(
    *,
    company_id: int,
    event_type: str,
    event_id,
    posted_at=None,
    description: str | None = None,
    actor_id: int | None = None,
) -> JournalRecord | None:
    """Reverse whatever was posted for an event; None if nothing was."""
    record = get_record_for_event(company_id, event_type, event_id)
    if record is None:
        return None
    return reverse_journal_record(
        company_id=company_id,
        record=record,
        posted_at=posted_at,
        description=description,
        actor_id=actor_id,
    )


# ===== Business operations (own their transaction) =====

def post_manual_entry(
    *,
    company_id: int,
    lines,
    description: str | None = None,
    posted_at=None,
    actor_id: int | None = None,
    reference: str | None = None,
) -> JournalRecord:
    """
    Manual journal entry. reference makes the call idempotent; without it
    every call is a new entry.
    """
    require_company(company_id)
    if not lines:
        raise ValidationError("at least one line is required")

    # User input: an unbalanced manual entry is a 400, not a defect
    try:
        checked = _normalize_lines(lines, event_type=EVENT_MANUAL, event_id=reference)
    except (TypeError, UnbalancedPostingError) as exc:
        raise ValidationError(str(exc)) from exc
    if sum(l.debit_cents for l in checked) != sum(l.credit_cents for l in checked):
        raise ValidationError("manual entry debits and credits must balance")

    def _op() -> JournalRecord:
        record = post_journal(
            company_id=company_id,
            event_type=EVENT_MANUAL,
            event_id=reference or uuid.uuid4().hex,
            lines=lines,
            posted_at=posted_at,
            description=description or "Manual entry",
            actor_id=actor_id,
        )
        if record is None:
            raise ValidationError("manual entry has no non-zero lines")
        db.session.commit()
        return record

    return run_with_retry(_op)


def reverse_record(
    *,
    company_id: int,
    record_id: int,
    actor_id: int | None = None,
    description: str | None = None,
) -> JournalRecord:
    def _op() -> JournalRecord:
        record = db.session.get(JournalRecord, record_id)
        if record is None or record.company_id != company_id:
            raise TenantAccessError(f"journal record {record_id} not found")
        reversal = reverse_journal_record(
            company_id=company_id, record=record, description=description, actor_id=actor_id
        )
        db.session.commit()
        return reversal

    return run_with_retry(_op)


def seed_accounts(company_id: int) -> int:
    require_company(company_id)

    def _op() -> int:
        created = seed_default_accounts(company_id)
        db.session.commit()
        return created

    return run_with_retry(_op)


# ===== Read side =====

def list_journal_records(
    company_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    event_type: str | None = None,
    limit: int = 200,
) -> list[JournalRecord]:
    """Records for a date range; start inclusive, end exclusive."""
    q = db.session.query(JournalRecord).filter(JournalRecord.company_id == company_id)
    if start is not None:
        q = q.filter(JournalRecord.posted_at >= start)
    if end is not None:
        q = q.filter(JournalRecord.posted_at < end)
    if event_type:
        q = q.filter(JournalRecord.event_type == event_type)
    limit = max(1, min(int(limit), 1000))
    return q.order_by(JournalRecord.posted_at.asc(), JournalRecord.id.asc()).limit(limit).all()


def get_account_balances(company_id: int, *, as_of: datetime | None = None) -> list[dict]:
    """
    Derived balances per account. Debit-normal accounts (assets, expenses)
    report debit - credit; the rest report credit - debit.
    """
    sums = (
        db.session.query(
            JournalLine.account_id,
            func.coalesce(func.sum(JournalLine.debit_cents), 0).label("debit"),
            func.coalesce(func.sum(JournalLine.credit_cents), 0).label("credit"),
        )
        .join(JournalRecord, JournalRecord.id == JournalLine.record_id)
        .filter(JournalRecord.company_id == company_id)
    )
    if as_of is not None:
        sums = sums.filter(JournalRecord.posted_at <= as_of)
    totals = {r.account_id: (int(r.debit), int(r.credit)) for r in sums.group_by(JournalLine.account_id).all()}

    accounts = (
        db.session.query(Account)
        .filter(Account.company_id == company_id)
        .order_by(Account.code)
        .all()
    )
    balances = []
    for acct in accounts:
        dr, cr = totals.get(acct.id, (0, 0))
        balance = dr - cr if acct.account_type in DEBIT_NORMAL_TYPES else cr - dr
        balances.append(
            {
                "code": acct.code,
                "name": acct.name,
                "account_type": acct.account_type,
                "debit_cents": dr,
                "credit_cents": cr,
                "balance_cents": balance,
            }
        )
    return balances


def get_account_balance(company_id: int, code: str, *, as_of: datetime | None = None) -> int:
    for row in get_account_balances(company_id, as_of=as_of):
        if row["code"] == code:
            return row["balance_cents"]
    raise ConfigurationError(f"unknown account code: {code}")


def audit_journal(company_id: int) -> list[dict]:
    """Records whose lines do not balance or disagree with their stored totals."""
    rows = (
        db.session.query(
            JournalRecord.id,
            JournalRecord.entry_number,
            JournalRecord.total_debit_cents,
            JournalRecord.total_credit_cents,
            func.coalesce(func.sum(JournalLine.debit_cents), 0).label("debit"),
            func.coalesce(func.sum(JournalLine.credit_cents), 0).label("credit"),
        )
        .outerjoin(JournalLine, JournalLine.record_id == JournalRecord.id)
        .filter(JournalRecord.company_id == company_id)
        .group_by(
            JournalRecord.id,
            JournalRecord.entry_number,
            JournalRecord.total_debit_cents,
            JournalRecord.total_credit_cents,
        )
        .all()
    )
    problems = []
    for r in rows:
        dr, cr = int(r.debit), int(r.credit)
        if dr != cr or dr != r.total_debit_cents or cr != r.total_credit_cents:
            problems.append(
                {
                    "record_id": r.id,
                    "entry_number": r.entry_number,
                    "line_debit_cents": dr,
                    "line_credit_cents": cr,
                    "total_debit_cents": r.total_debit_cents,
                    "total_credit_cents": r.total_credit_cents,
                }
            )
    return problems
