# Overview: Operating expenses and salary payments; both are cash out with a journal record.

"""
Expenses are approved when recorded and never edited. Voiding keeps the
row (status VOIDED) and appends a reversal record to the journal.

Expenses created by a production run belong to that run: they are posted
as production costs and can only be voided through the run.
"""

from __future__ import annotations

from datetime import datetime

from ..errors import ValidationError
from ..extensions import db
from ..models import Employee, Expense, SalaryPayment
from ..models.statuses import ExpenseStatus, ensure_transition, parse_status
from ..time_utils import normalize_occurred_at, utcnow
from ..validation import MAX_AMOUNT_CENTS, require_positive_int
from . import journal_service, posting_rules
from .concurrency import run_with_retry
from .tenant_service import require_company_record


class ExpenseError(Exception):
    """Raised for expense rule violations."""
    pass


# =============================================================================
# COMPONENT HELPERS (flush only, used inside other operations)
# =============================================================================

def record_expense(
    *,
    company_id: int,
    amount_cents: int,
    category: str = "general",
    description: str | None = None,
    expense_date=None,
    production_run_id: int | None = None,
    actor_id: int | None = None,
) -> Expense:
    """Insert an approved expense row without posting it."""
    amount = require_positive_int("amount_cents", amount_cents, maximum=MAX_AMOUNT_CENTS)
    expense = Expense(
        company_id=company_id,
        category=(category or "general").strip().lower()[:64],
        description=description,
        amount_cents=amount,
        status=ExpenseStatus.APPROVED.value,
        production_run_id=production_run_id,
        expense_date=normalize_occurred_at(expense_date),
        created_by=actor_id,
    )
    db.session.add(expense)
    db.session.flush()
    return expense


def mark_voided(expense: Expense, actor_id: int | None = None) -> Expense:
    expense.status = ensure_transition(ExpenseStatus, expense.status, ExpenseStatus.VOIDED).value
    expense.voided_by = actor_id
    expense.voided_at = utcnow()
    db.session.flush()
    return expense


# =============================================================================
# EXPENSES
# =============================================================================

def create_expense(
    *,
    company_id: int,
    amount_cents: int,
    category: str = "general",
    description: str | None = None,
    expense_date=None,
    actor_id: int | None = None,
) -> Expense:
    """
    Record and post an operating expense (Dr General Expenses / Cr Cash).

    Raises:
        ValidationError: non-positive or oversized amount.
    """
    def _op() -> Expense:
        expense = record_expense(
            company_id=company_id,
            amount_cents=amount_cents,
            category=category,
            description=description,
            expense_date=expense_date,
            actor_id=actor_id,
        )
        posting_rules.post_expense_entry(
            company_id=company_id,
            expense_id=expense.id,
            amount_cents=expense.amount_cents,
            posted_at=expense.expense_date,
            actor_id=actor_id,
            description=description or f"Expense ({expense.category})",
        )
        db.session.commit()
        return expense

    return run_with_retry(_op)


def void_expense(*, company_id: int, expense_id: int, actor_id: int | None = None) -> Expense:
    """
    Void an expense and reverse its journal record.

    Raises:
        ExpenseError: the expense belongs to a production run.
        InvalidTransitionError: already voided.
    """
    def _op() -> Expense:
        expense = require_company_record(Expense, expense_id, company_id)
        if expense.production_run_id is not None:
            raise ExpenseError(
                f"expense {expense.id} belongs to production run {expense.production_run_id}; "
                "remove it from the run instead"
            )
        mark_voided(expense, actor_id)
        journal_service.reverse_event(
            company_id=company_id,
            event_type=posting_rules.EVENT_EXPENSE,
            event_id=expense.id,
            description=f"Void expense #{expense.id}",
            actor_id=actor_id,
        )
        db.session.commit()
        return expense

    return run_with_retry(_op)


def list_expenses(
    company_id: int,
    *,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Expense]:
    q = db.session.query(Expense).filter(Expense.company_id == company_id)
    if status:
        q = q.filter(Expense.status == parse_status(ExpenseStatus, status).value)
    if start is not None:
        q = q.filter(Expense.expense_date >= start)
    if end is not None:
        q = q.filter(Expense.expense_date < end)
    return q.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


# =============================================================================
# SALARIES
# =============================================================================

def create_salary_payment(
    *,
    company_id: int,
    employee_id: int,
    amount_cents: int,
    period: str | None = None,
    notes: str | None = None,
    paid_at=None,
    actor_id: int | None = None,
) -> SalaryPayment:
    """Pay an employee (Dr Salaries / Cr Cash)."""
    amount = require_positive_int("amount_cents", amount_cents, maximum=MAX_AMOUNT_CENTS)
    if period is not None and len(str(period)) > 16:
        raise ValidationError("period exceeds max length 16")
    when = normalize_occurred_at(paid_at)

    def _op() -> SalaryPayment:
        employee = require_company_record(Employee, employee_id, company_id, label="employee")
        payment = SalaryPayment(
            company_id=company_id,
            employee_id=employee.id,
            amount_cents=amount,
            period=period,
            notes=notes,
            paid_at=when,
            created_by=actor_id,
        )
        db.session.add(payment)
        db.session.flush()

        posting_rules.post_salary_entry(
            company_id=company_id,
            salary_payment_id=payment.id,
            amount_cents=amount,
            posted_at=when,
            actor_id=actor_id,
            description=f"Salary {employee.name} {period or ''}".strip(),
        )
        db.session.commit()
        return payment

    return run_with_retry(_op)


def list_salary_payments(company_id: int, *, employee_id: int | None = None) -> list[SalaryPayment]:
    q = db.session.query(SalaryPayment).filter(SalaryPayment.company_id == company_id)
    if employee_id is not None:
        q = q.filter(SalaryPayment.employee_id == employee_id)
    return q.order_by(SalaryPayment.paid_at.desc(), SalaryPayment.id.desc()).all()
