"""
Journal tests: idempotent posting per event, reversal, manual entries,
derived balances, expenses and salaries.
"""

import pytest

from backoffice.errors import (
    DuplicatePostingError,
    InvalidTransitionError,
    UnbalancedPostingError,
    ValidationError,
)
from backoffice.extensions import db
from backoffice.models import JournalRecord
from backoffice.services import expense_service, journal_service, posting_rules
from backoffice.services.journal_service import credit, debit


def _balance(company, code):
    return journal_service.get_account_balance(company.id, code)


def test_posting_the_same_event_twice_returns_the_first_record(company):
    lines = [debit(posting_rules.CASH, 500), credit(posting_rules.SALES, 500)]

    first = journal_service.post_journal(
        company_id=company.id, event_type="order", event_id=41, lines=lines
    )
    again = journal_service.post_journal(
        company_id=company.id, event_type="order", event_id="41", lines=list(reversed(lines))
    )
    db.session.commit()

    assert again.id == first.id
    assert first.entry_number.startswith("JE-")
    assert db.session.query(JournalRecord).count() == 1
    assert _balance(company, posting_rules.CASH) == 500


def test_same_event_with_different_lines_is_a_duplicate(company):
    journal_service.post_journal(
        company_id=company.id,
        event_type="order",
        event_id=42,
        lines=[debit(posting_rules.CASH, 500), credit(posting_rules.SALES, 500)],
    )

    with pytest.raises(DuplicatePostingError):
        journal_service.post_journal(
            company_id=company.id,
            event_type="order",
            event_id=42,
            lines=[debit(posting_rules.CASH, 600), credit(posting_rules.SALES, 600)],
        )


def test_unbalanced_system_posting_is_an_error(company):
    with pytest.raises(UnbalancedPostingError):
        journal_service.post_journal(
            company_id=company.id,
            event_type="order",
            event_id=43,
            lines=[debit(posting_rules.CASH, 500), credit(posting_rules.SALES, 400)],
        )


def test_all_zero_lines_post_nothing(company):
    record = journal_service.post_journal(
        company_id=company.id,
        event_type="order",
        event_id=44,
        lines=[debit(posting_rules.CASH, 0), credit(posting_rules.SALES, 0)],
    )
    assert record is None


def test_unbalanced_manual_entry_is_rejected(company):
    with pytest.raises(ValidationError):
        journal_service.post_manual_entry(
            company_id=company.id,
            lines=[
                {"account_code": posting_rules.BANK, "debit_cents": 1000},
                {"account_code": posting_rules.CASH, "credit_cents": 900},
            ],
        )
    assert db.session.query(JournalRecord).count() == 0


def test_manual_entry_with_reference_is_idempotent(company):
    lines = [
        {"account_code": posting_rules.BANK, "debit_cents": 1000},
        {"account_code": posting_rules.CASH, "credit_cents": 1000},
    ]
    first = journal_service.post_manual_entry(company_id=company.id, lines=lines, reference="bank-transfer-1")
    second = journal_service.post_manual_entry(company_id=company.id, lines=lines, reference="bank-transfer-1")
    third = journal_service.post_manual_entry(company_id=company.id, lines=lines)

    assert first.id == second.id
    assert third.id != first.id
    assert _balance(company, posting_rules.BANK) == 2000


def test_reverse_record_offsets_every_line(company):
    record = journal_service.post_manual_entry(
        company_id=company.id,
        lines=[
            {"account_code": posting_rules.GENERAL_EXPENSES, "debit_cents": 750},
            {"account_code": posting_rules.CASH, "credit_cents": 750},
        ],
    )

    reversal = journal_service.reverse_record(company_id=company.id, record_id=record.id)
    repeated = journal_service.reverse_record(company_id=company.id, record_id=record.id)

    assert reversal.reverses_record_id == record.id
    assert reversal.event_type == journal_service.EVENT_REVERSAL
    assert repeated.id == reversal.id
    assert _balance(company, posting_rules.GENERAL_EXPENSES) == 0
    assert _balance(company, posting_rules.CASH) == 0


def test_reverse_event_without_posting_is_a_no_op(company):
    assert journal_service.reverse_event(company_id=company.id, event_type="order", event_id=999) is None


def test_balances_follow_account_normal_side(company):
    journal_service.post_manual_entry(
        company_id=company.id,
        lines=[
            {"account_code": posting_rules.ACCOUNTS_RECEIVABLE, "debit_cents": 1200},
            {"account_code": posting_rules.SALES, "credit_cents": 1200},
        ],
    )

    balances = {row["code"]: row for row in journal_service.get_account_balances(company.id)}

    assert balances[posting_rules.ACCOUNTS_RECEIVABLE]["balance_cents"] == 1200
    assert balances[posting_rules.SALES]["balance_cents"] == 1200
    assert balances[posting_rules.SALES]["credit_cents"] == 1200
    assert len(balances) == len(journal_service.DEFAULT_CHART)
    assert journal_service.audit_journal(company.id) == []


def test_expense_void_reverses_its_posting(company):
    expense = expense_service.create_expense(company_id=company.id, amount_cents=3200, category="fuel")
    assert _balance(company, posting_rules.GENERAL_EXPENSES) == 3200
    assert _balance(company, posting_rules.CASH) == -3200

    voided = expense_service.void_expense(company_id=company.id, expense_id=expense.id)

    assert voided.status == "VOIDED"
    assert _balance(company, posting_rules.GENERAL_EXPENSES) == 0
    assert _balance(company, posting_rules.CASH) == 0
    with pytest.raises(InvalidTransitionError):
        expense_service.void_expense(company_id=company.id, expense_id=expense.id)


def test_salary_payment_posts_to_salaries(company, driver):
    payment = expense_service.create_salary_payment(
        company_id=company.id, employee_id=driver.id, amount_cents=150000, period="2024-05"
    )

    record = journal_service.get_record_for_event(company.id, posting_rules.EVENT_SALARY, payment.id)
    assert record.total_debit_cents == 150000
    assert _balance(company, posting_rules.SALARIES) == 150000
    assert [p.id for p in expense_service.list_salary_payments(company.id, employee_id=driver.id)] == [payment.id]


def test_non_positive_expense_is_rejected(company):
    with pytest.raises(ValidationError):
        expense_service.create_expense(company_id=company.id, amount_cents=0)
