# Overview: Fixed journal line templates, one per business event type.

"""
Posting Rules

One function per money-moving event. Each builds the event's fixed line
template and hands it to journal_service.post_journal(); no function here
decides policy beyond choosing accounts by payment type. All of them run
inside the caller's transaction (flush only).

Account codes refer to journal_service.DEFAULT_CHART.
"""

from __future__ import annotations

from ..models.cash import PAYMENT_CASH
from .journal_service import credit, debit, post_journal

CASH = "1000"
BANK = "1010"
ACCOUNTS_RECEIVABLE = "1020"
INVENTORY = "1030"
RAW_MATERIAL_INVENTORY = "1035"
VAN_CASH = "1040"
ACCOUNTS_PAYABLE = "2000"
CUSTOMER_CREDITS = "2010"
SALES = "4000"
DIRECT_SALES = "4010"
COGS = "5000"
PRODUCTION_COST = "5020"
SALARIES = "6000"
GENERAL_EXPENSES = "6010"
RETURNS_AND_REFUNDS = "6090"

EVENT_ORDER = "order"
EVENT_POS_SALE = "pos_sale"
EVENT_COLLECTION = "collection"
EVENT_DEPOSIT = "deposit"
EVENT_EXPENSE = "expense"
EVENT_SALARY = "salary"
EVENT_PRODUCTION = "production"
EVENT_PRODUCTION_COST = "production_cost"
EVENT_RETURN = "return"
EVENT_RM_PURCHASE = "rm_purchase"
EVENT_SUPPLIER_PAYMENT = "supplier_payment"


def _sale_lines(revenue_account: str, paid_account: str, total_cents: int, paid_cents: int, cost_cents: int):
    return [
        debit(paid_account, paid_cents, "Paid on sale"),
        debit(ACCOUNTS_RECEIVABLE, total_cents - paid_cents, "Sold on credit"),
        credit(revenue_account, total_cents, "Sales revenue"),
        debit(COGS, cost_cents, "Cost of goods sold"),
        credit(INVENTORY, cost_cents, "Inventory out"),
    ]


def post_order_entry(*, company_id, order_id, total_cents, paid_cents, cost_cents, posted_at, actor_id=None, description=None):
    """Route sale: cash taken goes to the van, the rest to receivables."""
    return post_journal(
        company_id=company_id,
        event_type=EVENT_ORDER,
        event_id=order_id,
        lines=_sale_lines(SALES, VAN_CASH, total_cents, paid_cents, cost_cents),
        posted_at=posted_at,
        description=description or f"Order #{order_id}",
        actor_id=actor_id,
    )


def post_pos_sale_entry(*, company_id, order_id, total_cents, paid_cents, cost_cents, posted_at, actor_id=None, description=None):
    return post_journal(
        company_id=company_id,
        event_type=EVENT_POS_SALE,
        event_id=order_id,
        lines=_sale_lines(DIRECT_SALES, CASH, total_cents, paid_cents, cost_cents),
        posted_at=posted_at,
        description=description or f"POS sale #{order_id}",
        actor_id=actor_id,
    )


def post_collection_entry(*, company_id, collection_id, amount_cents, payment_type, posted_at, actor_id=None, description=None):
    target = VAN_CASH if payment_type == PAYMENT_CASH else BANK
    return post_journal(
        company_id=company_id,
        event_type=EVENT_COLLECTION,
        event_id=collection_id,
        lines=[
            debit(target, amount_cents),
            credit(ACCOUNTS_RECEIVABLE, amount_cents),
        ],
        posted_at=posted_at,
        description=description or f"Collection #{collection_id}",
        actor_id=actor_id,
    )


def post_deposit_entry(*, company_id, deposit_id, amount_cents, deposit_type, posted_at, actor_id=None, description=None):
    target = CASH if deposit_type == PAYMENT_CASH else BANK
    return post_journal(
        company_id=company_id,
        event_type=EVENT_DEPOSIT,
        event_id=deposit_id,
        lines=[
            debit(target, amount_cents),
            credit(VAN_CASH, amount_cents),
        ],
        posted_at=posted_at,
        description=description or f"Deposit #{deposit_id}",
        actor_id=actor_id,
    )


def post_expense_entry(*, company_id, expense_id, amount_cents, posted_at, actor_id=None, description=None):
    return post_journal(
        company_id=company_id,
        event_type=EVENT_EXPENSE,
        event_id=expense_id,
        lines=[
            debit(GENERAL_EXPENSES, amount_cents),
            credit(CASH, amount_cents),
        ],
        posted_at=posted_at,
        description=description or f"Expense #{expense_id}",
        actor_id=actor_id,
    )


def post_salary_entry(*, company_id, salary_payment_id, amount_cents, posted_at, actor_id=None, description=None):
    return post_journal(
        company_id=company_id,
        event_type=EVENT_SALARY,
        event_id=salary_payment_id,
        lines=[
            debit(SALARIES, amount_cents),
            credit(CASH, amount_cents),
        ],
        posted_at=posted_at,
        description=description or f"Salary payment #{salary_payment_id}",
        actor_id=actor_id,
    )


def post_production_entry(
    *, company_id, run_id, raw_material_cost_cents, extra_cost_cents, posted_at, actor_id=None, description=None
):
    """Finished goods in at raw + extra; raw materials out; production cost absorbed."""
    return post_journal(
        company_id=company_id,
        event_type=EVENT_PRODUCTION,
        event_id=run_id,
        lines=[
            debit(INVENTORY, raw_material_cost_cents + extra_cost_cents, "Finished goods"),
            credit(RAW_MATERIAL_INVENTORY, raw_material_cost_cents, "Raw materials consumed"),
            credit(PRODUCTION_COST, extra_cost_cents, "Production cost absorbed"),
        ],
        posted_at=posted_at,
        description=description or f"Production run #{run_id}",
        actor_id=actor_id,
    )


def post_production_cost_entry(*, company_id, production_cost_id, amount_cents, posted_at, actor_id=None, description=None):
    return post_journal(
        company_id=company_id,
        event_type=EVENT_PRODUCTION_COST,
        event_id=production_cost_id,
        lines=[
            debit(PRODUCTION_COST, amount_cents),
            credit(CASH, amount_cents),
        ],
        posted_at=posted_at,
        description=description or f"Production cost #{production_cost_id}",
        actor_id=actor_id,
    )


def post_return_entry(
    *, company_id, return_id, total_cents, cost_cents, issue_credit, posted_at, actor_id=None, description=None
):
    """Refund side against receivables (credit issued) or customer credits; restocked cost back to inventory."""
    refund_account = ACCOUNTS_RECEIVABLE if issue_credit else CUSTOMER_CREDITS
    return post_journal(
        company_id=company_id,
        event_type=EVENT_RETURN,
        event_id=return_id,
        lines=[
            debit(RETURNS_AND_REFUNDS, total_cents),
            credit(refund_account, total_cents),
            debit(INVENTORY, cost_cents, "Returned goods restocked"),
            credit(COGS, cost_cents, "COGS reversal"),
        ],
        posted_at=posted_at,
        description=description or f"Return #{return_id}",
        actor_id=actor_id,
    )


def post_purchase_entry(*, company_id, purchase_id, total_cents, paid_cents, posted_at, actor_id=None, description=None):
    return post_journal(
        company_id=company_id,
        event_type=EVENT_RM_PURCHASE,
        event_id=purchase_id,
        lines=[
            debit(RAW_MATERIAL_INVENTORY, total_cents),
            credit(CASH, paid_cents),
            credit(ACCOUNTS_PAYABLE, total_cents - paid_cents),
        ],
        posted_at=posted_at,
        description=description or f"Raw material purchase #{purchase_id}",
        actor_id=actor_id,
    )


def post_supplier_payment_entry(*, company_id, payment_id, amount_cents, posted_at, actor_id=None, description=None):
    return post_journal(
        company_id=company_id,
        event_type=EVENT_SUPPLIER_PAYMENT,
        event_id=payment_id,
        lines=[
            debit(ACCOUNTS_PAYABLE, amount_cents),
            credit(CASH, amount_cents),
        ],
        posted_at=posted_at,
        description=description or f"Supplier payment #{payment_id}",
        actor_id=actor_id,
    )
