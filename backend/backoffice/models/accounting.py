from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ACCOUNT_ASSET = "ASSET"
ACCOUNT_LIABILITY = "LIABILITY"
ACCOUNT_EQUITY = "EQUITY"
ACCOUNT_REVENUE = "REVENUE"
ACCOUNT_EXPENSE = "EXPENSE"

# Accounts whose natural balance is on the debit side
DEBIT_NORMAL_TYPES = frozenset({ACCOUNT_ASSET, ACCOUNT_EXPENSE})


class Account(db.Model):
    """Chart of accounts entry. Balances are never stored; they are summed from lines."""
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("company_id", "code", name="uq_accounts_company_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    account_type = db.Column(db.String(16), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "account_type": self.account_type,
            "is_active": self.is_active,
        }


class JournalRecord(db.Model):
    """
    Balanced double-entry record for one business event.

    APPEND-ONLY: records and their lines are never updated or deleted.
    A correction is a new record whose reverses_record_id points at the
    original, with debits and credits swapped.

    IDEMPOTENCY: (company_id, event_type, event_id) is unique, so an event
    can be posted at most once.
    """
    __tablename__ = "journal_records"
    __table_args__ = (
        db.UniqueConstraint("company_id", "event_type", "event_id", name="uq_journal_records_event"),
        db.UniqueConstraint("company_id", "entry_number", name="uq_journal_records_entry_number"),
        db.Index("ix_journal_records_company_posted", "company_id", "posted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    entry_number = db.Column(db.String(32), nullable=False)

    event_type = db.Column(db.String(32), nullable=False, index=True)
    event_id = db.Column(db.String(64), nullable=False)

    posted_at = db.Column(db.DateTime(timezone=True), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    currency_code = db.Column(db.String(3), nullable=False, default="USD")
    exchange_rate = db.Column(db.Numeric(18, 6), nullable=False, default=1)

    total_debit_cents = db.Column(db.Integer, nullable=False)
    total_credit_cents = db.Column(db.Integer, nullable=False)

    reverses_record_id = db.Column(
        db.Integer, db.ForeignKey("journal_records.id"), nullable=True, unique=True
    )

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship("JournalLine", backref="record", lazy=True, order_by="JournalLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "entry_number": self.entry_number,
            "event_type": self.event_type,
            "event_id": self.event_id,
            "posted_at": to_utc_z(self.posted_at),
            "description": self.description,
            "currency_code": self.currency_code,
            "exchange_rate": str(self.exchange_rate) if self.exchange_rate is not None else None,
            "total_debit_cents": self.total_debit_cents,
            "total_credit_cents": self.total_credit_cents,
            "reverses_record_id": self.reverses_record_id,
            "created_by": self.created_by,
            "lines": [line.to_dict() for line in self.lines],
        }


class JournalLine(db.Model):
    __tablename__ = "journal_lines"
    __table_args__ = (
        db.CheckConstraint("debit_cents >= 0 AND credit_cents >= 0", name="ck_journal_lines_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey("journal_records.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    memo = db.Column(db.String(255), nullable=True)

    account = db.relationship("Account")

    def to_dict(self) -> dict:
        return {
            "account_code": self.account.code if self.account else None,
            "account_name": self.account.name if self.account else None,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "memo": self.memo,
        }
