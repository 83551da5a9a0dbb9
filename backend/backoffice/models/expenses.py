from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .statuses import ExpenseStatus


class Expense(db.Model):
    """
    Approved operating expense.

    production_run_id is set for extra costs attached to a production run;
    those are voided (and their postings reversed) when the run is deleted.
    """
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    category = db.Column(db.String(64), nullable=False, default="general")
    description = db.Column(db.String(255), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ExpenseStatus.APPROVED.value, index=True)

    production_run_id = db.Column(db.Integer, db.ForeignKey("production_runs.id"), nullable=True, index=True)

    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_by = db.Column(db.Integer, nullable=True)
    voided_by = db.Column(db.Integer, nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "category": self.category,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "production_run_id": self.production_run_id,
            "expense_date": to_utc_z(self.expense_date),
            "voided_at": to_utc_z(self.voided_at),
        }


class SalaryPayment(db.Model):
    __tablename__ = "salary_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    period = db.Column(db.String(16), nullable=True)  # e.g. "2024-05"
    notes = db.Column(db.String(255), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_by = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "employee_id": self.employee_id,
            "amount_cents": self.amount_cents,
            "period": self.period,
            "notes": self.notes,
            "paid_at": to_utc_z(self.paid_at),
        }
