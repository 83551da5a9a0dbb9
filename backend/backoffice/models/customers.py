from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer with a running outstanding debt.

    debt_balance_cents is written only by services/debt_service.adjust_debt(),
    which appends a DebtAdjustment in the same transaction. The balance must
    always equal SUM(DebtAdjustment.delta_cents) for the customer.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_company_name", "company_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    debt_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "phone": self.phone,
            "debt_balance_cents": self.debt_balance_cents,
            "is_active": self.is_active,
        }


class DebtAdjustment(db.Model):
    """Append-only debt history: +order total, -collection, -return credit."""
    __tablename__ = "debt_adjustments"
    __table_args__ = (
        db.Index("ix_debt_adjustments_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    delta_cents = db.Column(db.Integer, nullable=False)
    source_type = db.Column(db.String(32), nullable=False)
    source_id = db.Column(db.Integer, nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "delta_cents": self.delta_cents,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
