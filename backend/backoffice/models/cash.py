from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .statuses import DepositStatus, TaskStatus

PAYMENT_CASH = "cash"
PAYMENT_BANK = "bank"
PAYMENT_CHECK = "check"
PAYMENT_TYPES = (PAYMENT_CASH, PAYMENT_BANK, PAYMENT_CHECK)


class DeliveryTask(db.Model):
    """
    Delivery task assigned to a driver.

    paid_cents is cash the driver took on delivery. It counts toward the
    driver's cash on hand once the task is COMPLETED or DELIVERED.
    """
    __tablename__ = "delivery_tasks"
    __table_args__ = (
        db.Index("ix_delivery_tasks_company_driver", "company_id", "driver_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)

    title = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TaskStatus.PENDING.value, index=True)
    amount_due_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)

    scheduled_for = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "driver_id": self.driver_id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "title": self.title,
            "status": self.status,
            "amount_due_cents": self.amount_due_cents,
            "paid_cents": self.paid_cents,
            "scheduled_for": to_utc_z(self.scheduled_for),
            "completed_at": to_utc_z(self.completed_at),
        }


class Collection(db.Model):
    """Money collected from a customer against outstanding debt."""
    __tablename__ = "collections"
    __table_args__ = (
        db.UniqueConstraint("company_id", "collection_number", name="uq_collections_company_number"),
        db.Index("ix_collections_company_driver", "company_id", "driver_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    collection_number = db.Column(db.String(32), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_type = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)
    reference = db.Column(db.String(64), nullable=True)

    collected_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_by = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "collection_number": self.collection_number,
            "customer_id": self.customer_id,
            "driver_id": self.driver_id,
            "amount_cents": self.amount_cents,
            "payment_type": self.payment_type,
            "reference": self.reference,
            "collected_at": to_utc_z(self.collected_at),
        }


class Deposit(db.Model):
    """
    Cash handed in by a driver. Every non-REJECTED deposit reduces the
    driver's cash on hand; PENDING deposits count too.
    """
    __tablename__ = "deposits"
    __table_args__ = (
        db.UniqueConstraint("company_id", "deposit_number", name="uq_deposits_company_number"),
        db.Index("ix_deposits_company_driver", "company_id", "driver_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    deposit_number = db.Column(db.String(32), nullable=False)
    driver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    deposit_type = db.Column(db.String(16), nullable=False, default=PAYMENT_BANK)
    status = db.Column(db.String(16), nullable=False, default=DepositStatus.PENDING.value, index=True)
    reference = db.Column(db.String(64), nullable=True)

    deposited_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_by = db.Column(db.Integer, nullable=True)
    decided_by = db.Column(db.Integer, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "deposit_number": self.deposit_number,
            "driver_id": self.driver_id,
            "amount_cents": self.amount_cents,
            "deposit_type": self.deposit_type,
            "status": self.status,
            "reference": self.reference,
            "deposited_at": to_utc_z(self.deposited_at),
            "decided_at": to_utc_z(self.decided_at),
        }
