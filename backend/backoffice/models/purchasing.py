from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .statuses import PurchaseStatus


class RawMaterialPurchase(db.Model):
    """
    Supplier purchase of raw materials, received into one location.

    paid_cents grows with PurchasePayment rows; the unpaid remainder sits in
    Accounts Payable.
    """
    __tablename__ = "raw_material_purchases"
    __table_args__ = (
        db.UniqueConstraint("company_id", "purchase_number", name="uq_purchases_company_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    purchase_number = db.Column(db.String(32), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PurchaseStatus.RECEIVED.value, index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)

    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_by = db.Column(db.Integer, nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship("PurchaseLine", backref="purchase", lazy=True, order_by="PurchaseLine.id")
    payments = db.relationship("PurchasePayment", backref="purchase", lazy=True, order_by="PurchasePayment.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "purchase_number": self.purchase_number,
            "supplier_name": self.supplier_name,
            "location_id": self.location_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "outstanding_cents": self.total_cents - self.paid_cents,
            "purchase_date": to_utc_z(self.purchase_date),
            "deleted_at": to_utc_z(self.deleted_at),
            "lines": [line.to_dict() for line in self.lines],
            "payments": [p.to_dict() for p in self.payments],
        }


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("raw_material_purchases.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    # Lot opened by this line; deleting the purchase draws it back out
    lot_id = db.Column(db.Integer, db.ForeignKey("cost_lots.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "lot_id": self.lot_id,
        }


class PurchasePayment(db.Model):
    __tablename__ = "purchase_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("raw_material_purchases.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_by = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "amount_cents": self.amount_cents,
            "paid_at": to_utc_z(self.paid_at),
        }
