from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .statuses import OrderChannel, OrderStatus, ReturnStatus


class Order(db.Model):
    """
    Sales order (route sale) or POS sale.

    total_cents = SUM(line_total_cents) - discount_cents + tax_cents.
    cost_cents is the COGS drawn from the valuation engine when the stock
    was deducted; it feeds the order's journal record.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("company_id", "order_number", name="uq_orders_company_number"),
        db.Index("ix_orders_company_driver", "company_id", "driver_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    order_number = db.Column(db.String(32), nullable=False)

    channel = db.Column(db.String(16), nullable=False, default=OrderChannel.ORDER.value)
    status = db.Column(db.String(16), nullable=False, default=OrderStatus.CONFIRMED.value, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    notes = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer")
    lines = db.relationship("OrderLine", backref="order", lazy=True, order_by="OrderLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "order_number": self.order_number,
            "channel": self.channel,
            "status": self.status,
            "customer_id": self.customer_id,
            "driver_id": self.driver_id,
            "location_id": self.location_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "debt_cents": self.total_cents - self.paid_cents,
            "cost_cents": self.cost_cents,
            "order_date": to_utc_z(self.order_date),
            "notes": self.notes,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class OrderLine(db.Model):
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Snapshot of valuation at deduction time (used for returns/cancellation)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    cogs_cents = db.Column(db.Integer, nullable=False, default=0)
    movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "cogs_cents": self.cogs_cents,
        }


class Return(db.Model):
    """
    Customer return. PENDING -> APPROVED -> PROCESSED, or PENDING -> REJECTED.

    Processing restocks at the ORIGINAL line cost (COGS reversal) and, when
    issue_credit is set, reduces the customer's debt by total_cents.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("company_id", "return_number", name="uq_returns_company_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    return_number = db.Column(db.String(32), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=ReturnStatus.PENDING.value, index=True)
    reason = db.Column(db.String(255), nullable=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    issue_credit = db.Column(db.Boolean, nullable=True)
    restock_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    return_date = db.Column(db.DateTime(timezone=True), nullable=False)
    created_by = db.Column(db.Integer, nullable=True)
    decided_by = db.Column(db.Integer, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)
    processed_by = db.Column(db.Integer, nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship("ReturnLine", backref="return_doc", lazy=True, order_by="ReturnLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "return_number": self.return_number,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "status": self.status,
            "reason": self.reason,
            "total_cents": self.total_cents,
            "cost_cents": self.cost_cents,
            "issue_credit": self.issue_credit,
            "restock_location_id": self.restock_location_id,
            "return_date": to_utc_z(self.return_date),
            "decided_at": to_utc_z(self.decided_at),
            "rejection_reason": self.rejection_reason,
            "processed_at": to_utc_z(self.processed_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class ReturnLine(db.Model):
    __tablename__ = "return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    # Cost the goods go back into stock at
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "order_line_id": self.order_line_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "unit_cost_cents": self.unit_cost_cents,
        }
