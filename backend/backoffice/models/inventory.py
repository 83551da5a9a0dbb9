from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ITEM_PRODUCT = "PRODUCT"
ITEM_RAW_MATERIAL = "RAW_MATERIAL"


class Item(db.Model):
    """
    Product or raw material master data.

    unit_cost_cents is the moving weighted-average cost. It is written only
    by services/cost_service.update_weighted_average(); version_id makes a
    concurrent writer fail with StaleDataError instead of losing an update.

    standard_cost_cents is the reference price used when no cost history
    exists (and by the "standard" valuation method).
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("company_id", "sku", name="uq_items_company_sku"),
        db.Index("ix_items_company_kind", "company_id", "kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, default=ITEM_PRODUCT)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    price_cents = db.Column(db.Integer, nullable=True)
    standard_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Item id={self.id} sku={self.sku!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "kind": self.kind,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "standard_cost_cents": self.standard_cost_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
        }


class StockLevel(db.Model):
    """
    Quantity on hand per (item, location).

    Only services/inventory_service writes quantity, always with a single
    atomic UPDATE (conditional on quantity >= qty for deductions).
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("item_id", "location_id", name="uq_stock_levels_item_location"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_levels_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class CostLot(db.Model):
    """
    A batch of stock received at a specific unit cost.

    quantity_received, unit_cost_cents and received_at never change.
    quantity_remaining is decremented by lot consumption (FIFO/LIFO order)
    under optimistic locking; it never goes below zero. A cancelled sale
    gives its draws back to the same lots.
    """
    __tablename__ = "cost_lots"
    __table_args__ = (
        db.Index("ix_cost_lots_item_location_received", "item_id", "location_id", "received_at"),
        db.CheckConstraint("quantity_remaining >= 0", name="ck_cost_lots_remaining_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity_received = db.Column(db.Integer, nullable=False)
    quantity_remaining = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    source_type = db.Column(db.String(32), nullable=False)
    source_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "location_id": self.location_id,
            "quantity_received": self.quantity_received,
            "quantity_remaining": self.quantity_remaining,
            "unit_cost_cents": self.unit_cost_cents,
            "received_at": to_utc_z(self.received_at),
            "source_type": self.source_type,
            "source_id": self.source_id,
        }


# Movement types
MOVEMENT_OPENING = "OPENING"
MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_PURCHASE_REVERSAL = "PURCHASE_REVERSAL"
MOVEMENT_SALE = "SALE"
MOVEMENT_SALE_CANCEL = "SALE_CANCEL"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_PRODUCTION_CONSUME = "PRODUCTION_CONSUME"
MOVEMENT_PRODUCTION_OUTPUT = "PRODUCTION_OUTPUT"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"


class StockMovement(db.Model):
    """
    Immutable inventory movement. One row per inventory-affecting step.

    SUM(delta) over an (item, location) equals StockLevel.quantity; see
    inventory_service.audit_stock_levels().
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_item_location_occurred", "item_id", "location_id", "occurred_at"),
        db.Index("ix_stock_movements_source", "source_type", "source_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    delta = db.Column(db.Integer, nullable=False)

    # Receipt cost for inbound movements, blended valuation cost for outbound
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=True)

    source_type = db.Column(db.String(32), nullable=True)
    source_id = db.Column(db.Integer, nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "location_id": self.location_id,
            "movement_type": self.movement_type,
            "delta": self.delta,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class LotConsumption(db.Model):
    """Append-only record of how much of a lot an outbound movement took."""
    __tablename__ = "lot_consumptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("cost_lots.id"), nullable=False, index=True)
    movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    lot = db.relationship("CostLot")
    movement = db.relationship("StockMovement", backref=db.backref("lot_consumptions", lazy=True))


ALERT_COST_SPIKE = "COST_SPIKE"
ALERT_LOW_MARGIN = "LOW_MARGIN"


class CostAlert(db.Model):
    __tablename__ = "cost_alerts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    alert_type = db.Column(db.String(16), nullable=False, index=True)
    previous_cost_cents = db.Column(db.Integer, nullable=True)
    new_cost_cents = db.Column(db.Integer, nullable=True)
    price_cents = db.Column(db.Integer, nullable=True)
    message = db.Column(db.String(255), nullable=False)
    source_type = db.Column(db.String(32), nullable=True)
    source_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "alert_type": self.alert_type,
            "previous_cost_cents": self.previous_cost_cents,
            "new_cost_cents": self.new_cost_cents,
            "price_cents": self.price_cents,
            "message": self.message,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "created_at": to_utc_z(self.created_at),
        }
