from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .statuses import ProductionStatus


class ProductionRun(db.Model):
    """
    Production run turning raw materials (plus extra costs) into one output item.

    LIFECYCLE: DRAFT -> COMPLETED | DELETED
    - Materials and extra costs can only change while DRAFT.
    - On completion the cost figures below are frozen:
        output_unit_cost_cents = (raw_material_cost_cents + extra_cost_cents) / output_quantity
      rounded half-up to the cent.
    - A COMPLETED run can never be deleted or edited.
    """
    __tablename__ = "production_runs"
    __table_args__ = (
        db.UniqueConstraint("company_id", "run_number", name="uq_production_runs_company_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    run_number = db.Column(db.String(32), nullable=False)

    output_item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    output_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    output_quantity = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ProductionStatus.DRAFT.value, index=True)

    raw_material_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    extra_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    output_unit_cost_cents = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_by = db.Column(db.Integer, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    materials = db.relationship("ProductionMaterial", backref="run", lazy=True, order_by="ProductionMaterial.id")
    costs = db.relationship("ProductionCost", backref="run", lazy=True, order_by="ProductionCost.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "run_number": self.run_number,
            "output_item_id": self.output_item_id,
            "output_location_id": self.output_location_id,
            "output_quantity": self.output_quantity,
            "status": self.status,
            "raw_material_cost_cents": self.raw_material_cost_cents,
            "extra_cost_cents": self.extra_cost_cents,
            "output_unit_cost_cents": self.output_unit_cost_cents,
            "notes": self.notes,
            "completed_at": to_utc_z(self.completed_at),
            "deleted_at": to_utc_z(self.deleted_at),
            "materials": [m.to_dict() for m in self.materials],
            "costs": [c.to_dict() for c in self.costs],
        }


class ProductionMaterial(db.Model):
    __tablename__ = "production_materials"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.Integer, db.ForeignKey("production_runs.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    # Filled at completion from the valuation engine
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
        }


class ProductionCost(db.Model):
    """Extra cost (labour, energy, packaging...) backed by an Expense."""
    __tablename__ = "production_costs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.Integer, db.ForeignKey("production_runs.id"), nullable=False, index=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_id": self.expense_id,
            "description": self.description,
            "amount_cents": self.amount_cents,
        }
