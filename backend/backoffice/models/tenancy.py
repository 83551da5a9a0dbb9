from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Company(db.Model):
    """
    Multi-tenant root: every tenant is a Company.

    All locations, items, customers, employees and financial records carry
    company_id. No record may reference a record of another company.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


LOCATION_WAREHOUSE = "WAREHOUSE"
LOCATION_VAN = "VAN"


class Location(db.Model):
    """
    A place where stock is held: a warehouse or a delivery van.

    Vans optionally have an assigned driver; van cash is derived from that
    driver's cash event streams, never stored here.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_locations_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default=LOCATION_WAREHOUSE)
    driver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    max_cash_cents = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    driver = db.relationship("Employee", foreign_keys=[driver_id])

    def __repr__(self) -> str:
        return f"<Location id={self.id} kind={self.kind} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "kind": self.kind,
            "driver_id": self.driver_id,
            "max_cash_cents": self.max_cash_cents,
            "is_active": self.is_active,
        }


class Employee(db.Model):
    __tablename__ = "employees"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False, default="driver")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
        }


class TenantSettings(db.Model):
    """
    Per-company inputs to valuation and alerts.

    valuation_method: fifo | lifo | weighted_average | standard
    Thresholds are whole percentages. exchange_rate is an opaque multiplier
    snapshotted onto journal records; no conversion happens here.
    """
    __tablename__ = "tenant_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, unique=True)

    valuation_method = db.Column(db.String(32), nullable=False, default="fifo")
    cost_spike_threshold_pct = db.Column(db.Integer, nullable=False, default=20)
    low_margin_threshold_pct = db.Column(db.Integer, nullable=False, default=10)
    enable_cost_alerts = db.Column(db.Boolean, nullable=False, default=True)

    currency_code = db.Column(db.String(3), nullable=False, default="USD")
    exchange_rate = db.Column(db.Numeric(18, 6), nullable=False, default=1)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "company_id": self.company_id,
            "valuation_method": self.valuation_method,
            "cost_spike_threshold_pct": self.cost_spike_threshold_pct,
            "low_margin_threshold_pct": self.low_margin_threshold_pct,
            "enable_cost_alerts": self.enable_cost_alerts,
            "currency_code": self.currency_code,
            "exchange_rate": str(self.exchange_rate) if self.exchange_rate is not None else None,
            "updated_at": to_utc_z(self.updated_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-company document sequences.

    Used for order, collection, deposit, production, purchase, return and
    journal entry numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("company_id", "document_type", name="uq_doc_sequences_company_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
