# Overview: Reference data the financial core depends on; companies, locations, employees, items, customers.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import Company, Customer, Employee, Item, Location
from ..models.tenancy import LOCATION_VAN
from ..validation import (
    CUSTOMER_POLICY,
    EMPLOYEE_POLICY,
    ITEM_POLICY,
    LOCATION_POLICY,
    enforce_rules_item,
    enforce_rules_location,
    validate_payload,
)
from .concurrency import run_with_retry
from .journal_service import seed_default_accounts
from .settings_service import get_tenant_settings
from .tenant_service import require_company, require_company_record


class ConflictError(ValueError):
    """Duplicate code, SKU or name within a company."""
    pass


def _flush_or_conflict(message: str) -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictError(message) from exc


def _commit_or_conflict(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        raise ConflictError(message) from exc


def create_company(*, name: str, code: str | None = None) -> Company:
    """New tenant with its settings row and default chart of accounts."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    def _op() -> Company:
        company = Company(name=name, code=(code or "").strip().upper() or None, is_active=True)
        db.session.add(company)
        _flush_or_conflict(f"company code {code!r} already exists")
        get_tenant_settings(company.id, create=True)
        seed_default_accounts(company.id)
        _commit_or_conflict(f"company code {code!r} already exists")
        return company

    return run_with_retry(_op)


def list_companies() -> list[Company]:
    return db.session.query(Company).order_by(Company.id).all()


def create_location(*, company_id: int, payload: dict) -> Location:
    require_company(company_id)
    patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=False)
    enforce_rules_location(patch)

    def _op() -> Location:
        if patch.get("driver_id") is not None:
            if patch.get("kind") != LOCATION_VAN:
                raise ValidationError("only vans can have a driver")
            require_company_record(Employee, patch["driver_id"], company_id, label="driver")
        location = Location(company_id=company_id, **patch)
        db.session.add(location)
        _commit_or_conflict(f"location {patch['name']!r} already exists")
        return location

    return run_with_retry(_op)


def create_employee(*, company_id: int, payload: dict) -> Employee:
    require_company(company_id)
    patch = validate_payload(model=Employee, payload=payload, policy=EMPLOYEE_POLICY, partial=False)

    def _op() -> Employee:
        employee = Employee(company_id=company_id, **patch)
        db.session.add(employee)
        db.session.commit()
        return employee

    return run_with_retry(_op)


def create_item(*, company_id: int, payload: dict) -> Item:
    require_company(company_id)
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
    enforce_rules_item(patch)

    def _op() -> Item:
        item = Item(company_id=company_id, unit_cost_cents=0, **patch)
        db.session.add(item)
        _commit_or_conflict(f"sku {patch['sku']!r} already exists")
        return item

    return run_with_retry(_op)


def update_item(*, company_id: int, item_id: int, payload: dict) -> Item:
    """Master-data edit. unit_cost_cents is not writable here."""
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True)
    enforce_rules_item(patch)

    def _op() -> Item:
        item = require_company_record(Item, item_id, company_id)
        for key, value in patch.items():
            setattr(item, key, value)
        _commit_or_conflict("sku already exists")
        return item

    return run_with_retry(_op)


def list_items(company_id: int, *, kind: str | None = None) -> list[Item]:
    q = db.session.query(Item).filter(Item.company_id == company_id)
    if kind:
        q = q.filter(Item.kind == kind.upper())
    return q.order_by(Item.sku).all()


def create_customer(*, company_id: int, payload: dict) -> Customer:
    require_company(company_id)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)

    def _op() -> Customer:
        customer = Customer(company_id=company_id, debt_balance_cents=0, **patch)
        db.session.add(customer)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def list_customers(company_id: int) -> list[Customer]:
    return db.session.query(Customer).filter_by(company_id=company_id).order_by(Customer.name).all()
