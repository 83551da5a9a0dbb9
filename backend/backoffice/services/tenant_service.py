"""
Tenant Scoping Helpers

Every service call carries company_id. Any record id coming from the caller
is resolved through require_company_record(), which treats "exists in
another company" exactly like "does not exist": both raise
TenantAccessError, so ids from other tenants cannot be probed.

USAGE:
    customer = require_company_record(Customer, customer_id, company_id)
"""

from __future__ import annotations

from flask import g

from ..errors import TenantAccessError
from ..extensions import db
from ..models import Company


def get_current_company_id() -> int:
    """Tenant context set by @require_tenant."""
    company_id = getattr(g, "company_id", None)
    if company_id is None:
        raise TenantAccessError("Tenant context not established")
    return company_id


def get_current_user_id() -> int | None:
    return getattr(g, "user_id", None)


def require_company(company_id: int) -> Company:
    company = db.session.get(Company, company_id)
    if company is None or not company.is_active:
        raise TenantAccessError(f"company {company_id} not found")
    return company


def require_company_record(model, record_id, company_id: int, *, label: str | None = None):
    """
    Load model by id and verify it belongs to company_id.

    Raises TenantAccessError for missing ids and foreign-tenant ids alike.
    """
    name = label or model.__tablename__.rstrip("s")
    if record_id is None:
        raise TenantAccessError(f"{name} not found")
    try:
        record_id = int(record_id)
    except (TypeError, ValueError):
        raise TenantAccessError(f"{name} {record_id!r} not found")

    record = db.session.get(model, record_id)
    if record is None or record.company_id != company_id:
        raise TenantAccessError(f"{name} {record_id} not found")
    return record
