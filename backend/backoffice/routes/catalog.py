# Overview: Flask API routes for tenants and reference data (locations, employees, items, customers).

from flask import Blueprint, jsonify, request

from ..decorators import require_tenant, translate_errors
from ..services import catalog_service, debt_service
from .helpers import json_body, require_field, tenant

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# =============================================================================
# COMPANIES (provisioning; no tenant context yet)
# =============================================================================

@catalog_bp.post("/companies")
@translate_errors
def create_company_route():
    payload = json_body()
    company = catalog_service.create_company(name=require_field(payload, "name"), code=payload.get("code"))
    return jsonify({"company": company.to_dict()}), 201


@catalog_bp.get("/companies")
@translate_errors
def list_companies_route():
    companies = catalog_service.list_companies()
    return jsonify({"items": [c.to_dict() for c in companies], "count": len(companies)})


# =============================================================================
# TENANT REFERENCE DATA
# =============================================================================

@catalog_bp.post("/locations")
@require_tenant
@translate_errors
def create_location_route():
    location = catalog_service.create_location(company_id=tenant(), payload=json_body())
    return jsonify({"location": location.to_dict()}), 201


@catalog_bp.post("/employees")
@require_tenant
@translate_errors
def create_employee_route():
    employee = catalog_service.create_employee(company_id=tenant(), payload=json_body())
    return jsonify({"employee": employee.to_dict()}), 201


@catalog_bp.post("/items")
@require_tenant
@translate_errors
def create_item_route():
    item = catalog_service.create_item(company_id=tenant(), payload=json_body())
    return jsonify({"item": item.to_dict()}), 201


@catalog_bp.patch("/items/<int:item_id>")
@require_tenant
@translate_errors
def update_item_route(item_id: int):
    item = catalog_service.update_item(company_id=tenant(), item_id=item_id, payload=json_body())
    return jsonify({"item": item.to_dict()})


@catalog_bp.get("/items")
@require_tenant
@translate_errors
def list_items_route():
    items = catalog_service.list_items(tenant(), kind=request.args.get("kind"))
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)})


@catalog_bp.post("/customers")
@require_tenant
@translate_errors
def create_customer_route():
    customer = catalog_service.create_customer(company_id=tenant(), payload=json_body())
    return jsonify({"customer": customer.to_dict()}), 201


@catalog_bp.get("/customers")
@require_tenant
@translate_errors
def list_customers_route():
    customers = catalog_service.list_customers(tenant())
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)})


@catalog_bp.get("/customers/<int:customer_id>/debt")
@require_tenant
@translate_errors
def customer_debt_route(customer_id: int):
    """Stored balance, the balance rebuilt from history, and recent adjustments."""
    company_id = tenant()
    adjustments = debt_service.list_adjustments(company_id, customer_id)
    return jsonify(
        {
            "customer_id": customer_id,
            "debt_cents": debt_service.get_debt(company_id, customer_id),
            "reconstructed_cents": debt_service.reconstruct_debt(company_id, customer_id),
            "adjustments": [a.to_dict() for a in adjustments],
        }
    )
