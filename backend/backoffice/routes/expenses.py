# Overview: Flask API routes for operating expenses and salary payments.

from flask import Blueprint, jsonify, request

from ..decorators import require_tenant, translate_errors
from ..services import expense_service
from .helpers import actor, json_body, query_datetime, query_int, require_field, tenant

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api")


@expenses_bp.post("/expenses")
@require_tenant
@translate_errors
def create_expense_route():
    payload = json_body()
    expense = expense_service.create_expense(
        company_id=tenant(),
        amount_cents=require_field(payload, "amount_cents"),
        category=payload.get("category") or "general",
        description=payload.get("description"),
        expense_date=payload.get("expense_date"),
        actor_id=actor(),
    )
    return jsonify({"expense": expense.to_dict()}), 201


@expenses_bp.get("/expenses")
@require_tenant
@translate_errors
def list_expenses_route():
    expenses = expense_service.list_expenses(
        tenant(),
        status=request.args.get("status"),
        start=query_datetime("start"),
        end=query_datetime("end"),
    )
    return jsonify({"items": [e.to_dict() for e in expenses], "count": len(expenses)})


@expenses_bp.post("/expenses/<int:expense_id>/void")
@require_tenant
@translate_errors
def void_expense_route(expense_id: int):
    expense = expense_service.void_expense(company_id=tenant(), expense_id=expense_id, actor_id=actor())
    return jsonify({"expense": expense.to_dict()})


@expenses_bp.post("/salaries")
@require_tenant
@translate_errors
def create_salary_route():
    payload = json_body()
    payment = expense_service.create_salary_payment(
        company_id=tenant(),
        employee_id=require_field(payload, "employee_id"),
        amount_cents=require_field(payload, "amount_cents"),
        period=payload.get("period"),
        notes=payload.get("notes"),
        paid_at=payload.get("paid_at"),
        actor_id=actor(),
    )
    return jsonify({"salary_payment": payment.to_dict()}), 201


@expenses_bp.get("/salaries")
@require_tenant
@translate_errors
def list_salaries_route():
    payments = expense_service.list_salary_payments(tenant(), employee_id=query_int("employee_id"))
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)})
