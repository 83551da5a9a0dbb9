# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/backoffice/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- Create returns, optionally referencing an original order
- Approval / rejection as a separate decision
- Processing restocks at original cost, credits debt and posts
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_tenant, translate_errors
from ..services import return_service
from .helpers import actor, json_body, query_int, require_field, tenant

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_tenant
@translate_errors
def create_return_route():
    """
    Create a new return document (status: PENDING).

    Request body:
    {
        "customer_id": 1,
        "order_id": 7,  (optional)
        "reason": "Damaged in transit",
        "lines": [{"order_line_id": 12, "quantity": 1}]
    }
    """
    payload = json_body()
    return_doc = return_service.create_return(
        company_id=tenant(),
        customer_id=require_field(payload, "customer_id"),
        lines=payload.get("lines"),
        order_id=payload.get("order_id"),
        reason=payload.get("reason"),
        return_date=payload.get("return_date"),
        actor_id=actor(),
    )
    return jsonify({"return": return_doc.to_dict()}), 201


@returns_bp.get("")
@require_tenant
@translate_errors
def list_returns_route():
    returns = return_service.list_returns(
        tenant(), status=request.args.get("status"), customer_id=query_int("customer_id")
    )
    return jsonify({"items": [r.to_dict() for r in returns], "count": len(returns)})


@returns_bp.get("/<int:return_id>")
@require_tenant
@translate_errors
def get_return_route(return_id: int):
    return jsonify({"return": return_service.get_return(tenant(), return_id).to_dict()})


@returns_bp.post("/<int:return_id>/approve")
@require_tenant
@translate_errors
def approve_return_route(return_id: int):
    return_doc = return_service.approve_return(company_id=tenant(), return_id=return_id, actor_id=actor())
    return jsonify({"return": return_doc.to_dict()})


@returns_bp.post("/<int:return_id>/reject")
@require_tenant
@translate_errors
def reject_return_route(return_id: int):
    payload = json_body()
    return_doc = return_service.reject_return(
        company_id=tenant(),
        return_id=return_id,
        rejection_reason=payload.get("reason"),
        actor_id=actor(),
    )
    return jsonify({"return": return_doc.to_dict()})


@returns_bp.post("/<int:return_id>/process")
@require_tenant
@translate_errors
def process_return_route(return_id: int):
    """
    Request body:
    {"restock_location_id": 1, "issue_credit": true}  (both optional)
    """
    payload = json_body()
    issue_credit = payload.get("issue_credit", True)
    if not isinstance(issue_credit, bool):
        return jsonify({"error": "issue_credit must be a boolean"}), 400
    return_doc = return_service.process_return(
        company_id=tenant(),
        return_id=return_id,
        restock_location_id=payload.get("restock_location_id"),
        issue_credit=issue_credit,
        actor_id=actor(),
    )
    return jsonify({"return": return_doc.to_dict()})
