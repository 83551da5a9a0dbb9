# Overview: Flask API routes for raw material purchases and supplier payments.

from flask import Blueprint, jsonify, request

from ..decorators import require_tenant, translate_errors
from ..services import purchase_service
from .helpers import actor, json_body, require_field, tenant

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_tenant
@translate_errors
def create_purchase_route():
    """
    Request body:
    {
        "supplier_name": "Mill Co",
        "location_id": 1,
        "lines": [{"item_id": 4, "quantity": 100, "unit_price_cents": 200}],
        "paid_cents": 5000
    }
    """
    payload = json_body()
    purchase = purchase_service.create_purchase(
        company_id=tenant(),
        supplier_name=require_field(payload, "supplier_name"),
        location_id=require_field(payload, "location_id"),
        lines=payload.get("lines"),
        paid_cents=payload.get("paid_cents", 0),
        purchase_date=payload.get("purchase_date"),
        actor_id=actor(),
    )
    return jsonify({"purchase": purchase.to_dict()}), 201


@purchases_bp.get("")
@require_tenant
@translate_errors
def list_purchases_route():
    purchases = purchase_service.list_purchases(tenant(), status=request.args.get("status"))
    return jsonify({"items": [p.to_dict() for p in purchases], "count": len(purchases)})


@purchases_bp.get("/<int:purchase_id>")
@require_tenant
@translate_errors
def get_purchase_route(purchase_id: int):
    return jsonify({"purchase": purchase_service.get_purchase(tenant(), purchase_id).to_dict()})


@purchases_bp.post("/<int:purchase_id>/payments")
@require_tenant
@translate_errors
def record_payment_route(purchase_id: int):
    payload = json_body()
    payment = purchase_service.record_purchase_payment(
        company_id=tenant(),
        purchase_id=purchase_id,
        amount_cents=require_field(payload, "amount_cents"),
        paid_at=payload.get("paid_at"),
        actor_id=actor(),
    )
    return jsonify({"payment": payment.to_dict()}), 201


@purchases_bp.delete("/<int:purchase_id>")
@require_tenant
@translate_errors
def delete_purchase_route(purchase_id: int):
    purchase = purchase_service.delete_purchase(company_id=tenant(), purchase_id=purchase_id, actor_id=actor())
    return jsonify({"purchase": purchase.to_dict()})
