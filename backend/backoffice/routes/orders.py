# Overview: Flask API routes for route orders and POS sales.

from flask import Blueprint, jsonify, request

from ..decorators import require_tenant, translate_errors
from ..services import order_service
from .helpers import actor, json_body, query_datetime, query_int, require_field, tenant

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_tenant
@translate_errors
def create_order_route():
    """
    Create a confirmed order (stock, debt and journal in one transaction).

    Request body:
    {
        "customer_id": 1,
        "location_id": 2,
        "channel": "ORDER",  (or "POS")
        "lines": [{"item_id": 1, "quantity": 2, "unit_price_cents": 500}],
        "paid_cents": 400,
        "driver_id": 3  (optional; defaults to the van's driver)
    }

    Returns:
        201: order created
        409: insufficient stock (nothing written)
    """
    payload = json_body()
    order = order_service.create_order(
        company_id=tenant(),
        customer_id=require_field(payload, "customer_id"),
        location_id=require_field(payload, "location_id"),
        lines=payload.get("lines"),
        channel=payload.get("channel") or "ORDER",
        driver_id=payload.get("driver_id"),
        paid_cents=payload.get("paid_cents", 0),
        discount_cents=payload.get("discount_cents", 0),
        tax_cents=payload.get("tax_cents", 0),
        order_date=payload.get("order_date"),
        notes=payload.get("notes"),
        actor_id=actor(),
    )
    return jsonify({"order": order.to_dict()}), 201


@orders_bp.get("")
@require_tenant
@translate_errors
def list_orders_route():
    orders = order_service.list_orders(
        tenant(),
        status=request.args.get("status"),
        driver_id=query_int("driver_id"),
        customer_id=query_int("customer_id"),
        start=query_datetime("start"),
        end=query_datetime("end"),
        limit=query_int("limit") or 100,
    )
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)})


@orders_bp.get("/<int:order_id>")
@require_tenant
@translate_errors
def get_order_route(order_id: int):
    return jsonify({"order": order_service.get_order(tenant(), order_id).to_dict()})


@orders_bp.post("/<int:order_id>/status")
@require_tenant
@translate_errors
def update_order_status_route(order_id: int):
    payload = json_body()
    order = order_service.update_order_status(
        company_id=tenant(), order_id=order_id, status=require_field(payload, "status"), actor_id=actor()
    )
    return jsonify({"order": order.to_dict()})


@orders_bp.post("/<int:order_id>/cancel")
@require_tenant
@translate_errors
def cancel_order_route(order_id: int):
    order = order_service.cancel_order(company_id=tenant(), order_id=order_id, actor_id=actor())
    return jsonify({"order": order.to_dict()})
