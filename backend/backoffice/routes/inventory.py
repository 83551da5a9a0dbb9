# Overview: Flask API routes for stock; opening balances, van loading, valuation and ledger reads.

from flask import Blueprint, jsonify, request

from ..decorators import require_tenant, translate_errors
from ..services import cost_service, inventory_service, valuation_service
from .helpers import actor, json_body, query_datetime, query_int, require_field, tenant

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/opening")
@require_tenant
@translate_errors
def opening_stock_route():
    """
    Record an opening balance.

    Request body:
    {
        "item_id": 1,
        "location_id": 1,
        "quantity": 10,
        "unit_cost_cents": 250,  (optional; omitted means uncovered stock)
        "occurred_at": "2024-05-01T08:00:00Z"  (optional)
    }
    """
    payload = json_body()
    movement = inventory_service.record_opening_stock(
        company_id=tenant(),
        item_id=require_field(payload, "item_id"),
        location_id=require_field(payload, "location_id"),
        quantity=require_field(payload, "quantity"),
        unit_cost_cents=payload.get("unit_cost_cents"),
        actor_id=actor(),
        occurred_at=payload.get("occurred_at"),
    )
    return jsonify({"movement": movement.to_dict()}), 201


@inventory_bp.post("/load-van")
@require_tenant
@translate_errors
def load_van_route():
    """
    Move stock from a warehouse into a van at lot cost, all lines or none.

    Request body:
    {"van_id": 2, "warehouse_id": 1, "lines": [{"item_id": 1, "quantity": 5}]}
    """
    payload = json_body()
    moved = inventory_service.load_van(
        company_id=tenant(),
        van_id=require_field(payload, "van_id"),
        warehouse_id=require_field(payload, "warehouse_id"),
        lines=payload.get("lines"),
        actor_id=actor(),
        occurred_at=payload.get("occurred_at"),
    )
    return jsonify({"lines": moved}), 201


@inventory_bp.get("/summary")
@require_tenant
@translate_errors
def stock_summary_route():
    rows = inventory_service.get_stock_summary(tenant(), location_id=query_int("location_id"))
    return jsonify({"items": rows, "count": len(rows)})


@inventory_bp.get("/movements")
@require_tenant
@translate_errors
def movements_route():
    movements = inventory_service.list_movements(
        tenant(),
        item_id=query_int("item_id"),
        location_id=query_int("location_id"),
        start=query_datetime("start"),
        end=query_datetime("end"),
        limit=query_int("limit") or 200,
    )
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)})


@inventory_bp.get("/items/<int:item_id>/lots")
@require_tenant
@translate_errors
def open_lots_route(item_id: int):
    lots = inventory_service.list_open_lots(tenant(), item_id, location_id=query_int("location_id"))
    return jsonify({"items": [l.to_dict() for l in lots], "count": len(lots)})


@inventory_bp.get("/items/<int:item_id>/unit-cost")
@require_tenant
@translate_errors
def unit_cost_route(item_id: int):
    """Read-only quote: what deducting `quantity` would cost right now."""
    quantity = query_int("quantity") or 1
    unit = valuation_service.quote_unit_cost(
        tenant(),
        item_id,
        quantity,
        method=request.args.get("method"),
        location_id=query_int("location_id"),
    )
    return jsonify({"item_id": item_id, "quantity": quantity, "unit_cost_cents": unit})


@inventory_bp.get("/cost-alerts")
@require_tenant
@translate_errors
def cost_alerts_route():
    alerts = cost_service.list_cost_alerts(tenant(), alert_type=request.args.get("type"))
    return jsonify({"items": [a.to_dict() for a in alerts], "count": len(alerts)})


@inventory_bp.get("/audit")
@require_tenant
@translate_errors
def audit_route():
    problems = inventory_service.audit_stock_levels(tenant())
    return jsonify({"ok": not problems, "problems": problems})
