# Overview: Flask API routes for collections, deposits, delivery tasks and derived driver cash.

from flask import Blueprint, jsonify, request

from ..decorators import require_tenant, translate_errors
from ..services import cash_service, collection_service, deposit_service, task_service
from .helpers import actor, json_body, query_date, query_datetime, query_int, require_field, tenant

cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


# =============================================================================
# COLLECTIONS
# =============================================================================

@cash_bp.post("/collections")
@require_tenant
@translate_errors
def create_collection_route():
    """
    Request body:
    {"customer_id": 1, "amount_cents": 4000, "payment_type": "cash", "driver_id": 3}
    """
    payload = json_body()
    collection = collection_service.create_collection(
        company_id=tenant(),
        customer_id=require_field(payload, "customer_id"),
        amount_cents=require_field(payload, "amount_cents"),
        payment_type=payload.get("payment_type") or "cash",
        driver_id=payload.get("driver_id"),
        reference=payload.get("reference"),
        collected_at=payload.get("collected_at"),
        actor_id=actor(),
    )
    return jsonify({"collection": collection.to_dict()}), 201


@cash_bp.get("/collections")
@require_tenant
@translate_errors
def list_collections_route():
    collections = collection_service.list_collections(
        tenant(),
        customer_id=query_int("customer_id"),
        driver_id=query_int("driver_id"),
        start=query_datetime("start"),
        end=query_datetime("end"),
    )
    return jsonify({"items": [c.to_dict() for c in collections], "count": len(collections)})


# =============================================================================
# DEPOSITS
# =============================================================================

@cash_bp.post("/deposits")
@require_tenant
@translate_errors
def create_deposit_route():
    payload = json_body()
    deposit = deposit_service.create_deposit(
        company_id=tenant(),
        driver_id=require_field(payload, "driver_id"),
        amount_cents=require_field(payload, "amount_cents"),
        deposit_type=payload.get("deposit_type") or "bank",
        reference=payload.get("reference"),
        deposited_at=payload.get("deposited_at"),
        actor_id=actor(),
    )
    return jsonify({"deposit": deposit.to_dict()}), 201


@cash_bp.put("/deposits/<int:deposit_id>/status")
@require_tenant
@translate_errors
def update_deposit_status_route(deposit_id: int):
    payload = json_body()
    deposit = deposit_service.update_deposit_status(
        company_id=tenant(), deposit_id=deposit_id, status=require_field(payload, "status"), actor_id=actor()
    )
    return jsonify({"deposit": deposit.to_dict()})


@cash_bp.get("/deposits")
@require_tenant
@translate_errors
def list_deposits_route():
    deposits = deposit_service.list_deposits(
        tenant(), status=request.args.get("status"), driver_id=query_int("driver_id")
    )
    return jsonify({"items": [d.to_dict() for d in deposits], "count": len(deposits)})


# =============================================================================
# DELIVERY TASKS
# =============================================================================

@cash_bp.post("/tasks")
@require_tenant
@translate_errors
def create_task_route():
    payload = json_body()
    task = task_service.create_task(
        company_id=tenant(),
        title=require_field(payload, "title"),
        driver_id=payload.get("driver_id"),
        customer_id=payload.get("customer_id"),
        order_id=payload.get("order_id"),
        amount_due_cents=payload.get("amount_due_cents", 0),
        scheduled_for=payload.get("scheduled_for"),
        actor_id=actor(),
    )
    return jsonify({"task": task.to_dict()}), 201


@cash_bp.put("/tasks/<int:task_id>/status")
@require_tenant
@translate_errors
def update_task_status_route(task_id: int):
    payload = json_body()
    task = task_service.update_task_status(
        company_id=tenant(),
        task_id=task_id,
        status=require_field(payload, "status"),
        paid_cents=payload.get("paid_cents"),
        completed_at=payload.get("completed_at"),
    )
    return jsonify({"task": task.to_dict()})


@cash_bp.get("/tasks")
@require_tenant
@translate_errors
def list_tasks_route():
    tasks = task_service.list_tasks(tenant(), driver_id=query_int("driver_id"), status=request.args.get("status"))
    return jsonify({"items": [t.to_dict() for t in tasks], "count": len(tasks)})


# =============================================================================
# DERIVED CASH
# =============================================================================

@cash_bp.get("/drivers/<int:driver_id>")
@require_tenant
@translate_errors
def driver_cash_route(driver_id: int):
    position = cash_service.cash_on_hand(
        tenant(), driver_id, start=query_datetime("start"), as_of=query_datetime("as_of")
    )
    return jsonify(position.to_dict())


@cash_bp.get("/vans")
@require_tenant
@translate_errors
def van_cash_route():
    vans = cash_service.van_cash(tenant())
    return jsonify({"items": vans, "count": len(vans)})


@cash_bp.get("/overview")
@require_tenant
@translate_errors
def cash_overview_route():
    return jsonify(cash_service.cash_overview(tenant(), day=query_date("day")))
