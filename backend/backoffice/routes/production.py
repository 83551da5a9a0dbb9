# Overview: Flask API routes for production runs.

from flask import Blueprint, jsonify, request

from ..decorators import require_tenant, translate_errors
from ..services import production_service
from .helpers import actor, json_body, require_field, tenant

production_bp = Blueprint("production", __name__, url_prefix="/api/production")


@production_bp.post("/runs")
@require_tenant
@translate_errors
def create_run_route():
    payload = json_body()
    run = production_service.create_run(
        company_id=tenant(),
        output_item_id=require_field(payload, "output_item_id"),
        output_location_id=require_field(payload, "output_location_id"),
        output_quantity=require_field(payload, "output_quantity"),
        notes=payload.get("notes"),
        actor_id=actor(),
    )
    return jsonify({"run": run.to_dict()}), 201


@production_bp.get("/runs")
@require_tenant
@translate_errors
def list_runs_route():
    runs = production_service.list_runs(tenant(), status=request.args.get("status"))
    return jsonify({"items": [r.to_dict() for r in runs], "count": len(runs)})


@production_bp.get("/runs/<int:run_id>")
@require_tenant
@translate_errors
def run_summary_route(run_id: int):
    return jsonify({"run": production_service.get_run_summary(tenant(), run_id)})


@production_bp.post("/runs/<int:run_id>/materials")
@require_tenant
@translate_errors
def add_material_route(run_id: int):
    payload = json_body()
    material = production_service.add_material(
        company_id=tenant(),
        run_id=run_id,
        item_id=require_field(payload, "item_id"),
        location_id=require_field(payload, "location_id"),
        quantity=require_field(payload, "quantity"),
    )
    return jsonify({"material": material.to_dict()}), 201


@production_bp.delete("/runs/<int:run_id>/materials/<int:material_id>")
@require_tenant
@translate_errors
def remove_material_route(run_id: int, material_id: int):
    production_service.remove_material(company_id=tenant(), run_id=run_id, material_id=material_id)
    return "", 204


@production_bp.post("/runs/<int:run_id>/costs")
@require_tenant
@translate_errors
def add_cost_route(run_id: int):
    payload = json_body()
    cost = production_service.add_extra_cost(
        company_id=tenant(),
        run_id=run_id,
        amount_cents=require_field(payload, "amount_cents"),
        description=require_field(payload, "description"),
        actor_id=actor(),
        incurred_at=payload.get("incurred_at"),
    )
    return jsonify({"cost": cost.to_dict()}), 201


@production_bp.delete("/runs/<int:run_id>/costs/<int:cost_id>")
@require_tenant
@translate_errors
def remove_cost_route(run_id: int, cost_id: int):
    production_service.remove_extra_cost(company_id=tenant(), run_id=run_id, cost_id=cost_id, actor_id=actor())
    return "", 204


@production_bp.post("/runs/<int:run_id>/complete")
@require_tenant
@translate_errors
def complete_run_route(run_id: int):
    payload = json_body()
    run = production_service.complete_run(
        company_id=tenant(), run_id=run_id, actor_id=actor(), completed_at=payload.get("completed_at")
    )
    return jsonify({"run": run.to_dict()})


@production_bp.delete("/runs/<int:run_id>")
@require_tenant
@translate_errors
def delete_run_route(run_id: int):
    run = production_service.delete_run(company_id=tenant(), run_id=run_id, actor_id=actor())
    return jsonify({"run": run.to_dict()})
