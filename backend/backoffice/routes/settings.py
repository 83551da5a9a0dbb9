# Overview: Flask API routes for per-company settings.

from flask import Blueprint, jsonify

from ..decorators import require_tenant, translate_errors
from ..services import settings_service
from .helpers import json_body, tenant

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_tenant
@translate_errors
def get_settings_route():
    return jsonify({"settings": settings_service.get_tenant_settings(tenant()).to_dict()})


@settings_bp.patch("")
@require_tenant
@translate_errors
def update_settings_route():
    """
    Request body (any subset):
    {"valuation_method": "lifo", "cost_spike_threshold_pct": 25, "enable_cost_alerts": false}
    """
    settings = settings_service.update_tenant_settings(company_id=tenant(), changes=json_body())
    return jsonify({"settings": settings.to_dict()})
