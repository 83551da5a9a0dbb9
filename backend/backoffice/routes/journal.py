# Overview: Flask API routes for the journal: records, manual entries, reversals and balances.

from flask import Blueprint, jsonify, request

from ..decorators import require_tenant, translate_errors
from ..services import journal_service
from .helpers import actor, json_body, query_datetime, query_int, require_field, tenant

journal_bp = Blueprint("journal", __name__, url_prefix="/api/journal")


@journal_bp.get("/records")
@require_tenant
@translate_errors
def list_records_route():
    records = journal_service.list_journal_records(
        tenant(),
        start=query_datetime("start"),
        end=query_datetime("end"),
        event_type=request.args.get("event_type"),
        limit=query_int("limit") or 200,
    )
    return jsonify({"items": [r.to_dict() for r in records], "count": len(records)})


@journal_bp.post("/entries")
@require_tenant
@translate_errors
def manual_entry_route():
    """
    Request body:
    {
        "description": "Owner capital",
        "reference": "CAP-1",  (optional, makes the call idempotent)
        "lines": [
            {"account_code": "1000", "debit_cents": 50000},
            {"account_code": "3000", "credit_cents": 50000}
        ]
    }
    """
    payload = json_body()
    record = journal_service.post_manual_entry(
        company_id=tenant(),
        lines=require_field(payload, "lines"),
        description=payload.get("description"),
        posted_at=payload.get("posted_at"),
        actor_id=actor(),
        reference=payload.get("reference"),
    )
    return jsonify({"record": record.to_dict()}), 201


@journal_bp.post("/records/<int:record_id>/reverse")
@require_tenant
@translate_errors
def reverse_record_route(record_id: int):
    payload = json_body()
    reversal = journal_service.reverse_record(
        company_id=tenant(), record_id=record_id, actor_id=actor(), description=payload.get("description")
    )
    return jsonify({"record": reversal.to_dict()}), 201


@journal_bp.get("/balances")
@require_tenant
@translate_errors
def balances_route():
    balances = journal_service.get_account_balances(tenant(), as_of=query_datetime("as_of"))
    return jsonify({"items": balances, "count": len(balances)})


@journal_bp.post("/accounts/seed")
@require_tenant
@translate_errors
def seed_accounts_route():
    created = journal_service.seed_accounts(tenant())
    return jsonify({"created": created})


@journal_bp.get("/audit")
@require_tenant
@translate_errors
def audit_route():
    problems = journal_service.audit_journal(tenant())
    return jsonify({"ok": not problems, "problems": problems})
