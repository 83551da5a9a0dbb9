# Overview: Request parsing shared by the API blueprints.

from __future__ import annotations

from datetime import date, datetime

from flask import g, request

from ..errors import ValidationError
from ..time_utils import parse_iso_datetime
from ..validation import coerce_int


def tenant() -> int:
    return g.company_id


def actor() -> int | None:
    return getattr(g, "user_id", None)


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_field(payload: dict, name: str):
    if payload.get(name) is None:
        raise ValidationError(f"{name} is required")
    return payload[name]


def query_int(name: str) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return coerce_int(name, raw)


def query_datetime(name: str) -> datetime | None:
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def query_date(name: str) -> date | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD")
