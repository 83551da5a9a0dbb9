# Overview: Per-company valuation, alert and currency settings.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app

from ..errors import ConfigurationError, ValidationError
from ..extensions import db
from ..models import TenantSettings
from .concurrency import run_with_retry
from .tenant_service import require_company

VALUATION_METHODS = ("fifo", "lifo", "weighted_average", "standard")

_INT_FIELDS = ("cost_spike_threshold_pct", "low_margin_threshold_pct")


def normalize_valuation_method(method) -> str:
    """Lower-case a method name and make sure it is one we know how to value."""
    value = str(method or "").strip().lower()
    if value not in VALUATION_METHODS:
        raise ConfigurationError(
            f"unknown valuation method {method!r}; expected one of {', '.join(VALUATION_METHODS)}"
        )
    return value


def get_tenant_settings(company_id: int, *, create: bool = False) -> TenantSettings:
    """
    Settings row for a company.

    Companies without a row get an unsaved row carrying the defaults
    (DEFAULT_VALUATION_METHOD from config), unless create=True, in which
    case it is added to the session.
    """
    settings = db.session.query(TenantSettings).filter_by(company_id=company_id).first()
    if settings is not None:
        return settings

    settings = TenantSettings(
        company_id=company_id,
        valuation_method=current_app.config.get("DEFAULT_VALUATION_METHOD", "fifo"),
        cost_spike_threshold_pct=20,
        low_margin_threshold_pct=10,
        enable_cost_alerts=True,
        currency_code="USD",
        exchange_rate=Decimal("1"),
    )
    if create:
        db.session.add(settings)
        db.session.flush()
    return settings


def get_valuation_method(company_id: int) -> str:
    return normalize_valuation_method(get_tenant_settings(company_id).valuation_method)


def update_tenant_settings(*, company_id: int, changes: dict) -> TenantSettings:
    """Validate and apply a partial settings update."""
    require_company(company_id)
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("no settings supplied")

    def _op() -> TenantSettings:
        settings = get_tenant_settings(company_id, create=True)

        for key, value in changes.items():
            if key == "valuation_method":
                settings.valuation_method = normalize_valuation_method(value)
            elif key in _INT_FIELDS:
                try:
                    pct = int(value)
                except (TypeError, ValueError):
                    raise ValidationError(f"{key} must be an integer percentage")
                if pct < 0 or pct > 1000:
                    raise ValidationError(f"{key} must be between 0 and 1000")
                setattr(settings, key, pct)
            elif key == "enable_cost_alerts":
                if not isinstance(value, bool):
                    raise ValidationError("enable_cost_alerts must be a boolean")
                settings.enable_cost_alerts = value
            elif key == "currency_code":
                code = str(value or "").strip().upper()
                if len(code) != 3 or not code.isalpha():
                    raise ValidationError("currency_code must be a 3-letter code")
                settings.currency_code = code
            elif key == "exchange_rate":
                try:
                    rate = Decimal(str(value))
                except InvalidOperation:
                    raise ValidationError("exchange_rate must be numeric")
                if rate <= 0:
                    raise ValidationError("exchange_rate must be positive")
                settings.exchange_rate = rate
            else:
                raise ValidationError(f"unknown setting {key!r}")

        db.session.commit()
        return settings

    return run_with_retry(_op)
