# Overview: Request decorators for API routes; tenant context and error translation.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    DuplicatePostingError,
    InsufficientStockError,
    InvalidTransitionError,
    TenantAccessError,
    UnbalancedPostingError,
    ValidationError,
)
from .services.catalog_service import ConflictError
from .services.expense_service import ExpenseError
from .services.production_service import ProductionError
from .services.purchase_service import PurchaseError
from .services.return_service import ReturnError
from .services.tenant_service import require_company


def require_tenant(f):
    """
    Establish tenant context from gateway headers.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.company_id: tenant every service call is scoped to - REQUIRED
    - g.user_id: acting user (X-User-Id), recorded as actor_id - optional

    Authentication happens upstream; the gateway sets both headers. Returns
    401 if X-Company-Id is missing, malformed, or names no active company.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_company = request.headers.get("X-Company-Id", "").strip()
        if not raw_company.isdigit():
            return jsonify({"error": "Tenant context required"}), 401
        try:
            require_company(int(raw_company))
        except TenantAccessError:
            return jsonify({"error": "Invalid tenant context"}), 401

        raw_user = request.headers.get("X-User-Id", "").strip()
        g.company_id = int(raw_company)
        g.user_id = int(raw_user) if raw_user.isdigit() else None

        return f(*args, **kwargs)

    return decorated_function


# Most specific first: InsufficientStockError is also a ValueError.
_STATUS_BY_ERROR = (
    (TenantAccessError, 404),
    (InsufficientStockError, 409),
    (ConcurrencyConflictError, 409),
    (InvalidTransitionError, 409),
    (DuplicatePostingError, 409),
    (ConflictError, 409),
    (ReturnError, 409),
    (ProductionError, 409),
    (PurchaseError, 409),
    (ExpenseError, 409),
    (ConfigurationError, 422),
    (ValidationError, 400),
    # Malformed dates and the like raised below the validation layer
    (ValueError, 400),
)


def translate_errors(f):
    """
    Map domain exceptions to JSON error responses.

    Services have already rolled back by the time an exception gets here.
    UnbalancedPostingError and anything unexpected are defects: logged with
    the traceback and answered with a generic 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except UnbalancedPostingError:
            current_app.logger.exception("Unbalanced journal posting in %s", request.path)
            return jsonify({"error": "Internal server error"}), 500
        except Exception as e:
            for error_cls, status in _STATUS_BY_ERROR:
                if isinstance(e, error_cls):
                    body = {"error": str(e)}
                    if isinstance(e, InsufficientStockError):
                        body.update(
                            item_id=e.item_id,
                            location_id=e.location_id,
                            requested=e.requested,
                            available=e.available,
                        )
                    return jsonify(body), status
            current_app.logger.exception("Unhandled error in %s", request.path)
            return jsonify({"error": "Internal server error"}), 500

    return decorated_function
