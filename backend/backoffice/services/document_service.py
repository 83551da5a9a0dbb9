# Overview: Per-company document number sequences.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflictError
from ..extensions import db
from ..models import DocumentSequence

# document_type -> printed prefix
DOCUMENT_PREFIXES = {
    "ORDER": "ORD",
    "POS": "POS",
    "COLLECTION": "COL",
    "DEPOSIT": "DEP",
    "PRODUCTION": "PRD",
    "PURCHASE": "PUR",
    "RETURN": "RET",
    "JOURNAL": "JE",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(*, company_id: int, document_type: str, pad: int = 5) -> str:
    """
    Allocate the next document number for a company/type.

    The counter is bumped with one atomic UPDATE inside the caller's
    transaction (flush only), so a rolled-back operation gives its number
    back. Two first-ever allocations racing on the INSERT surface as
    ConcurrencyConflictError and the operation is retried.
    """
    if not company_id:
        raise DocumentSequenceError("company_id is required")
    prefix = DOCUMENT_PREFIXES.get(document_type)
    if not prefix:
        raise DocumentSequenceError(f"unknown document_type {document_type!r}")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.company_id == company_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(company_id=company_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(DocumentSequence(company_id=company_id, document_type=document_type, next_number=2))
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflictError(
                f"document sequence {document_type} for company {company_id} created concurrently"
            ) from exc
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"
