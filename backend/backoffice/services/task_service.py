# Overview: Driver delivery tasks; completion records the cash taken on delivery.

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Customer, DeliveryTask, Employee, Order
from ..models.statuses import TaskStatus, ensure_transition, parse_status
from ..time_utils import normalize_occurred_at, utcnow
from ..validation import MAX_AMOUNT_CENTS, require_non_negative_int
from .concurrency import run_with_retry
from .tenant_service import require_company_record

_DONE = (TaskStatus.COMPLETED, TaskStatus.DELIVERED)


def create_task(
    *,
    company_id: int,
    title: str,
    driver_id: int | None = None,
    customer_id: int | None = None,
    order_id: int | None = None,
    amount_due_cents: int = 0,
    scheduled_for=None,
    actor_id: int | None = None,
) -> DeliveryTask:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required")
    amount_due = require_non_negative_int("amount_due_cents", amount_due_cents)

    def _op() -> DeliveryTask:
        if driver_id is not None:
            require_company_record(Employee, driver_id, company_id, label="driver")
        if customer_id is not None:
            require_company_record(Customer, customer_id, company_id)
        if order_id is not None:
            require_company_record(Order, order_id, company_id)

        task = DeliveryTask(
            company_id=company_id,
            title=title[:255],
            driver_id=driver_id,
            customer_id=customer_id,
            order_id=order_id,
            status=TaskStatus.PENDING.value,
            amount_due_cents=amount_due,
            paid_cents=0,
            scheduled_for=normalize_occurred_at(scheduled_for) if scheduled_for else None,
            created_by=actor_id,
        )
        db.session.add(task)
        db.session.commit()
        return task

    return run_with_retry(_op)


def update_task_status(
    *,
    company_id: int,
    task_id: int,
    status: str,
    paid_cents: int | None = None,
    completed_at=None,
) -> DeliveryTask:
    """
    Move a task along its lifecycle.

    On COMPLETED/DELIVERED the driver's collected amount is fixed
    (paid_cents, defaulting to amount_due_cents) and completed_at stamped;
    from then on it counts toward the driver's cash on hand. Tasks carry
    no journal record: the money is posted when it is deposited.
    """
    target = parse_status(TaskStatus, status)
    paid = None if paid_cents is None else require_non_negative_int(
        "paid_cents", paid_cents, maximum=MAX_AMOUNT_CENTS
    )

    def _op() -> DeliveryTask:
        task = require_company_record(DeliveryTask, task_id, company_id, label="task")
        task.status = ensure_transition(TaskStatus, task.status, target).value
        if target in _DONE:
            task.paid_cents = task.amount_due_cents if paid is None else paid
            task.completed_at = normalize_occurred_at(completed_at) if completed_at else utcnow()
        elif paid is not None:
            raise ValidationError("paid_cents can only be set when completing a task")
        db.session.commit()
        return task

    return run_with_retry(_op)


def list_tasks(company_id: int, *, driver_id: int | None = None, status: str | None = None) -> list[DeliveryTask]:
    q = db.session.query(DeliveryTask).filter(DeliveryTask.company_id == company_id)
    if driver_id is not None:
        q = q.filter(DeliveryTask.driver_id == driver_id)
    if status:
        q = q.filter(DeliveryTask.status == parse_status(TaskStatus, status).value)
    return q.order_by(DeliveryTask.id.desc()).all()
