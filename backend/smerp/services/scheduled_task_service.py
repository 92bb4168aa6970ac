# Overview: Simple dated to-do list shown on the dashboard.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError
from ..models import ScheduledTask
from ..validation import ModelValidationPolicy, validate_payload
from .activity_service import record_activity


TASK_POLICY = ModelValidationPolicy(
    writable_fields={"description", "due_date"},
    required_on_create={"description"},
)


def create_task(payload: dict, *, actor_id: int | None = None) -> ScheduledTask:
    patch = validate_payload(model=ScheduledTask, payload=payload, policy=TASK_POLICY, partial=False)
    task = ScheduledTask(created_by=actor_id, **patch)
    db.session.add(task)
    db.session.flush()
    record_activity(actor_id, "create", f"scheduled_task:{task.id}", None)
    db.session.commit()
    return task


def list_tasks() -> list[ScheduledTask]:
    # Undated tasks last
    return (
        db.session.query(ScheduledTask)
        .order_by(ScheduledTask.due_date.is_(None), ScheduledTask.due_date.asc(), ScheduledTask.id.asc())
        .all()
    )


def _get_task(task_id: int) -> ScheduledTask:
    task = db.session.get(ScheduledTask, task_id)
    if task is None:
        raise NotFoundError("Scheduled task not found")
    return task


def update_task(task_id: int, payload: dict, *, actor_id: int | None = None) -> ScheduledTask:
    task = _get_task(task_id)
    patch = validate_payload(model=ScheduledTask, payload=payload, policy=TASK_POLICY, partial=True)
    for key, value in patch.items():
        setattr(task, key, value)
    record_activity(actor_id, "update", f"scheduled_task:{task.id}", None)
    db.session.commit()
    return task


def delete_task(task_id: int, *, actor_id: int | None = None) -> None:
    task = _get_task(task_id)
    record_activity(actor_id, "delete", f"scheduled_task:{task.id}", None)
    db.session.delete(task)
    db.session.commit()
