# Overview: Flask API routes for company settings, the backup schedule, backups and dashboard tasks.

from __future__ import annotations

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_admin, require_auth, require_permission, current_user_id
from ..services import backup_service, scheduled_task_service, settings_service
from ..services.activity_service import record_activity
from ..extensions import db
from smerp.time_utils import utcnow


settings_bp = Blueprint("settings", __name__, url_prefix="/api")


# =============================================================================
# Settings documents
# =============================================================================

@settings_bp.get("/settings/company")
@require_auth
@require_permission("settings", "read")
def get_company_route():
    return jsonify(settings_service.get_setting("company"))


@settings_bp.put("/settings/company")
@require_auth
@require_permission("settings", "write")
def update_company_route():
    """Partial update of business_number, name, contact_name, address, type, category."""
    data = request.get_json(silent=True)
    value = settings_service.set_setting("company", data, actor_id=current_user_id())
    return jsonify(value)


@settings_bp.get("/settings/backup-schedule")
@require_auth
@require_permission("settings", "read")
def get_backup_schedule_route():
    return jsonify(settings_service.get_setting("backup_schedule"))


@settings_bp.put("/settings/backup-schedule")
@require_auth
@require_permission("settings", "write")
def update_backup_schedule_route():
    """
    Request body: {"enabled": true, "interval_hours": 24, "keep": 7}

    last_backup_at is maintained by the server and rejected here.
    """
    data = request.get_json(silent=True)
    value = settings_service.set_setting("backup_schedule", data, actor_id=current_user_id())
    return jsonify(value)


# =============================================================================
# Backups
# =============================================================================

@settings_bp.get("/settings/backups")
@require_auth
@require_permission("settings", "read")
def list_backups_route():
    return jsonify({"items": backup_service.list_backups()})


@settings_bp.post("/settings/backup")
@require_auth
@require_permission("settings", "write")
def create_backup_route():
    now = utcnow()
    info = backup_service.create_backup(now)
    settings_service.record_backup_time(now)
    record_activity(current_user_id(), "backup", None, info["filename"])
    db.session.commit()
    return jsonify(info), 201


@settings_bp.post("/settings/restore")
@require_auth
@require_admin
def restore_backup_route():
    """
    Request body: {"filename": "smerp-20240501-030000.sqlite3"}

    Replaces the whole database. Every session token issued after the
    snapshot was taken stops working, including possibly the caller's.
    """
    data = request.get_json(silent=True) or {}
    filename = data.get("filename")
    if not filename:
        return jsonify({"error": "filename is required"}), 400

    actor_id = current_user_id()
    info = backup_service.restore_backup(filename)
    current_app.logger.warning("Restore of %s requested by user %s", filename, actor_id)
    return jsonify({"restored": info}), 200


# =============================================================================
# Scheduled tasks
# =============================================================================

@settings_bp.get("/scheduled-tasks")
@require_auth
@require_permission("dashboard", "read")
def list_tasks_route():
    return jsonify({"items": [t.to_dict() for t in scheduled_task_service.list_tasks()]})


@settings_bp.post("/scheduled-tasks")
@require_auth
@require_permission("dashboard", "write")
def create_task_route():
    """Request body: {"description": "Call supplier", "due_date": "2024-05-03"}"""
    data = request.get_json(silent=True) or {}
    task = scheduled_task_service.create_task(data, actor_id=current_user_id())
    return jsonify(task.to_dict()), 201


@settings_bp.put("/scheduled-tasks/<int:task_id>")
@require_auth
@require_permission("dashboard", "write")
def update_task_route(task_id: int):
    data = request.get_json(silent=True) or {}
    task = scheduled_task_service.update_task(task_id, data, actor_id=current_user_id())
    return jsonify(task.to_dict())


@settings_bp.delete("/scheduled-tasks/<int:task_id>")
@require_auth
@require_permission("dashboard", "delete")
def delete_task_route(task_id: int):
    scheduled_task_service.delete_task(task_id, actor_id=current_user_id())
    return jsonify({"message": "Task deleted"}), 200
