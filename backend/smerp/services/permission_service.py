# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission model

- Admins bypass every check.
- Everyone else holds one UserPermission row per resource with four flags:
  read, write, delete, export. A missing row means no access.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..models import User, UserPermission
from .activity_service import record_activity


RESOURCES = (
    "dashboard",
    "partners",
    "items",
    "barcodes",
    "purchases",
    "sales",
    "inventory",
    "vouchers",
    "accounts",
    "payments",
    "tax",
    "users",
    "settings",
    "notifications",
)

ACTIONS = ("read", "write", "delete", "export")

# Default grants for a newly created non-admin user
DEFAULT_STAFF_RESOURCES = ("dashboard", "partners", "items", "barcodes", "sales", "inventory", "notifications")


def get_user_permissions(user_id: int) -> dict[str, set[str]]:
    rows = db.session.query(UserPermission).filter_by(user_id=user_id).all()
    return {row.resource: row.actions() for row in rows}


def ensure_permission(ctx, resource: str, action: str) -> None:
    """Raise PermissionDeniedError unless the request context allows resource/action."""
    if not ctx.can(resource, action):
        raise PermissionDeniedError(
            "Permission denied",
            {"resource": resource, "action": action},
        )


def set_user_permissions(
    user_id: int,
    grants: dict[str, dict],
    *,
    actor_id: int | None = None,
    commit: bool = True,
) -> list[UserPermission]:
    """
    Replace a user's permission flags for the given resources.

    grants: {"items": {"read": true, "write": true}, ...}. Resources not
    mentioned keep their current rows.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")
    if not isinstance(grants, dict):
        raise ValidationError("permissions must be an object keyed by resource")

    rows = []
    for resource, flags in grants.items():
        if resource not in RESOURCES:
            raise ValidationError(f"Unknown resource: {resource}")
        if not isinstance(flags, dict):
            raise ValidationError(f"permissions for {resource} must be an object")
        unknown = set(flags) - set(ACTIONS)
        if unknown:
            raise ValidationError(f"Unknown actions: {', '.join(sorted(unknown))}")

        row = db.session.query(UserPermission).filter_by(user_id=user_id, resource=resource).first()
        if row is None:
            row = UserPermission(user_id=user_id, resource=resource, can_read=False)
            db.session.add(row)
        row.can_read = bool(flags.get("read", row.can_read))
        row.can_write = bool(flags.get("write", row.can_write))
        row.can_delete = bool(flags.get("delete", row.can_delete))
        row.can_export = bool(flags.get("export", row.can_export))
        rows.append(row)

    record_activity(actor_id, "update", f"user:{user_id}", "Updated permissions")
    if commit:
        db.session.commit()
    return rows


def grant_default_permissions(user_id: int, *, full: bool = False) -> None:
    """Seed permission rows; full=True grants every action on every resource."""
    resources = RESOURCES if full else DEFAULT_STAFF_RESOURCES
    for resource in resources:
        existing = db.session.query(UserPermission).filter_by(user_id=user_id, resource=resource).first()
        if existing:
            continue
        db.session.add(UserPermission(
            user_id=user_id,
            resource=resource,
            can_read=True,
            can_write=full or resource in ("sales", "partners"),
            can_delete=full,
            can_export=full,
        ))
