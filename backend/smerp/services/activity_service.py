# Overview: Append-only user activity log written alongside the change it records.

from __future__ import annotations

from ..extensions import db
from ..models import UserActivity


"""
Activity log invariants

- Append-only: no updates or deletes of existing rows.
- Rows are added to the caller's session and committed with the change
  they describe; this module never commits.
- No domain logic here.
"""


def record_activity(
    user_id: int | None,
    action: str,
    target: str | None = None,
    description: str | None = None,
) -> UserActivity:
    entry = UserActivity(
        user_id=user_id,
        action=action,
        target=target,
        description=description,
    )
    db.session.add(entry)
    return entry


def list_activities(*, user_id: int | None = None, limit: int = 100) -> list[UserActivity]:
    query = db.session.query(UserActivity)
    if user_id is not None:
        query = query.filter(UserActivity.user_id == user_id)
    limit = max(1, min(limit, 500))
    return query.order_by(UserActivity.id.desc()).limit(limit).all()
