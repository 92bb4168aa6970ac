from __future__ import annotations

import json
from typing import Any

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Setting
from smerp.time_utils import parse_iso_datetime, to_utc_z


"""
Settings are JSON documents keyed by name. Only the keys in SETTINGS_SCHEMA
exist; each key's fields are validated and merged over the defaults, so a
read always returns every field.

Managed fields are written by the server only (e.g. the backup timestamp)
and rejected when a client sends them.
"""


COMPANY_FIELDS = ("business_number", "name", "contact_name", "address", "type", "category")

SETTINGS_SCHEMA: dict[str, dict[str, Any]] = {
    "company": {
        "defaults": {field: "" for field in COMPANY_FIELDS},
        "managed": set(),
    },
    "backup_schedule": {
        "defaults": {
            "enabled": False,
            "interval_hours": 24,
            "keep": 7,
            "last_backup_at": None,
        },
        "managed": {"last_backup_at"},
    },
}


def _validate_company(value: dict) -> dict:
    cleaned = {}
    for key, raw in value.items():
        if key not in COMPANY_FIELDS:
            raise ValidationError(f"Unknown field: {key}")
        if raw is None:
            raw = ""
        if not isinstance(raw, str):
            raise ValidationError(f"{key} must be a string")
        if len(raw) > 255:
            raise ValidationError(f"{key} exceeds max length 255")
        cleaned[key] = raw.strip()
    return cleaned


def _bounded_int(value, key: str, low: int, high: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if value < low or value > high:
        raise ValidationError(f"{key} must be between {low} and {high}")
    return value


def _validate_backup_schedule(value: dict) -> dict:
    cleaned = {}
    for key, raw in value.items():
        if key == "enabled":
            if not isinstance(raw, bool):
                raise ValidationError("enabled must be a boolean")
            cleaned[key] = raw
        elif key == "interval_hours":
            cleaned[key] = _bounded_int(raw, key, 1, 720)
        elif key == "keep":
            cleaned[key] = _bounded_int(raw, key, 1, 100)
        else:
            raise ValidationError(f"Unknown field: {key}")
    return cleaned


_VALIDATORS = {
    "company": _validate_company,
    "backup_schedule": _validate_backup_schedule,
}


def _schema(key: str) -> dict:
    if key not in SETTINGS_SCHEMA:
        raise NotFoundError(f"Unknown setting: {key}")
    return SETTINGS_SCHEMA[key]


def get_setting(key: str) -> dict:
    schema = _schema(key)
    value = dict(schema["defaults"])
    row = db.session.get(Setting, key)
    if row is not None:
        value.update(json.loads(row.value))
    return value


def set_setting(key: str, value: dict, *, actor_id: int | None = None) -> dict:
    """Validate a partial update and merge it over the stored value."""
    schema = _schema(key)
    if not isinstance(value, dict):
        raise ValidationError("Setting value must be an object")

    managed = set(value) & schema["managed"]
    if managed:
        raise ValidationError(f"Field is managed by the server: {', '.join(sorted(managed))}")

    cleaned = _VALIDATORS[key](value)
    return _store(key, cleaned, actor_id=actor_id)


def _store(key: str, patch: dict, *, actor_id: int | None = None) -> dict:
    merged = get_setting(key)
    merged.update(patch)

    row = db.session.get(Setting, key)
    if row is None:
        row = Setting(key=key, value="{}")
        db.session.add(row)
    row.value = json.dumps(merged, sort_keys=True)
    row.updated_by = actor_id
    db.session.commit()
    return merged


def get_last_backup_at(schedule: dict):
    return parse_iso_datetime(schedule.get("last_backup_at"))


def record_backup_time(when) -> dict:
    return _store("backup_schedule", {"last_backup_at": to_utc_z(when)})
