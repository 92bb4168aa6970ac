# Overview: SQLite snapshot backup, verification, restore and the periodic backup check.

"""
Backups are standalone SQLite files written with the online backup API, so
they are consistent even while the application keeps writing. Every
snapshot is verified with PRAGMA quick_check before it is kept or restored.

Files live in BACKUP_DIR (relative paths resolve against the instance
folder) and are named smerp-YYYYMMDD-HHMMSS.sqlite3.
"""

from __future__ import annotations

import re
import sqlite3
from contextlib import closing
from datetime import datetime, timedelta, timezone
from pathlib import Path

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, PersistenceError, ValidationError
from smerp.time_utils import utcnow, to_utc_z
from . import settings_service


BACKUP_PREFIX = "smerp-"
BACKUP_SUFFIX = ".sqlite3"
BACKUP_NAME_RE = re.compile(r"^smerp-\d{8}-\d{6}(?:-\d+)?\.sqlite3$")


def database_path() -> Path:
    """Absolute path of the live SQLite database file."""
    url = db.engine.url
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        raise PersistenceError("Backups are only supported for file-based SQLite databases")
    return Path(url.database).resolve()


def backup_dir() -> Path:
    directory = Path(current_app.config.get("BACKUP_DIR", "backups"))
    if not directory.is_absolute():
        directory = Path(current_app.instance_path) / directory
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def quick_check(path: Path) -> bool:
    """PRAGMA quick_check on a read-only connection; True iff the result is 'ok'."""
    if not path.is_file():
        return False
    try:
        with closing(sqlite3.connect(f"file:{path.as_posix()}?mode=ro", uri=True)) as con:
            row = con.execute("PRAGMA quick_check;").fetchone()
    except sqlite3.DatabaseError as exc:
        current_app.logger.warning("quick_check failed for %s: %s", path.name, exc)
        return False
    return bool(row) and isinstance(row[0], str) and row[0].lower() == "ok"


def _describe(path: Path) -> dict:
    stat = path.stat()
    return {
        "filename": path.name,
        "size_bytes": stat.st_size,
        "created_at": to_utc_z(datetime.fromtimestamp(stat.st_mtime, timezone.utc)),
    }


def _target_path(now: datetime) -> Path:
    directory = backup_dir()
    stem = f"{BACKUP_PREFIX}{now.strftime('%Y%m%d-%H%M%S')}"
    target = directory / f"{stem}{BACKUP_SUFFIX}"
    counter = 1
    while target.exists():
        target = directory / f"{stem}-{counter}{BACKUP_SUFFIX}"
        counter += 1
    return target


def create_backup(now: datetime | None = None) -> dict:
    """Snapshot the live database; the file is removed again if it fails verification."""
    source = database_path()
    target = _target_path(now or utcnow())

    try:
        with closing(sqlite3.connect(str(source))) as src, closing(sqlite3.connect(str(target))) as dst:
            src.backup(dst)
    except sqlite3.Error as exc:
        target.unlink(missing_ok=True)
        current_app.logger.exception("Backup to %s failed", target.name)
        raise PersistenceError(f"Backup failed: {exc}") from exc

    if not quick_check(target):
        target.unlink(missing_ok=True)
        raise PersistenceError("Backup failed verification")

    current_app.logger.info("Backup written: %s", target.name)
    return _describe(target)


def list_backups() -> list[dict]:
    files = [p for p in backup_dir().iterdir() if p.is_file() and BACKUP_NAME_RE.match(p.name)]
    return [_describe(p) for p in sorted(files, key=lambda p: p.name, reverse=True)]


def _resolve_backup(filename: str) -> Path:
    if not isinstance(filename, str) or not BACKUP_NAME_RE.match(filename):
        raise ValidationError("Invalid backup filename")
    path = backup_dir() / filename
    if not path.is_file():
        raise NotFoundError("Backup not found", {"filename": filename})
    return path


def restore_backup(filename: str) -> dict:
    """
    Replace the live database contents with a verified snapshot.

    Open sessions are removed and the engine's pooled connections disposed
    first, so no connection keeps serving pre-restore pages.
    """
    snapshot = _resolve_backup(filename)
    if not quick_check(snapshot):
        raise ValidationError("Backup failed verification", {"filename": filename})

    live = database_path()
    db.session.remove()
    db.engine.dispose()

    try:
        with closing(sqlite3.connect(str(snapshot))) as src, closing(sqlite3.connect(str(live))) as dst:
            src.backup(dst)
    except sqlite3.Error as exc:
        current_app.logger.exception("Restore from %s failed", filename)
        raise PersistenceError(f"Restore failed: {exc}") from exc

    current_app.logger.warning("Database restored from %s", filename)
    return _describe(snapshot)


def prune_backups(keep: int) -> list[str]:
    """Delete all but the newest `keep` backups; returns removed filenames."""
    removed = []
    for info in list_backups()[keep:]:
        (backup_dir() / info["filename"]).unlink(missing_ok=True)
        removed.append(info["filename"])
    return removed


def run_scheduled_backup(now: datetime | None = None) -> dict | None:
    """
    Back up if the schedule is enabled and interval_hours have passed since
    the last backup. Returns the new backup's description, or None.

    Meant to be called from cron via `flask maintenance scheduled-backup`.
    """
    now = now or utcnow()
    schedule = settings_service.get_setting("backup_schedule")
    if not schedule["enabled"]:
        return None

    last = settings_service.get_last_backup_at(schedule)
    if last is not None and now - last < timedelta(hours=schedule["interval_hours"]):
        return None

    info = create_backup(now)
    info["pruned"] = prune_backups(schedule["keep"])
    settings_service.record_backup_time(now)
    return info
