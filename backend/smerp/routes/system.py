# backend/smerp/routes/system.py
"""
System health endpoint.

Reports database reachability, session table state and whether the
posting accounts the transaction processor depends on are seeded.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Account, Item, SessionToken, User
from smerp.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        item_count = db.session.query(Item).count()

        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {
                "users": user_count,
                "items": item_count,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Database error"
        }


def check_session_health() -> dict:
    start_time = time.time()
    try:
        active_sessions = db.session.query(SessionToken).filter_by(
            is_revoked=False
        ).count()

        # Could be removed by `flask maintenance cleanup-sessions`
        expired_sessions = db.session.query(SessionToken).filter(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(False)
        ).count()

        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {
                "active_sessions": active_sessions,
                "expired_pending_cleanup": expired_sessions,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Session health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Session table error"
        }


def check_accounts_health() -> dict:
    start_time = time.time()
    try:
        required = set(current_app.config["POSTING_ACCOUNTS"].values())
        present = {
            code for (code,) in db.session.query(Account.code).filter(Account.code.in_(required))
        }
        missing = sorted(required - present)

        if missing:
            return {
                "status": "degraded",
                "latency_ms": _elapsed_ms(start_time),
                "warning": f"Missing posting accounts: {', '.join(missing)}",
            }
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {"posting_accounts": len(present)},
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Account health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Account table error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint. No authentication.

    Returns:
    - 200: healthy or degraded (missing posting accounts)
    - 503: database unreachable
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "sessions": check_session_health(),
        "accounts": check_accounts_health(),
    }
    statuses = {check["status"] for check in checks.values()}

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }, http_status
