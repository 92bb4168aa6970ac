# Overview: Flask API routes for dashboard figures and monthly revenue/expense totals.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
@require_permission("dashboard", "read")
def dashboard_summary_route():
    """
    Query: start, end (ISO dates; default the current month to date).

    Each figure carries current, previous (same period a month earlier),
    change_pct and is_increase.
    """
    report = reporting_service.dashboard_summary(
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
    return jsonify(report), 200


@reports_bp.get("/monthly")
@require_auth
@require_permission("vouchers", "read")
def monthly_totals_route():
    report = reporting_service.monthly_totals(
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
    return jsonify(report), 200
