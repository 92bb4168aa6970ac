# Overview: Flask API routes for the chart of accounts and journal vouchers.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission, current_user_id
from ..services import accounting_service


accounting_bp = Blueprint("accounting", __name__, url_prefix="/api")


# =============================================================================
# Accounts
# =============================================================================

@accounting_bp.get("/accounts")
@require_auth
@require_permission("accounts", "read")
def list_accounts_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    accounts = accounting_service.list_accounts(active_only=active_only)
    return jsonify({"items": [a.to_dict() for a in accounts]})


@accounting_bp.post("/accounts")
@require_auth
@require_permission("accounts", "write")
def create_account_route():
    """Request body: {"code": "101", "name": "Cash", "type": "asset", "description": "..."}"""
    data = request.get_json(silent=True) or {}
    account = accounting_service.create_account(data, actor_id=current_user_id())
    return jsonify(account.to_dict()), 201


@accounting_bp.get("/accounts/<int:account_id>")
@require_auth
@require_permission("accounts", "read")
def get_account_route(account_id: int):
    return jsonify(accounting_service.get_account(account_id).to_dict())


@accounting_bp.put("/accounts/<int:account_id>")
@require_auth
@require_permission("accounts", "write")
def update_account_route(account_id: int):
    data = request.get_json(silent=True) or {}
    account = accounting_service.update_account(account_id, data, actor_id=current_user_id())
    return jsonify(account.to_dict())


@accounting_bp.delete("/accounts/<int:account_id>")
@require_auth
@require_permission("accounts", "delete")
def delete_account_route(account_id: int):
    """409 once any voucher line uses the account."""
    accounting_service.delete_account(account_id, actor_id=current_user_id())
    return jsonify({"message": "Account deleted"}), 200


# =============================================================================
# Vouchers
# =============================================================================

@accounting_bp.get("/vouchers")
@require_auth
@require_permission("vouchers", "read")
def list_vouchers_route():
    vouchers = accounting_service.list_vouchers(
        type=request.args.get("type") or None,
        status=request.args.get("status") or None,
        partner_id=request.args.get("partner_id", type=int),
        transaction_id=request.args.get("transaction_id", type=int),
    )
    return jsonify({"items": [v.to_dict() for v in vouchers]})


@accounting_bp.post("/vouchers")
@require_auth
@require_permission("vouchers", "write")
def create_voucher_route():
    """
    Create a balanced voucher.

    Request body:
    {
        "type": "income",               // income | expense | transfer
        "amount_cents": 11000,          // must equal the debit total
        "date": "2024-05-01",
        "partner_id": 1,
        "description": "...",
        "status": "draft",              // draft | confirmed
        "items": [
            {"account_id": 2, "amount_cents": 11000},    // debit
            {"account_id": 6, "amount_cents": -11000}    // credit
        ]
    }
    """
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    header = {k: v for k, v in data.items() if k != "items"}
    voucher = accounting_service.create_voucher(header, items, actor_id=current_user_id())
    return jsonify(voucher.to_dict(include_items=True)), 201


@accounting_bp.get("/vouchers/<int:voucher_id>")
@require_auth
@require_permission("vouchers", "read")
def get_voucher_route(voucher_id: int):
    return jsonify(accounting_service.get_voucher(voucher_id).to_dict(include_items=True))


@accounting_bp.put("/vouchers/<int:voucher_id>")
@require_auth
@require_permission("vouchers", "write")
def update_voucher_route(voucher_id: int):
    """Drafts only: description, date, partner_id."""
    data = request.get_json(silent=True) or {}
    voucher = accounting_service.update_voucher(voucher_id, data, actor_id=current_user_id())
    return jsonify(voucher.to_dict(include_items=True))


@accounting_bp.put("/vouchers/<int:voucher_id>/status")
@require_auth
@require_permission("vouchers", "write")
def set_voucher_status_route(voucher_id: int):
    """Request body: {"status": "confirmed"}. 409 on a disallowed transition."""
    data = request.get_json(silent=True) or {}
    voucher = accounting_service.set_voucher_status(
        voucher_id, data.get("status"), actor_id=current_user_id()
    )
    return jsonify(voucher.to_dict(include_items=True))
