# Overview: Flask API routes for payments and tax invoices.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission, current_user_id
from ..services import payment_service, tax_invoice_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api")


# =============================================================================
# Payments
# =============================================================================

@payments_bp.get("/payments")
@require_auth
@require_permission("payments", "read")
def list_payments_route():
    payments = payment_service.list_payments(
        partner_id=request.args.get("partner_id", type=int),
        transaction_id=request.args.get("transaction_id", type=int),
        status=request.args.get("status") or None,
    )
    return jsonify({"items": [p.to_dict() for p in payments]})


@payments_bp.post("/payments")
@require_auth
@require_permission("payments", "write")
def create_payment_route():
    """
    Record a payment.

    Request body:
    {
        "partner_id": 1,            // required
        "amount_cents": 5000,       // required, > 0
        "method": "cash",           // required: cash | bank | card
        "transaction_id": 3,        // optional, same partner
        "status": "completed",      // planned | completed
        "date": "2024-05-01",
        "reference": "..."
    }

    The linked transaction's status is reconciled (unpaid / partial / completed).
    """
    data = request.get_json(silent=True) or {}
    payment = payment_service.create_payment(data, actor_id=current_user_id())
    return jsonify(payment.to_dict()), 201


@payments_bp.get("/payments/<int:payment_id>")
@require_auth
@require_permission("payments", "read")
def get_payment_route(payment_id: int):
    return jsonify(payment_service.get_payment(payment_id).to_dict())


@payments_bp.put("/payments/<int:payment_id>")
@require_auth
@require_permission("payments", "write")
def update_payment_route(payment_id: int):
    data = request.get_json(silent=True) or {}
    payment = payment_service.update_payment(payment_id, data, actor_id=current_user_id())
    return jsonify(payment.to_dict())


@payments_bp.put("/payments/<int:payment_id>/status")
@require_auth
@require_permission("payments", "write")
def set_payment_status_route(payment_id: int):
    data = request.get_json(silent=True) or {}
    payment = payment_service.set_payment_status(
        payment_id, data.get("status"), actor_id=current_user_id()
    )
    return jsonify(payment.to_dict())


@payments_bp.delete("/payments/<int:payment_id>")
@require_auth
@require_permission("payments", "delete")
def delete_payment_route(payment_id: int):
    payment_service.delete_payment(payment_id, actor_id=current_user_id())
    return jsonify({"message": "Payment deleted"}), 200


# =============================================================================
# Tax invoices
# =============================================================================

@payments_bp.get("/tax-invoices")
@require_auth
@require_permission("tax", "read")
def list_tax_invoices_route():
    invoices = tax_invoice_service.list_tax_invoices(
        type=request.args.get("type") or None,
        status=request.args.get("status") or None,
    )
    return jsonify({"items": [i.to_dict() for i in invoices]})


@payments_bp.post("/tax-invoices")
@require_auth
@require_permission("tax", "write")
def issue_tax_invoice_route():
    """Request body: {"transaction_id": 3, "date": "2024-05-01"}"""
    data = request.get_json(silent=True) or {}
    if data.get("transaction_id") is None:
        return jsonify({"error": "transaction_id is required"}), 400

    invoice = tax_invoice_service.issue_tax_invoice(
        data["transaction_id"], data.get("date"), actor_id=current_user_id()
    )
    return jsonify(invoice.to_dict()), 201


@payments_bp.get("/tax-invoices/<int:invoice_id>")
@require_auth
@require_permission("tax", "read")
def get_tax_invoice_route(invoice_id: int):
    return jsonify(tax_invoice_service.get_tax_invoice(invoice_id).to_dict())


@payments_bp.post("/tax-invoices/<int:invoice_id>/cancel")
@require_auth
@require_permission("tax", "write")
def cancel_tax_invoice_route(invoice_id: int):
    invoice = tax_invoice_service.cancel_tax_invoice(invoice_id, actor_id=current_user_id())
    return jsonify(invoice.to_dict())


@payments_bp.put("/tax-invoices/<int:invoice_id>")
@require_auth
@require_permission("tax", "write")
def update_tax_invoice_route(invoice_id: int):
    """Request body: {"date": "2024-05-02"}"""
    data = request.get_json(silent=True) or {}
    invoice = tax_invoice_service.update_tax_invoice(invoice_id, data, actor_id=current_user_id())
    return jsonify(invoice.to_dict())


@payments_bp.delete("/tax-invoices/<int:invoice_id>")
@require_auth
@require_permission("tax", "delete")
def delete_tax_invoice_route(invoice_id: int):
    tax_invoice_service.delete_tax_invoice(invoice_id, actor_id=current_user_id())
    return jsonify({"message": "Tax invoice deleted"}), 200
