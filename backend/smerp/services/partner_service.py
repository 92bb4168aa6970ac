# Overview: Service-layer operations for partners; encapsulates business logic and database work.

"""
Partner Service

Partners are the customers and suppliers on the other side of every
transaction, voucher and payment.

DESIGN:
- type is customer, supplier or both
- business_number is unique when given
- Partners referenced by transactions or payments cannot be deleted; set
  is_active=False instead so new postings refuse them
"""

from ..extensions import db
from ..errors import ConflictError, NotFoundError
from ..models import Partner, Payment, Transaction
from ..models.partners import PARTNER_TYPES
from ..validation import ModelValidationPolicy, enforce_rules_partner, validate_payload
from .activity_service import record_activity


PARTNER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "business_number", "type", "contact_name", "phone",
        "email", "address", "is_active", "credit_limit_cents", "notes",
    },
    required_on_create={"name", "type"},
    choices={"type": PARTNER_TYPES},
)


def _check_business_number(business_number: str | None, exclude_id: int | None = None) -> None:
    if not business_number:
        return
    query = db.session.query(Partner.id).filter(Partner.business_number == business_number)
    if exclude_id is not None:
        query = query.filter(Partner.id != exclude_id)
    if query.first():
        raise ConflictError("Business number already registered", {"business_number": business_number})


def create_partner(payload: dict, *, actor_id: int | None = None) -> Partner:
    """
    Create a new partner.

    Raises:
        ValidationError: payload fails the partner policy
        ConflictError: duplicate business number
    """
    patch = validate_payload(model=Partner, payload=payload, policy=PARTNER_POLICY, partial=False)
    enforce_rules_partner(patch)
    _check_business_number(patch.get("business_number"))

    partner = Partner(created_by=actor_id, **patch)
    db.session.add(partner)
    db.session.flush()
    record_activity(actor_id, "create", f"partner:{partner.id}", f"Created partner {partner.name}")
    db.session.commit()
    return partner


def get_partner(partner_id: int) -> Partner:
    partner = db.session.get(Partner, partner_id)
    if partner is None:
        raise NotFoundError("Partner not found")
    return partner


def list_partners(*, type: str | None = None, active_only: bool = False) -> list[Partner]:
    query = db.session.query(Partner)
    if type is not None:
        # "both" partners show up under either list
        query = query.filter(Partner.type.in_({type, "both"}))
    if active_only:
        query = query.filter(Partner.is_active.is_(True))
    return query.order_by(Partner.name.asc()).all()


def update_partner(partner_id: int, payload: dict, *, actor_id: int | None = None) -> Partner:
    partner = get_partner(partner_id)
    patch = validate_payload(model=Partner, payload=payload, policy=PARTNER_POLICY, partial=True)
    enforce_rules_partner(patch)
    if "business_number" in patch:
        _check_business_number(patch["business_number"], exclude_id=partner.id)

    for key, value in patch.items():
        setattr(partner, key, value)
    record_activity(actor_id, "update", f"partner:{partner.id}", f"Updated partner {partner.name}")
    db.session.commit()
    return partner


def delete_partner(partner_id: int, *, actor_id: int | None = None) -> None:
    partner = get_partner(partner_id)
    referenced = (
        db.session.query(Transaction.id).filter_by(partner_id=partner.id).first()
        or db.session.query(Payment.id).filter_by(partner_id=partner.id).first()
    )
    if referenced:
        raise ConflictError("Partner has transactions or payments; deactivate it instead")

    record_activity(actor_id, "delete", f"partner:{partner.id}", f"Deleted partner {partner.name}")
    db.session.delete(partner)
    db.session.commit()
