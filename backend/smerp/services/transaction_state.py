# Overview: Explicit status state machine for transactions; the only writer of Transaction.status.

from __future__ import annotations

from ..errors import InvalidTransitionError
from ..models import Transaction
from smerp.time_utils import utcnow


# trigger -> (allowed source statuses, target status)
TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "post": (frozenset({"pending"}), "completed"),
    "posting_failed": (frozenset({"pending"}), "canceled"),
    "cancel": (frozenset({"pending", "completed", "partial", "unpaid"}), "canceled"),
    "mark_unpaid": (frozenset({"completed", "partial"}), "unpaid"),
    "mark_partial": (frozenset({"completed", "unpaid"}), "partial"),
    "settle": (frozenset({"partial", "unpaid"}), "completed"),
}


def can_fire(tx: Transaction, trigger: str) -> bool:
    if trigger not in TRANSITIONS:
        return False
    sources, _ = TRANSITIONS[trigger]
    return tx.status in sources


def fire(tx: Transaction, trigger: str, *, reason: str | None = None) -> str:
    """
    Apply a named transition to tx and return the new status.

    Sets completed_at on entering 'completed' and canceled_at/cancel_reason
    on entering 'canceled'. Does not flush or commit.

    Raises InvalidTransitionError for unknown triggers or when the current
    status does not allow the trigger.
    """
    if trigger not in TRANSITIONS:
        raise InvalidTransitionError(f"Unknown trigger: {trigger}")

    sources, target = TRANSITIONS[trigger]
    if tx.status not in sources:
        raise InvalidTransitionError(
            f"Cannot {trigger} a {tx.status} transaction",
            {"transaction_id": tx.id, "status": tx.status, "trigger": trigger},
        )

    now = utcnow()
    tx.status = target
    if target == "completed":
        tx.completed_at = tx.completed_at or now
    elif target == "canceled":
        tx.canceled_at = now
        tx.cancel_reason = reason
    return target
