"""
Transaction status state machine tests.
"""

import pytest

from smerp.errors import InvalidTransitionError
from smerp.models import Transaction
from smerp.services.transaction_state import TRANSITIONS, can_fire, fire


def _tx(status):
    return Transaction(code="S-240501-0001", type="sale", status=status)


class TestTransitions:

    def test_post_completes_pending(self):
        tx = _tx("pending")
        assert fire(tx, "post") == "completed"
        assert tx.completed_at is not None

    def test_posting_failure_cancels_pending(self):
        tx = _tx("pending")
        fire(tx, "posting_failed", reason="item vanished")
        assert tx.status == "canceled"
        assert tx.cancel_reason == "item vanished"
        assert tx.canceled_at is not None

    @pytest.mark.parametrize("status", ["pending", "completed", "partial", "unpaid"])
    def test_cancel_from_any_open_status(self, status):
        tx = _tx(status)
        fire(tx, "cancel", reason="customer changed mind")
        assert tx.status == "canceled"

    def test_settlement_cycle(self):
        tx = _tx("completed")
        fire(tx, "mark_partial")
        assert tx.status == "partial"
        fire(tx, "mark_unpaid")
        assert tx.status == "unpaid"
        fire(tx, "settle")
        assert tx.status == "completed"

    def test_canceled_is_terminal(self):
        tx = _tx("canceled")
        for trigger in TRANSITIONS:
            assert not can_fire(tx, trigger)
            with pytest.raises(InvalidTransitionError):
                fire(tx, trigger)

    def test_cannot_post_twice(self):
        tx = _tx("completed")
        with pytest.raises(InvalidTransitionError) as exc_info:
            fire(tx, "post")
        assert exc_info.value.details["status"] == "completed"
        assert tx.status == "completed"

    def test_unknown_trigger(self):
        tx = _tx("pending")
        assert can_fire(tx, "refund") is False
        with pytest.raises(InvalidTransitionError):
            fire(tx, "refund")
