"""Tests for the Settlement Recorder."""
from decimal import Decimal

import pytest

from conftest import ALICE, BOB, CAROL, DAVE
from groupledger.utils.errors import (
    AuthorizationError, ConflictError, NotFoundError, ValidationError,
)


@pytest.fixture
def dinner(ledger, trip):
    """Alice paid 90.00 split evenly, so bob and carol each owe her 30.00."""
    ledger.expenses.add_expense(
        trip, "alice", ALICE, Decimal("90.00"), "food", "dinner",
        shares=[("alice", Decimal("30.00")), ("bob", Decimal("30.00")), ("carol", Decimal("30.00"))],
    )
    return trip


class TestSettleUp:

    def test_records_settlement(self, ledger, dinner):
        result = ledger.settlements.settle_up(dinner, BOB, BOB, ALICE, Decimal("30.00"))
        assert result["fromUserId"] == BOB
        assert result["toUserId"] == ALICE
        assert result["amount"] == Decimal("30.00")
        assert result["overpayment"] is False
        assert result["replayed"] is False

    def test_overpayment_is_flagged_not_refused(self, ledger, dinner):
        result = ledger.settlements.settle_up(dinner, BOB, BOB, ALICE, Decimal("50.00"))
        assert result["overpayment"] is True
        balances = ledger.balances.get_group_balances(dinner, BOB)
        assert balances["owesMe"] == [{"userId": ALICE, "username": "alice", "amount": Decimal("20.00")}]

    def test_cannot_settle_with_self(self, ledger, dinner):
        with pytest.raises(ValidationError):
            ledger.settlements.settle_up(dinner, BOB, BOB, BOB, Decimal("5.00"))

    def test_amount_must_be_positive(self, ledger, dinner):
        with pytest.raises(ValidationError):
            ledger.settlements.settle_up(dinner, BOB, BOB, ALICE, Decimal("0"))

    def test_counterparty_must_be_member(self, ledger, dinner):
        with pytest.raises(NotFoundError, match="not found in group"):
            ledger.settlements.settle_up(dinner, BOB, BOB, DAVE, Decimal("5.00"))

    def test_bystander_cannot_record(self, ledger, dinner):
        with pytest.raises(AuthorizationError):
            ledger.settlements.settle_up(dinner, CAROL, BOB, ALICE, Decimal("5.00"))
        assert ledger.settlements.list_settlements(dinner, ALICE) == []

    def test_admin_can_record_for_others(self, ledger, dinner):
        ledger.settlements.settle_up(dinner, ALICE, CAROL, ALICE, Decimal("30.00"))
        assert ledger.balances.get_group_balances(dinner, CAROL)["iOwe"] == []


class TestIdempotency:

    def test_replay_returns_original(self, ledger, dinner):
        first = ledger.settlements.settle_up(
            dinner, BOB, BOB, ALICE, Decimal("10.00"), idempotency_key="abc-1"
        )
        second = ledger.settlements.settle_up(
            dinner, BOB, BOB, ALICE, Decimal("10.00"), idempotency_key="abc-1"
        )
        assert second["id"] == first["id"]
        assert second["replayed"] is True
        assert len(ledger.settlements.list_settlements(dinner, BOB)) == 1

    def test_key_reused_with_different_payload(self, ledger, dinner):
        ledger.settlements.settle_up(
            dinner, BOB, BOB, ALICE, Decimal("10.00"), idempotency_key="abc-1"
        )
        with pytest.raises(ConflictError):
            ledger.settlements.settle_up(
                dinner, BOB, BOB, ALICE, Decimal("11.00"), idempotency_key="abc-1"
            )

    def test_same_key_in_other_group_is_independent(self, ledger, dinner):
        other = ledger.groups.create_group("Flat", "0", None, ALICE, [BOB])["groupId"]
        ledger.settlements.settle_up(dinner, BOB, BOB, ALICE, Decimal("10.00"), idempotency_key="k")
        result = ledger.settlements.settle_up(other, BOB, BOB, ALICE, Decimal("10.00"), idempotency_key="k")
        assert result["replayed"] is False


class TestHistory:

    def test_newest_first_with_names(self, ledger, dinner):
        first = ledger.settlements.settle_up(dinner, BOB, BOB, ALICE, Decimal("10.00"))
        second = ledger.settlements.settle_up(dinner, CAROL, CAROL, ALICE, Decimal("30.00"))
        history = ledger.settlements.list_settlements(dinner, ALICE)
        assert [s["id"] for s in history] == [second["id"], first["id"]]
        assert history[0]["fromUsername"] == "carol"
        assert history[0]["toUsername"] == "alice"

    def test_non_member_cannot_read(self, ledger, dinner):
        with pytest.raises(AuthorizationError):
            ledger.settlements.list_settlements(dinner, DAVE)
