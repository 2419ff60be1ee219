"""Tests for the Group Registry and the authorization gate."""
from decimal import Decimal

import pytest

from conftest import ALICE, BOB, CAROL, DAVE
from groupledger.utils.errors import (
    AuthorizationError, ConflictError, MemberNotFoundError, NotFoundError, ValidationError,
)


def member_ids(ledger, group_id):
    return [m["userId"] for m in ledger.groups.list_members(group_id)]


class TestCreateGroup:

    def test_creator_is_admin_member(self, ledger, trip):
        members = {m["userId"]: m for m in ledger.groups.list_members(trip)}
        assert set(members) == {ALICE, BOB, CAROL}
        assert members[ALICE]["isAdmin"] is True
        assert members[BOB]["isAdmin"] is False

    def test_duplicate_ids_collapse(self, ledger):
        result = ledger.groups.create_group("Flat", "0", None, ALICE, [BOB, BOB, ALICE])
        assert result["groupName"] == "Flat"
        assert member_ids(ledger, result["groupId"]) == [ALICE, BOB]

    @pytest.mark.parametrize("name,budget,creator", [
        ("", "10", ALICE),
        ("Flat", None, ALICE),
        ("Flat", "10", None),
    ])
    def test_incomplete_fields(self, ledger, name, budget, creator):
        with pytest.raises(ValidationError, match="Incomplete Fields"):
            ledger.groups.create_group(name, budget, None, creator, [])

    def test_unknown_member_ids_are_rejected(self, ledger):
        with pytest.raises(MemberNotFoundError, match="77"):
            ledger.groups.create_group("Flat", "0", None, ALICE, [BOB, 77])
        assert ledger.groups.list_groups_for_member(ALICE) == []

    def test_list_groups_for_member(self, ledger, trip):
        ledger.expenses.add_expense(
            trip, "alice", ALICE, Decimal("90.00"), "food",
            shares=[("alice", Decimal("30.00")), ("bob", Decimal("30.00")), ("carol", Decimal("30.00"))],
        )
        groups = ledger.groups.list_groups_for_member(BOB)
        assert len(groups) == 1
        assert groups[0]["groupId"] == trip
        assert groups[0]["member_count"] == 3
        assert groups[0]["spent"] == Decimal("90.00")
        assert ledger.groups.list_groups_for_member(DAVE) == []


class TestMembership:

    def test_admin_adds_member(self, ledger, trip):
        ledger.groups.add_member(trip, ALICE, DAVE)
        assert DAVE in member_ids(ledger, trip)

    def test_add_existing_member_conflicts(self, ledger, trip):
        with pytest.raises(ConflictError):
            ledger.groups.add_member(trip, ALICE, BOB)

    def test_non_admin_cannot_add(self, ledger, trip):
        with pytest.raises(AuthorizationError, match="Admin"):
            ledger.groups.add_member(trip, BOB, DAVE)

    def test_non_member_is_rejected(self, ledger, trip):
        with pytest.raises(AuthorizationError, match="not a member"):
            ledger.groups.add_member(trip, DAVE, DAVE)

    def test_unknown_group(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.groups.add_member(999, ALICE, BOB)

    def test_remove_member(self, ledger, trip):
        ledger.groups.remove_member(trip, ALICE, CAROL)
        assert member_ids(ledger, trip) == [ALICE, BOB]

    def test_remove_missing_membership(self, ledger, trip):
        with pytest.raises(NotFoundError, match="Member not found"):
            ledger.groups.remove_member(trip, ALICE, DAVE)

    def test_remove_blocked_while_balance_outstanding(self, ledger, trip):
        ledger.expenses.add_expense(
            trip, "alice", ALICE, Decimal("20.00"), "food",
            shares=[("alice", Decimal("10.00")), ("carol", Decimal("10.00"))],
        )
        with pytest.raises(ConflictError, match="outstanding balance"):
            ledger.groups.remove_member(trip, ALICE, CAROL)

        ledger.settlements.settle_up(trip, CAROL, CAROL, ALICE, Decimal("10.00"))
        ledger.groups.remove_member(trip, ALICE, CAROL)
        assert CAROL not in member_ids(ledger, trip)

    def test_remove_blocked_while_pairwise_balances_cancel_out(self, ledger, trip):
        # carol owes bob 20 and alice owes carol 20, so carol nets to zero
        ledger.expenses.add_expense(
            trip, "bob", BOB, Decimal("20.00"), "taxi", shares=[("carol", Decimal("20.00"))],
        )
        ledger.expenses.add_expense(
            trip, "carol", CAROL, Decimal("20.00"), "snacks", shares=[("alice", Decimal("20.00"))],
        )
        with pytest.raises(ConflictError, match="outstanding balance"):
            ledger.groups.remove_member(trip, ALICE, CAROL)
        with pytest.raises(ConflictError, match="outstanding balance"):
            ledger.groups.leave_group(trip, CAROL)

        owes_bob = ledger.balances.get_group_balances(trip, BOB)["owesMe"]
        assert [(e["userId"], e["amount"]) for e in owes_bob] == [(CAROL, Decimal("20.00"))]

        ledger.settlements.settle_up(trip, CAROL, CAROL, BOB, Decimal("20.00"))
        ledger.settlements.settle_up(trip, ALICE, ALICE, CAROL, Decimal("20.00"))
        ledger.groups.remove_member(trip, ALICE, CAROL)
        assert CAROL not in member_ids(ledger, trip)

    def test_unknown_member_id_cannot_be_added(self, ledger, trip):
        with pytest.raises(MemberNotFoundError, match="99"):
            ledger.groups.add_member(trip, ALICE, 99)
        assert 99 not in member_ids(ledger, trip)

    def test_member_leaves(self, ledger, trip):
        ledger.groups.leave_group(trip, BOB)
        assert BOB not in member_ids(ledger, trip)


class TestAdmins:

    def test_promote_and_demote(self, ledger, trip):
        ledger.groups.promote_admin(trip, ALICE, BOB)
        assert ledger.gate.is_admin(trip, BOB)
        ledger.groups.demote_admin(trip, BOB, ALICE)
        assert not ledger.gate.is_admin(trip, ALICE)

    def test_last_admin_cannot_be_demoted(self, ledger, trip):
        with pytest.raises(ConflictError, match="at least one admin"):
            ledger.groups.demote_admin(trip, ALICE, ALICE)

    def test_last_admin_cannot_leave(self, ledger, trip):
        with pytest.raises(ConflictError, match="at least one admin"):
            ledger.groups.leave_group(trip, ALICE)

    def test_admin_can_leave_once_another_admin_exists(self, ledger, trip):
        ledger.groups.promote_admin(trip, ALICE, BOB)
        ledger.groups.leave_group(trip, ALICE)
        assert member_ids(ledger, trip) == [BOB, CAROL]


class TestGroupInfo:

    def test_admin_edits_info(self, ledger, trip):
        group = ledger.groups.edit_group_info(trip, ALICE, name="Trip 2", budget=Decimal("750"))
        assert group["name"] == "Trip 2"
        assert group["groupBudget"] == Decimal("750.00")
        assert group["description"] == "weekend away"

    def test_member_cannot_edit_info(self, ledger, trip):
        with pytest.raises(AuthorizationError):
            ledger.groups.edit_group_info(trip, BOB, name="Mine now")
        assert ledger.groups.get_group(trip, BOB)["name"] == "Trip"

    def test_delete_group_cascades(self, ledger, trip):
        ledger.expenses.add_expense(
            trip, "alice", ALICE, Decimal("20.00"), "food",
            shares=[("alice", Decimal("10.00")), ("bob", Decimal("10.00"))],
        )
        ledger.settlements.settle_up(trip, BOB, BOB, ALICE, Decimal("5.00"))
        ledger.groups.delete_group(trip, ALICE)
        with pytest.raises(NotFoundError):
            ledger.groups.get_group(trip, ALICE)
        assert ledger.expenses.list_expenses_for_member(BOB) == []
