"""Tests for the Balance Aggregator."""
from decimal import Decimal

import pytest

from conftest import ALICE, BOB, CAROL, DAVE
from groupledger.core import BalanceSheet
from groupledger.core.balance_service import simplify_debts
from groupledger.groups.models import GroupMember
from groupledger.utils.errors import AuthorizationError


def split_dinner(ledger, group_id, payer="alice", creator=ALICE):
    ledger.expenses.add_expense(
        group_id, payer, creator, Decimal("90.00"), "food", "dinner",
        shares=[("alice", Decimal("30.00")), ("bob", Decimal("30.00")), ("carol", Decimal("30.00"))],
    )


def amounts(entries):
    return {e["userId"]: e["amount"] for e in entries}


class TestBalanceSheet:

    def test_share_of_own_expense_is_ignored(self):
        sheet = BalanceSheet()
        sheet.add_share(ALICE, ALICE, Decimal("10.00"))
        assert sheet.members() == set()

    def test_net_is_antisymmetric(self):
        sheet = BalanceSheet()
        sheet.add_share(ALICE, BOB, Decimal("30.00"))
        sheet.add_share(BOB, ALICE, Decimal("12.50"))
        assert sheet.net(ALICE, BOB) == Decimal("17.50")
        assert sheet.net(BOB, ALICE) == Decimal("-17.50")

    def test_settlement_reduces_debt(self):
        sheet = BalanceSheet()
        sheet.add_share(ALICE, BOB, Decimal("30.00"))
        sheet.add_settlement(BOB, ALICE, Decimal("20.00"))
        assert sheet.net(ALICE, BOB) == Decimal("10.00")

    def test_member_nets_sum_to_zero(self):
        sheet = BalanceSheet()
        sheet.add_share(ALICE, BOB, Decimal("30.00"))
        sheet.add_share(ALICE, CAROL, Decimal("30.00"))
        sheet.add_share(CAROL, BOB, Decimal("7.25"))
        sheet.add_settlement(BOB, ALICE, Decimal("5.00"))
        total = sum(sheet.member_net(m) for m in sheet.members())
        assert total == Decimal("0.00")

    def test_counterparts_survive_a_zero_net(self):
        sheet = BalanceSheet()
        sheet.add_share(BOB, CAROL, Decimal("20.00"))
        sheet.add_share(CAROL, ALICE, Decimal("20.00"))
        assert sheet.member_net(CAROL) == Decimal("0.00")
        assert sheet.counterparts(CAROL) == {BOB: Decimal("-20.00"), ALICE: Decimal("20.00")}


class TestGroupBalances:

    def test_payer_is_owed_by_share_holders(self, ledger, trip):
        split_dinner(ledger, trip)
        balances = ledger.balances.get_group_balances(trip, ALICE)
        assert amounts(balances["owesMe"]) == {BOB: Decimal("30.00"), CAROL: Decimal("30.00")}
        assert balances["iOwe"] == []
        assert {e["username"] for e in balances["owesMe"]} == {"bob", "carol"}

    def test_views_are_symmetric(self, ledger, trip):
        split_dinner(ledger, trip)
        split_dinner(ledger, trip, payer="bob", creator=BOB)
        alice_view = ledger.balances.get_group_balances(trip, ALICE)
        bob_view = ledger.balances.get_group_balances(trip, BOB)
        # 30 each way between alice and bob cancels out
        assert BOB not in amounts(alice_view["owesMe"])
        assert ALICE not in amounts(bob_view["iOwe"])
        carol_view = ledger.balances.get_group_balances(trip, CAROL)
        assert amounts(carol_view["iOwe"]) == {ALICE: Decimal("30.00"), BOB: Decimal("30.00")}

    def test_settlement_clears_pair(self, ledger, trip):
        split_dinner(ledger, trip)
        ledger.settlements.settle_up(trip, BOB, BOB, ALICE, Decimal("30.00"))
        balances = ledger.balances.get_group_balances(trip, ALICE)
        assert amounts(balances["owesMe"]) == {CAROL: Decimal("30.00")}
        assert ledger.balances.get_group_balances(trip, BOB) == {"owesMe": [], "iOwe": []}

    def test_deleting_expense_reverses_balances(self, ledger, trip):
        ledger.expenses.add_expense(
            trip, "alice", ALICE, Decimal("20.00"), "food",
            shares=[("bob", Decimal("20.00"))],
        )
        expense_id = ledger.expenses.list_expenses(trip)[0]["id"]
        ledger.expenses.delete_expense(trip, expense_id, ALICE)
        assert ledger.balances.get_group_balances(trip, ALICE) == {"owesMe": [], "iOwe": []}

    def test_former_member_with_open_balance_is_still_listed(self, ledger, trip):
        ledger.expenses.add_expense(
            trip, "bob", BOB, Decimal("20.00"), "taxi", shares=[("carol", Decimal("20.00"))],
        )
        # carol's membership is gone but her debt to bob is not
        with ledger.db.transaction() as session:
            session.delete(session.get(GroupMember, (trip, CAROL)))

        balances = ledger.balances.get_group_balances(trip, BOB)
        assert balances["owesMe"] == [{"userId": CAROL, "username": "carol", "amount": Decimal("20.00")}]

    def test_non_member_is_refused(self, ledger, trip):
        with pytest.raises(AuthorizationError):
            ledger.balances.get_group_balances(trip, DAVE)


class TestMembersWithBalances:

    def test_balances_sum_to_zero(self, ledger, trip):
        split_dinner(ledger, trip)
        ledger.expenses.add_expense(
            trip, "carol", CAROL, Decimal("10.01"), "taxi",
            shares=[("alice", Decimal("5.00")), ("bob", Decimal("5.01"))],
        )
        members = ledger.balances.get_group_members_with_balances(trip)
        by_id = {m["userId"]: m for m in members}
        assert by_id[ALICE]["balance"] == Decimal("55.00")
        assert by_id[ALICE]["isAdmin"] is True
        assert by_id[BOB]["balance"] == Decimal("-35.01")
        assert sum(m["balance"] for m in members) == Decimal("0.00")


class TestSuggestSettlements:

    def test_greedy_plan_clears_balances(self, ledger, trip):
        split_dinner(ledger, trip)
        plan = ledger.balances.suggest_settlements(trip, BOB)
        assert sorted((t["fromUserId"], t["toUserId"], t["amount"]) for t in plan) == [
            (BOB, ALICE, Decimal("30.00")),
            (CAROL, ALICE, Decimal("30.00")),
        ]
        assert {t["toUsername"] for t in plan} == {"alice"}

    def test_settled_group_needs_no_transfers(self, ledger, trip):
        assert ledger.balances.suggest_settlements(trip, ALICE) == []

    def test_simplify_debts_chains(self):
        plan = simplify_debts({
            ALICE: Decimal("40.00"),
            BOB: Decimal("-25.00"),
            CAROL: Decimal("-15.00"),
            DAVE: Decimal("0.00"),
        })
        assert plan == [
            {"fromUserId": BOB, "toUserId": ALICE, "amount": Decimal("25.00")},
            {"fromUserId": CAROL, "toUserId": ALICE, "amount": Decimal("15.00")},
        ]
