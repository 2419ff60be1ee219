"""
Balance Aggregator - read-time folds over shares and settlements.

Nothing here is stored. Every call rebuilds a BalanceSheet from the rows of
one group inside a single read session, so balances cannot drift from the
ledger.

Sign convention: ``sheet.net(a, b) > 0`` means b owes a.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.expenses.models import ExpenseShare, GroupExpense
from groupledger.groups.models import GroupMember
from groupledger.settlements.models import Settlement
from groupledger.utils.logging import get_logger
from groupledger.utils.money import ZERO, from_db, quantize
from groupledger.utils.permissions import require_group, require_member

logger = get_logger(__name__)


class BalanceSheet:
    """Pairwise amounts owed within one group."""

    def __init__(self):
        # (creditor, debtor) -> amount the debtor owes the creditor
        self._owed = defaultdict(lambda: ZERO)

    def add_share(self, payer_id: int, holder_id: int, amount: Decimal) -> None:
        if payer_id != holder_id:
            self._owed[(payer_id, holder_id)] += amount

    def add_settlement(self, from_id: int, to_id: int, amount: Decimal) -> None:
        # Paying someone is the mirror of them owing you
        self._owed[(from_id, to_id)] += amount

    def net(self, member_id: int, other_id: int) -> Decimal:
        """Positive when ``other_id`` owes ``member_id``."""
        return quantize(self._owed[(member_id, other_id)] - self._owed[(other_id, member_id)])

    def member_net(self, member_id: int) -> Decimal:
        """Position against the whole group; positive when the group owes the member."""
        total = ZERO
        for (creditor, debtor), amount in self._owed.items():
            if creditor == member_id:
                total += amount
            elif debtor == member_id:
                total -= amount
        return quantize(total)

    def counterparts(self, member_id: int) -> Dict[int, Decimal]:
        """Every other member with a nonzero pairwise position against ``member_id``."""
        nets = {other: self.net(member_id, other) for other in self.members() if other != member_id}
        return {other: net for other, net in nets.items() if net != 0}

    def members(self) -> set:
        seen = set()
        for creditor, debtor in self._owed:
            seen.add(creditor)
            seen.add(debtor)
        return seen


class BalanceAggregator:
    """Derives who owes whom from the Expense Ledger and the Settlement Recorder."""

    def __init__(self, db, directory):
        self.db = db
        self.directory = directory

    @staticmethod
    def load_sheet(session: Session, group_id: int) -> BalanceSheet:
        sheet = BalanceSheet()
        share_rows = session.execute(
            select(GroupExpense.paid_by, ExpenseShare.member_id, ExpenseShare.amount_owed)
            .join(ExpenseShare, ExpenseShare.expense_id == GroupExpense.id)
            .where(GroupExpense.group_id == group_id)
        ).all()
        for paid_by, member_id, amount in share_rows:
            sheet.add_share(paid_by, member_id, from_db(amount))

        settlement_rows = session.execute(
            select(Settlement.from_member_id, Settlement.to_member_id, Settlement.amount)
            .where(Settlement.group_id == group_id)
        ).all()
        for from_id, to_id, amount in settlement_rows:
            sheet.add_settlement(from_id, to_id, from_db(amount))
        return sheet

    @staticmethod
    def member_ids(session: Session, group_id: int) -> List[int]:
        return list(session.scalars(
            select(GroupMember.member_id)
            .where(GroupMember.group_id == group_id)
            .order_by(GroupMember.member_id)
        ))

    def get_group_balances(self, group_id: int, for_member_id: int) -> Dict[str, List[Dict]]:
        """
        The caller's position against every other current member, and against
        anyone no longer in the group who still has an open balance with them.

        Returns:
            {"owesMe": [{userId, username, amount}], "iOwe": [...]}
            Members at exactly zero appear in neither list.
        """
        with self.db.reader(operation="get_group_balances", group_id=group_id) as session:
            require_group(session, group_id)
            require_member(session, group_id, for_member_id)
            others = [m for m in self.member_ids(session, group_id) if m != for_member_id]
            sheet = self.load_sheet(session, group_id)

        others += sorted(set(sheet.counterparts(for_member_id)) - set(others))
        positions = [(m, sheet.net(for_member_id, m)) for m in others]
        positions = [(m, net) for m, net in positions if net != 0]
        names = self.directory.display_names(m for m, _ in positions)

        owes_me, i_owe = [], []
        for member_id, net in positions:
            entry = {"userId": member_id, "username": names[member_id], "amount": abs(net)}
            (owes_me if net > 0 else i_owe).append(entry)
        return {"owesMe": owes_me, "iOwe": i_owe}

    def get_group_members_with_balances(self, group_id: int) -> List[Dict]:
        """Every member with their net position against the whole group."""
        with self.db.reader(operation="get_group_members", group_id=group_id) as session:
            require_group(session, group_id)
            memberships = session.scalars(
                select(GroupMember)
                .where(GroupMember.group_id == group_id)
                .order_by(GroupMember.member_id)
            ).all()
            members = [(m.member_id, m.is_admin) for m in memberships]
            sheet = self.load_sheet(session, group_id)

        names = self.directory.display_names(m for m, _ in members)
        return [
            {
                "userId": member_id,
                "username": names[member_id],
                "isAdmin": is_admin,
                "balance": sheet.member_net(member_id),
            }
            for member_id, is_admin in members
        ]

    def suggest_settlements(self, group_id: int, requester_id: int) -> List[Dict]:
        """
        Greedy debt simplification: the largest debtor pays the largest creditor
        until every group balance is zero.
        """
        with self.db.reader(operation="suggest_settlements", group_id=group_id) as session:
            require_group(session, group_id)
            require_member(session, group_id, requester_id)
            sheet = self.load_sheet(session, group_id)

        balances = {m: sheet.member_net(m) for m in sheet.members()}
        transfers = simplify_debts(balances)
        names = self.directory.display_names(
            [t["fromUserId"] for t in transfers] + [t["toUserId"] for t in transfers]
        )
        for t in transfers:
            t["fromUsername"] = names[t["fromUserId"]]
            t["toUsername"] = names[t["toUserId"]]
        return transfers


def simplify_debts(balances: Dict[int, Decimal]) -> List[Dict]:
    """Turn per-member group balances into a short list of transfers."""
    creditors = [[m, amount] for m, amount in balances.items() if amount > 0]
    debtors = [[m, -amount] for m, amount in balances.items() if amount < 0]

    # Largest first, member id breaks ties so the plan is deterministic
    creditors.sort(key=lambda x: (-x[1], x[0]))
    debtors.sort(key=lambda x: (-x[1], x[0]))

    transfers = []
    c = 0
    for debtor in debtors:
        while debtor[1] > 0 and c < len(creditors):
            creditor = creditors[c]
            amount = min(debtor[1], creditor[1])
            transfers.append({"fromUserId": debtor[0], "toUserId": creditor[0], "amount": amount})
            debtor[1] -= amount
            creditor[1] -= amount
            if creditor[1] == 0:
                c += 1
    return transfers


def open_balances(session: Session, group_id: int, member_id: int) -> Dict[int, Decimal]:
    """Unsettled pairwise balances of ``member_id``, using the caller's session."""
    return BalanceAggregator.load_sheet(session, group_id).counterparts(member_id)
