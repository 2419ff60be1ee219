"""
Expense Ledger - shared expenses and their per-member shares.

Responsibilities:
- Calculate equal / percentage / exact splits in fixed-point Decimal
- Reject any split whose shares do not sum to the expense amount
- Write an expense and its shares in one transaction
- Replace or delete a share set atomically on edit/delete
- Creator-or-admin authorization for edits and deletes
"""
from decimal import Decimal, ROUND_DOWN
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_, select

from groupledger.extensions import utcnow
from groupledger.expenses.models import ExpenseShare, GroupExpense
from groupledger.utils.enums import SplitType
from groupledger.utils.errors import NotFoundError, ValidationError
from groupledger.utils.logging import get_logger
from groupledger.utils.money import CENT, ZERO, quantize, to_money
from groupledger.utils.permissions import (
    get_membership,
    require_creator_or_admin,
    require_group,
    require_member,
)

logger = get_logger(__name__)


class SplitCalculator:
    """Split calculation and validation."""

    @classmethod
    def calculate_equal_split(
        cls,
        total_amount: Decimal,
        member_ids: Sequence[int],
    ) -> List[Tuple[int, Decimal]]:
        """
        Split ``total_amount`` equally among ``member_ids``.

        The base share is rounded down to the cent and the remainder goes to
        the last member in the given order, so the same inputs always put the
        odd cent on the same member.
        """
        if not member_ids:
            return []

        total = to_money(total_amount)
        n = len(member_ids)
        base_split = (total / n).quantize(CENT, rounding=ROUND_DOWN)

        splits = []
        running_total = ZERO
        for i, member_id in enumerate(member_ids):
            if i == n - 1:
                # Last member gets remainder to keep the exact total
                amount = total - running_total
            else:
                amount = base_split
                running_total += amount
            splits.append((member_id, amount))
        return splits

    @classmethod
    def calculate_percentage_split(
        cls,
        total_amount: Decimal,
        percentages: Sequence[Tuple[int, Decimal]],
    ) -> List[Tuple[int, Decimal]]:
        """
        Split by percentage; they must total 100.

        Raises:
            ValidationError: when the percentages do not total 100, or the
                total is too small to give every member a positive share
        """
        if not percentages:
            raise ValidationError("No percentages provided")

        total_pct = sum((Decimal(pct) for _, pct in percentages), Decimal("0"))
        if total_pct != Decimal("100"):
            raise ValidationError(f"Percentages must sum to 100, got {total_pct}")

        total = to_money(total_amount)
        splits = []
        running_total = ZERO
        for i, (member_id, pct) in enumerate(percentages):
            if i == len(percentages) - 1:
                amount = total - running_total
            else:
                amount = quantize(total * Decimal(pct) / 100)
                running_total += amount
            splits.append((member_id, amount))

        if any(amount <= 0 for _, amount in splits):
            raise ValidationError(
                f"{total} is too small to divide by these percentages; "
                "every member must owe at least 0.01"
            )
        return splits

    @classmethod
    def validate_splits(
        cls,
        total_amount: Decimal,
        splits: Sequence[Tuple[int, Decimal]],
    ) -> None:
        """
        Check a split before anything is written.

        Checks:
        - At least one share
        - No duplicate members
        - Every amount positive, whole cents
        - Shares sum exactly to the total

        Raises:
            ValidationError
        """
        if not splits:
            raise ValidationError("No shares provided")

        member_ids = [member_id for member_id, _ in splits]
        if len(member_ids) != len(set(member_ids)):
            raise ValidationError("Duplicate members in shares")

        for member_id, amount in splits:
            if amount <= 0:
                raise ValidationError(f"Share for member {member_id} must be positive")
            if amount != amount.quantize(CENT):
                raise ValidationError(f"Share for member {member_id} has fractional cents")

        total = to_money(total_amount)
        splits_sum = sum((amount for _, amount in splits), ZERO)
        if splits_sum != total:
            raise ValidationError(
                f"split does not reconcile: shares sum to {splits_sum}, expected {total}"
            )


class ExpenseLedger:
    """System of record for group expenses and their shares."""

    def __init__(self, db, directory):
        self.db = db
        self.directory = directory

    # ------------------ WRITES ------------------

    def add_expense(
        self,
        group_id: int,
        payer_username: str,
        creator_id: int,
        amount: Decimal,
        category: str,
        description: str = "",
        shares: Optional[Sequence[Tuple[str, Decimal]]] = None,
        split_type: SplitType = SplitType.EXACT,
        members: Optional[Sequence[str]] = None,
        percentages: Optional[Dict[str, Decimal]] = None,
    ) -> Dict:
        """
        Record an expense paid by ``payer_username`` and its split.

        Usernames are resolved before the transaction opens; the split is
        reconciled before any write.

        Returns:
            {"expenseId": int, "expense": {...}}
        """
        amount = to_money(amount)
        usernames = [payer_username] + self._split_usernames(split_type, shares, members, percentages)
        resolved = self.directory.resolve(usernames)
        payer_id = resolved[payer_username]
        splits = self._build_splits(amount, resolved, split_type, shares, members, percentages)
        SplitCalculator.validate_splits(amount, splits)

        with self.db.transaction(operation="add_expense", group_id=group_id) as session:
            require_group(session, group_id)
            require_member(session, group_id, creator_id)
            if get_membership(session, group_id, payer_id) is None:
                raise ValidationError("payer is not a member of this group")
            self._require_share_holders(session, group_id, splits)

            expense = GroupExpense(
                group_id=group_id,
                paid_by=payer_id,
                created_by=creator_id,
                amount=amount,
                category=category,
                description=description,
                created_at=utcnow(),
            )
            session.add(expense)
            session.flush()
            self._insert_shares(session, expense.id, splits)
            view = self._expense_view(expense, splits)

        logger.info(
            "expense_added",
            operation="add_expense",
            group_id=group_id,
            expense_id=view["id"],
            amount=str(amount),
            shares=len(splits),
        )
        return {"expenseId": view["id"], "expense": view}

    def edit_expense(
        self,
        group_id: int,
        expense_id: int,
        requester_id: int,
        amount: Decimal,
        category: str,
        description: str = "",
        shares: Optional[Sequence[Tuple[str, Decimal]]] = None,
        split_type: SplitType = SplitType.EXACT,
        members: Optional[Sequence[str]] = None,
        percentages: Optional[Dict[str, Decimal]] = None,
    ) -> Dict:
        """Replace an expense's fields and its whole share set in one transaction."""
        amount = to_money(amount)
        resolved = self.directory.resolve(
            self._split_usernames(split_type, shares, members, percentages)
        )
        splits = self._build_splits(amount, resolved, split_type, shares, members, percentages)
        SplitCalculator.validate_splits(amount, splits)

        with self.db.transaction(operation="edit_expense", group_id=group_id) as session:
            expense = self._require_expense(session, group_id, expense_id)
            require_creator_or_admin(session, expense, requester_id, action="edit")
            self._require_share_holders(session, group_id, splits)

            expense.amount = amount
            expense.category = category
            expense.description = description
            session.execute(delete(ExpenseShare).where(ExpenseShare.expense_id == expense.id))
            self._insert_shares(session, expense.id, splits)
            session.flush()
            view = self._expense_view(expense, splits)

        logger.info(
            "expense_edited",
            operation="edit_expense",
            group_id=group_id,
            expense_id=expense_id,
            requester_id=requester_id,
        )
        return view

    def delete_expense(self, group_id: int, expense_id: int, requester_id: int) -> None:
        with self.db.transaction(operation="delete_expense", group_id=group_id) as session:
            expense = self._require_expense(session, group_id, expense_id)
            require_creator_or_admin(session, expense, requester_id, action="delete")
            session.execute(delete(ExpenseShare).where(ExpenseShare.expense_id == expense.id))
            session.execute(delete(GroupExpense).where(GroupExpense.id == expense.id))

        logger.info(
            "expense_deleted",
            operation="delete_expense",
            group_id=group_id,
            expense_id=expense_id,
            requester_id=requester_id,
        )

    # ------------------ READS ------------------

    def list_expenses(self, group_id: int, page: int = 1, limit: int = 10) -> List[Dict]:
        """Expenses newest first, paginated, payer resolved to a username."""
        offset = (max(1, page) - 1) * limit
        with self.db.reader(operation="list_expenses", group_id=group_id) as session:
            require_group(session, group_id)
            expenses = session.scalars(
                select(GroupExpense)
                .where(GroupExpense.group_id == group_id)
                .order_by(GroupExpense.created_at.desc(), GroupExpense.id.desc())
                .offset(offset)
                .limit(limit)
            ).all()
            rows = [self._expense_row(e) for e in expenses]

        names = self.directory.display_names(r["paidById"] for r in rows)
        for row in rows:
            row["paidBy"] = names.get(row["paidById"])
        return rows

    def count_expenses(self, group_id: int) -> int:
        with self.db.reader(operation="count_expenses", group_id=group_id) as session:
            return session.scalar(
                select(func.count()).select_from(GroupExpense).where(GroupExpense.group_id == group_id)
            )

    def get_expense_detail(self, expense_id: int, requester_id: int) -> Dict:
        """The expense, its payer's name and every share with display names."""
        with self.db.reader(operation="get_expense_detail") as session:
            expense = session.get(GroupExpense, expense_id)
            if expense is None:
                raise NotFoundError("Expense not found")
            require_member(session, expense.group_id, requester_id)
            detail = self._expense_row(expense)
            shares = [(s.member_id, s.amount_owed) for s in expense.shares]

        names = self.directory.display_names(
            [detail["paidById"]] + [member_id for member_id, _ in shares]
        )
        detail["paidBy"] = names[detail["paidById"]]
        detail["shares"] = [
            {"userId": member_id, "username": names[member_id], "amountOwned": amount}
            for member_id, amount in shares
        ]
        return detail

    def get_expense_shares(self, expense_id: int, requester_id: int) -> List[Dict]:
        return self.get_expense_detail(expense_id, requester_id)["shares"]

    def list_expenses_for_member(self, member_id: int) -> List[Dict]:
        """Expenses across all groups that the member paid or holds a share in."""
        with self.db.reader(operation="list_expenses_for_member") as session:
            holder_of = select(ExpenseShare.expense_id).where(ExpenseShare.member_id == member_id)
            expenses = session.scalars(
                select(GroupExpense)
                .where(or_(GroupExpense.paid_by == member_id, GroupExpense.id.in_(holder_of)))
                .order_by(GroupExpense.created_at.desc(), GroupExpense.id.desc())
            ).all()
            rows = [self._expense_row(e) for e in expenses]

        names = self.directory.display_names(r["paidById"] for r in rows)
        for row in rows:
            row["paidBy"] = names.get(row["paidById"])
        return rows

    # ------------------ HELPERS ------------------

    @staticmethod
    def _split_usernames(split_type, shares, members, percentages) -> List[str]:
        if split_type is SplitType.EQUAL:
            return list(members or [])
        if split_type is SplitType.PERCENTAGE:
            return list((percentages or {}).keys())
        return [username for username, _ in shares or []]

    @staticmethod
    def _build_splits(amount, resolved, split_type, shares, members, percentages):
        if split_type is SplitType.EQUAL:
            names = list(members or [])
            if len(names) != len(set(names)):
                raise ValidationError("Duplicate members in shares")
            return SplitCalculator.calculate_equal_split(amount, [resolved[n] for n in names])
        if split_type is SplitType.PERCENTAGE:
            return SplitCalculator.calculate_percentage_split(
                amount, [(resolved[n], pct) for n, pct in (percentages or {}).items()]
            )
        return [(resolved[username], to_money(owed)) for username, owed in shares or []]

    @staticmethod
    def _require_share_holders(session, group_id, splits):
        for member_id, _ in splits:
            if get_membership(session, group_id, member_id) is None:
                raise ValidationError(f"member {member_id} is not part of this group")

    @staticmethod
    def _require_expense(session, group_id, expense_id) -> GroupExpense:
        expense = session.get(GroupExpense, expense_id)
        if expense is None or expense.group_id != group_id:
            raise NotFoundError("Expense not found in this group")
        return expense

    @staticmethod
    def _insert_shares(session, expense_id, splits):
        for member_id, amount in splits:
            session.add(ExpenseShare(expense_id=expense_id, member_id=member_id, amount_owed=amount))
        session.flush()

    @staticmethod
    def _expense_row(expense: GroupExpense) -> Dict:
        return {
            "id": expense.id,
            "groupId": expense.group_id,
            "paidById": expense.paid_by,
            "createdBy": expense.created_by,
            "amount": expense.amount,
            "category": expense.category,
            "description": expense.description,
            "createdAt": expense.created_at.isoformat(),
        }

    @classmethod
    def _expense_view(cls, expense, splits) -> Dict:
        view = cls._expense_row(expense)
        view["shares"] = [
            {"userId": member_id, "amountOwned": amount} for member_id, amount in splits
        ]
        return view
