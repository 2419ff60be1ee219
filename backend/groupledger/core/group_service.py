"""
Group Registry - group metadata and membership.

Policies:
- The creator is always a member and starts as the only admin
- A group always keeps at least one admin
- A member with a nonzero group balance cannot be removed or leave; their
  historical shares stay in the ledger once they are settled and gone
"""
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select

from groupledger.core.balance_service import open_balances
from groupledger.extensions import utcnow
from groupledger.expenses.models import ExpenseShare, GroupExpense
from groupledger.groups.models import Group, GroupMember
from groupledger.settlements.models import Settlement
from groupledger.utils.errors import ConflictError, NotFoundError, ValidationError
from groupledger.utils.logging import get_logger
from groupledger.utils.money import from_db, to_money
from groupledger.utils.permissions import (
    count_admins,
    get_membership,
    require_admin,
    require_group,
    require_member,
)

logger = get_logger(__name__)


class GroupRegistry:

    def __init__(self, db, directory, balances):
        self.db = db
        self.directory = directory
        self.balances = balances

    # ------------------ GROUPS ------------------

    def create_group(
        self,
        name: str,
        budget: Decimal,
        description: Optional[str],
        creator_id: int,
        member_ids: Sequence[int] = (),
    ) -> Dict:
        if not name or budget is None or creator_id is None:
            raise ValidationError("Incomplete Fields")
        budget = to_money(budget)
        if budget < 0:
            raise ValidationError("groupBudget cannot be negative")

        roster = list(dict.fromkeys([creator_id, *member_ids]))
        self.directory.require_ids(roster)

        with self.db.transaction(operation="create_group") as session:
            now = utcnow()
            group = Group(
                name=name,
                budget=budget,
                description=description,
                created_by=creator_id,
                created_at=now,
                updated_at=now,
            )
            session.add(group)
            session.flush()
            for member_id in roster:
                session.add(GroupMember(
                    group_id=group.id,
                    member_id=member_id,
                    is_admin=member_id == creator_id,
                ))
            session.flush()
            result = {"groupId": group.id, "groupName": group.name}

        logger.info(
            "group_created",
            operation="create_group",
            group_id=result["groupId"],
            creator_id=creator_id,
            members=len(roster),
        )
        return result

    def get_group(self, group_id: int, requester_id: int) -> Dict:
        with self.db.reader(operation="get_group", group_id=group_id) as session:
            group = require_group(session, group_id)
            membership = require_member(session, group_id, requester_id)
            view = group.to_dict()
            view["memberCount"] = session.scalar(
                select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group_id)
            )
            view["spent"] = self._spent(session, group_id)
            view["isAdmin"] = membership.is_admin
        return view

    def edit_group_info(
        self,
        group_id: int,
        requester_id: int,
        name: Optional[str] = None,
        budget: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> Dict:
        with self.db.transaction(operation="edit_group_info", group_id=group_id) as session:
            group = require_group(session, group_id)
            require_admin(session, group_id, requester_id)
            if name is not None:
                if not name.strip():
                    raise ValidationError("name cannot be empty")
                group.name = name
            if budget is not None:
                budget = to_money(budget)
                if budget < 0:
                    raise ValidationError("groupBudget cannot be negative")
                group.budget = budget
            if description is not None:
                group.description = description
            group.updated_at = utcnow()
            session.flush()
            view = group.to_dict()

        logger.info("group_edited", operation="edit_group_info", group_id=group_id, requester_id=requester_id)
        return view

    def delete_group(self, group_id: int, requester_id: int) -> None:
        """Admin-only; removes the group with all its expenses, shares and settlements."""
        with self.db.transaction(operation="delete_group", group_id=group_id) as session:
            require_group(session, group_id)
            require_admin(session, group_id, requester_id)
            expense_ids = select(GroupExpense.id).where(GroupExpense.group_id == group_id)
            session.execute(delete(ExpenseShare).where(ExpenseShare.expense_id.in_(expense_ids)))
            session.execute(delete(GroupExpense).where(GroupExpense.group_id == group_id))
            session.execute(delete(Settlement).where(Settlement.group_id == group_id))
            session.execute(delete(GroupMember).where(GroupMember.group_id == group_id))
            session.execute(delete(Group).where(Group.id == group_id))

        logger.info("group_deleted", operation="delete_group", group_id=group_id, requester_id=requester_id)

    def list_groups_for_member(self, member_id: int) -> List[Dict]:
        """Groups the member belongs to with member count and total spent."""
        member_count = (
            select(GroupMember.group_id, func.count().label("member_count"))
            .group_by(GroupMember.group_id)
            .subquery()
        )
        spent = (
            select(GroupExpense.group_id, func.sum(GroupExpense.amount).label("spent"))
            .group_by(GroupExpense.group_id)
            .subquery()
        )
        with self.db.reader(operation="list_groups_for_member") as session:
            rows = session.execute(
                select(Group, GroupMember.is_admin, member_count.c.member_count, spent.c.spent)
                .join(GroupMember, GroupMember.group_id == Group.id)
                .join(member_count, member_count.c.group_id == Group.id)
                .outerjoin(spent, spent.c.group_id == Group.id)
                .where(GroupMember.member_id == member_id)
                .order_by(Group.created_at.desc(), Group.id.desc())
            ).all()
            groups = []
            for group, is_admin, count, total in rows:
                view = group.to_dict()
                view["member_count"] = count
                view["spent"] = from_db(total)
                view["isAdmin"] = is_admin
                groups.append(view)
        return groups

    # ------------------ MEMBERS ------------------

    def list_members(self, group_id: int) -> List[Dict]:
        return self.balances.get_group_members_with_balances(group_id)

    def add_member(self, group_id: int, requester_id: int, new_member_id: int) -> Dict:
        self.directory.require_ids([new_member_id])
        with self.db.transaction(operation="add_member", group_id=group_id) as session:
            require_group(session, group_id)
            require_admin(session, group_id, requester_id)
            if get_membership(session, group_id, new_member_id) is not None:
                raise ConflictError("User is already a member of this group")
            session.add(GroupMember(group_id=group_id, member_id=new_member_id, is_admin=False))

        logger.info("member_added", operation="add_member", group_id=group_id, member_id=new_member_id)
        return {"groupId": group_id, "userId": new_member_id}

    def remove_member(self, group_id: int, requester_id: int, target_member_id: int) -> Dict:
        with self.db.transaction(operation="remove_member", group_id=group_id) as session:
            require_group(session, group_id)
            require_admin(session, group_id, requester_id)
            membership = get_membership(session, group_id, target_member_id)
            if membership is None:
                raise NotFoundError("Member not found")
            self._ensure_can_leave(session, membership)
            session.delete(membership)

        logger.info(
            "member_removed",
            operation="remove_member",
            group_id=group_id,
            member_id=target_member_id,
            requester_id=requester_id,
        )
        return {"groupId": group_id, "userId": target_member_id}

    def leave_group(self, group_id: int, member_id: int) -> Dict:
        with self.db.transaction(operation="leave_group", group_id=group_id) as session:
            require_group(session, group_id)
            membership = require_member(session, group_id, member_id)
            self._ensure_can_leave(session, membership)
            session.delete(membership)

        logger.info("member_left", operation="leave_group", group_id=group_id, member_id=member_id)
        return {"groupId": group_id, "userId": member_id}

    def promote_admin(self, group_id: int, requester_id: int, target_member_id: int) -> Dict:
        return self._set_admin(group_id, requester_id, target_member_id, True)

    def demote_admin(self, group_id: int, requester_id: int, target_member_id: int) -> Dict:
        return self._set_admin(group_id, requester_id, target_member_id, False)

    # ------------------ HELPERS ------------------

    def _set_admin(self, group_id, requester_id, target_member_id, is_admin) -> Dict:
        operation = "promote_admin" if is_admin else "demote_admin"
        with self.db.transaction(operation=operation, group_id=group_id) as session:
            require_group(session, group_id)
            require_admin(session, group_id, requester_id)
            membership = get_membership(session, group_id, target_member_id)
            if membership is None:
                raise NotFoundError("Member not found")
            if not is_admin and membership.is_admin and count_admins(session, group_id) <= 1:
                raise ConflictError("A group must keep at least one admin")
            membership.is_admin = is_admin

        logger.info(operation, operation=operation, group_id=group_id, member_id=target_member_id)
        return {"groupId": group_id, "userId": target_member_id, "isAdmin": is_admin}

    @staticmethod
    def _ensure_can_leave(session, membership: GroupMember) -> None:
        group_id = membership.group_id
        if membership.is_admin and count_admins(session, group_id) <= 1:
            raise ConflictError("A group must keep at least one admin; promote another member first")
        # Nets across the group can cancel out; every pair has to be settled
        open_pairs = open_balances(session, group_id, membership.member_id)
        if open_pairs:
            owed = ", ".join(f"{other}: {net}" for other, net in sorted(open_pairs.items()))
            raise ConflictError(
                f"Member has an outstanding balance with other members ({owed}); "
                "settle up before leaving the group"
            )

    @staticmethod
    def _spent(session, group_id) -> Decimal:
        total = session.scalar(
            select(func.sum(GroupExpense.amount)).where(GroupExpense.group_id == group_id)
        )
        return from_db(total)
