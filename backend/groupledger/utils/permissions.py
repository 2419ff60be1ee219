"""Membership and admin checks shared by every mutating operation."""
from functools import wraps
from typing import Optional

from flask import current_app
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from groupledger.groups.models import Group, GroupMember
from groupledger.utils.errors import AuthorizationError, NotFoundError


def current_member_id() -> int:
    """Member id carried by the bearer token issued by the identity service."""
    identity = get_jwt_identity()
    try:
        return int(identity)
    except (TypeError, ValueError):
        raise AuthorizationError("Invalid identity in access token")


def get_membership(session: Session, group_id: int, member_id: int) -> Optional[GroupMember]:
    return session.get(GroupMember, (group_id, member_id))


def is_member(session: Session, group_id: int, member_id: int) -> bool:
    return get_membership(session, group_id, member_id) is not None


def is_admin(session: Session, group_id: int, member_id: int) -> bool:
    membership = get_membership(session, group_id, member_id)
    return bool(membership and membership.is_admin)


def is_creator(expense, member_id: int) -> bool:
    return getattr(expense, "created_by", None) == member_id


def require_group(session: Session, group_id: int) -> Group:
    group = session.get(Group, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


def require_member(session: Session, group_id: int, member_id: int) -> GroupMember:
    membership = get_membership(session, group_id, member_id)
    if membership is None:
        raise AuthorizationError("not a member of this group")
    return membership


def require_admin(session: Session, group_id: int, member_id: int) -> GroupMember:
    membership = require_member(session, group_id, member_id)
    if not membership.is_admin:
        raise AuthorizationError("Admin privileges required")
    return membership


def require_creator_or_admin(session: Session, expense, member_id: int, action: str = "edit"):
    membership = require_member(session, expense.group_id, member_id)
    if not (is_creator(expense, member_id) or membership.is_admin):
        raise AuthorizationError(
            f"only the creator or a group admin can {action} this expense"
        )
    return membership


def count_admins(session: Session, group_id: int) -> int:
    return session.scalar(
        select(func.count())
        .select_from(GroupMember)
        .where(GroupMember.group_id == group_id, GroupMember.is_admin.is_(True))
    )


class MembershipGate:
    """Route-level view of the membership checks, on short read sessions."""

    def __init__(self, db):
        self.db = db

    def is_member(self, group_id: int, member_id: int) -> bool:
        with self.db.reader(operation="is_member", group_id=group_id) as session:
            return is_member(session, group_id, member_id)

    def is_admin(self, group_id: int, member_id: int) -> bool:
        with self.db.reader(operation="is_admin", group_id=group_id) as session:
            return is_admin(session, group_id, member_id)

    def check(self, group_id: int, member_id: int, admin: bool = False) -> None:
        with self.db.reader(operation="membership_check", group_id=group_id) as session:
            require_group(session, group_id)
            if admin:
                require_admin(session, group_id, member_id)
            else:
                require_member(session, group_id, member_id)


def membership_required(admin: bool = False):
    """
    Gate a route on the requester's membership of ``<group_id>``.

    Must sit below ``jwt_required()`` so the identity is available.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            gate = current_app.extensions["group_ledger"].gate
            gate.check(kwargs["group_id"], current_member_id(), admin=admin)
            return view(*args, **kwargs)
        return wrapper
    return decorator
