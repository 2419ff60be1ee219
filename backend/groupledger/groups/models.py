"""Group and membership tables."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from groupledger.extensions import Base, utcnow


class Group(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column("groupid", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("name", Text, nullable=False)
    created_by: Mapped[int] = mapped_column("createdby", Integer, nullable=False)
    budget: Mapped[Decimal] = mapped_column("groupbudget", Numeric(10, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column("description", String(1000))
    created_at: Mapped[datetime] = mapped_column(
        "createdat", DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        "updatedat", DateTime(timezone=True), nullable=False, default=utcnow
    )

    def to_dict(self):
        return {
            "groupId": self.id,
            "name": self.name,
            "createdBy": self.created_by,
            "groupBudget": self.budget,
            "description": self.description,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


class GroupMember(Base):
    __tablename__ = "group_members"

    group_id: Mapped[int] = mapped_column(
        "groupid", Integer, ForeignKey("groups.groupid"), primary_key=True
    )
    member_id: Mapped[int] = mapped_column("userid", Integer, primary_key=True)
    is_admin: Mapped[bool] = mapped_column("isadmin", Boolean, nullable=False, default=False)
