"""Group expense and share tables."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.extensions import Base, utcnow


class GroupExpense(Base):
    __tablename__ = "group_expenses"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_group_expenses_amount_positive"),
    )

    id: Mapped[int] = mapped_column("id", Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        "groupid", Integer, ForeignKey("groups.groupid"), nullable=False, index=True
    )
    paid_by: Mapped[int] = mapped_column("paidby", Integer, nullable=False)
    created_by: Mapped[int] = mapped_column("createdby", Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column("amount", Numeric(10, 2), nullable=False)
    category: Mapped[str] = mapped_column("category", String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column("description", String(1000))
    created_at: Mapped[datetime] = mapped_column(
        "createdat", DateTime(timezone=True), nullable=False, default=utcnow
    )

    shares: Mapped[List["ExpenseShare"]] = relationship(
        back_populates="expense",
        order_by="ExpenseShare.id",
        cascade="all, delete-orphan",
    )


class ExpenseShare(Base):
    __tablename__ = "expenses_share"
    __table_args__ = (
        CheckConstraint("amountowned > 0", name="ck_expenses_share_amount_positive"),
    )

    id: Mapped[int] = mapped_column("id", Integer, primary_key=True, autoincrement=True)
    expense_id: Mapped[int] = mapped_column(
        "expenseid", Integer, ForeignKey("group_expenses.id"), nullable=False, index=True
    )
    member_id: Mapped[int] = mapped_column("userid", Integer, nullable=False)
    amount_owed: Mapped[Decimal] = mapped_column("amountowned", Numeric(10, 2), nullable=False)

    expense: Mapped[GroupExpense] = relationship(back_populates="shares")
