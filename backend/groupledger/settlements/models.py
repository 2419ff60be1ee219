"""Append-only settlement table."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from groupledger.extensions import Base, utcnow


class Settlement(Base):
    __tablename__ = "settlements"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint("fromuserid <> touserid", name="ck_settlements_no_self_settlement"),
        UniqueConstraint("groupid", "idempotencykey", name="uq_settlements_idempotency_key"),
    )

    id: Mapped[int] = mapped_column("id", Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        "groupid", Integer, ForeignKey("groups.groupid"), nullable=False, index=True
    )
    from_member_id: Mapped[int] = mapped_column("fromuserid", Integer, nullable=False)
    to_member_id: Mapped[int] = mapped_column("touserid", Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column("amount", Numeric(10, 2), nullable=False)
    settled_at: Mapped[datetime] = mapped_column(
        "settledat", DateTime(timezone=True), nullable=False, default=utcnow
    )
    idempotency_key: Mapped[Optional[str]] = mapped_column("idempotencykey", String(64))
