"""
Settlement Recorder - out-of-band payments between two members.

Settlements are append-only. A request may carry an idempotency key; a
repeat with the same key in the same group returns the first settlement
instead of writing a second one. Paying more than is owed is allowed but
flagged.
"""
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select

from groupledger.core.balance_service import BalanceAggregator
from groupledger.extensions import utcnow
from groupledger.settlements.models import Settlement
from groupledger.utils.errors import (
    AuthorizationError, ConflictError, NotFoundError, ValidationError,
)
from groupledger.utils.logging import get_logger
from groupledger.utils.money import to_money
from groupledger.utils.permissions import get_membership, require_group, require_member

logger = get_logger(__name__)


class SettlementRecorder:

    def __init__(self, db, directory):
        self.db = db
        self.directory = directory

    def settle_up(
        self,
        group_id: int,
        requester_id: int,
        from_member_id: int,
        to_member_id: int,
        amount: Decimal,
        idempotency_key: Optional[str] = None,
    ) -> Dict:
        """
        Record that ``from_member_id`` paid ``to_member_id``.

        Returns:
            The settlement view plus ``overpayment`` and ``replayed`` flags
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("amount must be positive")
        if from_member_id == to_member_id:
            raise ValidationError("cannot settle up with yourself")

        log = logger.bind(operation="settle_up", group_id=group_id)

        with self.db.transaction(operation="settle_up", group_id=group_id) as session:
            require_group(session, group_id)
            requester = require_member(session, group_id, requester_id)
            for member_id in (from_member_id, to_member_id):
                if get_membership(session, group_id, member_id) is None:
                    raise NotFoundError(f"User {member_id} not found in group")
            if requester_id not in (from_member_id, to_member_id) and not requester.is_admin:
                raise AuthorizationError(
                    "only a party to the settlement or a group admin can record it"
                )

            if idempotency_key:
                existing = session.scalar(
                    select(Settlement).where(
                        Settlement.group_id == group_id,
                        Settlement.idempotency_key == idempotency_key,
                    )
                )
                if existing is not None:
                    if (existing.from_member_id, existing.to_member_id, existing.amount) != (
                        from_member_id, to_member_id, amount
                    ):
                        raise ConflictError(
                            "idempotency key already used for a different settlement"
                        )
                    log.info("settlement_replayed", settlement_id=existing.id)
                    return dict(self._view(existing), overpayment=False, replayed=True)

            sheet = BalanceAggregator.load_sheet(session, group_id)
            outstanding = sheet.net(to_member_id, from_member_id)
            overpayment = amount > outstanding

            settlement = Settlement(
                group_id=group_id,
                from_member_id=from_member_id,
                to_member_id=to_member_id,
                amount=amount,
                settled_at=utcnow(),
                idempotency_key=idempotency_key,
            )
            session.add(settlement)
            session.flush()
            view = self._view(settlement)

        if overpayment:
            log.warning(
                "settlement_overpayment",
                settlement_id=view["id"],
                from_user_id=from_member_id,
                to_user_id=to_member_id,
                amount=str(amount),
                outstanding=str(outstanding),
            )
        log.info(
            "settlement_recorded",
            settlement_id=view["id"],
            from_user_id=from_member_id,
            to_user_id=to_member_id,
            amount=str(amount),
        )
        return dict(view, overpayment=overpayment, replayed=False)

    def list_settlements(self, group_id: int, requester_id: int) -> List[Dict]:
        """Settlement history for a group, newest first."""
        with self.db.reader(operation="list_settlements", group_id=group_id) as session:
            require_group(session, group_id)
            require_member(session, group_id, requester_id)
            settlements = session.scalars(
                select(Settlement)
                .where(Settlement.group_id == group_id)
                .order_by(Settlement.settled_at.desc(), Settlement.id.desc())
            ).all()
            history = [self._view(s) for s in settlements]

        names = self.directory.display_names(
            [s["fromUserId"] for s in history] + [s["toUserId"] for s in history]
        )
        for s in history:
            s["fromUsername"] = names[s["fromUserId"]]
            s["toUsername"] = names[s["toUserId"]]
        return history

    @staticmethod
    def _view(settlement: Settlement) -> Dict:
        return {
            "id": settlement.id,
            "groupId": settlement.group_id,
            "fromUserId": settlement.from_member_id,
            "toUserId": settlement.to_member_id,
            "amount": settlement.amount,
            "settledAt": settlement.settled_at.isoformat(),
        }
