"""Balance and settle-up routes, mounted beside the group routes."""
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from groupledger.core import services
from groupledger.utils.permissions import current_member_id
from groupledger.utils.validators import SettleUpRequest, validate_payload

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/balances/<int:group_id>", methods=["POST", "GET"])
@jwt_required()
def get_balances(group_id):
    """
    Who owes the caller and whom the caller owes within a group.

    Returns:
    {
        "owesMe": [{"userId": 2, "username": "bob", "amount": "30.00"}],
        "iOwe": []
    }
    """
    return jsonify(services().balances.get_group_balances(group_id, current_member_id()))


@settlements_bp.route("/settleUpWithUser/<int:group_id>", methods=["POST"])
@jwt_required()
def settle_up(group_id):
    """
    Record an out-of-band payment.

    Request body:
    {
        "fromUserId": 2,
        "toUserId": 1,
        "amount": 30.00,
        "idempotencyKey": "..."     // optional, makes retries safe
    }
    """
    body, error = validate_payload(SettleUpRequest, request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    settlement = services().settlements.settle_up(
        group_id,
        current_member_id(),
        body.from_user_id,
        body.to_user_id,
        body.amount,
        idempotency_key=body.idempotency_key,
    )
    message = "Settlement already recorded" if settlement["replayed"] else "Settled up successfully"
    return jsonify({"message": message, "settlement": settlement})


@settlements_bp.route("/settlements/<int:group_id>", methods=["GET"])
@jwt_required()
def get_history(group_id):
    history = services().settlements.list_settlements(group_id, current_member_id())
    return jsonify({"settlements": history})


@settlements_bp.route("/suggestedSettlements/<int:group_id>", methods=["GET"])
@jwt_required()
def suggested_settlements(group_id):
    """Fewest transfers that would bring every group balance to zero."""
    transfers = services().balances.suggest_settlements(group_id, current_member_id())
    return jsonify({"settlements": transfers})
