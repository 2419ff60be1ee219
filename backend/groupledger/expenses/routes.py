from flask import Blueprint, current_app, request, jsonify
from flask_jwt_extended import jwt_required

from groupledger.core import services
from groupledger.utils.permissions import current_member_id, membership_required
from groupledger.utils.validators import (
    AddExpenseRequest,
    EditExpenseRequest,
    PageQuery,
    validate_payload,
)

expenses_bp = Blueprint("group_expenses", __name__)


@expenses_bp.route("/add", methods=["POST"])
@jwt_required()
def add_expense():
    """
    Add a group expense with its split.

    Request body:
    {
        "groupId": 1,
        "paidBy": "alice",                  // username
        "amount": 90.00,
        "description": "Dinner",
        "category": "food",
        "shares": [{"username": "alice", "amountOwned": 30.00}, ...],
        // or: "splitType": "equal", "members": ["alice", "bob", "carol"]
        // or: "splitType": "percentage", "percentages": {"alice": 50, "bob": 50}
    }
    """
    body, error = validate_payload(AddExpenseRequest, request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    result = services().expenses.add_expense(
        group_id=body.group_id,
        payer_username=body.paid_by,
        creator_id=current_member_id(),
        amount=body.amount,
        category=body.category,
        description=body.description,
        **body.split_kwargs(),
    )
    return jsonify({"message": "Expense added", **result}), 201


@expenses_bp.route("/getAll/<int:group_id>", methods=["GET"])
@jwt_required()
@membership_required()
def get_group_expenses(group_id):
    query, error = validate_payload(PageQuery, request.args.to_dict())
    if error:
        return jsonify({"error": error}), 400

    limit = query.limit if "limit" in request.args else current_app.config.get("DEFAULT_PAGE_LIMIT", 10)
    limit = min(limit, current_app.config.get("MAX_PAGE_LIMIT", 50))
    return jsonify(services().expenses.list_expenses(group_id, page=query.page, limit=limit))


@expenses_bp.route("/getExpense/<int:expense_id>", methods=["GET"])
@jwt_required()
def get_expense(expense_id):
    return jsonify(services().expenses.get_expense_detail(expense_id, current_member_id()))


@expenses_bp.route("/getExpenseShare/<int:expense_id>", methods=["GET"])
@jwt_required()
def get_expense_shares(expense_id):
    return jsonify(services().expenses.get_expense_shares(expense_id, current_member_id()))


@expenses_bp.route("/getUserExpenses", methods=["GET"])
@jwt_required()
def get_user_expenses():
    return jsonify(services().expenses.list_expenses_for_member(current_member_id()))


@expenses_bp.route("/edit/<int:group_id>/<int:expense_id>", methods=["PUT"])
@jwt_required()
def edit_expense(group_id, expense_id):
    """Only the creator of the expense or a group admin may edit it."""
    body, error = validate_payload(EditExpenseRequest, request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    expense = services().expenses.edit_expense(
        group_id,
        expense_id,
        current_member_id(),
        amount=body.amount,
        category=body.category,
        description=body.description,
        **body.split_kwargs(),
    )
    return jsonify({"message": "Expense updated", "expense": expense})


@expenses_bp.route("/delete/<int:group_id>/<int:expense_id>", methods=["DELETE"])
@jwt_required()
def delete_expense(group_id, expense_id):
    services().expenses.delete_expense(group_id, expense_id, current_member_id())
    return jsonify({"message": "Expense deleted", "expenseId": expense_id})
