from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from groupledger.core import services

users_bp = Blueprint("users", __name__)


@users_bp.route("/search", methods=["GET"])
@jwt_required()
def search_users():
    """Username prefix search, used when picking members to add."""
    query = (request.args.get("q") or "").strip()
    if len(query) < 2:
        return jsonify({"error": "Query too short"}), 400
    return jsonify(services().directory.search(query))
