from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from groupledger.core import services
from groupledger.utils.permissions import current_member_id, membership_required
from groupledger.utils.validators import (
    AddMemberRequest,
    CreateGroupRequest,
    EditGroupRequest,
    RemoveMemberRequest,
    TargetMemberRequest,
    validate_payload,
)

groups_bp = Blueprint("groups", __name__)


# ------------------ GROUPS ------------------

@groups_bp.route("/createGroup", methods=["POST"])
@jwt_required()
def create_group():
    """
    Create a group; the caller becomes its first admin.

    Request body:
    {
        "name": "Goa trip",
        "groupBudget": 20000,
        "description": "...",       // optional
        "groupMembers": [2, 3]      // member ids, optional
    }
    """
    body, error = validate_payload(CreateGroupRequest, request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    result = services().groups.create_group(
        name=body.name,
        budget=body.group_budget,
        description=body.description,
        creator_id=current_member_id(),
        member_ids=body.group_members,
    )
    return jsonify({"message": "Group Created Successfully!", **result}), 201


@groups_bp.route("/getGroups", methods=["GET"])
@jwt_required()
def get_groups():
    return jsonify(services().groups.list_groups_for_member(current_member_id()))


@groups_bp.route("/<int:group_id>", methods=["GET"])
@jwt_required()
def get_group(group_id):
    return jsonify(services().groups.get_group(group_id, current_member_id()))


@groups_bp.route("/editGroupInfo/<int:group_id>", methods=["PUT", "PATCH"])
@jwt_required()
def edit_group_info(group_id):
    body, error = validate_payload(EditGroupRequest, request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    group = services().groups.edit_group_info(
        group_id,
        current_member_id(),
        name=body.name,
        budget=body.group_budget,
        description=body.description,
    )
    return jsonify({"message": "Group updated", "group": group})


@groups_bp.route("/deleteGroup/<int:group_id>", methods=["DELETE"])
@jwt_required()
def delete_group(group_id):
    services().groups.delete_group(group_id, current_member_id())
    return jsonify({"message": "Group deleted", "groupId": group_id})


# ------------------ MEMBERS ------------------

@groups_bp.route("/getMembers/<int:group_id>", methods=["GET"])
@jwt_required()
@membership_required()
def get_members(group_id):
    return jsonify(services().groups.list_members(group_id))


@groups_bp.route("/addMember/<int:group_id>", methods=["POST"])
@jwt_required()
def add_member(group_id):
    body, error = validate_payload(AddMemberRequest, request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    data = services().groups.add_member(group_id, current_member_id(), body.add_user_id)
    return jsonify({"message": "Member Added Successfully!", "data": data}), 201


@groups_bp.route("/removeMember/<int:group_id>", methods=["DELETE"])
@jwt_required()
def remove_member(group_id):
    body, error = validate_payload(RemoveMemberRequest, request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    data = services().groups.remove_member(group_id, current_member_id(), body.delete_user_id)
    return jsonify({"message": "Member removed successfully", "data": data}), 201


@groups_bp.route("/leave/<int:group_id>", methods=["POST"])
@jwt_required()
def leave_group(group_id):
    data = services().groups.leave_group(group_id, current_member_id())
    return jsonify({"message": "You left the group", "data": data})


@groups_bp.route("/promoteAdmin/<int:group_id>", methods=["POST"])
@jwt_required()
def promote_admin(group_id):
    body, error = validate_payload(TargetMemberRequest, request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    data = services().groups.promote_admin(group_id, current_member_id(), body.target_user_id)
    return jsonify({"message": "Member promoted to admin", "data": data})


@groups_bp.route("/demoteAdmin/<int:group_id>", methods=["POST"])
@jwt_required()
def demote_admin(group_id):
    body, error = validate_payload(TargetMemberRequest, request.get_json(silent=True))
    if error:
        return jsonify({"error": error}), 400

    data = services().groups.demote_admin(group_id, current_member_id(), body.target_user_id)
    return jsonify({"message": "Admin demoted to member", "data": data})
