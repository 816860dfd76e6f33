"""
TeamHub Collaboration Platform
Invitation Blueprint — the invitee's side of Invite.

Routes:
    GET  /api/v1/invitations/received          invitations addressed to the caller
    POST /api/v1/invitations/<id>/accept       AcceptInvitation (invitee only)
    POST /api/v1/invitations/<id>/decline      Decline with reason (invitee only)
"""

from flask import Blueprint, jsonify, request

from teamhub.blueprints import current_actor, json_body
from teamhub.models.collaboration import KIND_INVITATION
from teamhub.services import lifecycle, request_ledger
from teamhub.utils.errors import E, api_error

invitation_bp = Blueprint("invitation_bp", __name__, url_prefix="/api/v1/invitations")


@invitation_bp.route("/received", methods=["GET"])
def received():
    items = request_ledger.list_received_invitations(current_actor(), status=request.args.get("status"))
    return jsonify({"items": [i.to_dict() for i in items], "total": len(items)})


@invitation_bp.route("/<int:invitation_id>/accept", methods=["POST"])
def accept(invitation_id):
    return jsonify(lifecycle.accept_invitation(invitation_id, current_actor()))


@invitation_bp.route("/<int:invitation_id>/decline", methods=["POST"])
def decline(invitation_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    reason = data.get("reason")
    if reason is not None and not isinstance(reason, str):
        return api_error(E.VALIDATION_INVALID, "reason must be a string")
    return jsonify(lifecycle.decline(KIND_INVITATION, invitation_id, current_actor(), reason))
