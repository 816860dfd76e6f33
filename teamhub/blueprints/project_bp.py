"""
TeamHub Collaboration Platform
Project Blueprint — projects, roles and applications.

Routes (all under /api/v1, bearer token required):
    POST   /projects                                   create project
    GET    /projects/mine | /projects/joined           my / joined projects
    GET    /projects/<id>                              project with roles
    POST   /projects/<id>/apply                        Apply (per-role results)
    GET    /projects/<id>/applicants                   pending applications (creator)
    GET    /projects/<id>/my-applications              caller's applications
    POST   /projects/<id>/invite                       Invite
    DELETE /projects/<id>/roles/<role_id>/member       remove team member
    POST   /applications/<id>/accept | /decline        Accept / Decline

Business errors are raised by the services and rendered by the app-wide
LifecycleError handler; this module only rejects malformed input.
"""

import logging

from flask import Blueprint, jsonify, request

from teamhub.blueprints import current_actor, json_body
from teamhub.models.collaboration import KIND_APPLICATION
from teamhub.services import lifecycle, project_service, request_ledger
from teamhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECTS
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects", methods=["POST"])
def create_project():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    project = project_service.create_project(current_actor(), data)
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/mine", methods=["GET"])
def my_projects():
    projects = project_service.list_my_projects(current_actor())
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)})


@project_bp.route("/projects/joined", methods=["GET"])
def joined_projects():
    projects = project_service.list_joined_projects(current_actor())
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)})


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(project_service.get_project(project_id).to_dict())


@project_bp.route("/projects/<int:project_id>/roles/<int:role_id>/member", methods=["DELETE"])
def remove_team_member(project_id, role_id):
    role = project_service.remove_member(project_id, role_id, current_actor())
    return jsonify({"message": "Team member removed successfully", "role": role.to_dict()})


# ═══════════════════════════════════════════════════════════════════════════
#  APPLICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/apply", methods=["POST"])
def apply(project_id):
    """Apply for one or more roles; each role succeeds or fails on its own."""
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    roles = data.get("roles")
    if roles is None and data.get("role"):
        roles = [data["role"]]
    if not isinstance(roles, list) or not roles:
        return api_error(E.VALIDATION_REQUIRED, "Please select at least one role to apply for")
    message = data.get("message") or ""
    if not isinstance(message, str):
        return api_error(E.VALIDATION_INVALID, "message must be a string")

    result = lifecycle.apply(project_id, roles, current_actor(), message)
    return jsonify(result), 201


@project_bp.route("/projects/<int:project_id>/applicants", methods=["GET"])
def list_applicants(project_id):
    status = request.args.get("status", "Pending")
    if status == "all":
        status = None
    items = request_ledger.list_applicants(project_id, current_actor(), status=status)
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


@project_bp.route("/projects/<int:project_id>/my-applications", methods=["GET"])
def my_applications(project_id):
    items = request_ledger.list_my_applications(project_id, current_actor())
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


@project_bp.route("/applications/<int:application_id>/accept", methods=["POST"])
def accept_application(application_id):
    return jsonify(lifecycle.accept_application(application_id, current_actor()))


@project_bp.route("/applications/<int:application_id>/decline", methods=["POST"])
def decline_application(application_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    reason = data.get("reason")
    if reason is not None and not isinstance(reason, str):
        return api_error(E.VALIDATION_INVALID, "reason must be a string")
    result = lifecycle.decline(KIND_APPLICATION, application_id, current_actor(), reason)
    return jsonify(result)


# ═══════════════════════════════════════════════════════════════════════════
#  INVITE
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/invite", methods=["POST"])
def invite(project_id):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    invitee_id = data.get("invitee_id") or data.get("inviteeId")
    if not invitee_id:
        return api_error(E.VALIDATION_REQUIRED, "Invitee ID is required")
    role = data.get("role")
    if not role or not isinstance(role, str):
        return api_error(E.VALIDATION_REQUIRED, "role is required")
    message = data.get("message")
    if message is not None and not isinstance(message, str):
        return api_error(E.VALIDATION_INVALID, "message must be a string")

    result = lifecycle.invite(project_id, role, current_actor(), str(invitee_id), message)
    return jsonify(result), 201
