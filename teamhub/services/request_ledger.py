"""
Request Ledger service — Application and Invitation records.

Creation is an atomic "insert if no Pending row exists for the triple": the
INSERT runs inside a SAVEPOINT and the partial unique index rejects the
second Pending row, so two rapid double-clicks cannot both succeed.

``set_status`` is a conditional UPDATE guarded by ``status = 'Pending'``.
Pending → Accepted | Rejected is the only legal move; a request that is
already terminal fails with InvalidTransitionError and nothing is written.

Neither function commits. The lifecycle coordinator groups them with the
role fill and the chat mirror into one transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from teamhub.core.exceptions import (
    DuplicateRequestError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)
from teamhub.models import db
from teamhub.models.collaboration import (
    KIND_APPLICATION,
    KIND_INVITATION,
    REQUEST_MODELS,
    REQUEST_STATUSES,
    STATUS_PENDING,
    TERMINAL_STATUSES,
    Application,
    Invitation,
)
from teamhub.models.project import Project
from teamhub.services.project_service import get_project, require_open_role

logger = logging.getLogger(__name__)

_ACTION_FOR_STATUS = {"Accepted": "accept", "Rejected": "decline"}


def _model_for(kind: str):
    try:
        return REQUEST_MODELS[kind]
    except KeyError:
        raise ValidationError(
            f"Unknown request kind {kind!r}", details={"kind": sorted(REQUEST_MODELS)},
        ) from None


def _check_message(message: str | None, *, required: bool = False) -> str:
    if message is not None and not isinstance(message, str):
        raise ValidationError("message must be a string", details={"message": "not a string"})
    text = (message or "").strip()
    max_len = current_app.config.get("APPLICATION_MESSAGE_MAX_LENGTH", 500)
    if len(text) > max_len:
        raise ValidationError(
            f"message must be at most {max_len} characters",
            details={"message": "too long", "max_length": max_len},
        )
    if required and not text:
        raise ValidationError("message is required", details={"message": "required"})
    return text


# ── Reads ────────────────────────────────────────────────────────────────────


def get_request(kind: str, request_id: int) -> Application | Invitation:
    """Load one ledger entry, always re-reading its status from the database."""
    model = _model_for(kind)
    request_obj = db.session.get(model, request_id, populate_existing=True)
    if request_obj is None:
        raise NotFoundError(resource=kind.capitalize(), resource_id=request_id)
    return request_obj


def list_applicants(project_id: int, actor_id: str, status: str | None = STATUS_PENDING) -> list[Application]:
    """Applications to a project; only its creator may see them."""
    project = get_project(project_id)
    if project.creator_id != str(actor_id):
        raise NotAuthorizedError(actor_id, "view applicants", "only the project creator can")
    stmt = select(Application).where(Application.project_id == project_id)
    if status:
        if status not in REQUEST_STATUSES:
            raise ValidationError(f"Unknown status {status!r}", details={"status": list(REQUEST_STATUSES)})
        stmt = stmt.where(Application.status == status)
    return list(db.session.execute(stmt.order_by(Application.created_at.desc(), Application.id.desc())).scalars())


def list_my_applications(project_id: int, applicant_id: str) -> list[Application]:
    """The caller's own applications to one project, any status."""
    get_project(project_id)
    stmt = (
        select(Application)
        .where(Application.project_id == project_id, Application.applicant_id == str(applicant_id))
        .order_by(Application.created_at.desc(), Application.id.desc())
    )
    return list(db.session.execute(stmt).scalars())


def list_received_invitations(invitee_id: str, status: str | None = None) -> list[Invitation]:
    stmt = select(Invitation).where(Invitation.invitee_id == str(invitee_id))
    if status:
        if status not in REQUEST_STATUSES:
            raise ValidationError(f"Unknown status {status!r}", details={"status": list(REQUEST_STATUSES)})
        stmt = stmt.where(Invitation.status == status)
    return list(db.session.execute(stmt.order_by(Invitation.created_at.desc(), Invitation.id.desc())).scalars())


def pending_for_role(project_id: int, role_title: str) -> list[Application | Invitation]:
    """All Pending requests of both kinds for one role title."""
    found: list = []
    for model in (Application, Invitation):
        stmt = select(model).where(
            model.project_id == project_id,
            model.role_title == role_title,
            model.status == STATUS_PENDING,
        )
        found.extend(db.session.execute(stmt).scalars())
    return found


# ── Commands ─────────────────────────────────────────────────────────────────


def _insert_pending(request_obj, kind: str, project_id: int, role_title: str, user_id: str):
    try:
        with db.session.begin_nested():
            db.session.add(request_obj)
    except IntegrityError:
        logger.info(
            "Duplicate pending %s rejected for role %r", kind, role_title,
            extra={"project_id": project_id, "request_kind": kind, "event_type": f"{kind}.duplicate"},
        )
        raise DuplicateRequestError(kind, project_id, role_title, user_id) from None
    return request_obj


def create_application(
    project: Project,
    role_title: str,
    applicant_id: str,
    message: str | None = "",
    *,
    applicant_snapshot: dict | None = None,
) -> Application:
    """Record a Pending application. Never reserves the role.

    Raises:
        ValidationError: applying to your own project, or message too long.
        NotFoundError: the project has no role with that title.
        RoleUnavailableError: every slot with that title is filled.
        DuplicateRequestError: a Pending application for the triple exists.
    """
    applicant_id = str(applicant_id)
    if project.creator_id == applicant_id:
        raise ValidationError("You cannot apply to your own project")
    text = _check_message(message)
    require_open_role(project, role_title)

    application = Application(
        project_id=project.id,
        role_title=role_title,
        applicant_id=applicant_id,
        message=text,
        status=STATUS_PENDING,
        applicant_snapshot=applicant_snapshot,
    )
    return _insert_pending(application, KIND_APPLICATION, project.id, role_title, applicant_id)


def create_invitation(
    project: Project,
    role_title: str,
    inviter_id: str,
    invitee_id: str,
    message: str | None = None,
    *,
    inviter_snapshot: dict | None = None,
    invitee_snapshot: dict | None = None,
) -> Invitation:
    """Record a Pending invitation from the project creator.

    Raises:
        NotAuthorizedError: ``inviter_id`` is not the project's creator.
        NotFoundError / RoleUnavailableError: as for applications.
        DuplicateRequestError: a Pending invitation for the triple exists.
    """
    inviter_id, invitee_id = str(inviter_id), str(invitee_id)
    if project.creator_id != inviter_id:
        raise NotAuthorizedError(inviter_id, "send invitations", "only the project creator can")
    text = _check_message(message) or None
    require_open_role(project, role_title)

    invitation = Invitation(
        project_id=project.id,
        role_title=role_title,
        inviter_id=inviter_id,
        invitee_id=invitee_id,
        message=text,
        status=STATUS_PENDING,
        inviter_snapshot=inviter_snapshot,
        invitee_snapshot=invitee_snapshot,
    )
    return _insert_pending(invitation, KIND_INVITATION, project.id, role_title, invitee_id)


def set_status(
    kind: str,
    request_id: int,
    new_status: str,
    *,
    decline_reason: str | None = None,
    role_id: int | None = None,
) -> Application | Invitation:
    """Move a Pending request to a terminal status.

    Raises:
        NotFoundError: no such request.
        InvalidTransitionError: target is not terminal or request is not Pending.
    """
    model = _model_for(kind)
    request_obj = get_request(kind, request_id)
    action = _ACTION_FOR_STATUS.get(new_status, f"set status {new_status} on")
    if new_status not in TERMINAL_STATUSES:
        raise InvalidTransitionError(kind, request_id, request_obj.status, action)

    now = datetime.now(timezone.utc)
    values = {"status": new_status, "decided_at": now, "updated_at": now}
    if decline_reason is not None:
        values["decline_reason"] = decline_reason
    if role_id is not None:
        values["role_id"] = role_id

    result = db.session.execute(
        update(model)
        .where(model.id == request_id, model.status == STATUS_PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(request_obj)
    if result.rowcount != 1:
        raise InvalidTransitionError(kind, request_id, request_obj.status, action)
    return request_obj


def backfill_snapshots(request_obj, resolve) -> bool:
    """Fill missing display snapshots using ``resolve(user_id)``. Returns True if changed."""
    changed = False
    if isinstance(request_obj, Application):
        if request_obj.applicant_snapshot is None:
            snap = resolve(request_obj.applicant_id)
            if snap is not None:
                request_obj.applicant_snapshot = snap
                changed = True
    else:
        if request_obj.inviter_snapshot is None:
            snap = resolve(request_obj.inviter_id)
            if snap is not None:
                request_obj.inviter_snapshot = snap
                changed = True
        if request_obj.invitee_snapshot is None:
            snap = resolve(request_obj.invitee_id)
            if snap is not None:
                request_obj.invitee_snapshot = snap
                changed = True
    return changed
