"""
Lifecycle Coordinator — Apply, Invite, Accept and Decline.

Every command runs as one database transaction spanning the three stores,
with writes issued in the fixed order Role → Ledger → Chat. Either all of
them commit or none do; events are published only after the commit.

State machine per request:
    Pending ──accept──▶ Accepted   (role filled, chat mirrored)
    Pending ──decline─▶ Rejected   (role untouched, chat mirrored)
    Pending ──accept, role lost──▶ Rejected  ("lazy rejection on touch")

Sibling policy: accepting one request does NOT reject the other Pending
requests for the same role. They stay Pending until someone acts on them;
an Accept then loses the role compare-and-set, the request is moved to
Rejected in its own committed transaction and RoleAlreadyFilledError is
raised. Stale views may show such siblings as Pending until refetched.

Usage:
    from teamhub.services import lifecycle

    result = lifecycle.apply(project_id, ["Designer"], "u-2", "Hi!")
    lifecycle.accept("application", result["created"][0]["id"], "u-1")
    lifecycle.decline("invitation", 7, "u-3", "Not available this semester")
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from flask import current_app

from teamhub.core.exceptions import (
    InvalidReasonError,
    InvalidTransitionError,
    LifecycleError,
    NotAuthorizedError,
    RoleAlreadyFilledError,
    ValidationError,
)
from teamhub.events import (
    ACTION_ACCEPTED,
    ACTION_AUTO_REJECTED,
    ACTION_CREATED,
    ACTION_DECLINED,
    LifecycleEvent,
    publish,
    publish_all,
)
from teamhub.integrations.user_directory import display_name, get_user_directory
from teamhub.models import db
from teamhub.models.collaboration import (
    KIND_APPLICATION,
    KIND_INVITATION,
    STATUS_ACCEPTED,
    STATUS_PENDING,
    STATUS_REJECTED,
)
from teamhub.services import conversation_service, project_service, request_ledger

logger = logging.getLogger(__name__)

AUTO_REJECT_REASON = "Role already filled"

_APPLY_DEFAULT = (
    "Hi! I'm interested in joining \"{title}\". I've applied for the following role(s): "
    "{role}. I'd love to discuss how I can contribute!"
)
_INVITE_DEFAULT = (
    "Hi! I'd like to invite you to join my project \"{title}\"{role_text}. "
    "I think you'd be a great fit!"
)
_DECLINE_TRAIL = {
    KIND_APPLICATION: "Application declined. Reason: {reason}",
    KIND_INVITATION: "Declined invitation. Reason: {reason}",
}


# ── Private helpers ────────────────────────────────────────────────────────────


@contextmanager
def _unit_of_work(command: str, **log_extra):
    """Roll back the session if the command raises before committing."""
    try:
        yield
    except Exception as exc:
        db.session.rollback()
        if not isinstance(exc, LifecycleError):
            logger.exception("%s failed with unexpected error", command, extra=log_extra)
        raise


def _snapshot(user_id: str) -> dict | None:
    """Best-effort directory lookup; a slow or absent directory never fails a command."""
    try:
        return get_user_directory().resolve_user(user_id)
    except Exception:
        logger.warning("User directory lookup raised for %s", user_id, exc_info=True)
        return None


def _authorize(kind: str, request_obj, project, actor_id: str, action: str) -> None:
    actor_id = str(actor_id)
    if kind == KIND_APPLICATION:
        if project.creator_id != actor_id:
            raise NotAuthorizedError(actor_id, f"{action} application #{request_obj.id}",
                                     "only the project creator can")
    elif request_obj.invitee_id != actor_id:
        raise NotAuthorizedError(actor_id, f"{action} invitation #{request_obj.id}",
                                 "only the invitee can")


def _counterparts(kind: str, request_obj, project) -> tuple[str, str]:
    """(candidate, other party) for the request's bound chat."""
    if kind == KIND_APPLICATION:
        return request_obj.applicant_id, project.creator_id
    return request_obj.invitee_id, request_obj.inviter_id


def _log_extra(kind: str, request_obj, event_type: str, actor_id: str | None = None) -> dict:
    return {
        "project_id": request_obj.project_id,
        "request_kind": kind,
        "entity_id": getattr(request_obj, "id", None),
        "actor_id": actor_id,
        "event_type": event_type,
    }


def _request_event(kind, action, request_obj, project, actor_id, audience, chat=None, **payload) -> LifecycleEvent:
    return LifecycleEvent(
        kind=kind,
        action=action,
        entity_id=request_obj.id,
        project_id=project.id,
        actor_id=str(actor_id),
        audience=tuple(u for u in audience if u),
        payload={
            "project_title": project.title,
            "role_title": request_obj.role_title,
            "status": request_obj.status,
            "chat_id": chat.id if chat is not None else None,
            **payload,
        },
    )


# ── Apply ──────────────────────────────────────────────────────────────────────


def apply(project_id: int, role_titles, applicant_id: str, message: str | None = "") -> dict:
    """Create one Application (plus its bound chat) per role title.

    Each role is its own transaction: a role that is filled, unknown or
    already applied-to is reported in ``errors`` while the others succeed.

    Returns:
        {"created": [application dicts], "errors": [{"role_title", "code", "error", "status"}]}

    Raises:
        ValidationError: no roles given.
        NotFoundError: no such project.
        The first per-role error, when no application at all was created.
    """
    if isinstance(role_titles, str):
        role_titles = [role_titles]
    titles = [str(t).strip() for t in (role_titles or []) if str(t).strip()]
    titles = list(dict.fromkeys(titles))
    if not titles:
        raise ValidationError("Please select at least one role to apply for", details={"roles": "required"})

    applicant_id = str(applicant_id)
    project = project_service.get_project(project_id)
    creator_id = project.creator_id
    project_title = project.title
    snapshot = _snapshot(applicant_id)

    created: list[dict] = []
    errors: list[dict] = []
    first_error: LifecycleError | None = None

    for title in titles:
        try:
            with _unit_of_work("apply", project_id=project_id, actor_id=applicant_id):
                application = request_ledger.create_application(
                    project, title, applicant_id, message, applicant_snapshot=snapshot,
                )
                chat, _ = conversation_service.get_or_create_bound_chat(
                    KIND_APPLICATION, application.id, applicant_id, creator_id,
                    project_id=project_id, status=STATUS_PENDING,
                )
                seed = application.message or _APPLY_DEFAULT.format(title=project_title, role=title)
                conversation_service.append_message(chat, applicant_id, seed)
                db.session.commit()
        except LifecycleError as exc:
            first_error = first_error or exc
            errors.append({"role_title": title, "code": exc.code, "error": str(exc), "status": exc.status})
            project = project_service.get_project(project_id)
            continue

        logger.info(
            "Application #%s for %r created", application.id, title,
            extra=_log_extra(KIND_APPLICATION, application, "application.created", applicant_id),
        )
        created.append({**application.to_dict(), "chat_id": chat.id})
        publish(_request_event(
            KIND_APPLICATION, ACTION_CREATED, application, project, applicant_id,
            audience=(creator_id,), chat=chat, actor_name=display_name(snapshot),
        ))

    if not created and first_error is not None:
        raise first_error
    return {"created": created, "errors": errors}


# ── Invite ─────────────────────────────────────────────────────────────────────


def invite(
    project_id: int,
    role_title: str,
    inviter_id: str,
    invitee_id: str,
    message: str | None = None,
) -> dict:
    """Create a Pending invitation and its bound chat, seeded with the message.

    Raises:
        NotAuthorizedError: the inviter is not the project's creator.
        ValidationError: no invitee, or the creator invites themselves.
        RoleUnavailableError / DuplicateRequestError / NotFoundError.
    """
    inviter_id = str(inviter_id)
    invitee_id = str(invitee_id or "").strip()
    role_title = str(role_title or "").strip()
    if not role_title:
        raise ValidationError("role is required", details={"role": "required"})
    if not invitee_id:
        raise ValidationError("Invitee ID is required", details={"invitee_id": "required"})

    project = project_service.get_project(project_id)
    if project.creator_id != inviter_id:
        raise NotAuthorizedError(inviter_id, "send invitations", "only the project creator can")
    if invitee_id == inviter_id:
        raise ValidationError("You cannot invite yourself")

    inviter_snapshot = _snapshot(inviter_id)
    invitee_snapshot = _snapshot(invitee_id)

    with _unit_of_work("invite", project_id=project_id, actor_id=inviter_id):
        invitation = request_ledger.create_invitation(
            project, role_title, inviter_id, invitee_id, message,
            inviter_snapshot=inviter_snapshot, invitee_snapshot=invitee_snapshot,
        )
        chat, _ = conversation_service.get_or_create_bound_chat(
            KIND_INVITATION, invitation.id, inviter_id, invitee_id,
            project_id=project.id, status=STATUS_PENDING,
        )
        seed = invitation.message or _INVITE_DEFAULT.format(
            title=project.title, role_text=f" for the role of {role_title}",
        )
        conversation_service.append_message(chat, inviter_id, seed)
        db.session.commit()

    logger.info(
        "Invitation #%s for %r sent to %s", invitation.id, role_title, invitee_id,
        extra=_log_extra(KIND_INVITATION, invitation, "invitation.created", inviter_id),
    )
    publish(_request_event(
        KIND_INVITATION, ACTION_CREATED, invitation, project, inviter_id,
        audience=(invitee_id,), chat=chat, actor_name=display_name(inviter_snapshot),
    ))
    return {"invitation": invitation.to_dict(), "chat": chat.to_dict(viewer_id=inviter_id)}


# ── Accept ─────────────────────────────────────────────────────────────────────


def accept(kind: str, request_id: int, actor_id: str) -> dict:
    """Accept an application (creator) or invitation (invitee).

    Role fill, ledger status and chat mirror commit together. If the role
    was already filled by a competing request, this request is committed as
    Rejected instead and RoleAlreadyFilledError is raised.

    Raises:
        NotFoundError: request, project or role missing (request untouched).
        NotAuthorizedError: wrong actor.
        InvalidTransitionError: request already Accepted or Rejected.
        RoleAlreadyFilledError: lost the role; request is now Rejected.
    """
    actor_id = str(actor_id)
    request_obj = request_ledger.get_request(kind, request_id)
    project = project_service.get_project(request_obj.project_id)
    _authorize(kind, request_obj, project, actor_id, "accept")
    candidate_id, other_id = _counterparts(kind, request_obj, project)

    with _unit_of_work("accept", project_id=project.id, actor_id=actor_id):
        if request_obj.status != STATUS_PENDING:
            raise InvalidTransitionError(kind, request_obj.id, request_obj.status, "accept")

        try:
            role = project_service.fill_role(project.id, request_obj.role_title, candidate_id)
        except RoleAlreadyFilledError:
            _reject_stale(kind, request_obj, project, actor_id, candidate_id, other_id)
            raise RoleAlreadyFilledError(
                project_id=project.id,
                role_title=request_obj.role_title,
                request_kind=kind,
                request_id=request_obj.id,
                request_status=STATUS_REJECTED,
            ) from None

        request_obj = request_ledger.set_status(kind, request_obj.id, STATUS_ACCEPTED, role_id=role.id)
        chat, _ = conversation_service.get_or_create_bound_chat(
            kind, request_obj.id, candidate_id, other_id,
            project_id=project.id, status=STATUS_ACCEPTED,
        )
        conversation_service.mirror_status(chat, STATUS_ACCEPTED)
        db.session.commit()

    siblings = request_ledger.pending_for_role(project.id, request_obj.role_title)
    logger.info(
        "%s #%s accepted; role slot %s filled by %s (%d sibling request(s) still pending)",
        kind.capitalize(), request_obj.id, role.id, candidate_id, len(siblings),
        extra=_log_extra(kind, request_obj, f"{kind}.accepted", actor_id),
    )
    publish_all([
        _request_event(kind, ACTION_ACCEPTED, request_obj, project, actor_id,
                       audience=(other_id if kind == KIND_INVITATION else candidate_id,), chat=chat),
        LifecycleEvent(
            kind="project", action=ACTION_ACCEPTED, entity_id=project.id, project_id=project.id,
            actor_id=actor_id, audience=tuple(project.member_ids() | {project.creator_id}),
            payload={"role_id": role.id, "role_title": role.title, "user_id": candidate_id},
        ),
    ])
    return {
        kind: request_obj.to_dict(),
        "role": role.to_dict(),
        "chat": chat.to_dict(viewer_id=actor_id),
    }


def accept_application(application_id: int, actor_id: str) -> dict:
    return accept(KIND_APPLICATION, application_id, actor_id)


def accept_invitation(invitation_id: int, actor_id: str) -> dict:
    return accept(KIND_INVITATION, invitation_id, actor_id)


def _reject_stale(kind, request_obj, project, actor_id, candidate_id, other_id) -> None:
    """Lazy rejection on touch: commit the losing request as Rejected."""
    request_obj = request_ledger.set_status(kind, request_obj.id, STATUS_REJECTED, decline_reason=AUTO_REJECT_REASON)
    chat, _ = conversation_service.get_or_create_bound_chat(
        kind, request_obj.id, candidate_id, other_id,
        project_id=project.id, status=STATUS_REJECTED,
    )
    conversation_service.mirror_status(chat, STATUS_REJECTED)
    db.session.commit()

    logger.info(
        "%s #%s auto-rejected: role %r already filled", kind.capitalize(), request_obj.id, request_obj.role_title,
        extra=_log_extra(kind, request_obj, f"{kind}.auto_rejected", actor_id),
    )
    publish(_request_event(
        kind, ACTION_AUTO_REJECTED, request_obj, project, actor_id,
        audience=(candidate_id, other_id), chat=chat, reason=AUTO_REJECT_REASON,
    ))


# ── Decline ────────────────────────────────────────────────────────────────────


def _clean_reason(reason: str | None) -> str:
    min_length = current_app.config.get("DECLINE_REASON_MIN_LENGTH", 10)
    max_length = current_app.config.get("DECLINE_REASON_MAX_LENGTH", 1000)
    if reason is not None and not isinstance(reason, str):
        raise InvalidReasonError(min_length, max_length, "The decline reason must be text")
    text = (reason or "").strip()
    if len(text) < max(min_length, 1):
        raise InvalidReasonError(min_length, max_length)
    if len(text) > max_length:
        raise InvalidReasonError(
            min_length, max_length, f"The decline reason must be at most {max_length} characters",
        )
    return text


def decline(kind: str, request_id: int, actor_id: str, reason: str | None) -> dict:
    """Reject a Pending request with a reason. The role is never touched.

    Raises:
        NotFoundError / NotAuthorizedError: as for accept.
        InvalidReasonError: reason not text, empty, or outside the length bounds.
        InvalidTransitionError: request already Accepted or Rejected.
    """
    actor_id = str(actor_id)
    request_obj = request_ledger.get_request(kind, request_id)
    project = project_service.get_project(request_obj.project_id)
    _authorize(kind, request_obj, project, actor_id, "decline")
    text = _clean_reason(reason)
    candidate_id, other_id = _counterparts(kind, request_obj, project)

    with _unit_of_work("decline", project_id=project.id, actor_id=actor_id):
        request_obj = request_ledger.set_status(kind, request_obj.id, STATUS_REJECTED, decline_reason=text)
        chat, _ = conversation_service.get_or_create_bound_chat(
            kind, request_obj.id, candidate_id, other_id,
            project_id=project.id, status=STATUS_REJECTED,
        )
        conversation_service.mirror_status(chat, STATUS_REJECTED)
        conversation_service.append_message(chat, actor_id, _DECLINE_TRAIL[kind].format(reason=text))
        db.session.commit()

    logger.info(
        "%s #%s declined", kind.capitalize(), request_obj.id,
        extra=_log_extra(kind, request_obj, f"{kind}.declined", actor_id),
    )
    audience = candidate_id if kind == KIND_APPLICATION else other_id
    publish(_request_event(
        kind, ACTION_DECLINED, request_obj, project, actor_id,
        audience=(audience,), chat=chat, reason=text,
    ))
    return {kind: request_obj.to_dict(), "chat": chat.to_dict(viewer_id=actor_id)}
