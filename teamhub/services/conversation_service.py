"""
Conversation Store service — chats, messages and status mirroring.

Bound chats (one per Application / Invitation) are created through
``get_or_create_bound_chat``, which is idempotent under concurrency: the
INSERT runs in a SAVEPOINT guarded by the unique binding index, and a
conflict re-selects the row the other caller created.

``mirror_status`` is only ever called by the lifecycle coordinator inside
the same transaction as the ledger ``set_status``.

The direct-messaging commands at the bottom (``open_direct_chat``,
``send_message``, ``mark_read``) are standalone and commit themselves.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError

from teamhub.core.exceptions import NotAuthorizedError, NotFoundError, ValidationError
from teamhub.events import ACTION_MESSAGE, LifecycleEvent, publish
from teamhub.models import db
from teamhub.models.chat import CHAT_KIND_DIRECT, CHAT_KINDS, Chat, Message, normalise_participants
from teamhub.models.collaboration import (
    KIND_APPLICATION,
    KIND_INVITATION,
    REQUEST_STATUSES,
    STATUS_ACCEPTED,
    STATUS_PENDING,
)

logger = logging.getLogger(__name__)

MESSAGE_MAX_LENGTH = 5000

CHAT_TABS = ("all", "active", "invitations", "requests")


# ── Bound chats ──────────────────────────────────────────────────────────────


def find_bound_chat(kind: str, target_id: int) -> Chat | None:
    stmt = (
        select(Chat)
        .where(Chat.bound_kind == kind, Chat.bound_id == target_id)
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalar_one_or_none()


def get_or_create_bound_chat(
    kind: str,
    target_id: int,
    participant_a: str,
    participant_b: str,
    *,
    project_id: int | None = None,
    status: str = STATUS_PENDING,
) -> tuple[Chat, bool]:
    """Return ``(chat, created)`` for the binding. Never creates a duplicate."""
    if kind not in (KIND_APPLICATION, KIND_INVITATION):
        raise ValidationError(f"Cannot bind a chat to {kind!r}")

    existing = find_bound_chat(kind, target_id)
    if existing is not None:
        return existing, False

    a, b = normalise_participants(participant_a, participant_b)
    chat = Chat(
        kind=kind,
        project_id=project_id,
        participant_a=a,
        participant_b=b,
        bound_kind=kind,
        bound_id=target_id,
        status=status,
    )
    try:
        with db.session.begin_nested():
            db.session.add(chat)
    except IntegrityError:
        winner = find_bound_chat(kind, target_id)
        if winner is None:
            raise
        logger.debug("Bound chat for %s #%s created concurrently; reusing #%s", kind, target_id, winner.id)
        return winner, False

    logger.debug("Bound chat #%s created for %s #%s", chat.id, kind, target_id,
                 extra={"project_id": project_id, "chat_id": chat.id, "request_kind": kind})
    return chat, True


def mirror_status(chat: Chat, new_status: str) -> Chat:
    """Set the mirrored status on a bound chat. Caller owns the transaction."""
    if not chat.is_bound:
        raise ValidationError(f"Chat #{chat.id} is not bound to a request")
    if new_status not in REQUEST_STATUSES:
        raise ValidationError(f"Unknown status {new_status!r}")
    db.session.execute(
        update(Chat)
        .where(Chat.id == chat.id)
        .values(status=new_status, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(chat)
    return chat


def append_message(chat: Chat, sender_id: str, text: str) -> Message:
    """Append one message and update the chat's last-message summary."""
    sender_id = str(sender_id)
    body = (text or "").strip()
    if not body:
        raise ValidationError("Message text is required", details={"text": "required"})
    if len(body) > MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Message must be at most {MESSAGE_MAX_LENGTH} characters", details={"text": "too long"},
        )
    if not chat.has_participant(sender_id):
        raise NotAuthorizedError(sender_id, f"post in chat #{chat.id}", "not a participant")

    now = datetime.now(timezone.utc)
    message = Message(chat_id=chat.id, sender_id=sender_id, text=body, read=False, created_at=now)
    db.session.add(message)
    chat.last_message_text = body
    chat.last_message_sender = sender_id
    chat.last_message_at = now
    chat.updated_at = now
    db.session.flush()
    return message


# ── Queries ──────────────────────────────────────────────────────────────────


def get_chat_for(chat_id: int, user_id: str) -> Chat:
    """Load a chat the user participates in."""
    chat = db.session.get(Chat, chat_id)
    if chat is None:
        raise NotFoundError(resource="Chat", resource_id=chat_id)
    if not chat.has_participant(user_id):
        raise NotAuthorizedError(user_id, f"view chat #{chat_id}", "not a participant")
    return chat


def list_chats(
    user_id: str,
    *,
    kind: str | None = None,
    status: str | None = None,
    tab: str | None = None,
) -> list[Chat]:
    """A user's chats, most recently active first.

    Tabs:
        active       direct chats plus bound chats whose request was accepted
        invitations  pending invitation chats
        requests     pending application chats
    """
    uid = str(user_id)
    stmt = select(Chat).where(or_(Chat.participant_a == uid, Chat.participant_b == uid))

    if kind:
        if kind not in CHAT_KINDS:
            raise ValidationError(f"Unknown chat type {kind!r}", details={"type": sorted(CHAT_KINDS)})
        stmt = stmt.where(Chat.kind == kind)
    if status:
        if status not in REQUEST_STATUSES:
            raise ValidationError(f"Unknown status {status!r}", details={"status": list(REQUEST_STATUSES)})
        stmt = stmt.where(Chat.status == status)

    if tab and tab != "all":
        if tab not in CHAT_TABS:
            raise ValidationError(f"Unknown tab {tab!r}", details={"tab": list(CHAT_TABS)})
        if tab == "active":
            stmt = stmt.where(or_(
                Chat.kind == CHAT_KIND_DIRECT,
                and_(Chat.bound_kind.is_not(None), Chat.status == STATUS_ACCEPTED),
            ))
        elif tab == "invitations":
            stmt = stmt.where(Chat.kind == KIND_INVITATION, Chat.status == STATUS_PENDING)
        elif tab == "requests":
            stmt = stmt.where(Chat.kind == KIND_APPLICATION, Chat.status == STATUS_PENDING)

    stmt = stmt.order_by(Chat.updated_at.desc(), Chat.id.desc())
    return list(db.session.execute(stmt).scalars())


def list_messages(chat_id: int, user_id: str) -> list[Message]:
    chat = get_chat_for(chat_id, user_id)
    return list(chat.messages)


# ── Direct messaging commands ────────────────────────────────────────────────


def open_direct_chat(user_id: str, other_user_id: str) -> tuple[Chat, bool]:
    """Get or create the single direct chat between two users."""
    user_id, other_user_id = str(user_id), str(other_user_id or "").strip()
    if not other_user_id:
        raise ValidationError("participant_id is required", details={"participant_id": "required"})
    if other_user_id == user_id:
        raise ValidationError("You cannot start a chat with yourself")

    a, b = normalise_participants(user_id, other_user_id)
    stmt = select(Chat).where(Chat.kind == CHAT_KIND_DIRECT, Chat.participant_a == a, Chat.participant_b == b)
    existing = db.session.execute(stmt).scalar_one_or_none()
    if existing is not None:
        return existing, False

    chat = Chat(kind=CHAT_KIND_DIRECT, participant_a=a, participant_b=b)
    try:
        with db.session.begin_nested():
            db.session.add(chat)
    except IntegrityError:
        existing = db.session.execute(stmt).scalar_one()
        db.session.commit()
        return existing, False
    db.session.commit()
    logger.info("Direct chat #%s opened", chat.id, extra={"chat_id": chat.id, "actor_id": user_id})
    return chat, True


def send_message(chat_id: int, sender_id: str, text: str) -> Message:
    chat = get_chat_for(chat_id, sender_id)
    message = append_message(chat, sender_id, text)
    db.session.commit()
    publish(LifecycleEvent(
        kind="chat",
        action=ACTION_MESSAGE,
        entity_id=chat.id,
        project_id=chat.project_id,
        actor_id=str(sender_id),
        audience=(chat.other_participant(sender_id),),
        payload={"message_id": message.id},
    ))
    return message


def mark_read(chat_id: int, viewer_id: str) -> int:
    """Mark every message from the other participant as read. Returns the count."""
    chat = get_chat_for(chat_id, viewer_id)
    result = db.session.execute(
        update(Message)
        .where(Message.chat_id == chat.id, Message.sender_id != str(viewer_id), Message.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount or 0
