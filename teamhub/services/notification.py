"""
TeamHub Collaboration Platform
Notification Service.

Central service for creating and querying in-app notifications. Records
are written by the lifecycle event subscribers below; delivering them
(push, e-mail) is the job of an external transport.
"""

import logging
from datetime import datetime, timezone

from teamhub.events import (
    ACTION_ACCEPTED,
    ACTION_AUTO_REJECTED,
    ACTION_CREATED,
    ACTION_DECLINED,
    LifecycleEvent,
    application_changed,
    invitation_changed,
)
from teamhub.models import db
from teamhub.models.notification import NOTIFICATION_TYPES, TITLE_MAX_LENGTH, Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient_id, type, title, message="", action_url=None,
               project_id=None, entity_type="", entity_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        if type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {type!r}")
        if len(title) > TITLE_MAX_LENGTH:
            title = title[: TITLE_MAX_LENGTH - 3] + "..."
        notif = Notification(
            recipient_id=str(recipient_id),
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter_by(recipient_id=str(recipient_id))
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient_id=str(recipient_id), is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_id):
        """Mark a single notification as read. Returns None if it isn't the recipient's."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id != str(recipient_id):
            return None
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        """Mark all notifications for a recipient as read."""
        q = Notification.query.filter_by(recipient_id=str(recipient_id), is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count


# ── Lifecycle subscribers ─────────────────────────────────────────────────


def _chat_url(event: LifecycleEvent) -> str:
    chat_id = event.payload.get("chat_id")
    if chat_id:
        return f"/dashboard/chat?chatId={chat_id}"
    return f"/project/{event.project_id}"


def _notify_all(event: LifecycleEvent, type, title, message, action_url=None):
    for recipient in event.audience:
        if recipient == event.actor_id:
            continue
        NotificationService.create(
            recipient_id=recipient,
            type=type,
            title=title,
            message=message,
            action_url=action_url or _chat_url(event),
            project_id=event.project_id,
            entity_type=event.kind,
            entity_id=event.entity_id,
        )


def on_application_changed(sender, event: LifecycleEvent):
    project_title = event.payload.get("project_title", "your project")
    role = event.payload.get("role_title", "")
    if event.action == ACTION_CREATED:
        actor = event.payload.get("actor_name") or "A user"
        _notify_all(
            event, "project_application",
            f"New application for {project_title}",
            f"{actor} applied for: {role}",
        )
    elif event.action == ACTION_ACCEPTED:
        _notify_all(
            event, "application_accepted",
            f"Application accepted for {project_title}",
            f"Your application for the role of {role} has been accepted!",
            action_url=f"/project/{event.project_id}",
        )
    elif event.action in (ACTION_DECLINED, ACTION_AUTO_REJECTED):
        _notify_all(
            event, "application_declined",
            f"Application update for {project_title}",
            f"Your application for the role of {role} was not accepted.",
        )


def on_invitation_changed(sender, event: LifecycleEvent):
    project_title = event.payload.get("project_title", "a project")
    role = event.payload.get("role_title", "")
    if event.action == ACTION_CREATED:
        actor = event.payload.get("actor_name") or "A user"
        _notify_all(
            event, "project_invite",
            f"Invitation to join {project_title} as {role}",
            f"{actor} invited you to join \"{project_title}\" as {role}.",
        )
    elif event.action == ACTION_ACCEPTED:
        _notify_all(
            event, "invitation_accepted",
            f"Invitation accepted for {project_title}",
            f"Your invitation for the role of {role} was accepted.",
            action_url=f"/project/{event.project_id}",
        )
    elif event.action in (ACTION_DECLINED, ACTION_AUTO_REJECTED):
        reason = event.payload.get("reason")
        _notify_all(
            event, "invitation_declined",
            f"Invitation declined for {project_title}",
            f"Your invitation for the role of {role} was declined."
            + (f" Reason: {reason}" if reason else ""),
        )


def register_notification_subscribers():
    """Connect the notification writers to the lifecycle signals (idempotent)."""
    application_changed.connect(on_application_changed)
    invitation_changed.connect(on_invitation_changed)
    logger.debug("Notification subscribers connected")
