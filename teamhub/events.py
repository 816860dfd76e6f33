"""
Typed change-notification channel.

One blinker signal per entity kind. The lifecycle coordinator publishes a
``LifecycleEvent`` *after* its transaction commits; subscribers (the in-app
notification writer, cache invalidators, ...) tell clients which views to
refetch. Publishing never raises: a failing subscriber is logged and the
remaining subscribers still run, because the command it reports on has
already committed.

Usage:
    from teamhub.events import LifecycleEvent, application_changed, publish

    @application_changed.connect
    def _on_application(sender, event: LifecycleEvent):
        ...

    publish(LifecycleEvent(kind="application", action="accepted", entity_id=7))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from blinker import Namespace

from teamhub.models import db

logger = logging.getLogger(__name__)

_signals = Namespace()

project_changed = _signals.signal("project-changed")
application_changed = _signals.signal("application-changed")
invitation_changed = _signals.signal("invitation-changed")
chat_changed = _signals.signal("chat-changed")

SIGNALS = {
    "project": project_changed,
    "application": application_changed,
    "invitation": invitation_changed,
    "chat": chat_changed,
}

# Actions emitted by the coordinator
ACTION_CREATED = "created"
ACTION_ACCEPTED = "accepted"
ACTION_DECLINED = "declined"
ACTION_AUTO_REJECTED = "auto_rejected"
ACTION_MEMBER_REMOVED = "member_removed"
ACTION_MESSAGE = "message"
ACTION_RECONCILED = "reconciled"


@dataclass(frozen=True)
class LifecycleEvent:
    """Something changed; ``audience`` lists the users whose views are stale."""

    kind: str
    action: str
    entity_id: int | None
    project_id: int | None = None
    actor_id: str | None = None
    audience: tuple[str, ...] = ()
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "action": self.action,
            "entity_id": self.entity_id,
            "project_id": self.project_id,
            "actor_id": self.actor_id,
            "audience": list(self.audience),
            "payload": dict(self.payload),
        }


def publish(event: LifecycleEvent, sender: Any = None) -> int:
    """Deliver ``event`` to every subscriber of its kind.

    Returns:
        Number of subscribers that handled the event without raising.
    """
    signal = SIGNALS.get(event.kind)
    if signal is None:
        raise ValueError(f"Unknown event kind: {event.kind!r}")

    delivered = 0
    for receiver in signal.receivers_for(sender):
        try:
            receiver(sender, event=event)
            delivered += 1
        except Exception:
            # Leave the session usable for the caller, whose command already committed
            db.session.rollback()
            logger.exception(
                "Subscriber %r failed for %s.%s",
                getattr(receiver, "__name__", receiver),
                event.kind,
                event.action,
                extra={"project_id": event.project_id, "event_type": f"{event.kind}.{event.action}"},
            )
    return delivered


def publish_all(events: list[LifecycleEvent], sender: Any = None) -> None:
    for event in events:
        publish(event, sender=sender)
