"""
Bound-chat reconciliation.

Every lifecycle command mirrors the request status onto its bound chat in
the same transaction, so in normal operation nothing here changes. The pass
repairs drift left by manual database edits, restored backups or writes
that bypassed the coordinator, and back-fills display snapshots the user
directory could not provide at creation time.
"""

import logging

from sqlalchemy import or_, select

from teamhub.events import ACTION_RECONCILED, LifecycleEvent, publish_all
from teamhub.integrations.user_directory import get_user_directory
from teamhub.models import db
from teamhub.models.chat import Chat
from teamhub.models.collaboration import REQUEST_MODELS, Application, Invitation
from teamhub.services import conversation_service, request_ledger

logger = logging.getLogger(__name__)


def _remirror(results: dict) -> list[LifecycleEvent]:
    events = []
    for kind, model in REQUEST_MODELS.items():
        rows = db.session.execute(
            select(Chat, model.status)
            .outerjoin(model, model.id == Chat.bound_id)
            .where(Chat.bound_kind == kind)
            .order_by(Chat.id)
        ).all()
        for chat, request_status in rows:
            results["checked"] += 1
            if request_status is None:
                results["orphaned"] += 1
                logger.warning("Chat #%s is bound to missing %s #%s", chat.id, kind, chat.bound_id,
                               extra={"chat_id": chat.id, "request_kind": kind})
                continue
            if chat.status == request_status:
                continue
            previous = chat.status
            conversation_service.mirror_status(chat, request_status)
            results["remirrored"] += 1
            logger.warning(
                "Chat #%s status drifted (%s → %s), re-mirrored from %s #%s",
                chat.id, previous, request_status, kind, chat.bound_id,
                extra={"chat_id": chat.id, "project_id": chat.project_id, "request_kind": kind,
                       "event_type": "chat.reconciled"},
            )
            events.append(LifecycleEvent(
                kind="chat",
                action=ACTION_RECONCILED,
                entity_id=chat.id,
                project_id=chat.project_id,
                audience=chat.participants,
                payload={"previous_status": previous, "status": request_status},
            ))
    return events


def _backfill_snapshots(results: dict) -> None:
    gateway = get_user_directory()
    if not gateway.enabled:
        return
    missing = list(db.session.execute(
        select(Application).where(Application.applicant_snapshot.is_(None))
    ).scalars())
    missing += list(db.session.execute(
        select(Invitation).where(or_(Invitation.inviter_snapshot.is_(None), Invitation.invitee_snapshot.is_(None)))
    ).scalars())
    for request_obj in missing:
        if request_ledger.backfill_snapshots(request_obj, gateway.resolve_user):
            results["snapshots_backfilled"] += 1


def reconcile_bound_chats() -> dict:
    """Re-mirror drifted bound chats and back-fill missing snapshots.

    Returns:
        {"checked", "remirrored", "orphaned", "snapshots_backfilled"} counters.
    """
    results = {"checked": 0, "remirrored": 0, "orphaned": 0, "snapshots_backfilled": 0}
    try:
        events = _remirror(results)
        _backfill_snapshots(results)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    publish_all(events)
    logger.info(
        "Chat reconciliation: checked=%d remirrored=%d orphaned=%d snapshots=%d",
        results["checked"], results["remirrored"], results["orphaned"], results["snapshots_backfilled"],
        extra={"event_type": "chat.reconciliation"},
    )
    return results
