"""
TeamHub Collaboration Platform
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from teamhub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "project_application",
    "application_accepted",
    "application_declined",
    "project_invite",
    "invitation_accepted",
    "invitation_declined",
}

TITLE_MAX_LENGTH = 300


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event. Clients poll these to learn which
    project / request / chat views to refetch.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.String(64), nullable=False, index=True)
    type = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    message = db.Column(db.Text, default="")
    action_url = db.Column(db.String(300), nullable=True)

    # Link to source entity
    entity_type = db.Column(db.String(30), default="", comment="application/invitation/chat/project")
    entity_id = db.Column(db.Integer, nullable=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "action_url": self.action_url,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "project_id": self.project_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
