"""
Conversation store models — Chat and Message.

A Chat is either a direct thread between two users or bound 1:1 to one
Application / Invitation. Bound chats carry a mirrored ``status`` that the
lifecycle coordinator keeps equal to the bound request's status.

Participants are stored normalised (``participant_a < participant_b``) so the
direct-pair unique index works regardless of who opened the thread.
"""

from datetime import datetime, timezone

from teamhub.models import db

CHAT_KIND_DIRECT = "direct"
CHAT_KINDS = frozenset({"direct", "application", "invitation"})


def normalise_participants(user_a: str, user_b: str) -> tuple[str, str]:
    a, b = str(user_a), str(user_b)
    return (a, b) if a <= b else (b, a)


class Chat(db.Model):
    """Two-party conversation thread, optionally bound to a ledger request."""

    __tablename__ = "chats"

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(
        db.String(20),
        nullable=False,
        default=CHAT_KIND_DIRECT,
        comment="direct | application | invitation",
    )
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    participant_a = db.Column(db.String(64), nullable=False, index=True)
    participant_b = db.Column(db.String(64), nullable=False, index=True)

    # Weak reference to the ledger: looked up for status, never cascaded
    bound_kind = db.Column(db.String(20), nullable=True, comment="application | invitation")
    bound_id = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=True, comment="Mirrors the bound request status")

    last_message_text = db.Column(db.Text, nullable=True)
    last_message_sender = db.Column(db.String(64), nullable=True)
    last_message_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    messages = db.relationship(
        "Message",
        backref="chat",
        order_by=lambda: [Message.created_at, Message.id],
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    __table_args__ = (
        db.Index(
            "uq_chats_binding",
            "bound_kind", "bound_id",
            unique=True,
            sqlite_where=db.text("bound_kind IS NOT NULL"),
            postgresql_where=db.text("bound_kind IS NOT NULL"),
        ),
        db.Index(
            "uq_chats_direct_pair",
            "participant_a", "participant_b",
            unique=True,
            sqlite_where=db.text("kind = 'direct'"),
            postgresql_where=db.text("kind = 'direct'"),
        ),
        db.CheckConstraint(
            "(bound_kind IS NULL AND status IS NULL) OR "
            "(bound_kind IS NOT NULL AND bound_id IS NOT NULL AND status IS NOT NULL)",
            name="ck_chats_status_when_bound",
        ),
    )

    @property
    def participants(self) -> tuple[str, str]:
        return (self.participant_a, self.participant_b)

    @property
    def is_bound(self) -> bool:
        return self.bound_kind is not None

    def has_participant(self, user_id: str) -> bool:
        return str(user_id) in self.participants

    def other_participant(self, user_id: str) -> str:
        return self.participant_b if self.participant_a == str(user_id) else self.participant_a

    def unread_count(self, viewer_id: str) -> int:
        return self.messages.filter(
            Message.sender_id != str(viewer_id),
            Message.read.is_(False),
        ).count()

    def to_dict(self, viewer_id: str | None = None, include_messages: bool = False) -> dict:
        d = {
            "id": self.id,
            "kind": self.kind,
            "project_id": self.project_id,
            "participants": list(self.participants),
            "binding": (
                {"kind": self.bound_kind, "target_id": self.bound_id}
                if self.is_bound else None
            ),
            "status": self.status,
            "last_message": (
                {
                    "text": self.last_message_text,
                    "sender_id": self.last_message_sender,
                    "created_at": self.last_message_at.isoformat() if self.last_message_at else None,
                }
                if self.last_message_text is not None else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if viewer_id is not None:
            d["unread_count"] = self.unread_count(viewer_id)
        if include_messages:
            d["messages"] = [m.to_dict() for m in self.messages]
        return d

    def __repr__(self) -> str:
        binding = f" {self.bound_kind}#{self.bound_id}={self.status}" if self.is_bound else ""
        return f"<Chat #{self.id} {self.kind}{binding}>"


class Message(db.Model):
    """Append-only chat message."""

    __tablename__ = "chat_messages"

    id = db.Column(db.Integer, primary_key=True)
    chat_id = db.Column(
        db.Integer,
        db.ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id = db.Column(db.String(64), nullable=False)
    text = db.Column(db.Text, nullable=False)
    read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "sender_id": self.sender_id,
            "text": self.text,
            "read": self.read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Message #{self.id} chat={self.chat_id} from {self.sender_id}>"
