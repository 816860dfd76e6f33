"""
Request Ledger models — Application and Invitation.

Each record references exactly one Project, one role title and one
counterpart user by id only; the ledger never owns the project.

Business rules:
    - Status moves Pending → Accepted | Rejected exactly once; terminal rows
      are never updated again and never deleted.
    - At most one Pending row per (project, role title, user) triple, enforced
      by a partial UNIQUE index so concurrent inserts cannot both succeed.
    - ``*_snapshot`` columns hold best-effort display fields resolved from the
      user directory at creation time; they may be NULL until back-filled.
"""

from datetime import datetime, timezone

from teamhub.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

STATUS_PENDING = "Pending"
STATUS_ACCEPTED = "Accepted"
STATUS_REJECTED = "Rejected"

REQUEST_STATUSES = (STATUS_PENDING, STATUS_ACCEPTED, STATUS_REJECTED)
TERMINAL_STATUSES = frozenset({STATUS_ACCEPTED, STATUS_REJECTED})

KIND_APPLICATION = "application"
KIND_INVITATION = "invitation"
REQUEST_KINDS = frozenset({KIND_APPLICATION, KIND_INVITATION})

_PENDING_ONLY = "status = 'Pending'"


class Application(db.Model):
    """Join request from a prospective teammate for one open role."""

    __tablename__ = "applications"

    kind = KIND_APPLICATION

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_title = db.Column(db.String(120), nullable=False)
    role_id = db.Column(
        db.Integer,
        db.ForeignKey("project_roles.id", ondelete="SET NULL"),
        nullable=True,
        comment="Concrete slot filled on accept; NULL while pending",
    )
    applicant_id = db.Column(db.String(64), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    decline_reason = db.Column(db.Text, nullable=True)
    applicant_snapshot = db.Column(
        db.JSON,
        nullable=True,
        comment="firstName/lastName/university/profilePicture captured best-effort",
    )

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
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.Index(
            "uq_applications_pending_triple",
            "project_id", "role_title", "applicant_id",
            unique=True,
            sqlite_where=db.text(_PENDING_ONLY),
            postgresql_where=db.text(_PENDING_ONLY),
        ),
        db.Index("ix_applications_project_status", "project_id", "status"),
    )

    @property
    def candidate_id(self) -> str:
        """User who would fill the role if this request is accepted."""
        return self.applicant_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "project_id": self.project_id,
            "role_title": self.role_title,
            "role_id": self.role_id,
            "applicant_id": self.applicant_id,
            "applicant": self.applicant_snapshot,
            "message": self.message,
            "status": self.status,
            "decline_reason": self.decline_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }

    def __repr__(self) -> str:
        return f"<Application #{self.id} {self.role_title} by {self.applicant_id} {self.status}>"


class Invitation(db.Model):
    """Request from the project creator asking a user to fill one open role."""

    __tablename__ = "invitations"

    kind = KIND_INVITATION

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_title = db.Column(db.String(120), nullable=False)
    role_id = db.Column(
        db.Integer,
        db.ForeignKey("project_roles.id", ondelete="SET NULL"),
        nullable=True,
    )
    inviter_id = db.Column(db.String(64), nullable=False, index=True)
    invitee_id = db.Column(db.String(64), nullable=False, index=True)
    message = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    decline_reason = db.Column(db.Text, nullable=True)
    inviter_snapshot = db.Column(db.JSON, nullable=True)
    invitee_snapshot = db.Column(db.JSON, nullable=True)

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
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.Index(
            "uq_invitations_pending_triple",
            "project_id", "role_title", "invitee_id",
            unique=True,
            sqlite_where=db.text(_PENDING_ONLY),
            postgresql_where=db.text(_PENDING_ONLY),
        ),
    )

    @property
    def candidate_id(self) -> str:
        return self.invitee_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "project_id": self.project_id,
            "role_title": self.role_title,
            "role_id": self.role_id,
            "inviter_id": self.inviter_id,
            "invitee_id": self.invitee_id,
            "inviter": self.inviter_snapshot,
            "invitee": self.invitee_snapshot,
            "message": self.message,
            "status": self.status,
            "decline_reason": self.decline_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }

    def __repr__(self) -> str:
        return f"<Invitation #{self.id} {self.role_title} to {self.invitee_id} {self.status}>"


REQUEST_MODELS = {
    KIND_APPLICATION: Application,
    KIND_INVITATION: Invitation,
}
