"""
Project / Role store models.

A Project owns an ordered list of Role slots (composition). Role rows live in
their own table so a slot can be filled with a single conditional UPDATE;
see ``teamhub.services.project_service.fill_role``.

Business rules:
    - Role titles are NOT unique within a project; each slot is addressed by
      its own id and ordered by ``position``.
    - ``filled`` is true iff ``user_id`` is set (enforced by a CHECK constraint).
    - Projects are never deleted by the lifecycle engine.
"""

from datetime import datetime, timezone

from teamhub.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

PROJECT_STATUSES = ("Planning", "In Progress", "Completed")
PROJECT_CATEGORIES = frozenset({
    "Tech",
    "Design",
    "Business",
    "Marketing",
    "Case Competitions",
    "Hackathons",
})


class Project(db.Model):
    """Collaboration project with an embedded, ordered role list."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    category = db.Column(db.String(50), nullable=True, comment="Tech | Design | Business | ...")
    tags = db.Column(db.JSON, nullable=False, default=list, comment="Ordered list of tag strings")
    status = db.Column(
        db.String(20),
        nullable=False,
        default="Planning",
        comment="Planning | In Progress | Completed",
    )
    creator_id = db.Column(
        db.String(64),
        nullable=False,
        index=True,
        comment="Opaque user id from the user directory",
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

    roles = db.relationship(
        "Role",
        backref="project",
        order_by="Role.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def roles_titled(self, title: str) -> list["Role"]:
        return [r for r in self.roles if r.title == title]

    def member_ids(self) -> set[str]:
        return {r.user_id for r in self.roles if r.filled and r.user_id}

    def to_dict(self, include_roles: bool = True) -> dict:
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags or []),
            "status": self.status,
            "creator_id": self.creator_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_roles:
            d["roles"] = [r.to_dict() for r in self.roles]
        return d

    def __repr__(self) -> str:
        return f"<Project #{self.id} {self.title[:40]}>"


class Role(db.Model):
    """One open/filled team slot inside a Project."""

    __tablename__ = "project_roles"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    filled = db.Column(db.Boolean, nullable=False, default=False)
    user_id = db.Column(db.String(64), nullable=True, index=True)
    filled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "(filled AND user_id IS NOT NULL) OR (NOT filled AND user_id IS NULL)",
            name="ck_project_roles_filled_user",
        ),
        db.Index("ix_project_roles_project_title", "project_id", "title"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "position": self.position,
            "title": self.title,
            "description": self.description,
            "filled": self.filled,
            "user_id": self.user_id,
            "filled_at": self.filled_at.isoformat() if self.filled_at else None,
        }

    def __repr__(self) -> str:
        state = f"filled by {self.user_id}" if self.filled else "open"
        return f"<Role #{self.id} {self.title} ({state})>"
