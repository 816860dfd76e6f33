"""collaboration_lifecycle

Create the project/role store, request ledger, conversation store and
notification tables.

Revision ID: 0001_collaboration_lifecycle
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_collaboration_lifecycle"
down_revision = None
branch_labels = None
depends_on = None

_PENDING_ONLY = "status = 'Pending'"


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("category", sa.String(length=50), nullable=True),
            sa.Column("tags", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="Planning"),
            sa.Column("creator_id", sa.String(length=64), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_creator_id", "projects", ["creator_id"])

    if "project_roles" not in existing_tables:
        op.create_table(
            "project_roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("title", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("filled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("user_id", sa.String(length=64), nullable=True),
            sa.Column("filled_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "(filled AND user_id IS NOT NULL) OR (NOT filled AND user_id IS NULL)",
                name="ck_project_roles_filled_user",
            ),
        )
        op.create_index("ix_project_roles_project_id", "project_roles", ["project_id"])
        op.create_index("ix_project_roles_user_id", "project_roles", ["user_id"])
        op.create_index("ix_project_roles_project_title", "project_roles", ["project_id", "title"])

    if "applications" not in existing_tables:
        op.create_table(
            "applications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("role_title", sa.String(length=120), nullable=False),
            sa.Column("role_id", sa.Integer(), nullable=True),
            sa.Column("applicant_id", sa.String(length=64), nullable=False),
            sa.Column("message", sa.Text(), nullable=False, server_default=""),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
            sa.Column("decline_reason", sa.Text(), nullable=True),
            sa.Column("applicant_snapshot", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["role_id"], ["project_roles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_applications_project_id", "applications", ["project_id"])
        op.create_index("ix_applications_applicant_id", "applications", ["applicant_id"])
        op.create_index("ix_applications_project_status", "applications", ["project_id", "status"])
        op.create_index(
            "uq_applications_pending_triple",
            "applications",
            ["project_id", "role_title", "applicant_id"],
            unique=True,
            postgresql_where=sa.text(_PENDING_ONLY),
            sqlite_where=sa.text(_PENDING_ONLY),
        )

    if "invitations" not in existing_tables:
        op.create_table(
            "invitations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("role_title", sa.String(length=120), nullable=False),
            sa.Column("role_id", sa.Integer(), nullable=True),
            sa.Column("inviter_id", sa.String(length=64), nullable=False),
            sa.Column("invitee_id", sa.String(length=64), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
            sa.Column("decline_reason", sa.Text(), nullable=True),
            sa.Column("inviter_snapshot", sa.JSON(), nullable=True),
            sa.Column("invitee_snapshot", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["role_id"], ["project_roles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_invitations_project_id", "invitations", ["project_id"])
        op.create_index("ix_invitations_inviter_id", "invitations", ["inviter_id"])
        op.create_index("ix_invitations_invitee_id", "invitations", ["invitee_id"])
        op.create_index(
            "uq_invitations_pending_triple",
            "invitations",
            ["project_id", "role_title", "invitee_id"],
            unique=True,
            postgresql_where=sa.text(_PENDING_ONLY),
            sqlite_where=sa.text(_PENDING_ONLY),
        )

    if "chats" not in existing_tables:
        op.create_table(
            "chats",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("kind", sa.String(length=20), nullable=False, server_default="direct"),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("participant_a", sa.String(length=64), nullable=False),
            sa.Column("participant_b", sa.String(length=64), nullable=False),
            sa.Column("bound_kind", sa.String(length=20), nullable=True),
            sa.Column("bound_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("last_message_text", sa.Text(), nullable=True),
            sa.Column("last_message_sender", sa.String(length=64), nullable=True),
            sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "(bound_kind IS NULL AND status IS NULL) OR "
                "(bound_kind IS NOT NULL AND bound_id IS NOT NULL AND status IS NOT NULL)",
                name="ck_chats_status_when_bound",
            ),
        )
        op.create_index("ix_chats_project_id", "chats", ["project_id"])
        op.create_index("ix_chats_participant_a", "chats", ["participant_a"])
        op.create_index("ix_chats_participant_b", "chats", ["participant_b"])
        op.create_index(
            "uq_chats_binding",
            "chats",
            ["bound_kind", "bound_id"],
            unique=True,
            postgresql_where=sa.text("bound_kind IS NOT NULL"),
            sqlite_where=sa.text("bound_kind IS NOT NULL"),
        )
        op.create_index(
            "uq_chats_direct_pair",
            "chats",
            ["participant_a", "participant_b"],
            unique=True,
            postgresql_where=sa.text("kind = 'direct'"),
            sqlite_where=sa.text("kind = 'direct'"),
        )

    if "chat_messages" not in existing_tables:
        op.create_table(
            "chat_messages",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("chat_id", sa.Integer(), nullable=False),
            sa.Column("sender_id", sa.String(length=64), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_chat_messages_chat_id", "chat_messages", ["chat_id"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_id", sa.String(length=64), nullable=False),
            sa.Column("type", sa.String(length=40), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("action_url", sa.String(length=300), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=True),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
        op.create_index("ix_notifications_project_id", "notifications", ["project_id"])


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())
    for table in ("notifications", "chat_messages", "chats", "invitations",
                  "applications", "project_roles", "projects"):
        if table in existing_tables:
            op.drop_table(table)
