"""
Project / Role Store service.

Authoritative role-fill state. ``fill_role`` and ``open_role`` are the only
writers of ``Role.filled`` / ``Role.user_id``; both are single conditional
UPDATE statements so concurrent callers can never both win the same slot.

``fill_role`` only flushes: it is a step inside a lifecycle command and the
coordinator owns the commit. ``create_project`` and ``remove_member`` are
standalone commands and commit themselves.

Usage:
    from teamhub.services import project_service

    project = project_service.create_project("u-1", {"title": "App", "roles": [...]})
    role = project_service.fill_role(project.id, "Designer", "u-2")
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update

from teamhub.core.exceptions import (
    NotAuthorizedError,
    NotFoundError,
    RoleAlreadyFilledError,
    RoleUnavailableError,
    ValidationError,
)
from teamhub.events import ACTION_MEMBER_REMOVED, LifecycleEvent, publish
from teamhub.models import db
from teamhub.models.project import PROJECT_CATEGORIES, PROJECT_STATUSES, Project, Role

logger = logging.getLogger(__name__)

_TITLE_MAX = 200
_ROLE_TITLE_MAX = 120


# ── Reads ────────────────────────────────────────────────────────────────────


def get_project(project_id: int) -> Project:
    """Load a project or raise NotFoundError."""
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def list_my_projects(user_id: str) -> list[Project]:
    """Projects created by ``user_id``, newest first."""
    stmt = (
        select(Project)
        .where(Project.creator_id == str(user_id))
        .order_by(Project.created_at.desc(), Project.id.desc())
    )
    return list(db.session.execute(stmt).scalars())


def list_joined_projects(user_id: str) -> list[Project]:
    """Projects where ``user_id`` fills a role but is not the creator."""
    uid = str(user_id)
    member_of = select(Role.project_id).where(Role.user_id == uid, Role.filled.is_(True))
    stmt = (
        select(Project)
        .where(Project.id.in_(member_of), Project.creator_id != uid)
        .order_by(Project.updated_at.desc(), Project.id.desc())
    )
    return list(db.session.execute(stmt).scalars())


def roles_titled(project_id: int, role_title: str, *, open_only: bool = False) -> list[Role]:
    stmt = select(Role).where(Role.project_id == project_id, Role.title == role_title)
    if open_only:
        stmt = stmt.where(Role.filled.is_(False))
    stmt = stmt.order_by(Role.position, Role.id).execution_options(populate_existing=True)
    return list(db.session.execute(stmt).scalars())


def require_open_role(project: Project, role_title: str) -> None:
    """Request-creation precondition: the title exists and one slot is open.

    Raises:
        NotFoundError: no role with that title on the project.
        RoleUnavailableError: every slot with that title is filled.
    """
    slots = roles_titled(project.id, role_title)
    if not slots:
        raise NotFoundError(resource=f"Role {role_title!r} on project", resource_id=project.id)
    if all(slot.filled for slot in slots):
        raise RoleUnavailableError(project_id=project.id, role_title=role_title)


# ── Commands ─────────────────────────────────────────────────────────────────


def _clean_roles(raw_roles) -> list[dict]:
    if raw_roles is None:
        return []
    if not isinstance(raw_roles, list):
        raise ValidationError("roles must be a list", details={"roles": "expected list"})
    cleaned = []
    for idx, raw in enumerate(raw_roles):
        if isinstance(raw, str):
            raw = {"title": raw}
        if not isinstance(raw, dict):
            raise ValidationError("Each role must be an object", details={f"roles[{idx}]": "expected object"})
        title = str(raw.get("title") or "").strip()
        if not title:
            raise ValidationError("Role title is required", details={f"roles[{idx}].title": "required"})
        if len(title) > _ROLE_TITLE_MAX:
            raise ValidationError(
                f"Role title must be at most {_ROLE_TITLE_MAX} characters",
                details={f"roles[{idx}].title": "too long"},
            )
        cleaned.append({"title": title, "description": str(raw.get("description") or "").strip()})
    return cleaned


def create_project(creator_id: str, data: dict) -> Project:
    """Create a project with its ordered role slots. The caller becomes creator."""
    title = str(data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    if len(title) > _TITLE_MAX:
        raise ValidationError(f"title must be at most {_TITLE_MAX} characters", details={"title": "too long"})

    status = data.get("status") or "Planning"
    if status not in PROJECT_STATUSES:
        raise ValidationError(
            f"status must be one of {', '.join(PROJECT_STATUSES)}", details={"status": status},
        )
    category = data.get("category")
    if category is not None and category not in PROJECT_CATEGORIES:
        raise ValidationError(
            f"category must be one of {', '.join(sorted(PROJECT_CATEGORIES))}",
            details={"category": category},
        )
    tags = data.get("tags") or []
    if not isinstance(tags, list):
        raise ValidationError("tags must be a list of strings", details={"tags": "expected list"})

    project = Project(
        title=title,
        description=str(data.get("description") or ""),
        category=category,
        tags=[str(t).strip() for t in tags if str(t).strip()],
        status=status,
        creator_id=str(creator_id),
    )
    for position, role in enumerate(_clean_roles(data.get("roles"))):
        project.roles.append(Role(position=position, title=role["title"], description=role["description"]))

    db.session.add(project)
    db.session.commit()
    logger.info(
        "Project %s created by %s with %d role(s)", project.id, creator_id, len(project.roles),
        extra={"project_id": project.id, "actor_id": str(creator_id), "event_type": "project.created"},
    )
    return project


def fill_role(project_id: int, role_title: str, user_id: str) -> Role:
    """Atomically claim one open slot with ``role_title`` for ``user_id``.

    Slots are tried lowest position first; a lost compare-and-set falls
    through to the next open slot with the same title.

    Raises:
        NotFoundError: the project has no role with that title.
        RoleAlreadyFilledError: every slot with that title is filled.
    """
    slots = roles_titled(project_id, role_title)
    if not slots:
        raise NotFoundError(resource=f"Role {role_title!r} on project", resource_id=project_id)

    now = datetime.now(timezone.utc)
    for slot in slots:
        if slot.filled:
            continue
        result = db.session.execute(
            update(Role)
            .where(Role.id == slot.id, Role.filled.is_(False))
            .values(filled=True, user_id=str(user_id), filled_at=now)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(slot)
        if result.rowcount == 1:
            logger.debug("Role slot %s (%s) filled by %s", slot.id, role_title, user_id,
                         extra={"project_id": project_id})
            return slot

    raise RoleAlreadyFilledError(project_id=project_id, role_title=role_title)


def open_role(project_id: int, role_id: int) -> tuple[Role, str | None]:
    """Unfill a slot. Returns the role and the user who held it (None if already open)."""
    role = db.session.get(Role, role_id)
    if role is None or role.project_id != project_id:
        raise NotFoundError(resource="Role", resource_id=role_id)

    previous = role.user_id
    db.session.execute(
        update(Role)
        .where(Role.id == role_id)
        .values(filled=False, user_id=None, filled_at=None)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(role)
    return role, previous


def remove_member(project_id: int, role_id: int, actor_id: str) -> Role:
    """Creator-only "remove team member": reopen the slot and commit."""
    project = get_project(project_id)
    if project.creator_id != str(actor_id):
        raise NotAuthorizedError(actor_id, "remove team members", "only the project creator can")

    role, previous = open_role(project_id, role_id)
    db.session.commit()
    logger.info(
        "Role %s on project %s reopened (was %s)", role_id, project_id, previous,
        extra={"project_id": project_id, "actor_id": str(actor_id), "event_type": "project.member_removed"},
    )

    publish(LifecycleEvent(
        kind="project",
        action=ACTION_MEMBER_REMOVED,
        entity_id=project_id,
        project_id=project_id,
        actor_id=str(actor_id),
        audience=tuple(u for u in (previous,) if u),
        payload={"role_id": role_id, "role_title": role.title},
    ))
    return role
