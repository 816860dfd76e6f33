"""
Platform-wide exception hierarchy.

Services raise these; blueprints never build business error responses by
hand. A single handler (``teamhub.utils.errors.register_error_handlers``)
turns every ``LifecycleError`` into the standard JSON body with a stable
machine-readable ``code`` so the UI can tell "someone already took this role"
apart from "you're not allowed to do this".

All of these are business-rule rejections: terminal, reported synchronously,
never retried internally. Retrying one deterministically fails again.

Usage:
    from teamhub.core.exceptions import NotFoundError, RoleAlreadyFilledError

    raise NotFoundError(resource="Project", resource_id=42)
    raise RoleAlreadyFilledError(project_id=42, role_title="Designer")
"""


class LifecycleError(Exception):
    """Base class for every domain failure kind.

    Subclasses set ``code`` (machine-readable, stable across releases) and
    ``status`` (default HTTP status used by the blueprint error handler).
    """

    code = "ERR_LIFECYCLE"
    status = 400

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(LifecycleError):
    """Raised when a project, role, request or chat does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Application").
        resource_id: The id that was looked up.
    """

    code = "ERR_NOT_FOUND"
    status = 404

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class NotAuthorizedError(LifecycleError):
    """Raised when the acting user is not allowed to perform the action.

    Creator-only actions: invite, accept/decline an application, remove a
    member. Invitee-only actions: accept/decline an invitation.
    """

    code = "ERR_NOT_AUTHORIZED"
    status = 403

    def __init__(self, actor_id: str | None, action: str, reason: str | None = None) -> None:
        self.actor_id = actor_id
        self.action = action
        msg = f"User {actor_id!r} is not authorized to {action}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DuplicateRequestError(LifecycleError):
    """Raised when a Pending request already exists for the same triple."""

    code = "ERR_DUPLICATE_REQUEST"
    status = 409

    def __init__(self, kind: str, project_id: int, role_title: str, user_id: str) -> None:
        self.kind = kind
        self.project_id = project_id
        self.role_title = role_title
        self.user_id = user_id
        super().__init__(
            f"A pending {kind} for role {role_title!r} already exists "
            f"(project={project_id}, user={user_id})",
            details={"kind": kind, "project_id": project_id, "role_title": role_title},
        )


class RoleUnavailableError(LifecycleError):
    """Raised at request-creation time when every slot with the title is filled."""

    code = "ERR_ROLE_UNAVAILABLE"
    status = 409

    def __init__(self, project_id: int, role_title: str) -> None:
        self.project_id = project_id
        self.role_title = role_title
        super().__init__(
            f"Role {role_title!r} has already been filled",
            details={"project_id": project_id, "role_title": role_title},
        )


class RoleAlreadyFilledError(LifecycleError):
    """Raised at accept time when the role was filled by a competing request.

    Distinct from RoleUnavailableError: when the coordinator raises this the
    stale request has already been moved to Rejected ("lazy rejection on
    touch"). ``request_status`` carries the request's status afterwards.
    """

    code = "ERR_ROLE_ALREADY_FILLED"
    status = 409

    def __init__(
        self,
        project_id: int,
        role_title: str,
        request_kind: str | None = None,
        request_id: int | None = None,
        request_status: str | None = None,
    ) -> None:
        self.project_id = project_id
        self.role_title = role_title
        self.request_kind = request_kind
        self.request_id = request_id
        self.request_status = request_status
        details = {"project_id": project_id, "role_title": role_title}
        if request_id is not None:
            details.update({
                "request_kind": request_kind,
                "request_id": request_id,
                "request_status": request_status,
            })
        super().__init__(f"Role {role_title!r} was already filled by another member", details=details)


class InvalidTransitionError(LifecycleError):
    """Raised when acting on a request that is no longer Pending."""

    code = "ERR_INVALID_TRANSITION"
    status = 409

    def __init__(self, kind: str, request_id: int, current: str, action: str) -> None:
        self.kind = kind
        self.request_id = request_id
        self.current_status = current
        self.action = action
        super().__init__(
            f"Cannot {action} {kind} #{request_id} (status={current})",
            details={"kind": kind, "request_id": request_id, "status": current},
        )


class InvalidReasonError(LifecycleError):
    """Raised when a decline reason is missing, not text, or outside the length bounds."""

    code = "ERR_INVALID_REASON"
    status = 400

    def __init__(self, min_length: int, max_length: int, message: str | None = None) -> None:
        self.min_length = min_length
        self.max_length = max_length
        super().__init__(
            message or f"A decline reason of at least {min_length} characters is required",
            details={"min_length": min_length, "max_length": max_length},
        )


class ValidationError(LifecycleError):
    """Raised when well-formed input violates a product rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    code = "ERR_VALIDATION"
    status = 422
