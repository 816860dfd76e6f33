"""
TeamHub Collaboration Platform
Blueprint helpers shared by the API modules.
"""

from flask import g, request


def current_actor() -> str:
    """Acting user id, set by the JWT middleware for every /api/v1 route."""
    return g.current_user_id


def json_body() -> dict | None:
    """Request JSON object, ``{}`` when absent, None when it isn't an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def pagination_args(default_limit=50, max_limit=200):
    """Read limit/offset query params.

    Query params:
        limit  — max items (default 50, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset
