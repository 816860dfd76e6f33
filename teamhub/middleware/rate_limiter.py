"""
Per-blueprint request budgets on top of the shared Flask-Limiter instance.

Budgets are keyed by the acting user (from the bearer token) so one noisy
client behind a shared NAT does not starve the others. Unauthenticated
traffic falls back to the remote address.
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

# Apply/Invite/Accept/Decline each touch the ledger, role store and chat store
LIFECYCLE_LIMIT = "60/minute"
CHAT_LIMIT = "120/minute"
READ_LIMIT = "200/minute"

BLUEPRINT_BUDGETS = {
    "project_bp": LIFECYCLE_LIMIT,
    "invitation_bp": LIFECYCLE_LIMIT,
    "chat_bp": CHAT_LIMIT,
    "notification_bp": READ_LIMIT,
}


def actor_or_ip_key() -> str:
    user_id = g.get("current_user_id")
    return f"user:{user_id}" if user_id else (request.remote_addr or "unknown")


def init_rate_limits(app, limiter):
    """Attach ``BLUEPRINT_BUDGETS`` to registered blueprints; health is exempt.

    Must run after the blueprints are registered. Does nothing when
    ``RATELIMIT_ENABLED`` is false (the testing config).
    """
    if not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.debug("Rate limiting disabled")
        return

    for name, budget in BLUEPRINT_BUDGETS.items():
        blueprint = app.blueprints.get(name)
        if blueprint is not None:
            limiter.limit(budget, key_func=actor_or_ip_key)(blueprint)

    health = app.blueprints.get("health_bp")
    if health is not None:
        limiter.exempt(health)

    logger.info("Rate limits applied to %s", ", ".join(sorted(BLUEPRINT_BUDGETS)))
