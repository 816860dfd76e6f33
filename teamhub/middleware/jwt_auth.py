"""
Bearer-token authentication for the lifecycle API.

Every ``/api/v1/`` request except the health probes and CORS preflights
must carry ``Authorization: Bearer <jwt>``. The verified ``sub`` claim is
stored on ``g.current_user_id`` and is the only source of the acting user
for Apply, Invite, Accept and Decline; request bodies never name the actor.
"""

import logging

import jwt as pyjwt
from flask import g, request

from teamhub.services.jwt_service import decode_access_token
from teamhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/"
PUBLIC_PREFIXES = ("/api/v1/health",)


def _requires_token() -> bool:
    if request.method == "OPTIONS" or not request.path.startswith(API_PREFIX):
        return False
    return not request.path.startswith(PUBLIC_PREFIXES)


def _bearer_token() -> str | None:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def init_jwt_middleware(app):
    """Register the token check as a before_request hook."""

    @app.before_request
    def _authenticate_actor():
        g.current_user_id = None
        if not _requires_token():
            return None

        token = _bearer_token()
        if token is None:
            return api_error(E.UNAUTHENTICATED, "Bearer token required")
        try:
            claims = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            return api_error(E.UNAUTHENTICATED, "Token expired")
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token on %s: %s", request.path, exc)
            return api_error(E.UNAUTHENTICATED, "Invalid token")

        g.current_user_id = str(claims["sub"])
        return None
