"""
JWT Service — bearer tokens that identify the acting user.

TeamHub never logs anyone in: the identity service issues HS256 access
tokens signed with the shared ``JWT_SECRET_KEY`` and every lifecycle command
runs as the token's ``sub``. ``generate_access_token`` exists for the
``flask issue-token`` dev command and the test suite.

Claims checked on every request:
    sub   opaque user id (required, non-empty)
    type  "access" (tokens without it are accepted)
    exp   expiry
    iss   only when JWT_ISSUER is configured
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
ALGORITHM = "HS256"


def _secret() -> str:
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def generate_access_token(user_id: str, expires_in: int | None = None) -> str:
    """Sign a token whose subject is ``user_id``."""
    issued = datetime.now(timezone.utc)
    lifetime = current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES) if expires_in is None else expires_in
    claims = {
        "sub": str(user_id),
        "type": "access",
        "iat": issued,
        "exp": issued + timedelta(seconds=lifetime),
        "jti": uuid.uuid4().hex,
    }
    issuer = current_app.config.get("JWT_ISSUER")
    if issuer:
        claims["iss"] = issuer
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify ``token`` and return its claims.

    Raises:
        jwt.ExpiredSignatureError: token past ``exp``.
        jwt.InvalidTokenError: bad signature, wrong type or issuer, no subject.
    """
    issuer = current_app.config.get("JWT_ISSUER") or None
    options = {"require": ["exp", "sub"]}
    claims = jwt.decode(token, _secret(), algorithms=[ALGORITHM], issuer=issuer, options=options)
    if claims.get("type", "access") != "access":
        raise jwt.InvalidTokenError(f"not an access token (type={claims.get('type')!r})")
    if not str(claims["sub"]).strip():
        raise jwt.InvalidTokenError("empty subject")
    return claims
