"""
Shared pytest fixtures for the TeamHub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - auth_headers: factory for bearer-token headers
    - project: creator "u-creator" with Designer, Developer x2 and Marketer slots
"""

import pytest

from teamhub import create_app
from teamhub.models import db as _db
from teamhub.services.jwt_service import generate_access_token

CREATOR = "u-creator"
APPLICANT = "u-alice"
OTHER = "u-bob"
THIRD = "u-carol"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        app.extensions["user_directory"].clear_cache()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def auth_headers():
    """Return a function building ``Authorization`` headers for a user id."""

    def _headers(user_id):
        return {"Authorization": f"Bearer {generate_access_token(user_id)}"}

    return _headers


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    """A Planning project owned by CREATOR with four open role slots."""
    from teamhub.services import project_service

    return project_service.create_project(CREATOR, {
        "title": "Campus Ride Share",
        "description": "Carpooling app for students",
        "category": "Tech",
        "tags": ["mobile", "sustainability"],
        "roles": [
            {"title": "Designer", "description": "UI/UX"},
            {"title": "Developer", "description": "Backend"},
            {"title": "Developer", "description": "Mobile"},
            {"title": "Marketer"},
        ],
    })
