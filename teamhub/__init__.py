"""
TeamHub Collaboration Platform
Flask Application Factory.

Usage:
    from teamhub import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from teamhub.config import config
from teamhub.integrations.user_directory import UserDirectoryGateway
from teamhub.middleware.jwt_auth import init_jwt_middleware
from teamhub.middleware.logging_config import configure_logging
from teamhub.middleware.rate_limiter import init_rate_limits
from teamhub.middleware.timing import init_request_timing
from teamhub.models import db
from teamhub.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement + real SAVEPOINTs (global engine events) ──────
from sqlalchemy import engine as _sa_engine, event as _sa_event


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _configure_sqlite(dbapi_conn, connection_record):
    """Enable foreign keys and hand transaction control to SQLAlchemy on SQLite."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        # pysqlite's implicit BEGIN breaks SAVEPOINT semantics
        dbapi_conn.isolation_level = None


@_sa_event.listens_for(_sa_engine.Engine, "begin")
def _sqlite_begin(conn):
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN")


migrate = Migrate()
# Storage comes from RATELIMIT_STORAGE_URI at init_app time
limiter = Limiter(key_func=get_remote_address, default_limits=[])


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    UserDirectoryGateway.from_config(app.config).init_app(app)

    # ── Request timing + JWT auth middleware ─────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from teamhub.models import chat as _chat_models                     # noqa: F401
    from teamhub.models import collaboration as _collaboration_models   # noqa: F401
    from teamhub.models import notification as _notification_models    # noqa: F401
    from teamhub.models import project as _project_models               # noqa: F401

    # ── Auto-create tables (dev/test; managed databases use migrations) ──
    if config_name != "production":
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()
            app.logger.debug("db.create_all() completed")

    # ── Blueprints ───────────────────────────────────────────────────────
    from teamhub.blueprints.chat_bp import chat_bp
    from teamhub.blueprints.health_bp import health_bp
    from teamhub.blueprints.invitation_bp import invitation_bp
    from teamhub.blueprints.notification_bp import notification_bp
    from teamhub.blueprints.project_bp import project_bp

    app.register_blueprint(project_bp)
    app.register_blueprint(invitation_bp)
    app.register_blueprint(chat_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    # ── Event subscribers ────────────────────────────────────────────────
    from teamhub.services.notification import register_notification_subscribers
    register_notification_subscribers()

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("reconcile-chats")
    def reconcile_chats_cmd():
        """Re-mirror bound chats whose status drifted from their request."""
        from teamhub.services.scheduler_service import SchedulerService

        outcome = SchedulerService.run_job("chat_status_reconciliation")
        click.echo(f"{outcome['status']}: {outcome['result'] or outcome['error']}")

    @app.cli.command("issue-token")
    @click.argument("user_id")
    @click.option("--expires-in", type=int, default=None, help="Lifetime in seconds.")
    def issue_token_cmd(user_id, expires_in):
        """Print a bearer token for USER_ID (development only)."""
        if config_name == "production":
            raise click.UsageError("issue-token is disabled in production")
        from teamhub.services.jwt_service import generate_access_token

        click.echo(generate_access_token(user_id, expires_in=expires_in))

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("teamhub.services.scheduled_jobs")  # registers @register_job handlers
    from teamhub.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)

    return app
