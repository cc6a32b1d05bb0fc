"""
Carbon Access Engine
Flask Application Factory.

Usage:
    from carbonaccess import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from carbonaccess.config import config
from carbonaccess.middleware.jwt_auth import init_jwt_middleware
from carbonaccess.middleware.logging_config import configure_logging, init_request_logging
from carbonaccess.models import db
from carbonaccess.services import directory_service
from carbonaccess.services.consultant_cache import ConsultantScopeCache
from carbonaccess.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


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

    # Model modules register their tables on import
    from carbonaccess.models import audit, auth, flowchart, reduction, summary  # noqa: F401

    # tenant -> consultant_admin cache shared by every audit write
    app.extensions["consultant_scope_cache"] = ConsultantScopeCache(
        directory_service.get_consultant_admin_id,
        ttl_seconds=app.config["CONSULTANT_CACHE_TTL"],
    )

    # ── JWT auth middleware (sets g.jwt_*) ───────────────────────────────
    init_jwt_middleware(app)

    # ── Per-request access log ───────────────────────────────────────────
    init_request_logging(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from carbonaccess.blueprints.access_control_bp import access_control_bp
    from carbonaccess.blueprints.audit_bp import audit_bp
    from carbonaccess.blueprints.summary_bp import summary_bp

    app.register_blueprint(summary_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(access_control_bp)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Carbon Access Engine"}

    register_error_handlers(app)

    # ── Dev convenience: create tables for SQLite ────────────────────────
    db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if config_name == "development" and db_uri.startswith("sqlite:///"):
        os.makedirs(os.path.dirname(db_uri.removeprefix("sqlite:///")) or ".", exist_ok=True)
        with app.app_context():
            db.create_all()

    logger.debug("app_created env=%s db=%s", config_name, db_uri.split(":", 1)[0])
    return app
