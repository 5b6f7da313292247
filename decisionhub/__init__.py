"""
Decision Engine
Flask Application Factory.

Usage:
    from decisionhub import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from decisionhub.config import config
from decisionhub.models import db
from decisionhub.middleware.jwt_auth import init_jwt_middleware
from decisionhub.middleware.logging_config import configure_logging
from decisionhub.middleware.rate_limiter import init_rate_limits
from decisionhub.middleware.timing import init_request_timing
from decisionhub.services.results_service import build_default_selection_registry
from decisionhub.services.schema_registry import build_default_registry

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


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
    # Instantiate so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())

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

    # ── Schema + selection registries (built once, read-mostly afterwards) ──
    app.extensions["schema_registry"] = build_default_registry()
    app.extensions["selection_registry"] = build_default_selection_registry()

    # ── Request timing + JWT identity ────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    @app.before_request
    def _guard_request():
        from flask import abort
        # Content-Type validation for mutating methods
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from decisionhub.models import access as _access_models      # noqa: F401
    from decisionhub.models import decision as _decision_models  # noqa: F401

    # ── Blueprints ───────────────────────────────────────────────────────
    from decisionhub.blueprints.decision_bp import decision_bp
    from decisionhub.blueprints.roles_bp import roles_bp

    app.register_blueprint(decision_bp)
    app.register_blueprint(roles_bp)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {
            "status": "ok",
            "app": "Decision Engine",
            "schemaTypes": app.extensions["schema_registry"].get_all_schema_types(),
            "selectionFunctions": app.extensions["selection_registry"].get_all_ids(),
        }

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
