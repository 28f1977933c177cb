"""
CETI — goal-tracking backend.
Flask Application Factory.

Usage:
    from ceti import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from ceti.config import config
from ceti.core.exceptions import (
    AuthenticationError,
    BlockedByInvariantError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ceti.middleware.diagnostics import run_startup_diagnostics
from ceti.middleware.jwt_auth import init_jwt_middleware
from ceti.middleware.logging_config import configure_logging
from ceti.middleware.rate_limiter import init_rate_limits
from ceti.middleware.security_headers import init_security_headers
from ceti.middleware.timing import init_request_timing
from ceti.models import db
from ceti.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # per-blueprint only
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)

# Exception type → error code (status comes from api_error)
_ERROR_MAP = (
    (AuthenticationError, E.UNAUTHENTICATED),
    (PermissionDeniedError, E.FORBIDDEN),
    (NotFoundError, E.NOT_FOUND),
    (ValidationError, E.VALIDATION_INVALID),
    (ConflictError, E.CONFLICT_DUPLICATE),
    (BlockedByInvariantError, E.BLOCKED),
    (ExternalServiceError, E.EXTERNAL_SERVICE),
)

# Mutating endpoints that take multipart uploads rather than JSON
_MULTIPART_SUFFIXES = ("/files",)
_MULTIPART_PATHS = ("/api/v1/transcriptions",)


def _register_error_handlers(app):
    for exc_type, code in _ERROR_MAP:
        def handler(e, _code=code):
            if _code in (E.UNAUTHENTICATED, E.FORBIDDEN):
                logger.info("%s on %s %s: %s", _code, request.method, request.path, e.message)
            return api_error(_code, e.message, details=e.details or None)
        app.register_error_handler(exc_type, handler)

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Recurso no encontrado", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Método no permitido")

    @app.errorhandler(413)
    def payload_too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "La solicitud es demasiado grande")

    @app.errorhandler(415)
    def unsupported_media(e):
        return api_error(E.UNSUPPORTED_MEDIA, "Content-Type debe ser application/json")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Demasiadas solicitudes",
                         details={"retry_after": e.description})

    @app.errorhandler(SQLAlchemyError)
    def database_error(e):
        db.session.rollback()
        logger.exception("Database error on %s %s", request.method, request.path)
        return api_error(E.DATABASE, "Error de base de datos")

    @app.errorhandler(Exception)
    def unhandled(e):
        if isinstance(e, HTTPException):
            return api_error(E.VALIDATION_INVALID, e.description or e.name, status=e.code)
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return api_error(E.INTERNAL, "Error interno del servidor")


def _register_cli(app):
    @app.cli.command("seed-demo")
    @click.option("--password", default="ceti1234", show_default=True,
                  help="Password for every demo account.")
    def seed_demo_cmd(password):
        """Create demo users, programs, memberships and tasks."""
        from ceti.services.seed_service import seed_demo
        summary = seed_demo(password=password)
        click.echo(f"Seeded: {summary}")


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
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
             supports_credentials=True)
    else:
        CORS(app)

    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    # ── Middleware ───────────────────────────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Request guards (body size + Content-Type) ────────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413)
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.path in _MULTIPART_PATHS or request.path.endswith(_MULTIPART_SUFFIXES):
                return None
            if request.data and "json" not in ct and "multipart/form-data" not in ct:
                abort(415)

    # ── Import all models so Alembic can detect them ─────────────────────
    from ceti.models import audit as _audit_models                  # noqa: F401
    from ceti.models import program as _program_models              # noqa: F401
    from ceti.models import task as _task_models                    # noqa: F401
    from ceti.models import transcription as _transcription_models  # noqa: F401
    from ceti.models import user as _user_models                    # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from ceti.blueprints.attachment_bp import attachment_bp
    from ceti.blueprints.auth_bp import auth_bp, setup_bp
    from ceti.blueprints.health_bp import health_bp
    from ceti.blueprints.kpi_bp import kpi_bp
    from ceti.blueprints.program_bp import program_bp
    from ceti.blueprints.search_bp import search_bp
    from ceti.blueprints.task_bp import task_bp
    from ceti.blueprints.transcription_bp import transcription_bp
    from ceti.blueprints.user_bp import user_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(setup_bp)
    app.register_blueprint(program_bp)
    app.register_blueprint(task_bp)
    app.register_blueprint(attachment_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(search_bp)
    app.register_blueprint(kpi_bp)
    app.register_blueprint(transcription_bp)
    app.register_blueprint(health_bp)

    _register_error_handlers(app)
    _register_cli(app)

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
