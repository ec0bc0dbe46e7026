from __future__ import annotations

from typing import Any

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_jwt_extended import JWTManager
from sqlalchemy.exc import OperationalError, ProgrammingError

from .admin.routes import admin_bp
from .auth.routes import auth_bp
from .bootstrap import bootstrap_defaults, ensure_storage_roots
from .common.errors import error_payload, register_error_handlers
from .config import DEFAULT_JWT_SECRET, Config
from .extensions import cors, db, jwt, migrate
from .files.routes import files_bp
from .legal.routes import legal_bp
from .models import utc_now
from .preferences.routes import preferences_bp
from .profile.routes import profile_bp
from .sessions.routes import sessions_bp


load_dotenv()


def _register_jwt_handlers(jwt_manager: JWTManager) -> None:
    @jwt_manager.unauthorized_loader
    def unauthorized(reason: str):  # type: ignore[no-untyped-def]
        return (
            jsonify(error_payload("UNAUTHENTICATED", "Missing or invalid authentication token.", {"reason": reason, "logged": False})),
            401,
        )

    @jwt_manager.invalid_token_loader
    def invalid_token(reason: str):  # type: ignore[no-untyped-def]
        return jsonify(error_payload("INVALID_TOKEN", "Invalid token.", {"reason": reason, "logged": False})), 401

    @jwt_manager.expired_token_loader
    def expired_token(jwt_header, jwt_payload):  # type: ignore[no-untyped-def]
        return jsonify(error_payload("TOKEN_EXPIRED", "Your session has expired.", {"logged": False})), 401


def create_app(config_override: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)

    if app.config["ENV_NAME"] == "production" and app.config["JWT_SECRET_KEY"] == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")

    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    _register_jwt_handlers(jwt)
    cors.init_app(app, resources={r"/*": {"origins": app.config["FRONTEND_ORIGINS"]}})

    app.register_blueprint(auth_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(legal_bp)
    app.register_blueprint(preferences_bp)

    @app.get("/health")
    def healthcheck():
        return {"status": "ok", "timestamp": utc_now().isoformat()}

    register_error_handlers(app)

    with app.app_context():
        ensure_storage_roots()
        try:
            bootstrap_defaults(commit=True)
        except (OperationalError, ProgrammingError):
            db.session.rollback()

    return app
