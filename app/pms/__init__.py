import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

# Models first: feature modules import Base from here.
from app.pms import models  # noqa: F401
from app.pms.config import DEV_JWT_REFRESH_SECRET, DEV_JWT_SECRET, DEV_SECRET, load_config
from app.pms.db import init_db, teardown_db_session
from app.pms.errors import ServiceError
from app.pms.routes import bp as routes_bp
from app.pms.auth import bp as auth_bp, load_current_user
from app.pms.modules.audit_log.api import bp as audit_log_bp
from app.pms.modules.clients.api import bp as clients_bp
from app.pms.modules.dashboard.api import bp as dashboard_bp
from app.pms.modules.devices.api import bp as devices_bp
from app.pms.modules.notifications.api import bp as notifications_bp, ws_bp as notifications_ws_bp
from app.pms.modules.notifications.service import init_notifications
from app.pms.modules.profile_requests.api import bp as profile_bp
from app.pms.modules.profile_requests.service import init_profile_requests
from app.pms.modules.proposals.api import bp as proposals_bp
from app.pms.modules.users.api import bp as users_bp


def _configure_logging(level: str) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    else:
        root.setLevel(level)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.json.sort_keys = False
    _configure_logging(app.config["LOG_LEVEL"])

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", DEV_SECRET):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if app.config["JWT_SECRET"] == DEV_JWT_SECRET or app.config["JWT_REFRESH_SECRET"] == DEV_JWT_REFRESH_SECRET:
            raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must be set in production.")

    CORS(
        app,
        resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}},
        supports_credentials=True,
    )

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # In-process state; one instance per app.
    init_notifications(app)
    init_profile_requests(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(notifications_ws_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(devices_bp, url_prefix="/api/devices")
    app.register_blueprint(clients_bp, url_prefix="/api/clients")
    app.register_blueprint(proposals_bp, url_prefix="/api/proposals")
    app.register_blueprint(audit_log_bp, url_prefix="/api/audit")
    app.register_blueprint(dashboard_bp, url_prefix="/api/dashboard")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")
    app.register_blueprint(profile_bp, url_prefix="/api/profile")

    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz", "/ws")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ServiceError)
    def _err_service(e: ServiceError):  # type: ignore[no-redef]
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        if e.status_code >= 500:
            app.logger.error("Service error %s (request_id=%s)", e.message, getattr(g, "request_id", None))
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        if e.code == 413:
            return jsonify({"error": "Request body too large"}), 413
        if e.code == 404:
            return jsonify({"error": "Not found"}), 404
        return jsonify({"error": e.description or e.name}), e.code or 500

    @app.errorhandler(Exception)
    def _err_500(e: Exception):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        # Ensure stack trace shows in logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        message = "Internal server error" if env in ("prod", "production") else str(e) or "Internal server error"
        return jsonify({"error": message}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
