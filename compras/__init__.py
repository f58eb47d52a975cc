import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from compras.config import Config
from compras.core.event_bus import get_event_bus
from compras.db import close_db, get_db, init_db
from compras.db_migrations import register_db_cli
from compras.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
)


def create_app(config_class=Config):
    app = Flask(__name__)
    # Instantiating runs the production guards in Config.__init__.
    app.config.from_object(config_class() if isinstance(config_class, type) else config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_error_handlers(app)
    _register_services(app)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    _maybe_init_schema(app)

    app.teardown_appcontext(close_db)
    return app


def _ensure_database_dir(app: Flask) -> None:
    database_dir = app.config.get("DATABASE_DIR")
    if database_dir:
        os.makedirs(database_dir, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT ignorado fora de development.")
        return

    with app.app_context():
        init_db()


def _register_services(app: Flask) -> None:
    from compras.application.procurement_service import ProcurementService
    from compras.procurement.notifier import LoggingNotifier, NotifierSubscriber

    bus = app.config.get("EVENT_BUS") or get_event_bus()
    notifier = app.config.get("NOTIFIER") or LoggingNotifier()
    NotifierSubscriber(notifier).attach(bus)

    app.extensions["compras.service"] = ProcurementService(
        event_bus=bus,
        number_prefix=app.config.get("REQUISITION_NUMBER_PREFIX", "SC"),
    )


def _register_blueprints(app: Flask) -> None:
    from compras.routes.procurement_routes import procurement_bp

    app.register_blueprint(procurement_bp)


def _register_error_handlers(app: Flask) -> None:
    from compras.errors import AppError, SystemError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        return observe_response(response)

    def _log_error(error: AppError, request_id: str) -> None:
        log_method = app.logger.error if error.critical else app.logger.warning
        log_method(
            "application_error",
            extra={
                "request_id": request_id,
                "error_code": error.code,
                "http_status": error.http_status,
                "message_key": error.message_key,
                "details": error.details,
                "request_path": request.path,
                "http_method": request.method,
            },
            exc_info=error.critical,
        )

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        _log_error(exc, request_id)
        return jsonify(exc.to_response_payload(request_id)), exc.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        request_id = ensure_request_id()
        mapped = SystemError(code="unexpected_error", message_key="unexpected_error", details=str(exc))
        app.logger.exception(
            "unexpected_exception",
            extra={
                "request_id": request_id,
                "error_code": mapped.code,
                "request_path": request.path,
                "http_method": request.method,
            },
        )
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        db_path = app.config.get("DB_PATH") or "unknown"
        payload = {
            "status": "ok",
            "db": "postgres" if str(db_path).startswith("postgres") else "sqlite",
            "env": app.config.get("ENV", "unknown"),
            "metrics": metrics_snapshot(),
        }
        try:
            get_db().execute("SELECT 1").fetchone()
        except Exception:  # noqa: BLE001
            app.logger.exception("health_db_unavailable")
            payload["status"] = "degraded"
        return payload, 200
