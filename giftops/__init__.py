import os

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from giftops.config import Config
from giftops.db import close_db, init_db
from giftops.db_migrations import register_db_cli
from giftops.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
    prometheus_metrics_text,
)
from giftops.security import (
    apply_security_headers,
    csrf_token,
    enforce_form_csrf,
    enforce_json_api_body,
    enforce_rate_limit,
)
from giftops.ui_strings import error_message, get_ui_text, template_bundle


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_error_handlers(app)
    _register_security(app)
    _register_auth(app)
    _register_template_context(app)
    _register_blueprints(app)
    _register_health(app)
    _register_notifications()
    register_db_cli(app)
    _register_user_cli(app)
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
        app.logger.warning("DB_AUTO_INIT ignored outside development.")
        return

    with app.app_context():
        init_db()


def _register_blueprints(app: Flask) -> None:
    from giftops.routes.catalog_routes import catalog_bp
    from giftops.routes.export_routes import export_bp
    from giftops.routes.feedback_routes import feedback_bp
    from giftops.routes.finance_routes import finance_bp
    from giftops.routes.invoice_routes import invoice_bp
    from giftops.routes.order_routes import order_bp
    from giftops.routes.page_routes import pages_bp
    from giftops.routes.stock_routes import stock_bp
    from giftops.routes.task_routes import task_bp
    from giftops.routes.user_routes import user_bp

    for blueprint in (
        pages_bp,
        order_bp,
        stock_bp,
        invoice_bp,
        finance_bp,
        catalog_bp,
        user_bp,
        feedback_bp,
        task_bp,
        export_bp,
    ):
        app.register_blueprint(blueprint)


def _register_auth(app: Flask) -> None:
    from giftops.auth import register_auth

    register_auth(app)


def _register_user_cli(app: Flask) -> None:
    from giftops.cli import register_user_cli

    register_user_cli(app)


def _register_notifications() -> None:
    from giftops.application.notification_service import get_notification_service
    from giftops.core import get_event_bus

    get_notification_service().register_event_handlers(get_event_bus())


def _register_error_handlers(app: Flask) -> None:
    from giftops.errors import AppError, IntegrationError, SystemError
    from giftops.routing_client import RoutingError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        response = observe_response(response)
        return apply_security_headers(response)

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

    @app.errorhandler(RoutingError)
    def _handle_routing_error(exc: RoutingError):
        request_id = ensure_request_id()
        mapped = IntegrationError(
            code="routing_unavailable",
            message_key="routing_unavailable",
            critical=False,
            details=str(exc),
        )
        _log_error(mapped, request_id)
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        request_id = ensure_request_id()
        mapped = SystemError(
            code="unexpected_error",
            message_key="unexpected_error",
            http_status=500,
            critical=True,
            details=str(exc),
        )
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


def _register_security(app: Flask) -> None:
    @app.before_request
    def _rate_limit_guard():
        return enforce_rate_limit()

    @app.before_request
    def _csrf_guard():
        enforce_form_csrf()

    @app.before_request
    def _api_body_guard():
        enforce_json_api_body()


def _register_template_context(app: Flask) -> None:
    @app.context_processor
    def inject_ui_context():
        return {
            "current_user": getattr(g, "actor", None),
            "ui_text": get_ui_text,
            "error_message": error_message,
            "csrf_token": csrf_token,
            **template_bundle(),
        }


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        from giftops.db import get_db

        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "env": app.config.get("ENV", "unknown"),
            "metrics": {"http": metrics_snapshot()},
        }
        try:
            get_db().execute("SELECT 1").fetchone()
        except Exception:  # noqa: BLE001
            app.logger.warning("health_db_unreachable", exc_info=True)
            payload["status"] = "degraded"
        return payload, 200

    @app.route("/metrics")
    def metrics():
        return app.response_class(prometheus_metrics_text(), mimetype="text/plain; version=0.0.4")
