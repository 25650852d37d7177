import os

from flask import Flask, Response, g, jsonify, request, send_file
from werkzeug.exceptions import HTTPException

from chopphub.config import Config
from chopphub.db import close_db, init_db
from chopphub.db_migrations import register_db_cli
from chopphub.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
    prometheus_metrics_text,
)
from chopphub.policies import normalize_role
from chopphub.security import apply_security_headers, enforce_rate_limit
from chopphub.storage import belongs_to_company, get_storage
from chopphub.tenant import current_company_id, resolve_company_id


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_error_handlers(app)
    _register_security(app)
    _register_auth(app)
    _register_tenant(app)
    _register_blueprints(app)
    _register_health(app)
    _register_files(app)
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
        # Testes sobem o schema direto, sem depender de migration externa.
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT ignorado fora de development.")
        return

    with app.app_context():
        init_db()


def _register_blueprints(app: Flask) -> None:
    from chopphub.routes.catalog_routes import catalog_bp
    from chopphub.routes.equipment_routes import equipment_bp
    from chopphub.routes.financial_routes import financial_bp
    from chopphub.routes.nfe_routes import nfe_bp
    from chopphub.routes.orders_routes import orders_bp
    from chopphub.routes.payments_routes import payments_bp
    from chopphub.routes.settings_routes import settings_bp
    from chopphub.routes.stock_routes import stock_bp
    from chopphub.routes.users_routes import users_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(equipment_bp)
    app.register_blueprint(financial_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(nfe_bp)
    app.register_blueprint(users_bp)


def _register_auth(app: Flask) -> None:
    from chopphub.auth import register_auth

    register_auth(app)


def _register_error_handlers(app: Flask) -> None:
    from chopphub.errors import AppError, IntegrationError, ProviderError, SystemError, classify_provider_failure

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

    @app.errorhandler(ProviderError)
    def _handle_provider_error(exc: ProviderError):
        request_id = ensure_request_id()
        code, message_key, http_status = classify_provider_failure(exc)
        mapped = IntegrationError(
            code=code,
            message_key=message_key,
            http_status=http_status,
            critical=False,
            details=str(exc),
            payload={"provider": exc.provider, "details": exc.message},
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


def _register_tenant(app: Flask) -> None:
    @app.before_request
    def load_company() -> None:
        g.company_id = resolve_company_id()
        if app.config.get("AUTH_ENABLED", True):
            return
        # Sem autenticacao o papel vem do header, para testes e uso local.
        if not getattr(g, "user_role", None):
            g.user_role = normalize_role(request.headers.get("X-User-Role"), default="admin")


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "env": os.environ.get("FLASK_ENV", "development"),
            "metrics": {
                "http": metrics_snapshot(),
            },
        }
        return payload, 200

    @app.route("/metrics")
    def metrics():
        return Response(prometheus_metrics_text(), mimetype="text/plain; version=0.0.4")


def _register_files(app: Flask) -> None:
    @app.route("/files/<path:path>")
    def stored_file(path: str):
        if not belongs_to_company(path, current_company_id()):
            return jsonify({"error": "file_not_found"}), 404
        storage = get_storage()
        full_path = storage.full_path(path)
        if not os.path.isfile(full_path):
            return jsonify({"error": "file_not_found"}), 404
        return send_file(full_path)
