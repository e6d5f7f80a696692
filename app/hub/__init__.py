import logging
import os

from flask import Flask, g, render_template, request
from dotenv import load_dotenv

from app.hub.config import load_config
from app.hub.db import dispose_db, init_db
from app.hub.routes import bp as routes_bp
from app.hub.auth import bp as auth_bp
from app.hub.identity import load_identity
from app.hub.security import install_csrf_guard
from app.hub.store import SqlCustomerStore, store_from_config
from app.hub.modules.customers.admin import bp as customers_bp
from app.hub.modules.customers.export import format_activation_date

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    @app.template_filter("longdate")
    def _longdate_filter(value, missing: str = "Date not available") -> str:
        if value is None:
            return missing
        return format_activation_date(value)

    install_csrf_guard(app)

    if app.config["STORE_BACKEND"] == "sql":
        init_db(app)

        def _after_fork_child():
            dispose_db(app)
            app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        if hasattr(os, "register_at_fork"):
            os.register_at_fork(after_in_child=_after_fork_child)

    store = store_from_config(app)
    app.extensions["customer_store"] = store
    app.logger.info("Customer store backend=%s statuses=%s", store.backend, ",".join(store.statuses))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(customers_bp, url_prefix="/customers")

    app.before_request(load_identity)

    # Partition health: every configured status needs its table.
    # Checked on first request so tests/scripts can create tables after create_app().
    app.config.setdefault("_schema_health_ok", None)
    app.config.setdefault("_schema_health_missing", [])

    def _run_schema_health_check() -> None:
        missing: list[str] = []
        if isinstance(store, SqlCustomerStore):
            try:
                missing = store.missing_partitions()
            except Exception as e:
                app.logger.exception("Schema health check failed: %s", e)
        if missing:
            app.logger.error("Customer partitions missing; run `python scripts/init_db.py`. Missing: %s", ", ".join(missing))
        app.config["_schema_health_missing"] = missing
        app.config["_schema_health_ok"] = not missing

    @app.before_request
    def _schema_health_guardrail():
        if app.config.get("_schema_health_ok") is not True:
            _run_schema_health_check()
        if app.config.get("_schema_health_ok"):
            return None
        if request.path.startswith("/customers") and getattr(g, "identity", None):
            return render_template("errors/schema_out_of_date.html", missing=app.config.get("_schema_health_missing") or []), 500
        return None

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    logger.info("create_app() complete; app ready to serve")

    return app
