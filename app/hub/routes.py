from flask import Blueprint, current_app, redirect, url_for

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return redirect(url_for("customers.customers_index"))


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    store = current_app.extensions["customer_store"]
    return {"ok": True, "store": store.backend, "statuses": list(store.statuses)}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200
