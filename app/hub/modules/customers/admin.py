from __future__ import annotations

import io
import json

from flask import Blueprint, Response, abort, current_app, flash, redirect, render_template, request, send_file, url_for

from app.hub.identity import current_identity, require_identity
from app.hub.models import status_label
from app.hub.modules.customers.export import (
    XLSX_MIMETYPE,
    EmptyExportError,
    build_customer_workbook,
    export_filename,
    sheet_title,
)
from app.hub.modules.customers.service import (
    CustomerActionError,
    TransitionFailedError,
    add_customer,
    delete_customer,
    list_customers,
    switch_customer_status,
    validate_customer_payload,
)
from app.hub.store import CustomerStore, StoreError

bp = Blueprint("customers", __name__)


def _store() -> CustomerStore:
    return current_app.extensions["customer_store"]


def _require_status(status: str) -> CustomerStore:
    store = _store()
    if status not in store.statuses:
        abort(404)
    return store


def _back_to(status: str):
    return redirect(url_for("customers.customers_list", status=status))


# ---------- List ----------
@bp.get("/")
@require_identity
def customers_index():
    return _back_to(current_app.config["DEFAULT_VIEW"])


@bp.get("/<status>")
@require_identity
def customers_list(status: str):
    store = _require_status(status)
    try:
        customers = list_customers(store, status, identity=current_identity())
    except StoreError:
        current_app.logger.exception("Could not load %s customers", status)
        flash("Could not load customers.", "danger")
        customers = []

    return render_template(
        "customers/list.html",
        status=status,
        label=status_label(status),
        title=sheet_title(status),
        statuses=store.statuses,
        status_label=status_label,
        customers=customers,
    )


# ---------- New ----------
@bp.post("/<status>/new")
@require_identity
def customers_new_post(status: str):
    store = _require_status(status)
    payload = {
        "name": request.form.get("name"),
        "email": request.form.get("email"),
        "phone": request.form.get("phone"),
    }

    errors = validate_customer_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return _back_to(status)

    try:
        customer = add_customer(store, payload, status=status, identity=current_identity())
    except CustomerActionError as e:
        flash(str(e), "danger")
        return _back_to(status)

    flash(f"{customer.name} has been added to the {status_label(status).lower()} list.", "success")
    return _back_to(status)


# ---------- Delete ----------
@bp.post("/<status>/<customer_id>/delete")
@require_identity
def customer_delete(status: str, customer_id: str):
    store = _require_status(status)
    try:
        deleted = delete_customer(store, customer_id, status=status, identity=current_identity())
    except CustomerActionError as e:
        flash(str(e), "danger")
        return _back_to(status)

    if deleted is None:
        flash("That customer no longer exists.", "warning")
    else:
        flash(f"{deleted.name} has been deleted.", "success")
    return _back_to(status)


# ---------- Move ----------
@bp.post("/<status>/<customer_id>/move")
@require_identity
def customer_move(status: str, customer_id: str):
    store = _require_status(status)
    target = (request.form.get("target") or "").strip().lower()
    if target not in store.statuses:
        flash("Unknown status.", "danger")
        return _back_to(status)

    try:
        customer = store.get(status, customer_id)
    except StoreError:
        current_app.logger.exception("Could not load customer %s from %s", customer_id, status)
        flash("Could not update customer status.", "danger")
        return _back_to(status)
    if customer is None:
        flash("That customer no longer exists.", "warning")
        return _back_to(status)

    try:
        result = switch_customer_status(store, customer, target, identity=current_identity())
    except TransitionFailedError as e:
        flash(str(e), "danger")
        return _back_to(status)

    if result.moved:
        flash(f"{customer.name} has been moved to the {status_label(target).lower()} list.", "success")
    else:
        flash(f"{customer.name} is already in the {status_label(target).lower()} list.", "info")
    return _back_to(status)


# ---------- Export ----------
@bp.get("/<status>/export")
@require_identity
def customers_export(status: str):
    store = _require_status(status)
    try:
        customers = list_customers(store, status, identity=current_identity())
    except StoreError:
        current_app.logger.exception("Could not load %s customers for export", status)
        flash("Could not load customers.", "danger")
        return _back_to(status)

    try:
        data = build_customer_workbook(customers, status)
    except EmptyExportError as e:
        flash(str(e), "danger")
        return _back_to(status)

    current_app.logger.info("Exported %d %s customers", len(customers), status)
    return send_file(
        io.BytesIO(data),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=export_filename(status),
        max_age=0,
    )


# ---------- Live stream ----------
def _sse(event: str, payload: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n"


@bp.get("/<status>/stream")
@require_identity
def customers_stream(status: str):
    store = _require_status(status)
    keepalive = current_app.config["STREAM_KEEPALIVE_SECONDS"]
    logger = current_app.logger
    sub = store.watch(status)

    def _events():
        logger.debug("SSE subscribe status=%s", status)
        try:
            while not sub.closed:
                try:
                    snapshot = sub.next_snapshot(timeout=keepalive)
                except StoreError as e:
                    logger.error("SSE snapshot failed for %s: %s", status, e)
                    yield _sse("error", {"status": status, "message": "Could not load customers."})
                    break
                if snapshot is None:
                    yield ": keepalive\n\n"
                    continue
                yield _sse("snapshot", {"status": status, "customers": [c.to_dict() for c in snapshot]})
        finally:
            sub.close()
            logger.debug("SSE unsubscribe status=%s", status)

    return Response(
        _events(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache, no-transform", "X-Accel-Buffering": "no"},
    )
