from __future__ import annotations

from flask import Blueprint, current_app, g, redirect, render_template, request, url_for
from werkzeug.security import check_password_hash

from app.hub.identity import gate_passed, pass_gate, sign_out

bp = Blueprint("auth", __name__)

WRONG_PASSWORD = "Incorrect password. Please try again."


def _safe_next(nxt: str) -> str | None:
    # Only allow local paths to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    if gate_passed():
        return redirect(_safe_next(nxt) or url_for("customers.customers_index"))
    return render_template("auth/login.html", next=nxt, error=None)


@bp.post("/login")
def login_post():
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()

    if not check_password_hash(current_app.config["HUB_PASSWORD_HASH"], password):
        current_app.logger.warning(
            "Login failed (ip=%s request_id=%s)", request.remote_addr, getattr(g, "request_id", None)
        )
        return render_template("auth/login.html", next=nxt, error=WRONG_PASSWORD), 401

    identity = pass_gate()
    current_app.logger.info("Login ok uid=%s", identity.uid)
    return redirect(_safe_next(nxt) or url_for("customers.customers_index"))


@bp.get("/logout")
def logout():
    sign_out()
    return redirect(url_for("auth.login_get"))
