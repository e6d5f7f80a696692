from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import current_app, flash, g, redirect, request, session, url_for

GATE_FLAG = "is_authenticated"
IDENTITY_KEY = "uid"


@dataclass(frozen=True)
class Identity:
    """Anonymous, app-scoped identity. Every store operation requires one."""

    uid: str


def gate_passed() -> bool:
    return session.get(GATE_FLAG) is True


def pass_gate() -> Identity:
    """Persist the gate flag and sign in anonymously."""
    session[GATE_FLAG] = True
    session.permanent = True
    return sign_in_anonymously()


def sign_in_anonymously() -> Identity:
    uid = session.get(IDENTITY_KEY)
    if not uid:
        uid = uuid.uuid4().hex
        session[IDENTITY_KEY] = uid
        current_app.logger.info("Anonymous sign-in uid=%s", uid)
    return Identity(uid=uid)


def sign_out() -> None:
    session.pop(GATE_FLAG, None)
    session.pop(IDENTITY_KEY, None)


def load_identity() -> None:
    """
    Loads g.identity from the signed session cookie.
    A returning visitor who already passed the gate is signed in again
    without seeing the password prompt.
    Also assigns a simple per-request request_id (for log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.identity = None
        return

    if not gate_passed():
        g.identity = None
        return
    g.identity = sign_in_anonymously()


def current_identity() -> Identity | None:
    return getattr(g, "identity", None)


def require_identity(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_identity() is None:
            nxt = request.full_path or request.path
            # Avoid trailing '?' from full_path when there is no query string.
            if nxt.endswith("?"):
                nxt = nxt[:-1]
            flash("You must be logged in to manage customers.", "danger")
            return redirect(url_for("auth.login_get", next=nxt))
        return fn(*args, **kwargs)

    return wrapped
