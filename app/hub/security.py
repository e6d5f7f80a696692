import secrets

from flask import Flask, Request, render_template, request, session

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from the X-CSRF-Token header or the form."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(token, expected))


def install_csrf_guard(app: Flask) -> None:
    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        if request.method in UNSAFE_METHODS:
            # The password form is the entry point; it has no session yet.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                app.logger.warning("CSRF rejected path=%s", request.path)
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None
