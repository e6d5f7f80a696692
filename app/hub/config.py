import os
import re
from dataclasses import dataclass
from datetime import timedelta

from werkzeug.security import generate_password_hash

_STATUS_RE = re.compile(r"^[a-z][a-z0-9_]*$")


class ConfigError(RuntimeError):
    """Raised when the environment describes an unusable configuration."""


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    store_backend: str
    hub_password: str
    customer_statuses: tuple[str, ...]
    default_view: str

    session_lifetime_days: int
    stream_keepalive_seconds: float


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def parse_statuses(raw: str) -> tuple[str, ...]:
    statuses = tuple(part.strip().lower() for part in raw.split(",") if part.strip())
    if not statuses:
        raise ConfigError("CUSTOMER_STATUSES must name at least one status.")
    for status in statuses:
        # Statuses become table names.
        if not _STATUS_RE.match(status):
            raise ConfigError(f"Invalid status name {status!r}; use lowercase letters, digits and '_'.")
    if len(set(statuses)) != len(statuses):
        raise ConfigError("CUSTOMER_STATUSES contains duplicates.")
    return statuses


def load_settings() -> Settings:
    statuses = parse_statuses(_getenv("CUSTOMER_STATUSES", "pending,one_month,one_year"))
    default_view = _getenv("DEFAULT_VIEW", statuses[0]).lower()
    if default_view not in statuses:
        raise ConfigError(f"DEFAULT_VIEW {default_view!r} is not one of: {', '.join(statuses)}")

    backend = _getenv("STORE_BACKEND", "sql").lower()
    if backend not in ("sql", "memory"):
        raise ConfigError("STORE_BACKEND must be 'sql' or 'memory'.")

    try:
        lifetime_days = int(_getenv("SESSION_LIFETIME_DAYS", "30"))
        keepalive = float(_getenv("STREAM_KEEPALIVE_SECONDS", "15"))
    except ValueError as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e

    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///customer_hub.db"),
        store_backend=backend,
        hub_password=os.environ.get("HUB_PASSWORD") or "change-me",
        customer_statuses=statuses,
        default_view=default_view,
        session_lifetime_days=lifetime_days,
        stream_keepalive_seconds=keepalive,
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    if is_production:
        if s.secret_key in ("", "change-me"):
            raise ConfigError("SECRET_KEY must be set to a strong value in production (not default).")
        if s.hub_password == "change-me":
            raise ConfigError("HUB_PASSWORD must be changed from the default in production.")
        if s.store_backend == "sql" and s.database_url.startswith("sqlite"):
            raise ConfigError("DATABASE_URL must be Postgres in production (not sqlite).")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORE_BACKEND": s.store_backend,
        # Only the hash is kept in app config.
        "HUB_PASSWORD_HASH": generate_password_hash(s.hub_password),
        "CUSTOMER_STATUSES": s.customer_statuses,
        "DEFAULT_VIEW": s.default_view,
        "STREAM_KEEPALIVE_SECONDS": s.stream_keepalive_seconds,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        "PERMANENT_SESSION_LIFETIME": timedelta(days=s.session_lifetime_days),
    }
