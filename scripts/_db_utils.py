from __future__ import annotations

import os

from sqlalchemy import create_engine


def resolve_database_url(database_url: str | None = None) -> str:
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///customer_hub.db").strip()
    # Render/DO hand out postgres://; SQLAlchemy wants postgresql://
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    return db_url


def create_script_engine(db_url: str):
    return create_engine(
        db_url,
        pool_pre_ping=True,
        pool_recycle=1800,
    )
