"""
Create the customer partition tables (one per configured status).

Idempotent: existing tables and their rows are left alone.

Usage:
  python scripts/init_db.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.hub.config import parse_statuses  # noqa: E402
from app.hub.models import Base, register_partitions  # noqa: E402
from scripts._db_utils import create_script_engine, resolve_database_url  # noqa: E402


def init_partitions(*, database_url: str | None = None, statuses: tuple[str, ...] | None = None) -> list[str]:
    db_url = resolve_database_url(database_url)
    if statuses is None:
        statuses = parse_statuses(os.environ.get("CUSTOMER_STATUSES") or "pending,one_month,one_year")

    tables = register_partitions(statuses)
    engine = create_script_engine(db_url)
    try:
        Base.metadata.create_all(bind=engine, tables=tables)
    finally:
        engine.dispose()
    return [t.name for t in tables]


def main() -> None:
    load_dotenv()
    names = init_partitions()
    print(f"Customer partitions ready: {', '.join(names)}", flush=True)


if __name__ == "__main__":
    main()
