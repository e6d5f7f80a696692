#!/usr/bin/env python3
"""
Production startup script.

1. Creates any missing customer partition tables (init_db.py)
2. Starts gunicorn (replaces this process via os.execvp)

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def main() -> None:
    port = os.environ.get("PORT", "").strip()
    if not port:
        print("WARNING: PORT not set, using default 8080", flush=True)
        port = "8080"

    try:
        port_int = int(port)
        if port_int < 1 or port_int > 65535:
            raise ValueError("Port out of range")
    except ValueError:
        print(f"ERROR: Invalid PORT value '{port}'. Must be integer 1-65535.", flush=True)
        sys.exit(1)

    if (os.environ.get("STORE_BACKEND") or "sql").strip().lower() == "sql":
        print("=== Creating customer partitions ===", flush=True)
        from scripts.init_db import init_partitions
        try:
            names = init_partitions()
        except Exception as e:
            print(f"init_db failed: {e}", flush=True)
            sys.exit(1)
        print(f"Partitions: {', '.join(names)}", flush=True)

    print(f"=== Starting gunicorn on 0.0.0.0:{port} ===", flush=True)

    # exec so gunicorn is PID 1 and receives signals directly.
    # Threaded workers: each open live-list stream holds a thread.
    os.execvp(
        "gunicorn",
        [
            "gunicorn",
            "app.wsgi:app",
            "--bind", f"0.0.0.0:{port}",
            "--workers", "2",
            "--threads", "8",
            "--timeout", "60",
            "--access-logfile", "-",
            "--error-logfile", "-",
        ],
    )


if __name__ == "__main__":
    main()
