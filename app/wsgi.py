import logging
import os

from app.hub import create_app

logging.basicConfig(
    level=(os.environ.get("LOG_LEVEL") or "INFO").strip().upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app()
