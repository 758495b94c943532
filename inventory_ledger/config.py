import logging
import os
from pathlib import Path

from .constants import DATA_DIR, DB_FILE_NAME

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_PATH = BASE_DIR / DATA_DIR

# INVENTORY_LEDGER_DB points the engine at another database file
DB_PATH = Path(os.environ.get("INVENTORY_LEDGER_DB") or DATA_PATH / DB_FILE_NAME)

LOG_LEVEL = getattr(
    logging, os.environ.get("INVENTORY_LEDGER_LOG_LEVEL", "INFO").upper(), logging.INFO
)

# ensure data dir exists early
DB_PATH.parent.mkdir(parents=True, exist_ok=True)
