import os
from pathlib import Path

from .constants import CHECKOUT_LOG_FILE, DATA_DIR, DB_FILE_NAME, LOG_DIR

BASE_DIR = Path(__file__).resolve().parent
DATA_PATH = BASE_DIR / DATA_DIR
LOG_PATH = BASE_DIR / LOG_DIR

# RETAIL_POS_DB points the app at another database file (tests, kiosks)
DB_PATH = Path(os.environ.get("RETAIL_POS_DB", DATA_PATH / DB_FILE_NAME))

# JSON-lines checkout events
CHECKOUT_LOG_PATH = Path(os.environ.get("RETAIL_POS_CHECKOUT_LOG", LOG_PATH / CHECKOUT_LOG_FILE))
