# config.py
import os
from pathlib import Path

BASE_DIR = Path(__file__).parent

# Environment
ENV = os.environ.get("KTX_ENV", "development")
DEBUG = ENV == "development"

# SQLite by default (ktx.db in the same folder)
DATABASE_URL = os.environ.get("KTX_DATABASE_URL") or f"sqlite:///{BASE_DIR / 'ktx.db'}"
SQL_ECHO = os.environ.get("KTX_SQL_ECHO", "0") == "1"

HOST = os.environ.get("KTX_HOST", "0.0.0.0")
PORT = int(os.environ.get("KTX_PORT", 8000))

LOG_LEVEL = os.environ.get("KTX_LOG_LEVEL", "DEBUG" if DEBUG else "INFO")

# Admin sign-in
ADMIN_EMAIL = os.environ.get("KTX_ADMIN_EMAIL", "admin@ktx.local")
ADMIN_PASSWORD = os.environ.get("KTX_ADMIN_PASSWORD")  # falls back to settings.adminPassword

# Settings row (single record, fixed id)
SETTINGS_ID = 1
DEFAULT_SETTINGS = {
    "siteName": "KTX",
    "roomGridCols": 3,
    "adminPassword": "123456",
    "about": {
        "companyName": "Ký túc xá",
        "address": "",
        "hotline": "0343.751.753",
        "email": "",
        "website": "",
        "mapUrl": "",
        "workingHours": "",
        "services": [],
        "rules": "",
        "bankInfo": "",
        "description": "",
        "adminNotice": "",
    },
}
ROOM_GRID_COLS_RANGE = (2, 4)

# Structure
FLOOR_NAME_PREFIX = "Floor"
MAX_FLOORS = 100
MAX_ROOMS_PER_FLOOR = 300
ROOM_INSERT_BATCH = 500

# Views
NO_RECRUITER_LABEL = "(none)"
HISTORY_LIMIT = 10

# Export
EXPORT_FILENAME_PATTERN = "KTX_{date}.xlsx"
