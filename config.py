"""
Configuration settings for GeoTag Pro
Photo geotagging with a freemium download quota.

Organized into logical sections:
1. Core Settings (paths, directories)
2. Database & Sessions
3. Download Quota
4. Usage Counter Backend & Reconciliation
5. Subscriptions (UPI, friend codes)
6. Server & Logging
"""
import os
from pathlib import Path

# ============================================
# CORE SETTINGS
# ============================================

# Base directory
BASE_DIR = Path(__file__).parent

# Directory structure
DATA_DIR = Path(os.getenv("GEOTAG_DATA_DIR", str(BASE_DIR / "data")))
LEDGER_DIR = DATA_DIR / "ledgers"  # One JSON file per browser profile
LOGS_DIR = BASE_DIR / "logs"

# ============================================
# DATABASE & SESSIONS
# ============================================

SQLALCHEMY_DATABASE_URI = os.getenv(
    "DATABASE_URL",
    "sqlite:///" + str(DATA_DIR / "geotag.db")
)
SQLALCHEMY_TRACK_MODIFICATIONS = False
SECRET_KEY = os.getenv("SECRET_KEY", "geotag-dev-secret-change-me")

# Cookie carrying the browser profile key when the header is absent
PROFILE_HEADER = "X-Profile-Id"
PROFILE_COOKIE = "profile_id"

# ============================================
# DOWNLOAD QUOTA
# ============================================

ANONYMOUS_IMAGE_LIMIT = int(os.getenv("ANONYMOUS_IMAGE_LIMIT", "1"))
FREE_IMAGE_LIMIT = int(os.getenv("FREE_IMAGE_LIMIT", "15"))

# Remaining count at or below which the UI shows a "running low" warning
LOW_REMAINING_THRESHOLD = 3

# ============================================
# USAGE COUNTER BACKEND & RECONCILIATION
# ============================================

# Where the authoritative per-user counter lives: sql | rest
COUNTER_BACKEND = os.getenv("COUNTER_BACKEND", "sql")

# Hosted Postgres REST endpoint (used when COUNTER_BACKEND=rest)
BAAS_URL = os.getenv("BAAS_URL", "")
BAAS_ANON_KEY = os.getenv("BAAS_ANON_KEY", "")
# Service-role key sent as the bearer token; row-level security on user_usage
# refuses the anon key alone
BAAS_SERVICE_KEY = os.getenv("BAAS_SERVICE_KEY", "")
BAAS_USAGE_TABLE = os.getenv("BAAS_USAGE_TABLE", "user_usage")

SYNC_TIMEOUT_SECONDS = float(os.getenv("SYNC_TIMEOUT_SECONDS", "10"))
SYNC_WORKERS = int(os.getenv("SYNC_WORKERS", "2"))
RECONCILE_MAX_ATTEMPTS = int(os.getenv("RECONCILE_MAX_ATTEMPTS", "3"))

# ============================================
# SUBSCRIPTIONS
# ============================================

UPI_ID = os.getenv("UPI_ID", "geotagpro@okaxis")
UPI_PAYEE_NAME = os.getenv("UPI_PAYEE_NAME", "GeoTag Pro")
MONTHLY_PRICE_INR = int(os.getenv("MONTHLY_PRICE_INR", "99"))
YEARLY_PRICE_INR = int(os.getenv("YEARLY_PRICE_INR", "999"))

PLAN_DURATION_DAYS = {
    "monthly": 30,
    "yearly": 365,
}

FRIEND_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # No look-alike characters
FRIEND_CODE_FORMAT = "XXXX-XXXX"
FRIEND_CODE_MAX_BATCH = 50

# ============================================
# SERVER & LOGGING
# ============================================

# Server configuration
HOST = os.getenv("FLASK_HOST", "0.0.0.0")  # Use 0.0.0.0 for Docker, 127.0.0.1 for local
PORT = int(os.getenv("FLASK_PORT", "5000"))
DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()  # DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_ENABLED = os.getenv("LOG_FILE_ENABLED", "false").lower() == "true"

# ============================================
# INITIALIZATION
# ============================================

# Create required directories
for directory in [
    DATA_DIR,
    LEDGER_DIR,
    LOGS_DIR,
]:
    directory.mkdir(parents=True, exist_ok=True)

# Setup logging
import logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format=LOG_FORMAT,
    handlers=[
        logging.StreamHandler(),
        *([logging.FileHandler(LOGS_DIR / "geotag.log")] if LOG_FILE_ENABLED else [])
    ]
)
