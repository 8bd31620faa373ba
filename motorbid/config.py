# motorbid/config.py
"""Runtime settings read from the environment (and an optional `.env` file)."""
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./motorbid.db")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", 5))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", 10))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

SECRET_KEY = os.getenv("SECRET_KEY", "change-this-session-secret")
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", "")
SUPABASE_JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")
SECURE_COOKIES = os.getenv("SECURE_COOKIES", "0") == "1"

WORLDID_APP_ID = os.getenv("WORLDID_APP_ID", "")
WORLDID_ACTION = os.getenv("WORLDID_ACTION", "verify-seller")
WORLDID_API_URL = os.getenv("WORLDID_API_URL", "https://developer.worldcoin.org")
WORLDID_TIMEOUT = float(os.getenv("WORLDID_TIMEOUT", "10"))
# one week
VERIFICATION_MAX_AGE = int(os.getenv("VERIFICATION_MAX_AGE", 60 * 60 * 24 * 7))

INVENTORY_API_URL = os.getenv("INVENTORY_API_URL", "https://car-auction-api.onrender.com/api/carros")
INVENTORY_TIMEOUT = float(os.getenv("INVENTORY_TIMEOUT", "15"))

DEFAULT_MIN_BID_INCREMENT = int(os.getenv("DEFAULT_MIN_BID_INCREMENT", 100))
DEFAULT_AUCTION_DAYS = int(os.getenv("DEFAULT_AUCTION_DAYS", 7))

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "0") == "1"
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", 60))

ADMIN_USER_IDS = frozenset(u.strip() for u in os.getenv("ADMIN_USER_IDS", "").split(",") if u.strip())
