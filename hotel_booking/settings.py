import os
from decimal import Decimal

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
users_ms_url = os.environ.get("USERS_MS_URL", "http://localhost:8000")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

DEPOSIT_RATE = Decimal(os.environ.get("DEPOSIT_RATE", "0.3"))
SCHEDULE_CACHE_TTL = int(os.environ.get("SCHEDULE_CACHE_TTL", "60"))
CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",")
    if o.strip()
]
GENERATE_SCHEMAS = os.environ.get("GENERATE_SCHEMAS", "true").lower() == "true"
