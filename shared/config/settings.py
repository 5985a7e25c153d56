import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# --- Database ---
DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost") # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5433")
DB_NAME = os.getenv("POSTGRES_DB", "auction_commerce")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
SQL_ECHO = _flag("SQL_ECHO", "false")

# --- Auth ---
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "")

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", "http://localhost:8000/auth/google/callback")

# --- Rate limiting ---
RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
BID_RATE_LIMIT = os.getenv("BID_RATE_LIMIT", "30/minute")
LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "10/minute")

# --- Payment gateway ---
PAYMENT_GATEWAY_BASE_URL = os.getenv("PAYMENT_GATEWAY_BASE_URL", "https://apitest.myfatoorah.com")
PAYMENT_GATEWAY_API_KEY = os.getenv("PAYMENT_GATEWAY_API_KEY", "")
PAYMENT_GATEWAY_TIMEOUT = float(os.getenv("PAYMENT_GATEWAY_TIMEOUT", "15.0"))
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "SAR")
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:8000")

# --- Catalog ---
PRODUCTS_PER_PAGE = int(os.getenv("PRODUCTS_PER_PAGE", "15"))

# --- Auction sweep ---
AUCTION_SCHEDULER_ENABLED = _flag("AUCTION_SCHEDULER_ENABLED", "false")
AUCTION_SWEEP_INTERVAL_SECONDS = int(os.getenv("AUCTION_SWEEP_INTERVAL_SECONDS", "60"))
AUCTION_SWEEP_CONCURRENCY = int(os.getenv("AUCTION_SWEEP_CONCURRENCY", "4"))

# --- Observability ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
TRACING_ENABLED = _flag("TRACING_ENABLED", "true")
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
