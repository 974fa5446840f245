"""Runtime settings for bookshop.

Every value can be overridden through an environment variable of the same
name prefixed with ``BOOKSHOP_``.
"""

import logging
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Auth tokens
JWT_SECRET = os.environ.get("BOOKSHOP_JWT_SECRET", "dev-secret-change")
JWT_ALGORITHM = os.environ.get("BOOKSHOP_JWT_ALGORITHM", "HS256")
TOKEN_EXPIRE_MINUTES = int(os.environ.get("BOOKSHOP_TOKEN_EXPIRE_MINUTES", "60"))
AUTH_COOKIE_NAME = "AuthToken"

# Orders stay reserved this long while waiting for payment
ORDER_EXPIRATION_MINUTES = int(os.environ.get("BOOKSHOP_ORDER_EXPIRATION_MINUTES", "15"))

# Simulated gateway round trip, in seconds
PAYMENT_LATENCY = float(os.environ.get("BOOKSHOP_PAYMENT_LATENCY", "0.1"))

# Load the demo catalog, users, coupons and payment methods on startup
SEED_DEMO_DATA = _env_bool("BOOKSHOP_SEED", True)

LOG_LEVEL = os.environ.get("BOOKSHOP_LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "BOOKSHOP_CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173,http://127.0.0.1:3000",
    ).split(",")
    if origin.strip()
]


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the server process."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
