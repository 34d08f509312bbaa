"""
config.py
---------
Central configuration module. Loads all environment variables
from the .env file and exposes them as typed constants.
"""

import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


# ── Runtime ───────────────────────────────────────────────
APP_ENV: str = os.getenv("APP_ENV", os.getenv("NODE_ENV", "development"))
IS_PRODUCTION: bool = APP_ENV == "production"

# ── Telegram ──────────────────────────────────────────────
BOT_TOKEN: str = os.getenv("BOT_TOKEN", "")

# Webhook mode is used when WEBHOOK_URL is set, long polling otherwise.
WEBHOOK_URL: str = os.getenv("WEBHOOK_URL", "").rstrip("/")
WEBHOOK_PATH: str = "webhook"
WEBHOOK_PORT: int = int(os.getenv("WEBHOOK_PORT", os.getenv("PORT", "8443")))
WEBHOOK_SECRET: str = os.getenv("WEBHOOK_SECRET", "")

# ── PostgreSQL ────────────────────────────────────────────
DB_HOST: str = os.getenv("DB_HOST", "localhost")
DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
DB_NAME: str = os.getenv("DB_NAME", "referral_bot")
DB_USER: str = os.getenv("DB_USER", "referral_bot")
DB_PASS: str = os.getenv("DB_PASS", "")

DATABASE_URL: str = os.getenv(
    "DATABASE_URL",
    f"postgresql://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

# ── Admins ────────────────────────────────────────────────
_raw_ids = os.getenv("ADMIN_IDS", "")
ADMIN_IDS: list[int] = (
    [int(uid.strip()) for uid in _raw_ids.split(",") if uid.strip()]
    if _raw_ids
    else []
)

# ── Marketplace defaults ──────────────────────────────────
# Seed values for the settings row; admins change them at runtime.
PLATFORM_FEE_PERCENTAGE: Decimal = Decimal(os.getenv("PLATFORM_FEE_PERCENTAGE", "1.5"))
REFERRER_COMMISSION_PERCENTAGE: Decimal = Decimal(os.getenv("REFERRER_COMMISSION_PERCENTAGE", "2.5"))
BUYER_DISCOUNT_PERCENTAGE: Decimal = Decimal(os.getenv("BUYER_DISCOUNT_PERCENTAGE", "1"))
MIN_WITHDRAWAL_AMOUNT: Decimal = Decimal(os.getenv("MIN_WITHDRAWAL_AMOUNT", "10"))
MIN_PAYOUT_AMOUNT: Decimal = Decimal(os.getenv("MIN_PAYOUT_AMOUNT", "10"))

# ── Rate Limiting ─────────────────────────────────────────
RATE_LIMIT_MESSAGES: int = int(os.getenv("RATE_LIMIT_MESSAGES", "30"))
RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# ── Display ───────────────────────────────────────────────
CURRENCY_SYMBOL: str = "$"
PRODUCTS_PER_PAGE: int = 5
