"""
db/init_db.py
-------------
Creates the database schema (tables) if they do not already exist,
and seeds the single settings row from the environment defaults.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

from config import (
    BUYER_DISCOUNT_PERCENTAGE,
    MIN_WITHDRAWAL_AMOUNT,
    PLATFORM_FEE_PERCENTAGE,
    REFERRER_COMMISSION_PERCENTAGE,
)
from db.connection import get_connection, release_connection
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Users: everyone who has started the bot
CREATE TABLE IF NOT EXISTS users (
    telegram_id          BIGINT PRIMARY KEY,
    first_name           VARCHAR(100),
    last_name            VARCHAR(100),
    username             VARCHAR(64),
    coin_balance         NUMERIC(12,2) NOT NULL DEFAULT 0 CHECK (coin_balance >= 0),
    referral_balance     NUMERIC(12,2) NOT NULL DEFAULT 0 CHECK (referral_balance >= 0),
    is_admin             BOOLEAN NOT NULL DEFAULT FALSE,
    can_register_company BOOLEAN NOT NULL DEFAULT FALSE,
    banned               BOOLEAN NOT NULL DEFAULT FALSE,
    created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_active          TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Companies: one owner each, billing balance accumulates seller earnings
CREATE TABLE IF NOT EXISTS companies (
    id               SERIAL PRIMARY KEY,
    owner_id         BIGINT NOT NULL REFERENCES users(telegram_id),
    name             VARCHAR(120) NOT NULL,
    description      TEXT,
    email            VARCHAR(200),
    code_prefix      CHAR(2) UNIQUE NOT NULL,
    billing_balance  NUMERIC(12,2) NOT NULL DEFAULT 0 CHECK (billing_balance >= 0),
    status           VARCHAR(20) NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'suspended')),
    created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS user_companies (
    user_id     BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
    company_id  INT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    joined_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, company_id)
);

-- Products listed by companies
CREATE TABLE IF NOT EXISTS products (
    id           SERIAL PRIMARY KEY,
    company_id   INT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    title        VARCHAR(200) NOT NULL,
    description  TEXT,
    price        NUMERIC(12,2) NOT NULL CHECK (price > 0),
    quantity     INT NOT NULL DEFAULT 0 CHECK (quantity >= 0),
    status       VARCHAR(20) NOT NULL DEFAULT 'instock' CHECK (status IN ('instock', 'lowstock', 'outofstock')),
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (company_id, title)
);

CREATE TABLE IF NOT EXISTS favorites (
    user_id     BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
    product_id  INT NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    added_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, product_id)
);

CREATE TABLE IF NOT EXISTS cart_items (
    user_id     BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
    product_id  INT NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    added_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, product_id)
);

-- Single-use referral codes, one owner and one company each
CREATE TABLE IF NOT EXISTS referral_codes (
    id          SERIAL PRIMARY KEY,
    code        VARCHAR(20) UNIQUE NOT NULL,
    user_id     BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
    company_id  INT NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    active      BOOLEAN NOT NULL DEFAULT TRUE,
    used_by     BIGINT,
    used_at     TIMESTAMPTZ,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Sales recorded by company owners; sale_key makes recording idempotent
CREATE TABLE IF NOT EXISTS sales (
    id               SERIAL PRIMARY KEY,
    sale_key         VARCHAR(64) UNIQUE NOT NULL,
    product_id       INT REFERENCES products(id) ON DELETE SET NULL,
    company_id       INT NOT NULL REFERENCES companies(id),
    seller_id        BIGINT NOT NULL,
    buyer_id         BIGINT NOT NULL,
    quantity         INT NOT NULL CHECK (quantity > 0),
    unit_price       NUMERIC(12,2) NOT NULL,
    amount           NUMERIC(12,2) NOT NULL,
    platform_fee     NUMERIC(12,2) NOT NULL,
    referrer_bonus   NUMERIC(12,2) NOT NULL DEFAULT 0,
    buyer_bonus      NUMERIC(12,2) NOT NULL DEFAULT 0,
    seller_earnings  NUMERIC(12,2) NOT NULL,
    referral_code    VARCHAR(20),
    referrer_id      BIGINT,
    created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (seller_earnings + platform_fee + referrer_bonus + buyer_bonus = amount)
);

-- Historical record of each redeemed referral code
CREATE TABLE IF NOT EXISTS referrals (
    id                SERIAL PRIMARY KEY,
    referral_code_id  INT NOT NULL REFERENCES referral_codes(id),
    code              VARCHAR(20) NOT NULL,
    referrer_id       BIGINT NOT NULL,
    buyer_id          BIGINT NOT NULL,
    company_id        INT NOT NULL REFERENCES companies(id),
    product_id        INT,
    sale_id           INT REFERENCES sales(id),
    amount            NUMERIC(12,2) NOT NULL,
    commission        NUMERIC(12,2) NOT NULL,
    created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Referral payouts (user <- company) and billing withdrawals (company <- platform)
CREATE TABLE IF NOT EXISTS withdrawals (
    id             SERIAL PRIMARY KEY,
    kind           VARCHAR(10) NOT NULL CHECK (kind IN ('referral', 'billing')),
    user_id        BIGINT NOT NULL,
    company_id     INT NOT NULL REFERENCES companies(id),
    amount         NUMERIC(12,2) NOT NULL CHECK (amount > 0),
    reason         TEXT,
    status         VARCHAR(20) NOT NULL DEFAULT 'company_pending'
                   CHECK (status IN ('company_pending', 'approved', 'declined', 'processed')),
    decided_by     BIGINT,
    decided_at     TIMESTAMPTZ,
    denial_reason  TEXT,
    processed_by   BIGINT,
    processed_at   TIMESTAMPTZ,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Platform-wide settings: exactly one row with id = 1
CREATE TABLE IF NOT EXISTS settings (
    id                           INT PRIMARY KEY DEFAULT 1 CHECK (id = 1),
    platform_fee_percent         NUMERIC(5,2) NOT NULL,
    referral_commission_percent  NUMERIC(5,2) NOT NULL,
    buyer_discount_percent       NUMERIC(5,2) NOT NULL,
    min_withdrawal_amount        NUMERIC(12,2) NOT NULL,
    maintenance_mode             BOOLEAN NOT NULL DEFAULT FALSE,
    platform_balance             NUMERIC(14,2) NOT NULL DEFAULT 0,
    updated_at                   TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Indexes for faster queries
CREATE UNIQUE INDEX IF NOT EXISTS idx_users_username ON users(username) WHERE username IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_companies_owner ON companies(owner_id);
CREATE INDEX IF NOT EXISTS idx_products_company ON products(company_id);
CREATE INDEX IF NOT EXISTS idx_referral_codes_user ON referral_codes(user_id);
CREATE INDEX IF NOT EXISTS idx_referrals_referrer ON referrals(referrer_id, company_id);
CREATE INDEX IF NOT EXISTS idx_sales_created ON sales(created_at);
CREATE INDEX IF NOT EXISTS idx_withdrawals_pending ON withdrawals(company_id) WHERE status = 'company_pending';
"""

SEED_SETTINGS_SQL = """
INSERT INTO settings (id, platform_fee_percent, referral_commission_percent,
                      buyer_discount_percent, min_withdrawal_amount)
VALUES (1, %s, %s, %s, %s)
ON CONFLICT (id) DO NOTHING;
"""


def create_tables() -> None:
    """
    Execute the schema SQL to create all tables and seed settings.
    Safe to call multiple times (uses IF NOT EXISTS / ON CONFLICT).
    """
    conn = get_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
            cur.execute(SEED_SETTINGS_SQL, (
                PLATFORM_FEE_PERCENTAGE,
                REFERRER_COMMISSION_PERCENTAGE,
                BUYER_DISCOUNT_PERCENTAGE,
                MIN_WITHDRAWAL_AMOUNT,
            ))
        conn.commit()
        logger.info("Database schema initialized successfully.")
    except Exception as e:
        conn.rollback()
        logger.error(f"Failed to initialize schema: {e}")
        raise
    finally:
        release_connection(conn)


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("✅ Database schema created successfully.")
