"""
repositories/ledger_repo.py
----------------------------
Transactional access for every operation that moves money.

A sale or a withdrawal decision touches several rows (product stock,
user balances, company billing balance, platform balance, referral code,
sale and withdrawal records). LedgerRepository.transaction() hands out a
LedgerTransaction bound to one database transaction: rows are locked with
SELECT ... FOR UPDATE, and either every write commits or none does.

Usage:
    with ledger.transaction() as tx:
        product = tx.lock_product(product_id)
        ...
        tx.insert_sale(sale)
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional

from db.connection import transaction
from models.company import Company
from models.product import Product, STATUS_OUT_OF_STOCK
from models.referral import Referral, ReferralCode
from models.sale import Sale
from models.settings import PlatformSettings
from models.user import User
from models.withdrawal import Withdrawal
from repositories.company_repo import COMPANY_COLUMNS, CompanyRepository
from repositories.product_repo import PRODUCT_COLUMNS, ProductRepository
from repositories.referral_repo import CODE_COLUMNS, ReferralRepository
from repositories.sale_repo import SALE_COLUMNS, SaleRepository
from repositories.settings_repo import SETTINGS_COLUMNS, SettingsRepository
from repositories.user_repo import USER_COLUMNS, UserRepository
from repositories.withdrawal_repo import WITHDRAWAL_COLUMNS, WithdrawalRepository
from utils.logger import get_logger

logger = get_logger(__name__)

_USER_BALANCES = ("coin_balance", "referral_balance")


class LedgerTransaction:
    """Locked reads and writes sharing one cursor, hence one transaction."""

    def __init__(self, cur):
        self.cur = cur

    # ── SALES ─────────────────────────────────────────────

    def find_sale(self, sale_key: str) -> Optional[Sale]:
        self.cur.execute(f"SELECT {SALE_COLUMNS} FROM sales WHERE sale_key = %s;", (sale_key,))
        row = self.cur.fetchone()
        return SaleRepository._row_to_sale(row) if row else None

    def insert_sale(self, sale: Sale) -> Sale:
        self.cur.execute(
            """
            INSERT INTO sales (sale_key, product_id, company_id, seller_id, buyer_id,
                               quantity, unit_price, amount, platform_fee, referrer_bonus,
                               buyer_bonus, seller_earnings, referral_code, referrer_id)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id, created_at;
            """,
            (
                sale.sale_key, sale.product_id, sale.company_id, sale.seller_id,
                sale.buyer_id, sale.quantity, sale.unit_price, sale.amount,
                sale.platform_fee, sale.referrer_bonus, sale.buyer_bonus,
                sale.seller_earnings, sale.referral_code, sale.referrer_id,
            ),
        )
        sale.id, sale.created_at = self.cur.fetchone()
        return sale

    # ── PRODUCTS / COMPANIES ──────────────────────────────

    def lock_product(self, product_id: int) -> Optional[Product]:
        self.cur.execute(
            f"""
            SELECT {PRODUCT_COLUMNS}
            FROM products p JOIN companies c ON c.id = p.company_id
            WHERE p.id = %s
            FOR UPDATE OF p;
            """,
            (product_id,),
        )
        row = self.cur.fetchone()
        return ProductRepository._row_to_product(row) if row else None

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        """
        Take `quantity` units out of stock. A product that reaches zero
        becomes 'outofstock'.

        Returns:
            The remaining quantity.
        """
        self.cur.execute(
            """
            UPDATE products
            SET quantity = quantity - %s,
                status = CASE WHEN quantity - %s = 0 THEN %s ELSE status END
            WHERE id = %s
            RETURNING quantity;
            """,
            (quantity, quantity, STATUS_OUT_OF_STOCK, product_id),
        )
        return self.cur.fetchone()[0]

    def lock_company(self, company_id: int) -> Optional[Company]:
        self.cur.execute(
            f"SELECT {COMPANY_COLUMNS} FROM companies WHERE id = %s FOR UPDATE;",
            (company_id,),
        )
        row = self.cur.fetchone()
        return CompanyRepository._row_to_company(row) if row else None

    def credit_company(self, company_id: int, amount: Decimal) -> Decimal:
        self.cur.execute(
            "UPDATE companies SET billing_balance = billing_balance + %s WHERE id = %s RETURNING billing_balance;",
            (amount, company_id),
        )
        return self.cur.fetchone()[0]

    def debit_company(self, company_id: int, amount: Decimal) -> Decimal:
        self.cur.execute(
            "UPDATE companies SET billing_balance = billing_balance - %s WHERE id = %s RETURNING billing_balance;",
            (amount, company_id),
        )
        return self.cur.fetchone()[0]

    # ── SETTINGS / PLATFORM ───────────────────────────────

    def load_settings(self, lock: bool = False) -> PlatformSettings:
        sql = f"SELECT {SETTINGS_COLUMNS} FROM settings WHERE id = 1"
        if lock:
            sql += " FOR UPDATE"
        self.cur.execute(sql + ";")
        row = self.cur.fetchone()
        if not row:
            raise RuntimeError("Settings row missing. Run `python -m db.init_db` first.")
        return SettingsRepository._row_to_settings(row)

    def credit_platform(self, amount: Decimal) -> Decimal:
        self.cur.execute(
            "UPDATE settings SET platform_balance = platform_balance + %s WHERE id = 1 RETURNING platform_balance;",
            (amount,),
        )
        return self.cur.fetchone()[0]

    # ── USERS ─────────────────────────────────────────────

    def lock_user(self, telegram_id: int) -> Optional[User]:
        self.cur.execute(
            f"SELECT {USER_COLUMNS} FROM users WHERE telegram_id = %s FOR UPDATE;",
            (telegram_id,),
        )
        row = self.cur.fetchone()
        return UserRepository._row_to_user(row) if row else None

    def credit_user(self, telegram_id: int, balance: str, amount: Decimal) -> Decimal:
        """Add `amount` to 'coin_balance' or 'referral_balance'; returns the new balance."""
        return self._adjust_user(telegram_id, balance, amount)

    def debit_user(self, telegram_id: int, balance: str, amount: Decimal) -> Decimal:
        return self._adjust_user(telegram_id, balance, -amount)

    def _adjust_user(self, telegram_id: int, balance: str, delta: Decimal) -> Decimal:
        if balance not in _USER_BALANCES:
            raise ValueError(f"Unknown balance '{balance}'")
        self.cur.execute(
            f"UPDATE users SET {balance} = {balance} + %s WHERE telegram_id = %s RETURNING {balance};",
            (delta, telegram_id),
        )
        return self.cur.fetchone()[0]

    # ── REFERRALS ─────────────────────────────────────────

    def lock_referral_code(self, code: str) -> Optional[ReferralCode]:
        self.cur.execute(
            f"""
            SELECT {CODE_COLUMNS}
            FROM referral_codes rc JOIN companies c ON c.id = rc.company_id
            WHERE rc.code = %s
            FOR UPDATE OF rc;
            """,
            (code,),
        )
        row = self.cur.fetchone()
        return ReferralRepository._row_to_code(row) if row else None

    def mark_code_used(self, code_id: int, buyer_id: int) -> None:
        self.cur.execute(
            "UPDATE referral_codes SET active = FALSE, used_by = %s, used_at = NOW() WHERE id = %s;",
            (buyer_id, code_id),
        )

    def insert_referral(self, referral: Referral) -> Referral:
        self.cur.execute(
            """
            INSERT INTO referrals (referral_code_id, code, referrer_id, buyer_id, company_id,
                                   product_id, sale_id, amount, commission)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id, created_at;
            """,
            (
                referral.referral_code_id, referral.code, referral.referrer_id,
                referral.buyer_id, referral.company_id, referral.product_id,
                referral.sale_id, referral.amount, referral.commission,
            ),
        )
        referral.id, referral.created_at = self.cur.fetchone()
        return referral

    def referral_earnings(self, telegram_id: int, company_id: int) -> Decimal:
        self.cur.execute(
            "SELECT COALESCE(SUM(commission), 0) FROM referrals WHERE referrer_id = %s AND company_id = %s;",
            (telegram_id, company_id),
        )
        return self.cur.fetchone()[0]

    # ── WITHDRAWALS ───────────────────────────────────────

    def reserved_referral_withdrawals(self, telegram_id: int, company_id: int) -> Decimal:
        """Sum of a referrer's pending or approved payouts from one company."""
        self.cur.execute(
            """
            SELECT COALESCE(SUM(amount), 0) FROM withdrawals
            WHERE kind = 'referral' AND user_id = %s AND company_id = %s
              AND status IN ('company_pending', 'approved');
            """,
            (telegram_id, company_id),
        )
        return self.cur.fetchone()[0]

    def pending_billing_withdrawals(self, company_id: int) -> Decimal:
        """Billing withdrawals requested but not yet paid out (pending or approved)."""
        self.cur.execute(
            """
            SELECT COALESCE(SUM(amount), 0) FROM withdrawals
            WHERE kind = 'billing' AND company_id = %s
              AND status IN ('company_pending', 'approved');
            """,
            (company_id,),
        )
        return self.cur.fetchone()[0]

    def insert_withdrawal(self, withdrawal: Withdrawal) -> Withdrawal:
        self.cur.execute(
            """
            INSERT INTO withdrawals (kind, user_id, company_id, amount, reason, status)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id, created_at;
            """,
            (
                withdrawal.kind, withdrawal.user_id, withdrawal.company_id,
                withdrawal.amount, withdrawal.reason, withdrawal.status,
            ),
        )
        withdrawal.id, withdrawal.created_at = self.cur.fetchone()
        return withdrawal

    def lock_withdrawal(self, withdrawal_id: int) -> Optional[Withdrawal]:
        self.cur.execute(
            f"""
            SELECT {WITHDRAWAL_COLUMNS}
            FROM withdrawals w JOIN companies c ON c.id = w.company_id
            WHERE w.id = %s
            FOR UPDATE OF w;
            """,
            (withdrawal_id,),
        )
        row = self.cur.fetchone()
        return WithdrawalRepository._row_to_withdrawal(row) if row else None

    def update_withdrawal(self, withdrawal: Withdrawal) -> None:
        """Persist the status and decision fields of a locked withdrawal."""
        self.cur.execute(
            """
            UPDATE withdrawals
            SET status = %s, decided_by = %s, decided_at = %s, denial_reason = %s,
                processed_by = %s, processed_at = %s
            WHERE id = %s;
            """,
            (
                withdrawal.status, withdrawal.decided_by, withdrawal.decided_at,
                withdrawal.denial_reason, withdrawal.processed_by,
                withdrawal.processed_at, withdrawal.id,
            ),
        )

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)


class LedgerRepository:
    """Opens ledger transactions on the shared connection pool."""

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        with transaction() as cur:
            yield LedgerTransaction(cur)
