"""
repositories/user_repo.py
--------------------------
Data access layer for user records, plus the per-user favorites,
cart and joined-company lists.
"""

from typing import Optional

from db.connection import get_connection, release_connection
from models.product import Product
from models.user import User
from repositories.product_repo import PRODUCT_COLUMNS, ProductRepository
from utils.logger import get_logger

logger = get_logger(__name__)

USER_COLUMNS = """
    telegram_id, first_name, last_name, username, coin_balance,
    referral_balance, is_admin, can_register_company, banned,
    created_at, last_active
"""


class UserRepository:
    """Repository for CRUD operations on the users table."""

    def ensure_user(
        self,
        telegram_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> User:
        """
        Insert a user if they don't exist, or refresh their profile fields.
        Uses PostgreSQL's ON CONFLICT (upsert) for atomicity.

        A username moves with its Telegram owner: if another row still holds
        it (the name was given up and re-registered), that row is cleared.

        Returns:
            The stored User.
        """
        username = username.lower() if username else None
        sql = f"""
            INSERT INTO users (telegram_id, first_name, last_name, username)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (telegram_id) DO UPDATE
            SET first_name = EXCLUDED.first_name,
                last_name = EXCLUDED.last_name,
                username = EXCLUDED.username,
                last_active = NOW()
            RETURNING {USER_COLUMNS};
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                if username:
                    cur.execute(
                        "UPDATE users SET username = NULL WHERE username = %s AND telegram_id <> %s;",
                        (username, telegram_id),
                    )
                cur.execute(sql, (telegram_id, first_name, last_name, username))
                row = cur.fetchone()
            conn.commit()
            return self._row_to_user(row)
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to ensure user {telegram_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def get(self, telegram_id: int) -> Optional[User]:
        sql = f"SELECT {USER_COLUMNS} FROM users WHERE telegram_id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (telegram_id,))
                row = cur.fetchone()
                return self._row_to_user(row) if row else None
        finally:
            release_connection(conn)

    def get_by_username(self, username: str) -> Optional[User]:
        """Look up a user by Telegram username, with or without the leading @."""
        sql = f"SELECT {USER_COLUMNS} FROM users WHERE username = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (username.lstrip("@").lower(),))
                row = cur.fetchone()
                return self._row_to_user(row) if row else None
        finally:
            release_connection(conn)

    def list_all(self) -> list[User]:
        sql = f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                return [self._row_to_user(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def list_page(self, offset: int, limit: int) -> list[User]:
        sql = f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at DESC, telegram_id LIMIT %s OFFSET %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (limit, offset))
                return [self._row_to_user(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def search(self, query: str, limit: int = 10) -> list[User]:
        """
        Users whose ID equals the query, or whose username or name contains it.
        """
        query = query.strip().lstrip("@")
        pattern = f"%{query}%"
        user_id = int(query) if query.isdigit() and len(query) <= 18 else None
        sql = f"""
            SELECT {USER_COLUMNS} FROM users
            WHERE telegram_id = %s
               OR username ILIKE %s
               OR first_name ILIKE %s
               OR last_name ILIKE %s
            ORDER BY telegram_id = %s DESC, created_at DESC
            LIMIT %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (user_id, pattern, pattern, pattern, user_id, limit))
                return [self._row_to_user(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def list_active_ids(self) -> list[int]:
        """Telegram IDs of every user who is not banned (broadcast targets)."""
        sql = "SELECT telegram_id FROM users WHERE NOT banned ORDER BY telegram_id;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                return [r[0] for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def list_admin_ids(self) -> list[int]:
        sql = "SELECT telegram_id FROM users WHERE is_admin AND NOT banned;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                return [r[0] for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def counts(self) -> dict:
        """
        Returns:
            Dict with keys 'total', 'banned', 'new_today'.
        """
        sql = """
            SELECT COUNT(*),
                   COUNT(*) FILTER (WHERE banned),
                   COUNT(*) FILTER (WHERE created_at >= CURRENT_DATE)
            FROM users;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                row = cur.fetchone()
                return {"total": row[0], "banned": row[1], "new_today": row[2]}
        finally:
            release_connection(conn)

    # ── FLAGS ─────────────────────────────────────────────

    def set_flag(self, telegram_id: int, flag: str, value: bool) -> bool:
        """
        Set one of the boolean role columns.

        Args:
            flag: 'banned', 'is_admin' or 'can_register_company'.

        Returns:
            True if the user exists and was updated.
        """
        if flag not in ("banned", "is_admin", "can_register_company"):
            raise ValueError(f"Unknown user flag '{flag}'")
        sql = f"UPDATE users SET {flag} = %s WHERE telegram_id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (value, telegram_id))
                updated = cur.rowcount > 0
            conn.commit()
            return updated
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to set {flag}={value} for user {telegram_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── JOINED COMPANIES ──────────────────────────────────

    def join_company(self, telegram_id: int, company_id: int) -> None:
        sql = """
            INSERT INTO user_companies (user_id, company_id)
            VALUES (%s, %s)
            ON CONFLICT DO NOTHING;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (telegram_id, company_id))
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to join user {telegram_id} to company {company_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def joined_company_count(self, telegram_id: int) -> int:
        sql = "SELECT COUNT(*) FROM user_companies WHERE user_id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (telegram_id,))
                return cur.fetchone()[0]
        finally:
            release_connection(conn)

    # ── FAVORITES / CART ──────────────────────────────────

    def add_item(self, table: str, telegram_id: int, product_id: int) -> bool:
        """
        Add a product to the user's favorites or cart.

        Returns:
            False if it was already there.
        """
        self._check_list_table(table)
        sql = f"INSERT INTO {table} (user_id, product_id) VALUES (%s, %s) ON CONFLICT DO NOTHING;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (telegram_id, product_id))
                added = cur.rowcount > 0
            conn.commit()
            return added
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to add product {product_id} to {table} of {telegram_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def remove_item(self, table: str, telegram_id: int, product_id: Optional[int] = None) -> int:
        """Remove one product, or every product when product_id is None."""
        self._check_list_table(table)
        sql = f"DELETE FROM {table} WHERE user_id = %s"
        params: list = [telegram_id]
        if product_id is not None:
            sql += " AND product_id = %s"
            params.append(product_id)
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql + ";", params)
                removed = cur.rowcount
            conn.commit()
            return removed
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to remove from {table} of {telegram_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def list_items(self, table: str, telegram_id: int) -> list[Product]:
        self._check_list_table(table)
        sql = f"""
            SELECT {PRODUCT_COLUMNS}
            FROM {table} l
            JOIN products p ON p.id = l.product_id
            JOIN companies c ON c.id = p.company_id
            WHERE l.user_id = %s
            ORDER BY l.added_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (telegram_id,))
                return [ProductRepository._row_to_product(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _check_list_table(table: str) -> None:
        if table not in ("favorites", "cart_items"):
            raise ValueError(f"Unknown user list '{table}'")

    @staticmethod
    def _row_to_user(row: tuple) -> User:
        """Convert a USER_COLUMNS row tuple to a User domain object."""
        return User(
            telegram_id=row[0],
            first_name=row[1],
            last_name=row[2],
            username=row[3],
            coin_balance=row[4],
            referral_balance=row[5],
            is_admin=row[6],
            can_register_company=row[7],
            banned=row[8],
            created_at=row[9],
            last_active=row[10],
        )
