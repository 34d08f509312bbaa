"""
repositories/referral_repo.py
------------------------------
Data access layer for referral codes and the referral history.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from db.connection import get_connection, release_connection
from models.referral import ReferralCode
from utils.logger import get_logger

logger = get_logger(__name__)

CODE_COLUMNS = """
    rc.id, rc.code, rc.user_id, rc.company_id, rc.active,
    rc.used_by, rc.used_at, rc.created_at, c.name
"""


class ReferralRepository:
    """Repository for the referral_codes and referrals tables."""

    # ── CODES ─────────────────────────────────────────────

    def add_code(self, code: ReferralCode) -> ReferralCode:
        sql = """
            INSERT INTO referral_codes (code, user_id, company_id)
            VALUES (%s, %s, %s)
            RETURNING id, created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (code.code, code.user_id, code.company_id))
                row = cur.fetchone()
                code.id = row[0]
                code.created_at = row[1]
            conn.commit()
            logger.info(f"Issued referral code {code.code} to user {code.user_id} for company {code.company_id}")
            return code
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to add referral code {code.code}: {e}")
            raise
        finally:
            release_connection(conn)

    def code_exists(self, code: str) -> bool:
        sql = "SELECT 1 FROM referral_codes WHERE code = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (code,))
                return cur.fetchone() is not None
        finally:
            release_connection(conn)

    def get_code(self, code: str) -> Optional[ReferralCode]:
        sql = f"""
            SELECT {CODE_COLUMNS}
            FROM referral_codes rc JOIN companies c ON c.id = rc.company_id
            WHERE rc.code = %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (code,))
                row = cur.fetchone()
                return self._row_to_code(row) if row else None
        finally:
            release_connection(conn)

    def list_codes(self, user_id: int, active_only: bool = False) -> list[ReferralCode]:
        sql = f"""
            SELECT {CODE_COLUMNS}
            FROM referral_codes rc JOIN companies c ON c.id = rc.company_id
            WHERE rc.user_id = %s
        """
        if active_only:
            sql += " AND rc.active"
        sql += " ORDER BY rc.active DESC, rc.created_at DESC;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (user_id,))
                return [self._row_to_code(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    # ── STATS ─────────────────────────────────────────────

    def stats(self, user_id: int, month_start: datetime) -> dict:
        """
        Referral totals for one referrer.

        Returns:
            Dict with keys 'total_referrals', 'total_earnings', 'month_earnings'.
        """
        sql = """
            SELECT COUNT(*),
                   COALESCE(SUM(commission), 0),
                   COALESCE(SUM(commission) FILTER (WHERE created_at >= %s), 0)
            FROM referrals
            WHERE referrer_id = %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (month_start, user_id))
                row = cur.fetchone()
                return {
                    "total_referrals": row[0],
                    "total_earnings": row[1],
                    "month_earnings": row[2],
                }
        finally:
            release_connection(conn)

    def earnings_by_company(self, user_id: int) -> list[dict]:
        """
        Commission earned per company and how much of it is still withdrawable.

        Returns:
            List of dicts: [{'company_id', 'company_name', 'earned',
            'reserved', 'withdrawable'}, ...]
        """
        sql = """
            SELECT c.id, c.name, e.earned,
                   COALESCE((
                       SELECT SUM(w.amount) FROM withdrawals w
                       WHERE w.kind = 'referral' AND w.user_id = %s AND w.company_id = c.id
                         AND w.status IN ('company_pending', 'approved')
                   ), 0) AS reserved
            FROM (
                SELECT company_id, SUM(commission) AS earned
                FROM referrals WHERE referrer_id = %s
                GROUP BY company_id
            ) e
            JOIN companies c ON c.id = e.company_id
            ORDER BY e.earned DESC;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (user_id, user_id))
                result = []
                for r in cur.fetchall():
                    earned, reserved = Decimal(r[2]), Decimal(r[3])
                    result.append({
                        "company_id": r[0],
                        "company_name": r[1],
                        "earned": earned,
                        "reserved": reserved,
                        "withdrawable": max(earned - reserved, Decimal("0.00")),
                    })
                return result
        finally:
            release_connection(conn)

    def leaderboard(self, limit: int = 10, since: Optional[datetime] = None) -> list[dict]:
        """
        Top referrers by commission earned.

        Args:
            since: Only count referrals from this moment on (None = all time).

        Returns:
            List of dicts: [{'user_id', 'username', 'first_name', 'referrals', 'earnings'}, ...]
        """
        sql = """
            SELECT r.referrer_id, u.username, u.first_name,
                   COUNT(*) AS referrals, SUM(r.commission) AS earnings
            FROM referrals r
            LEFT JOIN users u ON u.telegram_id = r.referrer_id
        """
        params: list = []
        if since is not None:
            sql += " WHERE r.created_at >= %s"
            params.append(since)
        sql += """
            GROUP BY r.referrer_id, u.username, u.first_name
            ORDER BY earnings DESC, referrals DESC
            LIMIT %s;
        """
        params.append(limit)
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return [
                    {
                        "user_id": r[0],
                        "username": r[1],
                        "first_name": r[2],
                        "referrals": r[3],
                        "earnings": r[4],
                    }
                    for r in cur.fetchall()
                ]
        finally:
            release_connection(conn)

    def company_referrers(self, company_id: int, limit: int = 5) -> list[dict]:
        """
        Referrers who brought sales to one company, best first.

        Returns:
            List of dicts: [{'user_id', 'username', 'first_name',
            'referrals', 'revenue', 'commission'}, ...]
        """
        sql = """
            SELECT r.referrer_id, u.username, u.first_name,
                   COUNT(*), SUM(r.amount), SUM(r.commission)
            FROM referrals r
            LEFT JOIN users u ON u.telegram_id = r.referrer_id
            WHERE r.company_id = %s
            GROUP BY r.referrer_id, u.username, u.first_name
            ORDER BY SUM(r.amount) DESC
            LIMIT %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (company_id, limit))
                return [
                    {
                        "user_id": r[0],
                        "username": r[1],
                        "first_name": r[2],
                        "referrals": r[3],
                        "revenue": r[4],
                        "commission": r[5],
                    }
                    for r in cur.fetchall()
                ]
        finally:
            release_connection(conn)

    def count_codes(self, company_id: Optional[int] = None) -> dict:
        """
        Returns:
            Dict with keys 'total', 'active', 'used'.
        """
        sql = "SELECT COUNT(*), COUNT(*) FILTER (WHERE active), COUNT(*) FILTER (WHERE NOT active) FROM referral_codes"
        params: list = []
        if company_id is not None:
            sql += " WHERE company_id = %s"
            params.append(company_id)
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql + ";", params)
                row = cur.fetchone()
                return {"total": row[0], "active": row[1], "used": row[2]}
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_code(row: tuple) -> ReferralCode:
        """Convert a CODE_COLUMNS row tuple to a ReferralCode domain object."""
        return ReferralCode(
            id=row[0],
            code=row[1],
            user_id=row[2],
            company_id=row[3],
            active=row[4],
            used_by=row[5],
            used_at=row[6],
            created_at=row[7],
            company_name=row[8],
        )
