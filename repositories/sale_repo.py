"""
repositories/sale_repo.py
--------------------------
Read-side queries over recorded sales: lookups, aggregates for the admin
panel and daily report, and row sets for exports and charts.
Sales are inserted by the ledger transaction only.
"""

from datetime import date, datetime
from typing import Optional

from db.connection import get_connection, release_connection
from models.sale import Sale
from utils.logger import get_logger

logger = get_logger(__name__)

SALE_COLUMNS = """
    id, sale_key, product_id, company_id, seller_id, buyer_id, quantity,
    unit_price, amount, platform_fee, referrer_bonus, buyer_bonus,
    seller_earnings, referral_code, referrer_id, created_at
"""


class SaleRepository:
    """Repository for reading the sales table."""

    def get_by_key(self, sale_key: str) -> Optional[Sale]:
        sql = f"SELECT {SALE_COLUMNS} FROM sales WHERE sale_key = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (sale_key,))
                row = cur.fetchone()
                return self._row_to_sale(row) if row else None
        finally:
            release_connection(conn)

    def totals(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        company_id: Optional[int] = None,
    ) -> dict:
        """
        Aggregate sale figures, optionally restricted to [since, until)
        and to one company.

        Returns:
            Dict with keys 'count', 'volume', 'platform_fees',
            'referrer_bonuses', 'buyer_bonuses', 'seller_earnings', 'referred'.
        """
        sql = """
            SELECT COUNT(*),
                   COALESCE(SUM(amount), 0),
                   COALESCE(SUM(platform_fee), 0),
                   COALESCE(SUM(referrer_bonus), 0),
                   COALESCE(SUM(buyer_bonus), 0),
                   COALESCE(SUM(seller_earnings), 0),
                   COUNT(*) FILTER (WHERE referral_code IS NOT NULL)
            FROM sales
        """
        conditions, params = [], []
        if company_id is not None:
            conditions.append("company_id = %s")
            params.append(company_id)
        if since is not None:
            conditions.append("created_at >= %s")
            params.append(since)
        if until is not None:
            conditions.append("created_at < %s")
            params.append(until)
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql + ";", params)
                row = cur.fetchone()
                return {
                    "count": row[0],
                    "volume": row[1],
                    "platform_fees": row[2],
                    "referrer_bonuses": row[3],
                    "buyer_bonuses": row[4],
                    "seller_earnings": row[5],
                    "referred": row[6],
                }
        finally:
            release_connection(conn)

    def daily_volume(self, start: date, end: date) -> list[dict]:
        """
        Sale volume per calendar day in [start, end].

        Returns:
            List of dicts: [{'day': date, 'count': int, 'volume': Decimal}, ...]
        """
        sql = """
            SELECT created_at::date AS day, COUNT(*), SUM(amount)
            FROM sales
            WHERE created_at::date BETWEEN %s AND %s
            GROUP BY day
            ORDER BY day;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (start, end))
                return [{"day": r[0], "count": r[1], "volume": r[2]} for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def list_between(self, start: date, end: date) -> list[dict]:
        """
        Every sale in [start, end] joined with company and product names,
        ready to become a DataFrame.
        """
        sql = """
            SELECT s.id, s.created_at, c.name, p.title, s.quantity, s.unit_price,
                   s.amount, s.platform_fee, s.referrer_bonus, s.buyer_bonus,
                   s.seller_earnings, s.referral_code, s.seller_id, s.buyer_id
            FROM sales s
            JOIN companies c ON c.id = s.company_id
            LEFT JOIN products p ON p.id = s.product_id
            WHERE s.created_at::date BETWEEN %s AND %s
            ORDER BY s.created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (start, end))
                return [
                    {
                        "id": r[0],
                        "created_at": r[1],
                        "company": r[2],
                        "product": r[3],
                        "quantity": r[4],
                        "unit_price": r[5],
                        "amount": r[6],
                        "platform_fee": r[7],
                        "referrer_bonus": r[8],
                        "buyer_bonus": r[9],
                        "seller_earnings": r[10],
                        "referral_code": r[11],
                        "seller_id": r[12],
                        "buyer_id": r[13],
                    }
                    for r in cur.fetchall()
                ]
        finally:
            release_connection(conn)

    def list_by_buyer(self, buyer_id: int, limit: int = 20) -> list[dict]:
        """
        A buyer's most recent purchases, newest first.

        Returns:
            List of dicts: [{'id', 'created_at', 'product', 'company',
            'quantity', 'amount', 'referral_code', 'buyer_bonus'}, ...]
        """
        sql = """
            SELECT s.id, s.created_at, p.title, c.name, s.quantity, s.amount,
                   s.referral_code, s.buyer_bonus
            FROM sales s
            JOIN companies c ON c.id = s.company_id
            LEFT JOIN products p ON p.id = s.product_id
            WHERE s.buyer_id = %s
            ORDER BY s.created_at DESC
            LIMIT %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (buyer_id, limit))
                return [
                    {
                        "id": r[0],
                        "created_at": r[1],
                        "product": r[2],
                        "company": r[3],
                        "quantity": r[4],
                        "amount": r[5],
                        "referral_code": r[6],
                        "buyer_bonus": r[7],
                    }
                    for r in cur.fetchall()
                ]
        finally:
            release_connection(conn)

    def count_by_buyer(self, buyer_id: int) -> int:
        sql = "SELECT COUNT(*) FROM sales WHERE buyer_id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (buyer_id,))
                return cur.fetchone()[0]
        finally:
            release_connection(conn)

    def top_products(self, company_id: int, limit: int = 5) -> list[dict]:
        """
        Best-selling products of one company by sale volume.

        Returns:
            List of dicts: [{'product', 'units', 'volume'}, ...]
        """
        sql = """
            SELECT COALESCE(p.title, 'Deleted product'), SUM(s.quantity), SUM(s.amount)
            FROM sales s
            LEFT JOIN products p ON p.id = s.product_id
            WHERE s.company_id = %s
            GROUP BY p.title
            ORDER BY SUM(s.amount) DESC
            LIMIT %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (company_id, limit))
                return [{"product": r[0], "units": r[1], "volume": r[2]} for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def company_totals(self, company_id: int) -> dict:
        """
        Returns:
            Dict with keys 'count', 'volume', 'earnings'.
        """
        sql = """
            SELECT COUNT(*), COALESCE(SUM(amount), 0), COALESCE(SUM(seller_earnings), 0)
            FROM sales WHERE company_id = %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (company_id,))
                row = cur.fetchone()
                return {"count": row[0], "volume": row[1], "earnings": row[2]}
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_sale(row: tuple) -> Sale:
        """Convert a SALE_COLUMNS row tuple to a Sale domain object."""
        return Sale(
            id=row[0],
            sale_key=row[1],
            product_id=row[2],
            company_id=row[3],
            seller_id=row[4],
            buyer_id=row[5],
            quantity=row[6],
            unit_price=row[7],
            amount=row[8],
            platform_fee=row[9],
            referrer_bonus=row[10],
            buyer_bonus=row[11],
            seller_earnings=row[12],
            referral_code=row[13],
            referrer_id=row[14],
            created_at=row[15],
        )
