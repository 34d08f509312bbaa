"""
repositories/company_repo.py
-----------------------------
Data access layer for companies.
"""

from typing import Optional

from db.connection import get_connection, release_connection
from models.company import Company
from utils.logger import get_logger

logger = get_logger(__name__)

COMPANY_COLUMNS = """
    id, owner_id, name, description, email, code_prefix,
    billing_balance, status, created_at
"""


class CompanyRepository:
    """Repository for CRUD operations on the companies table."""

    def add(self, company: Company) -> Company:
        sql = """
            INSERT INTO companies (owner_id, name, description, email, code_prefix)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id, created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    company.owner_id, company.name, company.description,
                    company.email, company.code_prefix,
                ))
                row = cur.fetchone()
                company.id = row[0]
                company.created_at = row[1]
            conn.commit()
            logger.info(f"Registered company #{company.id} '{company.name}' for owner {company.owner_id}")
            return company
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to add company '{company.name}': {e}")
            raise
        finally:
            release_connection(conn)

    def get(self, company_id: int) -> Optional[Company]:
        sql = f"SELECT {COMPANY_COLUMNS} FROM companies WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (company_id,))
                row = cur.fetchone()
                return self._row_to_company(row) if row else None
        finally:
            release_connection(conn)

    def list_by_owner(self, owner_id: int) -> list[Company]:
        sql = f"SELECT {COMPANY_COLUMNS} FROM companies WHERE owner_id = %s ORDER BY id;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (owner_id,))
                return [self._row_to_company(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def list_all(self) -> list[Company]:
        sql = f"SELECT {COMPANY_COLUMNS} FROM companies ORDER BY id;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                return [self._row_to_company(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def list_page(self, offset: int, limit: int) -> list[Company]:
        sql = f"SELECT {COMPANY_COLUMNS} FROM companies ORDER BY id LIMIT %s OFFSET %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (limit, offset))
                return [self._row_to_company(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def search(self, query: str, limit: int = 10) -> list[Company]:
        """Companies whose ID or code prefix equals the query, or whose name contains it."""
        query = query.strip()
        company_id = int(query) if query.isdigit() and len(query) <= 9 else None
        sql = f"""
            SELECT {COMPANY_COLUMNS} FROM companies
            WHERE id = %s OR code_prefix = %s OR name ILIKE %s
            ORDER BY id
            LIMIT %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (company_id, query.upper(), f"%{query}%", limit))
                return [self._row_to_company(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def prefix_exists(self, prefix: str) -> bool:
        sql = "SELECT 1 FROM companies WHERE code_prefix = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (prefix,))
                return cur.fetchone() is not None
        finally:
            release_connection(conn)

    def name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        sql = "SELECT 1 FROM companies WHERE LOWER(name) = LOWER(%s) AND id IS DISTINCT FROM %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (name, exclude_id))
                return cur.fetchone() is not None
        finally:
            release_connection(conn)

    def update_field(self, company_id: int, field: str, value) -> bool:
        """
        Update one profile column.

        Args:
            field: 'name', 'description' or 'email'.
        """
        if field not in ("name", "description", "email"):
            raise ValueError(f"Unknown company field '{field}'")
        sql = f"UPDATE companies SET {field} = %s WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (value, company_id))
                updated = cur.rowcount > 0
            conn.commit()
            return updated
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to update {field} of company #{company_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def set_status(self, company_id: int, status: str) -> bool:
        sql = "UPDATE companies SET status = %s WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (status, company_id))
                updated = cur.rowcount > 0
            conn.commit()
            return updated
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to set status of company #{company_id}: {e}")
            raise
        finally:
            release_connection(conn)

    def counts(self) -> dict:
        """
        Returns:
            Dict with keys 'total', 'active', 'billing_total'.
        """
        sql = """
            SELECT COUNT(*),
                   COUNT(*) FILTER (WHERE status = 'active'),
                   COALESCE(SUM(billing_balance), 0)
            FROM companies;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                row = cur.fetchone()
                return {"total": row[0], "active": row[1], "billing_total": row[2]}
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_company(row: tuple) -> Company:
        """Convert a COMPANY_COLUMNS row tuple to a Company domain object."""
        return Company(
            id=row[0],
            owner_id=row[1],
            name=row[2],
            description=row[3],
            email=row[4],
            code_prefix=row[5],
            billing_balance=row[6],
            status=row[7],
            created_at=row[8],
        )
