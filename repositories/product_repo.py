"""
repositories/product_repo.py
-----------------------------
Data access layer for products.
All SQL queries related to the `products` table live here.
"""

from typing import Optional

from db.connection import get_connection, release_connection
from models.product import Product
from utils.logger import get_logger

logger = get_logger(__name__)

# Column list shared by every query that maps rows through _row_to_product.
PRODUCT_COLUMNS = """
    p.id, p.company_id, p.title, p.description, p.price,
    p.quantity, p.status, p.created_at, c.name
"""

# Fields an owner may change with /edit_product.
EDITABLE_FIELDS = ("title", "description", "price", "quantity", "status")


class ProductRepository:
    """Repository for CRUD operations on the products table."""

    # ── CREATE ────────────────────────────────────────────

    def add(self, product: Product) -> Product:
        """
        Insert a new product.

        Returns:
            The same Product with `id` and `created_at` populated.
        """
        sql = """
            INSERT INTO products (company_id, title, description, price, quantity, status)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id, created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    product.company_id, product.title, product.description,
                    product.price, product.quantity, product.status,
                ))
                row = cur.fetchone()
                product.id = row[0]
                product.created_at = row[1]
            conn.commit()
            logger.info(f"Added product #{product.id} '{product.title}' to company {product.company_id}")
            return product
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to add product: {e}")
            raise
        finally:
            release_connection(conn)

    # ── READ ──────────────────────────────────────────────

    def get(self, product_id: int) -> Optional[Product]:
        sql = f"""
            SELECT {PRODUCT_COLUMNS}
            FROM products p JOIN companies c ON c.id = p.company_id
            WHERE p.id = %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (product_id,))
                row = cur.fetchone()
                return self._row_to_product(row) if row else None
        finally:
            release_connection(conn)

    def list_by_company(self, company_id: int) -> list[Product]:
        sql = f"""
            SELECT {PRODUCT_COLUMNS}
            FROM products p JOIN companies c ON c.id = p.company_id
            WHERE p.company_id = %s
            ORDER BY p.id;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (company_id,))
                return [self._row_to_product(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def browse(self, page: int, per_page: int) -> tuple[list[Product], int]:
        """
        Page through products of active companies, newest first.

        Args:
            page: Zero-based page index.
            per_page: Page size.

        Returns:
            (products on this page, total number of browsable products).
        """
        count_sql = """
            SELECT COUNT(*)
            FROM products p JOIN companies c ON c.id = p.company_id
            WHERE c.status = 'active';
        """
        sql = f"""
            SELECT {PRODUCT_COLUMNS}
            FROM products p JOIN companies c ON c.id = p.company_id
            WHERE c.status = 'active'
            ORDER BY p.created_at DESC, p.id DESC
            LIMIT %s OFFSET %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(count_sql)
                total = cur.fetchone()[0]
                cur.execute(sql, (per_page, page * per_page))
                return [self._row_to_product(r) for r in cur.fetchall()], total
        finally:
            release_connection(conn)

    def title_exists(self, company_id: int, title: str, exclude_id: Optional[int] = None) -> bool:
        """Case-insensitive duplicate-title check within one company."""
        sql = "SELECT 1 FROM products WHERE company_id = %s AND LOWER(title) = LOWER(%s)"
        params: list = [company_id, title]
        if exclude_id is not None:
            sql += " AND id <> %s"
            params.append(exclude_id)
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql + ";", params)
                return cur.fetchone() is not None
        finally:
            release_connection(conn)

    # ── UPDATE ────────────────────────────────────────────

    def update_field(self, product_id: int, field: str, value) -> bool:
        """
        Update one editable column of a product.

        Raises:
            ValueError: If `field` is not in EDITABLE_FIELDS.
        """
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Field '{field}' is not editable")
        sql = f"UPDATE products SET {field} = %s WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (value, product_id))
                updated = cur.rowcount > 0
            conn.commit()
            return updated
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to update product #{product_id}.{field}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── DELETE ────────────────────────────────────────────

    def delete(self, product_id: int) -> bool:
        sql = "DELETE FROM products WHERE id = %s;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (product_id,))
                deleted = cur.rowcount > 0
            conn.commit()
            if deleted:
                logger.info(f"Deleted product #{product_id}")
            return deleted
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to delete product #{product_id}: {e}")
            raise
        finally:
            release_connection(conn)

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _row_to_product(row: tuple) -> Product:
        """Convert a PRODUCT_COLUMNS row tuple to a Product domain object."""
        return Product(
            id=row[0],
            company_id=row[1],
            title=row[2],
            description=row[3],
            price=row[4],
            quantity=row[5],
            status=row[6],
            created_at=row[7],
            company_name=row[8],
        )
