"""
repositories/settings_repo.py
------------------------------
Data access layer for the single-row settings table.
"""

from db.connection import get_connection, release_connection
from models.settings import PlatformSettings
from utils.logger import get_logger

logger = get_logger(__name__)

SETTINGS_COLUMNS = """
    platform_fee_percent, referral_commission_percent, buyer_discount_percent,
    min_withdrawal_amount, maintenance_mode, platform_balance, updated_at
"""

# Fields admins may change with /settings.
EDITABLE_SETTINGS = (
    "platform_fee_percent",
    "referral_commission_percent",
    "buyer_discount_percent",
    "min_withdrawal_amount",
)


class SettingsRepository:
    """Repository for reading and updating platform settings."""

    def get(self) -> PlatformSettings:
        """
        Read the settings row.

        Raises:
            RuntimeError: If the row was never seeded (run db.init_db).
        """
        sql = f"SELECT {SETTINGS_COLUMNS} FROM settings WHERE id = 1;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                row = cur.fetchone()
                if not row:
                    raise RuntimeError("Settings row missing. Run `python -m db.init_db` first.")
                return self._row_to_settings(row)
        finally:
            release_connection(conn)

    def update_field(self, field: str, value) -> PlatformSettings:
        if field not in EDITABLE_SETTINGS:
            raise ValueError(f"Setting '{field}' is not editable")
        sql = f"""
            UPDATE settings SET {field} = %s, updated_at = NOW()
            WHERE id = 1
            RETURNING {SETTINGS_COLUMNS};
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (value,))
                row = cur.fetchone()
            conn.commit()
            return self._row_to_settings(row)
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to update setting {field}: {e}")
            raise
        finally:
            release_connection(conn)

    def set_maintenance(self, enabled: bool) -> None:
        sql = "UPDATE settings SET maintenance_mode = %s, updated_at = NOW() WHERE id = 1;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (enabled,))
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to set maintenance mode: {e}")
            raise
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_settings(row: tuple) -> PlatformSettings:
        return PlatformSettings(
            platform_fee_percent=row[0],
            referral_commission_percent=row[1],
            buyer_discount_percent=row[2],
            min_withdrawal_amount=row[3],
            maintenance_mode=row[4],
            platform_balance=row[5],
            updated_at=row[6],
        )
