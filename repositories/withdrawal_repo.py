"""
repositories/withdrawal_repo.py
--------------------------------
Read-side queries for withdrawal requests.
Every status change goes through the ledger transaction instead.
"""

from datetime import datetime
from typing import Optional

from db.connection import get_connection, release_connection
from models.withdrawal import Withdrawal
from utils.logger import get_logger

logger = get_logger(__name__)

WITHDRAWAL_COLUMNS = """
    w.id, w.kind, w.user_id, w.company_id, w.amount, w.reason, w.status,
    w.decided_by, w.decided_at, w.denial_reason, w.processed_by,
    w.processed_at, w.created_at, c.name
"""


class WithdrawalRepository:
    """Repository for reading the withdrawals table."""

    def get(self, withdrawal_id: int) -> Optional[Withdrawal]:
        sql = f"""
            SELECT {WITHDRAWAL_COLUMNS}
            FROM withdrawals w JOIN companies c ON c.id = w.company_id
            WHERE w.id = %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (withdrawal_id,))
                row = cur.fetchone()
                return self._row_to_withdrawal(row) if row else None
        finally:
            release_connection(conn)

    def list_for_user(self, user_id: int, limit: int = 20) -> list[Withdrawal]:
        """A referrer's own payout requests, newest first."""
        sql = f"""
            SELECT {WITHDRAWAL_COLUMNS}
            FROM withdrawals w JOIN companies c ON c.id = w.company_id
            WHERE w.kind = 'referral' AND w.user_id = %s
            ORDER BY w.created_at DESC
            LIMIT %s;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (user_id, limit))
                return [self._row_to_withdrawal(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def list_pending_for_owner(self, owner_id: int) -> list[Withdrawal]:
        """Requests of either kind waiting for a decision by this company owner."""
        sql = f"""
            SELECT {WITHDRAWAL_COLUMNS}
            FROM withdrawals w JOIN companies c ON c.id = w.company_id
            WHERE c.owner_id = %s AND w.status = 'company_pending'
            ORDER BY w.created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (owner_id,))
                return [self._row_to_withdrawal(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def list_billing(self, statuses: Optional[tuple] = None, limit: int = 30) -> list[Withdrawal]:
        sql = f"""
            SELECT {WITHDRAWAL_COLUMNS}
            FROM withdrawals w JOIN companies c ON c.id = w.company_id
            WHERE w.kind = 'billing'
        """
        params: list = []
        if statuses:
            sql += " AND w.status = ANY(%s)"
            params.append(list(statuses))
        sql += " ORDER BY w.created_at DESC LIMIT %s;"
        params.append(limit)
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return [self._row_to_withdrawal(r) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def list_stale_pending(self, older_than: datetime) -> list[tuple[int, Withdrawal]]:
        """
        Pending requests created before `older_than`.

        Returns:
            List of (owner_id, Withdrawal) pairs, for owner reminders.
        """
        sql = f"""
            SELECT c.owner_id, {WITHDRAWAL_COLUMNS}
            FROM withdrawals w JOIN companies c ON c.id = w.company_id
            WHERE w.status = 'company_pending' AND w.created_at < %s
            ORDER BY c.owner_id, w.created_at;
        """
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (older_than,))
                return [(r[0], self._row_to_withdrawal(r[1:])) for r in cur.fetchall()]
        finally:
            release_connection(conn)

    def count_by_status(self) -> dict:
        """
        Returns:
            Dict mapping status -> count, e.g. {'company_pending': 3}.
        """
        sql = "SELECT status, COUNT(*) FROM withdrawals GROUP BY status;"
        conn = get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                return {r[0]: r[1] for r in cur.fetchall()}
        finally:
            release_connection(conn)

    @staticmethod
    def _row_to_withdrawal(row: tuple) -> Withdrawal:
        """Convert a WITHDRAWAL_COLUMNS row tuple to a Withdrawal domain object."""
        return Withdrawal(
            id=row[0],
            kind=row[1],
            user_id=row[2],
            company_id=row[3],
            amount=row[4],
            reason=row[5],
            status=row[6],
            decided_by=row[7],
            decided_at=row[8],
            denial_reason=row[9],
            processed_by=row[10],
            processed_at=row[11],
            created_at=row[12],
            company_name=row[13],
        )
