"""
models/withdrawal.py
--------------------
Domain model for withdrawal requests.

Status machine:
    company_pending -> approved -> processed   (billing withdrawals only)
    company_pending -> declined
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

KIND_REFERRAL = "referral"
KIND_BILLING = "billing"

STATUS_PENDING = "company_pending"
STATUS_APPROVED = "approved"
STATUS_DECLINED = "declined"
STATUS_PROCESSED = "processed"

STATUS_ICONS = {
    STATUS_PENDING: "⏳",
    STATUS_APPROVED: "✅",
    STATUS_DECLINED: "❌",
    STATUS_PROCESSED: "💸",
}


@dataclass
class Withdrawal:
    """
    A request to move money out of a balance.

    Attributes:
        kind: 'referral' (a referrer cashing out commissions earned through
            a company) or 'billing' (an admin paying out a company's billing
            balance).
        user_id: The referrer for 'referral', the requesting admin for 'billing'.
        decided_by: Company owner who approved or declined.
        processed_by: Admin who confirmed a billing payout.
    """
    kind: str
    user_id: int
    company_id: int
    amount: Decimal
    reason: Optional[str] = None
    status: str = STATUS_PENDING
    decided_by: Optional[int] = None
    decided_at: Optional[datetime] = None
    denial_reason: Optional[str] = None
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    company_name: Optional[str] = None

    def is_pending(self) -> bool:
        return self.status == STATUS_PENDING

    def __str__(self) -> str:
        icon = STATUS_ICONS.get(self.status, "•")
        return f"{icon} #{self.id} {self.amount:.2f} ({self.status})"
