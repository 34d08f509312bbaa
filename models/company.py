"""
models/company.py
-----------------
Domain model for companies registered on the marketplace.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

STATUS_ACTIVE = "active"
STATUS_SUSPENDED = "suspended"
COMPANY_STATUSES = (STATUS_ACTIVE, STATUS_SUSPENDED)


@dataclass
class Company:
    """
    A company owned by one Telegram user.

    Attributes:
        id: Database primary key (None for new records).
        owner_id: Telegram ID of the owner.
        code_prefix: Two upper-case letters that start every referral code.
        billing_balance: Seller earnings accumulated from sales.
        status: 'active' or 'suspended'.
    """
    owner_id: int
    name: str
    code_prefix: str
    description: Optional[str] = None
    email: Optional[str] = None
    billing_balance: Decimal = field(default_factory=lambda: Decimal("0.00"))
    status: str = STATUS_ACTIVE
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def __str__(self) -> str:
        icon = "🟢" if self.is_active() else "⛔"
        return f"{icon} #{self.id} {self.name} [{self.code_prefix}]"
