"""
models/referral.py
------------------
Domain models for referral codes and redeemed referrals.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass
class ReferralCode:
    """
    A single-use code tied to a user and a company.

    Attributes:
        code: e.g. "AB-7K2Q9X".
        user_id: Telegram ID of the referrer who owns the code.
        active: False once redeemed.
        used_by / used_at: Buyer and time of redemption.
        company_name: Filled in by joined queries, not stored.
    """
    code: str
    user_id: int
    company_id: int
    active: bool = True
    used_by: Optional[int] = None
    used_at: Optional[datetime] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    company_name: Optional[str] = None

    def __str__(self) -> str:
        state = "🟢 active" if self.active else "⚪ used"
        return f"{self.code} ({state})"


@dataclass
class Referral:
    """Historical record of one code redemption and the commission it paid."""
    referral_code_id: int
    code: str
    referrer_id: int
    buyer_id: int
    company_id: int
    amount: Decimal
    commission: Decimal
    product_id: Optional[int] = None
    sale_id: Optional[int] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
