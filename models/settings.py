"""
models/settings.py
------------------
Platform-wide settings stored as the single row of the settings table.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass
class PlatformSettings:
    """
    Attributes:
        platform_fee_percent: Platform cut of every sale.
        referral_commission_percent: Referrer reward when a code is used.
        buyer_discount_percent: Buyer bonus when a code is used.
        min_withdrawal_amount: Lower bound for billing withdrawals.
        maintenance_mode: When True only admins can use the bot.
        platform_balance: Accumulated platform fees.
    """
    platform_fee_percent: Decimal
    referral_commission_percent: Decimal
    buyer_discount_percent: Decimal
    min_withdrawal_amount: Decimal
    maintenance_mode: bool = False
    platform_balance: Decimal = field(default_factory=lambda: Decimal("0.00"))
    updated_at: Optional[datetime] = None
