"""
models/user.py
--------------
Domain model for bot users.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass
class User:
    """
    Represents a Telegram user known to the bot.

    Attributes:
        telegram_id: Telegram user ID (primary key).
        first_name / last_name: Names from the Telegram profile.
        username: Lower-cased Telegram username without "@".
        coin_balance: Buyer bonuses collected from referral purchases.
        referral_balance: Commissions earned as a referrer, withdrawable.
        is_admin: Admin flag set in the database (ADMIN_IDS also count).
        can_register_company: Granted by an admin.
        banned: Banned users cannot use the bot.
    """
    telegram_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    coin_balance: Decimal = field(default_factory=lambda: Decimal("0.00"))
    referral_balance: Decimal = field(default_factory=lambda: Decimal("0.00"))
    is_admin: bool = False
    can_register_company: bool = False
    banned: bool = False
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        if self.username:
            return f"@{self.username}"
        return self.first_name or f"User {self.telegram_id}"

    def __str__(self) -> str:
        flags = " 🚫" if self.banned else ""
        return f"{self.display_name} ({self.telegram_id}){flags}"
