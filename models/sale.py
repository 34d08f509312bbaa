"""
models/sale.py
--------------
Domain models for sale settlements and recorded sales.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Settlement:
    """
    How one sale amount is split.

    Invariant: seller_earnings + platform_fee + referrer_bonus + buyer_bonus == amount.
    """
    amount: Decimal
    platform_fee: Decimal
    referrer_bonus: Decimal
    buyer_bonus: Decimal
    seller_earnings: Decimal

    @property
    def total_deductions(self) -> Decimal:
        return self.platform_fee + self.referrer_bonus + self.buyer_bonus


@dataclass
class Sale:
    """
    A recorded in-person sale.

    Attributes:
        sale_key: Idempotency key; a key is applied at most once.
        seller_id: Telegram ID of whoever recorded the sale.
        referral_code / referrer_id: Set only when a valid code was redeemed.
    """
    sale_key: str
    product_id: Optional[int]
    company_id: int
    seller_id: int
    buyer_id: int
    quantity: int
    unit_price: Decimal
    amount: Decimal
    platform_fee: Decimal
    referrer_bonus: Decimal
    buyer_bonus: Decimal
    seller_earnings: Decimal
    referral_code: Optional[str] = None
    referrer_id: Optional[int] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def settlement(self) -> Settlement:
        return Settlement(
            amount=self.amount,
            platform_fee=self.platform_fee,
            referrer_bonus=self.referrer_bonus,
            buyer_bonus=self.buyer_bonus,
            seller_earnings=self.seller_earnings,
        )
