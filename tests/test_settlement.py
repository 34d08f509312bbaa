from decimal import Decimal

import pytest

from models.settings import PlatformSettings
from services.sale_service import compute_settlement
from utils.errors import ValidationError


def _settings(fee="1.5", commission="2.5", discount="1"):
    return PlatformSettings(
        platform_fee_percent=Decimal(fee),
        referral_commission_percent=Decimal(commission),
        buyer_discount_percent=Decimal(discount),
        min_withdrawal_amount=Decimal("10"),
    )


def test_settlement_with_referral_code():
    s = compute_settlement(Decimal("100"), _settings(), with_referral=True)
    assert s.platform_fee == Decimal("1.50")
    assert s.referrer_bonus == Decimal("2.50")
    assert s.buyer_bonus == Decimal("1.00")
    assert s.seller_earnings == Decimal("95.00")


def test_settlement_without_referral_code_only_charges_platform_fee():
    s = compute_settlement(Decimal("100"), _settings(), with_referral=False)
    assert s.referrer_bonus == Decimal("0.00")
    assert s.buyer_bonus == Decimal("0.00")
    assert s.seller_earnings == Decimal("98.50")


@pytest.mark.parametrize("amount", ["0.01", "0.33", "19.99", "333.33", "1234567.89"])
def test_settlement_parts_always_add_up(amount):
    s = compute_settlement(Decimal(amount), _settings("1.75", "2.35", "0.9"), with_referral=True)
    assert s.platform_fee + s.referrer_bonus + s.buyer_bonus + s.seller_earnings == s.amount
    assert s.total_deductions + s.seller_earnings == s.amount


def test_settlement_rounds_half_up_to_cents():
    s = compute_settlement(Decimal("10.10"), _settings("2.5", "0", "0"), with_referral=True)
    # 10.10 * 2.5% = 0.2525
    assert s.platform_fee == Decimal("0.25")
    s = compute_settlement(Decimal("1.00"), _settings("12.5", "0", "0"), with_referral=True)
    assert s.platform_fee == Decimal("0.13")


@pytest.mark.parametrize("amount", ["0", "-5"])
def test_settlement_rejects_non_positive_amount(amount):
    with pytest.raises(ValidationError):
        compute_settlement(Decimal(amount), _settings(), with_referral=True)


def test_settlement_rejects_deductions_above_amount():
    with pytest.raises(ValidationError):
        compute_settlement(Decimal("100"), _settings("60", "30", "20"), with_referral=True)
