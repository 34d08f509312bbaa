from decimal import Decimal

import pytest

from models.settings import PlatformSettings
from services.admin_service import validate_setting
from utils.errors import ValidationError


@pytest.fixture
def settings():
    return PlatformSettings(
        platform_fee_percent=Decimal("1.5"),
        referral_commission_percent=Decimal("2.5"),
        buyer_discount_percent=Decimal("1"),
        min_withdrawal_amount=Decimal("10"),
    )


@pytest.mark.parametrize("key,raw,field,value", [
    ("fee", "2", "platform_fee_percent", Decimal("2.00")),
    ("Commission", "3.25%", "referral_commission_percent", Decimal("3.25")),
    ("discount", "0", "buyer_discount_percent", Decimal("0.00")),
    ("min_withdrawal", "25", "min_withdrawal_amount", Decimal("25.00")),
])
def test_valid_settings(settings, key, raw, field, value):
    assert validate_setting(settings, key, raw) == (field, value)


@pytest.mark.parametrize("key,raw", [
    ("fee", "150"),
    ("fee", "-1"),
    ("commission", "abc"),
    ("commission", "nan"),
    ("commission", "98"),
    ("min_withdrawal", "0"),
    ("tax", "5"),
])
def test_invalid_settings(settings, key, raw):
    with pytest.raises(ValidationError):
        validate_setting(settings, key, raw)
