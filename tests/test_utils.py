from decimal import Decimal

import pytest

from utils.codes import CODE_PATTERN, code_prefix_from_name, looks_like_code, new_referral_code, normalize_code
from utils.errors import BelowMinimumPayoutError, InvalidReferralCodeError, MarketplaceError, SelfReferralError
from utils.formatting import display_name, md, money, parse_amount, parse_int, plain, to_money


def test_to_money_rounds_half_up():
    assert to_money("0.125") == Decimal("0.13")
    assert to_money(2) == Decimal("2.00")
    assert to_money(Decimal("1.005")) == Decimal("1.01")


def test_money():
    assert money(Decimal("1234.5")) == "$1,234.50"
    assert money(None) == "$0.00"
    assert money(Decimal("-3")) == "-$3.00"


@pytest.mark.parametrize("text,expected", [
    ("50", Decimal("50.00")),
    ("$12.5", Decimal("12.50")),
    ("1,000", Decimal("1000.00")),
    ("١٠٠", Decimal("100.00")),
    ("0", None),
    ("-5", None),
    ("abc", None),
    (None, None),
])
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


def test_parse_int():
    assert parse_int(" 42 ") == 42
    assert parse_int("٣") == 3
    assert parse_int("4.2") is None


def test_md_escapes_markdown():
    assert md("my_shop*") == "my\\_shop\\*"
    assert md(None) == ""


def test_plain_strips_markdown():
    assert plain("⛔ *Acme* is `suspended` in my\\_shop\\*") == "⛔ Acme is suspended in my_shop*"
    assert plain("abcdef", limit=4) == "abc…"
    assert plain("abcd", limit=4) == "abcd"
    assert plain(None) == ""


def test_display_name():
    assert display_name("bob", "Bob", 1) == "@bob"
    assert display_name(None, "Bob", 1) == "Bob"
    assert display_name(None, None, 1) == "User 1"


def test_code_prefix_from_name():
    assert code_prefix_from_name("acme corp") == "AC"
    assert code_prefix_from_name("3M Co") == "MC"
    prefix = code_prefix_from_name("42")
    assert len(prefix) == 2 and prefix.isalpha() and prefix.isupper()


def test_referral_codes():
    code = new_referral_code("ab")
    assert CODE_PATTERN.match(code)
    assert code.startswith("AB-")
    assert normalize_code("  ab-7k2q9x ") == "AB-7K2Q9X"
    assert looks_like_code("ab-7k2q9x")
    assert not looks_like_code("AB7K2Q9X")


def test_errors_carry_user_message_and_code():
    err = BelowMinimumPayoutError("❌ Minimum payout is $10.00.")
    assert str(err) == "❌ Minimum payout is $10.00."
    assert err.code == "BELOW_MINIMUM"
    assert isinstance(SelfReferralError(), InvalidReferralCodeError)
    assert SelfReferralError().code == "SELF_REFERRAL"
    assert isinstance(InvalidReferralCodeError(), MarketplaceError)
