"""Pytest configuration for test path setup and shared fixtures."""
import os
import sys
from decimal import Decimal

import pytest

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from tests.fakes import (  # noqa: E402
    FakeCompanyRepo,
    FakeLedger,
    FakeProductRepo,
    FakeReferralRepo,
    FakeSaleRepo,
    FakeSettingsRepo,
    FakeStore,
    FakeUserRepo,
    FakeWithdrawalRepo,
)

OWNER_ID = 100
REFERRER_ID = 200
BUYER_ID = 300


@pytest.fixture
def store():
    """
    A small marketplace: one owner with company 'Acme' (prefix AC), one
    product at $100 with 5 in stock, a referrer holding an active code
    and a buyer who has started the bot.
    """
    s = FakeStore()
    s.add_user(OWNER_ID, username="owner", can_register_company=True)
    s.add_user(REFERRER_ID, username="referrer")
    s.add_user(BUYER_ID, username="buyer")
    company = s.add_company(OWNER_ID, "Acme", "AC")
    s.add_product(company.id, "Widget", Decimal("100.00"), 5)
    s.add_code("AC-REF001", REFERRER_ID, company.id)
    return s


@pytest.fixture
def repos(store):
    return {
        "user_repo": FakeUserRepo(store),
        "company_repo": FakeCompanyRepo(store),
        "product_repo": FakeProductRepo(store),
        "referral_repo": FakeReferralRepo(store),
        "sale_repo": FakeSaleRepo(store),
        "settings_repo": FakeSettingsRepo(store),
        "withdrawal_repo": FakeWithdrawalRepo(store),
        "ledger": FakeLedger(store),
    }


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    from security import rate_limiter
    rate_limiter.reset()
    yield
    rate_limiter.reset()
