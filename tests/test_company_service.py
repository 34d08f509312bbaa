from decimal import Decimal

import pytest

from models.company import STATUS_SUSPENDED
from services.company_service import CompanyService
from services.sale_service import SaleService
from tests.conftest import BUYER_ID, OWNER_ID
from utils.errors import NotFoundError, PermissionDeniedError, ValidationError


@pytest.fixture
def service(repos):
    return CompanyService(
        company_repo=repos["company_repo"],
        user_repo=repos["user_repo"],
        product_repo=repos["product_repo"],
        sale_repo=repos["sale_repo"],
        referral_repo=repos["referral_repo"],
    )


def test_register_company_derives_prefix(service, store):
    company = service.register_company(OWNER_ID, "Globex", "Gadgets", "sales@globex.com")
    assert company.code_prefix == "GL"
    assert company.billing_balance == Decimal("0.00")
    assert store.companies[company.id].owner_id == OWNER_ID


def test_register_company_picks_new_prefix_when_taken(service, store):
    company = service.register_company(OWNER_ID, "Acorn")
    assert company.code_prefix != "AC"
    assert len(company.code_prefix) == 2


def test_register_company_requires_right(service, store):
    with pytest.raises(PermissionDeniedError):
        service.register_company(BUYER_ID, "Initech")
    store.users[BUYER_ID].is_admin = True
    assert service.register_company(BUYER_ID, "Initech").owner_id == BUYER_ID


@pytest.mark.parametrize("name,email", [("A", None), ("acme", None), ("Globex", "not-an-email")])
def test_register_company_validation(service, name, email):
    with pytest.raises(ValidationError):
        service.register_company(OWNER_ID, name, email=email)


def test_get_owned_company(service):
    assert service.get_owned(OWNER_ID, 1).name == "Acme"
    with pytest.raises(PermissionDeniedError):
        service.get_owned(BUYER_ID, 1)
    with pytest.raises(NotFoundError):
        service.get_owned(OWNER_ID, 99)


def test_set_status(service, store):
    company = service.set_status(1, 1, STATUS_SUSPENDED)
    assert company.status == STATUS_SUSPENDED
    assert store.companies[1].status == STATUS_SUSPENDED
    with pytest.raises(ValidationError):
        service.set_status(1, 1, "closed")


def test_company_text_mentions_suspension(service, store):
    assert "suspended" not in service.company_text(1)
    store.companies[1].status = STATUS_SUSPENDED
    assert "suspended" in service.company_text(1)


def test_edit_company_fields(service, store):
    service.edit_company(OWNER_ID, 1, "name", "  Acme Corp ")
    service.edit_company(OWNER_ID, 1, "Email", "hi@acme.com")
    company = service.edit_company(OWNER_ID, 1, "description", "Tools and more")

    stored = store.companies[1]
    assert (stored.name, stored.email, stored.description) == ("Acme Corp", "hi@acme.com", "Tools and more")
    assert company.code_prefix == "AC"

    service.edit_company(OWNER_ID, 1, "email", "-")
    assert store.companies[1].email is None


def test_edit_company_keeps_own_name_case_change(service, store):
    service.edit_company(OWNER_ID, 1, "name", "ACME")
    assert store.companies[1].name == "ACME"


@pytest.mark.parametrize("field,value", [
    ("name", "B"),
    ("name", "beta"),
    ("email", "nope"),
    ("code_prefix", "ZZ"),
])
def test_edit_company_validation(service, store, field, value):
    store.add_company(BUYER_ID, "Beta", "BE")
    with pytest.raises(ValidationError):
        service.edit_company(OWNER_ID, 1, field, value)
    assert store.companies[1].name == "Acme"
    assert store.companies[1].code_prefix == "AC"


def test_only_owner_edits_company(service, store):
    with pytest.raises(PermissionDeniedError):
        service.edit_company(BUYER_ID, 1, "name", "Mine now")
    assert store.companies[1].name == "Acme"


def test_analytics_text(service, store, repos):
    sales = SaleService(
        user_repo=repos["user_repo"],
        product_repo=repos["product_repo"],
        referral_repo=repos["referral_repo"],
        settings_repo=repos["settings_repo"],
        ledger=repos["ledger"],
        company_repo=repos["company_repo"],
    )
    sales.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "AC-REF001")
    sales.record_sale("key-2", OWNER_ID, 1, "buyer", 2)

    text = service.analytics_text(OWNER_ID, 1)

    assert "Sales: 2 ($300.00)" in text
    assert "Last 30 days: 2 ($300.00)" in text
    assert "Sales with a code: 1" in text
    assert "Commissions paid: $2.50" in text
    assert "Codes issued: 1 (1 used)" in text
    assert "Widget: 3 sold, $300.00" in text
    assert "@referrer: 1 sales, $100.00" in text
    with pytest.raises(PermissionDeniedError):
        service.analytics_text(BUYER_ID, 1)
