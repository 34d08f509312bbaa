from decimal import Decimal

import pytest

from services.sale_service import SaleService
from services.user_service import UserService
from tests.conftest import BUYER_ID, OWNER_ID
from utils.errors import NotFoundError, ValidationError


@pytest.fixture
def service(repos):
    return UserService(
        user_repo=repos["user_repo"],
        product_repo=repos["product_repo"],
        referral_repo=repos["referral_repo"],
        sale_repo=repos["sale_repo"],
    )


def test_register_moves_username_to_new_owner(service, store):
    service.register(555, "New", None, "Buyer")
    assert store.users[555].username == "buyer"
    assert store.users[BUYER_ID].username is None


def test_favorites(service):
    assert "Added" in service.add_favorite(BUYER_ID, 1)
    assert "already" in service.add_favorite(BUYER_ID, 1)
    assert "Widget" in service.favorites_text(BUYER_ID)
    assert "Removed" in service.remove_favorite(BUYER_ID, 1)
    assert "no favorites" in service.favorites_text(BUYER_ID)


def test_cart_total_and_clear(service, store):
    store.add_product(1, "Gizmo", Decimal("20.50"), 1)
    service.add_to_cart(BUYER_ID, 1)
    service.add_to_cart(BUYER_ID, 2)
    assert "$120.50" in service.cart_text(BUYER_ID)
    assert "cleared" in service.remove_from_cart(BUYER_ID)
    assert "empty" in service.cart_text(BUYER_ID)


def test_out_of_stock_cannot_go_to_cart(service, store):
    store.add_product(1, "Gone", Decimal("5"), 0)
    with pytest.raises(ValidationError):
        service.add_to_cart(BUYER_ID, 2)
    with pytest.raises(NotFoundError):
        service.add_to_cart(BUYER_ID, 99)


def test_profile_text(service, store):
    store.users[BUYER_ID].coin_balance = Decimal("3.00")
    text = service.profile_text(BUYER_ID)
    assert "$3.00" in text
    with pytest.raises(NotFoundError):
        service.profile_text(12345)


def _sell(repos, sale_key, quantity, code=None):
    SaleService(
        user_repo=repos["user_repo"],
        product_repo=repos["product_repo"],
        referral_repo=repos["referral_repo"],
        settings_repo=repos["settings_repo"],
        ledger=repos["ledger"],
        company_repo=repos["company_repo"],
    ).record_sale(sale_key, OWNER_ID, 1, "buyer", quantity, code)


def test_purchase_history_lists_sales_with_code_and_bonus(service, repos):
    assert "no purchases" in service.purchase_history_text(BUYER_ID)
    _sell(repos, "key-1", 1, "AC-REF001")
    _sell(repos, "key-2", 2)

    text = service.purchase_history_text(BUYER_ID)

    assert "(2)" in text
    assert "Widget" in text and "Acme" in text
    assert "$200.00" in text
    assert "`AC-REF001`" in text
    assert "+$1.00" in text
    assert text.index("$200.00") < text.index("$100.00")


def test_purchase_history_is_limited_to_latest(service, repos):
    for i in range(3):
        _sell(repos, f"key-{i}", 1)
    text = service.purchase_history_text(BUYER_ID, limit=2)
    assert "(3)" in text
    assert "latest 2" in text
