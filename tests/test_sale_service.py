from decimal import Decimal

import pytest

from models.company import STATUS_SUSPENDED
from models.product import STATUS_OUT_OF_STOCK
from services.sale_service import SaleService, parse_sale_args
from tests.conftest import BUYER_ID, OWNER_ID, REFERRER_ID
from tests.fakes import FakeLedgerTransaction
from utils.errors import (
    InsufficientStockError,
    InvalidReferralCodeError,
    NotFoundError,
    PermissionDeniedError,
    SelfReferralError,
    ValidationError,
)


@pytest.fixture
def service(repos):
    return SaleService(
        user_repo=repos["user_repo"],
        product_repo=repos["product_repo"],
        referral_repo=repos["referral_repo"],
        settings_repo=repos["settings_repo"],
        ledger=repos["ledger"],
        company_repo=repos["company_repo"],
    )


def _balances(store):
    return (
        store.products[1].quantity,
        store.companies[1].billing_balance,
        store.settings.platform_balance,
        store.users[BUYER_ID].coin_balance,
        store.users[REFERRER_ID].referral_balance,
        len(store.sales),
        len(store.referrals),
    )


def test_sale_with_referral_code_moves_all_balances(service, store):
    result = service.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "ac-ref001")

    assert not result.duplicate
    assert result.sale.amount == Decimal("100.00")
    assert result.remaining_stock == 4
    assert store.users[BUYER_ID].coin_balance == Decimal("1.00")
    assert store.users[REFERRER_ID].referral_balance == Decimal("2.50")
    assert store.companies[1].billing_balance == Decimal("95.00")
    assert store.settings.platform_balance == Decimal("1.50")

    code = store.codes["AC-REF001"]
    assert code.active is False
    assert code.used_by == BUYER_ID

    [referral] = store.referrals
    assert referral.sale_id == result.sale.id
    assert referral.referrer_id == REFERRER_ID
    assert referral.commission == Decimal("2.50")


def test_sale_without_code_pays_seller_all_but_platform_fee(service, store):
    result = service.record_sale("key-1", OWNER_ID, 1, "buyer", 2)

    assert result.sale.amount == Decimal("200.00")
    assert result.sale.referral_code is None
    assert store.companies[1].billing_balance == Decimal("197.00")
    assert store.users[BUYER_ID].coin_balance == Decimal("0.00")
    assert store.referrals == []


def test_referral_code_is_single_use(service, store):
    service.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "AC-REF001")
    before = _balances(store)

    with pytest.raises(InvalidReferralCodeError):
        service.record_sale("key-2", OWNER_ID, 1, "buyer", 1, "AC-REF001")
    assert _balances(store) == before


def test_buyer_cannot_use_own_code(service, store):
    store.add_code("AC-OWN001", BUYER_ID, 1)
    before = _balances(store)

    with pytest.raises(SelfReferralError):
        service.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "AC-OWN001")
    assert _balances(store) == before
    assert store.codes["AC-OWN001"].active is True


def test_code_of_another_company_is_rejected(service, store):
    other = store.add_company(OWNER_ID, "Beta", "BE")
    store.add_code("BE-REF001", REFERRER_ID, other.id)

    with pytest.raises(InvalidReferralCodeError):
        service.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "BE-REF001")
    assert store.codes["BE-REF001"].active is True


def test_same_sale_key_is_applied_once(service, store):
    first = service.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "AC-REF001")
    second = service.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "AC-REF001")

    assert second.duplicate
    assert second.sale.id == first.sale.id
    assert store.products[1].quantity == 4
    assert store.companies[1].billing_balance == Decimal("95.00")
    assert len(store.sales) == 1


def _find_sale_missing_for(monkeypatch, lookups):
    """find_sale answers None for the first `lookups` calls, as if the other commit was not visible yet."""
    real_find = FakeLedgerTransaction.find_sale
    calls = []

    def find_sale(self, sale_key):
        calls.append(sale_key)
        return None if len(calls) <= lookups else real_find(self, sale_key)

    monkeypatch.setattr(FakeLedgerTransaction, "find_sale", find_sale)
    return calls


def test_confirmation_waiting_on_product_lock_sees_committed_sale(service, store, monkeypatch):
    first = service.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "AC-REF001")
    before = _balances(store)
    _find_sale_missing_for(monkeypatch, 1)

    second = service.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "AC-REF001")

    assert second.duplicate
    assert second.sale.id == first.sale.id
    assert _balances(store) == before


def test_unique_violation_on_sale_key_returns_stored_sale(service, store, repos, monkeypatch):
    first = service.record_sale("key-1", OWNER_ID, 1, "buyer", 2)
    before = _balances(store)
    calls = _find_sale_missing_for(monkeypatch, 2)

    second = service.record_sale("key-1", OWNER_ID, 1, "buyer", 2)

    assert second.duplicate
    assert second.sale.id == first.sale.id
    assert len(calls) == 3
    assert _balances(store) == before
    assert repos["ledger"].rollbacks == 1


def test_sale_cannot_exceed_stock(service, store):
    with pytest.raises(InsufficientStockError):
        service.record_sale("key-1", OWNER_ID, 1, "buyer", 6)
    assert store.products[1].quantity == 5


def test_selling_last_units_marks_product_out_of_stock(service, store):
    result = service.record_sale("key-1", OWNER_ID, 1, "buyer", 5)
    assert result.remaining_stock == 0
    assert store.products[1].status == STATUS_OUT_OF_STOCK


def test_only_owner_can_record_sale(service, store):
    with pytest.raises(PermissionDeniedError):
        service.record_sale("key-1", REFERRER_ID, 1, "buyer", 1)


def test_admin_can_record_sale_for_any_company(service, store):
    store.users[REFERRER_ID].is_admin = True
    result = service.record_sale("key-1", REFERRER_ID, 1, "buyer", 1)
    assert result.sale.seller_id == REFERRER_ID


def test_suspended_company_cannot_sell(service, store):
    store.companies[1].status = "suspended"
    with pytest.raises(ValidationError):
        service.record_sale("key-1", OWNER_ID, 1, "buyer", 1)


def test_unknown_or_banned_buyer_is_rejected(service, store):
    with pytest.raises(NotFoundError):
        service.record_sale("key-1", OWNER_ID, 1, "nobody", 1)
    store.users[BUYER_ID].banned = True
    with pytest.raises(PermissionDeniedError):
        service.record_sale("key-1", OWNER_ID, 1, "buyer", 1)


def test_failure_mid_sale_rolls_everything_back(service, store, repos, monkeypatch):
    def boom(self, amount):
        raise RuntimeError("connection lost")

    monkeypatch.setattr(FakeLedgerTransaction, "credit_platform", boom)
    before = _balances(store)

    with pytest.raises(RuntimeError):
        service.record_sale("key-1", OWNER_ID, 1, "buyer", 1, "AC-REF001")

    assert _balances(store) == before
    assert store.codes["AC-REF001"].active is True
    assert repos["ledger"].rollbacks == 1


def test_preview_writes_nothing(service, store):
    request = parse_sale_args(["1", "@buyer", "2", "AC-REF001"])
    before = _balances(store)

    text = service.preview_sale(OWNER_ID, request)

    assert "$200.00" in text
    assert "$190.00" in text
    assert _balances(store) == before


def test_preview_rejects_seller_who_does_not_own_the_company(service):
    request = parse_sale_args(["1", "@buyer", "1"])
    with pytest.raises(PermissionDeniedError):
        service.preview_sale(REFERRER_ID, request)


def test_preview_rejects_suspended_company(service, store):
    store.companies[1].status = STATUS_SUSPENDED
    with pytest.raises(ValidationError):
        service.preview_sale(OWNER_ID, parse_sale_args(["1", "@buyer", "1"]))


def test_parse_sale_args():
    request = parse_sale_args(["12", "@Alice", "3", "ab-7k2q9x"])
    assert request.product_id == 12
    assert request.buyer_username == "alice"
    assert request.quantity == 3
    assert request.referral_code == "AB-7K2Q9X"


@pytest.mark.parametrize("args", [[], ["1", "@a"], ["x", "@a", "1"], ["1", "@a", "0"]])
def test_parse_sale_args_rejects_bad_input(args):
    with pytest.raises(ValidationError):
        parse_sale_args(args)


def test_parse_sale_args_rejects_malformed_code():
    with pytest.raises(InvalidReferralCodeError):
        parse_sale_args(["1", "@a", "1", "NOTACODE"])


def test_fee_calculator_text(service):
    text = service.fee_calculator_text(Decimal("100"))
    assert "$95.00" in text
    assert "$98.50" in text
