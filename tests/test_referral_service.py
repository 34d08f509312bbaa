import pytest

from services.referral_service import ReferralService, month_start
from tests.conftest import BUYER_ID, REFERRER_ID
from utils.codes import CODE_PATTERN
from utils.errors import InvalidReferralCodeError, NotFoundError, ValidationError


@pytest.fixture
def service(repos):
    return ReferralService(
        referral_repo=repos["referral_repo"],
        company_repo=repos["company_repo"],
        user_repo=repos["user_repo"],
    )


def test_generate_code_uses_company_prefix(service, store):
    code = service.generate_code(1, BUYER_ID)

    assert CODE_PATTERN.match(code.code)
    assert code.code.startswith("AC-")
    assert code.active
    assert code.company_name == "Acme"
    assert store.codes[code.code].user_id == BUYER_ID
    assert (BUYER_ID, 1) in store.joined


def test_generated_codes_are_unique(service, store):
    codes = {service.generate_code(1, BUYER_ID).code for _ in range(20)}
    assert len(codes) == 20


def test_generate_code_for_unknown_or_suspended_company(service, store):
    with pytest.raises(NotFoundError):
        service.generate_code(42, BUYER_ID)
    store.companies[1].status = "suspended"
    with pytest.raises(ValidationError):
        service.generate_code(1, BUYER_ID)


def test_lookup_text_shows_state(service, store):
    text = service.lookup_text("ac-ref001")
    assert "Acme" in text
    assert "@referrer" in text
    assert "Active" in text

    store.codes["AC-REF001"].active = False
    assert "Used" in service.lookup_text("AC-REF001")


def test_lookup_unknown_or_malformed_code(service):
    with pytest.raises(InvalidReferralCodeError):
        service.lookup_text("AC-ZZZZZZ")
    with pytest.raises(InvalidReferralCodeError):
        service.lookup_text("hello")


def test_codes_text(service, store):
    assert "no referral codes" in service.codes_text(BUYER_ID)
    text = service.codes_text(REFERRER_ID)
    assert "AC-REF001" in text


def test_month_start():
    from datetime import datetime, timezone
    start = month_start(datetime(2024, 3, 17, 15, 30, tzinfo=timezone.utc))
    assert start == datetime(2024, 3, 1, tzinfo=timezone.utc)
