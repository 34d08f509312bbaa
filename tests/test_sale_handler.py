from unittest.mock import AsyncMock

import pytest

from handlers import sale_handler
from handlers.keyboards import CallbackData
from services.referral_service import ReferralService
from services.sale_service import SaleService, parse_sale_args
from tests.conftest import BUYER_ID, OWNER_ID, REFERRER_ID
from tests.fakes import make_context, make_update
from utils.errors import InvalidReferralCodeError


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.notify_admins = AsyncMock(return_value=0)

    async def send(self, bot, chat_id, text, **kwargs):
        self.sent.append((chat_id, text))
        return True


@pytest.fixture
def notifier(repos, monkeypatch):
    notifier = RecordingNotifier()
    monkeypatch.setattr(sale_handler, "sale_service", SaleService(
        user_repo=repos["user_repo"],
        product_repo=repos["product_repo"],
        referral_repo=repos["referral_repo"],
        settings_repo=repos["settings_repo"],
        ledger=repos["ledger"],
        company_repo=repos["company_repo"],
    ))
    monkeypatch.setattr(sale_handler, "referral_service", ReferralService(
        referral_repo=repos["referral_repo"],
        company_repo=repos["company_repo"],
        user_repo=repos["user_repo"],
    ))
    monkeypatch.setattr(sale_handler, "notification_service", notifier)
    return notifier


def _pending(code=None):
    args = ["1", "@buyer", "1"] + ([code] if code else [])
    return {sale_handler.PENDING_SALE_KEY: {"key": "k1", "request": parse_sale_args(args)}}


@pytest.mark.asyncio
async def test_confirm_records_sale_and_notifies(store, notifier):
    context = make_context(user_data=_pending("AC-REF001"))
    update = make_update(OWNER_ID, "owner", data="sale:ok:k1")

    await sale_handler.sale_callback(update, context, CallbackData.parse("sale:ok:k1"))

    assert len(store.sales) == 1
    assert sale_handler.PENDING_SALE_KEY not in context.user_data
    recipients = [chat_id for chat_id, _ in notifier.sent]
    # Receipt and a fresh referral code for the buyer, then the referrer's alert.
    assert recipients == [BUYER_ID, BUYER_ID, REFERRER_ID]
    assert "Here is your new referral code" in notifier.sent[1][1]
    notifier.notify_admins.assert_awaited_once()


@pytest.mark.asyncio
async def test_second_confirm_press_does_not_record_again(store, notifier):
    context = make_context(user_data=_pending())
    data = CallbackData.parse("sale:ok:k1")

    await sale_handler.sale_callback(make_update(OWNER_ID, data="sale:ok:k1"), context, data)
    second = make_update(OWNER_ID, data="sale:ok:k1")
    await sale_handler.sale_callback(second, context, data)

    assert len(store.sales) == 1
    assert store.products[1].quantity == 4
    assert "expired" in second.callback_query.edit_message_text.await_args.args[0]


@pytest.mark.asyncio
async def test_cancel_discards_pending_sale(store, notifier):
    context = make_context(user_data=_pending())
    update = make_update(OWNER_ID, data="sale:cancel:k1")

    await sale_handler.sale_callback(update, context, CallbackData.parse("sale:cancel:k1"))

    assert store.sales == {}
    assert context.user_data == {}


@pytest.mark.asyncio
async def test_rejected_sale_clears_pending_and_raises(store, notifier):
    store.codes["AC-REF001"].active = False
    context = make_context(user_data=_pending("AC-REF001"))

    with pytest.raises(InvalidReferralCodeError):
        await sale_handler.sale_callback(
            make_update(OWNER_ID, data="sale:ok:k1"), context, CallbackData.parse("sale:ok:k1")
        )
    assert context.user_data == {}
    assert store.sales == {}
