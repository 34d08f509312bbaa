import pytest

from handlers import callback_router
from handlers.keyboards import CallbackData, cb
from security.auth import ADMIN_ONLY_MESSAGE
from services.user_service import UserService
from tests.conftest import BUYER_ID, OWNER_ID
from tests.fakes import FakeUserRepo, make_context, make_update
from utils.errors import NotFoundError


@pytest.fixture(autouse=True)
def fake_users(store, monkeypatch):
    monkeypatch.setattr(callback_router, "user_service", UserService(user_repo=FakeUserRepo(store)))


def test_callback_data_parse_and_pack():
    data = CallbackData.parse("sale:ok:abc123")
    assert data.action == "sale"
    assert data.args == ("ok", "abc123")
    assert data.arg(0) == "ok"
    assert data.arg(5, "x") == "x"
    assert data.pack() == "sale:ok:abc123"
    assert cb("wd", "approve", 5) == "wd:approve:5"
    assert CallbackData.parse("wd:approve:5").int_arg(1) == 5


def test_callback_data_limits():
    with pytest.raises(ValueError):
        CallbackData.parse("")
    with pytest.raises(ValueError):
        CallbackData.parse(":x")
    with pytest.raises(ValueError):
        cb("sale", "ok", "x" * 70)


def test_every_keyboard_action_has_a_route():
    for action in ("browse", "product", "company", "fav", "cart", "code", "lb", "sale", "wd", "billing", "admin"):
        assert action in callback_router.ROUTES
    assert callback_router.ADMIN_ACTIONS <= set(callback_router.ROUTES)


@pytest.mark.asyncio
async def test_dispatch_runs_route_and_answers_once():
    seen = []

    async def route(update, context, data):
        seen.append(data.int_arg(0))

    update = make_update(BUYER_ID, data="product:7")
    await callback_router.dispatch(update, make_context(), {"product": route})

    assert seen == [7]
    update.callback_query.answer.assert_awaited_once_with()


@pytest.mark.asyncio
async def test_dispatch_unknown_action():
    update = make_update(BUYER_ID, data="teleport:1")
    await callback_router.dispatch(update, make_context(), {})
    update.callback_query.answer.assert_awaited_once_with(callback_router.STALE_BUTTON_MESSAGE, show_alert=True)


@pytest.mark.asyncio
async def test_dispatch_bad_arguments():
    async def route(update, context, data):
        data.int_arg(0)

    update = make_update(BUYER_ID, data="product:abc")
    await callback_router.dispatch(update, make_context(), {"product": route})
    update.callback_query.answer.assert_awaited_once_with(callback_router.STALE_BUTTON_MESSAGE, show_alert=True)


@pytest.mark.asyncio
async def test_dispatch_shows_marketplace_errors_as_alert():
    async def route(update, context, data):
        raise NotFoundError("❌ Product #3 not found in my\\_list.")

    update = make_update(BUYER_ID, data="product:3")
    await callback_router.dispatch(update, make_context(), {"product": route})
    update.callback_query.answer.assert_awaited_once_with("❌ Product #3 not found in my_list.", show_alert=True)


@pytest.mark.asyncio
async def test_dispatch_checks_admin_actions(store):
    seen = []

    async def route(update, context, data):
        seen.append(update.effective_user.id)

    routes = {"admin": route}
    denied = make_update(BUYER_ID, data="admin:stats")
    await callback_router.dispatch(denied, make_context(), routes)
    store.users[OWNER_ID].is_admin = True
    await callback_router.dispatch(make_update(OWNER_ID, data="admin:stats"), make_context(), routes)

    assert seen == [OWNER_ID]
    denied.callback_query.answer.assert_awaited_once_with(ADMIN_ONLY_MESSAGE, show_alert=True)


@pytest.mark.asyncio
async def test_unexpected_errors_propagate():
    async def route(update, context, data):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await callback_router.dispatch(make_update(BUYER_ID, data="product:1"), make_context(), {"product": route})


@pytest.mark.asyncio
async def test_error_alert_is_plain_text_within_telegram_limit():
    async def route(update, context, data):
        raise NotFoundError("❌ Only 2 unit(s) of *Widget* left. " + "x" * 300)

    update = make_update(BUYER_ID, data="product:3")
    await callback_router.dispatch(update, make_context(), {"product": route})

    text = update.callback_query.answer.await_args.args[0]
    assert text.startswith("❌ Only 2 unit(s) of Widget left.")
    assert "*" not in text
    assert len(text) == callback_router.MAX_ALERT_CHARS


@pytest.mark.asyncio
async def test_admin_directory_buttons_page_and_open_details(store, repos, monkeypatch):
    from handlers import admin_handler
    from services.admin_service import DIRECTORY_PAGE_SIZE, AdminService

    monkeypatch.setattr(admin_handler, "admin_service", AdminService(
        user_repo=repos["user_repo"],
        company_repo=repos["company_repo"],
        sale_repo=repos["sale_repo"],
        referral_repo=repos["referral_repo"],
        product_repo=repos["product_repo"],
    ))
    for i in range(DIRECTORY_PAGE_SIZE):
        store.add_user(1000 + i)

    update = make_update(OWNER_ID, data="admin:users:1")
    await admin_handler.admin_callback(update, make_context(), CallbackData.parse("admin:users:1"))
    text = update.callback_query.edit_message_text.await_args.args[0]
    markup = update.callback_query.edit_message_text.await_args.kwargs["reply_markup"]
    assert "page 2/2" in text
    assert markup.inline_keyboard[-1][0].callback_data == "admin:users:0"
    assert markup.inline_keyboard[0][0].callback_data.startswith("admin:user:")

    update = make_update(OWNER_ID, data="admin:co:1")
    await admin_handler.admin_callback(update, make_context(), CallbackData.parse("admin:co:1"))
    assert "Acme" in update.callback_query.message.reply_text.await_args.args[0]
