from datetime import datetime, timezone

import pytest
from telegram import Chat, Message, MessageEntity, Update, User
from telegram.ext import CommandHandler, MessageHandler

import main


def _update(text: str, edited: bool = False) -> Update:
    now = datetime.now(timezone.utc)
    entities = None
    if text.startswith("/"):
        entities = [MessageEntity(MessageEntity.BOT_COMMAND, 0, len(text.split()[0]))]
    message = Message(
        message_id=1,
        date=now,
        chat=Chat(id=300, type=Chat.PRIVATE),
        from_user=User(id=300, first_name="Buyer", is_bot=False),
        text=text,
        entities=entities,
        edit_date=now if edited else None,
    )
    if edited:
        return Update(update_id=2, edited_message=message)
    return Update(update_id=1, message=message)


@pytest.fixture
def registered(monkeypatch):
    monkeypatch.setattr(main, "BOT_TOKEN", "123456:TEST-TOKEN")
    app = main.build_application()
    return [h for group in app.handlers.values() for h in group]


def test_every_command_is_registered(registered):
    commands = set()
    for h in registered:
        if isinstance(h, CommandHandler):
            commands |= set(h.commands)
    assert commands == {name for name, _, _ in main.COMMANDS}


def test_edited_text_message_is_not_handled(registered):
    [text_handler] = [h for h in registered if isinstance(h, MessageHandler)]
    assert text_handler.check_update(_update("AC-REF001"))
    assert not text_handler.check_update(_update("AC-REF001", edited=True))


@pytest.mark.parametrize("text", ["/withdraw 1 10", "/broadcast hi all", "/billing_withdraw 1 50"])
def test_edited_commands_do_not_run_again(registered, text):
    command_handlers = [h for h in registered if isinstance(h, CommandHandler)]
    assert command_handlers
    for h in command_handlers:
        assert h.filters.check_update(_update(text))
        assert not h.filters.check_update(_update(text, edited=True))


def test_edited_messages_are_not_requested_from_telegram():
    assert Update.EDITED_MESSAGE not in main.ALLOWED_UPDATES
    assert Update.MESSAGE in main.ALLOWED_UPDATES
    assert Update.CALLBACK_QUERY in main.ALLOWED_UPDATES
