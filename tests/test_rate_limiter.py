from types import SimpleNamespace

import pytest

from security import rate_limiter
from tests.fakes import make_context, make_update


def test_limit_applies_per_user(monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_MESSAGES", 3)
    assert [rate_limiter.is_rate_limited(1) for _ in range(4)] == [False, False, False, True]
    assert rate_limiter.is_rate_limited(2) is False


def test_old_requests_expire(monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_MESSAGES", 1)
    clock = iter([1000.0, 1001.0, 1100.0])
    monkeypatch.setattr(rate_limiter, "time", SimpleNamespace(time=lambda: next(clock)))

    assert rate_limiter.is_rate_limited(1) is False
    assert rate_limiter.is_rate_limited(1) is True
    assert rate_limiter.is_rate_limited(1) is False


@pytest.mark.asyncio
async def test_decorator_replies_when_limited(monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_MESSAGES", 1)
    calls = []

    @rate_limiter.rate_limited
    async def handler(update, context):
        calls.append(1)

    update = make_update(5)
    await handler(update, make_context())
    await handler(update, make_context())

    assert calls == [1]
    update.effective_message.reply_text.assert_awaited_once_with(rate_limiter.RATE_LIMIT_MESSAGE)
