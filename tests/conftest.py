"""Shared fixtures: an isolated SQLite database, a fixed clock and a fake chat platform."""

from __future__ import annotations

import itertools
import os
from datetime import datetime

import pytest

# Must be set before the application modules build their engine and settings.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEFAULT_CURRENCY"] = "RUB"

from pocket_accountant import models  # noqa: E402, F401
from pocket_accountant.chat_platform import (  # noqa: E402
    BotContext,
    BotMessage,
    BotPlatform,
    BotUser,
    CallbackHandler,
    ContextHandler,
    ReplyOptions,
)
from pocket_accountant.config import get_settings  # noqa: E402
from pocket_accountant.db import Base, build_engine, build_session_factory  # noqa: E402
from pocket_accountant.handler import BotHandler  # noqa: E402
from pocket_accountant.services import BudgetService  # noqa: E402

# Wednesday
FIXED_NOW = datetime(2024, 5, 15, 12, 0)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakePlatform(BotPlatform):
    """Records outbound messages and dispatches inbound events like the Telegram adapter."""

    def __init__(self, user_id: str = "42", chat_id: int = 42) -> None:
        self.user = BotUser(platform_id=user_id, first_name="Alex", username="alex")
        self.chat_id = chat_id
        self.sent: list[tuple[int | str, str, ReplyOptions | None]] = []
        self.edited: list[tuple[int | str, int | str, str]] = []
        self.deleted: list[int | str] = []
        self.answered: list[int | str] = []
        self.fail_next_send = False
        self.fail_edits = False
        self._ids = itertools.count(1000)
        self._start: ContextHandler | None = None
        self._commands: dict[str, ContextHandler] = {}
        self._texts: dict[str, ContextHandler] = {}
        self._callback: CallbackHandler | None = None
        self._any_text: ContextHandler | None = None

    async def send_message(self, chat_id, text, options=None) -> BotMessage:
        if self.fail_next_send:
            self.fail_next_send = False
            raise RuntimeError("network down")
        self.sent.append((chat_id, text, options))
        return BotMessage(message_id=next(self._ids), chat_id=chat_id, text=text)

    async def edit_message(self, chat_id, message_id, text, options=None) -> None:
        if self.fail_edits:
            raise RuntimeError("message is too old")
        self.edited.append((chat_id, message_id, text))

    async def delete_message(self, chat_id, message_id) -> None:
        self.deleted.append(message_id)

    async def answer_callback_query(self, callback_query_id, text=None) -> None:
        self.answered.append(callback_query_id)

    def on_start(self, handler: ContextHandler) -> None:
        self._start = handler

    def on_command(self, command: str, handler: ContextHandler) -> None:
        self._commands[command] = handler

    def on_text(self, text: str, handler: ContextHandler) -> None:
        self._texts[text] = handler

    def on_callback_query(self, handler: CallbackHandler) -> None:
        self._callback = handler

    def on_any_text(self, handler: ContextHandler) -> None:
        self._any_text = handler

    # Simulated user actions

    def _context(self, text: str | None = None, message_id: int = 1) -> BotContext:
        return BotContext(
            user=self.user,
            message=BotMessage(message_id=message_id, chat_id=self.chat_id, text=text),
            chat_id=self.chat_id,
        )

    async def type(self, text: str) -> None:
        ctx = self._context(text)
        if text.startswith("/"):
            command = text.split()[0][1:]
            if command == "start":
                await self._start(ctx)
            elif command in self._commands:
                await self._commands[command](ctx)
            return
        if text in self._texts:
            await self._texts[text](ctx)
            return
        await self._any_text(ctx)

    async def press(self, data: str, message_id: int = 1) -> None:
        try:
            await self._callback(self._context(message_id=message_id), data)
        finally:
            await self.answer_callback_query(f"press-{message_id}")

    @property
    def texts(self) -> list[str]:
        return [text for _, text, _ in self.sent]

    @property
    def last_text(self) -> str:
        return self.sent[-1][1]

    @property
    def last_options(self) -> ReplyOptions | None:
        return self.sent[-1][2]

    def button_data(self, label_suffix: str) -> str:
        """Callback data of the inline button in the last message whose label ends with ``label_suffix``."""
        for row in self.last_options.inline_keyboard or []:
            for button in row:
                if button.text.endswith(label_suffix):
                    return button.callback_data
        raise AssertionError(f"No inline button ending with {label_suffix!r}")


@pytest.fixture()
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'pocket.db'}")
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture()
def service(session_factory, clock):
    return BudgetService(session_factory, get_settings(), clock=clock)


@pytest.fixture()
def platform():
    return FakePlatform()


@pytest.fixture()
def handler(platform, service):
    bot = BotHandler(platform, service)
    bot.register_handlers()
    return bot
