"""Chat-platform abstraction used by the conversation handler.

The handler only talks to ``BotPlatform``; a concrete adapter translates a
messaging SDK's updates into ``BotContext`` objects and the handler's
replies back into SDK calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Literal

ParseMode = Literal["Markdown", "HTML", "Plain"]


@dataclass(frozen=True)
class BotUser:
    platform_id: str
    first_name: str | None = None
    username: str | None = None


@dataclass(frozen=True)
class BotMessage:
    message_id: int | str
    chat_id: int | str
    text: str | None = None


@dataclass(frozen=True)
class BotContext:
    user: BotUser
    message: BotMessage
    chat_id: int | str


@dataclass(frozen=True)
class KeyboardButton:
    text: str


@dataclass(frozen=True)
class InlineKeyboardButton:
    text: str
    callback_data: str


@dataclass
class ReplyOptions:
    parse_mode: ParseMode | None = None
    keyboard: list[list[KeyboardButton]] | None = None
    inline_keyboard: list[list[InlineKeyboardButton]] | None = field(default=None)


ContextHandler = Callable[[BotContext], Awaitable[None]]
CallbackHandler = Callable[[BotContext, str], Awaitable[None]]


class BotPlatform(ABC):
    """Inbound event registration and outbound messaging for one chat platform."""

    @abstractmethod
    async def send_message(
        self, chat_id: int | str, text: str, options: ReplyOptions | None = None
    ) -> BotMessage:
        """Send a new message and return its identifiers."""

    @abstractmethod
    async def edit_message(
        self,
        chat_id: int | str,
        message_id: int | str,
        text: str,
        options: ReplyOptions | None = None,
    ) -> None:
        """Replace the text of an existing message."""

    @abstractmethod
    async def delete_message(self, chat_id: int | str, message_id: int | str) -> None:
        """Delete a message."""

    @abstractmethod
    async def answer_callback_query(self, callback_query_id: int | str, text: str | None = None) -> None:
        """Acknowledge an inline button press.

        Adapters call this once the callback handler has returned or raised, so
        handlers never acknowledge presses themselves.
        """

    @abstractmethod
    def on_start(self, handler: ContextHandler) -> None:
        """Register the handler for the start command."""

    @abstractmethod
    def on_command(self, command: str, handler: ContextHandler) -> None:
        """Register the handler for a slash command."""

    @abstractmethod
    def on_text(self, text: str, handler: ContextHandler) -> None:
        """Register the handler for an exact text, e.g. a reply keyboard button."""

    @abstractmethod
    def on_callback_query(self, handler: CallbackHandler) -> None:
        """Register the handler for inline button presses."""

    @abstractmethod
    def on_any_text(self, handler: ContextHandler) -> None:
        """Register the fallback handler for every other text message."""
