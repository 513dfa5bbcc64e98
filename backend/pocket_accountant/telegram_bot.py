"""Telegram front-end for the Pocket Accountant bot."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from telegram import (
    CallbackQuery,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    Update,
)
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .chat_platform import (
    BotContext,
    BotMessage,
    BotPlatform,
    BotUser,
    CallbackHandler,
    ContextHandler,
    ReplyOptions,
)
from .config import Settings, get_settings
from .db import Base, SessionLocal, engine
from .handler import BotHandler
from .migrations import run_migrations
from .services import BudgetService
from .state import MessageTracker, PendingIntentStore

logger = logging.getLogger(__name__)

# Edited messages are not new conversation turns.
_NEW_TEXT = filters.TEXT & filters.UpdateType.MESSAGE

_PARSE_MODES = {
    "Markdown": ParseMode.MARKDOWN,
    "HTML": ParseMode.HTML,
    "Plain": None,
}


class TelegramBotAdapter(BotPlatform):
    """``BotPlatform`` backed by a python-telegram-bot ``Application``."""

    def __init__(self, application: Application) -> None:
        self.application = application
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # Outbound

    async def send_message(
        self, chat_id: int | str, text: str, options: ReplyOptions | None = None
    ) -> BotMessage:
        message = await self.application.bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=self._parse_mode(options),
            reply_markup=self._reply_markup(options),
        )
        return BotMessage(message_id=message.message_id, chat_id=message.chat_id, text=message.text)

    async def edit_message(
        self,
        chat_id: int | str,
        message_id: int | str,
        text: str,
        options: ReplyOptions | None = None,
    ) -> None:
        inline_markup = None
        if options is not None and options.inline_keyboard:
            inline_markup = self._inline_markup(options)
        await self.application.bot.edit_message_text(
            text=text,
            chat_id=chat_id,
            message_id=int(message_id),
            parse_mode=self._parse_mode(options),
            reply_markup=inline_markup,
        )

    async def delete_message(self, chat_id: int | str, message_id: int | str) -> None:
        await self.application.bot.delete_message(chat_id=chat_id, message_id=int(message_id))

    async def answer_callback_query(self, callback_query_id: int | str, text: str | None = None) -> None:
        await self.application.bot.answer_callback_query(callback_query_id=str(callback_query_id), text=text)

    # Inbound

    def on_start(self, handler: ContextHandler) -> None:
        self.application.add_handler(
            CommandHandler("start", self._wrap(handler), filters=filters.UpdateType.MESSAGE)
        )

    def on_command(self, command: str, handler: ContextHandler) -> None:
        self.application.add_handler(
            CommandHandler(command, self._wrap(handler), filters=filters.UpdateType.MESSAGE)
        )

    def on_text(self, text: str, handler: ContextHandler) -> None:
        self.application.add_handler(
            MessageHandler(_NEW_TEXT & filters.Regex(f"^{re.escape(text)}$"), self._wrap(handler))
        )

    def on_callback_query(self, handler: CallbackHandler) -> None:
        self.application.add_handler(CallbackQueryHandler(self._wrap_callback(handler)))

    def on_any_text(self, handler: ContextHandler) -> None:
        self.application.add_handler(MessageHandler(_NEW_TEXT & ~filters.COMMAND, self._wrap(handler)))

    async def handle_update(self, payload: dict[str, Any]) -> None:
        """Process a single update received through the webhook."""
        async with self._init_lock:
            if not self._initialized:
                await self.application.initialize()
                self._initialized = True

        update = Update.de_json(payload, self.application.bot)
        await self.application.process_update(update)

    # Helpers

    def _wrap(self, handler: ContextHandler):
        async def callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
            bot_context = self._message_context(update)
            if bot_context is None:
                logger.debug("Skipping update %s without user or message", update.update_id)
                return
            await handler(bot_context)

        return callback

    def _wrap_callback(self, handler: CallbackHandler):
        async def callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
            query = update.callback_query
            if query is None:
                return
            try:
                bot_context = self._callback_context(query)
                if bot_context is None:
                    logger.debug("Skipping callback %s without a message", query.id)
                else:
                    await handler(bot_context, query.data or "")
            finally:
                try:
                    await self.answer_callback_query(query.id)
                except TelegramError as exc:
                    logger.debug("Could not answer callback query %s: %s", query.id, exc)

        return callback

    @staticmethod
    def _message_context(update: Update) -> BotContext | None:
        user = update.effective_user
        message = update.effective_message
        chat = update.effective_chat
        if user is None or message is None or chat is None:
            return None
        return BotContext(
            user=BotUser(platform_id=str(user.id), first_name=user.first_name, username=user.username),
            message=BotMessage(message_id=message.message_id, chat_id=chat.id, text=message.text),
            chat_id=chat.id,
        )

    @staticmethod
    def _callback_context(query: CallbackQuery) -> BotContext | None:
        message = query.message
        if message is None:
            return None
        user = query.from_user
        return BotContext(
            user=BotUser(platform_id=str(user.id), first_name=user.first_name, username=user.username),
            message=BotMessage(message_id=message.message_id, chat_id=message.chat.id),
            chat_id=message.chat.id,
        )

    @staticmethod
    def _parse_mode(options: ReplyOptions | None) -> str | None:
        if options is None or options.parse_mode is None:
            return None
        return _PARSE_MODES[options.parse_mode]

    @staticmethod
    def _inline_markup(options: ReplyOptions) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(
            [
                [InlineKeyboardButton(button.text, callback_data=button.callback_data) for button in row]
                for row in options.inline_keyboard or []
            ]
        )

    @classmethod
    def _reply_markup(cls, options: ReplyOptions | None) -> InlineKeyboardMarkup | ReplyKeyboardMarkup | None:
        if options is None:
            return None
        if options.inline_keyboard:
            return cls._inline_markup(options)
        if options.keyboard:
            return ReplyKeyboardMarkup(
                [[KeyboardButton(button.text) for button in row] for row in options.keyboard],
                resize_keyboard=True,
            )
        return None


def build_bot(settings: Settings | None = None) -> TelegramBotAdapter:
    settings = settings or get_settings()
    if not settings.bot_token:
        raise RuntimeError("BOT_TOKEN is missing from configuration.")

    application = ApplicationBuilder().token(settings.bot_token).build()
    adapter = TelegramBotAdapter(application)
    handler = BotHandler(
        platform=adapter,
        service=BudgetService(SessionLocal, settings),
        pending_store=PendingIntentStore(),
        message_tracker=MessageTracker(),
    )
    handler.register_handlers()
    return adapter


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not settings.bot_token:
        raise SystemExit("Please set BOT_TOKEN in the environment to run the bot.")

    Base.metadata.create_all(bind=engine)
    run_migrations(engine)

    adapter = build_bot(settings)
    logger.info("Starting Telegram bot...")
    adapter.application.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
