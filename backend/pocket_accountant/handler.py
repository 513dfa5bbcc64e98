"""Conversation handler for the budget bot.

Works with any chat platform through ``BotPlatform``. The pending intent of
each user decides how a free-text message is interpreted; menu commands and
buttons always reset it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from telegram.helpers import escape_markdown

from .chat_platform import (
    BotContext,
    BotMessage,
    BotPlatform,
    ContextHandler,
    InlineKeyboardButton,
    KeyboardButton,
    ParseMode,
    ReplyOptions,
)
from .domain.advice import build_recommendations
from .domain.entities import Category, User
from .domain.reports import money, render_limit_line, render_stats
from .errors import InputError, InternalError, InvalidAmount, NotFound
from .parsing import LIMIT_AMOUNT_HINT, parse_amount, parse_limit_input, parse_purchase_input
from .services import BudgetService
from .state import (
    AddPurchase,
    AddPurchaseAmount,
    AddPurchaseNote,
    MessageTracker,
    PendingIntentStore,
    SetLimit,
    SetLimitAmount,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESTART_BUTTON = "🔄 Restart"
ADD_PURCHASE_BUTTON = "➕ Add expense"
STATS_BUTTON = "📊 Statistics"
LIMITS_BUTTON = "🎯 Limits"
ADVICE_BUTTON = "🧠 Tips"
RESET_STATS_BUTTON = "🗑️ Reset statistics"

SELECT_CATEGORY_PREFIX = "select_category:"
SELECT_LIMIT_CATEGORY_PREFIX = "select_limit_category:"
RESET_STATS_CONFIRM = "reset_stats_confirm"
RESET_STATS_CANCEL = "reset_stats_cancel"

MAIN_KEYBOARD = [
    [KeyboardButton(RESTART_BUTTON)],
    [KeyboardButton(ADD_PURCHASE_BUTTON), KeyboardButton(STATS_BUTTON)],
    [KeyboardButton(LIMITS_BUTTON), KeyboardButton(ADVICE_BUTTON)],
    [KeyboardButton(RESET_STATS_BUTTON)],
]

WELCOME_TEXT = "\n".join(
    [
        "👋 Hi! I'm your Pocket Accountant.",
        "",
        f'Tap "{ADD_PURCHASE_BUTTON}" to log an expense in a few taps.',
        f'Check "{STATS_BUTTON}" for your spending and "{LIMITS_BUTTON}" for monthly budgets.',
        "",
        f'💡 Use "{RESTART_BUTTON}" to clean up the chat and start over.',
    ]
)
RESTART_TEXT = "\n".join(
    [
        "🔄 *Restart complete*",
        "",
        "👋 Hi! I'm your Pocket Accountant.",
        "",
        f'Tap "{ADD_PURCHASE_BUTTON}" to log an expense in a few taps.',
        "",
        "💡 Your statistics are kept.",
    ]
)
GENERIC_ERROR = "Oops, something went wrong. Please try again later."
USE_BUTTONS_HINT = "Use the buttons below to add a purchase or see your statistics."
NO_CATEGORIES_PURCHASE = (
    "You don't have any categories yet. Send a purchase as "
    "`650; Groceries; Morning market` (separators `; , |`)."
)
CHOOSE_CATEGORY = "Choose a category for the expense:"
PURCHASE_NOTE_PROMPT = "Enter the purchase title:"
EMPTY_NOTE = "The title can't be empty. Enter the purchase title:"
PURCHASE_AMOUNT_PROMPT = "Enter the amount (numbers only, e.g. 650 or 1250.50):"
INVALID_PURCHASE_AMOUNT = "Invalid amount. Enter a number (e.g. 650 or 1250.50):"
PURCHASE_SAVE_FAILED = "Could not save the expense."
LIMIT_AMOUNT_PROMPT = "Enter the monthly limit (numbers only, e.g. 5000):"
INVALID_LIMIT_AMOUNT = "Invalid amount. Enter a number (e.g. 5000 or 10000.50):"
LIMIT_SAVE_FAILED = "Could not set the limit. Please try again later."
NO_LIMITS = "No limits set yet."
CHOOSE_LIMIT_CATEGORY = "Choose a category to set a monthly limit:"
NO_CATEGORIES_LIMIT = (
    "You don't have any categories yet. Send a limit as `Category; amount`, "
    "for example `Groceries; 15000`."
)
NOTHING_TO_RESET = "You don't have any records to reset yet."
RESET_FAILED = "Could not reset the statistics. Please try again later."
RESET_CANCELLED = "❌ Statistics reset cancelled."


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    return [list(items[index : index + size]) for index in range(0, len(items), size)]


class BotHandler:
    """Business logic of the bot, independent of the messaging SDK."""

    def __init__(
        self,
        platform: BotPlatform,
        service: BudgetService,
        pending_store: PendingIntentStore | None = None,
        message_tracker: MessageTracker | None = None,
    ) -> None:
        self.platform = platform
        self.service = service
        self.pending_store = pending_store or PendingIntentStore()
        self.message_tracker = message_tracker or MessageTracker()

    def register_handlers(self) -> None:
        self.platform.on_start(self._guarded(self._handle_start))
        self.platform.on_command("stats", self._guarded(self._send_stats))
        self.platform.on_command("limit", self._guarded(self._prompt_limit))
        self.platform.on_command("advice", self._guarded(self._send_recommendations))

        self.platform.on_text(RESTART_BUTTON, self._guarded(self._handle_restart))
        self.platform.on_text(ADD_PURCHASE_BUTTON, self._guarded(self._prompt_purchase))
        self.platform.on_text(STATS_BUTTON, self._guarded(self._send_stats))
        self.platform.on_text(LIMITS_BUTTON, self._guarded(self._prompt_limit))
        self.platform.on_text(ADVICE_BUTTON, self._guarded(self._send_recommendations))
        self.platform.on_text(RESET_STATS_BUTTON, self._guarded(self._prompt_reset_stats))

        self.platform.on_callback_query(self._on_callback_query)
        self.platform.on_any_text(self._guarded(self._handle_text))

    # ------------------------------------------------------------------
    # Menu actions

    async def _handle_start(self, ctx: BotContext) -> None:
        user = await self._ensure_user(ctx)
        await self.service.ensure_default_categories(user.id)
        await self._clear_tracked_messages(ctx)
        self.pending_store.clear(self._user_key(ctx))

        await self._reply(ctx, WELCOME_TEXT, parse_mode="Markdown")

    async def _handle_restart(self, ctx: BotContext) -> None:
        self.pending_store.clear(self._user_key(ctx))
        await self._clear_tracked_messages(ctx)
        user = await self._ensure_user(ctx)
        await self.service.ensure_default_categories(user.id)

        await self._reply(ctx, RESTART_TEXT, parse_mode="Markdown")

    async def _prompt_purchase(self, ctx: BotContext) -> None:
        user = await self._ensure_user(ctx)
        self.pending_store.clear(self._user_key(ctx))
        categories = await self.service.list_categories(user.id)

        if not categories:
            self.pending_store.set(self._user_key(ctx), AddPurchase())
            await self._reply(ctx, NO_CATEGORIES_PURCHASE, parse_mode="Markdown")
            return

        await self._reply(
            ctx,
            CHOOSE_CATEGORY,
            inline_keyboard=self._category_keyboard(categories, SELECT_CATEGORY_PREFIX),
        )

    async def _prompt_limit(self, ctx: BotContext) -> None:
        user = await self._ensure_user(ctx)
        self.pending_store.clear(self._user_key(ctx))

        lines: list[str] = []
        for limit in await self.service.list_active_limits(user.id):
            status = await self.service.resolve_limit_status(user.id, limit.category_id)
            if status is None:
                lines.append(
                    f"{limit.category_emoji or '🎯'} {escape_markdown(limit.category_name)}: "
                    f"{money(limit.amount, user.currency)}"
                )
            else:
                lines.append(render_limit_line(status, user.currency))
        overview = "\n\n".join(lines) or NO_LIMITS

        categories = await self.service.list_categories(user.id)
        if not categories:
            self.pending_store.set(self._user_key(ctx), SetLimit())
            await self._reply(
                ctx, "\n".join(["*🎯 Limits*", overview, "", NO_CATEGORIES_LIMIT]), parse_mode="Markdown"
            )
            return

        await self._reply(
            ctx,
            "\n".join(["*🎯 Limits*", overview, "", CHOOSE_LIMIT_CATEGORY]),
            parse_mode="Markdown",
            inline_keyboard=self._category_keyboard(categories, SELECT_LIMIT_CATEGORY_PREFIX, "🎯"),
        )

    async def _send_stats(self, ctx: BotContext) -> None:
        user = await self._ensure_user(ctx)
        self.pending_store.clear(self._user_key(ctx))
        stats = await self.service.build_stats_snapshot(user.id, user.currency)

        await self._reply(ctx, render_stats(stats), parse_mode="Markdown")

    async def _send_recommendations(self, ctx: BotContext) -> None:
        user = await self._ensure_user(ctx)
        self.pending_store.clear(self._user_key(ctx))
        stats = await self.service.build_stats_snapshot(user.id, user.currency)
        tips = build_recommendations(stats, stats.last_purchase_at, self.service.now())

        await self._reply(
            ctx,
            "\n".join(["*🧠 Personal tips*", *(f"• {tip}" for tip in tips)]),
            parse_mode="Markdown",
        )

    async def _prompt_reset_stats(self, ctx: BotContext) -> None:
        user = await self._ensure_user(ctx)
        self.pending_store.clear(self._user_key(ctx))
        count, total = await self.service.summarise_purchases(user.id)

        if count == 0:
            await self._reply(ctx, NOTHING_TO_RESET)
            return

        await self._reply(
            ctx,
            "\n".join(
                [
                    "⚠️ *Warning!*",
                    "",
                    f"You are about to delete all {count} purchase records.",
                    f"Total: {money(total, user.currency)}",
                    "",
                    "This cannot be undone. Continue?",
                ]
            ),
            parse_mode="Markdown",
            inline_keyboard=[
                [InlineKeyboardButton("✅ Yes, reset", RESET_STATS_CONFIRM)],
                [InlineKeyboardButton("❌ Cancel", RESET_STATS_CANCEL)],
            ],
        )

    async def _reset_stats(self, ctx: BotContext) -> None:
        try:
            user = await self._ensure_user(ctx)
            deleted = await self.service.delete_all_purchases(user.id)
        except InternalError:
            logger.exception("Failed to reset statistics for user %s", self._user_key(ctx))
            await self._reply(ctx, RESET_FAILED)
            return
        finally:
            self.pending_store.clear(self._user_key(ctx))

        await self._reply(ctx, f"✅ Statistics reset. Records deleted: {deleted}")

    async def _cancel_reset_stats(self, ctx: BotContext) -> None:
        try:
            await self.platform.edit_message(ctx.chat_id, ctx.message.message_id, RESET_CANCELLED)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not edit message %s: %s", ctx.message.message_id, exc)
            await self._reply(ctx, RESET_CANCELLED)

    # ------------------------------------------------------------------
    # Inline buttons

    async def _on_callback_query(self, ctx: BotContext, data: str) -> None:
        await self._safe_execute(ctx, lambda: self._handle_callback_query(ctx, data))

    async def _handle_callback_query(self, ctx: BotContext, data: str) -> None:
        key = self._user_key(ctx)

        if data.startswith(SELECT_CATEGORY_PREFIX):
            category_id = self._parse_category_id(data, SELECT_CATEGORY_PREFIX)
            if category_id is None:
                await self._category_not_found(ctx)
                return
            self.pending_store.set(key, AddPurchaseNote(category_id=category_id))
            await self._reply(ctx, PURCHASE_NOTE_PROMPT)
            return

        if data.startswith(SELECT_LIMIT_CATEGORY_PREFIX):
            category_id = self._parse_category_id(data, SELECT_LIMIT_CATEGORY_PREFIX)
            if category_id is None:
                await self._category_not_found(ctx)
                return
            self.pending_store.set(key, SetLimitAmount(category_id=category_id))
            await self._reply(ctx, LIMIT_AMOUNT_PROMPT)
            return

        if data == RESET_STATS_CONFIRM:
            await self._reset_stats(ctx)
            return

        if data == RESET_STATS_CANCEL:
            await self._cancel_reset_stats(ctx)
            return

        logger.debug("Ignoring unknown callback data %r from user %s", data, key)

    # ------------------------------------------------------------------
    # Free text

    async def _handle_text(self, ctx: BotContext) -> None:
        text = ctx.message.text
        if not text:
            return
        intent = self.pending_store.get(self._user_key(ctx))

        if isinstance(intent, AddPurchase):
            await self._process_purchase(ctx, text)
        elif isinstance(intent, AddPurchaseNote):
            await self._process_purchase_note(ctx, text, intent)
        elif isinstance(intent, AddPurchaseAmount):
            await self._process_purchase_amount(ctx, text, intent)
        elif isinstance(intent, SetLimit):
            await self._process_limit(ctx, text)
        elif isinstance(intent, SetLimitAmount):
            await self._process_limit_amount(ctx, text, intent)
        else:
            await self._reply(ctx, USE_BUTTONS_HINT)

    async def _process_purchase(self, ctx: BotContext, text: str) -> None:
        with self.pending_store.consume(self._user_key(ctx)):
            try:
                entry = parse_purchase_input(text)
            except InputError as exc:
                await self._reply(ctx, f"Could not understand that: {exc.message}", parse_mode="Markdown")
                return

            user = await self._ensure_user(ctx)
            category = await self.service.find_or_create_category(user.id, entry.category)
            await self._finish_purchase(ctx, user, category, entry.amount, entry.note)

    async def _process_purchase_note(self, ctx: BotContext, text: str, intent: AddPurchaseNote) -> None:
        note = text.strip()
        if not note:
            await self._reply(ctx, EMPTY_NOTE)
            return

        self.pending_store.set(
            self._user_key(ctx), AddPurchaseAmount(category_id=intent.category_id, note=note)
        )
        await self._reply(ctx, PURCHASE_AMOUNT_PROMPT)

    async def _process_purchase_amount(
        self, ctx: BotContext, text: str, intent: AddPurchaseAmount
    ) -> None:
        try:
            amount = parse_amount(text)
        except InvalidAmount:
            await self._reply(ctx, INVALID_PURCHASE_AMOUNT)
            return

        with self.pending_store.consume(self._user_key(ctx)):
            user = await self._ensure_user(ctx)
            category = await self.service.get_category(user.id, intent.category_id)
            if category is None:
                await self._reply(ctx, NotFound().message)
                return
            await self._finish_purchase(ctx, user, category, amount, intent.note)

    async def _finish_purchase(
        self,
        ctx: BotContext,
        user: User,
        category: Category,
        amount: float,
        note: str | None = None,
    ) -> None:
        try:
            await self.service.add_purchase(user.id, category.id, amount, note)
        except InternalError:
            logger.exception("Failed to save purchase for user %s", user.platform_id)
            await self._reply(ctx, PURCHASE_SAVE_FAILED)
            return

        lines = [
            "✅ Expense recorded.",
            f"{category.emoji or '•'} {category.name} — {money(amount, user.currency)}",
        ]
        if note:
            lines.append(f"Note: {note}")
        await self._reply(ctx, "\n".join(lines))

        await self._check_limit(ctx, user, category.id)

    async def _check_limit(self, ctx: BotContext, user: User, category_id: int) -> None:
        """Warn about a nearly used-up limit; never fails the purchase flow."""
        try:
            await self.service.notify_if_needed(
                user.id,
                category_id,
                on_warning=lambda message: self._reply(ctx, message, parse_mode="Markdown"),
            )
        except Exception:  # noqa: BLE001
            logger.exception("Limit check failed for user %s, category %s", user.platform_id, category_id)

    async def _process_limit(self, ctx: BotContext, text: str) -> None:
        with self.pending_store.consume(self._user_key(ctx)):
            try:
                entry = parse_limit_input(text)
            except InputError as exc:
                await self._reply(ctx, f"Could not update the limit: {exc.message}", parse_mode="Markdown")
                return

            user = await self._ensure_user(ctx)
            category = await self.service.find_or_create_category(user.id, entry.category)
            limit = await self.service.upsert_monthly_limit(user.id, category.id, entry.amount)

            name = escape_markdown(category.name)
            await self._reply(
                ctx,
                f"🎯 Limit for *{name}* updated: {money(limit.amount, user.currency)}",
                parse_mode="Markdown",
            )

    async def _process_limit_amount(self, ctx: BotContext, text: str, intent: SetLimitAmount) -> None:
        try:
            amount = parse_amount(text, LIMIT_AMOUNT_HINT)
        except InvalidAmount:
            await self._reply(ctx, INVALID_LIMIT_AMOUNT)
            return

        with self.pending_store.consume(self._user_key(ctx)):
            user = await self._ensure_user(ctx)
            category = await self.service.get_category(user.id, intent.category_id)
            if category is None:
                await self._reply(ctx, NotFound().message)
                return

            try:
                limit = await self.service.upsert_monthly_limit(user.id, category.id, amount)
            except InternalError:
                logger.exception("Failed to set limit for user %s", user.platform_id)
                await self._reply(ctx, LIMIT_SAVE_FAILED)
                return

            name = escape_markdown(category.name)
            await self._reply(
                ctx,
                f"✅ Limit for *{name}* set: {money(limit.amount, user.currency)} per month",
                parse_mode="Markdown",
            )

    # ------------------------------------------------------------------
    # Helpers

    def _guarded(self, handler: ContextHandler) -> ContextHandler:
        async def run(ctx: BotContext) -> None:
            await self._safe_execute(ctx, lambda: handler(ctx))

        return run

    async def _safe_execute(self, ctx: BotContext, action: Callable[[], Awaitable[None]]) -> None:
        try:
            await action()
        except Exception:  # noqa: BLE001
            logger.exception("Handler failed for user %s", self._user_key(ctx))
            self.pending_store.clear(self._user_key(ctx))
            try:
                await self._reply(ctx, GENERIC_ERROR)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to send error reply to chat %s", ctx.chat_id)

    async def _ensure_user(self, ctx: BotContext) -> User:
        return await self.service.ensure_user(
            ctx.user.platform_id,
            first_name=ctx.user.first_name,
            username=ctx.user.username,
        )

    async def _category_not_found(self, ctx: BotContext) -> None:
        self.pending_store.clear(self._user_key(ctx))
        await self._reply(ctx, NotFound().message)

    async def _reply(
        self,
        ctx: BotContext,
        text: str,
        parse_mode: ParseMode | None = None,
        inline_keyboard: list[list[InlineKeyboardButton]] | None = None,
    ) -> BotMessage:
        options = ReplyOptions(
            parse_mode=parse_mode,
            keyboard=None if inline_keyboard else MAIN_KEYBOARD,
            inline_keyboard=inline_keyboard,
        )
        message = await self.platform.send_message(ctx.chat_id, text, options)
        self.message_tracker.track(ctx.chat_id, message.message_id)
        return message

    async def _clear_tracked_messages(self, ctx: BotContext) -> None:
        message_ids = self.message_tracker.pull(ctx.chat_id)
        results = await asyncio.gather(
            *(self.platform.delete_message(ctx.chat_id, message_id) for message_id in message_ids),
            return_exceptions=True,
        )
        for message_id, result in zip(message_ids, results):
            if isinstance(result, Exception):
                logger.debug("Could not delete message %s: %s", message_id, result)

    @staticmethod
    def _category_keyboard(
        categories: Sequence[Category], prefix: str, fallback_emoji: str = "🧾"
    ) -> list[list[InlineKeyboardButton]]:
        buttons = [
            InlineKeyboardButton(category.label(fallback_emoji), f"{prefix}{category.id}")
            for category in categories
        ]
        return chunk(buttons, 2)

    @staticmethod
    def _parse_category_id(data: str, prefix: str) -> int | None:
        raw = data[len(prefix) :]
        try:
            return int(raw)
        except ValueError:
            return None

    @staticmethod
    def _user_key(ctx: BotContext) -> str:
        return str(ctx.user.platform_id)
