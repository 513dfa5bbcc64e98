import pytest

from pocket_accountant import handler as handler_module
from pocket_accountant.errors import InternalError
from pocket_accountant.handler import (
    ADD_PURCHASE_BUTTON,
    CHOOSE_CATEGORY,
    EMPTY_NOTE,
    GENERIC_ERROR,
    INVALID_LIMIT_AMOUNT,
    INVALID_PURCHASE_AMOUNT,
    LIMITS_BUTTON,
    MAIN_KEYBOARD,
    NO_CATEGORIES_PURCHASE,
    NOTHING_TO_RESET,
    PURCHASE_AMOUNT_PROMPT,
    PURCHASE_NOTE_PROMPT,
    PURCHASE_SAVE_FAILED,
    RESET_CANCELLED,
    RESET_STATS_BUTTON,
    RESET_STATS_CANCEL,
    RESET_STATS_CONFIRM,
    RESTART_BUTTON,
    RESTART_TEXT,
    STATS_BUTTON,
    USE_BUTTONS_HINT,
    WELCOME_TEXT,
    chunk,
)
from pocket_accountant.parsing import LIMIT_FORMAT_HINT, PURCHASE_AMOUNT_HINT
from pocket_accountant.state import AddPurchase, AddPurchaseAmount, AddPurchaseNote, SetLimit, SetLimitAmount

USER = "42"


async def _add_purchase(platform, category: str, note: str, amount: str) -> None:
    await platform.type(ADD_PURCHASE_BUTTON)
    await platform.press(platform.button_data(category))
    await platform.type(note)
    await platform.type(amount)


def test_chunk():
    assert chunk([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]


class TestStart:
    @pytest.mark.asyncio
    async def test_start_sends_welcome_with_main_keyboard(self, handler, platform, service):
        await platform.type("/start")

        assert platform.last_text == WELCOME_TEXT
        assert platform.last_options.keyboard == MAIN_KEYBOARD
        user = await service.ensure_user(USER)
        assert len(await service.list_categories(user.id)) == 10

    @pytest.mark.asyncio
    async def test_restart_deletes_tracked_messages_and_clears_intent(self, handler, platform):
        await platform.type("/start")
        await platform.type(ADD_PURCHASE_BUTTON)
        await platform.press(platform.button_data("Groceries"))
        sent_ids = [1000, 1001, 1002]

        await platform.type(RESTART_BUTTON)

        assert platform.deleted == sent_ids
        assert handler.pending_store.get(USER) is None
        assert platform.last_text == RESTART_TEXT


class TestGuidedPurchase:
    @pytest.mark.asyncio
    async def test_full_flow(self, handler, platform, service):
        await platform.type("/start")
        await platform.type(ADD_PURCHASE_BUTTON)

        assert platform.last_text == CHOOSE_CATEGORY
        assert platform.last_options.keyboard is None
        assert len(platform.last_options.inline_keyboard) == 5
        assert all(len(row) <= 2 for row in platform.last_options.inline_keyboard)

        await platform.press(platform.button_data("Groceries"))
        assert platform.last_text == PURCHASE_NOTE_PROMPT
        assert isinstance(handler.pending_store.get(USER), AddPurchaseNote)

        await platform.type("Morning market")
        assert platform.last_text == PURCHASE_AMOUNT_PROMPT
        intent = handler.pending_store.get(USER)
        assert isinstance(intent, AddPurchaseAmount)
        assert intent.note == "Morning market"

        await platform.type("650")

        assert platform.last_text == "✅ Expense recorded.\n🥗 Groceries — 650 RUB\nNote: Morning market"
        assert handler.pending_store.get(USER) is None
        user = await service.ensure_user(USER)
        assert await service.summarise_purchases(user.id) == (1, 650)

    @pytest.mark.asyncio
    async def test_invalid_amount_keeps_waiting(self, handler, platform, service):
        await platform.type("/start")
        await platform.type(ADD_PURCHASE_BUTTON)
        await platform.press(platform.button_data("Coffee & Bars"))
        await platform.type("Latte")

        await platform.type("abc")
        assert platform.last_text == INVALID_PURCHASE_AMOUNT
        await platform.type("0")
        assert platform.last_text == INVALID_PURCHASE_AMOUNT
        assert isinstance(handler.pending_store.get(USER), AddPurchaseAmount)

        await platform.type("250,75")

        assert platform.last_text.startswith("✅ Expense recorded.")
        assert "251 RUB" in platform.last_text
        assert handler.pending_store.get(USER) is None

    @pytest.mark.asyncio
    async def test_blank_note_keeps_waiting(self, handler, platform):
        await platform.type("/start")
        await platform.type(ADD_PURCHASE_BUTTON)
        await platform.press(platform.button_data("Groceries"))
        intent = handler.pending_store.get(USER)

        await platform.type("   ")

        assert platform.last_text == EMPTY_NOTE
        assert handler.pending_store.get(USER) == intent
        assert isinstance(intent, AddPurchaseNote)

    @pytest.mark.asyncio
    async def test_vanished_category(self, handler, platform, service):
        await platform.type("/start")
        await platform.press("select_category:9999")
        await platform.type("Ghost purchase")
        await platform.type("100")

        assert platform.last_text == "Category not found."
        assert handler.pending_store.get(USER) is None
        user = await service.ensure_user(USER)
        assert await service.summarise_purchases(user.id) == (0, 0)

    @pytest.mark.asyncio
    async def test_malformed_callback_id(self, handler, platform):
        await platform.press("select_category:abc")

        assert platform.last_text == "Category not found."
        assert handler.pending_store.get(USER) is None

    @pytest.mark.asyncio
    async def test_save_failure(self, handler, platform, service, monkeypatch):
        await platform.type("/start")
        await platform.type(ADD_PURCHASE_BUTTON)
        await platform.press(platform.button_data("Groceries"))
        await platform.type("Bread")

        async def broken(*args, **kwargs):
            raise InternalError()

        monkeypatch.setattr(service, "add_purchase", broken)
        await platform.type("80")

        assert platform.last_text == PURCHASE_SAVE_FAILED
        assert handler.pending_store.get(USER) is None


class TestOneShotPurchase:
    @pytest.mark.asyncio
    async def test_without_categories(self, handler, platform, service):
        await platform.type(ADD_PURCHASE_BUTTON)

        assert platform.last_text == NO_CATEGORIES_PURCHASE
        assert handler.pending_store.get(USER) == AddPurchase()

        await platform.type("650; coffee; latte")

        assert platform.last_text == "✅ Expense recorded.\n🧾 Coffee — 650 RUB\nNote: latte"
        assert handler.pending_store.get(USER) is None
        user = await service.ensure_user(USER)
        assert [c.name for c in await service.list_categories(user.id)] == ["Coffee"]

    @pytest.mark.asyncio
    async def test_invalid_amount_reports_amount_hint(self, handler, platform):
        await platform.type(ADD_PURCHASE_BUTTON)
        await platform.type("not-a-number; Food")

        assert platform.last_text == f"Could not understand that: {PURCHASE_AMOUNT_HINT}"
        assert handler.pending_store.get(USER) is None

    @pytest.mark.asyncio
    async def test_parse_error_clears_intent(self, handler, platform):
        await platform.type(ADD_PURCHASE_BUTTON)
        await platform.type("just words")

        assert platform.last_text.startswith("Could not understand that:")
        assert handler.pending_store.get(USER) is None


class TestLimits:
    @pytest.mark.asyncio
    async def test_set_limit_and_warn_once(self, handler, platform):
        await platform.type("/start")
        await platform.type(LIMITS_BUTTON)
        assert "No limits set yet." in platform.last_text

        await platform.press(platform.button_data("Groceries"))
        assert isinstance(handler.pending_store.get(USER), SetLimitAmount)
        await platform.type("1000")
        assert platform.last_text == "✅ Limit for *Groceries* set: 1000 RUB per month"
        assert handler.pending_store.get(USER) is None

        await _add_purchase(platform, "Groceries", "Weekly shop", "800")
        assert platform.texts[-2].startswith("✅ Expense recorded.")
        assert platform.last_text.startswith("⚠️ *Limit almost used up!*")
        assert platform.last_options.parse_mode == "Markdown"

        await _add_purchase(platform, "Groceries", "Milk", "50")
        assert platform.last_text.startswith("✅ Expense recorded.")
        assert sum(text.startswith("⚠️ *Limit") for text in platform.texts) == 1

        await platform.type("/limit")
        assert "⚠️ 🥗 Groceries: 850 / 1000 RUB" in platform.last_text

    @pytest.mark.asyncio
    async def test_limit_check_failure_does_not_break_purchase(self, handler, platform, service, monkeypatch):
        await platform.type("/start")

        async def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(service, "notify_if_needed", broken)
        await _add_purchase(platform, "Groceries", "Bread", "80")

        assert platform.last_text.startswith("✅ Expense recorded.")
        assert GENERIC_ERROR not in platform.texts

    @pytest.mark.asyncio
    async def test_one_shot_limit_without_categories(self, handler, platform, service):
        await platform.type("/limit")
        assert "Category; amount" in platform.last_text

        await platform.type("groceries; 15000")

        assert platform.last_text == "🎯 Limit for *Groceries* updated: 15000 RUB"
        user = await service.ensure_user(USER)
        assert [limit.amount for limit in await service.list_active_limits(user.id)] == [15000]

    @pytest.mark.asyncio
    async def test_invalid_limit_amount_keeps_waiting(self, handler, platform, service):
        await platform.type("/start")
        await platform.type(LIMITS_BUTTON)
        await platform.press(platform.button_data("Groceries"))
        intent = handler.pending_store.get(USER)

        await platform.type("lots")
        assert platform.last_text == INVALID_LIMIT_AMOUNT
        await platform.type("0")
        assert platform.last_text == INVALID_LIMIT_AMOUNT
        assert handler.pending_store.get(USER) == intent
        assert isinstance(intent, SetLimitAmount)

        await platform.type("5000")

        assert platform.last_text == "✅ Limit for *Groceries* set: 5000 RUB per month"
        assert handler.pending_store.get(USER) is None

    @pytest.mark.asyncio
    async def test_one_shot_limit_parse_failure_clears_intent(self, handler, platform, service):
        await platform.type("/limit")
        assert handler.pending_store.get(USER) == SetLimit()

        await platform.type("Groceries")

        assert platform.last_text == f"Could not update the limit: {LIMIT_FORMAT_HINT}"
        assert platform.last_options.parse_mode == "Markdown"
        assert handler.pending_store.get(USER) is None
        user = await service.ensure_user(USER)
        assert await service.list_active_limits(user.id) == []

    @pytest.mark.asyncio
    async def test_limit_replies_escape_category_names(self, handler, platform):
        await platform.type("/limit")
        await platform.type("fast_food; 3000")

        assert platform.last_text == "🎯 Limit for *Fast\\_food* updated: 3000 RUB"

        await platform.type("/limit")
        assert "Fast\\_food: 0 / 3000 RUB" in platform.last_text

        await platform.press(platform.button_data("Fast_food"))
        await platform.type("4000")
        assert platform.last_text == "✅ Limit for *Fast\\_food* set: 4000 RUB per month"


class TestMenus:
    @pytest.mark.asyncio
    async def test_menu_command_resets_intent(self, handler, platform):
        await platform.type("/start")
        await platform.type(ADD_PURCHASE_BUTTON)
        await platform.press(platform.button_data("Groceries"))

        await platform.type(STATS_BUTTON)

        assert handler.pending_store.get(USER) is None
        assert platform.last_text.startswith("*📊 Quick overview*")

    @pytest.mark.asyncio
    async def test_advice(self, handler, platform):
        await platform.type("/advice")

        assert platform.last_text.startswith("*🧠 Personal tips*")

    @pytest.mark.asyncio
    async def test_idle_text_gets_hint(self, handler, platform):
        await platform.type("hello there")

        assert platform.last_text == USE_BUTTONS_HINT


class TestResetStats:
    @pytest.mark.asyncio
    async def test_nothing_to_reset(self, handler, platform):
        await platform.type(RESET_STATS_BUTTON)

        assert platform.last_text == NOTHING_TO_RESET

    @pytest.mark.asyncio
    async def test_confirm(self, handler, platform, service):
        await platform.type("/start")
        await _add_purchase(platform, "Groceries", "Bread", "80")

        await platform.type(RESET_STATS_BUTTON)
        assert "delete all 1 purchase records" in platform.last_text
        await platform.press(RESET_STATS_CONFIRM)

        assert platform.last_text == "✅ Statistics reset. Records deleted: 1"
        user = await service.ensure_user(USER)
        assert await service.summarise_purchases(user.id) == (0, 0)

    @pytest.mark.asyncio
    async def test_cancel_edits_prompt(self, handler, platform):
        await platform.press(RESET_STATS_CANCEL, message_id=77)

        assert platform.edited == [(42, 77, RESET_CANCELLED)]
        assert platform.answered == ["press-77"]

    @pytest.mark.asyncio
    async def test_cancel_falls_back_to_new_message(self, handler, platform):
        platform.fail_edits = True

        await platform.press(RESET_STATS_CANCEL)

        assert platform.last_text == RESET_CANCELLED


class TestErrorBoundary:
    @pytest.mark.asyncio
    async def test_unexpected_error_clears_intent(self, handler, platform):
        handler.pending_store.set(USER, AddPurchaseNote(category_id=1))
        platform.fail_next_send = True

        await platform.type("Bread")

        assert handler.pending_store.get(USER) is None
        assert platform.last_text == GENERIC_ERROR

    @pytest.mark.asyncio
    async def test_error_is_logged(self, handler, platform, service, monkeypatch, caplog):
        async def broken(*args, **kwargs):
            raise RuntimeError("db exploded")

        monkeypatch.setattr(service, "build_stats_snapshot", broken)

        await platform.type("/stats")

        assert platform.last_text == GENERIC_ERROR
        assert any(
            record.name == handler_module.__name__ and "Handler failed" in record.getMessage()
            for record in caplog.records
        )
