import pytest

from pocket_accountant.state import (
    AddPurchase,
    AddPurchaseAmount,
    AddPurchaseNote,
    MessageTracker,
    PendingIntentStore,
    SetLimitAmount,
)


class TestPendingIntentStore:
    def test_set_get_clear(self):
        store = PendingIntentStore()

        store.set("7", AddPurchaseNote(category_id=3))
        assert store.get("7") == AddPurchaseNote(category_id=3)

        store.clear("7")
        assert store.get("7") is None

    def test_one_intent_per_user(self):
        store = PendingIntentStore()

        store.set("7", AddPurchase())
        store.set("7", SetLimitAmount(category_id=1))

        assert store.get("7") == SetLimitAmount(category_id=1)

    def test_users_are_isolated(self):
        store = PendingIntentStore()
        store.set("1", AddPurchase())

        assert store.get("2") is None

    def test_clear_missing_user_is_noop(self):
        PendingIntentStore().clear("nobody")

    def test_consume_clears_on_success(self):
        store = PendingIntentStore()
        store.set("7", AddPurchaseAmount(category_id=1, note="Bread"))

        with store.consume("7") as intent:
            assert intent == AddPurchaseAmount(category_id=1, note="Bread")

        assert store.get("7") is None

    def test_consume_clears_on_error(self):
        store = PendingIntentStore()
        store.set("7", AddPurchase())

        with pytest.raises(RuntimeError):
            with store.consume("7"):
                raise RuntimeError("boom")

        assert store.get("7") is None

    def test_injected_backend(self):
        backend: dict = {}
        store = PendingIntentStore(backend)

        store.set(99, AddPurchase())

        assert backend == {"99": AddPurchase()}


class TestMessageTracker:
    def test_pull_returns_and_forgets(self):
        tracker = MessageTracker()
        tracker.track(1, 10)
        tracker.track(1, 11)

        assert tracker.pull(1) == [10, 11]
        assert tracker.pull(1) == []

    def test_keeps_latest_messages_only(self):
        tracker = MessageTracker(limit_per_chat=3)
        for message_id in range(5):
            tracker.track("chat", message_id)

        assert tracker.pull("chat") == [2, 3, 4]
