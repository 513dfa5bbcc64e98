"""Per-user conversation state kept between chat messages.

A pending intent records what the bot expects the user's next text message
to mean. At most one intent exists per user; it lives in process memory
unless an external mapping is injected into the store.
"""

from __future__ import annotations

from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True, slots=True)
class AddPurchase:
    """Waiting for a full ``amount; category; note`` line."""


@dataclass(frozen=True, slots=True)
class AddPurchaseNote:
    """Category picked via button; waiting for the purchase title."""

    category_id: int


@dataclass(frozen=True, slots=True)
class AddPurchaseAmount:
    """Title captured; waiting for the numeric amount."""

    category_id: int
    note: str


@dataclass(frozen=True, slots=True)
class SetLimit:
    """Waiting for a ``category; amount`` line."""


@dataclass(frozen=True, slots=True)
class SetLimitAmount:
    """Category picked via button; waiting for the monthly limit."""

    category_id: int


PendingIntent = Union[AddPurchase, AddPurchaseNote, AddPurchaseAmount, SetLimit, SetLimitAmount]


class PendingIntentStore:
    """Keyed map from user id to the intent the bot is waiting on."""

    def __init__(self, backend: MutableMapping[str, PendingIntent] | None = None) -> None:
        self._intents: MutableMapping[str, PendingIntent] = backend if backend is not None else {}

    def set(self, user_id: str, intent: PendingIntent) -> None:
        self._intents[str(user_id)] = intent

    def get(self, user_id: str) -> PendingIntent | None:
        return self._intents.get(str(user_id))

    def clear(self, user_id: str) -> None:
        self._intents.pop(str(user_id), None)

    @contextmanager
    def consume(self, user_id: str) -> Iterator[PendingIntent | None]:
        """Yield the current intent and clear it on every exit path."""
        try:
            yield self.get(user_id)
        finally:
            self.clear(user_id)


class MessageTracker:
    """Remembers the bot's own message ids per chat so they can be deleted later."""

    def __init__(self, limit_per_chat: int = 200) -> None:
        self._limit = limit_per_chat
        self._messages: dict[str, list[int | str]] = {}

    def track(self, chat_id: int | str, message_id: int | str) -> None:
        ids = self._messages.setdefault(str(chat_id), [])
        ids.append(message_id)
        if len(ids) > self._limit:
            del ids[: len(ids) - self._limit]

    def pull(self, chat_id: int | str) -> list[int | str]:
        return self._messages.pop(str(chat_id), [])
