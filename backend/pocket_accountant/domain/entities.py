from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class User:
    """Bot user bound to a chat-platform account."""

    id: int
    platform_id: str
    first_name: str | None
    username: str | None
    currency: str


@dataclass(slots=True)
class Category:
    id: int
    name: str
    emoji: str | None = None

    def label(self, fallback: str = "🧾") -> str:
        return f"{self.emoji or fallback} {self.name}"


@dataclass(slots=True)
class Purchase:
    id: int
    category_id: int
    category_name: str
    category_emoji: str | None
    amount: float
    note: str | None
    spent_at: datetime


@dataclass(slots=True)
class CategoryLimit:
    id: int
    category_id: int
    category_name: str
    category_emoji: str | None
    amount: float
    period_start: datetime
    threshold: float
    last_notified_at: datetime | None = None


@dataclass(slots=True)
class LimitStatus:
    """Spending of one category against its monthly limit."""

    limit_id: int
    category_id: int
    category_name: str
    emoji: str | None
    spent: float
    amount: float
    threshold: float

    @property
    def coverage(self) -> float:
        return self.spent / self.amount if self.amount else 0.0

    @property
    def exceeded(self) -> bool:
        return self.coverage >= 1

    @property
    def remaining(self) -> float:
        return self.amount - self.spent


@dataclass(slots=True)
class CategoryShare:
    name: str
    emoji: str | None
    total: float
    share: float
    limit: LimitStatus | None = None

    @property
    def limit_coverage(self) -> float | None:
        return self.limit.coverage if self.limit else None


@dataclass(slots=True)
class StatsSnapshot:
    today: float
    week: float
    month: float
    currency: str
    categories: list[CategoryShare] = field(default_factory=list)
    recent: list[Purchase] = field(default_factory=list)

    @property
    def last_purchase_at(self) -> datetime | None:
        return self.recent[0].spent_at if self.recent else None


def user_from_model(model: object) -> User:
    from ..models import UserModel

    if not isinstance(model, UserModel):
        raise TypeError("Expected UserModel instance.")
    return User(
        id=model.id,
        platform_id=model.telegram_id,
        first_name=model.first_name,
        username=model.username,
        currency=model.currency,
    )


def category_from_model(model: object) -> Category:
    from ..models import CategoryModel

    if not isinstance(model, CategoryModel):
        raise TypeError("Expected CategoryModel instance.")
    return Category(id=model.id, name=model.name, emoji=model.emoji)


def purchase_from_model(model: object) -> Purchase:
    from ..models import PurchaseModel

    if not isinstance(model, PurchaseModel):
        raise TypeError("Expected PurchaseModel instance.")
    return Purchase(
        id=model.id,
        category_id=model.category_id,
        category_name=model.category.name,
        category_emoji=model.category.emoji,
        amount=float(model.amount),
        note=model.note,
        spent_at=model.spent_at,
    )


def limit_from_model(model: object) -> CategoryLimit:
    from ..models import CategoryLimitModel

    if not isinstance(model, CategoryLimitModel):
        raise TypeError("Expected CategoryLimitModel instance.")
    return CategoryLimit(
        id=model.id,
        category_id=model.category_id,
        category_name=model.category.name,
        category_emoji=model.category.emoji,
        amount=float(model.amount),
        period_start=model.period_start,
        threshold=model.threshold / 100,
        last_notified_at=model.last_notified_at,
    )
