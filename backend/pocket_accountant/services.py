"""Async facade over the CRUD layer used by the conversation handler.

Every call opens its own session, runs the synchronous CRUD function in a
worker thread and converts the result into plain dataclasses before the
session closes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from . import crud
from .config import Settings, get_settings
from .domain.entities import (
    Category,
    CategoryLimit,
    LimitStatus,
    Purchase,
    StatsSnapshot,
    User,
    category_from_model,
    limit_from_model,
    purchase_from_model,
    user_from_model,
)
from .domain.reports import render_limit_warning
from .errors import InternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BudgetService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Settings | None = None,
        clock: Callable[[], datetime] = crud.utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._clock = clock

    def _execute(self, operation: Callable[[Session], T]) -> T:
        with self._session_factory() as db:
            try:
                return operation(db)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Database operation failed: %s", exc)
                raise InternalError() from exc

    async def _run(self, operation: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._execute, operation)

    async def ensure_user(
        self, platform_id: str, first_name: str | None = None, username: str | None = None
    ) -> User:
        return await self._run(
            lambda db: user_from_model(
                crud.ensure_user(
                    db,
                    telegram_id=str(platform_id),
                    first_name=first_name,
                    username=username,
                    currency=self._settings.default_currency,
                )
            )
        )

    async def ensure_default_categories(self, user_id: int) -> int:
        return await self._run(lambda db: crud.ensure_default_categories(db, user_id))

    async def find_or_create_category(self, user_id: int, name: str) -> Category:
        return await self._run(
            lambda db: category_from_model(crud.find_or_create_category(db, user_id, name))
        )

    async def list_categories(self, user_id: int) -> list[Category]:
        return await self._run(
            lambda db: [category_from_model(category) for category in crud.list_categories(db, user_id)]
        )

    async def get_category(self, user_id: int, category_id: int) -> Category | None:
        def operation(db: Session) -> Category | None:
            category = crud.get_category(db, user_id, category_id)
            return category_from_model(category) if category else None

        return await self._run(operation)

    async def add_purchase(
        self,
        user_id: int,
        category_id: int,
        amount: float,
        note: str | None = None,
        spent_at: datetime | None = None,
    ) -> Purchase:
        return await self._run(
            lambda db: purchase_from_model(
                crud.create_purchase(
                    db,
                    user_id=user_id,
                    category_id=category_id,
                    amount=amount,
                    note=note,
                    spent_at=spent_at or self._clock(),
                )
            )
        )

    async def delete_all_purchases(self, user_id: int) -> int:
        return await self._run(lambda db: crud.delete_purchases_for_user(db, user_id))

    async def summarise_purchases(self, user_id: int) -> tuple[int, float]:
        return await self._run(lambda db: crud.summarise_purchases(db, user_id))

    async def upsert_monthly_limit(self, user_id: int, category_id: int, amount: float) -> CategoryLimit:
        return await self._run(
            lambda db: limit_from_model(
                crud.upsert_monthly_limit(
                    db,
                    user_id,
                    category_id,
                    amount,
                    now=self._clock(),
                    threshold=self._settings.limit_warning_threshold,
                )
            )
        )

    async def list_active_limits(self, user_id: int) -> list[CategoryLimit]:
        return await self._run(
            lambda db: [
                limit_from_model(limit)
                for limit in crud.list_active_limits(db, user_id, now=self._clock())
            ]
        )

    async def resolve_limit_status(self, user_id: int, category_id: int) -> LimitStatus | None:
        return await self._run(
            lambda db: crud.resolve_limit_status(db, user_id, category_id, now=self._clock())
        )

    async def notify_if_needed(
        self,
        user_id: int,
        category_id: int,
        on_warning: Callable[[str], Awaitable[Any]],
    ) -> bool:
        """Send a warning once per month when the category's coverage crosses its threshold."""
        status = await self._run(
            lambda db: crud.claim_limit_warning(db, user_id, category_id, now=self._clock())
        )
        if status is None:
            return False
        await on_warning(render_limit_warning(status))
        return True

    async def build_stats_snapshot(self, user_id: int, currency: str) -> StatsSnapshot:
        return await self._run(
            lambda db: crud.build_stats_snapshot(db, user_id, currency, now=self._clock())
        )

    def now(self) -> datetime:
        return self._clock()
