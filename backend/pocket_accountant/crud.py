from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .config import get_settings
from .domain.entities import (
    CategoryShare,
    LimitStatus,
    StatsSnapshot,
    purchase_from_model,
)
from .models import CategoryLimitModel, CategoryModel, LimitPeriod, PurchaseModel, UserModel

DEFAULT_CATEGORIES: list[tuple[str, str]] = [
    ("Groceries", "🥗"),
    ("Coffee & Bars", "☕️"),
    ("Transport", "🚌"),
    ("Home", "🏠"),
    ("Health", "💊"),
    ("Education", "📚"),
    ("Entertainment", "🎮"),
    ("Travel", "✈️"),
    ("Gifts", "🎁"),
    ("Other", "🧩"),
]
CUSTOM_CATEGORY_EMOJI = "🧾"
STATS_TOP_CATEGORIES = 6
RECENT_PURCHASES = 5


def utcnow() -> datetime:
    """Naive UTC timestamp; every stored datetime uses this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(moment: datetime) -> datetime:
    return start_of_day(moment) - timedelta(days=moment.weekday())


def start_of_month(moment: datetime) -> datetime:
    return start_of_day(moment).replace(day=1)


def next_month_start(moment: datetime) -> datetime:
    first = start_of_month(moment)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def get_user_by_telegram_id(db: Session, telegram_id: str) -> UserModel | None:
    return db.scalar(select(UserModel).where(UserModel.telegram_id == telegram_id))


def ensure_user(
    db: Session,
    telegram_id: str,
    first_name: str | None = None,
    username: str | None = None,
    currency: str | None = None,
) -> UserModel:
    user = get_user_by_telegram_id(db, telegram_id)
    if user is None:
        user = UserModel(
            telegram_id=telegram_id,
            first_name=first_name,
            username=username,
            currency=(currency or get_settings().default_currency).upper(),
        )
    else:
        if first_name is not None:
            user.first_name = first_name
        if username is not None:
            user.username = username
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def list_categories(db: Session, user_id: int) -> list[CategoryModel]:
    stmt = select(CategoryModel).where(CategoryModel.user_id == user_id).order_by(CategoryModel.name)
    return list(db.scalars(stmt))


def get_category(db: Session, user_id: int, category_id: int) -> CategoryModel | None:
    stmt = select(CategoryModel).where(
        CategoryModel.id == category_id, CategoryModel.user_id == user_id
    )
    return db.scalar(stmt)


def ensure_default_categories(db: Session, user_id: int) -> int:
    existing = {category.name.casefold() for category in list_categories(db, user_id)}
    created = 0
    for name, emoji in DEFAULT_CATEGORIES:
        if name.casefold() in existing:
            continue
        db.add(CategoryModel(user_id=user_id, name=name, emoji=emoji))
        created += 1
    if created:
        db.commit()
    return created


def _title_case(name: str) -> str:
    return " ".join(chunk[:1].upper() + chunk[1:].lower() for chunk in name.split(" "))


def find_or_create_category(db: Session, user_id: int, name: str) -> CategoryModel:
    normalized = " ".join(name.split())
    for category in list_categories(db, user_id):
        if category.name.casefold() == normalized.casefold():
            return category

    category = CategoryModel(
        user_id=user_id,
        name=_title_case(normalized)[:120],
        emoji=CUSTOM_CATEGORY_EMOJI,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def create_purchase(
    db: Session,
    user_id: int,
    category_id: int,
    amount: float,
    note: str | None = None,
    spent_at: datetime | None = None,
) -> PurchaseModel:
    purchase = PurchaseModel(
        user_id=user_id,
        category_id=category_id,
        amount=amount,
        note=note,
        spent_at=spent_at or utcnow(),
    )
    db.add(purchase)
    db.commit()
    db.refresh(purchase)
    return purchase


def delete_purchases_for_user(db: Session, user_id: int) -> int:
    count = db.query(PurchaseModel).filter(PurchaseModel.user_id == user_id).delete()
    db.commit()
    return count


def summarise_purchases(db: Session, user_id: int) -> tuple[int, float]:
    count, total = db.execute(
        select(func.count(PurchaseModel.id), func.coalesce(func.sum(PurchaseModel.amount), 0.0)).where(
            PurchaseModel.user_id == user_id
        )
    ).one()
    return int(count or 0), float(total or 0.0)


def sum_purchases(
    db: Session,
    user_id: int,
    start: datetime,
    end: datetime,
    category_id: int | None = None,
) -> float:
    stmt = select(func.coalesce(func.sum(PurchaseModel.amount), 0.0)).where(
        PurchaseModel.user_id == user_id,
        PurchaseModel.spent_at >= start,
        PurchaseModel.spent_at < end,
    )
    if category_id is not None:
        stmt = stmt.where(PurchaseModel.category_id == category_id)
    return float(db.scalar(stmt) or 0.0)


def category_breakdown(
    db: Session, user_id: int, start: datetime, end: datetime
) -> list[tuple[CategoryModel, float]]:
    total = func.sum(PurchaseModel.amount).label("total")
    stmt = (
        select(CategoryModel, total)
        .join(PurchaseModel, PurchaseModel.category_id == CategoryModel.id)
        .where(
            PurchaseModel.user_id == user_id,
            PurchaseModel.spent_at >= start,
            PurchaseModel.spent_at < end,
        )
        .group_by(CategoryModel.id)
        .order_by(total.desc())
    )
    return [(category, float(amount)) for category, amount in db.execute(stmt).all()]


def list_recent_purchases(db: Session, user_id: int, limit: int = RECENT_PURCHASES) -> list[PurchaseModel]:
    stmt = (
        select(PurchaseModel)
        .options(selectinload(PurchaseModel.category))
        .where(PurchaseModel.user_id == user_id)
        .order_by(PurchaseModel.spent_at.desc(), PurchaseModel.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def get_monthly_limit(
    db: Session, user_id: int, category_id: int, period_start: datetime
) -> CategoryLimitModel | None:
    stmt = select(CategoryLimitModel).where(
        CategoryLimitModel.user_id == user_id,
        CategoryLimitModel.category_id == category_id,
        CategoryLimitModel.period == LimitPeriod.MONTH,
        CategoryLimitModel.period_start == period_start,
    )
    return db.scalar(stmt)


def upsert_monthly_limit(
    db: Session,
    user_id: int,
    category_id: int,
    amount: float,
    now: datetime | None = None,
    threshold: int | None = None,
) -> CategoryLimitModel:
    """Set this month's limit; `threshold` is a percentage and only applies to new limits."""
    period_start = start_of_month(now or utcnow())
    limit = get_monthly_limit(db, user_id, category_id, period_start)
    if limit is None:
        limit = CategoryLimitModel(
            user_id=user_id,
            category_id=category_id,
            period=LimitPeriod.MONTH,
            period_start=period_start,
            threshold=threshold if threshold is not None else get_settings().limit_warning_threshold,
        )
    limit.amount = amount
    db.add(limit)
    db.commit()
    db.refresh(limit)
    return limit


def list_active_limits(db: Session, user_id: int, now: datetime | None = None) -> list[CategoryLimitModel]:
    stmt = (
        select(CategoryLimitModel)
        .options(selectinload(CategoryLimitModel.category))
        .where(
            CategoryLimitModel.user_id == user_id,
            CategoryLimitModel.period == LimitPeriod.MONTH,
            CategoryLimitModel.period_start == start_of_month(now or utcnow()),
        )
        .order_by(CategoryLimitModel.amount.desc())
    )
    return list(db.scalars(stmt))


def resolve_limit_status(
    db: Session, user_id: int, category_id: int, now: datetime | None = None
) -> LimitStatus | None:
    moment = now or utcnow()
    period_start = start_of_month(moment)
    limit = get_monthly_limit(db, user_id, category_id, period_start)
    if limit is None:
        return None

    spent = sum_purchases(
        db,
        user_id=user_id,
        start=period_start,
        end=next_month_start(moment),
        category_id=category_id,
    )
    return LimitStatus(
        limit_id=limit.id,
        category_id=category_id,
        category_name=limit.category.name,
        emoji=limit.category.emoji,
        spent=spent,
        amount=float(limit.amount),
        threshold=limit.threshold / 100,
    )


def claim_limit_warning(
    db: Session, user_id: int, category_id: int, now: datetime | None = None
) -> LimitStatus | None:
    """Return the status if a warning is due this month and stamp the limit as notified."""
    moment = now or utcnow()
    status = resolve_limit_status(db, user_id, category_id, now=moment)
    if status is None or status.coverage < status.threshold:
        return None

    limit = db.get(CategoryLimitModel, status.limit_id)
    if limit is None:
        return None
    if limit.last_notified_at is not None and limit.last_notified_at >= start_of_month(moment):
        return None

    limit.last_notified_at = moment
    db.add(limit)
    db.commit()
    return status


def build_stats_snapshot(
    db: Session, user_id: int, currency: str, now: datetime | None = None
) -> StatsSnapshot:
    moment = now or utcnow()
    day_start = start_of_day(moment)
    week_start = start_of_week(moment)
    month_start = start_of_month(moment)

    today = sum_purchases(db, user_id, day_start, day_start + timedelta(days=1))
    week = sum_purchases(db, user_id, week_start, week_start + timedelta(days=7))
    month = sum_purchases(db, user_id, month_start, next_month_start(moment))

    month_total = month or 1
    categories = [
        CategoryShare(
            name=category.name,
            emoji=category.emoji,
            total=total,
            share=total / month_total,
            limit=resolve_limit_status(db, user_id, category.id, now=moment),
        )
        for category, total in category_breakdown(db, user_id, month_start, next_month_start(moment))[
            :STATS_TOP_CATEGORIES
        ]
    ]
    recent = [purchase_from_model(purchase) for purchase in list_recent_purchases(db, user_id)]

    return StatsSnapshot(
        today=today,
        week=week,
        month=month,
        currency=currency,
        categories=categories,
        recent=recent,
    )
