from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class LimitPeriod(str, PyEnum):
    MONTH = "month"


class UserModel(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    telegram_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    first_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    username: Mapped[str | None] = mapped_column(String(120), nullable=True)
    currency: Mapped[str] = mapped_column(String(5), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    categories: Mapped[list["CategoryModel"]] = relationship(
        "CategoryModel", back_populates="user", cascade="all, delete-orphan"
    )
    purchases: Mapped[list["PurchaseModel"]] = relationship(
        "PurchaseModel", back_populates="user", cascade="all, delete-orphan"
    )


class CategoryModel(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    emoji: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    user: Mapped[UserModel] = relationship("UserModel", back_populates="categories")
    purchases: Mapped[list["PurchaseModel"]] = relationship(
        "PurchaseModel", back_populates="category", cascade="all, delete-orphan"
    )
    limits: Mapped[list["CategoryLimitModel"]] = relationship(
        "CategoryLimitModel", back_populates="category", cascade="all, delete-orphan"
    )

    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_categories_user_name"),)


class PurchaseModel(Base):
    __tablename__ = "purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    spent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    user: Mapped[UserModel] = relationship("UserModel", back_populates="purchases")
    category: Mapped[CategoryModel] = relationship("CategoryModel", back_populates="purchases")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_purchases_amount_positive"),
    )


class CategoryLimitModel(Base):
    __tablename__ = "category_limits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    period: Mapped[LimitPeriod] = mapped_column(
        Enum(LimitPeriod, name="limit_period"), nullable=False, default=LimitPeriod.MONTH
    )
    period_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    # Percent of the limit at which a warning is sent.
    threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=75)
    last_notified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    category: Mapped[CategoryModel] = relationship("CategoryModel", back_populates="limits")

    __table_args__ = (
        UniqueConstraint(
            "user_id", "category_id", "period", "period_start", name="uq_category_limits_period"
        ),
        CheckConstraint("amount > 0", name="ck_category_limits_amount_positive"),
    )
