from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class BudgetCategory(str, Enum):
    food = "Food"
    rent = "Rent"
    utilities = "Utilities"
    entertainment = "Entertainment"
    transportation = "Transportation"
    other = "Other"


BUDGET_CATEGORY_ENUM = SAEnum(
    BudgetCategory,
    name="budgetcategory",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    google_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)

    budget_entries: Mapped[list["BudgetEntry"]] = relationship(
        "BudgetEntry",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_federated_only(self) -> bool:
        return self.password_hash is None and self.google_id is not None


class BudgetEntry(Base, TimestampMixin):
    __tablename__ = "budget_entries"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_budget_entry_amount_positive"),
        Index("ix_budget_entry_user_month", "user_id", "month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[BudgetCategory] = mapped_column(
        BUDGET_CATEGORY_ENUM, nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[str] = mapped_column(String(20), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="budget_entries")

    @property
    def amount(self) -> float:
        return self.amount_cents / 100
