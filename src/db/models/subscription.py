"""Модель подписки.

Локальное зеркало подписки Stripe. Источник правды — Stripe:
статусы обновляются из webhook-событий customer.subscription.*.

Жизненный цикл (статусы Stripe):
1. INCOMPLETE — первый платёж ещё не прошёл
2. TRIALING / ACTIVE — подписка действует
3. PAST_DUE / UNPAID — продление не удалось
4. CANCELED — отменена
"""

from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing_extensions import override

from src.db.models_base import Base

if TYPE_CHECKING:
    from src.db.models.plan import Plan
    from src.db.models.user import User


class SubscriptionStatus(StrEnum):
    """Статус подписки (совпадает со значениями Stripe)."""

    TRIALING = "trialing"
    ACTIVE = "active"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"

    @classmethod
    def from_stripe(cls, value: str | None) -> "SubscriptionStatus":
        """Преобразовать статус Stripe, неизвестные значения → INCOMPLETE."""
        try:
            return cls(value or "")
        except ValueError:
            return cls.INCOMPLETE


class Subscription(Base):
    """Подписка пользователя на тариф.

    Attributes:
        id: Внутренний ID подписки.
        user_id: ID пользователя (FK → users.id).
        plan_id: ID тарифа (FK → plans.id).
        stripe_subscription_id: ID подписки в Stripe (sub_...).
        status: Текущий статус.
        current_period_start: Начало оплаченного периода.
        current_period_end: Конец оплаченного периода.
        cancel_at_period_end: Подписка отменится в конце периода.
        canceled_at: Когда подписка была отменена.
        trial_start: Начало пробного периода.
        trial_end: Конец пробного периода.
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    plan_id: Mapped[int | None] = mapped_column(
        ForeignKey("plans.id", ondelete="SET NULL"),
        nullable=True,
    )

    stripe_subscription_id: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, native_enum=False, length=50),
        default=SubscriptionStatus.INCOMPLETE,
        nullable=False,
    )

    current_period_start: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(default=False, nullable=False)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    trial_start: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    trial_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship(back_populates="subscriptions")
    plan: Mapped["Plan | None"] = relationship(lazy="selectin")

    @property
    def is_active(self) -> bool:
        """Подписка действует (оплачена или в пробном периоде)."""
        return self.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, "
            f"stripe_id={self.stripe_subscription_id}, status={self.status})>"
        )
