"""Модель пользователя.

Пользователь — владелец тарифа и счётчиков использования. Все генерации,
переводы и изображения учитываются в его месячных счётчиках.

Счётчики обнуляются все вместе при смене календарного месяца
(см. reset_usage_if_needed) или при успешной оплате счёта в Stripe.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing_extensions import override

from src.db.models.subscription import SubscriptionStatus
from src.db.models_base import Base
from src.utils.timezone import (
    ensure_utc_aware,
    is_same_month,
    to_naive_utc,
    utc_now,
)

if TYPE_CHECKING:
    from src.db.models.invoice import Invoice
    from src.db.models.plan import Plan
    from src.db.models.subscription import Subscription
    from src.db.models.tenant import Tenant


class User(Base):
    """Пользователь платформы.

    Attributes:
        id: Внутренний ID в нашей БД (автоинкремент).
        email: Email пользователя (уникальный).
        name: Отображаемое имя.
        tenant_id: Тенант, к которому относится пользователь.
        plan_id: Текущий тариф. None — используется тариф по умолчанию.
        stripe_customer_id: ID клиента в Stripe (cus_...).
        stripe_subscription_id: ID активной подписки в Stripe (sub_...).
        subscription_status: Статус подписки в Stripe.
        pages_generated_this_month: Сгенерировано страниц в текущем месяце.
        api_calls_this_month: API-вызовов в текущем месяце.
        translations_this_month: Единиц перевода в текущем месяце.
        images_generated_this_month: Сгенерировано изображений в текущем месяце.
        last_usage_reset: Когда счётчики обнулялись в последний раз.
        is_active: Активен ли аккаунт.
        created_at: Дата регистрации.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # unique=True — один аккаунт на email
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # ondelete="SET NULL" — при удалении тенанта пользователь остаётся
    tenant_id: Mapped[int | None] = mapped_column(
        ForeignKey("tenants.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    plan_id: Mapped[int | None] = mapped_column(
        ForeignKey("plans.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Связка со Stripe
    stripe_customer_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    subscription_status: Mapped[SubscriptionStatus | None] = mapped_column(
        Enum(SubscriptionStatus, native_enum=False, length=50),
        nullable=True,
    )

    # Месячные счётчики использования.
    # Изменяются только репозиторием атомарными UPDATE (см. UserRepository).
    pages_generated_this_month: Mapped[int] = mapped_column(default=0, nullable=False)
    api_calls_this_month: Mapped[int] = mapped_column(default=0, nullable=False)
    translations_this_month: Mapped[int] = mapped_column(default=0, nullable=False)
    images_generated_this_month: Mapped[int] = mapped_column(default=0, nullable=False)

    # Метка последнего обнуления счётчиков (UTC).
    # По ней определяется, наступил ли новый месяц.
    last_usage_reset: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: to_naive_utc(utc_now()),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    # lazy="selectin" — тариф подгружается вместе с пользователем,
    # валидатору не нужен отдельный запрос
    plan: Mapped["Plan | None"] = relationship(lazy="selectin")
    tenant: Mapped["Tenant | None"] = relationship(
        back_populates="users", lazy="selectin"
    )

    subscriptions: Mapped[list["Subscription"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="noload",
    )
    invoices: Mapped[list["Invoice"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    def needs_usage_reset(self, now: datetime | None = None) -> bool:
        """Наступил ли новый календарный месяц с последнего обнуления."""
        current = now or utc_now()
        return not is_same_month(ensure_utc_aware(self.last_usage_reset), current)

    def reset_usage_if_needed(self, now: datetime | None = None) -> bool:
        """Обнулить счётчики, если месяц сменился.

        Все четыре счётчика обнуляются вместе, и метка last_usage_reset
        ставится в тот же момент. Сохранение в БД — забота вызывающего.

        Args:
            now: Текущий момент (для тестов). По умолчанию — сейчас (UTC).

        Returns:
            True если счётчики были обнулены.
        """
        current = now or utc_now()
        if not self.needs_usage_reset(current):
            return False
        self.reset_usage(current)
        return True

    def reset_usage(self, now: datetime | None = None) -> None:
        """Безусловно обнулить все счётчики и поставить метку."""
        self.pages_generated_this_month = 0
        self.api_calls_this_month = 0
        self.translations_this_month = 0
        self.images_generated_this_month = 0
        self.last_usage_reset = to_naive_utc(now or utc_now())

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return f"<User(id={self.id}, email={self.email}, plan_id={self.plan_id})>"
