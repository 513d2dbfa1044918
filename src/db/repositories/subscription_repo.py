"""Репозиторий для работы с подписками.

Локальные записи подписок — зеркало подписок Stripe.
Основные операции:
- Создание записи при оформлении подписки
- Поиск по ID подписки Stripe
- Обновление статуса и периода из webhook-событий
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.subscription import Subscription, SubscriptionStatus
from src.utils.logging import get_logger

logger = get_logger(__name__)


class SubscriptionRepository:
    """Репозиторий для работы с подписками.

    Attributes:
        session: Асинхронная сессия SQLAlchemy.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Инициализация репозитория.

        Args:
            session: Асинхронная сессия SQLAlchemy.
        """
        self._session = session

    async def create(  # noqa: PLR0913
        self,
        *,
        user_id: int,
        plan_id: int | None,
        stripe_subscription_id: str,
        status: SubscriptionStatus,
        current_period_start: datetime | None = None,
        current_period_end: datetime | None = None,
        trial_start: datetime | None = None,
        trial_end: datetime | None = None,
    ) -> Subscription:
        """Создать запись о подписке.

        Args:
            user_id: ID пользователя в нашей системе.
            plan_id: ID тарифа.
            stripe_subscription_id: ID подписки в Stripe (sub_...).
            status: Статус подписки из Stripe.
            current_period_start: Начало оплаченного периода.
            current_period_end: Конец оплаченного периода.
            trial_start: Начало пробного периода.
            trial_end: Конец пробного периода.

        Returns:
            Созданный объект Subscription.
        """
        subscription = Subscription(
            user_id=user_id,
            plan_id=plan_id,
            stripe_subscription_id=stripe_subscription_id,
            status=status,
            current_period_start=current_period_start,
            current_period_end=current_period_end,
            trial_start=trial_start,
            trial_end=trial_end,
        )
        self._session.add(subscription)
        await self._session.commit()
        await self._session.refresh(subscription)

        logger.info(
            "Создана подписка: id=%s, user_id=%s, stripe_id=%s, status=%s",
            subscription.id,
            user_id,
            stripe_subscription_id,
            status,
        )
        return subscription

    async def get_by_stripe_id(
        self, stripe_subscription_id: str
    ) -> Subscription | None:
        """Получить подписку по ID Stripe.

        Args:
            stripe_subscription_id: ID подписки в Stripe (sub_...).

        Returns:
            Subscription или None если не найдена.
        """
        stmt = select(Subscription).where(
            Subscription.stripe_subscription_id == stripe_subscription_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest_for_user(self, user_id: int) -> Subscription | None:
        """Последняя созданная подписка пользователя."""
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_from_stripe(
        self,
        subscription: Subscription,
        *,
        status: SubscriptionStatus,
        current_period_start: datetime | None = None,
        current_period_end: datetime | None = None,
        cancel_at_period_end: bool | None = None,
        canceled_at: datetime | None = None,
    ) -> Subscription:
        """Обновить подписку данными из Stripe.

        Поля со значением None не перезаписываются.
        """
        subscription.status = status
        if current_period_start is not None:
            subscription.current_period_start = current_period_start
        if current_period_end is not None:
            subscription.current_period_end = current_period_end
        if cancel_at_period_end is not None:
            subscription.cancel_at_period_end = cancel_at_period_end
        if canceled_at is not None:
            subscription.canceled_at = canceled_at

        await self._session.commit()
        await self._session.refresh(subscription)

        logger.info(
            "Подписка %s обновлена: status=%s",
            subscription.stripe_subscription_id,
            status,
        )
        return subscription
