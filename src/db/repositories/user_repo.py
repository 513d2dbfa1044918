"""Репозиторий для работы с пользователями.

Содержит все операции с таблицей users:
- Создание и поиск пользователей
- Привязка к тарифу и к клиенту Stripe
- Атомарное изменение месячных счётчиков использования

Счётчики меняются только одиночными UPDATE-запросами вида
`SET counter = counter + :amount`, поэтому параллельные запросы
одного пользователя не теряют инкременты (read-modify-write на стороне БД).
"""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.subscription import SubscriptionStatus
from src.db.models.user import User
from src.utils.logging import get_logger
from src.utils.timezone import start_of_month, to_naive_utc, utc_now

logger = get_logger(__name__)


class UsageCounter(StrEnum):
    """Месячный счётчик использования (значение — имя колонки)."""

    PAGES = "pages_generated_this_month"
    API_CALLS = "api_calls_this_month"
    TRANSLATIONS = "translations_this_month"
    IMAGES = "images_generated_this_month"


class UserRepository:
    """Репозиторий для работы с пользователями.

    Использует Dependency Injection — сессия передаётся в конструктор.

    Пример использования:
        async with DatabaseSession() as session:
            repo = UserRepository(session)
            user = await repo.get_by_id(42)
    """

    def __init__(self, session: AsyncSession) -> None:
        """Инициализировать репозиторий.

        Args:
            session: Асинхронная сессия SQLAlchemy.
        """
        self._session = session

    # =========================================================================
    # Чтение
    # =========================================================================

    async def get_by_id(self, user_id: int) -> User | None:
        """Получить пользователя по внутреннему ID.

        Args:
            user_id: ID пользователя в нашей БД.

        Returns:
            User (с подгруженным тарифом) или None если не найден.
        """
        stmt = select(User).where(User.id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        """Получить пользователя по email (без учёта регистра)."""
        stmt = select(User).where(User.email == email.strip().lower())
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_stripe_customer_id(self, customer_id: str) -> User | None:
        """Получить пользователя по ID клиента Stripe (cus_...)."""
        stmt = select(User).where(User.stripe_customer_id == customer_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_stripe_subscription_id(self, subscription_id: str) -> User | None:
        """Получить пользователя по ID подписки Stripe (sub_...)."""
        stmt = select(User).where(User.stripe_subscription_id == subscription_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    # =========================================================================
    # Запись
    # =========================================================================

    async def create(
        self,
        *,
        email: str,
        name: str | None = None,
        tenant_id: int | None = None,
        plan_id: int | None = None,
    ) -> User:
        """Создать пользователя.

        Счётчики начинаются с нуля, метка обнуления — текущий момент.

        Args:
            email: Email (приводится к нижнему регистру).
            name: Отображаемое имя.
            tenant_id: ID тенанта.
            plan_id: ID тарифа (None — тариф по умолчанию).

        Returns:
            Созданный пользователь.
        """
        user = User(
            email=email.strip().lower(),
            name=name,
            tenant_id=tenant_id,
            plan_id=plan_id,
            last_usage_reset=to_naive_utc(utc_now()),
        )
        self._session.add(user)
        await self._session.commit()
        await self._session.refresh(user)

        logger.info("Создан пользователь: id=%s, tenant_id=%s", user.id, tenant_id)
        return user

    async def set_plan(self, user: User, plan_id: int | None) -> User:
        """Назначить пользователю тариф (None — вернуть на тариф по умолчанию)."""
        user.plan_id = plan_id
        await self._session.commit()
        await self._session.refresh(user)
        logger.info("Пользователь %s переведён на тариф %s", user.id, plan_id)
        return user

    async def set_stripe_customer(self, user: User, customer_id: str) -> User:
        """Сохранить ID клиента Stripe."""
        user.stripe_customer_id = customer_id
        await self._session.commit()
        return user

    async def update_subscription(
        self,
        user: User,
        *,
        subscription_id: str | None,
        status: SubscriptionStatus | None,
        plan_id: int | None = None,
        change_plan: bool = False,
    ) -> User:
        """Обновить данные подписки у пользователя.

        Args:
            user: Пользователь.
            subscription_id: ID подписки в Stripe (None — подписки нет).
            status: Статус подписки.
            plan_id: Новый тариф (учитывается только при change_plan=True).
            change_plan: Менять ли тариф пользователя.

        Returns:
            Обновлённый пользователь.
        """
        user.stripe_subscription_id = subscription_id
        user.subscription_status = status
        if change_plan:
            user.plan_id = plan_id
        await self._session.commit()
        await self._session.refresh(user)
        return user

    # =========================================================================
    # Счётчики использования
    # =========================================================================

    async def increment_usage(
        self, user_id: int, counter: UsageCounter, amount: int = 1
    ) -> bool:
        """Атомарно увеличить счётчик использования.

        Args:
            user_id: ID пользователя.
            counter: Какой счётчик увеличить.
            amount: На сколько увеличить.

        Returns:
            True если пользователь найден и счётчик увеличен.
        """
        column = getattr(User, counter.value)
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values({column: column + amount})
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount > 0

    async def reset_usage(self, user_id: int, now: datetime | None = None) -> bool:
        """Безусловно обнулить все счётчики пользователя.

        Используется при успешной оплате счёта: новый оплаченный период
        начинается с нулевых счётчиков.

        Returns:
            True если пользователь найден.
        """
        stamp = to_naive_utc(now or utc_now())
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                pages_generated_this_month=0,
                api_calls_this_month=0,
                translations_this_month=0,
                images_generated_this_month=0,
                last_usage_reset=stamp,
            )
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount > 0

    async def reset_usage_if_needed(
        self, user: User, now: datetime | None = None
    ) -> bool:
        """Обнулить счётчики, если с прошлого обнуления сменился месяц.

        UPDATE выполняется с условием `last_usage_reset < начало_месяца`,
        поэтому из двух параллельных запросов обнулит только один,
        а инкременты, сделанные после обнуления, не потеряются.

        Args:
            user: Пользователь (будет обновлён из БД).
            now: Текущий момент (для тестов).

        Returns:
            True если счётчики были обнулены этим вызовом.
        """
        current = now or utc_now()
        if not user.needs_usage_reset(current):
            return False

        month_start = to_naive_utc(start_of_month(current))
        stmt = (
            update(User)
            .where(User.id == user.id, User.last_usage_reset < month_start)
            .values(
                pages_generated_this_month=0,
                api_calls_this_month=0,
                translations_this_month=0,
                images_generated_this_month=0,
                last_usage_reset=to_naive_utc(current),
            )
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        await self._session.refresh(user)

        was_reset = result.rowcount > 0
        if was_reset:
            logger.info("Счётчики использования обнулены: user_id=%s", user.id)
        return was_reset

    async def reset_stale_usage(self, now: datetime | None = None) -> int:
        """Обнулить счётчики всех пользователей, не обнулявшихся в этом месяце.

        Вызывается ежемесячной задачей планировщика.

        Returns:
            Количество обнулённых пользователей.
        """
        current = now or utc_now()
        month_start = to_naive_utc(start_of_month(current))
        stmt = (
            update(User)
            .where(User.last_usage_reset < month_start)
            .values(
                pages_generated_this_month=0,
                api_calls_this_month=0,
                translations_this_month=0,
                images_generated_this_month=0,
                last_usage_reset=to_naive_utc(current),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount
