"""Репозиторий для работы с тарифными планами."""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.yaml_config import PlanSeedConfig
from src.db.models.plan import Plan, PlanLevel
from src.utils.logging import get_logger

logger = get_logger(__name__)


class PlanRepository:
    """Репозиторий тарифов.

    Тарифы читаются валидатором использования и биллингом.
    Засев из config.yaml выполняется при старте приложения.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, plan_id: int) -> Plan | None:
        """Получить тариф по ID."""
        stmt = select(Plan).where(Plan.id == plan_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_slug(self, slug: str) -> Plan | None:
        """Получить тариф по slug (free, pro, enterprise)."""
        stmt = select(Plan).where(Plan.slug == slug)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_stripe_price_id(self, price_id: str) -> Plan | None:
        """Получить тариф по ID цены Stripe."""
        stmt = select(Plan).where(Plan.stripe_price_id == price_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_default(self) -> Plan | None:
        """Получить тариф по умолчанию.

        Сначала ищется тариф с is_default=True, затем — любой
        активный бесплатный тариф (price = 0).
        """
        stmt = select(Plan).where(Plan.is_default.is_(True), Plan.is_active.is_(True))
        result = await self._session.execute(stmt)
        plan = result.scalars().first()
        if plan is not None:
            return plan

        stmt = (
            select(Plan)
            .where(Plan.price == 0, Plan.is_active.is_(True))
            .order_by(Plan.id)
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def list_active(self) -> list[Plan]:
        """Список активных тарифов по возрастанию цены."""
        stmt = select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.price)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count(self) -> int:
        """Количество тарифов в БД."""
        result = await self._session.execute(select(func.count(Plan.id)))
        return int(result.scalar_one())

    async def seed(self, plans: list[PlanSeedConfig]) -> int:
        """Засеять тарифы из конфигурации, если таблица пуста.

        Args:
            plans: Тарифы из config.yaml.

        Returns:
            Количество созданных тарифов (0 если тарифы уже есть).
        """
        if not plans or await self.count() > 0:
            return 0

        for seed in plans:
            self._session.add(
                Plan(
                    slug=seed.slug,
                    name=seed.name,
                    price=Decimal(str(seed.price)),
                    currency=seed.currency,
                    plan_level=PlanLevel(seed.plan_level),
                    pages_per_month=seed.pages_per_month,
                    api_calls_per_month=seed.api_calls_per_month,
                    translations_per_month=seed.translations_per_month,
                    images_per_month=seed.images_per_month,
                    industries=seed.industries,
                    languages=seed.languages,
                    stripe_price_id=seed.stripe_price_id,
                    stripe_product_id=seed.stripe_product_id,
                    is_default=seed.is_default,
                )
            )
        await self._session.commit()

        logger.info("Засеяно тарифов: %d", len(plans))
        return len(plans)
