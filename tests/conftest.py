"""Общие фикстуры для всех тестов.

Этот файл содержит pytest-фикстуры, которые используются во всех тестах:
- Тестовая БД SQLite в памяти (для изоляции тестов)
- Асинхронные сессии SQLAlchemy и фабрика сессий для сервисов
- Тарифы Free / Pro / Enterprise и тестовый пользователь
- YAML-конфигурация с каталогом отраслей
"""

from collections.abc import AsyncGenerator
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.config.yaml_config import IndustryConfig, YamlConfig
from src.db.models.plan import Plan, PlanLevel
from src.db.models.user import User
from src.db.models_base import Base
from src.utils.timezone import to_naive_utc, utc_now


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[Any, None]:
    """Создать тестовый движок SQLAlchemy.

    Использует SQLite в памяти (:memory:) для полной изоляции тестов.
    StaticPool — одно соединение на движок, поэтому все сессии
    теста видят одну и ту же БД.

    Yields:
        Асинхронный движок SQLAlchemy для тестовой БД.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: Any) -> async_sessionmaker[AsyncSession]:
    """Фабрика сессий тестовой БД (для сервисов и задач планировщика)."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Создать асинхронную сессию БД для теста.

    Yields:
        Асинхронная сессия для работы с тестовой БД.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def free_plan(db_session: AsyncSession) -> Plan:
    """Бесплатный тариф по умолчанию (5 страниц, 100 API-вызовов)."""
    plan = Plan(
        slug="free",
        name="Free",
        price=Decimal(0),
        plan_level=PlanLevel.FREE,
        pages_per_month=5,
        api_calls_per_month=100,
        translations_per_month=50,
        is_default=True,
    )
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest_asyncio.fixture
async def pro_plan(db_session: AsyncSession) -> Plan:
    """Тариф Pro с ценой Stripe и ограничением языков."""
    plan = Plan(
        slug="pro",
        name="Pro",
        price=Decimal(29),
        plan_level=PlanLevel.PRO,
        pages_per_month=100,
        api_calls_per_month=1000,
        translations_per_month=1000,
        languages=["en", "es"],
        stripe_price_id="price_pro",
    )
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest_asyncio.fixture
async def enterprise_plan(db_session: AsyncSession) -> Plan:
    """Тариф Enterprise без ограничений."""
    plan = Plan(
        slug="enterprise",
        name="Enterprise",
        price=Decimal(199),
        plan_level=PlanLevel.ENTERPRISE,
        pages_per_month=-1,
        api_calls_per_month=-1,
        translations_per_month=-1,
        images_per_month=-1,
        stripe_price_id="price_enterprise",
    )
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession, free_plan: Plan) -> User:
    """Создать тестового пользователя на тарифе Free.

    Returns:
        Пользователь с нулевыми счётчиками, обнулёнными в текущем месяце.
    """
    user = User(
        email="owner@example.com",
        name="Owner",
        plan_id=free_plan.id,
        last_usage_reset=to_naive_utc(utc_now()),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def yaml_config() -> YamlConfig:
    """Конфигурация с двумя отраслями и двумя языками."""
    return YamlConfig(
        languages=["en", "es"],
        default_language="en",
        industries={
            "real_estate": IndustryConfig(
                names={"en": "Real Estate", "es": "Bienes Raíces"},
                business_types={
                    "en": ["Apartment", "Villa"],
                    "es": ["Apartamento", "Villa"],
                },
            ),
            "tourism": IndustryConfig(
                names={"en": "Tourism"},
                business_types={"en": ["City Tour"]},
            ),
        },
    )
