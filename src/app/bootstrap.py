"""Сборка реестра сервисов приложения.

Здесь, в точке сборки, создаются все сервисы и регистрируются
в ServiceRegistry с зависимостями:

    logger ─┬─ cache
            ├─ usage_validator ─┐
            ├─ ai ──────────────┤ (deps: logger, usage_validator, cache)
            └─ billing          │
    pages ──────────────────────┘ (deps: ai, cache, usage_validator)

Критичные сервисы (ai, billing) инициализируются при старте.
Их ошибка логируется, а при REGISTRY__BOOT_FAIL_FAST=true прерывает запуск.
"""

from collections.abc import Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.settings import Settings
from src.config.yaml_config import YamlConfig
from src.core.exceptions import ConfigurationError, ServiceRegistryError
from src.core.registry import (
    FactoryService,
    ModuleService,
    ServiceRegistry,
    SingletonService,
)
from src.db.repositories.plan_repo import PlanRepository
from src.services.ai_service import AIService
from src.services.billing_service import BillingService
from src.services.cache import ContentCache
from src.services.page_service import PageService
from src.services.usage_validator import UsageValidator
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Сервисы, без которых генерация и оплата не работают
CRITICAL_SERVICES = ("ai", "billing")

# Таймаут инициализации AI-сервиса (проверка ключа через сеть)
AI_INIT_TIMEOUT = 120.0


async def _ai_health(ai: AIService) -> dict[str, Any]:
    valid = await ai.validate_api_key()
    return {"status": "healthy" if valid else "unhealthy", "api_key_valid": valid}


async def _cache_health(cache: ContentCache) -> dict[str, Any]:
    return await cache.ping()


async def _billing_health(billing: BillingService) -> dict[str, Any]:
    return await billing.health_check()


def build_registry(
    settings: Settings,
    yaml_config: YamlConfig,
    session_factory: async_sessionmaker[AsyncSession],
) -> ServiceRegistry:
    """Создать реестр и зарегистрировать сервисы приложения.

    Args:
        settings: Настройки из окружения.
        yaml_config: Бизнес-конфигурация.
        session_factory: Фабрика сессий БД.

    Returns:
        Реестр с зарегистрированными (ещё не инициализированными) сервисами.
    """
    reg = settings.registry
    registry = ServiceRegistry(
        default_timeout=reg.default_timeout,
        default_retries=reg.retries,
        retry_backoff=reg.retry_backoff,
        health_timeout=reg.health_timeout,
        shutdown_grace=reg.shutdown_grace,
    )

    registry.register(
        "logger",
        ModuleService(get_logger("landing")),
        lazy=False,
        priority=100,
        description="Логгер приложения",
        tags=["core"],
    )

    cache = ContentCache(
        settings.cache.redis_url if settings.cache.has_redis else None,
        key_prefix=settings.cache.key_prefix,
        connect_timeout=settings.cache.connect_timeout,
        default_ttl=yaml_config.cache.page_ttl_seconds,
        max_entries=yaml_config.cache.max_memory_entries,
    )
    registry.register(
        "cache",
        SingletonService(cache),
        dependencies=["logger"],
        health_check=_cache_health,
        description="Кэш контента (память + Redis)",
        tags=["core", "storage"],
    )

    validator = UsageValidator(session_factory)
    registry.register(
        "usage_validator",
        SingletonService(validator),
        dependencies=["logger"],
        description="Проверка лимитов тарифа",
        tags=["billing"],
    )

    async def ai_factory(deps: Mapping[str, Any]) -> AIService:
        return AIService(
            settings.ai,
            yaml_config,
            deps["usage_validator"],
            proxy_url=settings.proxy,
        )

    registry.register(
        "ai",
        FactoryService(ai_factory),
        dependencies=["logger", "usage_validator", "cache"],
        timeout=AI_INIT_TIMEOUT,
        health_check=_ai_health,
        description="AI-генерация текстов, переводов и изображений",
        tags=["ai"],
    )

    billing = BillingService(settings.stripe, yaml_config, session_factory)
    registry.register(
        "billing",
        SingletonService(billing),
        dependencies=["logger"],
        health_check=_billing_health,
        description="Подписки и счета Stripe",
        tags=["billing"],
    )

    async def pages_factory(deps: Mapping[str, Any]) -> PageService:
        return PageService(
            deps["ai"], deps["cache"], deps["usage_validator"], yaml_config
        )

    registry.register(
        "pages",
        FactoryService(pages_factory),
        dependencies=["ai", "cache", "usage_validator"],
        description="Генерация лендингов через кэш",
        tags=["ai"],
    )

    return registry


async def seed_plans(
    session_factory: async_sessionmaker[AsyncSession], yaml_config: YamlConfig
) -> int:
    """Засеять тарифы из config.yaml, если таблица тарифов пуста.

    Returns:
        Количество созданных тарифов.
    """
    async with session_factory() as session:
        created = await PlanRepository(session).seed(yaml_config.plans)
    if created:
        logger.info("Созданы тарифы из config.yaml: %d", created)
    return created


async def initialize_critical_services(
    registry: ServiceRegistry, *, fail_fast: bool = False
) -> dict[str, bool]:
    """Поднять критичные сервисы при старте приложения.

    Кэш инициализируется явно: у него есть зависимость (logger),
    поэтому автоматическая инициализация при регистрации не срабатывает.

    Args:
        registry: Реестр сервисов.
        fail_fast: Пробросить первую ошибку вместо продолжения запуска.

    Returns:
        Имя сервиса → поднялся ли он.

    Raises:
        ServiceRegistryError, ConfigurationError: Ошибка при fail_fast=True.
    """
    await registry.start()
    await registry.wait_for_pending()

    results: dict[str, bool] = {}
    for name in ("cache", *CRITICAL_SERVICES):
        try:
            await registry.initialize(name)
        except (ServiceRegistryError, ConfigurationError) as e:
            results[name] = False
            if fail_fast:
                logger.critical("Критичный сервис '%s' не запустился: %s", name, e)
                raise
            logger.error(
                "Сервис '%s' не запустился, приложение работает без него: %s",
                name,
                e,
            )
        else:
            results[name] = True
    return results
