"""Тесты для сборки реестра сервисов (bootstrap).

Проверяют:
- Состав сервисов и граф зависимостей
- Запуск в деградированном режиме без ключей OpenAI и Stripe
- Прерывание запуска при boot_fail_fast
- Засев тарифов из config.yaml
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.app.bootstrap import build_registry, initialize_critical_services, seed_plans
from src.config.settings import Settings
from src.config.yaml_config import YamlConfig, load_yaml_config
from src.core.exceptions import ConfigurationError
from src.core.registry import ServiceRegistry, ServiceStatus
from src.db.repositories.plan_repo import PlanRepository


@pytest.fixture
def bare_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Настройки без ключей внешних сервисов."""
    for name in ("AI__OPENAI_API_KEY", "STRIPE__SECRET_KEY", "CACHE__REDIS_URL"):
        monkeypatch.delenv(name, raising=False)
    return Settings(_env_file=None)


@pytest.fixture
def registry(
    bare_settings: Settings,
    yaml_config: YamlConfig,
    session_factory: async_sessionmaker[AsyncSession],
) -> ServiceRegistry:
    """Реестр приложения поверх тестовой БД."""
    return build_registry(bare_settings, yaml_config, session_factory)


class TestBuildRegistry:
    """Тесты для функции build_registry()."""

    def test_services_registered(self, registry: ServiceRegistry) -> None:
        """Тест: все сервисы приложения зарегистрированы."""
        assert set(registry.get_status()) == {
            "logger",
            "cache",
            "usage_validator",
            "ai",
            "billing",
            "pages",
        }

    def test_pages_dependency_order(self, registry: ServiceRegistry) -> None:
        """Тест: pages поднимается после ai, cache и валидатора."""
        order = registry.resolve_order("pages")

        assert order[-1] == "pages"
        assert order[0] == "logger"
        assert order.index("usage_validator") < order.index("ai")
        assert order.index("cache") < order.index("ai")


class TestInitializeCriticalServices:
    """Тесты для функции initialize_critical_services()."""

    @pytest.mark.asyncio
    async def test_degraded_without_keys(self, registry: ServiceRegistry) -> None:
        """Тест: без ключей приложение стартует, ai и billing — FAILED."""
        # Act
        results = await initialize_critical_services(registry)

        # Assert
        assert results == {"cache": True, "ai": False, "billing": False}
        status = registry.get_status()
        assert status["cache"].status == ServiceStatus.RUNNING
        assert status["ai"].status == ServiceStatus.FAILED
        assert await registry.get("pages") is None
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_fail_fast(self, registry: ServiceRegistry) -> None:
        """Тест: fail_fast пробрасывает ошибку конфигурации."""
        with pytest.raises(ConfigurationError) as exc_info:
            await initialize_critical_services(registry, fail_fast=True)

        assert exc_info.value.setting == "AI__OPENAI_API_KEY"
        await registry.shutdown()


class TestSeedPlans:
    """Тесты для функции seed_plans()."""

    @pytest.mark.asyncio
    async def test_seed_from_project_config(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Тест: тарифы из config.yaml засеваются один раз."""
        config = load_yaml_config()

        first = await seed_plans(session_factory, config)
        second = await seed_plans(session_factory, config)

        assert first == len(config.plans)
        assert second == 0
        async with session_factory() as session:
            default = await PlanRepository(session).get_default()
        assert default is not None
        assert default.slug == "free"
