"""Управление жизненным циклом приложения.

Класс ApplicationLifecycle инкапсулирует всю логику startup и shutdown:
- Проверка миграций БД и засев тарифов
- Сборка реестра сервисов и запуск критичных сервисов
- Запуск планировщика
- Корректная остановка всех компонентов
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from src.app.bootstrap import build_registry, initialize_critical_services, seed_plans
from src.db.base import dispose_engine, get_async_session_factory, get_engine
from src.db.migrations import MigrationStatus, check_migrations
from src.scheduler import create_scheduler, start_scheduler, stop_scheduler
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from fastapi import FastAPI

    from src.config.settings import Settings
    from src.config.yaml_config import YamlConfig
    from src.core.registry import ServiceRegistry

logger = get_logger(__name__)


class ApplicationLifecycle:
    """Управление жизненным циклом приложения.

    Attributes:
        settings: Настройки приложения из .env
        yaml_config: Конфигурация из config.yaml
        registry: Реестр сервисов (создаётся при startup)
        scheduler: APScheduler для ежемесячного обнуления счётчиков
    """

    def __init__(self, settings: Settings, yaml_config: YamlConfig) -> None:
        """Инициализировать lifecycle manager.

        Args:
            settings: Настройки приложения из .env
            yaml_config: Конфигурация из config.yaml
        """
        self.settings = settings
        self.yaml_config = yaml_config

        self.registry: ServiceRegistry | None = None
        self.scheduler: AsyncIOScheduler | None = None

        # Фоновые задачи для некритичных операций
        self._background_tasks: list[asyncio.Task[None]] = []

    async def startup(self, app: FastAPI) -> None:
        """Выполнить startup приложения.

        1. Проверка миграций БД (предупреждение, если не применены)
        2. Засев тарифов из config.yaml
        3. Реестр сервисов и критичные сервисы (ai, billing)
        4. Планировщик

        Args:
            app: FastAPI приложение для сохранения registry и scheduler в app.state

        Raises:
            ServiceRegistryError, ConfigurationError: При boot_fail_fast=True
                и ошибке критичного сервиса.
        """
        logger.info("Запуск приложения...")

        migration_status = await check_migrations(get_engine())

        session_factory = get_async_session_factory()
        if migration_status == MigrationStatus.UP_TO_DATE:
            await self._seed_plans(session_factory)
        else:
            logger.warning("Засев тарифов пропущен: схема БД не актуальна")

        self.registry = build_registry(self.settings, self.yaml_config, session_factory)
        app.state.registry = self.registry
        app.state.yaml_config = self.yaml_config

        results = await initialize_critical_services(
            self.registry, fail_fast=self.settings.registry.boot_fail_fast
        )
        failed = [name for name, ok in results.items() if not ok]
        if failed:
            logger.warning("Запуск с недоступными сервисами: %s", ", ".join(failed))

        self._start_scheduler(app)

        self._start_background_task(self._log_health_summary(), "log_health_summary")

        logger.info("Приложение запущено: %s", self.settings.app.base_url)

    async def shutdown(self) -> None:
        """Выполнить shutdown приложения.

        Порядок остановки:
        1. Планировщик
        2. Фоновые задачи
        3. Реестр сервисов (в обратном порядке инициализации)
        4. Пул соединений БД
        """
        logger.info("Остановка приложения...")

        if self.scheduler is not None:
            stop_scheduler(self.scheduler)

        for task in self._background_tasks:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        if self._background_tasks:
            logger.debug("Фоновые задачи остановлены: %d", len(self._background_tasks))
        self._background_tasks.clear()

        if self.registry is not None:
            await self.registry.shutdown()

        await dispose_engine()
        logger.info("Приложение остановлено")

    async def _seed_plans(self, session_factory: Any) -> None:
        try:
            await seed_plans(session_factory, self.yaml_config)
        except SQLAlchemyError as e:
            logger.error("Не удалось засеять тарифы: %s", e)

    def _start_scheduler(self, app: FastAPI) -> None:
        self.scheduler = create_scheduler()
        start_scheduler(self.scheduler)
        app.state.scheduler = self.scheduler

    def _start_background_task(
        self,
        coro: Coroutine[Any, Any, None],
        name: str,
    ) -> None:
        """Запустить фоновую задачу и сохранить ссылку для cleanup."""
        task = asyncio.create_task(coro, name=name)
        self._background_tasks.append(task)

    async def _log_health_summary(self) -> None:
        """Вывести в лог состояние сервисов после запуска."""
        if self.registry is None:
            return
        reports = await self.registry.check_all_health()
        for name, report in reports.items():
            logger.info("Сервис %s: %s", name, report.status)
