"""Factory для создания FastAPI приложения.

Функция create_app() создаёт и настраивает FastAPI app:
- Подключает роутеры (health, pages, webhooks)
- Настраивает CORS middleware
- Подключает lifecycle manager
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.health import router as health_router
from src.api.pages import router as pages_router
from src.api.webhooks import router as webhooks_router
from src.app.lifecycle import ApplicationLifecycle
from src.config.settings import Settings
from src.config.yaml_config import YamlConfig
from src.utils.logging import get_logger

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None, yaml_config: YamlConfig | None = None
) -> FastAPI:
    """Создать и настроить FastAPI приложение.

    Args:
        settings: Настройки (по умолчанию — из окружения).
        yaml_config: Бизнес-конфигурация (по умолчанию — из config.yaml).

    Returns:
        Настроенное FastAPI приложение готовое к запуску
    """
    if settings is None:
        from src.config.settings import settings
    if yaml_config is None:
        from src.config.yaml_config import yaml_config

    lifecycle = ApplicationLifecycle(settings, yaml_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        """Управление жизненным циклом приложения."""
        await lifecycle.startup(app)
        yield
        await lifecycle.shutdown()

    app = FastAPI(
        title=settings.app.name,
        description="AI-генерация SEO-лендингов для отраслей и тенантов",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Порядок middleware в FastAPI обратный: последний добавленный выполняется первым
    if settings.cors.is_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors.allow_origins,
            allow_credentials=settings.cors.allow_credentials,
            allow_methods=settings.cors.allow_methods,
            allow_headers=settings.cors.allow_headers,
        )
        logger.info(
            "CORS включён для доменов: %s",
            ", ".join(settings.cors.allow_origins),
        )

    # Health: /health, /health/services
    app.include_router(health_router)

    # Лендинги: /api/pages/...
    app.include_router(pages_router)

    # Webhooks: /api/webhooks/stripe
    app.include_router(webhooks_router)

    return app
