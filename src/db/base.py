"""Базовая конфигурация SQLAlchemy.

Этот модуль отвечает за:
- Создание подключения к базе данных (engine)
- Настройку фабрики сессий (async_sessionmaker)
- Сессии для FastAPI (get_session) и фоновых задач (DatabaseSession)

URL базы данных:
- Если DATABASE__POSTGRES_URL указан — используется PostgreSQL (asyncpg)
- Иначе — SQLite (./data/app.db или /data/app.db в контейнере)

ВАЖНО: Для изоляции тестов engine и async_session_factory создаются лениво.
Импорт Base для моделей должен быть из src.db.models_base.
"""

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.config.constants import DATA_DIR
from src.db.models_base import Base

__all__ = [
    "Base",
    "DatabaseSession",
    "dispose_engine",
    "get_async_session_factory",
    "get_engine",
    "get_session",
]

if TYPE_CHECKING:
    from src.config.settings import Settings

# Ленивые синглтоны для engine и session factory
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _get_settings() -> "Settings":
    """Ленивая загрузка настроек.

    Позволяет тестам импортировать модуль без загрузки настроек из .env файла.
    """
    from src.config.settings import settings

    return settings


def _get_database_url() -> str:
    """Получить URL подключения к базе данных (async).

    Логика выбора:
    1. Если DATABASE__POSTGRES_URL указан — используем PostgreSQL
    2. Иначе — SQLite из DATA_DIR/app.db

    Returns:
        URL подключения в формате SQLAlchemy (с async-драйвером).
    """
    settings = _get_settings()
    if settings.database.postgres_url:
        return settings.database.postgres_url

    db_path = DATA_DIR / "app.db"
    return f"sqlite+aiosqlite:///{db_path}"


def get_engine() -> AsyncEngine:
    """Получить асинхронный engine (ленивая инициализация).

    Returns:
        Асинхронный Engine для SQLAlchemy.
    """
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            _get_database_url(),
            echo=False,
            pool_pre_ping=True,
        )
    return _engine


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """Получить фабрику асинхронных сессий (ленивая инициализация).

    expire_on_commit=False — не "протухать" объекты после commit.

    Returns:
        Фабрика асинхронных сессий SQLAlchemy.
    """
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


async def dispose_engine() -> None:
    """Закрыть пул соединений (при остановке приложения)."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_factory = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Получить сессию для работы с БД (для FastAPI Depends).

    Yields:
        AsyncSession для выполнения запросов.
    """
    factory = get_async_session_factory()
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


class DatabaseSession:
    """Асинхронный контекстный менеджер для работы с БД.

    Автоматически откатывает транзакцию при ошибке.

    Пример использования:
        async with DatabaseSession() as session:
            repo = UserRepository(session)
            user = await repo.get_by_id(42)
    """

    def __init__(self) -> None:
        """Инициализировать менеджер."""
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> AsyncSession:
        """Открыть сессию."""
        factory = get_async_session_factory()
        self._session = factory()
        return await self._session.__aenter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Закрыть сессию, откатить при ошибке."""
        if self._session is None:
            return

        if exc_type is not None:
            # При ошибке откатываем транзакцию
            await self._session.rollback()

        await self._session.close()
