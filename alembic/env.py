"""Конфигурация Alembic для миграций базы данных.

Настроен для работы с async SQLAlchemy (asyncpg, aiosqlite).

Новая миграция:
    alembic revision --autogenerate -m "описание"
    alembic upgrade head
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy.engine import Connection

from alembic import context
from src.db.base import Base, get_engine

# Все модели должны быть импортированы, иначе autogenerate их не увидит
from src.db.models import (  # noqa: F401
    Invoice,
    Plan,
    Subscription,
    Tenant,
    User,
)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Сгенерировать SQL без подключения к БД.

    Пример: alembic upgrade head --sql > migration.sql
    """
    context.configure(
        url=str(get_engine().url),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Выполнить миграции на синхронном соединении."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        # batch-режим нужен для ALTER TABLE в SQLite
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Выполнить миграции через async engine.

    Alembic не поддерживает async напрямую, поэтому миграции
    выполняются внутри run_sync().
    """
    engine = get_engine()
    try:
        async with engine.connect() as connection:
            await connection.run_sync(do_run_migrations)
            await connection.commit()
    finally:
        await engine.dispose()


def run_migrations_online() -> None:
    """Подключиться к БД и применить миграции."""
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
