"""Проверка статуса миграций базы данных.

Используется при старте приложения: если схема БД отстаёт от кода,
в лог пишется предупреждение (приложение продолжает запуск).

Как работает проверка:
1. Head-ревизия берётся из alembic/versions через ScriptDirectory
2. Текущая ревизия читается из таблицы alembic_version через MigrationContext
3. Результат сравнения возвращается как MigrationStatus
"""

from enum import StrEnum

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine

from src.config.constants import PROJECT_ROOT
from src.utils.logging import get_logger

logger = get_logger(__name__)

ALEMBIC_INI_PATH = PROJECT_ROOT / "alembic.ini"
MIGRATIONS_DIR = PROJECT_ROOT / "alembic"


class MigrationStatus(StrEnum):
    """Результат проверки миграций."""

    UP_TO_DATE = "up_to_date"
    NOT_APPLIED = "not_applied"
    OUTDATED = "outdated"
    NO_MIGRATIONS = "no_migrations"


def get_head_revision() -> str | None:
    """Получить head-ревизию из файлов миграций.

    Returns:
        ID head-ревизии или None, если миграций нет.
    """
    if not (MIGRATIONS_DIR / "versions").exists():
        logger.warning("Папка миграций не найдена: %s", MIGRATIONS_DIR / "versions")
        return None

    config = Config(str(ALEMBIC_INI_PATH))
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    script = ScriptDirectory.from_config(config)
    return script.get_current_head()


def _read_current_revision(connection: Connection) -> str | None:
    context = MigrationContext.configure(connection)
    return context.get_current_revision()


async def get_current_revision(engine: AsyncEngine) -> str | None:
    """Получить текущую ревизию из таблицы alembic_version.

    Returns:
        ID ревизии или None, если миграции не применялись.
    """
    async with engine.connect() as conn:
        return await conn.run_sync(_read_current_revision)


async def check_migrations(engine: AsyncEngine) -> MigrationStatus:
    """Проверить статус миграций и вывести предупреждение если нужно.

    Args:
        engine: Асинхронный SQLAlchemy engine.

    Returns:
        Статус миграций.
    """
    head_revision = get_head_revision()
    if head_revision is None:
        logger.warning("Файлы миграций не найдены")
        return MigrationStatus.NO_MIGRATIONS

    current_revision = await get_current_revision(engine)
    if current_revision is None:
        logger.warning(
            "МИГРАЦИИ НЕ ПРИМЕНЕНЫ! База данных не инициализирована. "
            "Выполните: alembic upgrade head"
        )
        return MigrationStatus.NOT_APPLIED

    if current_revision != head_revision:
        logger.warning(
            "МИГРАЦИИ НЕ АКТУАЛЬНЫ! Текущая ревизия: %s, последняя: %s. "
            "Выполните: alembic upgrade head",
            current_revision,
            head_revision,
        )
        return MigrationStatus.OUTDATED

    logger.debug("Миграции актуальны (ревизия: %s)", current_revision)
    return MigrationStatus.UP_TO_DATE
