"""Задачи планировщика.

Этот модуль содержит функции, которые периодически выполняются
планировщиком APScheduler:

1. reset_monthly_usage — обнуление месячных счётчиков использования

Как работает ежемесячное обнуление:
1. 1-го числа каждого месяца в 00:05 UTC запускается задача
2. Одним UPDATE обнуляются счётчики всех пользователей, у которых
   last_usage_reset приходится на прошлый месяц
3. Пользователи, уже обнулённые в этом месяце (например, при запросе
   или после оплаты счёта), не затрагиваются

Важно: Задачи должны быть идемпотентными (безопасно запускать повторно).
Повторный запуск в том же месяце ничего не меняет.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import DatabaseSession
from src.db.repositories.user_repo import UserRepository
from src.utils.logging import get_logger

logger = get_logger(__name__)

SessionContext = Callable[[], AbstractAsyncContextManager[AsyncSession]]


async def reset_monthly_usage(
    session_context: SessionContext = DatabaseSession,
    now: datetime | None = None,
) -> int:
    """Обнулить счётчики пользователей, не обнулявшихся в текущем месяце.

    Args:
        session_context: Фабрика контекста сессии (в тестах — своя БД).
        now: Текущий момент (для тестов).

    Returns:
        Количество обнулённых пользователей (0 при ошибке БД).
    """
    logger.info("Запуск ежемесячного обнуления счётчиков")

    try:
        async with session_context() as session:
            count = await UserRepository(session).reset_stale_usage(now)
    except SQLAlchemyError:
        logger.exception("Ошибка БД при обнулении счётчиков")
        return 0

    logger.info("Счётчики обнулены: пользователей=%d", count)
    return count
