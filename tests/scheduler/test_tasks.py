"""Тесты для scheduler.tasks - задачи планировщика.

Модуль тестирует:
- reset_monthly_usage() - ежемесячное обнуление счётчиков

Тестируемая функциональность:
1. Обнуляются только пользователи, не обнулявшиеся в текущем месяце
2. Повторный запуск в том же месяце ничего не меняет
3. Ошибка БД не роняет планировщик
"""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.models.user import User
from src.scheduler.tasks import reset_monthly_usage

NOW = datetime(2026, 3, 1, 0, 5, tzinfo=UTC)


class TestResetMonthlyUsage:
    """Тесты для задачи reset_monthly_usage()."""

    @pytest.mark.asyncio
    async def test_resets_stale_users(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        db_session: AsyncSession,
        test_user: User,
    ) -> None:
        """Проверить обнуление пользователя с прошлым месяцем."""
        # Arrange
        test_user.last_usage_reset = datetime(2026, 2, 14)
        test_user.pages_generated_this_month = 4
        test_user.api_calls_this_month = 80
        await db_session.commit()

        # Act
        count = await reset_monthly_usage(session_factory, now=NOW)

        # Assert
        assert count == 1
        await db_session.refresh(test_user)
        assert test_user.pages_generated_this_month == 0
        assert test_user.api_calls_this_month == 0
        assert test_user.last_usage_reset == datetime(2026, 3, 1, 0, 5)

    @pytest.mark.asyncio
    async def test_idempotent(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        db_session: AsyncSession,
        test_user: User,
    ) -> None:
        """Проверить, что повторный запуск в том же месяце ничего не меняет."""
        test_user.last_usage_reset = datetime(2026, 2, 14)
        await db_session.commit()

        first = await reset_monthly_usage(session_factory, now=NOW)
        second = await reset_monthly_usage(session_factory, now=NOW)

        assert first == 1
        assert second == 0

    @pytest.mark.asyncio
    async def test_database_error_returns_zero(self) -> None:
        """Проверить, что ошибка БД логируется и не пробрасывается."""
        session_context = MagicMock(
            side_effect=OperationalError("UPDATE users", {}, Exception("db down"))
        )

        assert await reset_monthly_usage(session_context, now=NOW) == 0
