"""Валидатор использования — проверка лимитов тарифа.

Перед каждой AI-операцией вызывается validate_usage(): валидатор
обнуляет месячные счётчики (если сменился месяц), находит тариф
пользователя и проверяет, укладывается ли операция в лимиты.
После успешной операции вызывается record_usage() — счётчик
увеличивается одним атомарным UPDATE.

Нарушение лимита — не исключение, а структурированный результат
UsageValidation(allowed=False, reason=...). Отказ из-за сбоя
инфраструктуры помечается degraded=True: пользователю предлагают
повторить попытку, а не сменить тариф.

Пример использования:
    validation = await validator.validate_usage(
        user, OperationType.PAGE_GENERATION, {"industry": "tourism", "language": "es"}
    )
    if not validation.allowed:
        raise UsageLimitExceededError(validation)

    content = await provider.generate(...)
    await validator.record_usage(user.id, OperationType.PAGE_GENERATION)
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.constants import UNLIMITED
from src.db.models.plan import Plan
from src.db.models.user import User
from src.db.repositories.plan_repo import PlanRepository
from src.db.repositories.user_repo import UsageCounter, UserRepository
from src.utils.logging import get_logger
from src.utils.timezone import utc_now

logger = get_logger(__name__)

# Один символ перевода стоит 1/1000 единицы (округление вверх)
TRANSLATION_CHARS_PER_UNIT = 1000

# Оценка объёма массовой генерации, если города или типы не переданы
DEFAULT_MASS_GENERATION_ESTIMATE = 50


class OperationType(StrEnum):
    """Тип операции, который проверяет валидатор."""

    PAGE_GENERATION = "page_generation"
    AI_TRANSLATION = "ai_translation"
    IMAGE_GENERATION = "image_generation"
    MASS_GENERATION = "mass_generation"
    API_CALL = "api_call"


# Какой счётчик увеличивает каждая операция
OPERATION_COUNTERS: dict[OperationType, UsageCounter] = {
    OperationType.PAGE_GENERATION: UsageCounter.PAGES,
    OperationType.MASS_GENERATION: UsageCounter.PAGES,
    OperationType.AI_TRANSLATION: UsageCounter.TRANSLATIONS,
    OperationType.IMAGE_GENERATION: UsageCounter.IMAGES,
    OperationType.API_CALL: UsageCounter.API_CALLS,
}


@dataclass(frozen=True)
class UsageValidation:
    """Результат проверки лимитов.

    Attributes:
        allowed: Разрешена ли операция.
        reason: Причина отказа (None если разрешено).
        remaining: Остаток квоты. UNLIMITED (-1) — без ограничений.
        cost_units: Сколько единиц квоты потратит операция.
        upgrade_required: Отказ можно снять переходом на старший тариф.
        degraded: Отказ из-за сбоя инфраструктуры (стоит повторить позже).
    """

    allowed: bool
    reason: str | None = None
    remaining: int = 0
    cost_units: int | None = None
    upgrade_required: bool = False
    degraded: bool = False


def _remaining(limit: int, used: int) -> int:
    if limit == UNLIMITED:
        return UNLIMITED
    return max(limit - used, 0)


def _deny(
    reason: str, *, upgrade_required: bool = False, remaining: int = 0
) -> UsageValidation:
    return UsageValidation(
        allowed=False,
        reason=reason,
        remaining=remaining,
        upgrade_required=upgrade_required,
    )


def translation_cost(text_length: int) -> int:
    """Стоимость перевода в единицах квоты: одна единица на 1000 символов."""
    return math.ceil(text_length / TRANSLATION_CHARS_PER_UNIT)


class UsageValidator:
    """Проверка и учёт использования по тарифу пользователя.

    Валидатор не хранит состояния между вызовами: каждая проверка
    открывает собственную сессию и читает актуальные счётчики из БД.

    Attributes:
        _session_factory: Фабрика сессий SQLAlchemy.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Инициализировать валидатор.

        Args:
            session_factory: Фабрика асинхронных сессий.
        """
        self._session_factory = session_factory

    async def initialize(self) -> None:
        """Хук жизненного цикла реестра сервисов."""
        logger.info("Валидатор использования готов")

    async def shutdown(self) -> None:
        """Хук жизненного цикла реестра сервисов."""
        logger.debug("Валидатор использования остановлен")

    # =========================================================================
    # Проверка
    # =========================================================================

    async def validate_usage(
        self,
        user: User | int,
        operation: OperationType | str,
        params: Mapping[str, Any] | None = None,
    ) -> UsageValidation:
        """Проверить, разрешена ли операция по тарифу пользователя.

        Порядок:
        1. Обнулить счётчики, если сменился календарный месяц (сохраняется в БД)
        2. Найти тариф пользователя (или тариф по умолчанию)
        3. Выполнить проверку для конкретного типа операции

        Args:
            user: Пользователь или его ID.
            operation: Тип операции.
            params: Параметры операции:
                - page_generation: industry, language
                - ai_translation: text или text_length
                - mass_generation: city_count, type_count

        Returns:
            Результат проверки. Исключения не пробрасываются.
        """
        params = params or {}
        user_id = user.id if isinstance(user, User) else user

        try:
            operation_type = OperationType(operation)
        except ValueError:
            logger.warning(
                "Неизвестный тип операции: user_id=%s, operation=%s", user_id, operation
            )
            return _deny(f"Unknown operation type: {operation}")

        try:
            async with self._session_factory() as session:
                validation = await self._validate(
                    session, user_id, operation_type, params
                )
        except Exception:
            logger.exception(
                "Ошибка проверки лимитов: user_id=%s, operation=%s",
                user_id,
                operation_type,
            )
            return UsageValidation(
                allowed=False, reason="Validation error occurred", degraded=True
            )

        if validation.allowed:
            logger.debug(
                "Операция разрешена: user_id=%s, operation=%s, remaining=%s",
                user_id,
                operation_type,
                validation.remaining,
            )
        else:
            logger.info(
                "Операция отклонена: user_id=%s, operation=%s, reason=%s",
                user_id,
                operation_type,
                validation.reason,
            )
        return validation

    async def _validate(
        self,
        session: AsyncSession,
        user_id: int,
        operation: OperationType,
        params: Mapping[str, Any],
    ) -> UsageValidation:
        user_repo = UserRepository(session)
        user = await user_repo.get_by_id(user_id)
        if user is None:
            return _deny("No valid plan found")

        await user_repo.reset_usage_if_needed(user, utc_now())

        plan = user.plan or await PlanRepository(session).get_default()
        if plan is None:
            return _deny("No valid plan found")

        match operation:
            case OperationType.PAGE_GENERATION:
                return self._check_page_generation(user, plan, params)
            case OperationType.AI_TRANSLATION:
                return self._check_translation(user, plan, params)
            case OperationType.IMAGE_GENERATION:
                return self._check_image_generation(user, plan)
            case OperationType.MASS_GENERATION:
                return self._check_mass_generation(user, plan, params)
            case OperationType.API_CALL:
                return self._check_api_call(user, plan)

    def _check_page_generation(
        self, user: User, plan: Plan, params: Mapping[str, Any]
    ) -> UsageValidation:
        limit = plan.pages_per_month
        remaining = _remaining(limit, user.pages_generated_this_month)
        if remaining == 0:
            return _deny(
                "Monthly page generation limit exceeded", upgrade_required=True
            )

        industry = params.get("industry")
        if not plan.allows_industry(industry):
            return _deny(
                f"Industry {industry} not allowed in current plan",
                upgrade_required=True,
                remaining=remaining,
            )

        language = params.get("language")
        if not plan.allows_language(language):
            return _deny(
                f"Language {language} not allowed in current plan",
                upgrade_required=True,
                remaining=remaining,
            )

        return UsageValidation(allowed=True, remaining=remaining, cost_units=1)

    def _check_translation(
        self, user: User, plan: Plan, params: Mapping[str, Any]
    ) -> UsageValidation:
        text = params.get("text")
        if text is not None:
            text_length = len(text)
        else:
            text_length = int(params.get("text_length", 0))
        cost = translation_cost(text_length)

        remaining = _remaining(plan.translation_limit, user.translations_this_month)
        if remaining == UNLIMITED:
            return UsageValidation(allowed=True, remaining=UNLIMITED, cost_units=cost)

        if remaining == 0:
            return _deny("Monthly translation limit exceeded", upgrade_required=True)

        if cost > remaining:
            return UsageValidation(
                allowed=False,
                reason="Insufficient translation quota for this text length",
                remaining=remaining,
                cost_units=cost,
                upgrade_required=True,
            )

        return UsageValidation(allowed=True, remaining=remaining, cost_units=cost)

    def _check_image_generation(self, user: User, plan: Plan) -> UsageValidation:
        remaining = _remaining(plan.image_limit, user.images_generated_this_month)
        if remaining == 0:
            return _deny(
                "Monthly image generation limit exceeded", upgrade_required=True
            )
        return UsageValidation(allowed=True, remaining=remaining, cost_units=1)

    def _check_mass_generation(
        self, user: User, plan: Plan, params: Mapping[str, Any]
    ) -> UsageValidation:
        if not plan.is_enterprise:
            return _deny(
                "Mass generation requires Enterprise plan", upgrade_required=True
            )

        city_count = params.get("city_count")
        type_count = params.get("type_count")
        if city_count and type_count:
            estimate = int(city_count) * int(type_count)
        else:
            estimate = DEFAULT_MASS_GENERATION_ESTIMATE

        remaining = _remaining(plan.pages_per_month, user.pages_generated_this_month)
        if remaining != UNLIMITED and estimate > remaining:
            return UsageValidation(
                allowed=False,
                reason=(
                    f"Insufficient quota for mass generation "
                    f"({estimate} pages required, {remaining} remaining)"
                ),
                remaining=remaining,
                cost_units=estimate,
                upgrade_required=True,
            )

        return UsageValidation(allowed=True, remaining=remaining, cost_units=estimate)

    def _check_api_call(self, user: User, plan: Plan) -> UsageValidation:
        remaining = _remaining(plan.api_calls_per_month, user.api_calls_this_month)
        if remaining == 0:
            return _deny("Monthly API call limit exceeded", upgrade_required=True)
        return UsageValidation(allowed=True, remaining=remaining, cost_units=1)

    # =========================================================================
    # Учёт
    # =========================================================================

    async def record_usage(
        self,
        user_id: int,
        operation: OperationType | str,
        cost_units: int = 1,
    ) -> bool:
        """Записать использование после успешной операции.

        Вызывать только после validate_usage(), вернувшего allowed=True
        для той же операции.

        Args:
            user_id: ID пользователя.
            operation: Тип операции.
            cost_units: Сколько единиц списать.

        Returns:
            True если счётчик увеличен. Ошибки логируются, не пробрасываются.
        """
        try:
            counter = OPERATION_COUNTERS[OperationType(operation)]
        except ValueError:
            logger.warning("Неизвестный тип операции при учёте: %s", operation)
            return False

        try:
            async with self._session_factory() as session:
                updated = await UserRepository(session).increment_usage(
                    user_id, counter, cost_units
                )
        except Exception:
            logger.exception(
                "Не удалось записать использование: user_id=%s, operation=%s",
                user_id,
                operation,
            )
            return False

        if not updated:
            logger.warning("Пользователь не найден при учёте: user_id=%s", user_id)
            return False

        logger.debug(
            "Использование записано: user_id=%s, %s += %s", user_id, counter, cost_units
        )
        return True
