"""Централизованные исключения приложения.

Этот модуль содержит ВСЕ кастомные исключения проекта.
Удобный импорт: `from src.core.exceptions import SomeError`

Организация исключений по доменам:
- Configuration: Ошибки конфигурации (нет API-ключа и т.п.)
- Database: Ошибки работы с БД
- Service Registry: Ошибки реестра сервисов (DI-контейнер)
- AI Service: Ошибки AI-сервиса
- AI Providers: Ошибки провайдеров генерации
- Usage: Отказ в операции из-за лимитов тарифа
- Payment Providers: Ошибки платёжных провайдеров
- Billing: Ошибки тарифов и подписок

Политика обработки:
- Ошибки конфигурации фатальны в точке использования и не ретраятся
- Временные ошибки (таймауты, rate limit) помечаются как retryable
- Нарушения лимитов тарифа НЕ являются исключениями внутри валидатора,
  он возвращает структурированный результат UsageValidation
- Циклическая зависимость всегда фатальна и никогда не ретраится
"""

from typing import TYPE_CHECKING

from typing_extensions import override

if TYPE_CHECKING:
    from src.services.usage_validator import UsageValidation

# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================


class ConfigurationError(Exception):
    """Ошибка конфигурации.

    Возникает когда для работы сервиса не хватает настроек
    (например, не указан API-ключ). Повторная попытка не поможет.
    """

    def __init__(self, message: str, setting: str | None = None) -> None:
        """Создать исключение конфигурации.

        Args:
            message: Описание ошибки.
            setting: Имя переменной окружения или поля настроек.
        """
        super().__init__(message)
        self.message = message
        self.setting = setting


# =============================================================================
# DATABASE EXCEPTIONS
# =============================================================================
# Иерархия: DatabaseError -> UserNotFoundError
# =============================================================================


class DatabaseError(Exception):
    """Базовое исключение для ошибок работы с БД.

    Может быть потенциально восстановимым (retry) в зависимости от причины.
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        """Создать исключение БД.

        Args:
            message: Описание ошибки.
            retryable: Можно ли повторить операцию (True для временных сбоев).
        """
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class UserNotFoundError(DatabaseError):
    """Пользователь не найден в базе данных."""

    def __init__(self, user_id: int) -> None:
        """Создать исключение о ненайденном пользователе.

        Args:
            user_id: ID пользователя в нашей БД.
        """
        super().__init__(
            f"Пользователь с id={user_id} не найден в БД",
            retryable=False,
        )
        self.user_id = user_id


# =============================================================================
# SERVICE REGISTRY EXCEPTIONS
# =============================================================================
# Исключения DI-контейнера: регистрация, порядок инициализации, таймауты.
# =============================================================================


class ServiceRegistryError(Exception):
    """Базовое исключение реестра сервисов.

    Attributes:
        message: Описание ошибки.
        service_name: Имя сервиса, с которым связана ошибка.
    """

    def __init__(self, message: str, service_name: str | None = None) -> None:
        """Создать исключение реестра.

        Args:
            message: Описание ошибки.
            service_name: Имя сервиса (опционально).
        """
        super().__init__(message)
        self.message = message
        self.service_name = service_name


class InvalidServiceNameError(ServiceRegistryError):
    """Недопустимое имя сервиса (пустое или не строка)."""

    def __init__(self, name: object) -> None:
        super().__init__(f"Недопустимое имя сервиса: {name!r}")


class ServiceNotFoundError(ServiceRegistryError):
    """Сервис не зарегистрирован.

    Возникает при инициализации неизвестного сервиса или когда
    зависимость объявлена, но так и не была зарегистрирована.
    """

    def __init__(self, name: str, required_by: str | None = None) -> None:
        """Создать исключение о ненайденном сервисе.

        Args:
            name: Имя отсутствующего сервиса.
            required_by: Сервис, который объявил его зависимостью.
        """
        if required_by:
            message = f"Сервис '{name}' не найден (требуется для '{required_by}')"
        else:
            message = f"Сервис '{name}' не найден"
        super().__init__(message, service_name=name)
        self.required_by = required_by


class CircularDependencyError(ServiceRegistryError):
    """Обнаружена циклическая зависимость между сервисами.

    Структурная ошибка графа: повторная попытка её не исправит,
    поэтому реестр никогда не ретраит это исключение.

    Attributes:
        path: Путь цикла, например ["a", "b", "a"].
    """

    def __init__(self, path: list[str]) -> None:
        """Создать исключение о цикле.

        Args:
            path: Имена сервисов по циклу (первый и последний совпадают).
        """
        super().__init__(
            f"Циклическая зависимость: {' -> '.join(path)}",
            service_name=path[0] if path else None,
        )
        self.path = path


class ServiceTimeoutError(ServiceRegistryError):
    """Операция с сервисом не уложилась в таймаут."""

    def __init__(
        self, name: str, timeout: float, operation: str = "initialize"
    ) -> None:
        super().__init__(
            f"Сервис '{name}': {operation} не завершился за {timeout:.1f} с",
            service_name=name,
        )
        self.timeout = timeout
        self.operation = operation


class ServiceInitializationError(ServiceRegistryError):
    """Сервис не удалось инициализировать после всех попыток.

    Attributes:
        attempts: Сколько попыток было сделано.
        original_error: Последняя ошибка инициализации.
    """

    def __init__(
        self,
        name: str,
        *,
        attempts: int,
        original_error: BaseException | None = None,
    ) -> None:
        """Создать исключение об ошибке инициализации.

        Args:
            name: Имя сервиса.
            attempts: Количество сделанных попыток.
            original_error: Последнее исключение.
        """
        super().__init__(
            f"Не удалось инициализировать сервис '{name}' "
            f"после {attempts} попыток: {original_error}",
            service_name=name,
        )
        self.attempts = attempts
        self.original_error = original_error


# =============================================================================
# AI SERVICE EXCEPTIONS
# =============================================================================


class AIServiceError(Exception):
    """Базовое исключение для ошибок AI-сервиса.

    Используется когда ошибка связана с конфигурацией или логикой сервиса,
    а не с конкретным провайдером.

    Attributes:
        message: Описание ошибки.
        model_key: Ключ модели, при работе с которой произошла ошибка.
    """

    def __init__(self, message: str, model_key: str | None = None) -> None:
        self.message = message
        self.model_key = model_key
        super().__init__(message)


# =============================================================================
# AI PROVIDER EXCEPTIONS
# =============================================================================
# Иерархия: GenerationError -> RateLimitError, AuthenticationError
# =============================================================================


class GenerationError(Exception):
    """Ошибка при генерации.

    Выбрасывается когда провайдер не может выполнить запрос.

    Attributes:
        message: Человекочитаемое описание ошибки.
        provider: Название провайдера (openai).
        model_id: ID модели, на которой произошла ошибка.
        is_retryable: Можно ли повторить запрос (True для временных ошибок).
        original_error: Оригинальное исключение от SDK провайдера.
        status_code: HTTP-статус ответа провайдера (если известен).
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        model_id: str,
        is_retryable: bool = False,
        original_error: Exception | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.model_id = model_id
        self.is_retryable = is_retryable
        self.original_error = original_error
        self.status_code = status_code

    @override
    def __str__(self) -> str:
        """Строковое представление ошибки."""
        return f"[{self.provider}:{self.model_id}] {self.message}"


class RateLimitError(GenerationError):
    """Провайдер ограничил частоту запросов (HTTP 429).

    Временная ошибка: всегда помечается как retryable.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        model_id: str,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            provider=provider,
            model_id=model_id,
            is_retryable=True,
            original_error=original_error,
            status_code=429,
        )


class AuthenticationError(GenerationError):
    """Провайдер отклонил API-ключ (HTTP 401).

    Ошибка конфигурации: повторять запрос бессмысленно.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        model_id: str,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            provider=provider,
            model_id=model_id,
            is_retryable=False,
            original_error=original_error,
            status_code=401,
        )


class ProviderNotAvailableError(Exception):
    """Провайдер недоступен или не зарегистрирован.

    Возникает когда:
    - Провайдер не зарегистрирован в реестре
    - API-ключ для провайдера не настроен

    Attributes:
        message: Описание ошибки.
        provider_type: Тип провайдера, который недоступен.
    """

    def __init__(self, message: str, provider_type: str | None = None) -> None:
        self.message = message
        self.provider_type = provider_type
        super().__init__(message)


# =============================================================================
# USAGE EXCEPTIONS
# =============================================================================


class UsageLimitExceededError(Exception):
    """Операция отклонена валидатором использования.

    Выбрасывается AI-сервисом (не валидатором!), когда validate_usage()
    вернул allowed=False. Несёт исходный результат валидации, чтобы
    вызывающий код мог отличить исчерпание лимита (предложить апгрейд)
    от временного сбоя (предложить повторить).

    Attributes:
        validation: Результат валидации с причиной отказа.
    """

    def __init__(self, validation: "UsageValidation") -> None:
        """Создать исключение.

        Args:
            validation: Результат validate_usage() с allowed=False.
        """
        super().__init__(validation.reason or "Операция не разрешена тарифом")
        self.validation = validation

    @property
    def upgrade_required(self) -> bool:
        """Нужно ли предложить пользователю сменить тариф."""
        return self.validation.upgrade_required

    @property
    def is_retryable(self) -> bool:
        """Отказ вызван временным сбоем инфраструктуры."""
        return self.validation.degraded


# =============================================================================
# PAYMENT PROVIDER EXCEPTIONS
# =============================================================================


class PaymentError(Exception):
    """Ошибка при работе с платёжным провайдером.

    Attributes:
        message: Человекочитаемое описание ошибки.
        provider: Название провайдера (stripe).
        is_retryable: Можно ли повторить операцию (True для временных ошибок).
        original_error: Оригинальное исключение.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        is_retryable: bool = False,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.is_retryable = is_retryable
        self.original_error = original_error

    @override
    def __str__(self) -> str:
        """Строковое представление ошибки."""
        return f"[{self.provider}] {self.message}"


# =============================================================================
# BILLING EXCEPTIONS
# =============================================================================
# Тарифы, подписки и синхронизация счетов.
# =============================================================================


class PlanNotFoundError(Exception):
    """Тариф не найден."""

    def __init__(self, plan: int | str) -> None:
        super().__init__(f"Тариф не найден: {plan}")
        self.plan = plan


class SubscriptionError(Exception):
    """Базовое исключение для ошибок подписок."""


class SubscriptionNotFoundError(SubscriptionError):
    """У пользователя нет подписки в платёжной системе."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"У пользователя id={user_id} нет активной подписки")
