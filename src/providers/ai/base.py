"""Базовый адаптер для AI-провайдеров.

Этот модуль определяет абстрактный интерфейс, который должны реализовать
все AI-провайдеры. Сервис генерации страниц работает только с этим
интерфейсом и не знает, какой SDK стоит за адаптером.

Паттерн: Adapter (GoF) + Strategy
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class GenerationType(StrEnum):
    """Типы генерации для AI-провайдеров."""

    # Текстовая генерация: описания страниц и переводы
    # Вход: текстовый промпт + системный промпт
    # Выход: текстовый ответ
    CHAT = "chat"

    # Генерация изображений (DALL-E)
    # Вход: текстовое описание картинки
    # Выход: URL изображения
    IMAGE = "image"


class GenerationStatus(StrEnum):
    """Статус генерации."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class GenerationResult:
    """Результат генерации от AI-провайдера.

    Attributes:
        status: Статус генерации.
        content: Результат генерации:
            - CHAT: str (текст ответа)
            - IMAGE: str (URL изображения) или None, если провайдер не вернул URL
        error_message: Сообщение об ошибке (если status == FAILED).
        usage: Информация об использовании токенов.
        raw_response: Сырые поля ответа (для отладки).
    """

    status: GenerationStatus
    content: str | None = None
    error_message: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        """Проверить, успешна ли генерация."""
        return self.status == GenerationStatus.SUCCESS

    @property
    def is_failed(self) -> bool:
        """Проверить, провалилась ли генерация."""
        return self.status == GenerationStatus.FAILED


class BaseProviderAdapter(ABC):
    """Абстрактный базовый класс для AI-провайдеров.

    Для добавления нового провайдера:
    1. Создайте класс, наследующий BaseProviderAdapter
    2. Реализуйте generate(), supports_capability() и validate_credentials()
    3. Добавьте фабричную функцию по образцу create_openai_adapter()

    Пример:
        class MyProviderAdapter(BaseProviderAdapter):
            async def generate(self, model_id: str, prompt: str, **kwargs):
                response = await self._client.complete(model=model_id, prompt=prompt)
                return GenerationResult(
                    status=GenerationStatus.SUCCESS,
                    content=response.text,
                )
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Название провайдера (для логов и ошибок)."""

    @abstractmethod
    async def generate(
        self,
        model_id: str,
        prompt: str,
        *,
        generation_type: GenerationType,
        **kwargs: Any,
    ) -> GenerationResult:
        """Выполнить генерацию.

        Args:
            model_id: Идентификатор модели на стороне провайдера.
            prompt: Текстовый промпт.
            generation_type: Тип генерации.
            **kwargs: Параметры, зависящие от типа генерации:
                - system_prompt, max_tokens, temperature — для CHAT
                - size — для IMAGE

        Returns:
            GenerationResult с результатом.

        Raises:
            GenerationError: При ошибке генерации (RateLimitError,
                AuthenticationError — для 429 и 401).
        """

    @abstractmethod
    def supports_capability(self, generation_type: GenerationType) -> bool:
        """Проверить, поддерживает ли провайдер данный тип генерации."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Проверить, что API-ключ принимается провайдером.

        Returns:
            True если ключ рабочий. Ошибки не пробрасываются.
        """

    async def close(self) -> None:
        """Закрыть HTTP-соединения адаптера.

        По умолчанию ничего не делает.
        """
        return None
