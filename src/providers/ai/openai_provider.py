"""Адаптер для OpenAI API.

Этот модуль реализует интеграцию с OpenAI API для:
- Генерации описаний и переводов (Chat Completions)
- Генерации изображений (Images API, DALL-E)
- Проверки API-ключа (список моделей)

Ошибки SDK классифицируются по HTTP-статусу:
- 401 — AuthenticationError (не повторяется)
- 429 — RateLimitError (повторяется)
- 503, таймауты и обрывы соединения — GenerationError(is_retryable=True)
- 400 — GenerationError(is_retryable=False)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import openai
from openai import AsyncOpenAI
from typing_extensions import override

from src.core.exceptions import AuthenticationError, GenerationError, RateLimitError
from src.providers.ai.base import (
    BaseProviderAdapter,
    GenerationResult,
    GenerationStatus,
    GenerationType,
)
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletionMessageParam

    from src.config.models import AIProvidersSettings

logger = get_logger(__name__)

SUPPORTED_GENERATION_TYPES = frozenset({GenerationType.CHAT, GenerationType.IMAGE})

# Таймаут по умолчанию для HTTP-клиента (в секундах).
DEFAULT_TIMEOUT_SECONDS = 60.0

# HTTP-статусы, после которых запрос имеет смысл повторить
RETRYABLE_STATUS_CODES = frozenset({408, 409, 500, 502, 503, 504})


class OpenAIAdapter(BaseProviderAdapter):
    """Адаптер для OpenAI API.

    Пример использования:
        adapter = OpenAIAdapter(api_key="sk-...")

        result = await adapter.generate(
            model_id="gpt-4-turbo",
            prompt="Write a description for a villa in Madrid",
            generation_type=GenerationType.CHAT,
            system_prompt="You are an expert marketing copywriter...",
        )

        image = await adapter.generate(
            model_id="dall-e-3",
            prompt="Professional photo of a villa in Madrid",
            generation_type=GenerationType.IMAGE,
            size="1024x1024",
        )

    Attributes:
        _client: Асинхронный клиент OpenAI SDK.
        _base_url: Base URL для API (None — стандартный OpenAI).
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        organization: str | None = None,
        proxy_url: str | None = None,
    ) -> None:
        """Создать адаптер OpenAI API.

        Args:
            api_key: API-ключ OpenAI.
            base_url: URL OpenAI-совместимого API (None — api.openai.com).
            timeout: Таймаут запросов в секундах.
            organization: ID организации (опционально).
            proxy_url: URL прокси-сервера (http://, https://, socks5://).
        """
        self._base_url = base_url
        self._timeout = timeout

        http_client: httpx.AsyncClient | None = None
        if proxy_url:
            logger.info("Используем прокси для OpenAI API: %s", proxy_url)
            http_client = httpx.AsyncClient(proxy=proxy_url, timeout=timeout)

        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            organization=organization,
            http_client=http_client,
        )

    @property
    @override
    def provider_name(self) -> str:
        """Название провайдера."""
        if self._base_url:
            return f"openai-compatible ({self._base_url})"
        return "openai"

    @override
    def supports_capability(self, generation_type: GenerationType) -> bool:
        """Проверить поддержку типа генерации."""
        return generation_type in SUPPORTED_GENERATION_TYPES

    @override
    async def generate(
        self,
        model_id: str,
        prompt: str,
        *,
        generation_type: GenerationType,
        **kwargs: Any,
    ) -> GenerationResult:
        """Выполнить генерацию через OpenAI API.

        Args:
            model_id: ID модели (gpt-4-turbo, dall-e-3).
            prompt: Текстовый промпт.
            generation_type: Тип генерации.
            **kwargs: Дополнительные параметры:
                - system_prompt: str — системный промпт для CHAT
                - max_tokens: int — максимум токенов в ответе
                - temperature: float — температура (0.0-2.0)
                - presence_penalty, frequency_penalty: float
                - size: str — размер изображения ("1024x1024")

        Returns:
            GenerationResult с результатом.

        Raises:
            GenerationError: При ошибке API (RateLimitError, AuthenticationError).
        """
        if not self.supports_capability(generation_type):
            raise GenerationError(
                f"OpenAI не поддерживает {generation_type.value}",
                provider=self.provider_name,
                model_id=model_id,
                is_retryable=False,
            )

        try:
            if generation_type == GenerationType.IMAGE:
                return await self._generate_image(model_id, prompt, **kwargs)
            return await self._generate_chat(model_id, prompt, **kwargs)
        except GenerationError:
            raise
        except openai.OpenAIError as e:
            logger.warning(
                "Ошибка OpenAI API (model=%s, generation_type=%s): %s",
                model_id,
                generation_type,
                e.__class__.__name__,
            )
            raise self._classify_error(e, model_id) from e

    async def _generate_chat(
        self,
        model_id: str,
        prompt: str,
        **kwargs: Any,
    ) -> GenerationResult:
        """Генерация текста через Chat Completions API."""
        messages: list[ChatCompletionMessageParam] = []

        system_prompt = kwargs.get("system_prompt")
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        max_tokens = kwargs.get("max_tokens", 500)

        logger.debug("OpenAI Chat: model=%s, max_tokens=%d", model_id, max_tokens)

        response = await self._client.chat.completions.create(
            model=model_id,
            messages=messages,
            max_tokens=max_tokens,
            temperature=kwargs.get("temperature", 0.7),
            presence_penalty=kwargs.get("presence_penalty", 0.0),
            frequency_penalty=kwargs.get("frequency_penalty", 0.0),
        )

        content = response.choices[0].message.content or ""

        usage: dict[str, Any] = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        logger.debug("OpenAI Chat завершён: tokens=%s", usage)

        return GenerationResult(
            status=GenerationStatus.SUCCESS,
            content=content.strip(),
            usage=usage,
            raw_response={"id": response.id, "model": response.model},
        )

    async def _generate_image(
        self,
        model_id: str,
        prompt: str,
        **kwargs: Any,
    ) -> GenerationResult:
        """Генерация одного изображения через Images API.

        Returns:
            GenerationResult с URL изображения (content=None, если URL не вернулся).
        """
        size = kwargs.get("size", "1024x1024")

        logger.debug("OpenAI Image: model=%s, size=%s", model_id, size)

        response = await self._client.images.generate(
            model=model_id,
            prompt=prompt,
            n=1,
            size=size,
        )

        url = response.data[0].url if response.data else None
        if url is None:
            logger.warning("OpenAI не вернул URL изображения (model=%s)", model_id)

        return GenerationResult(status=GenerationStatus.SUCCESS, content=url)

    @override
    async def validate_credentials(self) -> bool:
        """Проверить API-ключ запросом списка моделей."""
        try:
            await self._client.models.list()
        except openai.OpenAIError as e:
            logger.warning(
                "Проверка API-ключа OpenAI не прошла: %s", e.__class__.__name__
            )
            return False
        return True

    @override
    async def close(self) -> None:
        """Закрыть HTTP-клиент OpenAI SDK."""
        await self._client.close()

    def _classify_error(
        self, error: openai.OpenAIError, model_id: str
    ) -> GenerationError:
        """Преобразовать исключение SDK в ошибку генерации.

        Args:
            error: Исключение от OpenAI SDK.
            model_id: ID модели запроса.

        Returns:
            Типизированная ошибка генерации.
        """
        provider = self.provider_name

        if isinstance(error, openai.AuthenticationError):
            return AuthenticationError(
                "Invalid OpenAI API key",
                provider=provider,
                model_id=model_id,
                original_error=error,
            )

        if isinstance(error, openai.RateLimitError):
            return RateLimitError(
                "Rate limit exceeded. Please try again later.",
                provider=provider,
                model_id=model_id,
                original_error=error,
            )

        if isinstance(error, openai.APIStatusError):
            status_code = error.status_code
            if status_code == 503:
                message = "OpenAI service temporarily unavailable"
            elif status_code == 400:
                message = f"Invalid request: {error.message}"
            else:
                message = error.message
            return GenerationError(
                message,
                provider=provider,
                model_id=model_id,
                is_retryable=status_code in RETRYABLE_STATUS_CODES,
                original_error=error,
                status_code=status_code,
            )

        # APIConnectionError и APITimeoutError — сеть, можно повторить
        return GenerationError(
            str(error) or error.__class__.__name__,
            provider=provider,
            model_id=model_id,
            is_retryable=isinstance(error, openai.APIConnectionError),
            original_error=error,
        )


# ==============================================================================
# ФАБРИКА АДАПТЕРА
# ==============================================================================


def create_openai_adapter(
    settings: AIProvidersSettings,
    proxy_url: str | None = None,
    timeout: float | None = None,
) -> OpenAIAdapter | None:
    """Создать OpenAIAdapter из настроек.

    Args:
        settings: Настройки AI (ключ, base_url, организация).
        proxy_url: HTTP-прокси для запросов к API.
        timeout: Таймаут запроса в секундах (None — значение по умолчанию).

    Returns:
        Адаптер или None, если AI__OPENAI_API_KEY не задан.
    """
    if settings.openai_api_key is None:
        return None

    return OpenAIAdapter(
        api_key=settings.openai_api_key.get_secret_value(),
        base_url=settings.openai_base_url,
        organization=settings.openai_organization,
        proxy_url=proxy_url,
        timeout=timeout or DEFAULT_TIMEOUT_SECONDS,
    )
