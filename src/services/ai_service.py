"""Сервис AI-генерации контента для лендингов.

Оркестрирует вызовы AI-провайдера:
- Описания страниц (generate_description)
- Переводы с сохранением маркетингового тона (translate_text)
- Изображения (generate_image)
- Пакетная генерация с контролем доли ошибок (generate_bulk)

Каждая операция с user_id сначала проходит проверку лимитов
(UsageValidator.validate_usage), а после успешного ответа модели
записывает использование (UsageValidator.record_usage). Отказ валидатора
превращается в UsageLimitExceededError.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from src.config.models import AIProvidersSettings
from src.config.yaml_config import YamlConfig
from src.core.exceptions import (
    AIServiceError,
    ConfigurationError,
    GenerationError,
    ProviderNotAvailableError,
    UsageLimitExceededError,
)
from src.providers.ai import BaseProviderAdapter, GenerationType, create_openai_adapter
from src.services.usage_validator import OperationType, UsageValidator
from src.utils.logging import get_logger

logger = get_logger(__name__)

PROVIDER_NAME = "openai"

# Инструкции по языку и SEO для промпта описания
LANGUAGE_INSTRUCTIONS: dict[str, str] = {
    "en": "Write in professional English with American SEO optimization",
    "es": "Escribe en español profesional con optimización SEO para hispanohablantes",
    "fr": "Écrivez en français professionnel avec optimisation SEO française",
    "de": "Schreiben Sie in professionellem Deutsch mit deutscher SEO-Optimierung",
    "it": "Scrivi in italiano professionale con ottimizzazione SEO italiana",
    "pt": "Escreva em português profissional com otimização SEO brasileira",
    "ru": "Пишите на профессиональном русском языке с русской SEO-оптимизацией",
    "ja": "プロフェッショナルな日本語でSEO最適化して書いてください",
    "zh": "用专业中文写作，并进行中文SEO优化",
}


def build_prompt(
    industry: str, location: str, business_type: str, language: str
) -> str:
    """Собрать промпт для генерации описания страницы.

    Args:
        industry: Отрасль (название или ключ).
        location: Город или регион.
        business_type: Тип бизнеса.
        language: Код языка. Неизвестный язык — инструкция на английском.

    Returns:
        Текст промпта.
    """
    instruction = LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["en"])
    return (
        f"Create a compelling, conversion-focused business description for a "
        f"{industry} {business_type} in {location}.\n\n"
        f"REQUIREMENTS:\n"
        f"- {instruction}\n"
        f"- Length: 180-350 words\n"
        f"- Include location-specific keywords naturally\n"
        f"- Focus on unique value propositions and customer benefits\n"
        f"- Add emotional triggers and trust signals\n"
        f"- Include clear call-to-action\n"
        f"- Use power words that drive conversions\n"
        f"- Optimize for voice search and mobile users\n"
        f"- Structure for featured snippets potential\n\n"
        f"CONTEXT:\n"
        f"- Industry: {industry}\n"
        f"- Business Type: {business_type}\n"
        f"- Location: {location}\n"
        f"- Target Language: {language}\n\n"
        f"TONE: Professional, trustworthy, locally-focused, conversion-optimized\n\n"
        f"Generate the marketing copy now:"
    )


def build_translation_prompt(text: str, target_language: str) -> str:
    """Собрать промпт перевода с сохранением тона и SEO-ключей."""
    return (
        f"Translate the following text to {target_language} "
        f"preserving marketing tone and SEO keywords:\n"
        f"---\n{text}\n---\n"
        f"Translation:"
    )


@dataclass(frozen=True)
class BulkRequest:
    """Один запрос пакетной генерации."""

    industry: str
    location: str
    business_type: str
    language: str


@dataclass
class BulkItemResult:
    """Результат одного запроса пакетной генерации."""

    index: int
    request: BulkRequest
    success: bool
    content: str | None = None
    error: str | None = None


@dataclass
class BulkSummary:
    """Итог пакетной генерации.

    Attributes:
        total: Сколько запросов передано.
        success: Сколько выполнено успешно.
        failed: Сколько завершилось ошибкой.
        stopped_early: Генерация прервана из-за высокой доли ошибок.
    """

    total: int
    success: int = 0
    failed: int = 0
    stopped_early: bool = False

    @property
    def success_rate(self) -> float:
        """Доля успешных запросов в процентах (от всех переданных)."""
        if self.total == 0:
            return 0.0
        return round(self.success / self.total * 100, 1)


@dataclass
class BulkResult:
    """Результат generate_bulk()."""

    summary: BulkSummary
    results: list[BulkItemResult] = field(default_factory=list)


class AIService:
    """Сервис AI-генерации контента.

    Адаптер провайдера создаётся лениво при первом обращении.
    Сервис управляется реестром: initialize() проверяет API-ключ,
    shutdown() закрывает HTTP-клиенты.

    Attributes:
        _settings: Настройки AI-провайдеров (API-ключ).
        _config: YAML-конфигурация (модели, таймауты, пакетная генерация).
        _validator: Валидатор использования (None — без проверки лимитов).
    """

    def __init__(
        self,
        settings: AIProvidersSettings,
        config: YamlConfig,
        validator: UsageValidator | None = None,
        *,
        proxy_url: str | None = None,
    ) -> None:
        self._settings = settings
        self._config = config
        self._validator = validator
        self._proxy_url = proxy_url
        self._provider = PROVIDER_NAME
        self._adapter: BaseProviderAdapter | None = None
        self._initialized = False

        # Один адаптер на все типы генерации, поэтому берём максимальный таймаут
        timeouts = config.generation_timeouts
        self._timeout = max(timeouts.text, timeouts.image, timeouts.translation)

    @property
    def is_initialized(self) -> bool:
        """Сервис прошёл initialize()."""
        return self._initialized

    def _get_adapter(self) -> BaseProviderAdapter:
        """Получить адаптер провайдера (с ленивой инициализацией)."""
        if self._adapter is None:
            adapter = create_openai_adapter(
                self._settings,
                proxy_url=self._proxy_url,
                timeout=float(self._timeout),
            )
            if adapter is None:
                raise ProviderNotAvailableError(
                    "API-ключ OpenAI не настроен", provider_type=PROVIDER_NAME
                )
            self._adapter = adapter
            logger.debug("Создан адаптер: %s", self._provider)
        return self._adapter

    # =========================================================================
    # Жизненный цикл
    # =========================================================================

    async def initialize(self) -> None:
        """Проверить конфигурацию и API-ключ.

        Raises:
            ConfigurationError: Ключ не задан или отклонён провайдером.
        """
        if not self._settings.has_openai:
            raise ConfigurationError(
                "OpenAI API key not configured", setting="AI__OPENAI_API_KEY"
            )

        if not await self.validate_api_key():
            raise ConfigurationError(
                "Invalid OpenAI API key", setting="AI__OPENAI_API_KEY"
            )

        self._initialized = True
        logger.info(
            "AI-сервис готов: провайдер=%s, модель=%s, прокси=%s, таймаут=%dс",
            self._provider,
            self._config.text_model.model_id,
            "да" if self._proxy_url else "нет",
            self._timeout,
        )

    async def shutdown(self) -> None:
        """Закрыть HTTP-клиенты провайдера."""
        self._initialized = False
        if self._adapter is not None:
            await self._adapter.close()
            self._adapter = None
        logger.info("AI-сервис остановлен")

    async def validate_api_key(self) -> bool:
        """Проверить, что API-ключ принимается провайдером.

        Используется как health check сервиса в реестре.
        """
        if not self._settings.has_openai:
            return False
        return await self._get_adapter().validate_credentials()

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise AIServiceError("AI-сервис не инициализирован")

    # =========================================================================
    # Лимиты
    # =========================================================================

    async def _check_usage(
        self,
        user_id: int | None,
        operation: OperationType,
        params: dict[str, Any] | None = None,
    ) -> int:
        """Проверить лимиты и вернуть стоимость операции в единицах квоты.

        Raises:
            UsageLimitExceededError: Валидатор отклонил операцию.
        """
        if user_id is None or self._validator is None:
            return 1

        validation = await self._validator.validate_usage(user_id, operation, params)
        if not validation.allowed:
            raise UsageLimitExceededError(validation)
        return validation.cost_units if validation.cost_units is not None else 1

    async def _record_usage(
        self, user_id: int | None, operation: OperationType, cost_units: int
    ) -> None:
        if user_id is None or self._validator is None:
            return
        await self._validator.record_usage(user_id, operation, cost_units)

    # =========================================================================
    # Генерация
    # =========================================================================

    async def generate_description(
        self,
        industry: str,
        location: str,
        business_type: str,
        language: str,
        user_id: int | None = None,
        *,
        industry_key: str | None = None,
    ) -> str:
        """Сгенерировать SEO-описание страницы.

        Args:
            industry: Название отрасли для промпта.
            location: Город или регион.
            business_type: Тип бизнеса.
            language: Язык текста.
            user_id: ID пользователя (None — без проверки и учёта лимитов).
            industry_key: Ключ отрасли из каталога для проверки по тарифу
                (None — проверяется industry).

        Returns:
            Текст описания.

        Raises:
            UsageLimitExceededError: Лимит тарифа исчерпан.
            GenerationError: Ошибка провайдера или пустой ответ.
        """
        self._ensure_initialized()
        cost = await self._check_usage(
            user_id,
            OperationType.PAGE_GENERATION,
            {"industry": industry_key or industry, "language": language},
        )

        model = self._config.text_model
        prompt = build_prompt(industry, location, business_type, language)

        try:
            result = await self._get_adapter().generate(
                model_id=model.model_id,
                prompt=prompt,
                generation_type=GenerationType.CHAT,
                system_prompt=model.system_prompt,
                max_tokens=model.max_tokens,
                temperature=model.temperature,
                presence_penalty=model.presence_penalty,
                frequency_penalty=model.frequency_penalty,
            )
        except GenerationError as e:
            logger.error(
                "Ошибка генерации описания: user_id=%s, industry=%s, location=%s, "
                "type=%s, lang=%s, error=%s",
                user_id,
                industry,
                location,
                business_type,
                language,
                e,
            )
            raise

        description = result.content
        if not description:
            raise GenerationError(
                "Empty response from OpenAI API",
                provider=self._provider,
                model_id=model.model_id,
                is_retryable=True,
            )

        await self._record_usage(user_id, OperationType.PAGE_GENERATION, cost)

        logger.info(
            "Описание сгенерировано: user_id=%s, industry=%s, location=%s, "
            "lang=%s, tokens=%s, chars=%d",
            user_id,
            industry,
            location,
            language,
            result.usage.get("total_tokens", 0),
            len(description),
        )
        return description

    async def translate_text(
        self,
        text: str,
        target_language: str,
        user_id: int | None = None,
    ) -> str:
        """Перевести текст с сохранением маркетингового тона.

        Стоимость перевода — одна единица квоты на 1000 символов.

        Returns:
            Перевод. Если модель вернула пустой ответ — исходный текст.

        Raises:
            UsageLimitExceededError: Квоты переводов не хватает.
            GenerationError: Ошибка провайдера.
        """
        self._ensure_initialized()
        cost = await self._check_usage(
            user_id, OperationType.AI_TRANSLATION, {"text": text}
        )

        model = self._config.translation_model
        result = await self._get_adapter().generate(
            model_id=model.model_id,
            prompt=build_translation_prompt(text, target_language),
            generation_type=GenerationType.CHAT,
            max_tokens=model.max_tokens,
            temperature=model.temperature,
        )

        if not result.content:
            logger.warning(
                "Пустой перевод на %s, возвращаем исходный текст", target_language
            )
            return text

        await self._record_usage(user_id, OperationType.AI_TRANSLATION, cost)
        return result.content

    async def generate_image(
        self, prompt: str, user_id: int | None = None
    ) -> str | None:
        """Сгенерировать изображение.

        Returns:
            URL изображения или None (генерация выключена или URL не вернулся).

        Raises:
            UsageLimitExceededError: Лимит изображений исчерпан.
            GenerationError: Ошибка провайдера.
        """
        model = self._config.image_model
        if not model.enabled:
            return None

        self._ensure_initialized()
        cost = await self._check_usage(user_id, OperationType.IMAGE_GENERATION)

        result = await self._get_adapter().generate(
            model_id=model.model_id,
            prompt=prompt,
            generation_type=GenerationType.IMAGE,
            size=model.size,
        )

        if result.content is None:
            return None

        await self._record_usage(user_id, OperationType.IMAGE_GENERATION, cost)
        return result.content

    async def _generate_bulk_item(
        self,
        index: int,
        position_in_batch: int,
        request: BulkRequest,
        user_id: int | None,
    ) -> BulkItemResult:
        # Запуски внутри пачки разнесены во времени, чтобы не упереться в rate limit
        stagger = self._config.bulk.stagger_ms / 1000
        if position_in_batch and stagger:
            await asyncio.sleep(position_in_batch * stagger)

        try:
            content = await self.generate_description(
                request.industry,
                request.location,
                request.business_type,
                request.language,
                user_id,
            )
        except (GenerationError, UsageLimitExceededError, AIServiceError) as e:
            return BulkItemResult(
                index=index, request=request, success=False, error=str(e)
            )

        return BulkItemResult(
            index=index, request=request, success=True, content=content
        )

    async def generate_bulk(
        self,
        requests: list[BulkRequest],
        user_id: int | None = None,
    ) -> BulkResult:
        """Пакетная генерация описаний.

        Запросы выполняются пачками по bulk.batch_size (по умолчанию 5)
        параллельно, с задержкой stagger_ms между запусками внутри пачки.
        После каждой пачки:
        - ошибок больше slowdown_threshold от всех запросов — пауза slowdown_seconds
        - ошибок больше stop_threshold — генерация прекращается

        Args:
            requests: Запросы генерации.
            user_id: ID пользователя для проверки и учёта лимитов.

        Returns:
            BulkResult со сводкой и результатами по каждому запросу.
        """
        bulk = self._config.bulk
        total = len(requests)
        summary = BulkSummary(total=total)
        result = BulkResult(summary=summary)
        total_batches = (total + bulk.batch_size - 1) // bulk.batch_size

        logger.info(
            "Пакетная генерация: user_id=%s, запросов=%d, пачек=%d",
            user_id,
            total,
            total_batches,
        )

        for batch_number, start in enumerate(range(0, total, bulk.batch_size), 1):
            batch = requests[start : start + bulk.batch_size]
            batch_results = await asyncio.gather(
                *(
                    self._generate_bulk_item(start + i, i, request, user_id)
                    for i, request in enumerate(batch)
                )
            )

            for item in batch_results:
                result.results.append(item)
                if item.success:
                    summary.success += 1
                else:
                    summary.failed += 1

            if summary.failed > total * bulk.slowdown_threshold:
                logger.warning(
                    "Высокая доля ошибок пакетной генерации: user_id=%s, "
                    "успешно=%d, ошибок=%d, пауза %.1fс",
                    user_id,
                    summary.success,
                    summary.failed,
                    bulk.slowdown_seconds,
                )
                await asyncio.sleep(bulk.slowdown_seconds)

            if summary.failed > total * bulk.stop_threshold:
                logger.error(
                    "Пакетная генерация остановлена: user_id=%s, успешно=%d, ошибок=%d",
                    user_id,
                    summary.success,
                    summary.failed,
                )
                summary.stopped_early = True
                break

            logger.info(
                "Пачка %d/%d завершена: успешно=%d, ошибок=%d",
                batch_number,
                total_batches,
                summary.success,
                summary.failed,
            )

        logger.info(
            "Пакетная генерация завершена: user_id=%s, всего=%d, успешно=%d (%.1f%%)",
            user_id,
            total,
            summary.success,
            summary.success_rate,
        )
        return result


def create_ai_service(validator: UsageValidator | None = None) -> AIService:
    """Создать AI-сервис с настройками из окружения."""
    from src.config.settings import settings
    from src.config.yaml_config import yaml_config

    return AIService(settings.ai, yaml_config, validator, proxy_url=settings.proxy)
