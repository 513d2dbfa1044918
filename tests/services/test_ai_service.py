"""Тесты для AI-сервиса генерации лендингов."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from src.config.models import AIProvidersSettings
from src.config.yaml_config import BulkGenerationConfig, ImageModelConfig, YamlConfig
from src.core.exceptions import (
    AIServiceError,
    ConfigurationError,
    GenerationError,
    ProviderNotAvailableError,
    UsageLimitExceededError,
)
from src.providers.ai.base import (
    BaseProviderAdapter,
    GenerationResult,
    GenerationStatus,
    GenerationType,
)
from src.providers.ai.openai_provider import OpenAIAdapter
from src.services.ai_service import (
    AIService,
    BulkRequest,
    build_prompt,
    build_translation_prompt,
)
from src.services.usage_validator import (
    OperationType,
    UsageValidation,
    UsageValidator,
)

# =============================================================================
# ФИКСТУРЫ
# =============================================================================


@pytest.fixture
def ai_settings() -> AIProvidersSettings:
    """Настройки с тестовым ключом OpenAI."""
    return AIProvidersSettings(openai_api_key=SecretStr("sk-test-key"))


@pytest.fixture
def fast_config(yaml_config: YamlConfig) -> YamlConfig:
    """Конфигурация без задержек пакетной генерации."""
    return yaml_config.model_copy(
        update={
            "bulk": BulkGenerationConfig(
                batch_size=2,
                stagger_ms=0,
                slowdown_threshold=0.3,
                slowdown_seconds=0,
                stop_threshold=0.5,
            )
        }
    )


@pytest.fixture
def mock_adapter() -> MagicMock:
    """Мок адаптера провайдера, отвечающий текстом."""
    adapter = MagicMock(spec=BaseProviderAdapter)
    adapter.generate = AsyncMock(
        return_value=GenerationResult(
            status=GenerationStatus.SUCCESS,
            content="Best villas in Madrid",
            usage={"total_tokens": 42},
        )
    )
    adapter.validate_credentials = AsyncMock(return_value=True)
    adapter.close = AsyncMock()
    return adapter


@pytest.fixture
def mock_validator() -> MagicMock:
    """Мок валидатора, разрешающий все операции."""
    validator = MagicMock(spec=UsageValidator)
    validator.validate_usage = AsyncMock(
        return_value=UsageValidation(allowed=True, remaining=4, cost_units=1)
    )
    validator.record_usage = AsyncMock(return_value=True)
    return validator


@pytest.fixture
def service(
    ai_settings: AIProvidersSettings,
    fast_config: YamlConfig,
    mock_validator: MagicMock,
    mock_adapter: MagicMock,
) -> AIService:
    """Инициализированный сервис с мок-адаптером."""
    ai = AIService(ai_settings, fast_config, mock_validator)
    ai._adapter = mock_adapter
    ai._initialized = True
    return ai


# =============================================================================
# ПРОМПТЫ
# =============================================================================


class TestBuildPrompt:
    """Тесты для функции build_prompt()."""

    def test_contains_context(self) -> None:
        """Тест: промпт содержит отрасль, город, тип и язык."""
        prompt = build_prompt("Real Estate", "Madrid", "Villa", "es")

        assert "Real Estate Villa in Madrid" in prompt
        assert "Escribe en español profesional" in prompt
        assert "- Target Language: es" in prompt

    def test_unknown_language_falls_back_to_english(self) -> None:
        """Тест: неизвестный язык — инструкция на английском."""
        prompt = build_prompt("Tourism", "Oslo", "Tour", "no")

        assert "Write in professional English" in prompt

    def test_translation_prompt(self) -> None:
        """Тест: промпт перевода обрамляет текст."""
        prompt = build_translation_prompt("Hello", "es")

        assert prompt.startswith("Translate the following text to es")
        assert "---\nHello\n---" in prompt


# =============================================================================
# ЖИЗНЕННЫЙ ЦИКЛ
# =============================================================================


class TestInitialize:
    """Тесты для метода initialize()."""

    @pytest.mark.asyncio
    async def test_missing_key(self, yaml_config: YamlConfig) -> None:
        """Тест: без ключа — ConfigurationError с именем переменной."""
        ai = AIService(AIProvidersSettings(), yaml_config)

        with pytest.raises(ConfigurationError) as exc_info:
            await ai.initialize()
        assert exc_info.value.setting == "AI__OPENAI_API_KEY"

    @pytest.mark.asyncio
    async def test_rejected_key(
        self,
        ai_settings: AIProvidersSettings,
        yaml_config: YamlConfig,
        mock_adapter: MagicMock,
    ) -> None:
        """Тест: ключ отклонён провайдером — ConfigurationError."""
        mock_adapter.validate_credentials.return_value = False
        ai = AIService(ai_settings, yaml_config)
        ai._adapter = mock_adapter

        with pytest.raises(ConfigurationError, match="Invalid OpenAI API key"):
            await ai.initialize()
        assert ai.is_initialized is False

    @pytest.mark.asyncio
    async def test_success(
        self,
        ai_settings: AIProvidersSettings,
        yaml_config: YamlConfig,
        mock_adapter: MagicMock,
    ) -> None:
        """Тест: валидный ключ — сервис готов."""
        ai = AIService(ai_settings, yaml_config)
        ai._adapter = mock_adapter

        await ai.initialize()

        assert ai.is_initialized is True

    @pytest.mark.asyncio
    async def test_shutdown_closes_adapter(
        self, service: AIService, mock_adapter: MagicMock
    ) -> None:
        """Тест: shutdown() закрывает адаптер."""
        await service.shutdown()

        mock_adapter.close.assert_awaited_once()
        assert service.is_initialized is False

    @pytest.mark.asyncio
    async def test_not_initialized(
        self, ai_settings: AIProvidersSettings, yaml_config: YamlConfig
    ) -> None:
        """Тест: генерация до initialize() — AIServiceError."""
        ai = AIService(ai_settings, yaml_config)

        with pytest.raises(AIServiceError):
            await ai.generate_description("Tourism", "Madrid", "Tour", "en")

    def test_adapter_without_key(self, yaml_config: YamlConfig) -> None:
        """Тест: без ключа адаптер не создаётся — ProviderNotAvailableError."""
        ai = AIService(AIProvidersSettings(), yaml_config)

        with pytest.raises(ProviderNotAvailableError):
            ai._get_adapter()

    def test_adapter_created_lazily(
        self, ai_settings: AIProvidersSettings, yaml_config: YamlConfig
    ) -> None:
        """Тест: адаптер OpenAI создаётся один раз с таймаутом из конфигурации."""
        ai = AIService(ai_settings, yaml_config, proxy_url=None)

        adapter = ai._get_adapter()

        assert isinstance(adapter, OpenAIAdapter)
        assert ai._get_adapter() is adapter
        timeouts = yaml_config.generation_timeouts
        assert adapter._timeout == float(
            max(timeouts.text, timeouts.image, timeouts.translation)
        )


# =============================================================================
# ГЕНЕРАЦИЯ
# =============================================================================


class TestGenerateDescription:
    """Тесты для метода generate_description()."""

    @pytest.mark.asyncio
    async def test_success_records_usage(
        self,
        service: AIService,
        mock_adapter: MagicMock,
        mock_validator: MagicMock,
    ) -> None:
        """Тест: успешная генерация проверяет и записывает использование."""
        # Act
        text = await service.generate_description(
            "Real Estate", "Madrid", "Villa", "es", user_id=1
        )

        # Assert
        assert text == "Best villas in Madrid"
        mock_validator.validate_usage.assert_awaited_once_with(
            1,
            OperationType.PAGE_GENERATION,
            {"industry": "Real Estate", "language": "es"},
        )
        mock_validator.record_usage.assert_awaited_once_with(
            1, OperationType.PAGE_GENERATION, 1
        )
        kwargs = mock_adapter.generate.call_args.kwargs
        assert kwargs["generation_type"] == GenerationType.CHAT
        assert kwargs["model_id"] == "gpt-4-turbo"
        assert kwargs["max_tokens"] == 500

    @pytest.mark.asyncio
    async def test_industry_key_used_for_validation(
        self,
        service: AIService,
        mock_adapter: MagicMock,
        mock_validator: MagicMock,
    ) -> None:
        """Тест: тариф проверяется по ключу отрасли, промпт получает название."""
        await service.generate_description(
            "Bienes Raíces", "Madrid", "Villa", "es", 1, industry_key="real_estate"
        )

        mock_validator.validate_usage.assert_awaited_once_with(
            1,
            OperationType.PAGE_GENERATION,
            {"industry": "real_estate", "language": "es"},
        )
        prompt = mock_adapter.generate.call_args.kwargs["prompt"]
        assert "Bienes Raíces Villa in Madrid" in prompt

    @pytest.mark.asyncio
    async def test_without_user_skips_limits(
        self, service: AIService, mock_validator: MagicMock
    ) -> None:
        """Тест: без user_id лимиты не проверяются."""
        await service.generate_description("Tourism", "Madrid", "Tour", "en")

        mock_validator.validate_usage.assert_not_awaited()
        mock_validator.record_usage.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_limit_exceeded(
        self,
        service: AIService,
        mock_adapter: MagicMock,
        mock_validator: MagicMock,
    ) -> None:
        """Тест: отказ валидатора — исключение до вызова модели."""
        # Arrange
        mock_validator.validate_usage.return_value = UsageValidation(
            allowed=False,
            reason="Monthly page generation limit exceeded",
            upgrade_required=True,
        )

        # Act & Assert
        with pytest.raises(UsageLimitExceededError) as exc_info:
            await service.generate_description("Tourism", "Madrid", "Tour", "en", 1)
        assert exc_info.value.upgrade_required is True
        mock_adapter.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_response(
        self,
        service: AIService,
        mock_adapter: MagicMock,
        mock_validator: MagicMock,
    ) -> None:
        """Тест: пустой ответ — retryable GenerationError, использование не пишется."""
        mock_adapter.generate.return_value = GenerationResult(
            status=GenerationStatus.SUCCESS, content=""
        )

        with pytest.raises(GenerationError) as exc_info:
            await service.generate_description("Tourism", "Madrid", "Tour", "en", 1)
        assert exc_info.value.is_retryable is True
        mock_validator.record_usage.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_error_propagates(
        self, service: AIService, mock_adapter: MagicMock
    ) -> None:
        """Тест: ошибка провайдера пробрасывается."""
        mock_adapter.generate.side_effect = GenerationError(
            "Rate limit",
            provider="openai",
            model_id="gpt-4-turbo",
            is_retryable=True,
        )

        with pytest.raises(GenerationError, match="Rate limit"):
            await service.generate_description("Tourism", "Madrid", "Tour", "en")


class TestTranslateText:
    """Тесты для метода translate_text()."""

    @pytest.mark.asyncio
    async def test_cost_from_validator(
        self,
        service: AIService,
        mock_adapter: MagicMock,
        mock_validator: MagicMock,
    ) -> None:
        """Тест: записывается стоимость, посчитанная валидатором."""
        # Arrange
        mock_validator.validate_usage.return_value = UsageValidation(
            allowed=True, remaining=10, cost_units=3
        )
        mock_adapter.generate.return_value = GenerationResult(
            status=GenerationStatus.SUCCESS, content="Las mejores villas"
        )

        # Act
        translated = await service.translate_text("x" * 2500, "es", user_id=1)

        # Assert
        assert translated == "Las mejores villas"
        mock_validator.record_usage.assert_awaited_once_with(
            1, OperationType.AI_TRANSLATION, 3
        )
        assert mock_adapter.generate.call_args.kwargs["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_empty_translation_returns_source(
        self,
        service: AIService,
        mock_adapter: MagicMock,
        mock_validator: MagicMock,
    ) -> None:
        """Тест: пустой перевод — исходный текст без списания квоты."""
        mock_adapter.generate.return_value = GenerationResult(
            status=GenerationStatus.SUCCESS, content=None
        )

        translated = await service.translate_text("Hello", "es", user_id=1)

        assert translated == "Hello"
        mock_validator.record_usage.assert_not_awaited()


class TestGenerateImage:
    """Тесты для метода generate_image()."""

    @pytest.mark.asyncio
    async def test_returns_url(
        self, service: AIService, mock_adapter: MagicMock
    ) -> None:
        """Тест: URL изображения из ответа провайдера."""
        mock_adapter.generate.return_value = GenerationResult(
            status=GenerationStatus.SUCCESS, content="https://img.example.com/1.png"
        )

        url = await service.generate_image("villa in Madrid")

        assert url == "https://img.example.com/1.png"
        kwargs = mock_adapter.generate.call_args.kwargs
        assert kwargs["generation_type"] == GenerationType.IMAGE
        assert kwargs["size"] == "1024x1024"

    @pytest.mark.asyncio
    async def test_disabled(
        self,
        ai_settings: AIProvidersSettings,
        yaml_config: YamlConfig,
        mock_adapter: MagicMock,
    ) -> None:
        """Тест: выключенная генерация изображений — None без вызова модели."""
        config = yaml_config.model_copy(
            update={"image_model": ImageModelConfig(enabled=False)}
        )
        ai = AIService(ai_settings, config)
        ai._adapter = mock_adapter

        assert await ai.generate_image("villa") is None
        mock_adapter.generate.assert_not_awaited()


# =============================================================================
# ПАКЕТНАЯ ГЕНЕРАЦИЯ
# =============================================================================


def _requests(count: int) -> list[BulkRequest]:
    return [
        BulkRequest(
            industry="Tourism",
            location=f"City {i}",
            business_type="Tour",
            language="en",
        )
        for i in range(count)
    ]


class TestGenerateBulk:
    """Тесты для метода generate_bulk()."""

    @pytest.mark.asyncio
    async def test_all_success(self, service: AIService) -> None:
        """Тест: все запросы успешны, результаты по порядку индексов."""
        result = await service.generate_bulk(_requests(5))

        assert result.summary.total == 5
        assert result.summary.success == 5
        assert result.summary.success_rate == 100.0
        assert [item.index for item in result.results] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_stops_on_high_error_rate(
        self, service: AIService, mock_adapter: MagicMock
    ) -> None:
        """Тест: доля ошибок выше порога — генерация прекращается."""
        # Arrange: первая пачка из двух запросов падает целиком
        mock_adapter.generate.side_effect = GenerationError(
            "Service unavailable",
            provider="openai",
            model_id="gpt-4-turbo",
            is_retryable=True,
        )

        # Act
        result = await service.generate_bulk(_requests(6))

        # Assert: 2 ошибки из 6 < 50%, 4 ошибки из 6 > 50%
        assert result.summary.stopped_early is True
        assert result.summary.failed == 4
        assert len(result.results) == 4
        assert result.results[0].error == "[openai:gpt-4-turbo] Service unavailable"

    @pytest.mark.asyncio
    async def test_empty_input(self, service: AIService) -> None:
        """Тест: пустой список — пустая сводка."""
        result = await service.generate_bulk([])

        assert result.summary.total == 0
        assert result.summary.success_rate == 0.0
        assert result.results == []
