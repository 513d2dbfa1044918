"""Тесты для сервиса лендингов (PageService).

Проверяют:
- Выдачу страницы из кэша без повторной генерации
- Генерацию текста, изображения и переводов при промахе
- Поведение при ошибках изображения и переводов
- Массовую генерацию с однократной проверкой и учётом лимита
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.models import AIProvidersSettings
from src.config.yaml_config import YamlConfig
from src.core.exceptions import GenerationError, UsageLimitExceededError
from src.db.models.plan import Plan
from src.db.models.user import User
from src.providers.ai.base import (
    BaseProviderAdapter,
    GenerationResult,
    GenerationStatus,
)
from src.services.ai_service import AIService
from src.services.cache import ContentCache, make_fingerprint
from src.services.page_service import PageContent, PageRequest, PageService
from src.services.usage_validator import (
    OperationType,
    UsageValidation,
    UsageValidator,
)


def _generation_error(message: str) -> GenerationError:
    return GenerationError(message, provider="openai", model_id="gpt-4-turbo")


@pytest.fixture
def mock_ai() -> MagicMock:
    """Мок AI-сервиса: текст, изображение и перевод."""
    ai = MagicMock(spec=AIService)
    ai.generate_description = AsyncMock(return_value="Luxury villas in Madrid")
    ai.generate_image = AsyncMock(return_value="https://img.example.com/villa.png")
    ai.translate_text = AsyncMock(return_value="Villas de lujo en Madrid")
    return ai


@pytest.fixture
def mock_validator() -> MagicMock:
    """Мок валидатора, разрешающий массовую генерацию."""
    validator = MagicMock(spec=UsageValidator)
    validator.validate_usage = AsyncMock(
        return_value=UsageValidation(allowed=True, remaining=-1, cost_units=4)
    )
    validator.record_usage = AsyncMock(return_value=True)
    return validator


@pytest.fixture
def cache() -> ContentCache:
    """Кэш в памяти."""
    return ContentCache()


@pytest.fixture
def pages(
    mock_ai: MagicMock,
    cache: ContentCache,
    mock_validator: MagicMock,
    yaml_config: YamlConfig,
) -> PageService:
    """Сервис лендингов с моками AI и валидатора."""
    return PageService(mock_ai, cache, mock_validator, yaml_config)


@pytest.fixture
def request_en() -> PageRequest:
    """Запрос страницы на английском."""
    return PageRequest(
        industry="real_estate", language="en", location="Madrid", business_type="Villa"
    )


class TestGetOrGeneratePage:
    """Тесты для метода get_or_generate_page()."""

    @pytest.mark.asyncio
    async def test_generates_on_miss(
        self, pages: PageService, mock_ai: MagicMock, request_en: PageRequest
    ) -> None:
        """Тест: промах кэша — текст, изображение и перевод на второй язык."""
        # Act
        result = await pages.get_or_generate_page(request_en, user_id=1)

        # Assert
        assert result.cached is False
        assert result.key == "real_estate-en-madrid-villa"
        assert result.content.seo_text == "Luxury villas in Madrid"
        assert result.content.image_url == "https://img.example.com/villa.png"
        assert result.content.translations == {"es": "Villas de lujo en Madrid"}
        mock_ai.generate_description.assert_awaited_once_with(
            "Real Estate", "Madrid", "Villa", "en", 1, industry_key="real_estate"
        )
        mock_ai.translate_text.assert_awaited_once_with(
            "Luxury villas in Madrid", "es", 1
        )

    @pytest.mark.asyncio
    async def test_second_request_from_cache(
        self, pages: PageService, mock_ai: MagicMock, request_en: PageRequest
    ) -> None:
        """Тест: повторный запрос отдаётся из кэша без вызова модели."""
        await pages.get_or_generate_page(request_en)

        result = await pages.get_or_generate_page(
            PageRequest(
                industry="REAL_ESTATE",
                language="en",
                location=" madrid ",
                business_type="villa",
            )
        )

        assert result.cached is True
        assert result.content.seo_text == "Luxury villas in Madrid"
        assert mock_ai.generate_description.await_count == 1

    @pytest.mark.asyncio
    async def test_text_error_propagates(
        self,
        pages: PageService,
        mock_ai: MagicMock,
        cache: ContentCache,
        request_en: PageRequest,
    ) -> None:
        """Тест: ошибка генерации текста пробрасывается, кэш не заполняется."""
        mock_ai.generate_description.side_effect = _generation_error("down")

        with pytest.raises(GenerationError):
            await pages.get_or_generate_page(request_en)
        assert await pages.list_pages() == []

    @pytest.mark.asyncio
    async def test_image_error_does_not_fail_page(
        self, pages: PageService, mock_ai: MagicMock, request_en: PageRequest
    ) -> None:
        """Тест: ошибка изображения — страница без изображения."""
        mock_ai.generate_image.side_effect = _generation_error("content policy")

        result = await pages.get_or_generate_page(request_en)

        assert result.content.image_url is None
        assert result.content.seo_text == "Luxury villas in Madrid"

    @pytest.mark.asyncio
    async def test_translation_error_keeps_source_text(
        self, pages: PageService, mock_ai: MagicMock, request_en: PageRequest
    ) -> None:
        """Тест: ошибка перевода — вместо перевода исходный текст."""
        mock_ai.translate_text.side_effect = _generation_error("timeout")

        result = await pages.get_or_generate_page(request_en)

        assert result.content.translations == {"es": "Luxury villas in Madrid"}

    @pytest.mark.asyncio
    async def test_translation_limit_stops_translations(
        self, pages: PageService, mock_ai: MagicMock, request_en: PageRequest
    ) -> None:
        """Тест: исчерпанный лимит переводов — страница без переводов."""
        mock_ai.translate_text.side_effect = UsageLimitExceededError(
            UsageValidation(
                allowed=False, reason="Monthly translation limit exceeded"
            )
        )

        result = await pages.get_or_generate_page(request_en, user_id=1)

        assert result.content.translations == {}

    @pytest.mark.asyncio
    async def test_unknown_industry_uses_key(
        self, pages: PageService, mock_ai: MagicMock
    ) -> None:
        """Тест: отрасль вне каталога передаётся в промпт как есть."""
        await pages.get_or_generate_page(
            PageRequest(
                industry="fitness", language="en", location="Lima", business_type="Gym"
            )
        )

        assert mock_ai.generate_description.call_args.args[0] == "fitness"


class TestGetPage:
    """Тесты для методов get_page() и list_pages()."""

    @pytest.mark.asyncio
    async def test_missing(self, pages: PageService) -> None:
        """Тест: отсутствующая страница — None."""
        assert await pages.get_page("nothing-here") is None

    @pytest.mark.asyncio
    async def test_from_cache(self, pages: PageService, cache: ContentCache) -> None:
        """Тест: страница восстанавливается из словаря в кэше."""
        await cache.set("k", PageContent(seo_text="Hi", tenant_id=3).to_dict())

        content = await pages.get_page("k")

        assert content == PageContent(seo_text="Hi", tenant_id=3)

    @pytest.mark.asyncio
    async def test_non_page_value_ignored(
        self, pages: PageService, cache: ContentCache
    ) -> None:
        """Тест: не-страница под ключом — None."""
        await cache.set("k", "plain string")

        assert await pages.get_page("k") is None


class TestGenerateMass:
    """Тесты для метода generate_mass()."""

    @pytest.mark.asyncio
    async def test_all_combinations(
        self,
        pages: PageService,
        mock_ai: MagicMock,
        mock_validator: MagicMock,
    ) -> None:
        """Тест: страницы для каждого города и типа, учёт одним вызовом."""
        # Act
        result = await pages.generate_mass(
            7, "real_estate", "es", ["Madrid", "Sevilla"], user_id=1
        )

        # Assert
        assert result.generated == 4
        assert result.failed == 0
        assert make_fingerprint("real_estate", "es", "Madrid", "Villa", 7) in (
            result.keys
        )
        mock_validator.validate_usage.assert_awaited_once_with(
            1, OperationType.MASS_GENERATION, {"city_count": 2, "type_count": 2}
        )
        mock_validator.record_usage.assert_awaited_once_with(
            1, OperationType.MASS_GENERATION, 4
        )
        assert mock_ai.generate_description.await_count == 4

    @pytest.mark.asyncio
    async def test_pages_bound_to_tenant(self, pages: PageService) -> None:
        """Тест: содержимое страниц массовой генерации хранит тенанта."""
        result = await pages.generate_mass(7, "tourism", "en", ["Rome"], user_id=1)

        content = await pages.get_page(result.keys[0])

        assert content is not None
        assert content.tenant_id == 7

    @pytest.mark.asyncio
    async def test_partial_failures(
        self,
        pages: PageService,
        mock_ai: MagicMock,
        mock_validator: MagicMock,
    ) -> None:
        """Тест: ошибки отдельных страниц считаются, учёт только созданных."""
        mock_ai.generate_description.side_effect = [
            "Madrid apartments",
            _generation_error("overloaded"),
        ]

        result = await pages.generate_mass(7, "real_estate", "en", ["Madrid"], 1)

        assert result.generated == 1
        assert result.failed == 1
        mock_validator.record_usage.assert_awaited_once_with(
            1, OperationType.MASS_GENERATION, 1
        )

    @pytest.mark.asyncio
    async def test_denied(
        self,
        pages: PageService,
        mock_ai: MagicMock,
        mock_validator: MagicMock,
    ) -> None:
        """Тест: отказ валидатора — исключение, генерации нет."""
        mock_validator.validate_usage.return_value = UsageValidation(
            allowed=False,
            reason="Mass generation requires Enterprise plan",
            upgrade_required=True,
        )

        with pytest.raises(UsageLimitExceededError):
            await pages.generate_mass(7, "tourism", "en", ["Rome"], 1)
        mock_ai.generate_description.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_industry(self, pages: PageService) -> None:
        """Тест: отрасль вне каталога — ValueError."""
        with pytest.raises(ValueError, match="fitness"):
            await pages.generate_mass(7, "fitness", "en", ["Rome"], 1)


# =============================================================================
# ОГРАНИЧЕНИЕ ОТРАСЛЕЙ ТАРИФА
# =============================================================================


@pytest.fixture
def text_adapter() -> MagicMock:
    """Мок адаптера OpenAI, отвечающий текстом на любой запрос."""
    adapter = MagicMock(spec=BaseProviderAdapter)
    adapter.generate = AsyncMock(
        return_value=GenerationResult(
            status=GenerationStatus.SUCCESS,
            content="Generated text",
            usage={"total_tokens": 10},
        )
    )
    adapter.close = AsyncMock()
    return adapter


@pytest.fixture
def validated_pages(
    session_factory: async_sessionmaker[AsyncSession],
    yaml_config: YamlConfig,
    text_adapter: MagicMock,
) -> PageService:
    """Сервис лендингов с настоящими AIService и UsageValidator."""
    validator = UsageValidator(session_factory)
    ai = AIService(
        AIProvidersSettings(openai_api_key=SecretStr("sk-test")),
        yaml_config,
        validator,
    )
    ai._adapter = text_adapter
    ai._initialized = True
    return PageService(ai, ContentCache(), validator, yaml_config)


class TestPlanIndustries:
    """Тесты проверки отраслей тарифа при генерации страницы."""

    @pytest.mark.asyncio
    async def test_allowed_industry_by_catalogue_key(
        self,
        validated_pages: PageService,
        db_session: AsyncSession,
        test_user: User,
        pro_plan: Plan,
    ) -> None:
        """Тест: отрасль из списка тарифа проходит по ключу каталога."""
        # Arrange
        pro_plan.industries = ["real_estate"]
        test_user.plan_id = pro_plan.id
        await db_session.commit()

        # Act
        result = await validated_pages.get_or_generate_page(
            PageRequest(
                industry="real_estate",
                language="es",
                location="Madrid",
                business_type="Villa",
            ),
            user_id=test_user.id,
        )

        # Assert
        assert result.cached is False
        assert result.content.seo_text == "Generated text"
        await db_session.refresh(test_user)
        assert test_user.pages_generated_this_month == 1

    @pytest.mark.asyncio
    async def test_industry_outside_plan_denied(
        self,
        validated_pages: PageService,
        text_adapter: MagicMock,
        db_session: AsyncSession,
        test_user: User,
        pro_plan: Plan,
    ) -> None:
        """Тест: отрасль вне списка тарифа отклоняется до вызова модели."""
        # Arrange
        pro_plan.industries = ["real_estate"]
        test_user.plan_id = pro_plan.id
        await db_session.commit()

        # Act
        with pytest.raises(UsageLimitExceededError) as exc_info:
            await validated_pages.get_or_generate_page(
                PageRequest(
                    industry="tourism",
                    language="en",
                    location="Rome",
                    business_type="City Tour",
                ),
                user_id=test_user.id,
            )

        # Assert
        assert exc_info.value.validation.reason == (
            "Industry tourism not allowed in current plan"
        )
        text_adapter.generate.assert_not_awaited()
