"""Сервис лендингов: генерация страниц через кэш.

Страница = SEO-текст + (опционально) изображение + переводы текста
на остальные языки каталога. Готовая страница кладётся в кэш по
fingerprint, повторный запрос с теми же параметрами отдаётся из кэша.

Массовая генерация создаёт страницы для всех комбинаций город × тип
бизнеса отрасли и хранит их под ключами, привязанными к тенанту.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from src.config.yaml_config import YamlConfig
from src.core.exceptions import GenerationError, UsageLimitExceededError
from src.services.ai_service import AIService
from src.services.cache import MISSING, ContentCache, make_fingerprint
from src.services.usage_validator import OperationType, UsageValidator
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PageRequest:
    """Параметры страницы."""

    industry: str
    language: str
    location: str
    business_type: str


@dataclass
class PageContent:
    """Содержимое страницы в кэше.

    Attributes:
        seo_text: Основной текст на языке запроса.
        image_url: URL изображения (None — изображений нет).
        translations: Переводы текста: язык -> текст.
        tenant_id: Тенант (для страниц массовой генерации).
    """

    seo_text: str
    image_url: str | None = None
    translations: dict[str, str] = field(default_factory=dict)
    tenant_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Сериализовать для кэша."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageContent":
        """Восстановить из кэша (лишние ключи игнорируются)."""
        return cls(
            seo_text=data.get("seo_text", ""),
            image_url=data.get("image_url"),
            translations=dict(data.get("translations") or {}),
            tenant_id=data.get("tenant_id"),
        )


@dataclass
class PageResult:
    """Результат get_or_generate_page()."""

    key: str
    content: PageContent
    cached: bool


@dataclass
class MassGenerationResult:
    """Результат generate_mass()."""

    tenant_id: int
    industry: str
    language: str
    keys: list[str] = field(default_factory=list)
    failed: int = 0

    @property
    def generated(self) -> int:
        """Сколько страниц сгенерировано."""
        return len(self.keys)


class PageService:
    """Генерация и выдача лендингов.

    Attributes:
        _ai: Сервис AI-генерации.
        _cache: Кэш контента.
        _validator: Валидатор использования.
        _config: YAML-конфигурация (каталог отраслей, языки, TTL).
    """

    def __init__(
        self,
        ai: AIService,
        cache: ContentCache,
        validator: UsageValidator,
        config: YamlConfig,
    ) -> None:
        self._ai = ai
        self._cache = cache
        self._validator = validator
        self._config = config

    def _industry_name(self, industry_key: str, language: str) -> str:
        industry = self._config.get_industry(industry_key)
        if industry is None:
            return industry_key
        name = industry.get_name(language, self._config.default_language)
        return name or industry_key

    async def get_page(self, key: str) -> PageContent | None:
        """Получить страницу из кэша по ключу (без генерации)."""
        data = await self._cache.get(key)
        if data is MISSING or not isinstance(data, dict):
            return None
        return PageContent.from_dict(data)

    async def list_pages(self, pattern: str = "*") -> list[str]:
        """Ключи всех страниц в кэше."""
        return [key async for key in self._cache.keys(pattern)]

    async def get_or_generate_page(
        self, request: PageRequest, user_id: int | None = None
    ) -> PageResult:
        """Отдать страницу из кэша или сгенерировать её.

        При промахе:
        1. Текст на языке запроса (ошибка генерации пробрасывается)
        2. Изображение (ошибка не мешает странице)
        3. Переводы на остальные языки каталога (ошибка — исходный текст)
        4. Запись в кэш

        Args:
            request: Параметры страницы.
            user_id: ID пользователя для проверки и учёта лимитов.

        Returns:
            PageResult с ключом, содержимым и признаком попадания в кэш.

        Raises:
            UsageLimitExceededError: Лимит генераций исчерпан.
            GenerationError: Не удалось сгенерировать основной текст.
        """
        key = make_fingerprint(
            request.industry, request.language, request.location, request.business_type
        )

        cached = await self.get_page(key)
        if cached is not None:
            logger.debug("Страница из кэша: %s", key)
            return PageResult(key=key, content=cached, cached=True)

        logger.info("Промах кэша, генерируем страницу: %s", key)
        industry_name = self._industry_name(request.industry, request.language)

        seo_text = await self._ai.generate_description(
            industry_name,
            request.location,
            request.business_type,
            request.language,
            user_id,
            industry_key=request.industry,
        )

        image_url = await self._generate_image_safe(
            f"{industry_name} {request.business_type} in {request.location}, "
            f"{request.language}",
            user_id,
        )

        translations = await self._translate_all(seo_text, request.language, user_id)

        content = PageContent(
            seo_text=seo_text, image_url=image_url, translations=translations
        )
        await self._cache.set(
            key, content.to_dict(), ttl=self._config.cache.page_ttl_seconds
        )

        logger.info(
            "Страница сгенерирована: %s, chars=%d, image=%s, переводов=%d",
            key,
            len(seo_text),
            "да" if image_url else "нет",
            len(translations),
        )
        return PageResult(key=key, content=content, cached=False)

    async def _generate_image_safe(
        self, prompt: str, user_id: int | None
    ) -> str | None:
        try:
            return await self._ai.generate_image(prompt, user_id)
        except (GenerationError, UsageLimitExceededError) as e:
            logger.warning("Изображение не сгенерировано: %s", e)
            return None

    async def _translate_all(
        self, text: str, source_language: str, user_id: int | None
    ) -> dict[str, str]:
        translations: dict[str, str] = {}
        for language in self._config.languages:
            if language == source_language:
                continue
            try:
                translations[language] = await self._ai.translate_text(
                    text, language, user_id
                )
            except UsageLimitExceededError as e:
                logger.info("Переводы остановлены: %s", e.validation.reason)
                break
            except GenerationError as e:
                logger.warning("Ошибка перевода на %s: %s", language, e)
                translations[language] = text
        return translations

    async def generate_mass(
        self,
        tenant_id: int,
        industry_key: str,
        language: str,
        cities: list[str],
        user_id: int,
    ) -> MassGenerationResult:
        """Массовая генерация страниц тенанта.

        Для каждого города и каждого типа бизнеса отрасли генерируется
        страница и сохраняется под ключом, привязанным к тенанту.
        Лимит проверяется один раз на весь объём (город × тип),
        использование записывается один раз числом созданных страниц.

        Args:
            tenant_id: ID тенанта.
            industry_key: Ключ отрасли из каталога.
            language: Язык страниц.
            cities: Список городов.
            user_id: ID пользователя (нужен тариф Enterprise).

        Returns:
            MassGenerationResult с ключами созданных страниц.

        Raises:
            ValueError: Отрасль не найдена в каталоге.
            UsageLimitExceededError: Тариф не позволяет массовую генерацию.
        """
        industry = self._config.get_industry(industry_key)
        if industry is None:
            raise ValueError(f"Неизвестная отрасль: {industry_key}")

        business_types = industry.get_types(language, self._config.default_language)
        validation = await self._validator.validate_usage(
            user_id,
            OperationType.MASS_GENERATION,
            {"city_count": len(cities), "type_count": len(business_types)},
        )
        if not validation.allowed:
            raise UsageLimitExceededError(validation)

        industry_name = self._industry_name(industry_key, language)
        result = MassGenerationResult(
            tenant_id=tenant_id, industry=industry_key, language=language
        )

        logger.info(
            "Массовая генерация: tenant_id=%s, industry=%s, lang=%s, страниц=%d",
            tenant_id,
            industry_key,
            language,
            len(cities) * len(business_types),
        )

        for city in cities:
            for business_type in business_types:
                key = make_fingerprint(
                    industry_key, language, city, business_type, tenant_id
                )
                try:
                    text = await self._ai.generate_description(
                        industry_name,
                        city,
                        business_type,
                        language,
                        industry_key=industry_key,
                    )
                except GenerationError as e:
                    logger.warning("Страница %s не сгенерирована: %s", key, e)
                    result.failed += 1
                    continue

                image_url = await self._generate_image_safe(
                    f"{industry_name} {business_type} in {city}, {language}", None
                )
                content = PageContent(
                    seo_text=text, image_url=image_url, tenant_id=tenant_id
                )
                await self._cache.set(
                    key, content.to_dict(), ttl=self._config.cache.page_ttl_seconds
                )
                result.keys.append(key)

        if result.generated:
            await self._validator.record_usage(
                user_id, OperationType.MASS_GENERATION, result.generated
            )

        logger.info(
            "Массовая генерация завершена: tenant_id=%s, создано=%d, ошибок=%d",
            tenant_id,
            result.generated,
            result.failed,
        )
        return result
