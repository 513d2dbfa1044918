"""Загрузчик YAML-конфигурации.

Этот модуль загружает и валидирует config.yaml — файл с настройками,
которые можно менять без изменения кода.

Содержимое config.yaml:
- Каталог отраслей (названия и типы бизнеса на каждом языке)
- Поддерживаемые языки
- Тарифные планы по умолчанию (засеваются в БД при первом старте)
- Параметры AI-моделей (текст, изображения, перевод)
- Таймауты генерации и настройки пакетной генерации
- TTL кэша и health-эндпоинта
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from src.config.constants import CONFIG_YAML_PATH


class IndustryConfig(BaseModel):
    """Отрасль из каталога.

    Пример в config.yaml:
        real_estate:
          names:
            en: "Real Estate"
            es: "Bienes Raíces"
          business_types:
            en: [Apartment, House, Villa]
            es: [Apartamento, Casa, Villa]
    """

    names: dict[str, str] = Field(default_factory=dict)
    business_types: dict[str, list[str]] = Field(default_factory=dict)

    def get_name(self, language: str, default_language: str = "en") -> str | None:
        """Локализованное название отрасли (с откатом на язык по умолчанию)."""
        return self.names.get(language) or self.names.get(default_language)

    def get_types(self, language: str, default_language: str = "en") -> list[str]:
        """Типы бизнеса на языке (с откатом на язык по умолчанию)."""
        return self.business_types.get(language) or self.business_types.get(
            default_language, []
        )


class PlanSeedConfig(BaseModel):
    """Тариф, который засевается в БД при первом старте.

    Лимит -1 означает "без ограничений". Если лимит переводов
    или изображений не указан, он выводится из лимита страниц.
    """

    slug: str
    name: str
    price: float = Field(default=0, ge=0)
    currency: str = "usd"
    plan_level: str = "free"
    pages_per_month: int = 5
    api_calls_per_month: int = 100
    translations_per_month: int | None = None
    images_per_month: int | None = None
    # None — разрешены все отрасли/языки каталога
    industries: list[str] | None = None
    languages: list[str] | None = None
    stripe_price_id: str | None = None
    stripe_product_id: str | None = None
    is_default: bool = False


class OverageRates(BaseModel):
    """Ставки за превышение лимитов (в валюте тарифа).

    Страницы: rate за каждую страницу сверх лимита.
    API-вызовы: rate за каждую начатую сотню сверх лимита.
    Переводы: rate за каждую единицу сверх лимита.
    """

    pages: float = 1.0
    api_calls_per_100: float = 0.01
    translations: float = 0.05


class TextModelConfig(BaseModel):
    """Параметры генерации описаний."""

    model_id: str = "gpt-4-turbo"
    system_prompt: str = (
        "You are an expert marketing copywriter specializing in local business content."
    )
    max_tokens: int = 500
    temperature: float = 0.7
    presence_penalty: float = 0.1
    frequency_penalty: float = 0.1


class ImageModelConfig(BaseModel):
    """Параметры генерации изображений."""

    model_id: str = "dall-e-3"
    size: str = "1024x1024"
    enabled: bool = True


class TranslationModelConfig(BaseModel):
    """Параметры перевода."""

    model_id: str = "gpt-4-turbo"
    max_tokens: int = 500
    temperature: float = 0.3


class GenerationTimeouts(BaseModel):
    """Таймауты запросов к AI (в секундах)."""

    text: int = 60
    image: int = 120
    translation: int = 60


class BulkGenerationConfig(BaseModel):
    """Настройки пакетной генерации.

    Запросы отправляются пачками по batch_size с задержкой stagger_ms
    между запусками внутри пачки. Если доля ошибок в пачке больше
    slowdown_threshold — пауза slowdown_seconds, если больше
    stop_threshold — генерация прекращается.
    """

    batch_size: int = Field(default=5, ge=1)
    stagger_ms: int = Field(default=200, ge=0)
    slowdown_threshold: float = 0.3
    slowdown_seconds: float = 5.0
    stop_threshold: float = 0.7


class CacheConfig(BaseModel):
    """Настройки кэша страниц и health-эндпоинта."""

    # TTL страниц в кэше (секунды). None — хранить без срока.
    page_ttl_seconds: int | None = None

    # Максимум страниц в памяти процесса; самые давние вытесняются.
    # None — без ограничения. В Redis вытесненные страницы остаются.
    max_memory_entries: int | None = Field(default=10_000, ge=1)

    # TTL кэша /health/services; значение зажимается в диапазон 10–30 с
    health_ttl_seconds: int = 15


class YamlConfig(BaseModel):
    """Главная YAML-конфигурация.

    Загружается из config.yaml при старте приложения.
    """

    industries: dict[str, IndustryConfig] = Field(default_factory=dict)
    languages: list[str] = Field(default_factory=lambda: ["en", "es"])
    default_language: str = "en"
    plans: list[PlanSeedConfig] = Field(default_factory=list)
    overage: OverageRates = OverageRates()
    text_model: TextModelConfig = TextModelConfig()
    image_model: ImageModelConfig = ImageModelConfig()
    translation_model: TranslationModelConfig = TranslationModelConfig()
    generation_timeouts: GenerationTimeouts = GenerationTimeouts()
    bulk: BulkGenerationConfig = BulkGenerationConfig()
    cache: CacheConfig = CacheConfig()

    @field_validator("industries", mode="before")
    @classmethod
    def parse_industries(cls, v: dict[str, Any] | None) -> dict[str, Any]:
        """Пустая секция industries в YAML превращается в пустой словарь."""
        return v or {}

    def get_industry(self, key: str) -> IndustryConfig | None:
        """Получить отрасль по ключу.

        Args:
            key: Ключ отрасли (real_estate, tourism, ...).

        Returns:
            IndustryConfig или None если отрасль не найдена.
        """
        return self.industries.get(key)

    def get_business_types(self, industry: str, language: str) -> list[str]:
        """Типы бизнеса для отрасли на указанном языке."""
        config = self.get_industry(industry)
        if config is None:
            return []
        return config.get_types(language, self.default_language)

    def get_default_plan(self) -> PlanSeedConfig | None:
        """Тариф по умолчанию (бесплатный)."""
        for plan in self.plans:
            if plan.is_default:
                return plan
        return None


def load_yaml_config(path: Path | str = CONFIG_YAML_PATH) -> YamlConfig:
    """Загрузить и валидировать YAML-конфигурацию.

    Args:
        path: Путь к файлу конфигурации.

    Returns:
        Валидированный объект конфигурации. Если файла нет — значения
        по умолчанию.

    Raises:
        yaml.YAMLError: Некорректный YAML.
        pydantic.ValidationError: Некорректная конфигурация.
    """
    config_path = Path(path)

    if not config_path.exists():
        return YamlConfig()

    with config_path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return YamlConfig.model_validate(data)


yaml_config = load_yaml_config()
