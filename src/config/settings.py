"""Настройки приложения через переменные окружения.

ВАЖНО: Этот модуль загружает настройки из .env файла при импорте.
Для использования только классов настроек (без загрузки .env)
импортируйте из src.config.models вместо этого модуля.

Пример для тестов:
    # Изолированный импорт без побочных эффектов:
    from src.config.models import CacheSettings

    # НЕ используйте в тестах (загрузит .env):
    from src.config.settings import settings
"""

import sys
from pathlib import Path

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.config.models import (
    AIProvidersSettings,
    AppSettings,
    CacheSettings,
    CORSSettings,
    DatabaseSettings,
    LoggingSettings,
    RegistrySettings,
    StripeSettings,
)

# src/config/settings.py → src/config → src → корень проекта
PROJECT_ROOT = Path(__file__).parent.parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

# Если .env нет — читаем только переменные окружения (облачный деплой)
ENV_FILE_PATH = ENV_FILE if ENV_FILE.exists() else None

__all__ = [
    "Settings",
    "load_settings",
    "settings",
]

# ==============================================================================
# СЛОВАРЬ ОШИБОК НА РУССКОМ ЯЗЫКЕ
# ==============================================================================
#
# Ключ — путь к полю ("родитель.поле"), значение — что исправить.

FIELD_ERROR_MESSAGES: dict[str, str] = {
    "registry.retries": "REGISTRY__RETRIES должно быть целым числом (например, 2)",
    "registry.default_timeout": "REGISTRY__DEFAULT_TIMEOUT должно быть числом секунд",
    "cors.allow_origins": (
        'CORS__ALLOW_ORIGINS должен быть JSON-списком: ["https://example.com"]'
    ),
}

DEFAULT_ERROR_MESSAGE = "Ошибка конфигурации. Проверьте файл .env или переменные окружения"


class Settings(BaseSettings):
    """Главные настройки приложения.

    Настройки загружаются из двух источников (в порядке приоритета):
    1. Переменные окружения (приоритет выше)
    2. Файл .env (если существует)

    Вложенные секции задаются через двойное подчёркивание:
    AI__OPENAI_API_KEY, STRIPE__SECRET_KEY, CACHE__REDIS_URL.
    """

    model_config = SettingsConfigDict(
        env_file=ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app: AppSettings = AppSettings()
    database: DatabaseSettings = DatabaseSettings()
    logging: LoggingSettings = LoggingSettings()
    ai: AIProvidersSettings = AIProvidersSettings()
    stripe: StripeSettings = StripeSettings()
    cache: CacheSettings = CacheSettings()
    registry: RegistrySettings = RegistrySettings()
    cors: CORSSettings = CORSSettings()

    # URL прокси-сервера для запросов к AI-провайдерам (опционально).
    # Формат: http://host:port, socks5://host:port
    proxy: str | None = None


def _format_validation_error(error: ValidationError) -> str:
    """Преобразовать ошибку Pydantic в понятное русское сообщение.

    Args:
        error: Ошибка валидации от Pydantic.

    Returns:
        Понятное сообщение на русском языке.
    """
    messages: list[str] = []

    for err in error.errors():
        field_path = ".".join(str(loc) for loc in err["loc"])

        if field_path in FIELD_ERROR_MESSAGES:
            messages.append(FIELD_ERROR_MESSAGES[field_path])
        else:
            messages.append(DEFAULT_ERROR_MESSAGE)
            messages.append(f"Поле: {field_path}")
            messages.append(f"Тип ошибки: {err['type']}")
            messages.append(f"Сообщение: {err['msg']}")

    return "\n".join(messages)


def load_settings() -> Settings:
    """Загрузить настройки из переменных окружения.

    Если настройки некорректны — выводит понятную ошибку на русском
    и завершает программу.

    Returns:
        Объект Settings с загруженными настройками.
    """
    try:
        return Settings()
    except ValidationError as e:
        print(_format_validation_error(e), file=sys.stderr)
        sys.exit(1)


# Загружаем настройки при импорте модуля.
settings = load_settings()
