"""Точка входа в приложение.

Создаёт FastAPI-приложение с настроенным логированием.

Команда запуска:
    uvicorn src.main:app --host 0.0.0.0 --port 8000

Или через python:
    python -m src
"""

import logging

from src.app import create_app
from src.config.settings import settings
from src.utils.logging import setup_logging

setup_logging(
    level=settings.logging.level,
    timezone_name=settings.logging.timezone,
)

_logger = logging.getLogger(__name__)
_logger.info("%s: логирование настроено, загрузка приложения", settings.app.name)

app = create_app(settings)
