"""Настройка логирования.

Поддерживает два канала вывода:
1. Консоль (stdout) — для просмотра в терминале/логах контейнера (с цветной подсветкой)
2. Файл с ротацией — для хранения истории (data/logs/app.log)

Компактный формат логов:
    25-01-07 21:55:46 | INFO | core.registry | Сервис 'ai' запущен за 812 мс
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler

from typing_extensions import override

from src.config.constants import DATA_DIR
from src.utils.timezone import get_timezone

# Папка для логов
LOGS_DIR = DATA_DIR / "logs"

# Имя файла лога и параметры ротации
LOG_FILE_NAME = "app.log"
LOG_MAX_BYTES = 5 * 1024 * 1024  # 5 МБ
LOG_BACKUP_COUNT = 3


# ==============================================================================
# ANSI-коды для цветного вывода в терминале
# ==============================================================================
#
# Эти коды работают в большинстве терминалов (Linux, macOS, Windows Terminal).
# Формат: \033[<код>m — где <код> определяет цвет/стиль.
#
# Основные цвета текста:
#   30 = чёрный, 31 = красный, 32 = зелёный, 33 = жёлтый
#   34 = синий, 35 = пурпурный, 36 = голубой, 37 = белый
#
# Яркие версии: 90-97 (аналогично, но ярче)
#
# Стили:
#   0 = сброс, 1 = жирный, 2 = тусклый, 4 = подчёркивание


class AnsiColors:
    """ANSI escape-коды для цветного вывода в терминале."""

    RESET = "\033[0m"
    BOLD = "\033[1m"

    # Цвета для разных уровней логирования (яркие версии)
    DEBUG = "\033[36m"  # Голубой (cyan)
    INFO = "\033[32m"  # Зелёный (green)
    WARNING = "\033[33m"  # Жёлтый (yellow)
    ERROR = "\033[31m"  # Красный (red)
    CRITICAL = "\033[35m"  # Пурпурный (magenta)

    # Дополнительные цвета
    GREY = "\033[90m"  # Серый (для даты/времени)


# Соответствие уровней логирования и цветов
LEVEL_COLORS: dict[str, str] = {
    "DEBUG": AnsiColors.DEBUG,
    "INFO": AnsiColors.INFO,
    "WARNING": AnsiColors.WARNING,
    "ERROR": AnsiColors.ERROR,
    "CRITICAL": AnsiColors.CRITICAL,
}


class TimezoneFormatter(logging.Formatter):
    """Форматтер логов с поддержкой часового пояса.

    Стандартный logging.Formatter использует локальное время системы.
    Этот форматтер позволяет указать любой часовой пояс для отображения.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        timezone_name: str = "UTC",
    ) -> None:
        """Инициализировать форматтер.

        Args:
            fmt: Формат строки лога.
            datefmt: Формат даты/времени.
            timezone_name: Название часового пояса из базы IANA.
        """
        super().__init__(fmt, datefmt)
        self.timezone = get_timezone(timezone_name)

    @override
    def formatTime(
        self,
        record: logging.LogRecord,
        datefmt: str | None = None,
    ) -> str:
        """Отформатировать время записи лога.

        Переопределяет стандартный метод для использования настроенного часового пояса.

        Args:
            record: Запись лога.
            datefmt: Формат даты (если не указан, используется self.datefmt).

        Returns:
            Отформатированная строка времени.
        """
        # Конвертируем timestamp записи в datetime с нужным часовым поясом
        dt = datetime.fromtimestamp(record.created, tz=self.timezone)

        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime(self.default_time_format)


class ColoredFormatter(TimezoneFormatter):
    """Форматтер логов с цветной подсветкой уровней.

    Компактный формат:
        25-01-07 21:55:46 | INFO | services.ai_service | Сообщение

    Особенности:
    - Короткий год (25 вместо 2025)
    - Убран префикс "src." из имени модуля
    - Уровни логирования выделяются цветом

    Цвета уровней:
        - DEBUG:    голубой
        - INFO:     зелёный (как у Uvicorn)
        - WARNING:  жёлтый
        - ERROR:    красный
        - CRITICAL: пурпурный

    Цвета отображаются только в терминале с поддержкой ANSI-кодов.
    В файловом логе цвета не нужны — используйте обычный TimezoneFormatter.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        timezone_name: str = "UTC",
        use_colors: bool = True,
    ) -> None:
        """Инициализировать форматтер с цветами.

        Args:
            fmt: Формат строки лога.
            datefmt: Формат даты/времени.
            timezone_name: Название часового пояса из базы IANA.
            use_colors: Использовать ли цветную подсветку.
        """
        super().__init__(fmt, datefmt, timezone_name)
        self.use_colors = use_colors

    @override
    def format(self, record: logging.LogRecord) -> str:
        """Отформатировать запись лога с цветной подсветкой.

        Args:
            record: Запись лога.

        Returns:
            Отформатированная строка с ANSI-кодами для цветов.
        """
        # Убираем префикс "src." из имени модуля для компактности
        # src.services.ai_service → services.ai_service
        original_name = record.name
        record.name = record.name.removeprefix("src.")

        # Получаем базовую отформатированную строку
        formatted = super().format(record)

        # Восстанавливаем оригинальное имя (для других handler-ов)
        record.name = original_name

        if not self.use_colors:
            return formatted

        # Добавляем цвет к уровню логирования
        level_color = LEVEL_COLORS.get(record.levelname, "")
        if level_color:
            # Заменяем уровень на цветную версию
            # Формат: "| INFO |" → "| \033[32mINFO\033[0m |"
            colored_level = f"{level_color}{record.levelname}{AnsiColors.RESET}"
            formatted = formatted.replace(
                f"| {record.levelname} |",
                f"| {colored_level} |",
            )

        return formatted



def _should_use_colors() -> bool:
    """Определить, поддерживает ли терминал цвета.

    Проверяет:
    1. Переменную окружения NO_COLOR (стандарт https://no-color.org/)
    2. Является ли stdout терминалом (tty)

    Returns:
        True если можно использовать цвета.
    """
    if os.environ.get("NO_COLOR"):
        return False

    # В Docker/CI/перенаправлении в файл — isatty() вернёт False
    return sys.stdout.isatty()


def setup_logging(
    level: str = "INFO",
    timezone_name: str = "UTC",
    *,
    log_to_file: bool = True,
) -> None:
    """Настроить логирование приложения.

    Логи выводятся в консоль (с цветной подсветкой) и сохраняются в файл
    с ротацией: data/logs/app.log (максимум 5 МБ, 3 резервных копии).

    Повторный вызов заменяет обработчики, а не дублирует их.

    Args:
        level: Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        timezone_name: Часовой пояс для отображения времени в логах.
        log_to_file: Писать ли логи в файл (в тестах обычно False).
    """
    log_format = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    date_format = "%y-%m-%d %H:%M:%S"  # 25-01-07 вместо 2025-01-07

    console_formatter = ColoredFormatter(
        log_format,
        datefmt=date_format,
        timezone_name=timezone_name,
        use_colors=_should_use_colors(),
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_to_file:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOGS_DIR / LOG_FILE_NAME,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(
            TimezoneFormatter(
                log_format, datefmt=date_format, timezone_name=timezone_name
            )
        )
        handlers.append(file_handler)

    for handler in handlers:
        root_logger.addHandler(handler)

    # ===========================================================================
    # Логи Uvicorn в том же формате, что и логи приложения
    # ===========================================================================
    for name in ("uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = list(handlers)
        uvicorn_logger.propagate = False

    uvicorn_root = logging.getLogger("uvicorn")
    uvicorn_root.handlers = []
    uvicorn_root.propagate = False

    # Меньше шума от HTTP-клиентов и планировщика
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Получить логгер с указанным именем.

    Args:
        name: Имя логгера (обычно __name__).

    Returns:
        Настроенный экземпляр логгера.
    """
    return logging.getLogger(name)
