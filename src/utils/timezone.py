"""Утилиты для работы со временем и часовыми поясами.

Как это работает:
1. Время в базе данных хранится в UTC (универсальное время)
2. Месячные лимиты считаются по календарному месяцу в UTC
3. Часовой пояс логов задаётся через LOGGING__TIMEZONE в настройках
"""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo


def get_timezone(timezone_name: str) -> ZoneInfo:
    """Получить объект часового пояса по имени.

    Args:
        timezone_name: Название часового пояса из базы IANA.
            Примеры: "Europe/Moscow", "UTC", "America/New_York".

    Returns:
        Объект ZoneInfo для указанного часового пояса.

    Raises:
        ZoneInfoNotFoundError: Если указанный часовой пояс не найден.
    """
    return ZoneInfo(timezone_name)


def utc_now() -> datetime:
    """Текущее время в UTC (aware)."""
    return datetime.now(UTC)


def ensure_utc_aware(dt: datetime) -> datetime:
    """Гарантировать, что datetime является timezone-aware в UTC.

    SQLite и PostgreSQL (без timezone) возвращают naive datetime,
    но логически они хранят UTC. Эта функция делает это явным.

    Args:
        dt: Время для нормализации.

    Returns:
        Время с timezone=UTC.

    Example:
        >>> naive_dt = datetime(2024, 1, 1, 12, 0, 0)  # Из БД
        >>> ensure_utc_aware(naive_dt).tzinfo
        datetime.timezone.utc
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def start_of_month(dt: datetime) -> datetime:
    """Начало календарного месяца (UTC) для указанного момента."""
    dt = ensure_utc_aware(dt)
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def is_same_month(first: datetime, second: datetime) -> bool:
    """Проверить, что два момента попадают в один календарный месяц (UTC).

    Сравниваются и месяц, и год: январь 2024 и январь 2025 — разные месяцы.
    """
    a = ensure_utc_aware(first)
    b = ensure_utc_aware(second)
    return (a.year, a.month) == (b.year, b.month)


def to_naive_utc(dt: datetime) -> datetime:
    """Привести время к naive UTC (формат хранения в БД)."""
    return ensure_utc_aware(dt).replace(tzinfo=None)


def from_unix_timestamp(timestamp: int | float | None) -> datetime | None:
    """Преобразовать Unix timestamp (формат Stripe) в naive UTC.

    Returns:
        Время в формате хранения БД или None, если timestamp не задан.
    """
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, UTC).replace(tzinfo=None)
