"""Тесты для утилит работы со временем."""

from datetime import UTC, datetime

import pytest

from src.utils.timezone import (
    ensure_utc_aware,
    from_unix_timestamp,
    is_same_month,
    start_of_month,
    to_naive_utc,
)


def test_ensure_utc_aware_naive() -> None:
    """Тест: naive datetime считается UTC."""
    result = ensure_utc_aware(datetime(2026, 1, 1, 12, 0))

    assert result.tzinfo is UTC


def test_start_of_month() -> None:
    """Тест: начало месяца в полночь UTC."""
    result = start_of_month(datetime(2026, 2, 17, 15, 30, tzinfo=UTC))

    assert result == datetime(2026, 2, 1, tzinfo=UTC)


@pytest.mark.parametrize(
    ("first", "second", "expected"),
    [
        (datetime(2026, 1, 1), datetime(2026, 1, 31, 23, 59), True),
        (datetime(2026, 1, 31), datetime(2026, 2, 1), False),
        (datetime(2025, 1, 15), datetime(2026, 1, 15), False),
    ],
)
def test_is_same_month(first: datetime, second: datetime, expected: bool) -> None:
    """Тест: сравниваются и месяц, и год."""
    assert is_same_month(first, second) is expected


def test_to_naive_utc() -> None:
    """Тест: aware-время приводится к naive UTC."""
    assert to_naive_utc(datetime(2026, 3, 1, 0, 5, tzinfo=UTC)) == datetime(
        2026, 3, 1, 0, 5
    )


def test_from_unix_timestamp() -> None:
    """Тест: unix-время Stripe в формат хранения БД."""
    assert from_unix_timestamp(None) is None
    assert from_unix_timestamp(1772323200) == datetime(2026, 3, 1)
