"""Модель тарифного плана.

Тариф задаёт месячные лимиты использования и списки разрешённых
отраслей и языков. Пользователи ссылаются на тариф через users.plan_id.

Лимит -1 означает "без ограничений" (см. UNLIMITED).
Для валидатора использования тариф доступен только на чтение.
"""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column
from typing_extensions import override

from src.config.constants import UNLIMITED
from src.db.models_base import Base


class PlanLevel(StrEnum):
    """Уровень тарифа.

    Значения:
        FREE: Бесплатный тариф, назначается по умолчанию.
        PRO: Платный тариф с расширенными лимитами.
        ENTERPRISE: Корпоративный тариф, открывает массовую генерацию.
    """

    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class Plan(Base):
    """Тарифный план.

    Attributes:
        id: Внутренний ID тарифа.
        slug: Уникальный код тарифа (free, pro, enterprise).
        name: Название для отображения.
        price: Цена в месяц (0 — бесплатный).
        currency: Код валюты ISO 4217 в нижнем регистре.
        plan_level: Уровень тарифа.
        pages_per_month: Лимит генераций страниц в месяц.
        api_calls_per_month: Лимит API-вызовов в месяц.
        translations_per_month: Лимит переводов. None — pages_per_month × 5.
        images_per_month: Лимит изображений. None — pages_per_month × 0.5.
        industries: Разрешённые отрасли. None — все.
        languages: Разрешённые языки. None — все.
        overage_page_rate: Ставка за страницу сверх лимита (None — из config.yaml).
        overage_api_calls_rate: Ставка за сотню API-вызовов сверх лимита.
        overage_translation_rate: Ставка за перевод сверх лимита.
        stripe_price_id: ID цены в Stripe (price_...).
        stripe_product_id: ID продукта в Stripe (prod_...).
        is_active: Доступен ли тариф для новых подписок.
        is_default: Тариф по умолчанию для пользователей без тарифа.
    """

    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Numeric — точная арифметика для денег (без ошибок float)
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal(0), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), default="usd", nullable=False)

    # native_enum=False — храним как VARCHAR (совместимо с SQLite)
    plan_level: Mapped[PlanLevel] = mapped_column(
        Enum(PlanLevel, native_enum=False, length=20),
        default=PlanLevel.FREE,
        nullable=False,
    )

    # Месячные лимиты (-1 — без ограничений)
    pages_per_month: Mapped[int] = mapped_column(default=5, nullable=False)
    api_calls_per_month: Mapped[int] = mapped_column(default=100, nullable=False)
    translations_per_month: Mapped[int | None] = mapped_column(nullable=True)
    images_per_month: Mapped[int | None] = mapped_column(nullable=True)

    # Списки разрешённых значений (JSON-массивы строк)
    industries: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    languages: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    overage_page_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 4), nullable=True
    )
    overage_api_calls_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 4), nullable=True
    )
    overage_translation_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 4), nullable=True
    )

    stripe_price_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_product_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    is_default: Mapped[bool] = mapped_column(default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    @property
    def is_free(self) -> bool:
        """Бесплатный тариф."""
        return self.price == 0

    @property
    def is_enterprise(self) -> bool:
        """Корпоративный тариф (массовая генерация)."""
        return self.plan_level == PlanLevel.ENTERPRISE

    @property
    def translation_limit(self) -> int:
        """Фактический лимит переводов в месяц."""
        if self.translations_per_month is not None:
            return self.translations_per_month
        if self.pages_per_month == UNLIMITED:
            return UNLIMITED
        return self.pages_per_month * 5

    @property
    def image_limit(self) -> int:
        """Фактический лимит изображений в месяц."""
        if self.images_per_month is not None:
            return self.images_per_month
        if self.pages_per_month == UNLIMITED:
            return UNLIMITED
        return self.pages_per_month // 2

    def allows_industry(self, industry: str | None) -> bool:
        """Разрешена ли отрасль на этом тарифе (без отрасли — только без списка)."""
        if self.industries is None:
            return True
        return industry is not None and industry in self.industries

    def allows_language(self, language: str | None) -> bool:
        """Разрешён ли язык на этом тарифе (без языка — только без списка)."""
        if self.languages is None:
            return True
        return language is not None and language in self.languages

    def limits_dict(self) -> dict[str, Any]:
        """Лимиты в виде словаря (для API и статистики)."""
        return {
            "pages_per_month": self.pages_per_month,
            "api_calls_per_month": self.api_calls_per_month,
            "translations_per_month": self.translation_limit,
            "images_per_month": self.image_limit,
            "industries": self.industries,
            "languages": self.languages,
            "plan_level": str(self.plan_level),
        }

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return f"<Plan(id={self.id}, slug={self.slug}, level={self.plan_level})>"
