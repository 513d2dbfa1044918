"""Модель тенанта.

Тенант — white-label клиент платформы со своим доменом, брендингом
и собственным набором разрешённых отраслей и языков.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing_extensions import override

from src.db.models_base import Base

if TYPE_CHECKING:
    from src.db.models.user import User


class Tenant(Base):
    """White-label организация.

    Attributes:
        id: Внутренний ID тенанта.
        slug: Короткий код тенанта, входит в ключи кэша массовой генерации.
        name: Название организации.
        domain: Домен, на котором тенант показывает страницы.
        branding: Брендинг (logo_url, primary_color, ...).
        allowed_industries: Отрасли тенанта. None — весь каталог.
        allowed_languages: Языки тенанта. None — все языки каталога.
        default_language: Язык страниц по умолчанию.
        is_active: Активен ли тенант.
    """

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Домен white-label сайта (например, homes.example.com)
    domain: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )

    branding: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    allowed_industries: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    allowed_languages: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    default_language: Mapped[str] = mapped_column(
        String(10), default="en", nullable=False
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    users: Mapped[list["User"]] = relationship(back_populates="tenant")

    def allows_industry(self, industry: str) -> bool:
        """Разрешена ли отрасль у тенанта."""
        return self.allowed_industries is None or industry in self.allowed_industries

    def allows_language(self, language: str) -> bool:
        """Разрешён ли язык у тенанта."""
        return self.allowed_languages is None or language in self.allowed_languages

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return f"<Tenant(id={self.id}, slug={self.slug}, domain={self.domain})>"
