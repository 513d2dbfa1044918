"""Модель счёта.

Копия счетов Stripe для истории платежей в кабинете пользователя.
Синхронизируется из webhook-событий invoice.* (upsert по stripe_invoice_id).
"""

from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing_extensions import override

from src.db.models_base import Base

if TYPE_CHECKING:
    from src.db.models.user import User


class InvoiceStatus(StrEnum):
    """Статус счёта (совпадает со значениями Stripe)."""

    DRAFT = "draft"
    OPEN = "open"
    PAID = "paid"
    VOID = "void"
    UNCOLLECTIBLE = "uncollectible"

    @classmethod
    def from_stripe(cls, value: str | None) -> "InvoiceStatus":
        """Преобразовать статус Stripe, неизвестные значения → OPEN."""
        try:
            return cls(value or "")
        except ValueError:
            return cls.OPEN


class Invoice(Base):
    """Счёт пользователя.

    Attributes:
        id: Внутренний ID счёта.
        user_id: ID пользователя (FK → users.id).
        stripe_invoice_id: ID счёта в Stripe (in_...), уникальный.
        amount: Сумма в минимальных единицах валюты (центах).
        currency: Код валюты.
        status: Статус счёта.
        plan_id: Тариф, за который выставлен счёт.
        period_start: Начало оплачиваемого периода.
        period_end: Конец оплачиваемого периода.
        hosted_invoice_url: Ссылка на страницу счёта в Stripe.
        invoice_pdf: Ссылка на PDF.
        metadata_json: Метаданные счёта из Stripe.
    """

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    stripe_invoice_id: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )

    # В центах, как в Stripe — без ошибок округления
    amount: Mapped[int] = mapped_column(default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="usd", nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus, native_enum=False, length=20),
        default=InvoiceStatus.DRAFT,
        nullable=False,
    )
    plan_id: Mapped[int | None] = mapped_column(
        ForeignKey("plans.id", ondelete="SET NULL"),
        nullable=True,
    )

    period_start: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    hosted_invoice_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    invoice_pdf: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship(back_populates="invoices")

    @property
    def amount_decimal(self) -> float:
        """Сумма в основных единицах валюты."""
        return self.amount / 100

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return (
            f"<Invoice(id={self.id}, stripe_id={self.stripe_invoice_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
