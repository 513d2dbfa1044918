"""Репозиторий для работы со счетами."""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.invoice import Invoice, InvoiceStatus
from src.utils.logging import get_logger

logger = get_logger(__name__)


class InvoiceRepository:
    """Репозиторий счетов (копия счетов Stripe)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_stripe_id(self, stripe_invoice_id: str) -> Invoice | None:
        """Получить счёт по ID Stripe (in_...)."""
        stmt = select(Invoice).where(Invoice.stripe_invoice_id == stripe_invoice_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: int, limit: int = 20) -> list[Invoice]:
        """Последние счета пользователя (новые первыми)."""
        stmt = (
            select(Invoice)
            .where(Invoice.user_id == user_id)
            .order_by(Invoice.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def upsert(  # noqa: PLR0913
        self,
        *,
        user_id: int,
        stripe_invoice_id: str,
        amount: int,
        currency: str,
        status: InvoiceStatus,
        plan_id: int | None = None,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
        hosted_invoice_url: str | None = None,
        invoice_pdf: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Invoice:
        """Создать или обновить счёт по stripe_invoice_id.

        Returns:
            Сохранённый счёт.
        """
        invoice = await self.get_by_stripe_id(stripe_invoice_id)
        created = invoice is None
        if invoice is None:
            invoice = Invoice(user_id=user_id, stripe_invoice_id=stripe_invoice_id)
            self._session.add(invoice)

        invoice.amount = amount
        invoice.currency = currency
        invoice.status = status
        invoice.plan_id = plan_id
        invoice.period_start = period_start
        invoice.period_end = period_end
        invoice.hosted_invoice_url = hosted_invoice_url
        invoice.invoice_pdf = invoice_pdf
        invoice.metadata_json = metadata

        await self._session.commit()
        await self._session.refresh(invoice)

        logger.info(
            "Счёт %s %s: amount=%s %s, status=%s",
            stripe_invoice_id,
            "создан" if created else "обновлён",
            amount,
            currency,
            status,
        )
        return invoice
