"""Webhook эндпоинт Stripe.

- POST /api/webhooks/stripe — события подписок и счетов

Обрабатываемые события:
- customer.subscription.created / updated — синхронизация статуса
- customer.subscription.deleted — отмена и переход на Free
- invoice.payment_succeeded — обнуление счётчиков и сохранение счёта
- invoice.payment_failed — запись в лог

Коды ответа:
- 200 {"received": true} — событие принято (в том числе необрабатываемое)
- 400 — тело не является JSON-объектом события
- 500 — ошибка обработки (Stripe повторит доставку)
- 503 — биллинг недоступен (Stripe повторит доставку)

Настройка: Dashboard Stripe → Developers → Webhooks,
URL: https://your-domain.com/api/webhooks/stripe
"""

import json
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from src.core.exceptions import PaymentError
from src.core.registry import ServiceRegistry
from src.services.billing_service import BillingService
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request) -> JSONResponse:
    """Обработать webhook от Stripe.

    Формат запроса:
    {
        "id": "evt_...",
        "type": "invoice.payment_succeeded",
        "data": {"object": {"id": "in_...", "subscription": "sub_...", ...}}
    }

    Args:
        request: HTTP-запрос от Stripe.

    Returns:
        JSONResponse с результатом приёма события.
    """
    try:
        event: Any = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Stripe webhook: некорректное тело запроса: %s", e)
        return JSONResponse({"error": "invalid payload"}, status_code=400)

    if not isinstance(event, dict) or "type" not in event:
        logger.warning("Stripe webhook: в теле нет поля type")
        return JSONResponse({"error": "invalid event"}, status_code=400)

    registry: ServiceRegistry | None = getattr(request.app.state, "registry", None)
    billing: BillingService | None = None
    if registry is not None:
        billing = await registry.get("billing")
    if billing is None:
        logger.error("Stripe webhook %s: биллинг недоступен", event.get("id"))
        return JSONResponse({"error": "billing unavailable"}, status_code=503)

    logger.info("Stripe webhook: id=%s, type=%s", event.get("id"), event["type"])

    try:
        handled = await billing.handle_webhook_event(event)
    except (PaymentError, SQLAlchemyError, KeyError, ValueError):
        logger.exception("Stripe webhook: ошибка обработки %s", event["type"])
        return JSONResponse({"error": "webhook processing failed"}, status_code=500)

    return JSONResponse({"received": True, "handled": handled})
