"""Платёжные провайдеры.

Сейчас поддерживается только Stripe: клиент REST API для клиентов,
подписок, Checkout/Portal и счетов. BillingService в services/
оркестрирует работу с клиентом и синхронизирует состояние с БД.

Пример использования:
    from src.providers.payments import create_stripe_client

    if settings.stripe.is_configured:
        client = create_stripe_client(
            secret_key=settings.stripe.secret_key.get_secret_value(),
        )
"""

from src.core.exceptions import PaymentError
from src.providers.payments.stripe import (
    StripeClient,
    create_stripe_client,
    encode_form,
)

__all__ = [
    "PaymentError",
    "StripeClient",
    "create_stripe_client",
    "encode_form",
]
