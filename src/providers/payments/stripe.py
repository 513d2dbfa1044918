"""Клиент Stripe API для подписок и счетов.

API документация: https://stripe.com/docs/api

Клиент работает с REST API напрямую через httpx:
- Аутентификация: Bearer token (секретный ключ)
- Тело запросов: application/x-www-form-urlencoded
- Вложенные параметры кодируются в формате Stripe: items[0][price]=price_...

Используемые ресурсы:
- balance — проверка ключа при старте и health check
- customers, payment_methods — клиент и способ оплаты
- subscriptions — создание, изменение, отмена подписок
- checkout/sessions, billing_portal/sessions — страницы оплаты Stripe
- invoices — список счетов клиента

Настройка webhook в Dashboard Stripe:
1. Developers → Webhooks → Add endpoint
2. URL: https://your-domain.com/api/webhooks/stripe
3. События: customer.subscription.*, invoice.payment_succeeded,
   invoice.payment_failed
"""

from collections.abc import Mapping
from typing import Any

import httpx

from src.core.exceptions import PaymentError
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Базовый URL API Stripe
STRIPE_API_URL = "https://api.stripe.com/v1"

# Таймаут HTTP-запросов в секундах
HTTP_TIMEOUT = 30.0

PROVIDER_NAME = "stripe"


def encode_form(params: Mapping[str, Any], prefix: str | None = None) -> dict[str, str]:
    """Преобразовать вложенные параметры в плоскую форму Stripe.

    Args:
        params: Параметры запроса (словари, списки, скаляры).
        prefix: Префикс ключа для вложенных значений.

    Returns:
        Плоский словарь для form-encoded тела.

    Example:
        >>> encode_form({"items": [{"price": "price_1"}], "metadata": {"user_id": 7}})
        {'items[0][price]': 'price_1', 'metadata[user_id]': '7'}
    """
    form: dict[str, str] = {}
    for key, value in params.items():
        full_key = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, Mapping):
            form.update(encode_form(value, full_key))
        elif isinstance(value, list | tuple):
            for index, item in enumerate(value):
                item_key = f"{full_key}[{index}]"
                if isinstance(item, Mapping):
                    form.update(encode_form(item, item_key))
                else:
                    form[item_key] = _encode_scalar(item)
        else:
            form[full_key] = _encode_scalar(value)
    return form


def _encode_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class StripeClient:
    """Асинхронный клиент Stripe REST API.

    Attributes:
        _secret_key: Секретный ключ API (sk_live_... или sk_test_...).
        _api_base: Базовый URL API.
        _client: HTTP-клиент (создаётся лениво).

    Example:
        client = StripeClient(secret_key="sk_test_...")
        customer = await client.create_customer(
            email="owner@example.com",
            name="Owner",
            metadata={"user_id": 42},
        )
        await client.close()
    """

    def __init__(
        self,
        secret_key: str,
        *,
        api_base: str = STRIPE_API_URL,
        timeout: float = HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Создать клиент Stripe.

        Args:
            secret_key: Секретный ключ API из Dashboard Stripe.
            api_base: Базовый URL API.
            timeout: Таймаут HTTP-запросов в секундах.
            transport: Транспорт httpx (в тестах — httpx.MockTransport).
        """
        self._secret_key = secret_key
        self._api_base = api_base
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Получить или создать HTTP-клиент с авторизацией."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._api_base,
                timeout=self._timeout,
                transport=self._transport,
                headers={"Authorization": f"Bearer {self._secret_key}"},
            )
        return self._client

    async def close(self) -> None:
        """Закрыть HTTP-клиент."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        data: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Выполнить запрос к API.

        Raises:
            PaymentError: Ошибка API (retryable для 429 и 5xx) или сети.
        """
        try:
            response = await self._get_client().request(
                method,
                path,
                data=encode_form(data) if data else None,
                params=encode_form(params) if params else None,
            )
        except httpx.TimeoutException as e:
            logger.warning("Stripe таймаут: %s %s", method, path)
            raise PaymentError(
                "Таймаут запроса к Stripe",
                provider=PROVIDER_NAME,
                is_retryable=True,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Stripe HTTP ошибка: %s %s: %s", method, path, e)
            raise PaymentError(
                f"Ошибка HTTP: {e}",
                provider=PROVIDER_NAME,
                is_retryable=True,
                original_error=e,
            ) from e

        if response.status_code >= 400:
            error_msg = response.text
            try:
                error_msg = response.json().get("error", {}).get("message", error_msg)
            except ValueError:
                pass
            logger.warning(
                "Stripe API ошибка: %s %s -> %d: %s",
                method,
                path,
                response.status_code,
                error_msg,
            )
            raise PaymentError(
                f"Ошибка Stripe API: {error_msg}",
                provider=PROVIDER_NAME,
                is_retryable=response.status_code == 429 or response.status_code >= 500,
            )

        return response.json()

    # =========================================================================
    # Баланс и клиенты
    # =========================================================================

    async def retrieve_balance(self) -> dict[str, Any]:
        """Получить баланс аккаунта (проверка ключа)."""
        return await self._request("GET", "/balance")

    async def create_customer(
        self,
        *,
        email: str,
        name: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Создать клиента Stripe."""
        return await self._request(
            "POST",
            "/customers",
            data={"email": email, "name": name, "metadata": metadata},
        )

    async def update_customer(self, customer_id: str, **fields: Any) -> dict[str, Any]:
        """Обновить клиента (например, invoice_settings)."""
        return await self._request("POST", f"/customers/{customer_id}", data=fields)

    async def attach_payment_method(
        self, payment_method_id: str, customer_id: str
    ) -> dict[str, Any]:
        """Привязать способ оплаты к клиенту."""
        return await self._request(
            "POST",
            f"/payment_methods/{payment_method_id}/attach",
            data={"customer": customer_id},
        )

    # =========================================================================
    # Подписки
    # =========================================================================

    async def create_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        payment_method_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Создать подписку клиента на цену тарифа."""
        return await self._request(
            "POST",
            "/subscriptions",
            data={
                "customer": customer_id,
                "items": [{"price": price_id}],
                "default_payment_method": payment_method_id,
                "metadata": metadata,
                "expand": ["latest_invoice.payment_intent"],
            },
        )

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Получить подписку."""
        return await self._request("GET", f"/subscriptions/{subscription_id}")

    async def update_subscription(
        self, subscription_id: str, **fields: Any
    ) -> dict[str, Any]:
        """Изменить подписку (cancel_at_period_end, default_payment_method)."""
        return await self._request(
            "POST", f"/subscriptions/{subscription_id}", data=fields
        )

    async def cancel_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Отменить подписку немедленно."""
        return await self._request("DELETE", f"/subscriptions/{subscription_id}")

    # =========================================================================
    # Страницы Stripe
    # =========================================================================

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str | None,
        mode: str,
        success_url: str,
        cancel_url: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Создать Checkout Session.

        Args:
            customer_id: ID клиента (cus_...).
            price_id: ID цены тарифа (для mode=subscription).
            mode: "subscription" для платных тарифов, "setup" для бесплатных.
            success_url: URL после успешной оплаты.
            cancel_url: URL при отмене.
            metadata: Метаданные сессии.
        """
        data: dict[str, Any] = {
            "customer": customer_id,
            "payment_method_types": ["card"],
            "mode": mode,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if mode == "subscription":
            data["line_items"] = [{"price": price_id, "quantity": 1}]
            data["allow_promotion_codes"] = True
        return await self._request("POST", "/checkout/sessions", data=data)

    async def create_portal_session(
        self, *, customer_id: str, return_url: str
    ) -> dict[str, Any]:
        """Создать сессию клиентского портала Stripe."""
        return await self._request(
            "POST",
            "/billing_portal/sessions",
            data={"customer": customer_id, "return_url": return_url},
        )

    # =========================================================================
    # Счета
    # =========================================================================

    async def list_invoices(
        self,
        *,
        customer_id: str,
        limit: int = 10,
        starting_after: str | None = None,
    ) -> dict[str, Any]:
        """Список счетов клиента (постранично, как в Stripe)."""
        return await self._request(
            "GET",
            "/invoices",
            params={
                "customer": customer_id,
                "limit": limit,
                "starting_after": starting_after,
            },
        )


def create_stripe_client(
    secret_key: str, api_base: str = STRIPE_API_URL
) -> StripeClient:
    """Фабричная функция для создания клиента Stripe.

    Example:
        from src.config.settings import settings

        client = create_stripe_client(
            settings.stripe.secret_key.get_secret_value(),
            settings.stripe.api_base,
        )
    """
    return StripeClient(secret_key, api_base=api_base)
