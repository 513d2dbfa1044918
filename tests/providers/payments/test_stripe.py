"""Тесты для клиента Stripe API.

HTTP подменяется через httpx.MockTransport: тесты проверяют
URL, метод, авторизацию, form-кодирование тела и обработку ошибок.
"""

from collections.abc import Callable
from urllib.parse import parse_qsl

import httpx
import pytest

from src.core.exceptions import PaymentError
from src.providers.payments.stripe import StripeClient, encode_form

Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> StripeClient:
    return StripeClient(
        "sk_test_123",
        api_base="https://api.stripe.com/v1",
        transport=httpx.MockTransport(handler),
    )


def _form(request: httpx.Request) -> dict[str, str]:
    return dict(parse_qsl(request.content.decode()))


class TestEncodeForm:
    """Тесты для функции encode_form()."""

    def test_nested_structures(self) -> None:
        """Тест: словари и списки кодируются в формате Stripe."""
        form = encode_form(
            {
                "customer": "cus_1",
                "items": [{"price": "price_1"}],
                "metadata": {"user_id": 7},
                "expand": ["latest_invoice.payment_intent"],
            }
        )

        assert form == {
            "customer": "cus_1",
            "items[0][price]": "price_1",
            "metadata[user_id]": "7",
            "expand[0]": "latest_invoice.payment_intent",
        }

    def test_bool_and_none(self) -> None:
        """Тест: bool — "true"/"false", None пропускается."""
        form = encode_form({"cancel_at_period_end": True, "name": None, "x": False})

        assert form == {"cancel_at_period_end": "true", "x": "false"}


class TestRequests:
    """Тесты запросов StripeClient."""

    @pytest.mark.asyncio
    async def test_auth_header_and_url(self) -> None:
        """Тест: Bearer-авторизация и путь относительно /v1."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"object": "balance", "livemode": False})

        client = _client(handler)
        balance = await client.retrieve_balance()
        await client.close()

        assert balance["object"] == "balance"
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/v1/balance"
        assert seen[0].headers["Authorization"] == "Bearer sk_test_123"

    @pytest.mark.asyncio
    async def test_create_subscription_form(self) -> None:
        """Тест: подписка отправляет цену, metadata и expand."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "sub_1", "status": "active"})

        client = _client(handler)
        result = await client.create_subscription(
            customer_id="cus_1",
            price_id="price_pro",
            payment_method_id="pm_1",
            metadata={"user_id": 1, "plan_id": 2},
        )

        assert result["id"] == "sub_1"
        assert seen[0].url.path == "/v1/subscriptions"
        assert _form(seen[0]) == {
            "customer": "cus_1",
            "items[0][price]": "price_pro",
            "default_payment_method": "pm_1",
            "metadata[user_id]": "1",
            "metadata[plan_id]": "2",
            "expand[0]": "latest_invoice.payment_intent",
        }

    @pytest.mark.asyncio
    async def test_cancel_uses_delete(self) -> None:
        """Тест: немедленная отмена — DELETE подписки."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "sub_1", "status": "canceled"})

        client = _client(handler)
        await client.cancel_subscription("sub_1")

        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/v1/subscriptions/sub_1"

    @pytest.mark.asyncio
    async def test_checkout_subscription_mode(self) -> None:
        """Тест: checkout в режиме subscription содержит line_items."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "cs_1", "url": "https://c"})

        client = _client(handler)
        await client.create_checkout_session(
            customer_id="cus_1",
            price_id="price_pro",
            mode="subscription",
            success_url="https://a/ok",
            cancel_url="https://a/cancel",
        )

        form = _form(seen[0])
        assert form["line_items[0][price]"] == "price_pro"
        assert form["line_items[0][quantity]"] == "1"
        assert form["allow_promotion_codes"] == "true"
        assert form["payment_method_types[0]"] == "card"

    @pytest.mark.asyncio
    async def test_checkout_setup_mode(self) -> None:
        """Тест: режим setup — без line_items."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "cs_2"})

        client = _client(handler)
        await client.create_checkout_session(
            customer_id="cus_1",
            price_id=None,
            mode="setup",
            success_url="https://a/ok",
            cancel_url="https://a/cancel",
        )

        assert not any(key.startswith("line_items") for key in _form(seen[0]))

    @pytest.mark.asyncio
    async def test_list_invoices_query(self) -> None:
        """Тест: список счетов — GET с параметрами в query."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": [], "has_more": False})

        client = _client(handler)
        await client.list_invoices(customer_id="cus_1", limit=5)

        assert seen[0].method == "GET"
        assert seen[0].url.params["customer"] == "cus_1"
        assert seen[0].url.params["limit"] == "5"
        assert "starting_after" not in seen[0].url.params


class TestErrors:
    """Тесты обработки ошибок StripeClient."""

    @pytest.mark.asyncio
    async def test_api_error_message(self) -> None:
        """Тест: сообщение об ошибке берётся из тела ответа Stripe."""

        def handler(_request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                402, json={"error": {"message": "Your card was declined."}}
            )

        client = _client(handler)

        with pytest.raises(PaymentError) as exc_info:
            await client.attach_payment_method("pm_1", "cus_1")
        assert "Your card was declined." in exc_info.value.message
        assert exc_info.value.is_retryable is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_retryable_statuses(self, status: int) -> None:
        """Тест: 429 и 5xx — retryable."""

        def handler(_request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, text="try later")

        client = _client(handler)

        with pytest.raises(PaymentError) as exc_info:
            await client.retrieve_balance()
        assert exc_info.value.is_retryable is True

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Тест: таймаут — retryable PaymentError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler)

        with pytest.raises(PaymentError) as exc_info:
            await client.retrieve_balance()
        assert exc_info.value.is_retryable is True
        assert isinstance(exc_info.value.original_error, httpx.ReadTimeout)

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Тест: сетевая ошибка — retryable PaymentError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)

        with pytest.raises(PaymentError) as exc_info:
            await client.retrieve_balance()
        assert exc_info.value.is_retryable is True
