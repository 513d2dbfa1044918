"""Тесты для webhook эндпоинта Stripe."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from src.api.webhooks import router
from src.core.exceptions import PaymentError
from src.core.registry import ServiceRegistry
from src.services.billing_service import BillingService

EVENT = {
    "id": "evt_1",
    "type": "invoice.payment_succeeded",
    "data": {"object": {"id": "in_1", "subscription": "sub_1"}},
}


@pytest.fixture
def billing() -> MagicMock:
    """Мок биллинга."""
    billing = MagicMock(spec=BillingService)
    billing.handle_webhook_event = AsyncMock(return_value=True)
    return billing


@pytest.fixture
def registry(billing: MagicMock) -> MagicMock:
    """Мок реестра, отдающий биллинг."""
    registry = MagicMock(spec=ServiceRegistry)
    registry.get = AsyncMock(return_value=billing)
    return registry


@pytest.fixture
def client(registry: MagicMock) -> TestClient:
    """Тестовый клиент с webhook router."""
    app = FastAPI()
    app.include_router(router)
    app.state.registry = registry
    return TestClient(app)


class TestStripeWebhook:
    """Тесты для endpoint POST /api/webhooks/stripe."""

    def test_event_handled(self, client: TestClient, billing: MagicMock) -> None:
        """Тест: событие передаётся биллингу, ответ 200."""
        # Act
        response = client.post("/api/webhooks/stripe", json=EVENT)

        # Assert
        assert response.status_code == 200
        assert response.json() == {"received": True, "handled": True}
        billing.handle_webhook_event.assert_awaited_once_with(EVENT)

    def test_unhandled_event_still_200(
        self, client: TestClient, billing: MagicMock
    ) -> None:
        """Тест: необрабатываемое событие принимается."""
        billing.handle_webhook_event.return_value = False

        response = client.post(
            "/api/webhooks/stripe", json={"type": "customer.created", "data": {}}
        )

        assert response.status_code == 200
        assert response.json()["handled"] is False

    def test_invalid_json(self, client: TestClient) -> None:
        """Тест: тело не JSON — 400."""
        response = client.post(
            "/api/webhooks/stripe",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400

    def test_missing_type(self, client: TestClient) -> None:
        """Тест: JSON без type — 400."""
        response = client.post("/api/webhooks/stripe", json=["a", "b"])

        assert response.status_code == 400

    def test_billing_unavailable(
        self, client: TestClient, registry: MagicMock
    ) -> None:
        """Тест: биллинг не поднят — 503."""
        registry.get.return_value = None

        response = client.post("/api/webhooks/stripe", json=EVENT)

        assert response.status_code == 503

    @pytest.mark.parametrize(
        "error",
        [
            PaymentError("Ошибка Stripe API: boom", provider="stripe"),
            OperationalError("UPDATE users", {}, Exception("db down")),
        ],
    )
    def test_processing_error(
        self, client: TestClient, billing: MagicMock, error: Exception
    ) -> None:
        """Тест: ошибка обработки — 500, Stripe повторит доставку."""
        billing.handle_webhook_event.side_effect = error

        response = client.post("/api/webhooks/stripe", json=EVENT)

        assert response.status_code == 500
