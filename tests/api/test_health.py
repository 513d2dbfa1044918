"""Тесты для health check эндпоинтов.

Проверяет:
- Liveness /health
- Пассивный режим /health/services
- Активный режим с кэшированием на TTL
- Ограничение TTL диапазоном 10–30 секунд
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.health import clamp_health_ttl, router
from src.core.registry import (
    HealthReport,
    HealthStatus,
    ServiceInfo,
    ServiceKind,
    ServiceRegistry,
    ServiceStatus,
)


def _info(name: str, status: ServiceStatus) -> ServiceInfo:
    return ServiceInfo(
        name=name,
        status=status,
        kind=ServiceKind.SINGLETON,
        version="1.0.0",
        dependencies=(),
        tags=frozenset({"core"}),
        priority=0,
        attempts=1,
        initialized_at=None,
        error=None,
    )


@pytest.fixture
def registry() -> MagicMock:
    """Мок реестра с двумя сервисами."""
    registry = MagicMock(spec=ServiceRegistry)
    registry.get_status.return_value = {
        "cache": _info("cache", ServiceStatus.RUNNING),
        "ai": _info("ai", ServiceStatus.FAILED),
    }
    registry.check_all_health = AsyncMock(
        return_value={
            "cache": HealthReport(
                name="cache",
                status=HealthStatus.HEALTHY,
                latency_ms=1.234,
                details={"backend": "memory"},
            ),
            "ai": HealthReport(name="ai", status=HealthStatus.DOWN),
        }
    )
    return registry


@pytest.fixture
def test_app(registry: MagicMock) -> FastAPI:
    """FastAPI приложение с health router и моком реестра."""
    app = FastAPI()
    app.include_router(router)
    app.state.registry = registry
    return app


@pytest.fixture
def client(test_app: FastAPI) -> TestClient:
    """Тестовый HTTP-клиент."""
    return TestClient(test_app)


class TestHealth:
    """Тесты для endpoint GET /health."""

    def test_liveness(self, client: TestClient) -> None:
        """Тест: liveness всегда ok."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestServicesHealth:
    """Тесты для endpoint GET /health/services."""

    def test_passive_mode(self, client: TestClient, registry: MagicMock) -> None:
        """Тест: пассивный режим не запускает проверки."""
        # Act
        response = client.get("/health/services")

        # Assert
        assert response.status_code == 200
        assert response.headers["X-Health-Mode"] == "passive"
        assert response.headers["Cache-Control"] == "no-store"
        body = response.json()
        assert body["mode"] == "passive"
        assert {s["name"]: s["status"] for s in body["services"]} == {
            "cache": "running",
            "ai": "failed",
        }
        registry.check_all_health.assert_not_awaited()

    def test_active_mode(self, client: TestClient) -> None:
        """Тест: активный режим добавляет результаты проверок."""
        response = client.get("/health/services", params={"active": "true"})

        assert response.headers["X-Health-Mode"] == "active"
        services = {s["name"]: s for s in response.json()["services"]}
        assert services["cache"]["health"]["status"] == "healthy"
        assert services["cache"]["health"]["latency_ms"] == 1.23
        assert services["ai"]["health"]["status"] == "down"

    def test_active_mode_cached(self, client: TestClient, registry: MagicMock) -> None:
        """Тест: повторный активный запрос отдаётся из кэша."""
        client.get("/health/services", params={"active": "true"})

        response = client.get("/health/services", params={"active": "true"})

        assert response.headers["X-Health-Mode"] == "active-cached"
        assert registry.check_all_health.await_count == 1

    def test_registry_not_ready(self) -> None:
        """Тест: без реестра — 503."""
        app = FastAPI()
        app.include_router(router)

        response = TestClient(app).get("/health/services")

        assert response.status_code == 503


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 20), (5, 10), (15, 15), (120, 30)],
)
def test_clamp_health_ttl(raw: float | None, expected: int) -> None:
    """Тест: TTL кэша health-check ограничен 10–30 секундами."""
    assert clamp_health_ttl(raw) == expected
