"""Тесты для create_app()."""

from fastapi.middleware.cors import CORSMiddleware
from fastapi.testclient import TestClient

from src.app.factory import create_app
from src.config.settings import Settings
from src.config.yaml_config import YamlConfig


def test_routes_registered(yaml_config: YamlConfig) -> None:
    """Проверить подключение роутеров health, pages и webhooks."""
    app = create_app(Settings(_env_file=None), yaml_config)

    paths = {route.path for route in app.routes}

    assert "/health" in paths
    assert "/health/services" in paths
    assert "/api/pages/generate" in paths
    assert "/api/webhooks/stripe" in paths


def test_liveness_without_lifespan(yaml_config: YamlConfig) -> None:
    """Проверить, что /health отвечает без запуска сервисов."""
    app = create_app(Settings(_env_file=None), yaml_config)

    response = TestClient(app).get("/health")

    assert response.json() == {"status": "ok"}


def test_cors_enabled_with_origins(yaml_config: YamlConfig) -> None:
    """Проверить, что CORS middleware подключается при заданных доменах."""
    settings = Settings(
        _env_file=None, cors={"allow_origins": ["https://t.example.com"]}
    )

    app = create_app(settings, yaml_config)

    assert any(m.cls is CORSMiddleware for m in app.user_middleware)
