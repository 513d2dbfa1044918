"""Health check эндпоинты.

- GET /health — liveness probe, без обращений к сервисам
- GET /health/services — статус реестра сервисов
  (?active=true — с запуском health-check каждого сервиса)

Активные проверки ходят во внешние системы (OpenAI, Stripe, Redis),
поэтому их результат кэшируется на TTL из config.yaml
(cache.health_ttl_seconds, ограничен диапазоном 10–30 с), а параллельные
запросы ждут одну и ту же проверку.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Request, Response

from src.core.registry import HealthReport, ServiceInfo, ServiceRegistry
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])

# Границы TTL кэша активных проверок (секунды)
HEALTH_TTL_MIN = 10
HEALTH_TTL_MAX = 30
DEFAULT_HEALTH_TTL = 20


def clamp_health_ttl(value: float | None) -> int:
    """Ограничить TTL кэша health-check диапазоном 10–30 секунд."""
    if value is None:
        return DEFAULT_HEALTH_TTL
    return int(min(HEALTH_TTL_MAX, max(HEALTH_TTL_MIN, value)))


@dataclass
class ServicesHealthCache:
    """Кэш результата активных проверок с объединением параллельных запросов."""

    ttl_seconds: int
    data: dict[str, Any] | None = None
    expires_at: float = 0.0
    in_flight: asyncio.Task[dict[str, Any]] | None = None

    def fresh(self) -> dict[str, Any] | None:
        """Закэшированный результат, если он ещё не устарел."""
        if self.data is not None and self.expires_at > time.monotonic():
            return self.data
        return None

    async def get_or_run(self, registry: ServiceRegistry) -> dict[str, Any]:
        """Вернуть результат из кэша или выполнить проверки (одну на всех)."""
        if self.in_flight is None:
            self.in_flight = asyncio.create_task(self._run(registry))
            self.in_flight.add_done_callback(self._release)
        return await asyncio.shield(self.in_flight)

    def _release(self, _task: asyncio.Task[dict[str, Any]]) -> None:
        self.in_flight = None

    async def _run(self, registry: ServiceRegistry) -> dict[str, Any]:
        reports = await registry.check_all_health()
        services = [
            {**_info_dict(info), "health": _report_dict(reports.get(name))}
            for name, info in registry.get_status().items()
        ]
        payload = {
            "mode": "active",
            "timestamp": time.time(),
            "ttl_seconds": self.ttl_seconds,
            "services": services,
        }
        self.data = payload
        self.expires_at = time.monotonic() + self.ttl_seconds
        return payload


def _info_dict(info: ServiceInfo) -> dict[str, Any]:
    return {
        "name": info.name,
        "status": str(info.status),
        "kind": str(info.kind),
        "version": info.version,
        "dependencies": list(info.dependencies),
        "tags": sorted(info.tags),
        "attempts": info.attempts,
        "initialized_at": info.initialized_at.isoformat()
        if info.initialized_at
        else None,
        "error": info.error,
    }


def _report_dict(report: HealthReport | None) -> dict[str, Any] | None:
    if report is None:
        return None
    return {
        "status": str(report.status),
        "latency_ms": round(report.latency_ms, 2),
        "details": report.details,
        "error": report.error,
        "checked_at": report.checked_at.isoformat(),
    }


def _get_health_cache(request: Request) -> ServicesHealthCache:
    cache: ServicesHealthCache | None = getattr(
        request.app.state, "health_cache", None
    )
    if cache is None:
        yaml_config = getattr(request.app.state, "yaml_config", None)
        raw_ttl = yaml_config.cache.health_ttl_seconds if yaml_config else None
        cache = ServicesHealthCache(ttl_seconds=clamp_health_ttl(raw_ttl))
        request.app.state.health_cache = cache
    return cache


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Проверка состояния сервиса (liveness).

    Returns:
        Словарь со статусом "ok"
    """
    return {"status": "ok"}


@router.get("/health/services")
async def services_health(
    request: Request, response: Response, active: bool = False
) -> dict[str, Any]:
    """Статус сервисов из реестра.

    Args:
        request: HTTP-запрос (реестр берётся из app.state).
        response: HTTP-ответ (заголовки режима).
        active: Запустить health-check сервисов.

    Returns:
        Пассивный режим — статусы реестра; активный — статусы и результаты
        проверок (с кэшированием на TTL).
    """
    response.headers["Cache-Control"] = "no-store"

    registry: ServiceRegistry | None = getattr(request.app.state, "registry", None)
    if registry is None:
        response.status_code = 503
        return {"mode": "passive", "services": [], "error": "registry not ready"}

    if not active:
        response.headers["X-Health-Mode"] = "passive"
        return {
            "mode": "passive",
            "services": [_info_dict(i) for i in registry.get_status().values()],
        }

    cache = _get_health_cache(request)
    cached = cache.fresh()
    if cached is not None:
        response.headers["X-Health-Mode"] = "active-cached"
        return cached

    payload = await cache.get_or_run(registry)
    response.headers["X-Health-Mode"] = "active"
    return payload
