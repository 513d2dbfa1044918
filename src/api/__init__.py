"""API эндпоинты.

Этот модуль содержит FastAPI роутеры для:
- Health check (/health, /health/services)
- Лендингов (/api/pages)
- Webhook'ов Stripe (/api/webhooks/stripe)
"""

from src.api.health import router as health_router
from src.api.pages import router as pages_router
from src.api.webhooks import router as webhooks_router

__all__ = ["health_router", "pages_router", "webhooks_router"]
