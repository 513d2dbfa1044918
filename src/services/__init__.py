"""Сервисы приложения.

Этот пакет содержит бизнес-логику приложения.

Сервисы:
- UsageValidator — проверка и учёт лимитов тарифа.
- ContentCache — кэш сгенерированных страниц (память + Redis).
- AIService — генерация описаний, переводов и изображений.
- PageService — лендинги через кэш и массовая генерация.
- BillingService — подписки Stripe, лимиты и счета.
"""

from src.services.ai_service import AIService
from src.services.billing_service import BillingService
from src.services.cache import ContentCache
from src.services.page_service import PageService
from src.services.usage_validator import UsageValidator

__all__ = [
    "AIService",
    "BillingService",
    "ContentCache",
    "PageService",
    "UsageValidator",
]
