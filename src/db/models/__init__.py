"""Модели базы данных (таблицы).

Каждая модель — это класс Python, который соответствует таблице в БД.
Все модели наследуются от Base (из src.db.models_base).
"""

from src.db.models.invoice import Invoice, InvoiceStatus
from src.db.models.plan import UNLIMITED, Plan, PlanLevel
from src.db.models.subscription import Subscription, SubscriptionStatus
from src.db.models.tenant import Tenant
from src.db.models.user import User

__all__ = [
    "UNLIMITED",
    "Invoice",
    "InvoiceStatus",
    "Plan",
    "PlanLevel",
    "Subscription",
    "SubscriptionStatus",
    "Tenant",
    "User",
]
