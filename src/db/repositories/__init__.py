"""Репозитории для работы с данными.

Репозиторий — это паттерн, который инкапсулирует логику доступа к данным.
Вместо прямых SQL-запросов в сервисах используем методы репозитория.
"""

from src.db.repositories.invoice_repo import InvoiceRepository
from src.db.repositories.plan_repo import PlanRepository
from src.db.repositories.subscription_repo import SubscriptionRepository
from src.db.repositories.tenant_repo import TenantRepository
from src.db.repositories.user_repo import UsageCounter, UserRepository

__all__ = [
    "InvoiceRepository",
    "PlanRepository",
    "SubscriptionRepository",
    "TenantRepository",
    "UsageCounter",
    "UserRepository",
]
