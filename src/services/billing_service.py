"""Сервис биллинга: подписки Stripe, лимиты и счета.

Этот модуль реализует логику монетизации:
- Клиент Stripe и подписка пользователя на тариф
- Отмена подписки (сразу или в конце периода)
- Проверка лимита генераций и учёт использования
- Расчёт оплаты за превышение лимитов (overage)
- Синхронизация счетов и обработка webhook-событий Stripe

Источник правды по подпискам — Stripe. Локальные записи Subscription
и Invoice обновляются из ответов API и webhook-событий.

Пример использования:
    billing = create_billing_service(session_factory, yaml_config)
    await billing.initialize()

    subscription = await billing.create_subscription(
        user_id=42, plan_id=2, payment_method_id="pm_..."
    )

    limit = await billing.check_generation_limit(42)
    if limit.allowed:
        ...
        await billing.track_usage(42, UsageType.GENERATION)
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.constants import UNLIMITED
from src.config.models import StripeSettings
from src.config.yaml_config import YamlConfig
from src.core.exceptions import (
    ConfigurationError,
    PaymentError,
    PlanNotFoundError,
    SubscriptionError,
    SubscriptionNotFoundError,
    UserNotFoundError,
)
from src.db.models.invoice import Invoice, InvoiceStatus
from src.db.models.plan import Plan
from src.db.models.subscription import Subscription, SubscriptionStatus
from src.db.models.user import User
from src.db.repositories.invoice_repo import InvoiceRepository
from src.db.repositories.plan_repo import PlanRepository
from src.db.repositories.subscription_repo import SubscriptionRepository
from src.db.repositories.user_repo import UsageCounter, UserRepository
from src.providers.payments.stripe import StripeClient
from src.utils.logging import get_logger
from src.utils.timezone import from_unix_timestamp, to_naive_utc, utc_now

logger = get_logger(__name__)

# API-вызовы сверх лимита тарифицируются за каждую начатую сотню
API_CALLS_BILLING_UNIT = 100


class UsageType(StrEnum):
    """Тип использования для track_usage()."""

    GENERATION = "generation"
    API_CALL = "api_call"
    TRANSLATION = "translation"


USAGE_COUNTERS: dict[UsageType, UsageCounter] = {
    UsageType.GENERATION: UsageCounter.PAGES,
    UsageType.API_CALL: UsageCounter.API_CALLS,
    UsageType.TRANSLATION: UsageCounter.TRANSLATIONS,
}


class WebhookEvent(StrEnum):
    """События Stripe, которые обрабатывает сервис."""

    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


@dataclass(frozen=True)
class GenerationLimit:
    """Результат check_generation_limit().

    Attributes:
        allowed: Можно ли сгенерировать ещё одну страницу.
        used: Сгенерировано в текущем месяце.
        limit: Лимит тарифа (-1 — без ограничений).
        remaining: Осталось (-1 — без ограничений).
    """

    allowed: bool
    used: int
    limit: int
    remaining: int


@dataclass(frozen=True)
class OverageItem:
    """Превышение по одному счётчику."""

    overage: int
    rate: float
    charge: float


@dataclass(frozen=True)
class OverageCharges:
    """Результат calculate_overage_charges()."""

    total: float
    details: dict[str, OverageItem] = field(default_factory=dict)


def _over(used: int, limit: int) -> int:
    if limit == UNLIMITED:
        return 0
    return max(used - limit, 0)


def _rate(plan_rate: Any, default: float) -> float:
    return float(plan_rate) if plan_rate is not None else default


class BillingService:
    """Биллинг поверх Stripe и локальной БД.

    Реализует контракт ManagedService: initialize() проверяет ключ
    запросом баланса, shutdown() закрывает HTTP-клиент.

    Attributes:
        _settings: Настройки Stripe.
        _config: YAML-конфигурация (ставки overage по умолчанию).
        _session_factory: Фабрика сессий SQLAlchemy.
        _client: Клиент Stripe (создаётся в initialize()).
    """

    def __init__(
        self,
        settings: StripeSettings,
        config: YamlConfig,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        client: StripeClient | None = None,
    ) -> None:
        self._settings = settings
        self._config = config
        self._session_factory = session_factory
        self._client = client

    # =========================================================================
    # Жизненный цикл
    # =========================================================================

    async def initialize(self) -> None:
        """Создать клиент Stripe и проверить ключ.

        Raises:
            ConfigurationError: STRIPE__SECRET_KEY не задан.
            PaymentError: Stripe отклонил ключ или недоступен.
        """
        if self._client is None:
            if self._settings.secret_key is None:
                raise ConfigurationError(
                    "Stripe не настроен: задайте STRIPE__SECRET_KEY",
                    setting="STRIPE__SECRET_KEY",
                )
            self._client = StripeClient(
                self._settings.secret_key.get_secret_value(),
                api_base=self._settings.api_base,
            )

        await self._client.retrieve_balance()
        logger.info("Stripe подключён")

    async def shutdown(self) -> None:
        """Закрыть HTTP-клиент Stripe."""
        if self._client is not None:
            await self._client.close()
        logger.info("Биллинг остановлен")

    async def health_check(self) -> dict[str, Any]:
        """Health-check для реестра: запрос баланса Stripe."""
        try:
            balance = await self._stripe.retrieve_balance()
        except PaymentError as e:
            return {"status": "unhealthy", "error": e.message}
        return {"status": "healthy", "livemode": balance.get("livemode", False)}

    @property
    def _stripe(self) -> StripeClient:
        if self._client is None:
            raise ConfigurationError("Биллинг не инициализирован")
        return self._client

    # =========================================================================
    # Клиенты и подписки
    # =========================================================================

    async def _load_user(self, session: AsyncSession, user_id: int) -> User:
        user = await UserRepository(session).get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def _ensure_customer(self, session: AsyncSession, user: User) -> str:
        if user.stripe_customer_id:
            return user.stripe_customer_id

        customer = await self._stripe.create_customer(
            email=user.email,
            name=user.name,
            metadata={"user_id": user.id},
        )
        await UserRepository(session).set_stripe_customer(user, customer["id"])
        logger.info(
            "Создан клиент Stripe: user_id=%s, customer=%s", user.id, customer["id"]
        )
        return customer["id"]

    async def create_customer(self, user_id: int) -> str:
        """Создать клиента Stripe для пользователя (если его ещё нет).

        Returns:
            ID клиента Stripe (cus_...).
        """
        async with self._session_factory() as session:
            user = await self._load_user(session, user_id)
            return await self._ensure_customer(session, user)

    async def create_subscription(
        self, user_id: int, plan_id: int, payment_method_id: str
    ) -> Subscription:
        """Оформить подписку пользователя на тариф.

        Шаги:
        1. Клиент Stripe (создаётся при необходимости)
        2. Привязка способа оплаты и назначение его способом по умолчанию
        3. Подписка на цену тарифа с metadata user_id/plan_id
        4. Локальная запись Subscription и обновление пользователя

        Args:
            user_id: ID пользователя.
            plan_id: ID тарифа.
            payment_method_id: ID способа оплаты (pm_...).

        Returns:
            Созданная локальная запись подписки.

        Raises:
            UserNotFoundError: Пользователь не найден.
            PlanNotFoundError: Тариф не найден.
            SubscriptionError: Тариф не привязан к цене Stripe.
            PaymentError: Ошибка Stripe API.
        """
        async with self._session_factory() as session:
            user = await self._load_user(session, user_id)
            plan = await PlanRepository(session).get_by_id(plan_id)
            if plan is None:
                raise PlanNotFoundError(plan_id)
            if not plan.stripe_price_id:
                raise SubscriptionError(
                    f"Тариф {plan.slug} не привязан к цене Stripe"
                )

            customer_id = await self._ensure_customer(session, user)
            await self._stripe.attach_payment_method(payment_method_id, customer_id)
            await self._stripe.update_customer(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )

            stripe_sub = await self._stripe.create_subscription(
                customer_id=customer_id,
                price_id=plan.stripe_price_id,
                payment_method_id=payment_method_id,
                metadata={"user_id": user.id, "plan_id": plan.id},
            )
            status = SubscriptionStatus.from_stripe(stripe_sub.get("status"))

            subscription = await SubscriptionRepository(session).create(
                user_id=user.id,
                plan_id=plan.id,
                stripe_subscription_id=stripe_sub["id"],
                status=status,
                current_period_start=from_unix_timestamp(
                    stripe_sub.get("current_period_start")
                ),
                current_period_end=from_unix_timestamp(
                    stripe_sub.get("current_period_end")
                ),
                trial_start=from_unix_timestamp(stripe_sub.get("trial_start")),
                trial_end=from_unix_timestamp(stripe_sub.get("trial_end")),
            )
            await UserRepository(session).update_subscription(
                user,
                subscription_id=stripe_sub["id"],
                status=status,
                plan_id=plan.id,
                change_plan=True,
            )

        logger.info(
            "Подписка оформлена: user_id=%s, plan=%s, status=%s",
            user_id,
            plan.slug,
            status,
        )
        return subscription

    async def cancel_subscription(
        self, user_id: int, *, immediately: bool = False
    ) -> dict[str, Any]:
        """Отменить подписку пользователя.

        Args:
            user_id: ID пользователя.
            immediately: True — отменить сразу, False — в конце периода.

        Returns:
            Объект подписки Stripe после отмены.

        Raises:
            SubscriptionNotFoundError: У пользователя нет подписки.
        """
        async with self._session_factory() as session:
            user = await self._load_user(session, user_id)
            if not user.stripe_subscription_id:
                raise SubscriptionNotFoundError(user_id)

            if immediately:
                stripe_sub = await self._stripe.cancel_subscription(
                    user.stripe_subscription_id
                )
            else:
                stripe_sub = await self._stripe.update_subscription(
                    user.stripe_subscription_id, cancel_at_period_end=True
                )
            await self._apply_subscription(session, stripe_sub)

        logger.info(
            "Подписка отменена: user_id=%s, immediately=%s", user_id, immediately
        )
        return stripe_sub

    # =========================================================================
    # Лимиты и использование
    # =========================================================================

    async def _resolve_plan(self, session: AsyncSession, user: User) -> Plan | None:
        if user.plan is not None:
            return user.plan
        return await PlanRepository(session).get_default()

    async def check_generation_limit(self, user_id: int) -> GenerationLimit:
        """Проверить, может ли пользователь сгенерировать ещё страницу.

        Пользователь без тарифа получает тариф по умолчанию (Free).
        Счётчики обнуляются, если сменился месяц.
        """
        async with self._session_factory() as session:
            user = await self._load_user(session, user_id)
            await UserRepository(session).reset_usage_if_needed(user)
            plan = await self._resolve_plan(session, user)

        used = user.pages_generated_this_month
        if plan is None:
            return GenerationLimit(allowed=False, used=used, limit=0, remaining=0)

        limit = plan.pages_per_month
        if limit == UNLIMITED:
            return GenerationLimit(
                allowed=True, used=used, limit=UNLIMITED, remaining=UNLIMITED
            )
        remaining = max(limit - used, 0)
        return GenerationLimit(
            allowed=remaining > 0, used=used, limit=limit, remaining=remaining
        )

    async def track_usage(
        self, user_id: int, usage_type: UsageType | str, amount: int = 1
    ) -> bool:
        """Увеличить счётчик использования.

        Args:
            user_id: ID пользователя.
            usage_type: generation, api_call или translation.
            amount: На сколько увеличить.

        Returns:
            True если счётчик увеличен.

        Raises:
            ValueError: Неизвестный тип использования.
        """
        counter = USAGE_COUNTERS[UsageType(usage_type)]
        async with self._session_factory() as session:
            updated = await UserRepository(session).increment_usage(
                user_id, counter, amount
            )
        if not updated:
            logger.warning("Учёт использования: пользователь %s не найден", user_id)
        return updated

    def calculate_overage_charges(self, user: User, plan: Plan) -> OverageCharges:
        """Рассчитать оплату за превышение лимитов.

        - Страницы: ставка за каждую страницу сверх лимита
        - API-вызовы: ставка за каждую начатую сотню сверх лимита
        - Переводы: ставка за каждую единицу сверх лимита

        Ставки берутся из тарифа, а если не заданы — из config.yaml.
        Итог округляется до центов.
        """
        defaults = self._config.overage
        details: dict[str, OverageItem] = {}

        pages_over = _over(user.pages_generated_this_month, plan.pages_per_month)
        if pages_over:
            rate = _rate(plan.overage_page_rate, defaults.pages)
            details["pages"] = OverageItem(pages_over, rate, pages_over * rate)

        api_over = _over(user.api_calls_this_month, plan.api_calls_per_month)
        if api_over:
            rate = _rate(plan.overage_api_calls_rate, defaults.api_calls_per_100)
            units = math.ceil(api_over / API_CALLS_BILLING_UNIT)
            details["api_calls"] = OverageItem(api_over, rate, units * rate)

        translations_over = _over(user.translations_this_month, plan.translation_limit)
        if translations_over:
            rate = _rate(plan.overage_translation_rate, defaults.translations)
            details["translations"] = OverageItem(
                translations_over, rate, translations_over * rate
            )

        total = round(sum(item.charge for item in details.values()), 2)
        return OverageCharges(total=total, details=details)

    async def get_usage_stats(self, user_id: int) -> dict[str, Any]:
        """Статистика использования пользователя за текущий месяц."""
        async with self._session_factory() as session:
            user = await self._load_user(session, user_id)
            await UserRepository(session).reset_usage_if_needed(user)
            plan = await self._resolve_plan(session, user)

        usage = {
            "pages": user.pages_generated_this_month,
            "api_calls": user.api_calls_this_month,
            "translations": user.translations_this_month,
            "images": user.images_generated_this_month,
        }
        if plan is None:
            return {"plan": None, "usage": usage, "limits": {}, "overage": None}

        overage = self.calculate_overage_charges(user, plan)
        return {
            "plan": plan.slug,
            "usage": usage,
            "limits": plan.limits_dict(),
            "subscription_status": user.subscription_status,
            "last_usage_reset": user.last_usage_reset,
            "overage": {
                "total": overage.total,
                "details": {
                    name: {"overage": i.overage, "rate": i.rate, "charge": i.charge}
                    for name, i in overage.details.items()
                },
            },
        }

    # =========================================================================
    # Страницы Stripe и счета
    # =========================================================================

    async def create_checkout_session(
        self, user_id: int, plan_id: int, success_url: str, cancel_url: str
    ) -> dict[str, Any]:
        """Создать Checkout Session для оформления тарифа.

        Для бесплатного тарифа создаётся сессия в режиме setup
        (сохранение карты без оплаты).

        Returns:
            {"id": ..., "url": ...} сессии Stripe.
        """
        async with self._session_factory() as session:
            user = await self._load_user(session, user_id)
            plan = await PlanRepository(session).get_by_id(plan_id)
            if plan is None:
                raise PlanNotFoundError(plan_id)
            customer_id = await self._ensure_customer(session, user)

        paid = plan.price > 0
        if paid and not plan.stripe_price_id:
            raise SubscriptionError(f"Тариф {plan.slug} не привязан к цене Stripe")

        checkout = await self._stripe.create_checkout_session(
            customer_id=customer_id,
            price_id=plan.stripe_price_id,
            mode="subscription" if paid else "setup",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"user_id": user_id, "plan_id": plan_id},
        )
        return {"id": checkout["id"], "url": checkout.get("url")}

    async def create_portal_session(self, user_id: int, return_url: str) -> str:
        """Создать сессию клиентского портала Stripe.

        Returns:
            URL портала.

        Raises:
            SubscriptionError: У пользователя нет клиента Stripe.
        """
        async with self._session_factory() as session:
            user = await self._load_user(session, user_id)
        if not user.stripe_customer_id:
            raise SubscriptionError(f"У пользователя id={user_id} нет клиента Stripe")

        portal = await self._stripe.create_portal_session(
            customer_id=user.stripe_customer_id, return_url=return_url
        )
        return portal["url"]

    async def list_invoices(
        self, user_id: int, limit: int = 10, starting_after: str | None = None
    ) -> dict[str, Any]:
        """Список счетов пользователя из Stripe (постранично).

        Returns:
            {"data": [...], "has_more": bool}.
        """
        async with self._session_factory() as session:
            user = await self._load_user(session, user_id)
        if not user.stripe_customer_id:
            return {"data": [], "has_more": False}

        page = await self._stripe.list_invoices(
            customer_id=user.stripe_customer_id,
            limit=limit,
            starting_after=starting_after,
        )
        return {"data": page.get("data", []), "has_more": page.get("has_more", False)}

    async def _find_user(
        self, session: AsyncSession, stripe_object: Mapping[str, Any]
    ) -> User | None:
        """Найти пользователя по metadata.user_id или ID клиента Stripe."""
        repo = UserRepository(session)
        metadata = stripe_object.get("metadata") or {}
        raw_user_id = metadata.get("user_id")
        if raw_user_id is not None and str(raw_user_id).isdigit():
            user = await repo.get_by_id(int(raw_user_id))
            if user is not None:
                return user

        customer_id = stripe_object.get("customer")
        if customer_id:
            return await repo.get_by_stripe_customer_id(customer_id)
        return None

    async def sync_invoice(self, stripe_invoice: Mapping[str, Any]) -> Invoice | None:
        """Сохранить или обновить счёт Stripe в локальной БД.

        Пользователь и тариф берутся из metadata подписки счёта,
        а если подписки нет — пользователь ищется по клиенту Stripe.

        Returns:
            Сохранённый счёт или None, если пользователь не найден.
        """
        metadata: Mapping[str, Any] = {}
        subscription_id = stripe_invoice.get("subscription")
        if subscription_id:
            stripe_sub = await self._stripe.retrieve_subscription(subscription_id)
            metadata = stripe_sub.get("metadata") or {}

        async with self._session_factory() as session:
            user = await self._find_user(
                session,
                {"metadata": metadata, "customer": stripe_invoice.get("customer")},
            )
            if user is None:
                logger.warning(
                    "Счёт %s: пользователь не найден, пропускаем",
                    stripe_invoice.get("id"),
                )
                return None

            raw_plan_id = metadata.get("plan_id")
            plan_id = int(raw_plan_id) if str(raw_plan_id).isdigit() else user.plan_id

            amount = stripe_invoice.get("amount_paid")
            if not amount:
                amount = stripe_invoice.get("amount_due") or 0

            return await InvoiceRepository(session).upsert(
                user_id=user.id,
                stripe_invoice_id=stripe_invoice["id"],
                amount=int(amount),
                currency=stripe_invoice.get("currency") or "usd",
                status=InvoiceStatus.from_stripe(stripe_invoice.get("status")),
                plan_id=plan_id,
                period_start=from_unix_timestamp(stripe_invoice.get("period_start")),
                period_end=from_unix_timestamp(stripe_invoice.get("period_end")),
                hosted_invoice_url=stripe_invoice.get("hosted_invoice_url"),
                invoice_pdf=stripe_invoice.get("invoice_pdf"),
                metadata=dict(stripe_invoice.get("metadata") or {}) or None,
            )

    # =========================================================================
    # Webhook-события
    # =========================================================================

    async def handle_webhook_event(self, event: Mapping[str, Any]) -> bool:
        """Обработать событие Stripe.

        Args:
            event: Тело webhook-запроса ({"type": ..., "data": {"object": ...}}).

        Returns:
            True если тип события обрабатывается сервисом.
        """
        event_type = event.get("type", "")
        obj: Mapping[str, Any] = (event.get("data") or {}).get("object") or {}

        match event_type:
            case WebhookEvent.SUBSCRIPTION_CREATED | WebhookEvent.SUBSCRIPTION_UPDATED:
                async with self._session_factory() as session:
                    await self._apply_subscription(session, obj)
            case WebhookEvent.SUBSCRIPTION_DELETED:
                await self._handle_subscription_deleted(obj)
            case WebhookEvent.INVOICE_PAYMENT_SUCCEEDED:
                await self._handle_payment_succeeded(obj)
            case WebhookEvent.INVOICE_PAYMENT_FAILED:
                logger.error(
                    "Оплата счёта не прошла: invoice=%s, customer=%s, attempt=%s",
                    obj.get("id"),
                    obj.get("customer"),
                    obj.get("attempt_count"),
                )
            case _:
                logger.info("Событие Stripe не обрабатывается: %s", event_type)
                return False
        return True

    async def _apply_subscription(
        self, session: AsyncSession, stripe_sub: Mapping[str, Any]
    ) -> Subscription | None:
        """Синхронизировать локальную подписку и пользователя с Stripe."""
        status = SubscriptionStatus.from_stripe(stripe_sub.get("status"))
        sub_repo = SubscriptionRepository(session)
        subscription = await sub_repo.get_by_stripe_id(stripe_sub["id"])

        user = await self._find_user(session, stripe_sub)
        if user is None and subscription is not None:
            user = await UserRepository(session).get_by_id(subscription.user_id)
        if user is None:
            logger.warning(
                "Подписка %s: пользователь не найден, пропускаем", stripe_sub["id"]
            )
            return None

        metadata = stripe_sub.get("metadata") or {}
        raw_plan_id = metadata.get("plan_id")
        plan_id = int(raw_plan_id) if str(raw_plan_id).isdigit() else None

        canceled_at = from_unix_timestamp(stripe_sub.get("canceled_at"))
        if subscription is None:
            subscription = await sub_repo.create(
                user_id=user.id,
                plan_id=plan_id,
                stripe_subscription_id=stripe_sub["id"],
                status=status,
                current_period_start=from_unix_timestamp(
                    stripe_sub.get("current_period_start")
                ),
                current_period_end=from_unix_timestamp(
                    stripe_sub.get("current_period_end")
                ),
                trial_start=from_unix_timestamp(stripe_sub.get("trial_start")),
                trial_end=from_unix_timestamp(stripe_sub.get("trial_end")),
            )
        else:
            subscription = await sub_repo.update_from_stripe(
                subscription,
                status=status,
                current_period_start=from_unix_timestamp(
                    stripe_sub.get("current_period_start")
                ),
                current_period_end=from_unix_timestamp(
                    stripe_sub.get("current_period_end")
                ),
                cancel_at_period_end=stripe_sub.get("cancel_at_period_end"),
                canceled_at=canceled_at,
            )

        await UserRepository(session).update_subscription(
            user,
            subscription_id=stripe_sub["id"],
            status=status,
            plan_id=plan_id,
            change_plan=plan_id is not None and subscription.is_active,
        )
        logger.info(
            "Подписка синхронизирована: user_id=%s, stripe_id=%s, status=%s",
            user.id,
            stripe_sub["id"],
            status,
        )
        return subscription

    async def _handle_subscription_deleted(self, stripe_sub: Mapping[str, Any]) -> None:
        async with self._session_factory() as session:
            sub_repo = SubscriptionRepository(session)
            subscription = await sub_repo.get_by_stripe_id(stripe_sub["id"])
            if subscription is not None:
                await sub_repo.update_from_stripe(
                    subscription,
                    status=SubscriptionStatus.CANCELED,
                    canceled_at=from_unix_timestamp(stripe_sub.get("canceled_at"))
                    or to_naive_utc(utc_now()),
                )

            user_repo = UserRepository(session)
            user = await user_repo.get_by_stripe_subscription_id(stripe_sub["id"])
            if user is None:
                user = await self._find_user(session, stripe_sub)
            if user is None:
                logger.warning(
                    "Удалённая подписка %s: пользователь не найден", stripe_sub["id"]
                )
                return

            # Без тарифа пользователь получает тариф по умолчанию (Free)
            await user_repo.update_subscription(
                user,
                subscription_id=stripe_sub["id"],
                status=SubscriptionStatus.CANCELED,
                plan_id=None,
                change_plan=True,
            )
        logger.info("Подписка удалена: user_id=%s, переход на Free", user.id)

    async def _handle_payment_succeeded(
        self, stripe_invoice: Mapping[str, Any]
    ) -> None:
        async with self._session_factory() as session:
            user_repo = UserRepository(session)
            user = None
            subscription_id = stripe_invoice.get("subscription")
            if subscription_id:
                user = await user_repo.get_by_stripe_subscription_id(subscription_id)
            if user is None:
                user = await self._find_user(session, stripe_invoice)

            if user is not None:
                await user_repo.reset_usage(user.id)
                logger.info(
                    "Оплата прошла, счётчики обнулены: user_id=%s, invoice=%s",
                    user.id,
                    stripe_invoice.get("id"),
                )
            else:
                logger.warning(
                    "Оплата счёта %s: пользователь не найден", stripe_invoice.get("id")
                )

        await self.sync_invoice(stripe_invoice)


def create_billing_service(
    session_factory: async_sessionmaker[AsyncSession],
    config: YamlConfig,
    settings: StripeSettings | None = None,
) -> BillingService:
    """Фабричная функция для создания BillingService.

    Args:
        session_factory: Фабрика сессий SQLAlchemy.
        config: YAML-конфигурация.
        settings: Настройки Stripe (по умолчанию — из окружения).

    Returns:
        Неинициализированный BillingService.
    """
    if settings is None:
        from src.config.settings import settings as app_settings

        settings = app_settings.stripe
    return BillingService(settings, config, session_factory)
