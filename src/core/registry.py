"""Реестр сервисов (DI-контейнер приложения).

Реестр владеет регистрацией, упорядоченной инициализацией и остановкой
именованных сервисов, а также агрегирует их health-статус.

Как это работает:
1. register() сохраняет дескриптор сервиса: провайдер, зависимости, метаданные
2. initialize() строит порядок инициализации топологической сортировкой (DFS)
   по объявленным зависимостям и поднимает сервисы строго последовательно
3. get() отдаёт готовый экземпляр или пытается его инициализировать
   в пределах таймаута; при неудаче возвращает fallback (fail-open)
4. shutdown() останавливает сервисы в обратном порядке инициализации

Виды провайдеров (вместо инспекции типов во время выполнения):
- SingletonService: готовый объект с initialize()/shutdown()
- FactoryService: async-фабрика, получающая экземпляры зависимостей
- ModuleService: обычное значение без жизненного цикла

Реестр не глобальный: он создаётся в точке сборки приложения
(см. src/app/bootstrap.py) и передаётся явно.

Конкурентность:
Все внутренние словари меняются без блокировок. Это корректно только
в однопоточном event loop: между двумя await никто другой не выполняется.
Параллельные инициализации одного сервиса объединяются в одну asyncio.Task.

Пример использования:
    registry = ServiceRegistry()
    registry.register("logger", ModuleService(logger), lazy=False)
    registry.register(
        "ai",
        SingletonService(ai_service),
        dependencies=["logger", "usage_validator"],
        timeout=120.0,
    )
    ai = await registry.initialize("ai")
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from src.core.exceptions import (
    CircularDependencyError,
    ConfigurationError,
    InvalidServiceNameError,
    ServiceInitializationError,
    ServiceNotFoundError,
    ServiceRegistryError,
    ServiceTimeoutError,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

# =============================================================================
# КОНСТАНТЫ
# =============================================================================

# Таймаут инициализации одного сервиса по умолчанию (секунды)
DEFAULT_INIT_TIMEOUT = 30.0

# Сколько раз повторять неудачную инициализацию (помимо первой попытки)
DEFAULT_RETRIES = 2

# Шаг линейной задержки между попытками: backoff * номер_попытки
DEFAULT_RETRY_BACKOFF = 0.5

# Таймаут health-check одного сервиса
DEFAULT_HEALTH_TIMEOUT = 5.0

# Сколько ждать shutdown-хук одного сервиса
DEFAULT_SHUTDOWN_GRACE = 10.0


# =============================================================================
# ТИПЫ
# =============================================================================


class ServiceStatus(StrEnum):
    """Статус жизненного цикла сервиса.

    Переходы: REGISTERED → INITIALIZING → RUNNING | FAILED → STOPPED
    """

    REGISTERED = "registered"
    INITIALIZING = "initializing"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"


class HealthStatus(StrEnum):
    """Результат health-check.

    Значения:
        HEALTHY: Проверка прошла успешно.
        UNHEALTHY: Проверка вернула отказ, упала или не уложилась в таймаут.
        UNKNOWN: Сервис работает, но health-check не зарегистрирован.
        DOWN: Сервис ещё не инициализирован (или не зарегистрирован).
    """

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"
    DOWN = "down"


class ServiceKind(StrEnum):
    """Вид провайдера сервиса."""

    SINGLETON = "singleton"
    FACTORY = "factory"
    MODULE = "module"


class RegistryEventKind(StrEnum):
    """Тип уведомления, которое реестр рассылает слушателям."""

    REGISTERED = "registered"
    UPDATED = "updated"
    INITIALIZED = "initialized"
    FAILED = "failed"
    STOPPED = "stopped"


@runtime_checkable
class ManagedService(Protocol):
    """Контракт сервиса с явным жизненным циклом."""

    async def initialize(self) -> None:
        """Подготовить сервис к работе (подключения, проверки ключей)."""
        ...

    async def shutdown(self) -> None:
        """Освободить ресурсы сервиса."""
        ...


# Фабрика получает словарь {имя_зависимости: экземпляр}
ServiceFactory = Callable[[Mapping[str, Any]], Awaitable[Any]]

# Health-check получает экземпляр сервиса.
# Может вернуть bool или dict со статусом: {"status": "healthy", ...}
HealthCheck = Callable[[Any], Awaitable[bool | dict[str, Any]]]


@dataclass(frozen=True)
class SingletonService:
    """Готовый объект; реестр вызывает его initialize()/shutdown()."""

    instance: ManagedService
    kind: ServiceKind = field(default=ServiceKind.SINGLETON, init=False)


@dataclass(frozen=True)
class FactoryService:
    """Экземпляр создаётся фабрикой после инициализации зависимостей.

    Если фабрика вернула ManagedService, реестр вызовет его initialize().
    """

    factory: ServiceFactory
    kind: ServiceKind = field(default=ServiceKind.FACTORY, init=False)


@dataclass(frozen=True)
class ModuleService:
    """Обычное значение (модуль, функция, конфиг) без жизненного цикла."""

    value: Any
    kind: ServiceKind = field(default=ServiceKind.MODULE, init=False)


ServiceProvider = SingletonService | FactoryService | ModuleService


@dataclass
class ServiceDescriptor:
    """Внутренняя запись реестра о сервисе.

    Создаётся при регистрации и изменяется только операциями
    initialize/shutdown самого реестра.
    """

    name: str
    provider: ServiceProvider
    dependencies: tuple[str, ...] = ()
    version: str = "1.0.0"
    description: str = ""
    tags: frozenset[str] = frozenset()
    singleton: bool = True
    lazy: bool = True
    priority: int = 0
    timeout: float | None = None
    health_check: HealthCheck | None = None

    status: ServiceStatus = ServiceStatus.REGISTERED
    instance: Any = None
    error: BaseException | None = None
    attempts: int = 0
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    initialized_at: datetime | None = None

    @property
    def kind(self) -> ServiceKind:
        """Вид провайдера."""
        return self.provider.kind


@dataclass(frozen=True)
class ServiceInfo:
    """Снимок состояния сервиса для get_status()."""

    name: str
    status: ServiceStatus
    kind: ServiceKind
    version: str
    dependencies: tuple[str, ...]
    tags: frozenset[str]
    priority: int
    attempts: int
    initialized_at: datetime | None
    error: str | None


@dataclass(frozen=True)
class HealthReport:
    """Результат проверки здоровья одного сервиса."""

    name: str
    status: HealthStatus
    latency_ms: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_healthy(self) -> bool:
        """Сервис здоров."""
        return self.status == HealthStatus.HEALTHY


@dataclass(frozen=True)
class RegistryEvent:
    """Уведомление об изменении состояния сервиса."""

    kind: RegistryEventKind
    name: str
    status: ServiceStatus


RegistryListener = Callable[[RegistryEvent], None]


# =============================================================================
# РЕЕСТР
# =============================================================================


class ServiceRegistry:
    """DI-контейнер с упорядоченной инициализацией и health-check.

    Attributes:
        default_timeout: Таймаут инициализации, если у сервиса не задан свой.
        default_retries: Количество повторов после неудачной попытки.
        retry_backoff: Шаг линейной задержки между попытками (секунды).
        health_timeout: Таймаут одного health-check.
        shutdown_grace: Сколько ждать shutdown-хук одного сервиса.
    """

    def __init__(
        self,
        *,
        default_timeout: float = DEFAULT_INIT_TIMEOUT,
        default_retries: int = DEFAULT_RETRIES,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        health_timeout: float = DEFAULT_HEALTH_TIMEOUT,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
    ) -> None:
        self.default_timeout = default_timeout
        self.default_retries = max(0, default_retries)
        self.retry_backoff = retry_backoff
        self.health_timeout = health_timeout
        self.shutdown_grace = shutdown_grace

        self._services: dict[str, ServiceDescriptor] = {}
        # Порядок, в котором сервисы реально перешли в RUNNING
        self._init_order: list[str] = []
        # Текущие инициализации: параллельные вызовы ждут одну задачу
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        # Фоновые задачи автоинициализации (lazy=False без зависимостей)
        self._eager_tasks: set[asyncio.Task[None]] = set()
        # Eager-сервисы, зарегистрированные до запуска event loop
        self._pending_eager: list[str] = []
        self._listeners: list[RegistryListener] = []

    # =========================================================================
    # Регистрация
    # =========================================================================

    def register(  # noqa: PLR0913
        self,
        name: str,
        provider: ServiceProvider,
        *,
        dependencies: Iterable[str] = (),
        version: str = "1.0.0",
        description: str = "",
        tags: Iterable[str] = (),
        singleton: bool = True,
        lazy: bool = True,
        health_check: HealthCheck | None = None,
        priority: int = 0,
        timeout: float | None = None,
    ) -> None:
        """Зарегистрировать сервис.

        Зависимости могут ссылаться на ещё не зарегистрированные сервисы:
        они проверяются только в момент initialize().

        Если lazy=False и зависимостей нет, инициализация запускается
        в фоне и не блокирует вызывающего. Без работающего event loop
        запуск откладывается до start().

        Args:
            name: Уникальное непустое имя сервиса.
            provider: SingletonService, FactoryService или ModuleService.
            dependencies: Имена сервисов, которые нужны этому сервису.
            version: Версия сервиса (информационно).
            description: Описание (информационно).
            tags: Теги для группировки.
            singleton: Флаг единственного экземпляра (информационно).
            lazy: False — инициализировать сразу после регистрации.
            health_check: Async-функция проверки здоровья.
            priority: Чем больше, тем раньше сервис поднимается в start().
            timeout: Таймаут инициализации в секундах.

        Raises:
            InvalidServiceNameError: Если имя пустое или не строка.
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidServiceNameError(name)

        deps = tuple(dict.fromkeys(dependencies))
        descriptor = ServiceDescriptor(
            name=name,
            provider=provider,
            dependencies=deps,
            version=version,
            description=description,
            tags=frozenset(tags),
            singleton=singleton,
            lazy=lazy,
            priority=priority,
            timeout=timeout,
            health_check=health_check,
        )

        replaced = name in self._services
        if replaced:
            logger.warning("Сервис '%s' уже зарегистрирован, заменяем", name)
            if name in self._init_order:
                self._init_order.remove(name)
        self._services[name] = descriptor

        logger.info(
            "Зарегистрирован сервис: %s (kind=%s, deps=%s, lazy=%s)",
            name,
            descriptor.kind,
            list(deps) or "-",
            lazy,
        )
        self._emit(
            RegistryEventKind.UPDATED if replaced else RegistryEventKind.REGISTERED,
            descriptor,
        )

        if not lazy and not deps:
            self._schedule_eager(name)

    def add_listener(self, listener: RegistryListener) -> None:
        """Подписаться на уведомления реестра."""
        self._listeners.append(listener)

    def has(self, name: str) -> bool:
        """Зарегистрирован ли сервис."""
        return name in self._services

    def __contains__(self, name: object) -> bool:
        return name in self._services

    @property
    def names(self) -> list[str]:
        """Имена всех зарегистрированных сервисов."""
        return list(self._services)

    def _emit(self, kind: RegistryEventKind, descriptor: ServiceDescriptor) -> None:
        """Разослать уведомление слушателям (ошибки слушателей не пробрасываются)."""
        event = RegistryEvent(kind=kind, name=descriptor.name, status=descriptor.status)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Ошибка в слушателе реестра (некритично)")

    def _schedule_eager(self, name: str) -> None:
        """Запустить фоновую автоинициализацию или отложить её до start()."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Нет event loop, автоинициализация '%s' отложена", name)
            if name not in self._pending_eager:
                self._pending_eager.append(name)
            return

        task = asyncio.create_task(self._auto_initialize(name), name=f"eager:{name}")
        self._eager_tasks.add(task)
        task.add_done_callback(self._eager_tasks.discard)

    async def _auto_initialize(self, name: str) -> None:
        """Фоновая инициализация eager-сервиса."""
        try:
            await self.initialize(name)
        except Exception:
            logger.exception("Автоинициализация сервиса '%s' не удалась", name)

    async def start(self) -> None:
        """Запустить eager-сервисы, зарегистрированные до старта event loop.

        Сервисы с большим priority запускаются раньше, при равном приоритете
        сохраняется порядок регистрации.
        """
        pending = [n for n in self._pending_eager if n in self._services]
        self._pending_eager.clear()
        pending.sort(key=lambda n: -self._services[n].priority)
        for name in pending:
            self._schedule_eager(name)

    async def wait_for_pending(self) -> None:
        """Дождаться завершения всех фоновых автоинициализаций."""
        if self._eager_tasks:
            await asyncio.gather(*list(self._eager_tasks), return_exceptions=True)

    # =========================================================================
    # Инициализация
    # =========================================================================

    def resolve_order(self, name: str) -> list[str]:
        """Построить порядок инициализации сервиса и его зависимостей.

        Топологическая сортировка обходом в глубину. Множество visiting
        содержит сервисы, которые сейчас на стеке обхода: повторная встреча
        такого сервиса означает цикл. Множество visited исключает повторную
        обработку сервиса, достижимого несколькими путями.

        Args:
            name: Целевой сервис.

        Returns:
            Имена сервисов в порядке инициализации, цель последней.

        Raises:
            ServiceNotFoundError: Сервис или его зависимость не зарегистрированы.
            CircularDependencyError: В графе зависимостей есть цикл.
        """
        order: list[str] = []
        visited: set[str] = set()
        visiting: list[str] = []

        def visit(current: str, required_by: str | None) -> None:
            if current in visited:
                return
            if current in visiting:
                cycle = [*visiting[visiting.index(current) :], current]
                raise CircularDependencyError(cycle)

            descriptor = self._services.get(current)
            if descriptor is None:
                raise ServiceNotFoundError(current, required_by=required_by)

            visiting.append(current)
            for dep in descriptor.dependencies:
                visit(dep, current)
            visiting.pop()

            visited.add(current)
            order.append(current)

        visit(name, None)
        return order

    async def initialize(
        self,
        name: str,
        *,
        force: bool = False,
        retries: int | None = None,
    ) -> Any:
        """Инициализировать сервис вместе с зависимостями.

        Зависимости поднимаются строго до целевого сервиса, по одной,
        в топологическом порядке. Уже работающие сервисы не трогаются,
        поэтому повторный вызов возвращает экземпляр сразу.

        Args:
            name: Имя сервиса.
            force: Переинициализировать, даже если сервис уже работает.
            retries: Количество повторов (по умолчанию default_retries).

        Returns:
            Экземпляр сервиса.

        Raises:
            ServiceNotFoundError: Сервис или зависимость не зарегистрированы.
            CircularDependencyError: Обнаружен цикл зависимостей.
            ServiceInitializationError: Все попытки инициализации провалились.
            ConfigurationError: Сервис сообщил о неверной конфигурации.
        """
        descriptor = self._services.get(name)
        if descriptor is None:
            raise ServiceNotFoundError(name)

        if descriptor.status == ServiceStatus.RUNNING and not force:
            return descriptor.instance

        order = self.resolve_order(name)
        for dep in order[:-1]:
            await self._initialize_one(dep, force=False, retries=retries)
        return await self._initialize_one(name, force=force, retries=retries)

    async def _initialize_one(
        self, name: str, *, force: bool, retries: int | None
    ) -> Any:
        """Инициализировать один сервис (зависимости уже готовы)."""
        descriptor = self._services[name]
        if descriptor.status == ServiceStatus.RUNNING:
            if not force:
                return descriptor.instance
            logger.info("Принудительная переинициализация сервиса '%s'", name)
            await self._stop_instance(descriptor)
            descriptor.status = ServiceStatus.REGISTERED
            if name in self._init_order:
                self._init_order.remove(name)

        task = self._inflight.get(name)
        if task is None:
            task = asyncio.create_task(
                self._run_initialization(descriptor, retries),
                name=f"init:{name}",
            )
            self._inflight[name] = task

            def _forget(done: asyncio.Task[Any], key: str = name) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_forget)

        # shield: отмена ожидающего (например, по таймауту get) не обрывает
        # саму инициализацию, её результат останется в реестре
        return await asyncio.shield(task)

    async def _run_initialization(
        self, descriptor: ServiceDescriptor, retries: int | None
    ) -> Any:
        """Попытки инициализации с таймаутом и линейной задержкой."""
        name = descriptor.name
        max_retries = self.default_retries if retries is None else max(0, retries)
        timeout = descriptor.timeout or self.default_timeout
        last_error: BaseException | None = None

        descriptor.status = ServiceStatus.INITIALIZING
        descriptor.error = None
        descriptor.attempts = 0
        logger.info("Инициализация сервиса '%s'...", name)

        for attempt in range(1, max_retries + 2):
            descriptor.attempts = attempt
            started = time.monotonic()
            try:
                instance = await asyncio.wait_for(
                    self._create_instance(descriptor), timeout=timeout
                )
            except (ConfigurationError, ServiceRegistryError) as e:
                # Конфигурационные и структурные ошибки не ретраим
                self._mark_failed(descriptor, e)
                raise
            except TimeoutError:
                last_error = ServiceTimeoutError(name, timeout)
                logger.warning(
                    "Сервис '%s': таймаут инициализации %.1f с (попытка %d/%d)",
                    name,
                    timeout,
                    attempt,
                    max_retries + 1,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    "Сервис '%s': ошибка инициализации (попытка %d/%d): %s",
                    name,
                    attempt,
                    max_retries + 1,
                    e,
                )
            else:
                elapsed_ms = (time.monotonic() - started) * 1000
                descriptor.instance = instance
                descriptor.status = ServiceStatus.RUNNING
                descriptor.initialized_at = datetime.now(UTC)
                self._init_order.append(name)
                logger.info(
                    "Сервис '%s' запущен за %.0f мс (попытка %d)",
                    name,
                    elapsed_ms,
                    attempt,
                )
                self._emit(RegistryEventKind.INITIALIZED, descriptor)
                return instance

            if attempt <= max_retries:
                await asyncio.sleep(self.retry_backoff * attempt)

        self._mark_failed(descriptor, last_error)
        raise ServiceInitializationError(
            name,
            attempts=descriptor.attempts,
            original_error=last_error,
        ) from last_error

    def _mark_failed(
        self, descriptor: ServiceDescriptor, error: BaseException | None
    ) -> None:
        descriptor.status = ServiceStatus.FAILED
        descriptor.error = error
        descriptor.instance = None
        logger.error(
            "Сервис '%s' не инициализирован: %s", descriptor.name, error
        )
        self._emit(RegistryEventKind.FAILED, descriptor)

    async def _create_instance(self, descriptor: ServiceDescriptor) -> Any:
        """Получить экземпляр сервиса в зависимости от вида провайдера."""
        provider = descriptor.provider

        if isinstance(provider, ModuleService):
            return provider.value

        if isinstance(provider, SingletonService):
            await provider.instance.initialize()
            return provider.instance

        resolved = {
            dep: self._services[dep].instance for dep in descriptor.dependencies
        }
        instance = await provider.factory(resolved)
        if isinstance(instance, ManagedService):
            await instance.initialize()
        return instance

    # =========================================================================
    # Доступ к сервисам
    # =========================================================================

    async def get(
        self,
        name: str,
        *,
        fallback: Any = None,
        timeout: float | None = None,
        required: bool = False,
    ) -> Any:
        """Получить экземпляр сервиса.

        Если сервис ещё не работает, пытается его инициализировать
        в пределах timeout. Без required никогда не бросает исключений:
        при любой ошибке возвращает fallback.

        Args:
            name: Имя сервиса.
            fallback: Что вернуть, если сервис недоступен.
            timeout: Сколько ждать инициализацию (секунды).
            required: Бросать исключение вместо возврата fallback.

        Returns:
            Экземпляр сервиса или fallback.

        Raises:
            ServiceTimeoutError: required=True и инициализация не успела.
            ServiceRegistryError: required=True и сервис недоступен.
        """
        descriptor = self._services.get(name)
        if descriptor is not None and descriptor.status == ServiceStatus.RUNNING:
            return descriptor.instance

        wait = timeout
        if wait is None:
            wait = (descriptor.timeout if descriptor else None) or self.default_timeout

        try:
            if descriptor is None:
                raise ServiceNotFoundError(name)
            return await asyncio.wait_for(self.initialize(name), timeout=wait)
        except TimeoutError:
            logger.warning(
                "Сервис '%s' не готов за %.1f с, используем fallback", name, wait
            )
            if required:
                raise ServiceTimeoutError(name, wait, operation="get") from None
        except Exception as e:
            logger.warning("Сервис '%s' недоступен: %s", name, e)
            if required:
                raise

        return fallback

    def is_available(self, name: str) -> bool:
        """Сервис зарегистрирован и работает."""
        descriptor = self._services.get(name)
        return descriptor is not None and descriptor.status == ServiceStatus.RUNNING

    def get_status(self) -> dict[str, ServiceInfo]:
        """Снимок состояния всех сервисов."""
        return {
            name: ServiceInfo(
                name=name,
                status=d.status,
                kind=d.kind,
                version=d.version,
                dependencies=d.dependencies,
                tags=d.tags,
                priority=d.priority,
                attempts=d.attempts,
                initialized_at=d.initialized_at,
                error=str(d.error) if d.error else None,
            )
            for name, d in self._services.items()
        }

    @property
    def initialization_order(self) -> list[str]:
        """Сервисы в порядке фактической инициализации."""
        return list(self._init_order)

    # =========================================================================
    # Health-check
    # =========================================================================

    async def check_health(self, name: str) -> HealthReport:
        """Проверить здоровье сервиса.

        Классификация:
        - DOWN: сервис не зарегистрирован или не инициализирован
        - UNKNOWN: health-check не задан
        - HEALTHY / UNHEALTHY: по результату проверки
        - таймаут или исключение в проверке → UNHEALTHY

        Args:
            name: Имя сервиса.

        Returns:
            HealthReport с классификацией и деталями.
        """
        descriptor = self._services.get(name)
        if descriptor is None:
            return HealthReport(
                name=name, status=HealthStatus.DOWN, error="not registered"
            )
        if descriptor.status != ServiceStatus.RUNNING:
            return HealthReport(
                name=name,
                status=HealthStatus.DOWN,
                details={"service_status": str(descriptor.status)},
                error=str(descriptor.error) if descriptor.error else None,
            )
        if descriptor.health_check is None:
            return HealthReport(name=name, status=HealthStatus.UNKNOWN)

        started = time.monotonic()
        try:
            result = await asyncio.wait_for(
                descriptor.health_check(descriptor.instance),
                timeout=self.health_timeout,
            )
        except TimeoutError:
            logger.warning(
                "Health-check '%s': таймаут %.1f с", name, self.health_timeout
            )
            return HealthReport(
                name=name,
                status=HealthStatus.UNHEALTHY,
                latency_ms=(time.monotonic() - started) * 1000,
                error=f"health check timed out after {self.health_timeout:.1f}s",
            )
        except Exception as e:
            logger.warning("Health-check '%s' упал: %s", name, e)
            return HealthReport(
                name=name,
                status=HealthStatus.UNHEALTHY,
                latency_ms=(time.monotonic() - started) * 1000,
                error=str(e),
            )

        latency_ms = (time.monotonic() - started) * 1000
        return self._classify_health(name, result, latency_ms)

    @staticmethod
    def _classify_health(name: str, result: Any, latency_ms: float) -> HealthReport:
        if isinstance(result, bool):
            status = HealthStatus.HEALTHY if result else HealthStatus.UNHEALTHY
            return HealthReport(name=name, status=status, latency_ms=latency_ms)

        if isinstance(result, Mapping):
            raw = result.get("status", HealthStatus.HEALTHY)
            try:
                status = HealthStatus(str(raw))
            except ValueError:
                status = HealthStatus.UNKNOWN
            return HealthReport(
                name=name,
                status=status,
                latency_ms=latency_ms,
                details={k: v for k, v in result.items() if k != "status"},
            )

        return HealthReport(
            name=name,
            status=HealthStatus.UNKNOWN,
            latency_ms=latency_ms,
            error=f"unexpected health check result: {type(result).__name__}",
        )

    async def check_all_health(self) -> dict[str, HealthReport]:
        """Проверить здоровье всех сервисов параллельно."""
        names = list(self._services)
        reports = await asyncio.gather(*(self.check_health(n) for n in names))
        return dict(zip(names, reports, strict=True))

    # =========================================================================
    # Остановка
    # =========================================================================

    async def _stop_instance(self, descriptor: ServiceDescriptor) -> None:
        if descriptor.kind == ServiceKind.MODULE:
            return
        instance = descriptor.instance
        if isinstance(instance, ManagedService):
            await instance.shutdown()

    async def shutdown(self) -> None:
        """Остановить все сервисы в обратном порядке инициализации.

        Каждый shutdown-хук ограничен shutdown_grace; ошибки логируются
        и не мешают остановке остальных сервисов. После завершения
        реестр полностью очищается. Повторный вызов безопасен.
        """
        pending = [*self._eager_tasks, *self._inflight.values()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if not self._services:
            return

        logger.info("Остановка сервисов: %s", list(reversed(self._init_order)) or "-")

        for name in reversed(self._init_order):
            descriptor = self._services.get(name)
            if descriptor is None or descriptor.status != ServiceStatus.RUNNING:
                continue
            try:
                await asyncio.wait_for(
                    self._stop_instance(descriptor), timeout=self.shutdown_grace
                )
            except TimeoutError:
                logger.warning(
                    "Сервис '%s' не остановился за %.1f с", name, self.shutdown_grace
                )
            except Exception:
                logger.exception("Ошибка при остановке сервиса '%s'", name)
            descriptor.status = ServiceStatus.STOPPED
            descriptor.instance = None
            self._emit(RegistryEventKind.STOPPED, descriptor)
            logger.info("Сервис '%s' остановлен", name)

        self._services.clear()
        self._init_order.clear()
        self._inflight.clear()
        self._eager_tasks.clear()
        self._pending_eager.clear()
        logger.info("Реестр сервисов очищен")
