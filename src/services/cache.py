"""Кэш сгенерированного контента.

Хранит результаты генерации по детерминированному ключу (fingerprint),
чтобы одинаковые запросы не генерировались повторно.

Устройство:
- Основное хранилище — словарь в памяти процесса
- Если указан REDIS_URL, запись идёт сквозным образом (write-through):
  сначала в память, затем в Redis, вызов set() завершается после записи в Redis
- Чтение: сначала память, при промахе — Redis (найденное значение
  копируется в память)
- Если Redis недоступен, кэш работает только в памяти и пишет предупреждение
- Память ограничена max_entries: при переполнении вытесняется ключ,
  который дольше всех не читали и не записывали

Окно согласованности: другой процесс увидит значение сразу после
завершения set(). Значения, записанные в память при недоступном Redis,
видны только текущему процессу.

Кэш — вспомогательный ускоритель: любая ошибка превращается в промах,
а промах означает повторную генерацию, а не ошибку.
"""

import asyncio
import fnmatch
import json
import time
from collections.abc import AsyncIterator
from typing import Any, Final

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.utils.logging import get_logger

logger = get_logger(__name__)

# Размер пачки для SCAN при обходе ключей в Redis
SCAN_BATCH_SIZE = 100

# Маркер JSON-обёртки для нестроковых значений в Redis
JSON_MARKER = "__json"


class _Missing:
    """Тип маркера "значение не найдено"."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing()
"""Возвращается из get() при промахе (None — допустимое значение в кэше)."""


def _normalize(part: str) -> str:
    return " ".join(str(part).split()).lower()


def make_fingerprint(
    industry: str,
    language: str,
    location: str,
    business_type: str,
    tenant_id: int | str | None = None,
) -> str:
    """Построить ключ кэша из параметров генерации.

    Части нормализуются (нижний регистр, лишние пробелы убраны), поэтому
    одинаковые по смыслу запросы из формы, API и массовой генерации
    попадают в один ключ.

    Args:
        industry: Ключ отрасли.
        language: Язык контента.
        location: Город или регион.
        business_type: Тип бизнеса.
        tenant_id: ID тенанта (ключи массовой генерации привязаны к тенанту).

    Returns:
        Ключ вида "real_estate-es-madrid-villa" (+ "-<tenant>" при tenant_id).

    Example:
        >>> make_fingerprint("Real_Estate", "ES", " Madrid ", "Villa")
        'real_estate-es-madrid-villa'
    """
    parts = [industry, language, location, business_type]
    if tenant_id is not None:
        parts.append(str(tenant_id))
    return "-".join(_normalize(part) for part in parts)


def _encode(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps({JSON_MARKER: True, "v": value}, ensure_ascii=False)


def _decode(raw: str) -> Any:
    if not raw.startswith("{"):
        return raw
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(payload, dict) and payload.get(JSON_MARKER) is True:
        return payload.get("v")
    return raw


class ContentCache:
    """Кэш контента: память процесса + опциональный Redis.

    Реализует контракт ManagedService (initialize/shutdown) и
    регистрируется в реестре сервисов как singleton.

    Attributes:
        _redis_url: URL Redis (None — только память).
        _key_prefix: Префикс ключей в Redis.
        _memory: Значения в памяти: ключ -> (значение, момент истечения).
        _expirations: Запланированные удаления для ключей с TTL.
        _max_entries: Предел записей в памяти (None — без предела).
        _redis: Клиент Redis (None — Redis не подключён).
    """

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        key_prefix: str = "landing:",
        connect_timeout: float = 2.0,
        default_ttl: int | None = None,
        max_entries: int | None = None,
    ) -> None:
        """Инициализировать кэш.

        Args:
            redis_url: URL Redis. None — кэш только в памяти.
            key_prefix: Префикс ключей в Redis.
            connect_timeout: Таймаут подключения к Redis (секунды).
            default_ttl: TTL по умолчанию для set() (None — без срока).
            max_entries: Предел записей в памяти (None — без предела).
                При превышении вытесняются давно не использованные ключи.
        """
        self._redis_url = redis_url
        self._key_prefix = key_prefix
        self._connect_timeout = connect_timeout
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._memory: dict[str, tuple[Any, float | None]] = {}
        self._expirations: dict[str, asyncio.TimerHandle] = {}
        self._redis: redis.Redis | None = None

    @property
    def mode(self) -> str:
        """Режим работы: "redis" или "memory"."""
        return "redis" if self._redis is not None else "memory"

    # =========================================================================
    # Жизненный цикл
    # =========================================================================

    async def initialize(self) -> None:
        """Подключиться к Redis (если настроен).

        Недоступный Redis не считается ошибкой: кэш переходит в режим памяти.
        """
        if not self._redis_url:
            logger.info("Кэш работает в памяти (Redis не настроен)")
            return

        client = redis.from_url(
            self._redis_url,
            decode_responses=True,
            socket_connect_timeout=self._connect_timeout,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.warning(
                "Redis недоступен, кэш работает в памяти: %s", e.__class__.__name__
            )
            await client.aclose()
            return

        self._redis = client
        logger.info("Кэш подключён к Redis")

    async def shutdown(self) -> None:
        """Закрыть соединение с Redis и очистить память."""
        for handle in self._expirations.values():
            handle.cancel()
        self._expirations.clear()
        self._memory.clear()

        if self._redis is not None:
            client, self._redis = self._redis, None
            try:
                await client.aclose()
            except (RedisError, OSError) as e:
                logger.warning("Ошибка при закрытии Redis: %s", e)
        logger.info("Кэш остановлен")

    async def ping(self) -> dict[str, Any]:
        """Проверка здоровья для реестра сервисов.

        Returns:
            {"status": "healthy", "mode": ...} или "unhealthy" при ошибке Redis.
        """
        if self._redis is None:
            return {"status": "healthy", "mode": "memory", "keys": len(self._memory)}

        started = time.perf_counter()
        try:
            await self._redis.ping()
        except (RedisError, OSError) as e:
            return {"status": "unhealthy", "mode": "redis", "error": str(e)}
        latency = (time.perf_counter() - started) * 1000
        return {"status": "healthy", "mode": "redis", "latency_ms": round(latency, 2)}

    # =========================================================================
    # Чтение и запись
    # =========================================================================

    async def get(self, key: str) -> Any:
        """Получить значение по ключу.

        Returns:
            Значение или MISSING при промахе.
        """
        entry = self._memory.get(key)
        if entry is not None:
            value, expires_at = entry
            if expires_at is None or expires_at > time.monotonic():
                # Перенос в конец словаря: порядок ключей — порядок использования
                self._memory[key] = self._memory.pop(key)
                return value
            self._evict(key)

        if self._redis is None:
            logger.info("Промах кэша: %s", key)
            return MISSING

        try:
            raw = await self._redis.get(self._redis_key(key))
            ttl = await self._redis.ttl(self._redis_key(key)) if raw is not None else -1
        except (RedisError, OSError) as e:
            logger.warning("Ошибка чтения из Redis, промах кэша: %s (%s)", key, e)
            return MISSING

        if raw is None:
            logger.info("Промах кэша: %s", key)
            return MISSING

        value = _decode(raw)
        self._store_in_memory(key, value, ttl if ttl > 0 else None)
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Записать значение (безусловная перезапись).

        Args:
            key: Ключ.
            value: Значение (строка или JSON-сериализуемый объект для Redis).
            ttl: Время жизни в секундах (None — TTL по умолчанию).
        """
        effective_ttl = ttl if ttl is not None else self._default_ttl
        self._store_in_memory(key, value, effective_ttl)

        if self._redis is None:
            return

        try:
            await self._redis.set(
                self._redis_key(key), _encode(value), ex=effective_ttl
            )
        except (RedisError, OSError, TypeError) as e:
            logger.warning("Не удалось записать в Redis: %s (%s)", key, e)

    async def set_with_ttl(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Записать значение с автоматическим удалением через ttl_seconds.

        Raises:
            ValueError: Если ttl_seconds не положительный.
        """
        if ttl_seconds <= 0:
            raise ValueError(f"TTL должен быть положительным: {ttl_seconds}")
        await self.set(key, value, ttl=ttl_seconds)

    async def get_json(self, key: str) -> Any:
        """Получить значение, сохранённое через set_json().

        Returns:
            Распарсенный объект или MISSING.
        """
        value = await self.get(key)
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                logger.warning("Некорректный JSON в кэше: %s", key)
                return MISSING
        return value

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Записать объект в виде JSON-строки."""
        await self.set(key, json.dumps(value, ensure_ascii=False), ttl=ttl)

    async def delete(self, key: str) -> None:
        """Удалить значение."""
        self._evict(key)
        if self._redis is None:
            return
        try:
            await self._redis.delete(self._redis_key(key))
        except (RedisError, OSError) as e:
            logger.warning("Не удалось удалить ключ из Redis: %s (%s)", key, e)

    async def keys(self, pattern: str = "*") -> AsyncIterator[str]:
        """Перебрать ключи кэша.

        Каждый вызов создаёт новый снимок: ключи памяти фиксируются
        в момент вызова, ключи Redis читаются через SCAN пачками по 100.

        Args:
            pattern: Glob-шаблон ключей.

        Yields:
            Ключи без префикса Redis, каждый ровно один раз.
        """
        now = time.monotonic()
        snapshot = [
            key
            for key, (_, expires_at) in self._memory.items()
            if expires_at is None or expires_at > now
        ]
        seen: set[str] = set()

        if self._redis is not None:
            try:
                async for raw_key in self._redis.scan_iter(
                    match=self._redis_key(pattern), count=SCAN_BATCH_SIZE
                ):
                    key = raw_key.removeprefix(self._key_prefix)
                    if key not in seen:
                        seen.add(key)
                        yield key
            except (RedisError, OSError) as e:
                logger.warning("Ошибка SCAN в Redis, перебор только памяти: %s", e)

        for key in snapshot:
            if key not in seen and fnmatch.fnmatchcase(key, pattern):
                seen.add(key)
                yield key

    # =========================================================================
    # Внутреннее
    # =========================================================================

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _store_in_memory(self, key: str, value: Any, ttl: int | None) -> None:
        handle = self._expirations.pop(key, None)
        if handle is not None:
            handle.cancel()

        self._memory.pop(key, None)
        if ttl is None:
            self._memory[key] = (value, None)
            self._enforce_limit()
            return

        self._memory[key] = (value, time.monotonic() + ttl)
        self._enforce_limit()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Без цикла событий ключ удалится при следующем чтении
            return
        self._expirations[key] = loop.call_later(ttl, self._evict, key)

    def _evict(self, key: str) -> None:
        self._memory.pop(key, None)
        handle = self._expirations.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _enforce_limit(self) -> None:
        if self._max_entries is None:
            return
        while len(self._memory) > self._max_entries:
            oldest = next(iter(self._memory))
            logger.debug("Вытеснение из памяти: %s", oldest)
            self._evict(oldest)
